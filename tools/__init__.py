"""Tools exposed through the ToolPipeline."""

from typing import List

from tools.base import BaseTool, ToolAnnotations
from tools.projects import (
    GetProjectTool,
    ListProjectsTool,
    StartProjectTool,
    UpdateProjectTool,
)
from tools.tasks import (
    GetPromptTool,
    GetTaskTool,
    ListTasksTool,
    NextTaskTool,
    UpdateTaskTool,
)


def default_tools() -> List[BaseTool]:
    """Fresh instances of every built-in tool."""
    return [
        GetTaskTool(),
        GetPromptTool(),
        UpdateTaskTool(),
        NextTaskTool(),
        ListTasksTool(),
        GetProjectTool(),
        StartProjectTool(),
        UpdateProjectTool(),
        ListProjectsTool(),
    ]


__all__ = [
    "BaseTool",
    "ToolAnnotations",
    "GetTaskTool",
    "GetPromptTool",
    "UpdateTaskTool",
    "NextTaskTool",
    "ListTasksTool",
    "GetProjectTool",
    "StartProjectTool",
    "UpdateProjectTool",
    "ListProjectsTool",
    "default_tools",
]
