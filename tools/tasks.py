"""Task tools: thin shaping of arguments into allowlisted task calls."""

import logging
from typing import Any, Dict

from core.security.resilient_client import ResilientClient
from core.security.schema_validator import TASK_STATUSES, FieldRule, ToolSchema
from tools.base import BaseTool, ToolAnnotations


logger = logging.getLogger(__name__)


_TASK_NUMBER_PROPERTY = {
    "type": "string",
    "pattern": r"^[A-Za-z]{3}-\d+$",
    "description": "Task number, e.g. ABC-123 (case-insensitive)",
}

_TASK_NUMBER_ONLY = ToolSchema(
    json_schema={
        "type": "object",
        "properties": {"number": _TASK_NUMBER_PROPERTY},
        "required": ["number"],
        "additionalProperties": False,
    },
    field_rules={"number": FieldRule.TASK_NUMBER},
)


class GetTaskTool(BaseTool):
    name = "get_task"
    description = "Retrieve a task by its number"
    schema = _TASK_NUMBER_ONLY
    annotations = ToolAnnotations(title="Get Task")
    identifier_field = "number"

    async def execute(self, arguments: Dict[str, Any], client: ResilientClient) -> Any:
        return await client.get(f"/task/number/{arguments['number']}")


class GetPromptTool(BaseTool):
    name = "get_prompt"
    description = "Retrieve the agent prompt and instructions attached to a task"
    schema = _TASK_NUMBER_ONLY
    annotations = ToolAnnotations(title="Get Task Prompt")
    identifier_field = "number"

    async def execute(self, arguments: Dict[str, Any], client: ResilientClient) -> Any:
        return await client.get(f"/task/number/{arguments['number']}/prompt")


class NextTaskTool(BaseTool):
    name = "next_task"
    description = "Retrieve the task that follows the given one in its project"
    schema = _TASK_NUMBER_ONLY
    annotations = ToolAnnotations(title="Next Task")
    identifier_field = "number"

    async def execute(self, arguments: Dict[str, Any], client: ResilientClient) -> Any:
        return await client.get(f"/task/number/{arguments['number']}/next")


class UpdateTaskTool(BaseTool):
    """Update the description and/or status of a task.

    Only fields present in the arguments are sent downstream.
    """

    name = "update_task"
    description = "Update an existing task's description or status"
    schema = ToolSchema(
        json_schema={
            "type": "object",
            "properties": {
                "number": _TASK_NUMBER_PROPERTY,
                "description": {
                    "type": "string",
                    "maxLength": 5000,
                    "description": "New task description",
                },
                "status": {
                    "type": "string",
                    "enum": list(TASK_STATUSES),
                    "description": "New task status",
                },
            },
            "required": ["number"],
            "anyOf": [{"required": ["description"]}, {"required": ["status"]}],
            "additionalProperties": False,
        },
        field_rules={
            "number": FieldRule.TASK_NUMBER,
            "description": FieldRule.TEXT,
            "status": FieldRule.TASK_STATUS,
        },
    )
    annotations = ToolAnnotations(
        title="Update Task", read_only=False, destructive=False, idempotent=False
    )
    identifier_field = "number"

    UPDATE_FIELDS = ("description", "status")

    async def execute(self, arguments: Dict[str, Any], client: ResilientClient) -> Any:
        number = arguments["number"]
        update = {
            field: arguments[field] for field in self.UPDATE_FIELDS if field in arguments
        }
        logger.debug(f"Updating task {number}: fields {sorted(update)}")
        return await client.put(f"/task/number/{number}", update)


class ListTasksTool(BaseTool):
    name = "list_tasks"
    description = "List all tasks of a project"
    schema = ToolSchema(
        json_schema={
            "type": "object",
            "properties": {
                "slug": {
                    "type": "string",
                    "pattern": r"^[A-Za-z]{3}$",
                    "description": "Three-letter project slug",
                },
            },
            "required": ["slug"],
            "additionalProperties": False,
        },
        field_rules={"slug": FieldRule.PROJECT_SLUG},
    )
    annotations = ToolAnnotations(title="List Tasks")
    identifier_field = "slug"

    async def execute(self, arguments: Dict[str, Any], client: ResilientClient) -> Any:
        return await client.get(f"/task/project/slug/{arguments['slug']}")
