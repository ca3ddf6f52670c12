"""Project tools: thin shaping of arguments into allowlisted project calls."""

import logging
from typing import Any, Dict

from core.security.resilient_client import ResilientClient
from core.security.schema_validator import FieldRule, ToolSchema
from tools.base import BaseTool, ToolAnnotations


logger = logging.getLogger(__name__)


_SLUG_PROPERTY = {
    "type": "string",
    "pattern": r"^[A-Za-z]{3}$",
    "description": "Three-letter project slug (case-insensitive)",
}

_SLUG_ONLY = ToolSchema(
    json_schema={
        "type": "object",
        "properties": {"slug": _SLUG_PROPERTY},
        "required": ["slug"],
        "additionalProperties": False,
    },
    field_rules={"slug": FieldRule.PROJECT_SLUG},
)


class GetProjectTool(BaseTool):
    name = "get_project"
    description = "Retrieve a project by its slug"
    schema = ToolSchema(
        json_schema={
            "type": "object",
            "properties": {
                "slug": _SLUG_PROPERTY,
                "name": {"type": "string", "description": "Project display name"},
                "description": {"type": "string", "description": "Project description"},
            },
            "required": ["slug"],
            "additionalProperties": False,
        },
        field_rules={
            "slug": FieldRule.PROJECT_SLUG,
            "name": FieldRule.TEXT,
            "description": FieldRule.TEXT,
        },
    )
    annotations = ToolAnnotations(title="Get Project")
    identifier_field = "slug"

    async def execute(self, arguments: Dict[str, Any], client: ResilientClient) -> Any:
        return await client.get(f"/project/slug/{arguments['slug']}")


class StartProjectTool(BaseTool):
    name = "start_project"
    description = "Retrieve a project together with its first task"
    schema = _SLUG_ONLY
    annotations = ToolAnnotations(title="Start Project")
    identifier_field = "slug"

    async def execute(self, arguments: Dict[str, Any], client: ResilientClient) -> Any:
        return await client.get(f"/project/slug/{arguments['slug']}/first-task")


class UpdateProjectTool(BaseTool):
    """Update a project's knowledge graph and/or structure diagram."""

    name = "update_project"
    description = "Update a project's knowledge or diagram"
    schema = ToolSchema(
        json_schema={
            "type": "object",
            "properties": {
                "slug": _SLUG_PROPERTY,
                "project_knowledge": {
                    "type": "object",
                    "description": "Project knowledge graph data (JSON object)",
                },
                "project_diagram": {
                    "type": "string",
                    "description": "Project structure diagram (Mermaid.js format)",
                },
            },
            "required": ["slug"],
            "anyOf": [
                {"required": ["project_knowledge"]},
                {"required": ["project_diagram"]},
            ],
            "additionalProperties": False,
        },
        field_rules={
            "slug": FieldRule.PROJECT_SLUG,
            "project_knowledge": FieldRule.JSON_OBJECT,
            "project_diagram": FieldRule.TEXT,
        },
    )
    annotations = ToolAnnotations(
        title="Update Project", read_only=False, destructive=False, idempotent=False
    )
    identifier_field = "slug"

    UPDATE_FIELDS = ("project_knowledge", "project_diagram")

    async def execute(self, arguments: Dict[str, Any], client: ResilientClient) -> Any:
        slug = arguments["slug"]
        update = {
            field: arguments[field] for field in self.UPDATE_FIELDS if field in arguments
        }
        logger.debug(f"Updating project {slug}: fields {sorted(update)}")
        return await client.put(f"/project/slug/{slug}", update)


class ListProjectsTool(BaseTool):
    name = "list_projects"
    description = "List every project visible to the configured credential"
    schema = ToolSchema(
        json_schema={"type": "object", "properties": {}, "additionalProperties": False},
    )
    annotations = ToolAnnotations(title="List Projects")

    async def execute(self, arguments: Dict[str, Any], client: ResilientClient) -> Any:
        return await client.get("/project/list")
