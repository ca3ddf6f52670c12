"""Base class for gateway tools."""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from core.security.resilient_client import ResilientClient
from core.security.schema_validator import ToolSchema


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolAnnotations:
    """Behavior hints published with a tool definition."""

    title: Optional[str] = None
    read_only: bool = True
    destructive: bool = False
    idempotent: bool = True
    open_world: bool = True

    def to_dict(self) -> Dict[str, Any]:
        hints = {
            "readOnlyHint": self.read_only,
            "destructiveHint": self.destructive,
            "idempotentHint": self.idempotent,
            "openWorldHint": self.open_world,
        }
        if self.title:
            hints["title"] = self.title
        return hints


class BaseTool(ABC):
    """Abstract base class for tools executed by the ToolPipeline.

    A tool only shapes already-validated arguments into one allowlisted
    client call. Validation, scanning, throttling and redaction are done
    by the pipeline around it.
    """

    name: str = ""
    description: str = ""
    schema: ToolSchema
    annotations: ToolAnnotations = ToolAnnotations()

    # Field whose normalized value identifies the touched resource
    identifier_field: Optional[str] = None

    @property
    def mutating(self) -> bool:
        """Mutating tools are rate limited by the pipeline."""
        return not self.annotations.read_only

    def resource_identifier(self, arguments: Dict[str, Any]) -> Optional[str]:
        if self.identifier_field is None:
            return None
        value = arguments.get(self.identifier_field)
        return str(value) if value else None

    def definition(self) -> Dict[str, Any]:
        """Tool definition in the shape published to protocol clients."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.schema.json_schema,
            "annotations": self.annotations.to_dict(),
        }

    @abstractmethod
    async def execute(self, arguments: Dict[str, Any], client: ResilientClient) -> Any:
        """Run the tool against validated ``arguments``.

        Args:
            arguments: Normalized arguments from the SchemaValidator.
            client: Outbound client; the only permitted network path.

        Returns:
            JSON-compatible result.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, annotations={asdict(self.annotations)})"
