"""Tool invocation pipeline.

Runs one tool call through every security stage in a fixed order and
stops at the first failure:

    RECEIVED -> PASSTHROUGH_CHECKING -> SCHEMA_VALIDATING
    -> SECURITY_SCANNING -> RATE_LIMITING (mutating tools only)
    -> EXECUTING -> OUTPUT_REDACTING -> OUTPUT_SANITIZING -> COMPLETED

Any failure ends in FAILED. Only the EXECUTING stage performs network
I/O. The pipeline owns none of its collaborators; they are passed in,
which keeps rate-limit and session state isolated per instance.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from config.models import GatewayConfig
from core.exceptions import ErrorKind, SecureError, ServerError, ValidationError
from core.logging import LogContext, generate_request_id
from core.security.object_guard import StructuredObjectGuard
from core.security.patterns import DEFAULT_PATTERN_LIBRARY
from core.security.rate_limiter import RateLimiter, make_key
from core.security.resilient_client import ResilientClient
from core.security.schema_validator import SchemaValidator
from core.security.secure_logger import SecureLogger
from core.security.security_scanner import SecurityScanner
from core.security.session_store import SessionStore
from core.security.token_redactor import TokenRedactor
from tools import BaseTool, default_tools


logger = logging.getLogger(__name__)

MSG_TOOL_FAILED = "Tool execution failed. Please try again later."


class PipelineStage(str, Enum):
    RECEIVED = "received"
    PASSTHROUGH_CHECKING = "passthrough_checking"
    SCHEMA_VALIDATING = "schema_validating"
    SECURITY_SCANNING = "security_scanning"
    RATE_LIMITING = "rate_limiting"
    EXECUTING = "executing"
    OUTPUT_REDACTING = "output_redacting"
    OUTPUT_SANITIZING = "output_sanitizing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class InvocationResult:
    """Outcome of one tool invocation."""

    tool: str
    request_id: str
    state: PipelineStage
    output: Any = None
    error: Optional[SecureError] = None
    failed_stage: Optional[PipelineStage] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.state is PipelineStage.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        """Caller-visible shape; errors carry only their safe message."""
        result: Dict[str, Any] = {
            "tool": self.tool,
            "request_id": self.request_id,
            "state": self.state.value,
        }
        if self.ok:
            result["output"] = self.output
        else:
            result["error"] = self.error.to_dict() if self.error else None
            if self.failed_stage is not None:
                result["failed_stage"] = self.failed_stage.value
        return result


class ToolPipeline:
    """Orchestrates validation, scanning, throttling, execution and redaction."""

    def __init__(
        self,
        tools: Iterable[BaseTool],
        client: ResilientClient,
        validator: Optional[SchemaValidator] = None,
        scanner: Optional[SecurityScanner] = None,
        redactor: Optional[TokenRedactor] = None,
        tool_rate_limiter: Optional[RateLimiter] = None,
        sessions: Optional[SessionStore] = None,
    ):
        """Initialize the pipeline.

        Args:
            tools: Tools to expose; names must be unique.
            client: Outbound client handed to tools at execution time.
            validator: Per-tool schema validator.
            scanner: Adversarial-pattern scanner.
            redactor: Used for the passthrough check and output redaction.
            tool_rate_limiter: Limiter for mutating tools (10 per minute
                per resource by default).
            sessions: Optional session store owned by the caller.
        """
        self._tools: Dict[str, BaseTool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

        self._client = client
        self._validator = validator or SchemaValidator()
        self._scanner = scanner or SecurityScanner()
        self._redactor = redactor or TokenRedactor()
        self._tool_limiter = tool_rate_limiter or RateLimiter(
            max_per_window=10, window_seconds=60.0, name="tool"
        )
        self.sessions = sessions
        self._secure_log = SecureLogger(logger, self._redactor)

    @property
    def tool_names(self) -> List[str]:
        return list(self._tools)

    def get_tool(self, name: str) -> Optional[BaseTool]:
        return self._tools.get(name)

    def list_tools(self) -> List[Dict[str, Any]]:
        """Definitions of every registered tool."""
        return [tool.definition() for tool in self._tools.values()]

    async def invoke(self, tool_name: str, arguments: Any = None) -> InvocationResult:
        """Run ``tool_name`` with ``arguments`` through every stage.

        Never raises: failures are reported through the returned
        InvocationResult with state FAILED.
        """
        request_id = generate_request_id()
        started = time.monotonic()

        with LogContext(request_id=request_id):
            stage = PipelineStage.RECEIVED
            tool = self._tools.get(tool_name) if isinstance(tool_name, str) else None
            if tool is None:
                logger.warning("Invocation of unknown tool rejected")
                return self._failed(
                    self._redactor.redact_text(str(tool_name)),
                    request_id,
                    stage,
                    ValidationError("Unknown tool"),
                    started,
                )

            context = f"{tool.name} input"
            try:
                stage = PipelineStage.PASSTHROUGH_CHECKING
                self._redactor.assert_no_token_passthrough(arguments, context)
                self._scanner.scan(arguments, context)

                stage = PipelineStage.SCHEMA_VALIDATING
                normalized = self._validator.validate(tool.schema, arguments)

                stage = PipelineStage.SECURITY_SCANNING
                self._scanner.scan(normalized, context)

                if tool.mutating:
                    stage = PipelineStage.RATE_LIMITING
                    self._tool_limiter.check(
                        make_key(tool.name, tool.resource_identifier(normalized))
                    )

                stage = PipelineStage.EXECUTING
                logger.info(f"Executing tool {tool.name}")
                raw_output = await tool.execute(normalized, self._client)

                stage = PipelineStage.OUTPUT_REDACTING
                redacted = self._redactor.redact(raw_output)

                stage = PipelineStage.OUTPUT_SANITIZING
                output = self._redactor.sanitize_output(redacted)

            except SecureError as e:
                return self._failed(tool.name, request_id, stage, e, started)
            except Exception as e:
                self._secure_log.exception(
                    f"Unexpected {type(e).__name__} in stage {stage.value} of {tool.name}"
                )
                return self._failed(
                    tool.name, request_id, stage, ServerError(MSG_TOOL_FAILED), started
                )

            duration = time.monotonic() - started
            logger.info(
                f"Tool {tool.name} completed",
                extra={"tool": tool.name, "duration_seconds": round(duration, 3)},
            )
            return InvocationResult(
                tool=tool.name,
                request_id=request_id,
                state=PipelineStage.COMPLETED,
                output=output,
                duration_seconds=duration,
            )

    def _failed(
        self,
        tool_name: str,
        request_id: str,
        stage: PipelineStage,
        error: SecureError,
        started: float,
    ) -> InvocationResult:
        log = logger.warning if error.kind in (ErrorKind.SECURITY, ErrorKind.SERVER) else logger.info
        log(
            f"Tool {tool_name} failed in stage {stage.value}: {error.safe_message}",
            extra={"tool": tool_name, "stage": stage.value, "error_kind": error.kind.value},
        )
        return InvocationResult(
            tool=tool_name,
            request_id=request_id,
            state=PipelineStage.FAILED,
            error=error,
            failed_stage=stage,
            duration_seconds=time.monotonic() - started,
        )

    async def close(self) -> None:
        """Release the outbound client and the session store."""
        await self._client.close()
        if self.sessions is not None:
            await self.sessions.close()


def create_pipeline(
    config: GatewayConfig,
    tools: Optional[Iterable[BaseTool]] = None,
    client: Optional[ResilientClient] = None,
) -> ToolPipeline:
    """Wire a ToolPipeline and its collaborators from configuration."""
    security = config.security
    redactor = TokenRedactor(DEFAULT_PATTERN_LIBRARY, security.redaction_placeholder)
    guard = StructuredObjectGuard(
        max_bytes=security.max_json_bytes, max_depth=security.max_depth
    )

    return ToolPipeline(
        tools=default_tools() if tools is None else tools,
        client=client or ResilientClient.from_config(config, redactor=redactor),
        validator=SchemaValidator(guard, max_text_length=security.max_text_length),
        scanner=SecurityScanner(
            max_chars=security.max_input_chars, max_depth=security.max_depth
        ),
        redactor=redactor,
        tool_rate_limiter=RateLimiter(
            max_per_window=config.rate_limit.tool_per_minute,
            window_seconds=config.rate_limit.window_seconds,
            cleanup_interval=config.rate_limit.cleanup_interval,
            name="tool",
        ),
        sessions=SessionStore(
            redactor=redactor,
            timeout_seconds=config.session.timeout_minutes * 60,
            max_sessions=config.session.max_sessions,
            sweep_interval_seconds=config.session.sweep_interval_seconds,
        ),
    )
