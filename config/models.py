"""Pydantic models for configuration schema validation."""

import logging
from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

# Use standard logging here since this module is loaded before our logging is configured
logger = logging.getLogger(__name__)


class ApiConfig(BaseModel):
    """Configuration for the downstream task/project API."""

    base_url: str = Field(
        default="https://api.coderide.ai",
        description="Base URL of the downstream API",
    )
    api_key: str = Field(..., description="Credential sent in the api_key header")
    api_key_prefix: str = Field(
        default="CR_API_KEY_",
        description="Literal prefix every valid credential must carry",
    )
    env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    user_agent: str = Field(
        default="secure-tool-gateway/0.1.0",
        description="User-Agent header sent downstream",
    )
    max_response_size_bytes: int = Field(
        default=10 * 1024 * 1024,  # 10MB
        ge=1024,
        le=100 * 1024 * 1024,
        description="Maximum accepted downstream response body size",
    )

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        """Validate API key is not empty."""
        if not v or not v.strip():
            raise ValueError("API key cannot be empty")
        return v.strip()

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate base URL has a scheme and host."""
        if not v or not v.strip():
            raise ValueError("Base URL cannot be empty")

        url = v.strip()
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid base URL: '{url}'")

        return url.rstrip("/")

    @model_validator(mode="after")
    def validate_https_in_production(self) -> "ApiConfig":
        """Require HTTPS when running in production."""
        if self.env == "production" and not self.base_url.startswith("https://"):
            raise ValueError("HTTPS is required for base_url in production")
        if self.env != "production" and not self.base_url.startswith("https://"):
            logger.warning(
                "Downstream API base URL is not HTTPS. "
                "This is only acceptable outside production."
            )
        return self


class RetryConfig(BaseModel):
    """Configuration for outbound timeouts and retry behavior."""

    max_attempts: int = Field(default=3, ge=1, le=10, description="Maximum attempts per call")
    base_delay_seconds: float = Field(
        default=1.0, gt=0, le=60, description="Base delay for exponential backoff"
    )
    jitter_factor: float = Field(
        default=0.1, ge=0, le=1, description="Maximum random jitter as a fraction of the delay"
    )
    request_timeout_seconds: float = Field(
        default=90.0, ge=1, le=600, description="Per-request HTTP timeout"
    )


class RateLimitConfig(BaseModel):
    """Configuration for fixed-window rate limiting."""

    per_minute: int = Field(
        default=100, ge=1, le=10000, description="Outbound calls per window per identifier"
    )
    tool_per_minute: int = Field(
        default=10, ge=1, le=10000, description="Mutating tool calls per window per resource"
    )
    window_seconds: float = Field(default=60.0, gt=0, le=3600, description="Window length")
    cleanup_interval: int = Field(
        default=100, ge=1, le=100000, description="Sweep expired entries every N checks"
    )


class SessionConfig(BaseModel):
    """Configuration for the ephemeral session store."""

    timeout_minutes: float = Field(
        default=30, gt=0, le=24 * 60, description="Sliding session timeout in minutes"
    )
    max_sessions: int = Field(default=1000, ge=1, le=1000000, description="Session ceiling")
    sweep_interval_seconds: float = Field(
        default=300, gt=0, le=3600, description="Background sweep interval"
    )


class SecurityLimitsConfig(BaseModel):
    """Size and depth ceilings applied to caller input."""

    max_input_chars: int = Field(
        default=50000, ge=1024, description="Ceiling on serialized tool input"
    )
    max_depth: int = Field(default=10, ge=1, le=100, description="Ceiling on nesting depth")
    max_json_bytes: int = Field(
        default=100 * 1024, ge=1024, description="Ceiling on a serialized structured field"
    )
    max_text_length: int = Field(
        default=5000, ge=1, description="Free text is truncated beyond this length"
    )
    redaction_placeholder: str = Field(
        default="[REDACTED]", description="Marker substituted for sensitive values"
    )

    @field_validator("redaction_placeholder")
    @classmethod
    def validate_placeholder(cls, v: str) -> str:
        """The marker must not itself look like a token."""
        if not v or not v.strip():
            raise ValueError("Redaction placeholder cannot be empty")
        if not (v.startswith("[") and v.endswith("]")):
            raise ValueError("Redaction placeholder must be bracketed, e.g. '[REDACTED]'")
        return v


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level"
    )
    format: Literal["json", "text"] = Field(default="json", description="Log format")


class GatewayConfig(BaseModel):
    """Main configuration model."""

    api: ApiConfig = Field(..., description="Downstream API configuration")
    retry: RetryConfig = Field(
        default_factory=RetryConfig, description="Retry configuration"
    )
    rate_limit: RateLimitConfig = Field(
        default_factory=RateLimitConfig, description="Rate limit configuration"
    )
    session: SessionConfig = Field(
        default_factory=SessionConfig, description="Session configuration"
    )
    security: SecurityLimitsConfig = Field(
        default_factory=SecurityLimitsConfig, description="Input ceilings and redaction"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "api": {
                    "base_url": "https://api.coderide.ai",
                    "api_key": "CR_API_KEY_REPLACE_ME",
                    "env": "development"
                },
                "retry": {"max_attempts": 3, "request_timeout_seconds": 90},
                "rate_limit": {"per_minute": 100, "tool_per_minute": 10},
                "session": {"timeout_minutes": 30, "max_sessions": 1000},
                "logging": {"level": "INFO", "format": "json"}
            }
        }
    }
