"""Configuration management module for the secure tool gateway."""

from config.models import (
    ApiConfig,
    GatewayConfig,
    LoggingConfig,
    RateLimitConfig,
    RetryConfig,
    SecurityLimitsConfig,
    SessionConfig,
)
from config.loader import ConfigurationManager

__all__ = [
    "ApiConfig",
    "GatewayConfig",
    "LoggingConfig",
    "RateLimitConfig",
    "RetryConfig",
    "SecurityLimitsConfig",
    "SessionConfig",
    "ConfigurationManager",
]
