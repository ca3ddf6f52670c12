"""Outbound HTTP client with allowlisting, throttling and bounded retries.

This module provides the ResilientClient class that wraps aiohttp. Every
call is checked against the EndpointAllowlist, its body against the
structured-object guard, and its identifier against a client-wide
RateLimiter before any network activity. Failures are mapped onto a
closed set of caller-safe messages; upstream bodies are only ever
logged, redacted, at debug level.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse

import aiohttp

from core.exceptions import (
    MSG_AUTHENTICATION_FAILED,
    MSG_NOT_FOUND,
    MSG_PERMISSION_DENIED,
    MSG_REQUEST_FAILED,
    MSG_SERVER_ERROR,
    MSG_UPSTREAM_RATE_LIMITED,
    SecureError,
    SecurityError,
    ServerError,
    TransportError,
    ValidationError,
)
from core.logging import generate_request_id
from core.security.endpoint_allowlist import EndpointAllowlist
from core.security.object_guard import StructuredObjectGuard
from core.security.rate_limiter import RateLimiter
from core.security.retry_policy import RetryPolicy
from core.security.secure_logger import SecureLogger
from core.security.token_redactor import TokenRedactor


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.coderide.ai"
DEFAULT_RATE_LIMIT_ID = "global"
API_KEY_HEADER = "api_key"


def classify_status(status: int) -> SecureError:
    """Map a non-2xx HTTP status onto the closed error taxonomy."""
    if status == 401:
        return SecurityError(MSG_AUTHENTICATION_FAILED, http_status=status)
    if status == 403:
        return SecurityError(MSG_PERMISSION_DENIED, http_status=status)
    if status == 404:
        return ValidationError(MSG_NOT_FOUND, http_status=status)
    if status == 429:
        return SecurityError(MSG_UPSTREAM_RATE_LIMITED, http_status=status)
    if status >= 500:
        return ServerError(MSG_SERVER_ERROR, http_status=status)
    return TransportError(MSG_REQUEST_FAILED, http_status=status)


class ResilientClient:
    """HTTP client for the downstream task/project API.

    Construction validates the credential and base URL and fails fast.
    Each verb runs the same sequence:
    1. endpoint allowlist
    2. request body guard
    3. rate limit check (once per call, not per attempt)
    4. send with retries; redirects are never followed
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        api_key_prefix: str = "CR_API_KEY_",
        env: str = "development",
        timeout: float = 90.0,
        user_agent: str = "secure-tool-gateway/0.1.0",
        max_response_size: int = 10 * 1024 * 1024,
        allowlist: Optional[EndpointAllowlist] = None,
        rate_limiter: Optional[RateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        body_guard: Optional[StructuredObjectGuard] = None,
        redactor: Optional[TokenRedactor] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """Initialize the client.

        Args:
            api_key: Credential sent in the ``api_key`` header.
            base_url: Downstream API root.
            api_key_prefix: Literal prefix the credential must carry.
            env: Deployment environment; production requires HTTPS.
            timeout: Per-request timeout in seconds.
            user_agent: User-Agent header value.
            max_response_size: Ceiling on response body size in bytes.
            allowlist: Permitted endpoint templates.
            rate_limiter: Client-wide limiter (100 per minute by default).
            retry_policy: Backoff policy (3 attempts by default).
            body_guard: Size/depth/key guard for request bodies.
            redactor: Used to redact everything this client logs.
            sleep: Awaitable used between attempts. Defaults to asyncio.sleep.

        Raises:
            SecurityError: If the credential is missing or malformed, or if
                production is configured without HTTPS.
            ValidationError: If the base URL is missing or unparseable.
        """
        self._api_key = self._validate_api_key(api_key, api_key_prefix)
        self.base_url = self._validate_base_url(base_url, env)
        self.env = env
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_response_size = max_response_size

        self.allowlist = allowlist or EndpointAllowlist()
        self.rate_limiter = rate_limiter or RateLimiter(
            max_per_window=100, window_seconds=60.0, name="client"
        )
        self.retry_policy = retry_policy or RetryPolicy()
        self.body_guard = body_guard or StructuredObjectGuard()
        self._logger = SecureLogger(logger, redactor)
        self._sleep = sleep
        self._session: Optional[aiohttp.ClientSession] = None

        self._logger.info("Resilient API client initialized")

    @classmethod
    def from_config(cls, config: Any, redactor: Optional[TokenRedactor] = None) -> "ResilientClient":
        """Build a client from a GatewayConfig."""
        return cls(
            api_key=config.api.api_key,
            base_url=config.api.base_url,
            api_key_prefix=config.api.api_key_prefix,
            env=config.api.env,
            timeout=config.retry.request_timeout_seconds,
            user_agent=config.api.user_agent,
            max_response_size=config.api.max_response_size_bytes,
            rate_limiter=RateLimiter(
                max_per_window=config.rate_limit.per_minute,
                window_seconds=config.rate_limit.window_seconds,
                cleanup_interval=config.rate_limit.cleanup_interval,
                name="client",
            ),
            retry_policy=RetryPolicy(
                max_attempts=config.retry.max_attempts,
                base_delay=config.retry.base_delay_seconds,
                jitter_factor=config.retry.jitter_factor,
            ),
            body_guard=StructuredObjectGuard(
                max_bytes=config.security.max_json_bytes,
                max_depth=config.security.max_depth,
            ),
            redactor=redactor,
        )

    @staticmethod
    def _validate_api_key(api_key: Any, prefix: str) -> str:
        if not api_key or not isinstance(api_key, str):
            logger.error("Invalid API key configuration")
            raise SecurityError("API key validation failed")
        if not api_key.startswith(prefix):
            logger.error("Invalid API key format")
            raise SecurityError("API key validation failed")
        return api_key

    @staticmethod
    def _validate_base_url(base_url: Any, env: str) -> str:
        if not base_url or not isinstance(base_url, str):
            raise ValidationError("Base URL is required")

        url = base_url.strip()
        if env == "production" and not url.startswith("https://"):
            raise SecurityError("HTTPS is required in production")

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("Invalid base URL format")

        return url.rstrip("/")

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                raise_for_status=False,
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "ResilientClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # ==================== Verbs ====================

    async def get(self, endpoint: str, rate_limit_id: Optional[str] = None) -> Any:
        return await self.request("GET", endpoint, rate_limit_id=rate_limit_id)

    async def post(
        self, endpoint: str, body: Any = None, rate_limit_id: Optional[str] = None
    ) -> Any:
        return await self.request("POST", endpoint, body, rate_limit_id)

    async def put(
        self, endpoint: str, body: Any = None, rate_limit_id: Optional[str] = None
    ) -> Any:
        return await self.request("PUT", endpoint, body, rate_limit_id)

    async def delete(self, endpoint: str, rate_limit_id: Optional[str] = None) -> Any:
        return await self.request("DELETE", endpoint, rate_limit_id=rate_limit_id)

    async def health_check(self) -> bool:
        """Return True if the downstream health endpoint answers 2xx."""
        try:
            await self.get("/api/health")
        except SecureError as e:
            self._logger.warning(f"Health check failed: {e.safe_message}")
            return False
        return True

    async def request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        rate_limit_id: Optional[str] = None,
    ) -> Any:
        """Validate, throttle and send one logical call.

        Raises:
            ValidationError: Rejected endpoint type, invalid body JSON, or 404.
            SecurityError: Rejected endpoint or body, local or upstream rate
                limit, authentication/permission failure, oversized response.
            ServerError: 5xx after every attempt failed.
            TransportError: Any other failure after every attempt failed.
        """
        path = self.allowlist.validate(endpoint)

        if body is not None:
            body = self.body_guard.check(body, context="request body")

        self.rate_limiter.check(rate_limit_id or DEFAULT_RATE_LIMIT_ID)

        return await self._send_with_retry(method.upper(), path, body)

    async def _send_with_retry(self, method: str, path: str, body: Any) -> Any:
        context = f"{method} {path}"
        attempt = 1
        while True:
            try:
                return await self._send(method, path, body)
            except SecureError as e:
                if not e.retryable:
                    raise
                if not self.retry_policy.should_retry(attempt):
                    self._logger.error(
                        f"Max retries ({self.retry_policy.max_attempts}) exceeded for {context}"
                    )
                    raise

                delay = self.retry_policy.get_delay(attempt)
                self._logger.warning(
                    f"{context} failed (attempt {attempt}/{self.retry_policy.max_attempts}), "
                    f"retrying in {delay:.2f}s",
                    extra={"attempt": attempt, "delay_seconds": round(delay, 3)},
                )
                await (self._sleep or asyncio.sleep)(delay)
                attempt += 1

    def _build_headers(self, request_id: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
            "X-Request-ID": request_id,
            API_KEY_HEADER: self._api_key,
        }

    async def _send(self, method: str, path: str, body: Any) -> Any:
        """Issue a single HTTP request and decode its JSON body.

        Every failure surfaces as a SecureError.
        """
        request_id = generate_request_id()
        url = f"{self.base_url}{path}"
        self._logger.debug(f"API Request: {method} {path} [{request_id}]")

        session = await self._get_session()
        try:
            async with session.request(
                method,
                url,
                json=body,
                headers=self._build_headers(request_id),
                allow_redirects=False,
            ) as response:
                raw = await self._read_response_with_limit(response)
                status = response.status
        except SecureError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._logger.error(
                f"API transport error: {type(e).__name__} [{request_id}] {method} {path}"
            )
            raise TransportError(MSG_REQUEST_FAILED, details={"error_type": type(e).__name__})

        if not 200 <= status < 300:
            self._logger.error(f"API Error: {status} [{request_id}] {method} {path}")
            if raw:
                self._logger.debug(
                    f"Upstream error body [{request_id}]: "
                    f"{raw.decode('utf-8', errors='replace')}"
                )
            raise classify_status(status)

        self._logger.debug(f"API Response: {status} {method} {path} [{request_id}]")
        return self._decode(raw, request_id)

    def _decode(self, raw: bytes, request_id: str) -> Any:
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            self._logger.error(f"Undecodable response body [{request_id}]")
            raise TransportError(MSG_REQUEST_FAILED)

    async def _read_response_with_limit(self, response: aiohttp.ClientResponse) -> bytes:
        """Read the body in chunks, refusing anything past the size ceiling.

        Raises:
            SecurityError: If the body exceeds ``max_response_size``.
        """
        content_length = response.headers.get("Content-Length")
        if content_length and content_length.isdigit():
            if int(content_length) > self.max_response_size:
                self._raise_too_large(int(content_length))

        chunks: list[bytes] = []
        total_size = 0
        async for chunk in response.content.iter_chunked(8192):
            total_size += len(chunk)
            if total_size > self.max_response_size:
                self._raise_too_large(total_size)
            chunks.append(chunk)

        return b"".join(chunks)

    def _raise_too_large(self, size: int) -> None:
        self._logger.error(
            f"Response too large: {size} bytes exceeds limit of {self.max_response_size} bytes"
        )
        raise SecurityError("Response too large.", details={"size": size})
