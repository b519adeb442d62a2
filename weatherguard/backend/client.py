"""
WeatherGuard API Client

Async HTTP client for the authoritative WeatherGuard API with:
- Connection pooling
- Bearer token authentication
- Unwrapping of the {success, data, message, errors} response envelope
- Automatic retry with exponential backoff for idempotent reads
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from weatherguard.exceptions import BackendError


logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    initial_delay: float = 0.5
    max_delay: float = 8.0
    exponential_base: float = 2.0
    retryable_status_codes: tuple = (429, 500, 502, 503, 504)


def unwrap_response(response: httpx.Response) -> Any:
    """
    Extract the payload from an API response.

    The WeatherGuard API wraps payloads as {success, data, message, errors};
    bare JSON bodies are returned unchanged and empty bodies become None.
    """
    if not response.content:
        return None

    content_type = response.headers.get("content-type", "")
    if "application/json" not in content_type:
        return None

    body = response.json()
    if isinstance(body, dict) and "success" in body:
        if not body.get("success"):
            message = body.get("message") or "Request failed"
            errors = body.get("errors") or []
            if errors:
                message = f"{message}: {'; '.join(errors)}"
            raise BackendError(message, status_code=response.status_code, response=body)
        return body.get("data")

    return body


class WeatherGuardApiClient:
    """
    Async client for the WeatherGuard API.

    Usage:
        async with WeatherGuardApiClient("https://api.example.com", api_token) as client:
            project = await client.get("/api/projects/123")
    """

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
        max_connections: int = 20,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize WeatherGuard API client.

        Args:
            base_url: API root, e.g. "https://api.weatherguard.example"
            api_token: Bearer token forwarded on every request (optional)
            retry_config: Retry configuration (optional)
            max_connections: Maximum concurrent connections
            timeout: Request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.retry_config = retry_config or RetryConfig()

        headers = {"Content-Type": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max(max_connections // 2, 1),
            ),
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

        self._closed = False

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request_with_retry("GET", path, params=params)

    async def post(self, path: str, data: Any) -> Any:
        return await self._make_request("POST", path, json=data)

    async def put(self, path: str, data: Any) -> Any:
        return await self._make_request("PUT", path, json=data)

    async def delete(self, path: str) -> Any:
        return await self._make_request("DELETE", path)

    async def _make_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        """Make a single HTTP request."""
        if self._closed:
            raise BackendError("Client is closed")

        logger.debug(f"{method} {path}")

        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            raise BackendError(f"{method} {path} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise BackendError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            body = None
            try:
                body = response.json()
            except ValueError:
                pass
            message = body.get("message") if isinstance(body, dict) else None
            raise BackendError(
                f"HTTP {response.status_code}: {message or response.text or 'no body'}",
                status_code=response.status_code,
                response=body,
            )

        return unwrap_response(response)

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make request with automatic retry on transient failure."""
        last_exception = None
        delay = self.retry_config.initial_delay

        for attempt in range(self.retry_config.max_retries + 1):
            try:
                return await self._make_request(method, path, params=params)

            except BackendError as e:
                last_exception = e

                # Only transport failures and retryable statuses are worth another try
                if (
                    e.status_code is not None
                    and e.status_code not in self.retry_config.retryable_status_codes
                ):
                    raise

                if attempt < self.retry_config.max_retries:
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.retry_config.max_retries + 1}): {e}. "
                        f"Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                    delay = min(
                        delay * self.retry_config.exponential_base,
                        self.retry_config.max_delay
                    )

        raise last_exception

    async def close(self):
        """Close the HTTP client."""
        if not self._closed:
            await self._client.aclose()
            self._closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
