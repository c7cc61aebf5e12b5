from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from .rate_limiter import SlidingWindowRateLimiter, RateLimitError


DEFAULT_PORTAL_URL = "https://siasky.net"
API_KEY_HEADER = "Skynet-Api-Key"

# Statuses worth another attempt; everything else is the caller's to interpret
RETRYABLE_STATUSES = (429, 500, 502, 503, 504)

_log = logging.getLogger(__name__)


class PortalTransportError(RuntimeError):
    """Portal could not be reached, or kept answering with transient errors."""


class PortalClient:
    """
    Minimal async client for a Skynet-style portal with client-side throttling.

    Notes
    - Network errors, timeouts, 429 and 5xx are retried with exponential backoff.
      Once attempts are exhausted a `PortalTransportError` is raised, chained
      from the last failure.
    - Any other response (2xx, 4xx) is returned as-is; subclasses map status
      codes to their own error types.
    - Pass a shared `httpx.AsyncClient` to pool connections between the blob
      store and the registry. An injected client is never closed here.
    """

    def __init__(
        self,
        portal_url: str = DEFAULT_PORTAL_URL,
        *,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        max_per_second: int = 10,
        max_attempts: int = 4,
        backoff: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
        limiter: Optional[SlidingWindowRateLimiter] = None,
    ) -> None:
        if not portal_url:
            raise ValueError("portal_url is required")
        if max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        self._portal_url = portal_url.rstrip("/")
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._backoff = backoff
        self._headers: Dict[str, str] = {}
        if api_key:
            self._headers[API_KEY_HEADER] = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout)
        self._limiter = limiter or SlidingWindowRateLimiter(
            max_calls=max_per_second, per_seconds=1.0
        )

    @property
    def portal_url(self) -> str:
        return self._portal_url

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def url(self, path: str) -> str:
        return f"{self._portal_url}/{path.lstrip('/')}"

    # --------------- Internal ---------------
    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        files: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        try:
            await self._limiter.acquire(blocking=True)
        except RateLimitError as rl:
            raise PortalTransportError("Local rate limiter prevented request") from rl

        attempt = 0
        backoff = self._backoff
        last_exc: Optional[Exception] = None
        while attempt < self._max_attempts:
            try:
                resp = await self._client.request(
                    method,
                    self.url(path),
                    params=params,
                    json=json,
                    files=files,
                    headers=self._headers,
                )
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
                _log.debug("%s %s failed: %s", method, path, exc)
            else:
                if resp.status_code not in RETRYABLE_STATUSES:
                    return resp
                last_exc = PortalTransportError(
                    f"HTTP {resp.status_code} from portal: {resp.text[:200]}"
                )
                _log.debug("%s %s returned HTTP %s", method, path, resp.status_code)

            attempt += 1
            if attempt < self._max_attempts:
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, 8.0)

        if last_exc is not None:
            raise PortalTransportError(
                f"{method} {path} failed after {self._max_attempts} attempts"
            ) from last_exc
        raise PortalTransportError(f"{method} {path} failed (unknown error)")

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        """Best-effort extraction of the portal's error text."""
        try:
            body = resp.json()
        except ValueError:
            return resp.text[:200]
        if isinstance(body, dict) and isinstance(body.get("message"), str):
            return body["message"]
        return resp.text[:200]


__all__ = [
    "DEFAULT_PORTAL_URL",
    "PortalClient",
    "PortalTransportError",
]
