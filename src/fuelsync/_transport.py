"""HTTP transport with retry, backoff and token handling."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

import aiohttp

from fuelsync._constants import USER_AGENT
from fuelsync._redact import redact_for_log, redact_url
from fuelsync.config import FuelSyncConfig
from fuelsync.exceptions import (
    FuelSyncApiError,
    FuelSyncRateLimitError,
    FuelSyncTimeoutError,
    FuelSyncTransportError,
)

_logger = logging.getLogger(__name__)

_RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 500, 502, 503, 504})


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any: ...


def _retry_after_seconds(headers: Mapping[str, str], default: float) -> float:
    value = headers.get("Retry-After")
    if value is None:
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        return default


class HttpTransport:
    """aiohttp-backed transport for the tabular backend.

    Each request is retried up to ``config.retry_attempts`` times. Network
    errors, timeouts and retryable statuses back off exponentially
    (``retry_backoff * 2**attempt``); HTTP 429 honours ``Retry-After``.
    """

    def __init__(
        self,
        config: FuelSyncConfig,
        http_session: aiohttp.ClientSession,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._http = http_session
        self._sleep = sleep
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if self._config.api_token:
            headers["authorization"] = f"Token {self._config.api_token}"
        return headers

    def _params(self, params: Mapping[str, Any] | None) -> dict[str, str]:
        merged = {key: str(value) for key, value in (params or {}).items()}
        if not self._config.api_token and self._config.public_token:
            merged.setdefault("public_token", self._config.public_token)
        return merged

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        """GET *url* and decode the JSON body, retrying transient failures."""
        attempts = self._config.retry_attempts
        query = self._params(params)
        last_error: Exception | None = None

        for attempt in range(attempts):
            delay = self._config.retry_backoff * (2**attempt)
            try:
                return await self._get_once(url, query)
            except FuelSyncRateLimitError as exc:
                last_error = exc
                if exc.retry_after is not None:
                    delay = exc.retry_after
            except FuelSyncApiError as exc:
                if exc.status_code not in _RETRYABLE_STATUSES:
                    raise
                last_error = exc
            except FuelSyncTransportError as exc:
                last_error = exc

            if attempt < attempts - 1:
                _logger.debug(
                    "GET %s failed (attempt %d/%d): %s; retrying in %.1fs",
                    redact_url(url),
                    attempt + 1,
                    attempts,
                    last_error,
                    delay,
                )
                await self._sleep(delay)

        assert last_error is not None  # noqa: S101
        _logger.debug("GET %s failed after %d attempts", redact_url(url), attempts)
        raise last_error

    async def _get_once(self, url: str, query: Mapping[str, str]) -> Any:
        _logger.debug("GET %s params=%s", redact_url(url), redact_for_log(dict(query)))
        try:
            async with self._http.get(url, params=query, headers=self._headers(), timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status == 429:
                    raise FuelSyncRateLimitError(
                        f"HTTP 429 from {redact_url(url)}",
                        url=redact_url(url),
                        retry_after=_retry_after_seconds(resp.headers, self._config.retry_backoff),
                    )
                if resp.status < 200 or resp.status >= 300:
                    raise FuelSyncApiError(
                        f"HTTP {resp.status} from {redact_url(url)}: {text[:200]}",
                        status_code=resp.status,
                        url=redact_url(url),
                    )
        except FuelSyncApiError:
            raise
        except TimeoutError as exc:
            raise FuelSyncTimeoutError(
                f"Request to {redact_url(url)} timed out after {self._config.request_timeout}s",
                url=redact_url(url),
            ) from exc
        except aiohttp.ClientError as exc:
            raise FuelSyncTransportError(
                f"Request to {redact_url(url)} failed: {exc}",
                url=redact_url(url),
            ) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise FuelSyncApiError(
                f"Invalid JSON from {redact_url(url)}: {text[:200]}",
                url=redact_url(url),
            ) from exc
