"""Client configuration for fuelsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from fuelsync._constants import (
    BASE_URL,
    DEFAULT_MAX_PAGES,
    DEFAULT_PAGE_SIZE,
    DEFAULT_PRICES_TABLE_ID,
    DEFAULT_STATIONS_TABLE_ID,
)
from fuelsync.exceptions import FuelSyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class RealtimeConfig:
    """Settings for the realtime price push subscription.

    Parameters
    ----------
    url : str or None
        Server-sent-events endpoint. ``None`` disables the channel.
    enabled : bool
        Start the channel automatically when the client opens.
    initial_backoff : float
        First reconnect delay in seconds.
    max_backoff : float
        Upper bound for the exponential reconnect delay.
    queue_size : int
        Capacity of the bounded update queue between the stream reader and
        the merge loop.
    """

    url: str | None = None
    enabled: bool = False
    initial_backoff: float = 1.0
    max_backoff: float = 60.0
    queue_size: int = 256


@dataclasses.dataclass(frozen=True)
class FuelSyncConfig:
    """Client configuration.

    Parameters
    ----------
    api_url : str
        Base URL of the tabular backend REST API.
    api_token : str or None
        Database token sent as ``Authorization: Token <token>``.
    public_token : str or None
        Public grid-view token; used as a query parameter when no
        ``api_token`` is configured.
    stations_table_id : int
        Table holding the station rows.
    prices_table_id : int or None
        Table holding one row per (station, fuel type) price, joined onto
        stations by row id. ``None`` reads prices from the station rows only.
    page_size : int
        Rows requested per page.
    max_pages : int
        Hard ceiling on pages fetched in one pagination run.
    cache_ttl : float
        Seconds a live snapshot is considered fresh.
    fallback_ttl : float
        Seconds a fallback snapshot is served before the backend is retried.
    request_timeout : float
        Total timeout for a single page request, in seconds.
    retry_attempts : int
        Attempts per page request before the error is surfaced.
    retry_backoff : float
        Base delay for exponential backoff between retries.
    realtime : RealtimeConfig
        Push channel settings.
    """

    api_url: str = BASE_URL
    api_token: str | None = None
    public_token: str | None = None
    stations_table_id: int = DEFAULT_STATIONS_TABLE_ID
    prices_table_id: int | None = DEFAULT_PRICES_TABLE_ID
    page_size: int = DEFAULT_PAGE_SIZE
    max_pages: int = DEFAULT_MAX_PAGES
    cache_ttl: float = 5 * 60
    fallback_ttl: float = 30.0
    request_timeout: float = 15.0
    retry_attempts: int = 3
    retry_backoff: float = 1.0
    realtime: RealtimeConfig = dataclasses.field(default_factory=RealtimeConfig)

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            raise FuelSyncConfigError(f"page_size must be positive, got {self.page_size}")
        if self.max_pages <= 0:
            raise FuelSyncConfigError(f"max_pages must be positive, got {self.max_pages}")
        if self.retry_attempts <= 0:
            raise FuelSyncConfigError(f"retry_attempts must be positive, got {self.retry_attempts}")
        if self.cache_ttl < 0:
            raise FuelSyncConfigError(f"cache_ttl must not be negative, got {self.cache_ttl}")
        if self.fallback_ttl < 0:
            raise FuelSyncConfigError(f"fallback_ttl must not be negative, got {self.fallback_ttl}")
        if not self.api_url:
            raise FuelSyncConfigError("api_url must be set")

    def table_rows_url(self, table_id: int) -> str:
        return f"{self.api_url.rstrip('/')}/database/rows/table/{table_id}/"

    @property
    def rows_url(self) -> str:
        return self.table_rows_url(self.stations_table_id)

    @property
    def prices_rows_url(self) -> str | None:
        if self.prices_table_id is None:
            return None
        return self.table_rows_url(self.prices_table_id)

    @classmethod
    def from_env(cls, **overrides: Any) -> FuelSyncConfig:
        """Create configuration from environment variables.

        Reads ``FUELSYNC_*`` variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        FuelSyncConfig
            Populated configuration.
        """
        env = os.environ

        realtime_kwargs: dict[str, Any] = {}
        url = env.get("FUELSYNC_REALTIME_URL")
        if url:
            realtime_kwargs["url"] = url
        realtime_kwargs["enabled"] = _env_bool(env.get("FUELSYNC_REALTIME_ENABLED"), bool(url))
        backoff_env = env.get("FUELSYNC_REALTIME_MAX_BACKOFF")
        if backoff_env is not None:
            realtime_kwargs["max_backoff"] = float(backoff_env)

        realtime_overrides = overrides.pop("realtime", None)
        if isinstance(realtime_overrides, dict):
            realtime_kwargs.update(realtime_overrides)
            realtime = RealtimeConfig(**realtime_kwargs)
        elif isinstance(realtime_overrides, RealtimeConfig):
            realtime = realtime_overrides
        else:
            realtime = RealtimeConfig(**realtime_kwargs)

        _ENV_STR_MAP = {
            "FUELSYNC_API_URL": "api_url",
            "FUELSYNC_API_TOKEN": "api_token",
            "FUELSYNC_PUBLIC_TOKEN": "public_token",
        }
        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "FUELSYNC_STATIONS_TABLE_ID": ("stations_table_id", int),
            "FUELSYNC_PAGE_SIZE": ("page_size", int),
            "FUELSYNC_MAX_PAGES": ("max_pages", int),
            "FUELSYNC_CACHE_TTL": ("cache_ttl", float),
            "FUELSYNC_FALLBACK_TTL": ("fallback_ttl", float),
            "FUELSYNC_REQUEST_TIMEOUT": ("request_timeout", float),
            "FUELSYNC_RETRY_ATTEMPTS": ("retry_attempts", int),
            "FUELSYNC_RETRY_BACKOFF": ("retry_backoff", float),
        }

        config_kwargs: dict[str, Any] = {"realtime": realtime}
        prices_env = env.get("FUELSYNC_PRICES_TABLE_ID")
        if prices_env is not None and "prices_table_id" not in overrides:
            if prices_env.strip().lower() in {"", "none", "off"}:
                config_kwargs["prices_table_id"] = None
            else:
                try:
                    config_kwargs["prices_table_id"] = int(prices_env)
                except ValueError as exc:
                    raise FuelSyncConfigError(f"FUELSYNC_PRICES_TABLE_ID must be numeric, got {prices_env!r}") from exc
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val:
                config_kwargs[field_name] = val
        for env_key, (field_name, caster) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = caster(val)
            except ValueError as exc:
                raise FuelSyncConfigError(f"{env_key} must be numeric, got {val!r}") from exc

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
