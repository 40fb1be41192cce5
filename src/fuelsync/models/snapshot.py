"""Cache snapshot and fetch result models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from fuelsync.exceptions import (
    FuelSyncApiError,
    FuelSyncParseError,
    FuelSyncTimeoutError,
)
from fuelsync.models.station import Station


class DataSource(StrEnum):
    LIVE = "live"
    FALLBACK = "fallback"


class FetchErrorKind(StrEnum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    PARSE = "parse"
    API = "api"
    CANCELLED = "cancelled"


class FetchError(BaseModel):
    """Error descriptor attached to a fetch result instead of raising."""

    model_config = ConfigDict(frozen=True)

    kind: FetchErrorKind
    message: str
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_exception(cls, exc: BaseException) -> FetchError:
        if isinstance(exc, FuelSyncTimeoutError):
            kind = FetchErrorKind.TIMEOUT
        elif isinstance(exc, FuelSyncParseError):
            kind = FetchErrorKind.PARSE
        elif isinstance(exc, FuelSyncApiError):
            kind = FetchErrorKind.API
        else:
            # FuelSyncTransportError and anything unexpected from the transport.
            kind = FetchErrorKind.NETWORK
        return cls(kind=kind, message=str(exc) or type(exc).__name__)


class CacheSnapshot(BaseModel):
    """The authoritative station list held by the store.

    ``fetched_at`` is a monotonic timestamp used for TTL checks;
    ``fetched_at_utc`` is the wall-clock equivalent reported to consumers.
    """

    model_config = ConfigDict(frozen=True)

    stations: tuple[Station, ...]
    fetched_at: float
    fetched_at_utc: datetime
    source: DataSource
    ttl: float
    partial: bool = False

    def is_stale(self, now: float) -> bool:
        if self.partial:
            return True
        return (now - self.fetched_at) >= self.ttl


class FetchResult(BaseModel):
    """What :meth:`StationDataStore.fetch_stations` resolves to."""

    model_config = ConfigDict(frozen=True)

    stations: list[Station]
    source: DataSource
    error: FetchError | None = None
    partial: bool = False
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class StoreStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    cache_valid: bool
    last_fetch: datetime | None
    source: DataSource | None
    station_count: int = 0
    last_error: FetchError | None = None
