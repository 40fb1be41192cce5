"""Data models for fuel station data."""

from fuelsync.models.realtime import ConnectionState, RealtimeUpdate
from fuelsync.models.snapshot import (
    CacheSnapshot,
    DataSource,
    FetchError,
    FetchErrorKind,
    FetchResult,
    StoreStatus,
)
from fuelsync.models.station import Station, parse_fuel_prices

__all__ = [
    "CacheSnapshot",
    "ConnectionState",
    "DataSource",
    "FetchError",
    "FetchErrorKind",
    "FetchResult",
    "RealtimeUpdate",
    "Station",
    "StoreStatus",
    "parse_fuel_prices",
]
