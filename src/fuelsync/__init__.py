"""fuelsync - Async data sync layer for fuel station price data."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fuelsync")
except PackageNotFoundError:
    __version__ = "0+local"
from fuelsync.client import FuelSyncClient
from fuelsync.config import FuelSyncConfig, RealtimeConfig
from fuelsync.exceptions import (
    FuelSyncApiError,
    FuelSyncConfigError,
    FuelSyncConnectionError,
    FuelSyncError,
    FuelSyncParseError,
    FuelSyncRateLimitError,
    FuelSyncTimeoutError,
    FuelSyncTransportError,
)
from fuelsync.ingestion.pagination import PaginationFetcher
from fuelsync.ingestion.prices import StationPriceFetcher
from fuelsync.models import (
    CacheSnapshot,
    ConnectionState,
    DataSource,
    FetchError,
    FetchErrorKind,
    FetchResult,
    RealtimeUpdate,
    Station,
    StoreStatus,
)
from fuelsync.realtime.channel import RealtimeUpdateChannel
from fuelsync.regions import Region, RegionClassifier
from fuelsync.spatial import Bounds, SpatialPoint, bounds, project
from fuelsync.state.store import StationDataStore

__all__ = [
    "__version__",
    "Bounds",
    "CacheSnapshot",
    "ConnectionState",
    "DataSource",
    "FetchError",
    "FetchErrorKind",
    "FetchResult",
    "FuelSyncApiError",
    "FuelSyncClient",
    "FuelSyncConfig",
    "FuelSyncConfigError",
    "FuelSyncConnectionError",
    "FuelSyncError",
    "FuelSyncParseError",
    "FuelSyncRateLimitError",
    "FuelSyncTimeoutError",
    "FuelSyncTransportError",
    "PaginationFetcher",
    "RealtimeConfig",
    "RealtimeUpdate",
    "RealtimeUpdateChannel",
    "Region",
    "RegionClassifier",
    "SpatialPoint",
    "Station",
    "StationDataStore",
    "StationPriceFetcher",
    "StoreStatus",
    "bounds",
    "project",
]
