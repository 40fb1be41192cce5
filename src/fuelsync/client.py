"""High-level async client for fuel station data."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import aiohttp

from fuelsync import spatial
from fuelsync._transport import HttpTransport, Transport
from fuelsync.config import FuelSyncConfig
from fuelsync.exceptions import FuelSyncConfigError, FuelSyncError
from fuelsync.ingestion.pagination import PaginationFetcher
from fuelsync.ingestion.prices import StationPriceFetcher
from fuelsync.models.realtime import ConnectionState, RealtimeUpdate
from fuelsync.models.snapshot import DataSource, FetchResult, StoreStatus
from fuelsync.models.station import Station
from fuelsync.realtime.channel import RealtimeUpdateChannel, StateListener, UpdateListener
from fuelsync.regions import RegionClassifier
from fuelsync.state.store import StationDataStore

_logger = logging.getLogger(__name__)


class FuelSyncClient:
    """Async client tying the fetcher, store, classifier and realtime channel together.

    Usage::

        async with FuelSyncClient(FuelSyncConfig.from_env()) as client:
            result = await client.fetch_stations()
            counts = client.region_counts()
    """

    def __init__(
        self,
        config: FuelSyncConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        store: StationDataStore | None = None,
        classifier: RegionClassifier | None = None,
        fallback: Sequence[Station] | None = None,
    ) -> None:
        self._config = config or FuelSyncConfig()
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._store = store
        self._classifier = classifier or RegionClassifier()
        self._fallback = fallback
        self._channel: RealtimeUpdateChannel | None = None
        self._update_listeners: list[UpdateListener] = []
        self._state_listeners: list[StateListener] = []

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FuelSyncClient:
        if self._store is None:
            if self._transport is None:
                if self._http_session is None:
                    self._http_session = aiohttp.ClientSession()
                self._transport = HttpTransport(self._config, self._http_session)
            stations_fetcher = PaginationFetcher(self._transport, self._config)
            fetcher: PaginationFetcher | StationPriceFetcher = stations_fetcher
            if self._config.prices_table_id is not None:
                fetcher = StationPriceFetcher(
                    stations_fetcher,
                    PaginationFetcher(self._transport, self._config, table_id=self._config.prices_table_id),
                )
            self._store = StationDataStore(
                fetcher,
                ttl=self._config.cache_ttl,
                fallback_ttl=self._config.fallback_ttl,
                fallback=self._fallback,
            )
        if self._config.realtime.enabled and self._config.realtime.url:
            await self.start_realtime()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Tear down the realtime channel, the store and an owned HTTP session."""
        await self.stop_realtime()
        if self._store is not None:
            await self._store.aclose()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    def _require_store(self) -> StationDataStore:
        if self._store is None:
            raise FuelSyncError("FuelSyncClient must be used as an async context manager")
        return self._store

    @property
    def store(self) -> StationDataStore:
        return self._require_store()

    @property
    def classifier(self) -> RegionClassifier:
        return self._classifier

    # ------------------------------------------------------------------
    # Station data
    # ------------------------------------------------------------------

    async def fetch_stations(self) -> FetchResult:
        return await self._require_store().fetch_stations()

    def get_active_source(self) -> DataSource | None:
        return self._require_store().get_active_source()

    def get_status(self) -> StoreStatus:
        return self._require_store().get_status()

    def invalidate(self) -> None:
        self._require_store().invalidate()

    def get_station(self, station_id: str) -> Station | None:
        return self._require_store().get_station(station_id)

    @property
    def stations(self) -> list[Station]:
        return self._require_store().stations

    def spatial_points(self) -> list[spatial.SpatialPoint]:
        """Map-ready projection of the current stations."""
        return spatial.project(self.stations)

    def classify(self, station: Station) -> str:
        return self._classifier.classify(station)

    def region_counts(self, stations: Sequence[Station] | None = None) -> dict[str, int]:
        """Per-region counts of *stations* (defaults to the current dataset)."""
        return self._classifier.region_counts(self.stations if stations is None else stations)

    def group_by_region(self, stations: Sequence[Station] | None = None) -> dict[str, list[Station]]:
        return self._classifier.group(self.stations if stations is None else stations)

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    @property
    def realtime_state(self) -> ConnectionState:
        if self._channel is None:
            return ConnectionState.DISCONNECTED
        return self._channel.state

    @property
    def realtime(self) -> RealtimeUpdateChannel | None:
        return self._channel

    def add_update_listener(self, listener: UpdateListener) -> None:
        self._update_listeners.append(listener)
        if self._channel is not None:
            self._channel.add_update_listener(listener)

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)
        if self._channel is not None:
            self._channel.add_state_listener(listener)

    def apply_update(self, update: RealtimeUpdate) -> bool:
        """Merge an update obtained outside the built-in channel."""
        return self._require_store().apply_update(update)

    async def start_realtime(self) -> RealtimeUpdateChannel:
        """Open the push subscription if it is not running yet."""
        store = self._require_store()
        if self._channel is not None:
            await self._channel.connect()
            return self._channel

        url = self._config.realtime.url
        if not url:
            raise FuelSyncConfigError("Realtime URL is not configured")
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
            self._external_session = False

        headers: dict[str, str] = {}
        if self._config.api_token:
            headers["authorization"] = f"Token {self._config.api_token}"

        channel = RealtimeUpdateChannel(
            url,
            self._http_session,
            store.apply_update,
            config=self._config.realtime,
            headers=headers,
        )
        for listener in self._update_listeners:
            channel.add_update_listener(listener)
        for state_listener in self._state_listeners:
            channel.add_state_listener(state_listener)
        channel.add_state_listener(self._log_state)
        self._channel = channel
        _logger.debug("Starting realtime channel")
        await channel.connect()
        return channel

    async def stop_realtime(self) -> None:
        channel, self._channel = self._channel, None
        if channel is not None:
            await channel.disconnect()

    @staticmethod
    def _log_state(state: ConnectionState, error: Exception | None) -> None:
        _logger.info("Realtime channel is %s%s", state, f" ({error})" if error else "")
