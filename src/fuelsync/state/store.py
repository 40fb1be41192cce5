"""Station data store.

This is the only component allowed to mutate station records: full fetch
results replace the snapshot, and realtime updates are merged through
:meth:`StationDataStore.apply_update`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Protocol

from fuelsync.exceptions import FuelSyncApiError, FuelSyncError, FuelSyncParseError, FuelSyncTransportError
from fuelsync.fallback import load_fallback_stations
from fuelsync.ingestion.pagination import PageResult
from fuelsync.ingestion.stations import normalize_rows
from fuelsync.models.realtime import RealtimeUpdate
from fuelsync.models.snapshot import (
    CacheSnapshot,
    DataSource,
    FetchError,
    FetchErrorKind,
    FetchResult,
    StoreStatus,
)
from fuelsync.models.station import Station
from fuelsync.state.policy import realtime_wins_over_fetch, should_accept_update

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _latest(current: datetime | None, candidate: datetime | None) -> datetime | None:
    if current is None:
        return candidate
    if candidate is None or candidate <= current:
        return current
    return candidate


class PageFetcher(Protocol):
    async def fetch_all(self) -> PageResult: ...


class StationDataStore:
    """Owns the station cache, the fallback dataset and fetch orchestration.

    Lifecycle: construct, call :meth:`fetch_stations` as often as needed, then
    :meth:`close` (or ``await aclose()``). After closing, still-resolving
    fetches are ignored via a generation guard and further calls return the
    last known data without touching the network.

    Concurrent :meth:`fetch_stations` calls while a fetch is in flight share
    one task. Realtime updates arriving during a fetch are applied to the
    current snapshot immediately, queued, and re-applied on top of the fetch
    result so a full refresh never overwrites a newer realtime value.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        *,
        ttl: float = 5 * 60,
        fallback_ttl: float = 30.0,
        fallback: Sequence[Station] | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._fetcher = fetcher
        self._ttl = ttl
        self._fallback_ttl = fallback_ttl
        self._fallback: tuple[Station, ...] = tuple(fallback) if fallback is not None else load_fallback_stations()
        if not self._fallback:
            raise ValueError("fallback dataset must be non-empty")
        self._clock = clock
        self._wall_clock = wall_clock

        self._snapshot: CacheSnapshot | None = None
        self._index: dict[str, int] = {}
        # station id -> fuel type -> timestamp of the value currently stored
        self._field_ts: dict[str, dict[str, float]] = {}
        self._pending: list[RealtimeUpdate] = []
        self._inflight: asyncio.Task[FetchResult] | None = None
        self._invalidated = False
        # bumped by every invalidate(); a fetch only clears the flag it observed
        self._invalidation_seq = 0
        self._generation = 0
        self._closed = False
        self._last_error: FetchError | None = None
        self._fetch_count = 0

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def stations(self) -> list[Station]:
        if self._snapshot is None:
            return []
        return list(self._snapshot.stations)

    @property
    def fetch_count(self) -> int:
        """Number of backend pagination runs started so far."""
        return self._fetch_count

    @property
    def is_fetching(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def closed(self) -> bool:
        return self._closed

    def get_station(self, station_id: str) -> Station | None:
        if self._snapshot is None:
            return None
        position = self._index.get(str(station_id))
        if position is None:
            return None
        return self._snapshot.stations[position]

    def get_active_source(self) -> DataSource | None:
        return self._snapshot.source if self._snapshot is not None else None

    def get_status(self) -> StoreStatus:
        snapshot = self._snapshot
        return StoreStatus(
            cache_valid=self._cache_valid(),
            last_fetch=snapshot.fetched_at_utc if snapshot is not None else None,
            source=snapshot.source if snapshot is not None else None,
            station_count=len(snapshot.stations) if snapshot is not None else 0,
            last_error=self._last_error,
        )

    def invalidate(self) -> None:
        """Force the next :meth:`fetch_stations` to bypass the cache."""
        _logger.debug("Station cache invalidated")
        self._invalidated = True
        self._invalidation_seq += 1

    def _cache_valid(self) -> bool:
        snapshot = self._snapshot
        if snapshot is None or self._invalidated:
            return False
        return not snapshot.is_stale(self._clock())

    # ------------------------------------------------------------------
    # Fetch orchestration
    # ------------------------------------------------------------------

    async def fetch_stations(self) -> FetchResult:
        """Return stations from cache, backend, or the fallback dataset.

        Never raises: failures resolve to fallback (or partial) data with an
        error descriptor attached.
        """
        if self._closed:
            return self._closed_result()

        if self._cache_valid():
            assert self._snapshot is not None  # noqa: S101
            _logger.debug("Returning cached station data (%s)", self._snapshot.source)
            return FetchResult(
                stations=list(self._snapshot.stations),
                source=self._snapshot.source,
                error=self._last_error if self._snapshot.source == DataSource.FALLBACK else None,
                from_cache=True,
            )

        task = self._inflight
        if task is None or task.done():
            task = asyncio.create_task(self._refresh(self._generation))
            self._inflight = task
            task.add_done_callback(self._clear_inflight)
        else:
            _logger.debug("Station fetch already in progress, joining it")

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and (current is None or not current.cancelling()):
                return self._closed_result()
            raise

    def _clear_inflight(self, task: asyncio.Task[FetchResult]) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _refresh(self, generation: int) -> FetchResult:
        started_at = self._wall_clock().timestamp()
        invalidation_seq = self._invalidation_seq
        self._fetch_count += 1
        _logger.debug("Fetching stations from backend (generation %d)", generation)

        try:
            page_result = await self._fetcher.fetch_all()
        except FuelSyncError as exc:
            page_result = PageResult(error=exc)
        except Exception as exc:  # noqa: BLE001
            _logger.debug("Unexpected error from pagination fetcher", exc_info=True)
            page_result = PageResult(error=FuelSyncTransportError(f"Unexpected fetch failure: {exc!r}"))

        if generation != self._generation or self._closed:
            _logger.debug("Ignoring station fetch result from generation %d", generation)
            return self._closed_result()

        stations, parse_errors = normalize_rows(page_result.rows)

        error: FuelSyncError | None = page_result.error
        if error is None and not stations:
            if parse_errors:
                error = FuelSyncParseError(f"All {len(parse_errors)} station rows failed to parse")
            else:
                error = FuelSyncApiError("Backend returned no station rows")

        if not stations:
            assert error is not None  # noqa: S101
            return self._install_fallback(error, started_at, invalidation_seq)

        partial = page_result.partial
        fetch_error = FetchError.from_exception(page_result.error) if page_result.error is not None else None
        if partial and fetch_error is None:
            fetch_error = FetchError(
                kind=FetchErrorKind.API,
                message=f"Pagination stopped after {page_result.pages} pages without a terminal page",
            )
        self._install(stations, DataSource.LIVE, self._ttl, started_at, partial=partial)
        self._last_error = fetch_error
        self._settle_invalidation(invalidation_seq)

        if partial:
            _logger.warning("Serving %d stations from a partial fetch: %s", len(stations), fetch_error)
        else:
            _logger.info("Loaded %d stations from backend", len(stations))

        return FetchResult(
            stations=list(self._snapshot.stations) if self._snapshot is not None else stations,
            source=DataSource.LIVE,
            error=fetch_error,
            partial=partial,
        )

    def _install_fallback(self, error: FuelSyncError, started_at: float, invalidation_seq: int) -> FetchResult:
        fetch_error = FetchError.from_exception(error)
        _logger.warning("Station fetch failed (%s), serving fallback dataset: %s", fetch_error.kind, error)
        self._install(list(self._fallback), DataSource.FALLBACK, self._fallback_ttl, started_at)
        self._last_error = fetch_error
        self._settle_invalidation(invalidation_seq)
        return FetchResult(
            stations=self.stations,
            source=DataSource.FALLBACK,
            error=fetch_error,
        )

    def _install(
        self,
        stations: Sequence[Station],
        source: DataSource,
        ttl: float,
        started_at: float,
        *,
        partial: bool = False,
    ) -> None:
        """Replace the snapshot and re-apply updates newer than the fetch.

        Fetched fields are stamped with ``started_at``. Realtime values already
        in the store with a later timestamp are carried over, as are updates
        queued while the fetch was in flight.
        """
        carried = self._realtime_fields_newer_than(started_at)
        installed: list[Station] = []
        field_ts: dict[str, dict[str, float]] = {}
        for station in stations:
            station_ts = dict.fromkeys(station.fuel_prices, started_at)
            kept = carried.get(station.id)
            if kept is not None:
                kept_prices, kept_ts, kept_updated = kept
                station = station.model_copy(
                    update={
                        "fuel_prices": {**station.fuel_prices, **kept_prices},
                        "last_updated": _latest(station.last_updated, kept_updated),
                    }
                )
                station_ts.update(kept_ts)
            installed.append(station)
            field_ts[station.id] = station_ts
        if carried:
            _logger.debug("Kept realtime prices newer than the fetch for %d stations", len(carried))

        self._snapshot = CacheSnapshot(
            stations=tuple(installed),
            fetched_at=self._clock(),
            fetched_at_utc=self._wall_clock(),
            source=source,
            ttl=ttl,
            partial=partial,
        )
        self._index = {station.id: position for position, station in enumerate(installed)}
        self._field_ts = field_ts

        pending, self._pending = self._pending, []
        replayed = 0
        for update in pending:
            if not realtime_wins_over_fetch(update_ts=update.timestamp, fetch_started_at=started_at):
                continue
            if self._merge(update):
                replayed += 1
        if pending:
            _logger.debug("Re-applied %d of %d realtime updates queued during fetch", replayed, len(pending))

    def _realtime_fields_newer_than(
        self, started_at: float
    ) -> dict[str, tuple[dict[str, float], dict[str, float], datetime | None]]:
        """Prices in the current snapshot whose timestamp is later than *started_at*.

        Returns station id -> (prices, field timestamps, last_updated).
        """
        carried: dict[str, tuple[dict[str, float], dict[str, float], datetime | None]] = {}
        snapshot = self._snapshot
        if snapshot is None:
            return carried
        for station_id, station_ts in self._field_ts.items():
            position = self._index.get(station_id)
            if position is None:
                continue
            station = snapshot.stations[position]
            prices: dict[str, float] = {}
            timestamps: dict[str, float] = {}
            for fuel_type, ts in station_ts.items():
                if fuel_type not in station.fuel_prices:
                    continue
                if realtime_wins_over_fetch(update_ts=ts, fetch_started_at=started_at):
                    prices[fuel_type] = station.fuel_prices[fuel_type]
                    timestamps[fuel_type] = ts
            if prices:
                carried[station_id] = (prices, timestamps, station.last_updated)
        return carried

    def _settle_invalidation(self, invalidation_seq: int) -> None:
        # An invalidate() issued after this fetch started still applies.
        if self._invalidation_seq == invalidation_seq:
            self._invalidated = False

    def _closed_result(self) -> FetchResult:
        snapshot = self._snapshot
        error = FetchError(kind=FetchErrorKind.CANCELLED, message="station store closed")
        if snapshot is not None:
            return FetchResult(stations=list(snapshot.stations), source=snapshot.source, error=error)
        return FetchResult(stations=list(self._fallback), source=DataSource.FALLBACK, error=error)

    # ------------------------------------------------------------------
    # Realtime merge
    # ------------------------------------------------------------------

    def apply_update(self, update: RealtimeUpdate) -> bool:
        """Merge a realtime price delta; returns True if any field changed.

        While a full fetch is in flight the update is also queued so it can
        be re-applied on top of the fetch result.
        """
        if self._closed:
            return False
        if self.is_fetching:
            self._pending.append(update)
        return self._merge(update)

    def _merge(self, update: RealtimeUpdate) -> bool:
        snapshot = self._snapshot
        if snapshot is None:
            return False
        position = self._index.get(update.station_id)
        if position is None:
            _logger.debug("Realtime update for unknown station id=%s ignored", update.station_id)
            return False

        try:
            update_dt = datetime.fromtimestamp(update.timestamp, tz=UTC)
        except (OverflowError, OSError, ValueError):
            _logger.debug("Realtime update with unusable timestamp ignored station=%s", update.station_id)
            return False

        station = snapshot.stations[position]
        field_ts = self._field_ts.setdefault(station.id, {})
        prices = dict(station.fuel_prices)
        changed = False
        for fuel_type, price in update.fuel_prices.items():
            if not should_accept_update(cached_ts=field_ts.get(fuel_type), incoming_ts=update.timestamp):
                _logger.debug(
                    "Stale realtime update ignored station=%s fuel=%s ts=%s",
                    station.id,
                    fuel_type,
                    update.timestamp,
                )
                continue
            prices[fuel_type] = price
            field_ts[fuel_type] = update.timestamp
            changed = True

        if not changed:
            return False

        merged = station.model_copy(
            update={"fuel_prices": prices, "last_updated": _latest(station.last_updated, update_dt)}
        )

        stations = list(snapshot.stations)
        stations[position] = merged
        self._snapshot = snapshot.model_copy(update={"stations": tuple(stations)})
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop accepting work and cancel the in-flight fetch.

        Waiters of that fetch resolve to the last known data; a result that
        still arrives is ignored.
        """
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        self._pending.clear()
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        _logger.debug("Station store closed")

    async def aclose(self) -> None:
        """Close and wait for the cancelled in-flight fetch to settle."""
        task = self._inflight
        self.close()
        if task is None or task.done():
            return
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
