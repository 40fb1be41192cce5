"""Realtime price push subscription.

Owns:
- one persistent SSE subscription with exponential-backoff reconnects
- a bounded queue between the stream reader and a dedicated merge loop
- listener fan-out for applied updates and connection-state changes

Errors never propagate to consumers; they surface as ``state == ERROR`` and
``last_error``.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import aiohttp

from fuelsync._constants import USER_AGENT
from fuelsync._redact import redact_url
from fuelsync.config import RealtimeConfig
from fuelsync.exceptions import FuelSyncConnectionError, FuelSyncParseError
from fuelsync.models.realtime import ConnectionState, RealtimeUpdate
from fuelsync.realtime.sse import SseDecoder, SseEvent

_logger = logging.getLogger(__name__)

UpdateListener = Callable[[RealtimeUpdate], None]
StateListener = Callable[[ConnectionState, Exception | None], None]


def backoff_delay(attempt: int, initial: float, maximum: float) -> float:
    """``initial * 2**attempt`` capped at ``maximum``."""
    if attempt <= 0:
        return min(initial, maximum)
    # Cap the exponent so large attempt counts cannot overflow.
    return min(maximum, initial * (2 ** min(attempt, 30)))


class RealtimeUpdateChannel:
    """Subscribe to the price push stream and merge updates into the store.

    Parameters
    ----------
    url : str
        SSE endpoint.
    http_session : aiohttp.ClientSession
        Session used for the streaming GET; owned by the caller.
    apply : callable
        Merge entry point, normally :meth:`StationDataStore.apply_update`.
        Returns True when the update changed stored data.
    config : RealtimeConfig
        Backoff and queue settings.
    headers : mapping, optional
        Extra request headers (e.g. authorization).
    sleep : callable, optional
        Awaitable sleep used for backoff; injectable for tests.
    """

    def __init__(
        self,
        url: str,
        http_session: aiohttp.ClientSession,
        apply: Callable[[RealtimeUpdate], bool],
        *,
        config: RealtimeConfig | None = None,
        headers: Mapping[str, str] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._url = url
        self._http = http_session
        self._apply = apply
        self._config = config or RealtimeConfig(url=url)
        self._headers = dict(headers or {})
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._last_error: Exception | None = None
        self._queue: asyncio.Queue[RealtimeUpdate] = asyncio.Queue(maxsize=max(1, self._config.queue_size))
        self._reader: asyncio.Task[None] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._stopping = False
        self._state_was_connected = False
        self._decoder = SseDecoder()
        self._update_listeners: list[UpdateListener] = []
        self._state_listeners: list[StateListener] = []

        self.dropped_count = 0
        self.received_count = 0
        self.reconnect_attempts = 0

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    @property
    def is_running(self) -> bool:
        return self._reader is not None and not self._reader.done()

    def add_update_listener(self, listener: UpdateListener) -> Callable[[], None]:
        """Register a callback for applied updates; returns an unsubscribe function."""
        self._update_listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._update_listeners.remove(listener)

        return _remove

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback for connection-state changes."""
        self._state_listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._state_listeners.remove(listener)

        return _remove

    async def connect(self) -> None:
        """Start the subscription (no-op if already running)."""
        if self.is_running:
            return
        self._stopping = False
        self._consumer = asyncio.create_task(self._consume(), name="fuelsync-realtime-consumer")
        self._reader = asyncio.create_task(self._run(), name="fuelsync-realtime-reader")

    async def disconnect(self) -> None:
        """Cancel the subscription, pending backoff and merge loop; never reconnects."""
        self._stopping = True
        tasks = [task for task in (self._reader, self._consumer) if task is not None]
        self._reader = None
        self._consumer = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._set_state(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Connection loop
    # ------------------------------------------------------------------

    def _set_state(self, state: ConnectionState, error: Exception | None = None) -> None:
        if error is not None:
            self._last_error = error
        if state == self._state:
            return
        _logger.debug("Realtime channel %s -> %s", self._state, state)
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state, error)
            except Exception:
                _logger.debug("Realtime state listener failed", exc_info=True)

    async def _run(self) -> None:
        attempt = 0
        while not self._stopping:
            self._set_state(ConnectionState.CONNECTING)
            try:
                await self._stream_once()
                raise FuelSyncConnectionError("Realtime stream closed by server")
            except (aiohttp.ClientError, TimeoutError, FuelSyncConnectionError) as exc:
                if self._stopping:
                    break
                _logger.debug("Realtime stream error: %s", exc)
                self._set_state(ConnectionState.ERROR, exc)
                if self._state_was_connected:
                    attempt = 0

            delay = backoff_delay(attempt, self._config.initial_backoff, self._config.max_backoff)
            attempt += 1
            self.reconnect_attempts += 1
            _logger.debug("Realtime reconnect in %.1fs (attempt %d)", delay, attempt)
            await self._sleep(delay)

    async def _stream_once(self) -> None:
        self._state_was_connected = False
        headers = {
            "accept": "text/event-stream",
            "cache-control": "no-cache",
            "user-agent": USER_AGENT,
            **self._headers,
        }
        if self._decoder.last_event_id:
            headers["last-event-id"] = self._decoder.last_event_id

        timeout = aiohttp.ClientTimeout(total=None, sock_connect=30, sock_read=None)
        _logger.debug("Opening realtime stream %s", redact_url(self._url))
        async with self._http.get(self._url, headers=headers, timeout=timeout) as resp:
            if resp.status != 200:
                raise FuelSyncConnectionError(f"Realtime stream rejected with HTTP {resp.status}")
            self._set_state(ConnectionState.CONNECTED)
            self._state_was_connected = True
            self._last_error = None
            async for raw_line in resp.content:
                event = self._decoder.feed_line(raw_line.decode("utf-8", errors="replace"))
                if event is not None:
                    self.handle_event(event)

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    def handle_event(self, event: SseEvent) -> None:
        """Parse one SSE event and enqueue its updates; malformed payloads are dropped."""
        try:
            payload: Any = json.loads(event.data)
        except json.JSONDecodeError:
            self._drop("invalid JSON", event.data)
            return

        items = payload if isinstance(payload, list) else [payload]
        for item in items:
            try:
                update = RealtimeUpdate.from_event(item)
            except FuelSyncParseError as exc:
                self._drop(str(exc), item)
                continue
            self.received_count += 1
            self._enqueue(update)

    def _drop(self, reason: str, payload: Any) -> None:
        self.dropped_count += 1
        _logger.debug("Dropping realtime payload (%s): %.200r", reason, payload)

    def _enqueue(self, update: RealtimeUpdate) -> None:
        try:
            self._queue.put_nowait(update)
        except asyncio.QueueFull:
            dropped = self._queue.get_nowait()
            self._queue.task_done()
            self.dropped_count += 1
            _logger.debug("Realtime queue full; dropped oldest update for station=%s", dropped.station_id)
            self._queue.put_nowait(update)

    async def _consume(self) -> None:
        while True:
            update = await self._queue.get()
            try:
                self._deliver(update)
            finally:
                self._queue.task_done()

    def _deliver(self, update: RealtimeUpdate) -> None:
        try:
            applied = self._apply(update)
        except Exception:
            _logger.debug("Realtime merge failed for station=%s", update.station_id, exc_info=True)
            return
        if not applied:
            return
        for listener in list(self._update_listeners):
            try:
                listener(update)
            except Exception:
                _logger.debug("Realtime update listener failed", exc_info=True)

    async def join(self) -> None:
        """Wait until every queued update has been merged."""
        await self._queue.join()
