from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

import aiohttp
import pytest

from fuelsync.config import RealtimeConfig
from fuelsync.models.realtime import ConnectionState, RealtimeUpdate
from fuelsync.realtime.channel import RealtimeUpdateChannel, backoff_delay
from fuelsync.realtime.sse import SseDecoder, SseEvent

_URL = "https://push.example.com/prices"


async def _iter_lines(lines: list[bytes]) -> AsyncIterator[bytes]:
    for line in lines:
        yield line


class _FakeResponse:
    def __init__(self, lines: list[bytes], status: int = 200) -> None:
        self.status = status
        self.content = _iter_lines(lines)

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


class _FakeSession:
    """Hands out scripted responses; connection errors once the script runs out."""

    def __init__(self, *script: _FakeResponse | Exception) -> None:
        self.script = list(script)
        self.headers: list[dict[str, str]] = []

    def get(self, url: str, *, headers: dict[str, str], timeout: Any = None) -> _FakeResponse:
        self.headers.append(dict(headers))
        if not self.script:
            raise aiohttp.ClientConnectionError("connection refused")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class _RecordingSleep:
    """Records backoff delays and parks forever after ``park_after`` calls."""

    def __init__(self, park_after: int) -> None:
        self.delays: list[float] = []
        self.park_after = park_after
        self.parked = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if len(self.delays) >= self.park_after:
            self.parked.set()
            await asyncio.Event().wait()
        await asyncio.sleep(0)


def _event_lines(payload: Any, *, event_id: str | None = None) -> list[bytes]:
    lines = [b": keep-alive\n"]
    if event_id is not None:
        lines.append(f"id: {event_id}\n".encode())
    lines.append(f"data: {json.dumps(payload)}\n".encode())
    lines.append(b"\n")
    return lines


def _channel(
    session: _FakeSession, sleep: _RecordingSleep, applied: list[RealtimeUpdate], **config: Any
) -> RealtimeUpdateChannel:
    def _apply(update: RealtimeUpdate) -> bool:
        applied.append(update)
        return True

    return RealtimeUpdateChannel(
        _URL,
        session,  # type: ignore[arg-type]
        _apply,
        config=RealtimeConfig(url=_URL, **config),
        sleep=sleep,
    )


def test_sse_decoder_assembles_multiline_events() -> None:
    decoder = SseDecoder()
    produced = [
        decoder.feed_line(line)
        for line in [": comment\n", "event: price\n", "id: 7\n", "data: first\n", "data:second\r\n", "\n"]
    ]

    assert produced[:-1] == [None] * 5
    assert produced[-1] == SseEvent(data="first\nsecond", event="price", id="7")
    assert decoder.last_event_id == "7"
    # A blank line with nothing buffered dispatches nothing.
    assert decoder.feed_line("\n") is None


def test_backoff_delay_is_capped() -> None:
    assert backoff_delay(0, 1.0, 60.0) == 1.0
    assert backoff_delay(3, 1.0, 60.0) == 8.0
    assert backoff_delay(10, 1.0, 60.0) == 60.0
    assert backoff_delay(500, 1.0, 60.0) == 60.0


@pytest.mark.asyncio
async def test_malformed_events_are_dropped_not_raised() -> None:
    applied: list[RealtimeUpdate] = []
    channel = _channel(_FakeSession(), _RecordingSleep(1), applied)

    channel.handle_event(SseEvent(data="not json"))
    channel.handle_event(SseEvent(data=json.dumps({"fuelType": "Diesel", "price": 1.9, "ts": 5})))
    channel.handle_event(SseEvent(data=json.dumps({"rowId": "1", "fuelType": "Diesel", "price": 1.9, "ts": 5})))

    assert channel.dropped_count == 2
    assert channel.received_count == 1


@pytest.mark.asyncio
async def test_full_queue_drops_oldest_update() -> None:
    applied: list[RealtimeUpdate] = []
    channel = _channel(_FakeSession(), _RecordingSleep(1), applied, queue_size=2)

    channel.handle_event(
        SseEvent(
            data=json.dumps(
                [{"rowId": str(i), "fuelType": "Diesel", "price": 1.9, "ts": 5} for i in range(3)]
            )
        )
    )

    queue = channel._queue  # type: ignore[attr-defined]
    queued = [queue.get_nowait().station_id for _ in range(queue.qsize())]
    assert queued == ["1", "2"]
    assert channel.dropped_count == 1


@pytest.mark.asyncio
async def test_stream_updates_are_applied_and_listeners_notified() -> None:
    payload = {"rowId": "s1", "fuelType": "Unleaded", "price": 2.0, "ts": 150}
    session = _FakeSession(_FakeResponse([*_event_lines(payload, event_id="7"), b"data: nope\n", b"\n"]))
    sleep = _RecordingSleep(park_after=2)
    applied: list[RealtimeUpdate] = []
    channel = _channel(session, sleep, applied)

    states: list[ConnectionState] = []
    notified: list[str] = []
    channel.add_state_listener(lambda state, _error: states.append(state))
    channel.add_update_listener(lambda update: notified.append(update.station_id))

    await channel.connect()
    await asyncio.wait_for(sleep.parked.wait(), timeout=1.0)
    await asyncio.wait_for(channel.join(), timeout=1.0)

    assert [update.fuel_prices for update in applied] == [{"unleaded": 2.0}]
    assert notified == ["s1"]
    assert channel.received_count == 1
    assert channel.dropped_count == 1
    assert states[:3] == [ConnectionState.CONNECTING, ConnectionState.CONNECTED, ConnectionState.ERROR]
    # The reconnect resumes from the last seen event id.
    assert session.headers[1]["last-event-id"] == "7"
    assert session.headers[0]["accept"] == "text/event-stream"

    await channel.disconnect()
    assert channel.state == ConnectionState.DISCONNECTED
    assert states[-1] == ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_reconnect_backoff_grows_to_cap() -> None:
    session = _FakeSession()
    sleep = _RecordingSleep(park_after=6)
    channel = _channel(session, sleep, [], initial_backoff=1.0, max_backoff=4.0)

    await channel.connect()
    await asyncio.wait_for(sleep.parked.wait(), timeout=1.0)

    assert sleep.delays == [1.0, 2.0, 4.0, 4.0, 4.0, 4.0]
    assert channel.state == ConnectionState.ERROR
    assert isinstance(channel.last_error, aiohttp.ClientConnectionError)

    await channel.disconnect()


@pytest.mark.asyncio
async def test_backoff_resets_after_successful_connect() -> None:
    session = _FakeSession(
        aiohttp.ClientConnectionError("refused"),
        aiohttp.ClientConnectionError("refused"),
        _FakeResponse([]),
    )
    sleep = _RecordingSleep(park_after=4)
    channel = _channel(session, sleep, [], initial_backoff=1.0, max_backoff=60.0)

    await channel.connect()
    await asyncio.wait_for(sleep.parked.wait(), timeout=1.0)

    assert sleep.delays == [1.0, 2.0, 1.0, 2.0]

    await channel.disconnect()


@pytest.mark.asyncio
async def test_rejected_stream_is_an_error_state() -> None:
    session = _FakeSession(_FakeResponse([], status=401))
    sleep = _RecordingSleep(park_after=1)
    channel = _channel(session, sleep, [])

    await channel.connect()
    await asyncio.wait_for(sleep.parked.wait(), timeout=1.0)

    assert channel.state == ConnectionState.ERROR
    assert "401" in str(channel.last_error)

    await channel.disconnect()


@pytest.mark.asyncio
async def test_disconnect_stops_reconnects() -> None:
    session = _FakeSession()
    sleep = _RecordingSleep(park_after=2)
    channel = _channel(session, sleep, [])

    await channel.connect()
    await asyncio.wait_for(sleep.parked.wait(), timeout=1.0)
    await channel.disconnect()
    attempts = len(session.headers)

    for _ in range(5):
        await asyncio.sleep(0)

    assert len(session.headers) == attempts
    assert channel.is_running is False
    assert channel.state == ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_listener_failure_does_not_stop_delivery() -> None:
    applied: list[RealtimeUpdate] = []
    channel = _channel(_FakeSession(), _RecordingSleep(1), applied)
    seen: list[str] = []

    def _broken(_update: RealtimeUpdate) -> None:
        raise RuntimeError("listener bug")

    channel.add_update_listener(_broken)
    remove = channel.add_update_listener(lambda update: seen.append(update.station_id))

    channel._deliver(  # type: ignore[attr-defined]
        RealtimeUpdate.from_event({"rowId": "a", "fuelType": "LPG", "price": 0.9, "ts": 5})
    )
    remove()
    channel._deliver(  # type: ignore[attr-defined]
        RealtimeUpdate.from_event({"rowId": "b", "fuelType": "LPG", "price": 0.9, "ts": 6})
    )

    assert seen == ["a"]
    assert len(applied) == 2
