"""Incremental server-sent-events decoder."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SseEvent:
    """One dispatched SSE event."""

    data: str
    event: str = "message"
    id: str | None = None


class SseDecoder:
    """Turn stream lines into :class:`SseEvent` objects.

    Follows the event-stream framing: ``data:`` lines accumulate, a blank
    line dispatches, ``:`` lines are comments (keep-alives), unknown fields
    are ignored. ``last_event_id`` persists across events so a reconnect can
    resume with ``Last-Event-ID``.
    """

    def __init__(self) -> None:
        self._data: list[str] = []
        self._event = ""
        self.last_event_id: str | None = None

    def feed_line(self, line: str) -> SseEvent | None:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event = value
        elif field == "id":
            if "\0" not in value:
                self.last_event_id = value
        return None

    def _dispatch(self) -> SseEvent | None:
        if not self._data:
            self._event = ""
            return None
        event = SseEvent(
            data="\n".join(self._data),
            event=self._event or "message",
            id=self.last_event_id,
        )
        self._data = []
        self._event = ""
        return event
