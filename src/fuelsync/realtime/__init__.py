"""Realtime price push channel."""

from fuelsync.realtime.channel import RealtimeUpdateChannel, backoff_delay
from fuelsync.realtime.sse import SseDecoder, SseEvent

__all__ = [
    "RealtimeUpdateChannel",
    "SseDecoder",
    "SseEvent",
    "backoff_delay",
]
