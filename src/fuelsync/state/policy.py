"""Deterministic merge and cache policy.

This module intentionally contains *no* payload parsing. The ingestion/Pydantic
boundary is responsible for producing normalized updates and timestamps.
"""

from __future__ import annotations


def should_accept_update(*, cached_ts: float | None, incoming_ts: float) -> bool:
    """Last-write-wins by embedded timestamp.

    An update older than the stored value for the same field is ignored;
    equal timestamps accept the later delivery.
    """
    if cached_ts is None:
        return True
    return incoming_ts >= cached_ts


def realtime_wins_over_fetch(*, update_ts: float, fetch_started_at: float) -> bool:
    """A realtime value survives a full refresh only if it is newer than the fetch initiation."""
    return update_ts > fetch_started_at
