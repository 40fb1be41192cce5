"""State/store layer.

This package is the single source of truth for how full fetches, the
fallback dataset and realtime price deltas are merged into one station
snapshot.
"""
