"""Built-in fallback dataset served whenever live data is unavailable."""

from __future__ import annotations

import importlib.resources
import json
import logging
from functools import lru_cache
from pathlib import Path

from fuelsync.exceptions import FuelSyncConfigError
from fuelsync.models.station import Station

_logger = logging.getLogger(__name__)

_PACKAGE_RESOURCE = "data/fallback_stations.json"


def _read_rows(path: Path | None) -> list[dict]:
    if path is not None:
        _logger.debug("Loading fallback stations from %s", path)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise FuelSyncConfigError(f"Fallback dataset not found: {path}") from exc
    else:
        _logger.debug("Loading fallback stations from package data")
        raw = importlib.resources.files("fuelsync").joinpath(_PACKAGE_RESOURCE).read_text(encoding="utf-8")

    rows = json.loads(raw)
    if not isinstance(rows, list) or not rows:
        raise FuelSyncConfigError("Fallback dataset must be a non-empty JSON list")
    return rows


def load_fallback_stations(path: Path | None = None) -> tuple[Station, ...]:
    """Parse the fallback dataset through the same normalizer as live rows.

    The dataset is fixed, so every call returns equal stations in the same
    order. A dataset that fails to parse is a packaging bug and raises.
    """
    if path is None:
        return _default_fallback()
    return tuple(Station.from_row(row) for row in _read_rows(path))


@lru_cache(maxsize=1)
def _default_fallback() -> tuple[Station, ...]:
    return tuple(Station.from_row(row) for row in _read_rows(None))
