"""Station row ingestion: raw backend rows -> canonical :class:`Station` records."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from fuelsync.exceptions import FuelSyncParseError
from fuelsync.models.station import Station

_logger = logging.getLogger(__name__)


def normalize_rows(rows: Iterable[Any]) -> tuple[list[Station], list[FuelSyncParseError]]:
    """Normalize rows, skipping bad ones.

    One bad row never fails the batch: it is logged, collected in the error
    list and skipped. Duplicate ids keep the first occurrence.
    """
    stations: list[Station] = []
    errors: list[FuelSyncParseError] = []
    seen: set[str] = set()
    total = 0

    for index, row in enumerate(rows):
        total += 1
        try:
            station = Station.from_row(row)
        except FuelSyncParseError as exc:
            _logger.debug("Skipping row %d (id=%s): %s", index, exc.row_id, exc)
            errors.append(exc)
            continue
        if station.id in seen:
            _logger.debug("Skipping duplicate station id=%s at row %d", station.id, index)
            continue
        seen.add(station.id)
        stations.append(station)

    if errors:
        _logger.warning("Skipped %d of %d station rows that failed to parse", len(errors), total)
    invalid_coords = sum(1 for station in stations if not station.has_valid_coordinates)
    if invalid_coords:
        _logger.debug("%d stations have no valid coordinates", invalid_coords)
    return stations, errors
