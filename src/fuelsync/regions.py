"""Deterministic region classification.

Regions come from a static table (``fuelsync/data/regions.json`` by default).
Each station lands in exactly one bucket:

1. valid coordinates are tested against region polygons in priority order,
2. otherwise (or when no polygon contains the point) the city name is looked
   up in each region's suburb list, exact matches before substring matches,
3. anything left goes to ``unclassified``.
"""

from __future__ import annotations

import importlib.resources
import json
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fuelsync._constants import UNCLASSIFIED_REGION
from fuelsync.exceptions import FuelSyncConfigError
from fuelsync.models.station import Station

_logger = logging.getLogger(__name__)

_PACKAGE_RESOURCE = "data/regions.json"


class Region(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str
    priority: int = 0
    color: str | None = None
    description: str = ""
    polygon: tuple[tuple[float, float], ...] = Field(default_factory=tuple)
    suburbs: tuple[str, ...] = Field(default_factory=tuple)

    @field_validator("polygon")
    @classmethod
    def _check_polygon(cls, value: tuple[tuple[float, float], ...]) -> tuple[tuple[float, float], ...]:
        if value and len(value) < 3:
            raise ValueError("polygon needs at least three vertices")
        return value

    def contains(self, lat: float, lng: float) -> bool:
        return bool(self.polygon) and point_in_polygon(lat, lng, self.polygon)

    def matches_city(self, city: str, *, exact: bool) -> bool:
        needle = city.strip().lower()
        if not needle:
            return False
        for suburb in self.suburbs:
            candidate = suburb.lower()
            if exact and needle == candidate:
                return True
            if not exact and candidate in needle:
                return True
        return False


def _on_segment(lat: float, lng: float, a: tuple[float, float], b: tuple[float, float]) -> bool:
    (y1, x1), (y2, x2) = a, b
    cross = (x2 - x1) * (lat - y1) - (y2 - y1) * (lng - x1)
    if abs(cross) > 1e-12:
        return False
    return min(x1, x2) <= lng <= max(x1, x2) and min(y1, y2) <= lat <= max(y1, y2)


def point_in_polygon(lat: float, lng: float, polygon: Sequence[tuple[float, float]]) -> bool:
    """Ray-casting test; vertices are ``(lat, lng)``. Points on an edge are inside."""
    inside = False
    count = len(polygon)
    for i in range(count):
        a = polygon[i]
        b = polygon[(i + 1) % count]
        if _on_segment(lat, lng, a, b):
            return True
        (y1, x1), (y2, x2) = a, b
        if (y1 > lat) != (y2 > lat):
            x_cross = x1 + (lat - y1) * (x2 - x1) / (y2 - y1)
            if lng < x_cross:
                inside = not inside
    return inside


def load_regions(path: Path | None = None) -> tuple[Region, ...]:
    """Load region definitions sorted by priority (ties keep file order)."""
    if path is not None:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise FuelSyncConfigError(f"Region table not found: {path}") from exc
    else:
        raw = importlib.resources.files("fuelsync").joinpath(_PACKAGE_RESOURCE).read_text(encoding="utf-8")

    document: Any = json.loads(raw)
    entries = document.get("regions") if isinstance(document, dict) else document
    if not isinstance(entries, list) or not entries:
        raise FuelSyncConfigError("Region table must contain a non-empty 'regions' list")
    try:
        regions = [Region.model_validate(entry) for entry in entries]
    except ValidationError as exc:
        raise FuelSyncConfigError(f"Invalid region table: {exc}") from exc

    ids = [region.id for region in regions]
    if len(set(ids)) != len(ids) or UNCLASSIFIED_REGION in ids:
        raise FuelSyncConfigError("Region ids must be unique and must not be 'unclassified'")
    return tuple(sorted(regions, key=lambda region: region.priority))


class RegionClassifier:
    """Assign stations to one of a fixed set of regions.

    Pure with respect to its region table: identical stations always yield
    identical buckets and counts.
    """

    def __init__(self, regions: Iterable[Region] | None = None, *, path: Path | None = None) -> None:
        if regions is None:
            self._regions = load_regions(path)
        else:
            self._regions = tuple(sorted(regions, key=lambda region: region.priority))
        self._by_id = {region.id: region for region in self._regions}

    @property
    def regions(self) -> tuple[Region, ...]:
        return self._regions

    @property
    def bucket_ids(self) -> tuple[str, ...]:
        return (*self._by_id, UNCLASSIFIED_REGION)

    def get_region(self, region_id: str) -> Region | None:
        return self._by_id.get(region_id)

    def classify(self, station: Station) -> str:
        coords = station.coordinates
        if coords is not None:
            lat, lng = coords
            for region in self._regions:
                if region.contains(lat, lng):
                    return region.id

        city = station.city
        if city:
            for exact in (True, False):
                for region in self._regions:
                    if region.matches_city(city, exact=exact):
                        return region.id

        return UNCLASSIFIED_REGION

    def group(self, stations: Iterable[Station]) -> dict[str, list[Station]]:
        buckets: dict[str, list[Station]] = {bucket: [] for bucket in self.bucket_ids}
        for station in stations:
            buckets[self.classify(station)].append(station)
        return buckets

    def region_counts(self, stations: Iterable[Station]) -> dict[str, int]:
        """Station count per region id, ``unclassified`` included."""
        counts: dict[str, int] = dict.fromkeys(self.bucket_ids, 0)
        for station in stations:
            counts[self.classify(station)] += 1
        _logger.debug("Region counts: %s", counts)
        return counts
