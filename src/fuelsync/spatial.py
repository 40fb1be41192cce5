"""Minimal coordinate-only projection for map rendering.

Map widgets only ever see ``id``, ``name``, ``lat`` and ``lng``; pricing,
address and brand stay in the listing views so schema changes there never
reach the map layer.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from pydantic import BaseModel, ConfigDict

from fuelsync.models.station import Station


class SpatialPoint(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    lat: float
    lng: float


class Bounds(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.min_lat + self.max_lat) / 2, (self.min_lng + self.max_lng) / 2


def project(stations: Iterable[Station]) -> list[SpatialPoint]:
    """Project stations to map points, silently dropping invalid coordinates."""
    points: list[SpatialPoint] = []
    for station in stations:
        coords = station.coordinates
        if coords is None:
            continue
        lat, lng = coords
        points.append(SpatialPoint(id=station.id, name=station.name, lat=lat, lng=lng))
    return points


def bounds(points: Sequence[SpatialPoint]) -> Bounds | None:
    """Bounding box that fits every point, or ``None`` for an empty list."""
    if not points:
        return None
    lats = [point.lat for point in points]
    lngs = [point.lng for point in points]
    return Bounds(min_lat=min(lats), min_lng=min(lngs), max_lat=max(lats), max_lng=max(lngs))
