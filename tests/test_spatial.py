from __future__ import annotations

import pytest
from pydantic import ValidationError

from fuelsync.fallback import load_fallback_stations
from fuelsync.models.station import Station
from fuelsync.spatial import SpatialPoint, bounds, project


def test_project_keeps_only_map_fields() -> None:
    points = project(load_fallback_stations())

    assert len(points) == 7
    assert set(SpatialPoint.model_fields) == {"id", "name", "lat", "lng"}
    assert points[0].model_dump() == {
        "id": "fallback-1",
        "name": "Shell Melbourne CBD",
        "lat": -37.8136,
        "lng": 144.9631,
    }


def test_project_drops_invalid_coordinates() -> None:
    stations = [
        Station(id="ok", name="Ok", latitude=-37.8, longitude=144.9),
        Station(id="no-coords", name="Missing"),
        Station(id="bad-lat", name="Bad", latitude=-91.0, longitude=144.9),
        Station(id="bad-lng", name="Bad", latitude=-37.8, longitude=181.0),
        Station(id="edge", name="Edge", latitude=90.0, longitude=-180.0),
    ]

    points = project(stations)

    assert [point.id for point in points] == ["ok", "edge"]
    for point in points:
        assert -90 <= point.lat <= 90
        assert -180 <= point.lng <= 180


def test_spatial_point_rejects_extra_fields() -> None:
    with pytest.raises(ValidationError):
        SpatialPoint(id="x", name="x", lat=0.0, lng=0.0, price=1.9)  # type: ignore[call-arg]


def test_bounds() -> None:
    points = [
        SpatialPoint(id="a", name="a", lat=-38.0, lng=145.0),
        SpatialPoint(id="b", name="b", lat=-37.0, lng=144.0),
    ]

    box = bounds(points)

    assert box is not None
    assert (box.min_lat, box.min_lng, box.max_lat, box.max_lng) == (-38.0, 144.0, -37.0, 145.0)
    assert box.center == (-37.5, 144.5)
    assert bounds([]) is None
