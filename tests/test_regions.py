from __future__ import annotations

import json
from pathlib import Path

import pytest

from fuelsync.exceptions import FuelSyncConfigError
from fuelsync.fallback import load_fallback_stations
from fuelsync.models.station import Station
from fuelsync.regions import RegionClassifier, load_regions, point_in_polygon

_SQUARE = ((0.0, 0.0), (0.0, 1.0), (1.0, 1.0), (1.0, 0.0))


def _station(station_id: str, *, lat: float | None = None, lng: float | None = None, city: str = "") -> Station:
    return Station(id=station_id, latitude=lat, longitude=lng, city=city)


def test_fallback_dataset_lands_in_expected_regions() -> None:
    classifier = RegionClassifier()
    stations = load_fallback_stations()

    by_id = {station.id: classifier.classify(station) for station in stations}

    assert by_id == {
        "fallback-1": "melbourne_inner",
        "fallback-2": "melbourne_inner",
        "fallback-3": "melbourne_inner",
        "fallback-4": "northern",
        "fallback-5": "western",
        "fallback-6": "eastern",
        "fallback-7": "south_eastern",
    }


def test_region_counts_sum_to_station_count() -> None:
    classifier = RegionClassifier()
    stations = [
        *load_fallback_stations(),
        _station("no-coords", city="Preston"),
        _station("nowhere", lat=-37.56, lng=143.85, city="Ballarat"),
        _station("blank"),
    ]

    counts = classifier.region_counts(stations)

    assert sum(counts.values()) == len(stations)
    assert counts["unclassified"] == 2
    assert counts["northern"] == 2
    assert set(counts) == {*(region.id for region in classifier.regions), "unclassified"}


def test_city_name_used_when_coordinates_missing() -> None:
    classifier = RegionClassifier()
    assert classifier.classify(_station("a", city="Box Hill")) == "eastern"
    assert classifier.classify(_station("b", city="  preston ")) == "northern"


def test_substring_city_match_after_exact_match() -> None:
    classifier = RegionClassifier()
    assert classifier.classify(_station("a", city="Brunswick East")) == "northern"


def test_invalid_coordinates_fall_back_to_city() -> None:
    classifier = RegionClassifier()
    assert classifier.classify(_station("a", lat=95.0, lng=145.0, city="Dandenong")) == "south_eastern"


def test_unknown_location_is_unclassified() -> None:
    classifier = RegionClassifier()
    assert classifier.classify(_station("a", lat=-33.86, lng=151.2, city="Sydney")) == "unclassified"


def test_overlapping_polygons_resolve_by_priority() -> None:
    classifier = RegionClassifier()
    # Inside both the eastern and south-eastern rectangles.
    assert classifier.classify(_station("a", lat=-37.85, lng=145.1)) == "eastern"


def test_classification_is_deterministic() -> None:
    classifier = RegionClassifier()
    stations = list(load_fallback_stations())
    assert classifier.region_counts(stations) == classifier.region_counts(list(stations))


def test_group_keeps_every_station() -> None:
    classifier = RegionClassifier()
    stations = list(load_fallback_stations())
    groups = classifier.group(stations)
    assert sum(len(members) for members in groups.values()) == len(stations)
    assert [s.id for s in groups["melbourne_inner"]] == ["fallback-1", "fallback-2", "fallback-3"]


@pytest.mark.parametrize(
    ("lat", "lng", "expected"),
    [
        (0.5, 0.5, True),
        (0.0, 0.5, True),
        (0.5, 1.0, True),
        (1.0, 1.0, True),
        (1.5, 0.5, False),
        (0.5, -0.0001, False),
    ],
)
def test_point_in_polygon(lat: float, lng: float, expected: bool) -> None:
    assert point_in_polygon(lat, lng, _SQUARE) is expected


def test_load_regions_rejects_duplicate_ids(tmp_path: Path) -> None:
    table = tmp_path / "regions.json"
    region = {"id": "a", "name": "A", "polygon": [[0, 0], [0, 1], [1, 1]]}
    table.write_text(json.dumps({"regions": [region, region]}), encoding="utf-8")

    with pytest.raises(FuelSyncConfigError):
        load_regions(table)


def test_load_regions_rejects_reserved_id(tmp_path: Path) -> None:
    table = tmp_path / "regions.json"
    table.write_text(json.dumps({"regions": [{"id": "unclassified", "name": "X"}]}), encoding="utf-8")

    with pytest.raises(FuelSyncConfigError):
        load_regions(table)


def test_custom_region_table(tmp_path: Path) -> None:
    table = tmp_path / "regions.json"
    table.write_text(
        json.dumps(
            {
                "regions": [
                    {"id": "late", "name": "Late", "priority": 2, "polygon": [[0, 0], [0, 2], [2, 2], [2, 0]]},
                    {"id": "early", "name": "Early", "priority": 1, "polygon": [[0, 0], [0, 1], [1, 1], [1, 0]]},
                ]
            }
        ),
        encoding="utf-8",
    )

    classifier = RegionClassifier(path=table)

    assert [region.id for region in classifier.regions] == ["early", "late"]
    assert classifier.classify(_station("a", lat=0.5, lng=0.5)) == "early"
    assert classifier.classify(_station("b", lat=1.5, lng=1.5)) == "late"
    assert classifier.get_region("late") is not None
