from __future__ import annotations

import json
from pathlib import Path

import pytest

from fuelsync.exceptions import FuelSyncConfigError
from fuelsync.fallback import load_fallback_stations


def test_builtin_fallback_is_fixed_and_complete() -> None:
    first = load_fallback_stations()
    second = load_fallback_stations()

    assert first == second
    assert [station.id for station in first] == [f"fallback-{i}" for i in range(1, 8)]
    for station in first:
        assert station.has_valid_coordinates
        assert station.fuel_prices
        assert station.brand


def test_custom_fallback_goes_through_the_row_normalizer(tmp_path: Path) -> None:
    dataset = tmp_path / "fallback.json"
    dataset.write_text(
        json.dumps([{"Station ID": "f1", "Station Name": "Only", "Fuel Prices": {"ULP": "1.99", "LPG": 0}}]),
        encoding="utf-8",
    )

    stations = load_fallback_stations(dataset)

    assert len(stations) == 1
    assert stations[0].id == "f1"
    assert stations[0].fuel_prices == {"unleaded": 1.99}


def test_missing_or_empty_fallback_is_a_config_error(tmp_path: Path) -> None:
    with pytest.raises(FuelSyncConfigError):
        load_fallback_stations(tmp_path / "missing.json")

    empty = tmp_path / "empty.json"
    empty.write_text("[]", encoding="utf-8")
    with pytest.raises(FuelSyncConfigError):
        load_fallback_stations(empty)
