"""Fuel price table join.

The backend keeps prices in their own table: one row per (station, fuel type)
with ``Price Per Liter``, a ``Fuel Type`` single-select and a ``Petrol Station``
link to the station rows. Station rows only carry link references to those
price rows, so prices have to be grouped by station id and attached before the
rows are normalized.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from fuelsync._constants import normalize_fuel_type
from fuelsync.ingestion.normalize import first_present, positive_price, safe_str
from fuelsync.ingestion.pagination import PageResult, PaginationFetcher
from fuelsync.models.station import parse_fuel_prices

_logger = logging.getLogger(__name__)

#: ``Fuel Type`` single-select option ids of the production prices table.
FUEL_TYPE_OPTIONS: dict[int, str] = {
    3812408: "unleaded",
    3812409: "premium",
    3812410: "diesel",
    3812411: "lpg",
    3812412: "premium95",
}

_STATION_PRICE_KEYS = ("fuel_prices", "fuelPrices", "prices", "Fuel Prices")


def _fuel_type(value: Any) -> str | None:
    """Resolve a ``Fuel Type`` cell: option id, select object or plain label."""
    if isinstance(value, Mapping):
        option_id = value.get("id")
        if option_id is not None:
            mapped = _fuel_type(option_id)
            if mapped is not None:
                return mapped
        value = value.get("value") or value.get("name")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return FUEL_TYPE_OPTIONS.get(value)
    text = safe_str(value)
    if text is None:
        return None
    if text.isdigit():
        return FUEL_TYPE_OPTIONS.get(int(text))
    return normalize_fuel_type(text)


def _linked_ids(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        value = [value]
    ids: list[str] = []
    for ref in value:
        ref_id = ref.get("id") if isinstance(ref, Mapping) else ref
        text = safe_str(ref_id)
        if text is not None:
            ids.append(text)
    return ids


def group_prices_by_station(rows: Iterable[Any]) -> dict[str, dict[str, float]]:
    """Group price rows into ``{station_id: {fuel_type: price}}``.

    Rows without a known fuel type, a positive price or a linked station are
    skipped. A later row for the same station and fuel type wins.
    """
    grouped: dict[str, dict[str, float]] = {}
    skipped = 0
    for row in rows:
        if not isinstance(row, Mapping):
            skipped += 1
            continue
        fuel_type = _fuel_type(first_present(row, ("Fuel Type", "fuel_type", "fuelType")))
        price = positive_price(first_present(row, ("Price Per Liter", "price_per_liter", "pricePerLiter", "price")))
        station_ids = _linked_ids(first_present(row, ("Petrol Station", "station", "stationIds", "station_id"), []))
        if fuel_type is None or price is None or not station_ids:
            skipped += 1
            continue
        for station_id in station_ids:
            grouped.setdefault(station_id, {})[fuel_type] = price
    if skipped:
        _logger.debug("Skipped %d unusable price rows", skipped)
    return grouped


def attach_prices(row: Any, prices_by_station: Mapping[str, Mapping[str, float]]) -> Any:
    """Return *row* with its joined prices under the canonical ``fuel_prices`` key.

    Prices already present on the station row are kept unless the price table
    has a value for the same fuel type.
    """
    if not isinstance(row, Mapping):
        return row
    joined = prices_by_station.get(safe_str(row.get("id")) or "")
    if not joined:
        return row
    own = parse_fuel_prices(first_present(row, _STATION_PRICE_KEYS, {}))
    return {**row, "fuel_prices": {**own, **joined}}


class StationPriceFetcher:
    """Page through the stations and prices tables concurrently and join them.

    A prices table failure still serves the station rows, reported as an
    incomplete result so the store treats it as partial data.
    """

    def __init__(self, stations: PaginationFetcher, prices: PaginationFetcher) -> None:
        self._stations = stations
        self._prices = prices

    async def fetch_all(self) -> PageResult:
        station_result, price_result = await asyncio.gather(
            self._stations.fetch_all(),
            self._prices.fetch_all(),
        )
        if not station_result.rows:
            return station_result

        if price_result.error is not None:
            _logger.warning(
                "Fuel price table unavailable, stations served without joined prices: %s",
                price_result.error,
            )

        prices_by_station = group_prices_by_station(price_result.rows)
        rows = [attach_prices(row, prices_by_station) for row in station_result.rows]
        _logger.debug(
            "Joined %d price rows onto %d station rows (%d stations priced)",
            len(price_result.rows),
            len(rows),
            len(prices_by_station),
        )
        return PageResult(
            rows=rows,
            pages=station_result.pages,
            error=station_result.error or price_result.error,
            complete=station_result.complete and price_result.complete,
        )
