from __future__ import annotations

from typing import Any

import pytest

from fuelsync import FuelSyncClient, FuelSyncConfig
from fuelsync.exceptions import FuelSyncConfigError, FuelSyncError, FuelSyncTransportError
from fuelsync.models.realtime import ConnectionState, RealtimeUpdate
from fuelsync.models.snapshot import DataSource


class _RowsTransport:
    """Serves station rows, or price rows for the prices table URL."""

    def __init__(
        self,
        rows: list[dict[str, Any]] | None = None,
        *,
        price_rows: list[dict[str, Any]] | None = None,
        fail: bool = False,
    ) -> None:
        self.rows = rows or []
        self.price_rows = price_rows or []
        self.fail = fail
        self.urls: list[str] = []

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        self.urls.append(url)
        if self.fail:
            raise FuelSyncTransportError("backend unreachable")
        rows = self.price_rows if "/table/623330/" in url else self.rows
        return {"count": len(rows), "next": None, "previous": None, "results": rows}


_ROWS = [
    {
        "id": 101,
        "Station Name": "Coburg North",
        "Suburb": "Coburg",
        "Latitude": "-37.7436",
        "Longitude": "144.9643",
        "fuelPrices": {"Unleaded 91": 1.89, "Diesel": 1.99},
    },
    {
        "id": 102,
        "Station Name": "Somewhere Remote",
        "Suburb": "Mildura",
        "Latitude": "-34.18",
        "Longitude": "142.16",
        "fuelPrices": {"Unleaded 91": 2.05},
    },
    {"id": 103, "Station Name": "No Coordinates", "Suburb": "Werribee"},
]


@pytest.mark.asyncio
async def test_client_serves_live_data_and_views() -> None:
    transport = _RowsTransport(_ROWS)

    async with FuelSyncClient(FuelSyncConfig(page_size=50), transport=transport) as client:
        result = await client.fetch_stations()
        cached = await client.fetch_stations()

        assert result.source == DataSource.LIVE
        assert cached.from_cache is True
        assert len(transport.urls) == 2
        assert any(url.endswith("/table/623330/") for url in transport.urls)
        assert client.get_active_source() == DataSource.LIVE

        counts = client.region_counts()
        assert sum(counts.values()) == 3
        assert counts["northern"] == 1
        assert counts["western"] == 1
        assert counts["unclassified"] == 1

        points = client.spatial_points()
        assert [point.id for point in points] == ["101", "102"]

        station = client.get_station("101")
        assert station is not None
        assert client.classify(station) == "northern"
        assert client.realtime_state == ConnectionState.DISCONNECTED

    assert client.store.closed is True


@pytest.mark.asyncio
async def test_client_falls_back_when_backend_is_down() -> None:
    async with FuelSyncClient(FuelSyncConfig(), transport=_RowsTransport(fail=True)) as client:
        result = await client.fetch_stations()
        status = client.get_status()

        assert result.source == DataSource.FALLBACK
        assert len(result.stations) == 7
        assert status.last_error is not None
        assert sum(client.region_counts().values()) == 7


@pytest.mark.asyncio
async def test_client_merges_external_updates() -> None:
    async with FuelSyncClient(FuelSyncConfig(), transport=_RowsTransport(_ROWS)) as client:
        await client.fetch_stations()
        update = RealtimeUpdate.from_event({"rowId": "101", "fuelType": "Diesel", "price": 1.79, "ts": 4_000_000_000})

        assert client.apply_update(update) is True

        station = client.get_station("101")
        assert station is not None
        assert station.fuel_prices["diesel"] == 1.79


@pytest.mark.asyncio
async def test_client_requires_context_manager() -> None:
    client = FuelSyncClient(FuelSyncConfig(), transport=_RowsTransport(_ROWS))
    with pytest.raises(FuelSyncError):
        await client.fetch_stations()


@pytest.mark.asyncio
async def test_start_realtime_without_url_is_a_config_error() -> None:
    async with FuelSyncClient(FuelSyncConfig(), transport=_RowsTransport(_ROWS)) as client:
        with pytest.raises(FuelSyncConfigError):
            await client.start_realtime()


@pytest.mark.asyncio
async def test_client_joins_prices_table_onto_stations() -> None:
    station_rows = [
        {
            "id": 101,
            "Station Name": "Coburg North",
            "Region": "VIC",
            "Latitude": "-37.7436",
            "Longitude": "144.9643",
            "Fuel Prices": [{"id": 9001, "value": "9001"}, {"id": 9002, "value": "9002"}],
        },
        {"id": 102, "Station Name": "Unpriced", "Latitude": "-37.80", "Longitude": "144.90"},
    ]
    price_rows = [
        {"id": 9001, "Fuel Type": 3812408, "Price Per Liter": "1.859", "Petrol Station": [{"id": 101, "value": "x"}]},
        {
            "id": 9002,
            "Fuel Type": {"id": 3812410, "value": "Diesel"},
            "Price Per Liter": 1.999,
            "Petrol Station": [{"id": 101, "value": "x"}],
        },
        {"id": 9003, "Fuel Type": 3812411, "Price Per Liter": "0", "Petrol Station": [{"id": 102, "value": "y"}]},
    ]
    transport = _RowsTransport(station_rows, price_rows=price_rows)

    async with FuelSyncClient(FuelSyncConfig(), transport=transport) as client:
        result = await client.fetch_stations()

        assert result.source == DataSource.LIVE
        assert result.partial is False
        priced = client.get_station("101")
        unpriced = client.get_station("102")
        assert priced is not None and unpriced is not None
        assert priced.fuel_prices == {"unleaded": 1.859, "diesel": 1.999}
        assert unpriced.fuel_prices == {}


@pytest.mark.asyncio
async def test_client_without_prices_table_reads_station_rows_only() -> None:
    transport = _RowsTransport(_ROWS)

    async with FuelSyncClient(FuelSyncConfig(prices_table_id=None), transport=transport) as client:
        await client.fetch_stations()

        assert len(transport.urls) == 1
        station = client.get_station("101")
        assert station is not None
        assert station.fuel_prices["unleaded"] == 1.89
