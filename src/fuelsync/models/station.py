"""Station model and backend row normalization.

Backend rows arrive with field names that drifted across backend versions
(``lat`` vs ``Latitude`` vs ``field_5072136``). :class:`Station` resolves
them with one fixed precedence order per field, declared in
``Station._FIELD_ALIASES``:

1. canonical name (snake_case, then camelCase / short form),
2. human-readable backend field names (``"Station Name"``, ``"Latitude"``),
3. legacy backend field ids (``field_5072136``),
4. the field default.

The first key holding a meaningful value wins; sentinels such as ``""``,
``"--"`` and NaN are skipped so a later alias can still supply the value.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from fuelsync._constants import normalize_brand, normalize_fuel_type
from fuelsync.exceptions import FuelSyncParseError
from fuelsync.ingestion.normalize import (
    first_present,
    is_valid_coordinate,
    positive_price,
    safe_float,
    safe_str,
    to_datetime_utc,
)


def parse_fuel_prices(value: Any) -> dict[str, float]:
    """Coerce the backend's price shapes into ``{fuel_type: price}``.

    Accepts a mapping (``{"Unleaded 91": 1.95}``) or a list of price rows
    (``[{"fuelType": "Diesel", "price": 2.01}]``). Prices ``<= 0`` are absent.
    """
    prices: dict[str, float] = {}
    if isinstance(value, Mapping):
        for fuel, raw_price in value.items():
            if fuel == "lastUpdated":
                continue
            price = positive_price(raw_price)
            fuel_name = safe_str(fuel)
            if price is not None and fuel_name:
                prices[normalize_fuel_type(fuel_name)] = price
        return prices

    if isinstance(value, (list, tuple)):
        for item in value:
            if not isinstance(item, Mapping):
                continue
            fuel_name = safe_str(
                first_present(item, ("fuel_type", "fuelType", "Fuel Type", "type", "name"))
            )
            price = positive_price(
                first_present(item, ("price", "Price Per Liter", "pricePerLiter", "value"))
            )
            if fuel_name and price is not None:
                prices[normalize_fuel_type(fuel_name)] = price
    return prices


class Station(BaseModel):
    """One fuel retail location.

    ``latitude``/``longitude`` are ``None`` when the row carried nothing
    parseable; out-of-range values are kept as-is so listing views still show
    the station, and :attr:`has_valid_coordinates` reports them as invalid.
    """

    _FIELD_ALIASES: ClassVar[dict[str, tuple[str, ...]]] = {
        "id": ("id", "station_id", "stationId", "Station ID", "objectid"),
        "name": ("name", "station_name", "stationName", "Station Name", "Name", "title"),
        "address": (
            "address",
            "station_address",
            "Address",
            "Street Address",
            "gnaf_formatted_address",
        ),
        "city": ("city", "suburb", "station_suburb", "City", "Suburb", "gnaf_suburb"),
        "postal_code": (
            "postal_code",
            "postalCode",
            "postcode",
            "station_postcode",
            "Postal Code",
            "Postcode",
            "gnaf_postcode",
        ),
        "state": ("state", "station_state", "State", "Region"),
        "brand": ("brand", "Brand", "station_owner", "Station Owner", "Owner"),
        "latitude": ("latitude", "lat", "Latitude", "Lat", "Y", "field_5072136", "field5072136"),
        "longitude": (
            "longitude",
            "lng",
            "lon",
            "Longitude",
            "Lng",
            "X",
            "field_5072137",
            "field5072137",
        ),
        "fuel_prices": ("fuel_prices", "fuelPrices", "prices", "Fuel Prices"),
        "last_updated": (
            "last_updated",
            "lastUpdated",
            "updated_at",
            "Last Updated",
            "station_revised_date",
            "updated_on",
        ),
    }

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str = "Unknown Station"
    address: str = ""
    city: str = ""
    postal_code: str = ""
    state: str = "VIC"
    brand: str = ""
    latitude: float | None = None
    longitude: float | None = None
    fuel_prices: dict[str, float] = Field(default_factory=dict)
    last_updated: datetime | None = None
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @model_validator(mode="before")
    @classmethod
    def _resolve_aliases(cls, values: Any) -> Any:
        """Collapse backend field spellings onto canonical fields."""
        if not isinstance(values, Mapping):
            return values
        resolved: dict[str, Any] = {}
        for field_name, keys in cls._FIELD_ALIASES.items():
            value = first_present(values, keys)
            if value is not None:
                resolved[field_name] = value
        original = values.get("raw")
        resolved["raw"] = dict(original) if isinstance(original, Mapping) else dict(values)
        return resolved

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        text = safe_str(value)
        if text is None:
            raise ValueError("station id must be non-empty")
        return text

    @field_validator("name", "address", "city", "postal_code", "state", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return safe_str(value) or ""

    @field_validator("brand", mode="before")
    @classmethod
    def _coerce_brand(cls, value: Any) -> str:
        text = safe_str(value)
        return normalize_brand(text) if text else ""

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_coordinate(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("fuel_prices", mode="before")
    @classmethod
    def _coerce_prices(cls, value: Any) -> dict[str, float]:
        return parse_fuel_prices(value)

    @field_validator("last_updated", mode="before")
    @classmethod
    def _coerce_last_updated(cls, value: Any) -> datetime | None:
        return to_datetime_utc(value)

    @model_validator(mode="after")
    def _default_name(self) -> Station:
        if not self.name:
            object.__setattr__(self, "name", "Unknown Station")
        if not self.state:
            object.__setattr__(self, "state", "VIC")
        return self

    @property
    def has_valid_coordinates(self) -> bool:
        return is_valid_coordinate(self.latitude, self.longitude)

    @property
    def coordinates(self) -> tuple[float, float] | None:
        """``(lat, lng)`` when valid, else ``None``."""
        if not self.has_valid_coordinates:
            return None
        assert self.latitude is not None and self.longitude is not None  # noqa: S101
        return self.latitude, self.longitude

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Station:
        """Normalize one backend row, raising :class:`FuelSyncParseError` on failure."""
        if not isinstance(row, Mapping):
            raise FuelSyncParseError(f"station row must be an object, got {type(row).__name__}")
        try:
            return cls.model_validate(row)
        except ValidationError as exc:
            row_id = safe_str(first_present(row, cls._FIELD_ALIASES["id"]))
            raise FuelSyncParseError(f"invalid station row: {exc.error_count()} error(s)", row_id=row_id) from exc
