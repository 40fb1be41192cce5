"""Realtime push models."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from fuelsync._constants import normalize_fuel_type
from fuelsync.exceptions import FuelSyncParseError
from fuelsync.ingestion.normalize import normalize_timestamp_seconds, positive_price, safe_str
from fuelsync.models.station import parse_fuel_prices


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class RealtimeUpdate(BaseModel):
    """A partial price delta for one station.

    Parameters
    ----------
    station_id : str
        Backend row id of the station.
    fuel_prices : dict
        Fuel type -> new price. Never empty.
    timestamp : float
        Epoch seconds at which the prices were observed upstream.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    station_id: str = Field(validation_alias=AliasChoices("station_id", "rowId", "row_id", "stationId", "id"))
    fuel_prices: dict[str, float] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("fuel_prices", "fuelPrices", "prices"),
    )
    timestamp: float = Field(validation_alias=AliasChoices("timestamp", "ts", "updatedAt", "updated_at"))
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @model_validator(mode="before")
    @classmethod
    def _fold_single_price(cls, values: Any) -> Any:
        """Fold the ``{fuelType, price}`` event shape into ``fuel_prices``."""
        if not isinstance(values, Mapping):
            return values
        merged = dict(values)
        fuel_type = safe_str(merged.get("fuelType") or merged.get("fuel_type"))
        price = positive_price(merged.get("price"))
        if fuel_type and price is not None:
            existing = merged.get("fuelPrices") or merged.get("fuel_prices") or {}
            prices = dict(existing) if isinstance(existing, Mapping) else {}
            prices[normalize_fuel_type(fuel_type)] = price
            merged.pop("fuel_prices", None)
            merged["fuelPrices"] = prices
        merged.setdefault("raw", dict(values))
        return merged

    @field_validator("station_id", mode="before")
    @classmethod
    def _coerce_station_id(cls, value: Any) -> str:
        text = safe_str(value)
        if text is None:
            raise ValueError("rowId must be non-empty")
        return text

    @field_validator("fuel_prices", mode="before")
    @classmethod
    def _coerce_prices(cls, value: Any) -> dict[str, float]:
        prices = parse_fuel_prices(value)
        if not prices:
            raise ValueError("update carries no usable price")
        return prices

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> float:
        ts = normalize_timestamp_seconds(value)
        if ts is None:
            raise ValueError("timestamp missing or invalid")
        return ts

    @model_validator(mode="after")
    def _require_prices(self) -> RealtimeUpdate:
        if not self.fuel_prices:
            raise ValueError("update carries no usable price")
        return self

    @classmethod
    def from_event(cls, payload: Any) -> RealtimeUpdate:
        """Parse one push event, raising :class:`FuelSyncParseError` if malformed."""
        if not isinstance(payload, Mapping):
            raise FuelSyncParseError(f"push event must be an object, got {type(payload).__name__}")
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise FuelSyncParseError(
                f"malformed push event: {exc.error_count()} error(s)",
                row_id=safe_str(payload.get("rowId")),
            ) from exc
