"""Normalization helpers.

Centralizes defensive parsing and placeholder handling for backend rows and
push payloads.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from fuelsync._constants import LAT_MAX, LAT_MIN, LNG_MAX, LNG_MIN, MAX_TIMESTAMP, MS_THRESHOLD

# Sentinel strings the backend uses for "not available".
_SENTINELS = frozenset({"", "--", "NaN", "nan", "null", "None", "N/A"})


def is_meaningful(value: Any) -> bool:
    """Return True if the value should win a field-name precedence lookup."""
    if value is None:
        return False
    if isinstance(value, str) and value.strip() in _SENTINELS:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if value == {}:
        return False
    return bool(value != [])


def first_present(row: Mapping[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    """Return the value of the first key in *keys* holding a meaningful value.

    The order of *keys* is the precedence order: canonical name first, then
    human-readable backend names, then legacy backend field ids.
    """
    for key in keys:
        value = row.get(key)
        if is_meaningful(value):
            return value
    return default


def safe_float(value: Any) -> float | None:
    if not is_meaningful(value):
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().lstrip("$")
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        parts = [safe_str(item) for item in value]
        joined = ", ".join(part for part in parts if part)
        return joined or None
    if isinstance(value, Mapping):
        # Baserow link-row / select options expose their text as "value" or "name".
        return safe_str(value.get("value") or value.get("name"))
    text = str(value).strip()
    return text if text and text not in _SENTINELS else None


def positive_price(value: Any) -> float | None:
    """Parse a price; ``<= 0`` and unparseable values mean "absent"."""
    parsed = safe_float(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def normalize_timestamp_seconds(value: Any) -> float | None:
    """Normalize backend timestamps to epoch seconds.

    - Empty/missing -> None
    - <= 0 -> None
    - Milliseconds (> 1e11) -> seconds
    - Beyond year 9999 (after the ms conversion) -> None
    - ISO-8601 strings and datetimes are accepted
    """

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.timestamp()
    if not is_meaningful(value) or isinstance(value, bool):
        return None
    try:
        ts = float(value)
    except (TypeError, ValueError):
        if not isinstance(value, str):
            return None
        text = value.strip().replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.timestamp()
    if ts <= 0 or math.isnan(ts):
        return None
    if ts > MS_THRESHOLD:
        ts /= 1000.0
    if ts > MAX_TIMESTAMP:
        return None
    return ts


def to_datetime_utc(value: Any) -> datetime | None:
    ts = normalize_timestamp_seconds(value)
    if ts is None:
        return None
    try:
        return datetime.fromtimestamp(ts, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def is_valid_coordinate(lat: float | None, lng: float | None) -> bool:
    """Return True when both values are present, finite and in range."""
    if lat is None or lng is None:
        return False
    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError):
        return False
    if math.isnan(lat_f) or math.isnan(lng_f):
        return False
    return LAT_MIN <= lat_f <= LAT_MAX and LNG_MIN <= lng_f <= LNG_MAX
