"""Internal constants shared across the library."""

BASE_URL = "https://api.baserow.io/api"
USER_AGENT = "fuelsync/1 (+aiohttp)"

#: Baserow tables used by the production site.
DEFAULT_STATIONS_TABLE_ID = 623329
DEFAULT_PRICES_TABLE_ID = 623330

DEFAULT_PAGE_SIZE = 200
DEFAULT_MAX_PAGES = 100

# ------------------------------------------------------------------
# Coordinate ranges
# ------------------------------------------------------------------

LAT_MIN = -90.0
LAT_MAX = 90.0
LNG_MIN = -180.0
LNG_MAX = 180.0

UNCLASSIFIED_REGION = "unclassified"

# Threshold to distinguish seconds from milliseconds.
MS_THRESHOLD = 1e11

# 9999-12-31T23:59:59Z, the last instant `datetime` can represent.
MAX_TIMESTAMP = 253_402_300_799.0

# ------------------------------------------------------------------
# Fuel type spellings seen across backend versions
# ------------------------------------------------------------------

FUEL_TYPE_ALIASES: dict[str, str] = {
    "unleaded": "unleaded",
    "unleaded 91": "unleaded",
    "ulp": "unleaded",
    "u91": "unleaded",
    "regular": "unleaded",
    "premium": "premium",
    "premium 95": "premium95",
    "premium95": "premium95",
    "pulp": "premium",
    "u95": "premium95",
    "premium 98": "premium98",
    "premium98": "premium98",
    "u98": "premium98",
    "diesel": "diesel",
    "premium diesel": "premium_diesel",
    "e10": "e10",
    "e85": "e85",
    "lpg": "lpg",
}

# Brand substrings (upper-case) mapped to their display names, in match order.
BRAND_ALIASES: tuple[tuple[str, str], ...] = (
    ("7-ELEVEN", "7-Eleven"),
    ("7 ELEVEN", "7-Eleven"),
    ("SHELL", "Shell"),
    ("CALTEX", "Caltex"),
    ("AMPOL", "Ampol"),
    ("MOBIL", "Mobil"),
    ("UNITED", "United"),
    ("BP", "BP"),
)


def normalize_fuel_type(value: str) -> str:
    """Map a backend fuel label (``"Unleaded 91"``, ``"ULP"``) to a canonical key.

    Unknown labels are lower-cased and snake-cased so they still round-trip.
    """
    key = " ".join(value.strip().lower().replace("_", " ").split())
    if key in FUEL_TYPE_ALIASES:
        return FUEL_TYPE_ALIASES[key]
    return key.replace(" ", "_")


def normalize_brand(value: str) -> str:
    """Normalize owner/brand strings to their display names."""
    text = value.strip()
    upper = text.upper()
    for needle, display in BRAND_ALIASES:
        if needle == "BP":
            if upper == "BP" or upper.startswith("BP ") or " BP" in upper:
                return display
            continue
        if needle in upper:
            return display
    return text
