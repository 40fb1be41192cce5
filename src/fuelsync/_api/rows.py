"""Paged rows endpoint of the tabular backend.

``GET /database/rows/table/{table_id}/?user_field_names=true&size=N&page=P``
answers ``{"count": int, "next": url|null, "previous": url|null, "results": [...]}``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fuelsync._transport import Transport
from fuelsync.config import FuelSyncConfig
from fuelsync.exceptions import FuelSyncApiError


class RowsPage(BaseModel):
    """One decoded page of backend rows.

    ``next_known`` tells whether the envelope carried a ``next`` key at all;
    older backend versions omit it, in which case only the page length can
    signal the end of the table.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    results: list[Any] = Field(default_factory=list)
    count: int | None = None
    next: str | None = None
    next_known: bool = False


def parse_rows_page(payload: Any, *, url: str = "") -> RowsPage:
    if isinstance(payload, list):
        # Some proxies strip the envelope and return the bare row list.
        return RowsPage(results=payload)
    if not isinstance(payload, dict) or not isinstance(payload.get("results"), list):
        raise FuelSyncApiError("Invalid API response structure: missing 'results' list", url=url)
    try:
        return RowsPage.model_validate({**payload, "next_known": "next" in payload})
    except ValidationError as exc:
        raise FuelSyncApiError(f"Invalid API response structure: {exc.error_count()} error(s)", url=url) from exc


async def fetch_rows_page(
    transport: Transport,
    config: FuelSyncConfig,
    *,
    page: int,
    page_size: int,
    table_id: int | None = None,
) -> RowsPage:
    """Fetch one page (1-based) of *table_id* rows, the stations table by default."""
    url = config.rows_url if table_id is None else config.table_rows_url(table_id)
    params = {
        "user_field_names": "true",
        "size": page_size,
        "page": page,
    }
    payload = await transport.get_json(url, params)
    return parse_rows_page(payload, url=url)
