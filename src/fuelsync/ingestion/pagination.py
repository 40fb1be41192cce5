"""Paginated row retrieval.

Pulls pages from the rows endpoint until the backend signals the end of the
table, aggregating them into one list. A failure part-way through keeps the
pages already retrieved: partial data is more useful to the UI than none.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from fuelsync._api.rows import RowsPage, fetch_rows_page
from fuelsync._transport import Transport
from fuelsync.config import FuelSyncConfig
from fuelsync.exceptions import FuelSyncError

_logger = logging.getLogger(__name__)


@dataclass
class PageResult:
    """Aggregated pagination outcome.

    ``complete`` is True only when a terminal page was observed without any
    error and within the page budget.
    """

    rows: list[Any] = field(default_factory=list)
    pages: int = 0
    error: FuelSyncError | None = None
    complete: bool = False

    @property
    def partial(self) -> bool:
        return not self.complete and bool(self.rows)


def is_terminal_page(page: RowsPage, page_size: int) -> bool:
    """A page ends the run when it is empty, short, or has ``next: null``."""
    if not page.results:
        return True
    if len(page.results) < page_size:
        return True
    return page.next_known and page.next is None


class PaginationFetcher:
    """Fetch every row of one table (stations by default), bounded by ``max_pages``."""

    def __init__(
        self,
        transport: Transport,
        config: FuelSyncConfig,
        *,
        page_size: int | None = None,
        max_pages: int | None = None,
        table_id: int | None = None,
    ) -> None:
        self._transport = transport
        self._config = config
        self._table_id = table_id
        self._page_size = page_size or config.page_size
        self._max_pages = max_pages or config.max_pages

    @property
    def page_size(self) -> int:
        return self._page_size

    async def fetch_all(self) -> PageResult:
        result = PageResult()

        for page_number in range(1, self._max_pages + 1):
            try:
                page = await fetch_rows_page(
                    self._transport,
                    self._config,
                    page=page_number,
                    page_size=self._page_size,
                    table_id=self._table_id,
                )
            except FuelSyncError as exc:
                _logger.warning(
                    "Pagination stopped at page %d after %d rows: %s",
                    page_number,
                    len(result.rows),
                    exc,
                )
                result.error = exc
                return result

            result.pages = page_number
            result.rows.extend(page.results)
            _logger.debug(
                "Page %d: %d rows (total: %d)",
                page_number,
                len(page.results),
                len(result.rows),
            )

            if is_terminal_page(page, self._page_size):
                result.complete = True
                return result

        _logger.warning(
            "Pagination budget of %d pages exhausted without a terminal page (%d rows)",
            self._max_pages,
            len(result.rows),
        )
        return result
