"""Ingestion layer.

This package contains adapters that fetch/receive station data from the
tabular backend and emit normalized domain objects.
"""

__all__: list[str] = []
