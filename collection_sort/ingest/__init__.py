"""Sales file ingestion."""

from __future__ import annotations

from collection_sort.ingest.models import AggregatedProduct, LoadResult, SalesRecord
from collection_sort.ingest.sales import load_sales

__all__ = ["AggregatedProduct", "LoadResult", "SalesRecord", "load_sales"]
