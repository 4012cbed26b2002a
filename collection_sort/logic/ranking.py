"""Ranking logic for collection products."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from collection_sort.ingest.models import AggregatedProduct

PRODUCT_GID_PREFIX = "gid://shopify/Product/"
PREVIEW_SIZE = 5


@dataclass(slots=True, frozen=True)
class RankedMove:
    remote_product_id: str
    title: str
    total_sales: int


def product_gid(product_id: str) -> str:
    return f"{PRODUCT_GID_PREFIX}{product_id}"


def rank_products(products: Iterable[AggregatedProduct]) -> list[RankedMove]:
    """Highest seller first; equal totals keep first-encounter order."""
    candidates = [
        RankedMove(
            remote_product_id=product_gid(product.product_id),
            title=product.product_title,
            total_sales=product.total_sales,
        )
        for product in products
        if product.product_id
    ]
    # sorted() is stable, including with reverse=True
    return sorted(candidates, key=lambda move: move.total_sales, reverse=True)


def preview(ranking: Sequence[RankedMove], limit: int = PREVIEW_SIZE) -> str:
    return " | ".join(f"{move.title} ({move.total_sales})" for move in ranking[:limit])
