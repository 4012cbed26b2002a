"""Remote collection store access."""

from __future__ import annotations

from collection_sort.remote.models import Collection, MoveOutcome, MoveStatus, UserError
from collection_sort.remote.shopify import ShopifyCollectionClient

__all__ = ["Collection", "MoveOutcome", "MoveStatus", "ShopifyCollectionClient", "UserError"]
