"""Sales record models."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError, field_validator

from collection_sort.errors import MalformedRecordError

PRODUCT_ID_RE = re.compile(r"^[0-9]+$")
LEADING_INT_RE = re.compile(r"^\s*([+-]?[0-9]+)")

ProductId = Annotated[str, StringConstraints(strip_whitespace=True, pattern=PRODUCT_ID_RE.pattern)]


class SalesRow(BaseModel):
    """One raw input row as read from JSON lines or a delimited table."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    product_title: str = Field(min_length=1)
    net_items_sold: int
    product_id: ProductId | None = None

    @field_validator("net_items_sold", mode="before")
    @classmethod
    def _leading_integer(cls, value: Any) -> Any:
        # Leading integer wins: "5.5" -> 5, "12 units" -> 12.
        if isinstance(value, bool):
            raise ValueError("boolean is not a quantity")
        if isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError(f"{value!r} is not a quantity")
            return math.trunc(value)
        if isinstance(value, str):
            match = LEADING_INT_RE.match(value)
            if match is None:
                raise ValueError(f"{value!r} does not start with a number")
            return int(match.group(1))
        return value

    @field_validator("product_id", mode="before")
    @classmethod
    def _blank_id_is_absent(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str) and not value.strip():
            return None
        return value


@dataclass(slots=True, frozen=True)
class SalesRecord:
    product_title: str
    quantity_sold: int
    product_id: str | None
    line_number: int


@dataclass(slots=True)
class AggregatedProduct:
    product_title: str
    total_sales: int = 0
    product_id: str | None = None


@dataclass(slots=True)
class LoadResult:
    """Aggregated table keyed by title, in first-encounter order."""

    products: dict[str, AggregatedProduct] = field(default_factory=dict)
    lines_read: int = 0
    lines_skipped: int = 0

    @property
    def identifiable_count(self) -> int:
        return sum(1 for product in self.products.values() if product.product_id)

    @property
    def is_empty(self) -> bool:
        return not self.products


def skip_reason(exc: ValidationError) -> str:
    error = exc.errors()[0]
    loc = error.get("loc") or ("row",)
    name = str(loc[0])
    if error.get("type") == "missing":
        return f"Missing {name}"
    if name == "product_title" and (error.get("input") is None or error.get("type") == "string_too_short"):
        return "Missing product_title"
    if name == "product_id":
        return "Invalid product_id format"
    return f"Invalid {name}"


def parse_record(raw: Any, line_number: int) -> SalesRecord:
    """Validate one raw row; raises MalformedRecordError with the skip reason."""
    if not isinstance(raw, dict):
        raise MalformedRecordError("Line is not a JSON object", line_number=line_number)
    try:
        row = SalesRow.model_validate(raw)
    except ValidationError as exc:
        raise MalformedRecordError(skip_reason(exc), line_number=line_number) from exc
    return SalesRecord(
        product_title=row.product_title,
        quantity_sold=row.net_items_sold,
        product_id=row.product_id,
        line_number=line_number,
    )
