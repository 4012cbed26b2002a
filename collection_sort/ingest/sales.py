"""Sales file loading and per-title aggregation."""

from __future__ import annotations

import csv
import json
import pathlib
from dataclasses import dataclass
from typing import Any, Iterator

import pandas as pd

from collection_sort.errors import MalformedRecordError, NoIdentifiableProductsError
from collection_sort.ingest.models import AggregatedProduct, LoadResult, SalesRecord, parse_record
from collection_sort.utils.events import EventLog

SNIPPET_LENGTH = 100

COLUMN_ALIASES = {
    "product_title": "product_title",
    "title": "product_title",
    "product": "product_title",
    "net_items_sold": "net_items_sold",
    "net_quantity": "net_items_sold",
    "units_sold": "net_items_sold",
    "quantity": "net_items_sold",
    "product_id": "product_id",
    "id": "product_id",
}


@dataclass(slots=True)
class RawLine:
    line_number: int
    snippet: str
    payload: Any = None
    blank: bool = False
    parse_error: str | None = None
    error_action: str = "JSON Parse Error"


def load_sales(path: pathlib.Path, fmt: str, events: EventLog) -> LoadResult:
    """Read a sales file and aggregate net items sold per product title.

    Bad lines are logged and counted, never fatal. Raises FileNotFoundError
    when the file is absent and NoIdentifiableProductsError when products
    were aggregated but none of them carries a product id. A file without
    any valid line yields an empty result.
    """
    events.info("Reading Sales Start", details=f"File: {path} ({fmt})")
    if not path.exists():
        message = f"Sales file not found at path: {path.resolve()}."
        events.error("File Not Found", details=message)
        raise FileNotFoundError(message)

    lines = _read_jsonl(path) if fmt == "jsonl" else _read_table(path)
    result = LoadResult()
    for line in lines:
        result.lines_read += 1
        if line.blank:
            result.lines_skipped += 1
            continue
        if line.parse_error is not None:
            result.lines_skipped += 1
            events.error(
                line.error_action,
                details=f'{_where(line)}: {line.parse_error}. Line: "{line.snippet}..."',
            )
            continue
        try:
            record = parse_record(line.payload, line.line_number)
        except MalformedRecordError as exc:
            result.lines_skipped += 1
            events.warn("Skipping Invalid Line", details=f"{_where(line)}: {exc.reason}. Data: {line.snippet}...")
            continue
        _aggregate(result, record, events)

    events.info(
        "Reading Sales End",
        details=(
            f"Total lines read: {result.lines_read}, Skipped lines: {result.lines_skipped}, "
            f"Aggregated products: {len(result.products)}, Identifiable products: {result.identifiable_count}"
        ),
    )
    if result.is_empty:
        events.warn("File Status", details=f"Sales file '{path}' appears empty or contains only invalid lines.")
        return result

    events.info("Aggregation Result", details=f"Aggregated sales for {len(result.products)} unique products.")
    identifiable = result.identifiable_count
    events.info("ID Check", details=f"{identifiable} products have a valid Product ID stored.")
    if identifiable == 0:
        message = "No valid Product IDs found/stored from sales file."
        events.error("ID Check Failed", details=message)
        raise NoIdentifiableProductsError(message)
    return result


def _aggregate(result: LoadResult, record: SalesRecord, events: EventLog) -> None:
    product = result.products.get(record.product_title)
    if product is None:
        product = AggregatedProduct(product_title=record.product_title)
        result.products[record.product_title] = product
    product.total_sales += record.quantity_sold
    if record.product_id is None:
        return
    if product.product_id is None:
        product.product_id = record.product_id
    elif product.product_id != record.product_id:
        events.warn(
            "Multiple Product IDs",
            record.product_title,
            details=(
                f"Using first ID: {product.product_id}. Found: {record.product_id} "
                f"on line {record.line_number}. Sales still aggregated."
            ),
        )


def _where(line: RawLine) -> str:
    return f"Line {line.line_number}"


def _read_jsonl(path: pathlib.Path) -> Iterator[RawLine]:
    with path.open(encoding="utf-8-sig") as handle:
        for line_number, text in enumerate(handle, start=1):
            text = text.rstrip("\r\n")
            snippet = text[:SNIPPET_LENGTH]
            if not text.strip():
                yield RawLine(line_number, snippet, blank=True)
                continue
            try:
                payload = json.loads(text)
            except json.JSONDecodeError as exc:
                yield RawLine(line_number, snippet, parse_error=str(exc))
                continue
            yield RawLine(line_number, snippet, payload=payload)


def normalize_column(name: str) -> str:
    key = str(name).strip().lower().replace(" ", "_").replace("-", "_")
    return COLUMN_ALIASES.get(key, key)


def _is_blank_record(fields: list[str]) -> bool:
    return not fields or (len(fields) == 1 and not fields[0].strip())


def _record_lines(path: pathlib.Path, sep: str) -> list[tuple[int, list[str]]]:
    """Starting file line and raw fields of every record after the header."""
    records: list[tuple[int, list[str]]] = []
    with path.open(encoding="utf-8-sig", newline="") as handle:
        reader = csv.reader(handle, delimiter=sep)
        start = 1
        for fields in reader:
            records.append((start, fields))
            start = reader.line_num + 1
    while records and _is_blank_record(records[0][1]):
        records.pop(0)
    return records[1:]


def _read_table(path: pathlib.Path) -> Iterator[RawLine]:
    """Rows of a delimited table numbered by file line, the header being line 1.

    pandas supplies the cell values; a ``csv`` pass over the same file gives
    each record's starting line so that rows after a malformed one keep
    their real position.
    """
    sep = "\t" if path.suffix.lower() == ".tsv" else ","
    try:
        frame = pd.read_csv(
            path,
            sep=sep,
            dtype=str,
            keep_default_na=False,
            encoding="utf-8-sig",
            engine="python",
            index_col=False,
            on_bad_lines=lambda fields: None,
        )
    except pd.errors.EmptyDataError:
        return

    renamed: dict[str, str] = {}
    seen: set[str] = set()
    for column in frame.columns:
        canonical = normalize_column(column)
        if canonical in seen:
            continue
        seen.add(canonical)
        renamed[column] = canonical
    expected_fields = len(frame.columns)
    rows = iter(frame[list(renamed)].rename(columns=renamed).fillna("").to_dict("records"))

    for line_number, fields in _record_lines(path, sep):
        snippet = sep.join(fields)[:SNIPPET_LENGTH]
        if _is_blank_record(fields):
            yield RawLine(line_number, snippet, blank=True)
            continue
        if len(fields) > expected_fields:
            yield RawLine(
                line_number,
                snippet,
                parse_error=f"Expected {expected_fields} fields, saw {len(fields)}",
                error_action="Table Parse Error",
            )
            continue
        row = next(rows, None)
        if row is None:
            break
        values = [str(value) for value in row.values()]
        if not any(value.strip() for value in values):
            yield RawLine(line_number, snippet, blank=True)
            continue
        payload = {key: value for key, value in row.items() if value != ""}
        yield RawLine(line_number, snippet, payload=payload)
