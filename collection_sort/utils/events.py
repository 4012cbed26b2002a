"""Per-run event log: a CSV file sink mirrored to the console.

Every step of a run records an event with a level, an action label and
optional product title, product id and free-text details. Events go through
the stdlib ``logging`` machinery, so a failing sink is reported through
``Handler.handleError`` and never interrupts the run.
"""

from __future__ import annotations

import csv
import itertools
import logging
import sys
from pathlib import Path
from typing import TextIO

from collection_sort.utils.dates import filename_timestamp, timestamp_from_epoch

LOG_FILE_BASE = "sort-products_log"
CSV_HEADER = ["Timestamp", "Level", "Action", "Product Title", "Product ID", "Details"]
CONSOLE_DETAIL_LIMIT = 100

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_run_counter = itertools.count(1)


def level_label(record: logging.LogRecord) -> str:
    if record.levelno == logging.WARNING:
        return "WARN"
    return record.levelname


def event_fields(record: logging.LogRecord) -> tuple[str, str, str]:
    return (
        getattr(record, "product_title", "") or "",
        getattr(record, "product_id", "") or "",
        getattr(record, "details", "") or "",
    )


class CsvEventHandler(logging.FileHandler):
    """Writes one CSV row per event, header first."""

    def __init__(self, path: Path) -> None:
        super().__init__(path, mode="w", encoding="utf-8")
        self._writer = csv.writer(self.stream, lineterminator="\n")
        self._writer.writerow(CSV_HEADER)
        self.flush()

    def emit(self, record: logging.LogRecord) -> None:
        if self.stream is None:
            return
        try:
            title, product_id, details = event_fields(record)
            self._writer.writerow(
                [
                    timestamp_from_epoch(record.created),
                    level_label(record),
                    record.getMessage(),
                    title,
                    product_id,
                    details,
                ]
            )
            self.flush()
        except Exception:
            self.handleError(record)


class ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        title, product_id, details = event_fields(record)
        message = f"[{timestamp_from_epoch(record.created)}] [{level_label(record)}] {record.getMessage()}"
        if title:
            message += f" | Title: {title}"
        if product_id:
            message += f" | ID: {product_id}"
        if details:
            if len(details) > CONSOLE_DETAIL_LIMIT:
                details = details[:CONSOLE_DETAIL_LIMIT] + "..."
            message += f" | Details: {details}"
        return message


class EventLog:
    """Logging capability handed to every stage of a run."""

    def __init__(
        self,
        *,
        path: Path | None = None,
        console_level: int = logging.INFO,
        console_stream: TextIO | None = None,
    ) -> None:
        self.path = path
        self.logger = logging.getLogger(f"collection_sort.events.run{next(_run_counter)}")
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        self._handlers: list[logging.Handler] = []
        if path is not None:
            file_handler = CsvEventHandler(path)
            file_handler.setLevel(logging.DEBUG)
            self._attach(file_handler)
        console = logging.StreamHandler(console_stream or sys.stdout)
        console.setLevel(console_level)
        console.setFormatter(ConsoleFormatter())
        self._attach(console)

    def _attach(self, handler: logging.Handler) -> None:
        self.logger.addHandler(handler)
        self._handlers.append(handler)

    def log(
        self,
        level: str,
        action: str,
        title: str | None = None,
        product_id: str | None = None,
        details: str | None = None,
    ) -> None:
        self.logger.log(
            LEVELS.get(level, logging.INFO),
            "%s",
            action,
            extra={"product_title": title, "product_id": product_id, "details": details},
        )

    def debug(self, action: str, title: str | None = None, product_id: str | None = None, details: str | None = None) -> None:
        self.log("debug", action, title, product_id, details)

    def info(self, action: str, title: str | None = None, product_id: str | None = None, details: str | None = None) -> None:
        self.log("info", action, title, product_id, details)

    def warn(self, action: str, title: str | None = None, product_id: str | None = None, details: str | None = None) -> None:
        self.log("warn", action, title, product_id, details)

    def error(self, action: str, title: str | None = None, product_id: str | None = None, details: str | None = None) -> None:
        self.log("error", action, title, product_id, details)

    def flush(self) -> None:
        for handler in self._handlers:
            handler.flush()

    def close(self) -> None:
        for handler in self._handlers:
            handler.flush()
            handler.close()
            self.logger.removeHandler(handler)
        self._handlers.clear()

    def __enter__(self) -> "EventLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_event_log(log_dir: Path, *, console_level: int = logging.INFO) -> EventLog:
    """Create the run's log file, named after the run-start timestamp."""
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / f"{LOG_FILE_BASE}_{filename_timestamp()}.csv"
    events = EventLog(path=path, console_level=console_level)
    events.info("Event Log Opened", details=f"Logging to CSV file: {path}")
    return events
