"""Datetime helpers."""

from __future__ import annotations

import pendulum

DEFAULT_TZ = "UTC"


def now_utc() -> pendulum.DateTime:
    return pendulum.now(DEFAULT_TZ)


def iso_timestamp(value: pendulum.DateTime | None = None) -> str:
    moment = value or now_utc()
    return moment.in_timezone(DEFAULT_TZ).format("YYYY-MM-DD[T]HH:mm:ss.SSS[Z]")


def timestamp_from_epoch(seconds: float) -> str:
    return iso_timestamp(pendulum.from_timestamp(seconds, tz=DEFAULT_TZ))


def filename_timestamp(value: pendulum.DateTime | None = None) -> str:
    """ISO timestamp safe for file names: ``2024-10-01T12-30-05-123Z``."""
    return iso_timestamp(value).replace(":", "-").replace(".", "-")
