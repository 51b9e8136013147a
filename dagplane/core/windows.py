"""
Durations and data windows relative to a scheduled time.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Tuple

from ..data.models.job import JobSpec, Window

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(d|h|m|s)")
_UNIT_SECONDS = {"d": 86400, "h": 3600, "m": 60, "s": 1}
TRUNCATE_UNITS = ("", "h", "d", "w", "M")


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as ``24h``, ``1h30m`` or ``-2h``. ``0`` is zero.

    Raises:
        ValueError: If the value is not a valid duration
    """
    text = (value or "").strip()
    if text in ("", "0"):
        return timedelta(0)

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    seconds = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    if position == 0 or position != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    try:
        return timedelta(seconds=sign * seconds)
    except OverflowError as e:
        raise ValueError(f"duration out of range: {value!r}") from e


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def truncate(value: datetime, unit: str) -> datetime:
    """Truncate to the start of the hour, day, ISO week or month."""
    if unit == "":
        return value
    if unit == "h":
        return value.replace(minute=0, second=0, microsecond=0)
    day = value.replace(hour=0, minute=0, second=0, microsecond=0)
    if unit == "d":
        return day
    if unit == "w":
        return day - timedelta(days=day.weekday())
    if unit == "M":
        return day.replace(day=1)
    raise ValueError(f"invalid truncate_to: {unit!r}")


def compute_window(window: Window, scheduled_at: datetime) -> Tuple[datetime, datetime]:
    """Return ``(start, end)`` of the data window for a run.

    ``end`` is the scheduled time truncated to ``truncate_to`` and shifted by
    ``offset``; ``start`` is ``end`` minus ``size``.

    Raises:
        ValueError: If a duration is invalid or the window falls outside the
            representable date range
    """
    size = parse_duration(window.size)
    offset = parse_duration(window.offset)
    try:
        end = truncate(as_utc(scheduled_at), window.truncate_to) + offset
        start = end - size
    except OverflowError as e:
        raise ValueError(f"window out of range for {scheduled_at.isoformat()}") from e
    return start, end


def reference_time(job: JobSpec) -> datetime:
    """Scheduled time used when a job is compiled or inspected outside a run."""
    if job.schedule.start_date is None:
        return EPOCH
    return as_utc(job.schedule.start_date)


def format_timestamp(value: datetime) -> str:
    return as_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")
