"""Run-date and display-time helpers. Day folders follow the configured zone."""

from __future__ import annotations

import re
import time
from datetime import date, datetime
from zoneinfo import ZoneInfo

_FOLDER_RE = re.compile(r"^(\d{2})_(\d{2})_(\d{4})$")


def now_in(tz_name: str) -> datetime:
    return datetime.now(ZoneInfo(tz_name))


def date_folder_label(moment: datetime | date) -> str:
    """``MM_DD_YYYY`` label used for day folders and output file names."""
    return f"{moment.month:02d}_{moment.day:02d}_{moment.year}"


def parse_date_folder_label(label: str) -> date | None:
    match = _FOLDER_RE.match(label)
    if not match:
        return None
    month, day, year = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_run_date(value: str, tz_name: str) -> datetime:
    """Turn a ``YYYY-MM-DD`` override into noon of that day in *tz_name*."""
    try:
        day = date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid run date {value!r}; expected YYYY-MM-DD.") from exc
    return datetime(day.year, day.month, day.day, 12, 0, 0, tzinfo=ZoneInfo(tz_name))


def display_timestamp(moment: datetime) -> str:
    """Render e.g. ``10/18/2026 3:04 PM EDT`` for the ``scraped_at`` column."""
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    zone = moment.tzname() or ""
    return (
        f"{moment.month:02d}/{moment.day:02d}/{moment.year} "
        f"{hour}:{moment.minute:02d} {meridiem} {zone}"
    ).strip()


def create_session_id() -> str:
    return f"session_{time.time_ns() // 1_000_000}"
