"""The day's canonical accepted-rows CSV, newest writes first."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Mapping

from rolesift.models import OUTPUT_FIELDS
from rolesift.storage.atomic import write_text_atomic
from rolesift.storage.staging import read_csv_records, render_csv

logger = logging.getLogger(__name__)

_LEGACY_COLUMNS = {"jobId": "job_id", "scrapedAt": "scraped_at"}


def _normalise(row: Mapping[str, str | None]) -> dict[str, str]:
    clean = {name: row.get(name) or "" for name in OUTPUT_FIELDS}
    for legacy, name in _LEGACY_COLUMNS.items():
        if not clean[name] and row.get(legacy):
            clean[name] = row.get(legacy) or ""
    return clean


def read_rows(path: str | Path) -> list[dict[str, str]]:
    records = read_csv_records(path)
    if not records:
        return []
    header, body = [name.strip() for name in records[0]], records[1:]
    return [_normalise(dict(zip(header, cells))) for cells in body if cells]


def append_rows(path: str | Path, rows: Iterable[Mapping[str, str]]) -> int:
    """Prepend *rows* ahead of everything already in *path* and rewrite the file.

    Returns the number of rows added.
    """
    new_rows = [_normalise(row) for row in rows]
    if not new_rows:
        return 0
    combined = new_rows + read_rows(path)
    write_text_atomic(path, render_csv(OUTPUT_FIELDS, combined))
    logger.info("Wrote %d new row(s) to %s (%d total).", len(new_rows), path, len(combined))
    return len(new_rows)
