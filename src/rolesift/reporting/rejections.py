"""Audit ledger of rejected jobs, exported next to the day's output."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import asdict
from pathlib import Path

import pandas as pd

from rolesift.models import RejectedJob
from rolesift.storage.atomic import write_text_atomic
from rolesift.storage.staging import read_csv_records, render_csv

logger = logging.getLogger(__name__)

LEDGER_FIELDS: tuple[str, ...] = (
    "stage",
    "site",
    "title",
    "url",
    "reason",
    "scraped_at",
    "description",
)

# ledger column -> workbook header
WORKBOOK_COLUMNS: dict[str, str] = {
    "title": "Job Title",
    "site": "Job Site Name",
    "url": "Job Link",
    "description": "Extracted JD",
    "reason": "Reason for Rejection",
    "scraped_at": "Scraped At",
}

_SHEET_NAME_MAX = 31
_SHEET_BAD_CHARS = re.compile(r"[\[\]:*?/\\]")


class RejectionLedger:
    """Collects rejections for one run."""

    def __init__(self) -> None:
        self._entries: list[RejectedJob] = []

    def log(self, entry: RejectedJob) -> None:
        self._entries.append(entry)

    @property
    def entries(self) -> list[RejectedJob]:
        return list(self._entries)

    def count(self, stage: str | None = None) -> int:
        if stage is None:
            return len(self._entries)
        return sum(1 for e in self._entries if e.stage == stage)

    def clear(self) -> None:
        self._entries.clear()

    def export(self, path: str | Path, fmt: str = "csv") -> Path | None:
        """Write the ledger to *path*, newest rejections first.

        *fmt* is ``"csv"`` (prepended to an existing ledger) or ``"json"``.
        Returns ``None`` when there is nothing to write.
        """
        if not self._entries:
            logger.info("No rejected jobs to export.")
            return None
        path = Path(path)
        newest_first = [asdict(e) for e in reversed(self._entries)]

        if fmt == "json":
            write_text_atomic(path, json.dumps(newest_first, indent=2))
        else:
            write_text_atomic(path, render_csv(LEDGER_FIELDS, newest_first + _read_ledger(path)))

        logger.info("Exported %d rejected job(s) to %s.", len(self._entries), path)
        return path


def _read_ledger(path: Path) -> list[dict[str, str]]:
    records = read_csv_records(path)
    if not records:
        return []
    header = [name.strip() for name in records[0]]
    return [dict(zip(header, cells)) for cells in records[1:] if cells]


def sheet_name(site: str, stage: str) -> str:
    """``"<site> - <Stage>"``, cut to Excel's limits."""
    name = _SHEET_BAD_CHARS.sub("_", f"{site} - {stage.capitalize()}")
    return name[:_SHEET_NAME_MAX]


def write_workbook(ledger_csv: str | Path, path: str | Path) -> Path | None:
    """Render the CSV ledger as a workbook with one sheet per site and stage.

    Rows keep the ledger's newest-first order and get a 1-based ``Serial No``
    per sheet. Returns ``None`` when the ledger is empty or missing.
    """
    rows = _read_ledger(Path(ledger_csv))
    if not rows:
        return None
    frame = pd.DataFrame(rows, columns=list(LEDGER_FIELDS)).fillna("")
    frame["sheet"] = [sheet_name(site, stage) for site, stage in zip(frame["site"], frame["stage"])]

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.stem}.tmp{path.suffix}")
    try:
        with pd.ExcelWriter(tmp, engine="openpyxl") as writer:
            for name, group in frame.groupby("sheet", sort=False):
                sheet = group[list(WORKBOOK_COLUMNS)].rename(columns=WORKBOOK_COLUMNS)
                sheet.insert(0, "Serial No", range(1, len(sheet) + 1))
                sheet.to_excel(writer, sheet_name=name, index=False)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise

    logger.info("Saved %d rejected job(s) across %d sheet(s) to %s.", len(frame), frame["sheet"].nunique(), path)
    return path
