"""Session staging store: the roles snapshot a session can be resumed from."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Iterable

from rolesift.clock import parse_date_folder_label
from rolesift.models import STAGING_FIELDS, StagedRole
from rolesift.storage.atomic import write_text_atomic
from rolesift.storage.paths import (
    ROLES_FILE_NAME,
    OutputPaths,
    SessionPaths,
    build_session_paths,
    day_output_paths,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocatedSession:
    output_paths: OutputPaths
    session_paths: SessionPaths


def render_csv(header: Iterable[str], rows: Iterable[dict[str, str]]) -> str:
    """Render rows as CSV text with ``\\r\\n`` row endings.

    Fields holding a delimiter, a quote, ``\\r`` or ``\\n`` get quoted, so cell
    text survives a read back byte for byte.
    """
    buf = io.StringIO(newline="")
    writer = csv.DictWriter(
        buf,
        fieldnames=list(header),
        quoting=csv.QUOTE_MINIMAL,
        extrasaction="ignore",
    )
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buf.getvalue()


def read_csv_records(path: str | Path) -> list[list[str]]:
    """Raw CSV records of *path*; a missing file has none."""
    try:
        with open(path, newline="", encoding="utf-8") as fh:
            return list(csv.reader(fh))
    except FileNotFoundError:
        return []


def write_roles(session_paths: SessionPaths, rows: Iterable[StagedRole]) -> None:
    """Overwrite the session's roles file with the full current staged list."""
    content = render_csv(STAGING_FIELDS, (row.staging_row() for row in rows))
    write_text_atomic(session_paths.roles_file, content)


def read_roles(path: str | Path) -> list[StagedRole]:
    """Read a roles file. Short rows and rows without a URL are dropped.

    Cells are kept as written: the dedupe key of a listing without a job id
    hashes them, so trimming would change it.
    """
    roles: list[StagedRole] = []
    for cells in read_csv_records(path):
        if not cells or cells[0].strip().lower() == "session_id":
            continue
        if len(cells) < len(STAGING_FIELDS):
            continue
        values = dict(zip(STAGING_FIELDS, cells))
        values["session_id"] = values["session_id"].strip()
        if not values["url"].strip():
            continue
        roles.append(StagedRole(**values))

    logger.debug("Read %d staged role(s) from %s.", len(roles), path)
    return roles


def _folder_sort_key(folder: Path) -> tuple[int, date]:
    parsed = parse_date_folder_label(folder.name)
    return (1, parsed) if parsed else (0, date.min)


def find_session(root: str | Path, host: str, session_id: str) -> LocatedSession | None:
    """Scan every day folder of *host* for the session's roles file."""
    site_root = Path(root) / host
    if not site_root.is_dir():
        return None

    folders = sorted(
        (entry for entry in site_root.iterdir() if entry.is_dir()),
        key=_folder_sort_key,
        reverse=True,
    )
    for folder in folders:
        roles_file = folder / "sessions" / session_id / "roles" / ROLES_FILE_NAME
        if not roles_file.is_file():
            continue
        output_paths = day_output_paths(folder)
        return LocatedSession(
            output_paths=output_paths,
            session_paths=build_session_paths(output_paths, session_id),
        )
    return None
