"""On-disk layout: ``<root>/<host>/<MM_DD_YYYY>/`` and its session folders."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

from rolesift.clock import date_folder_label

ROLES_FILE_NAME = "new_roles.csv"
SEEN_FILE_NAME = "seen.json"
REJECTED_FILE_NAME = "rejected_jobs.csv"
LEGACY_CSV_NAME = "new_jobs.csv"


@dataclass(frozen=True)
class OutputPaths:
    directory: Path
    csv_file: Path
    seen_file: Path
    rejected_file: Path
    rejected_workbook: Path
    date_folder: str


@dataclass(frozen=True)
class SessionPaths:
    session_id: str
    session_dir: Path
    roles_dir: Path
    roles_file: Path


def output_csv_name(date_folder: str) -> str:
    return f"new_jobs_{date_folder}.csv"


def rejected_workbook_name(date_folder: str) -> str:
    return f"rejected_jobs_{date_folder}.xlsx"


def build_output_paths(root: str | Path, host: str, run_date: datetime | date) -> OutputPaths:
    label = date_folder_label(run_date)
    return day_output_paths(Path(root) / host / label)


def day_output_paths(directory: Path) -> OutputPaths:
    """Paths for an existing or new day folder. Prefers the legacy CSV if only it exists."""
    label = directory.name
    csv_file = directory / output_csv_name(label)
    legacy = directory / LEGACY_CSV_NAME
    if not csv_file.exists() and legacy.exists():
        csv_file = legacy
    return OutputPaths(
        directory=directory,
        csv_file=csv_file,
        seen_file=directory / SEEN_FILE_NAME,
        rejected_file=directory / REJECTED_FILE_NAME,
        rejected_workbook=directory / rejected_workbook_name(label),
        date_folder=label,
    )


def build_session_paths(output: OutputPaths, session_id: str) -> SessionPaths:
    session_dir = output.directory / "sessions" / session_id
    roles_dir = session_dir / "roles"
    return SessionPaths(
        session_id=session_id,
        session_dir=session_dir,
        roles_dir=roles_dir,
        roles_file=roles_dir / ROLES_FILE_NAME,
    )
