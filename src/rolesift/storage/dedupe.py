"""Dedupe keys and the per-day seen store."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Iterable, Protocol

from rolesift.storage.atomic import write_text_atomic

logger = logging.getLogger(__name__)


class _Keyable(Protocol):
    title: str
    company: str
    location: str
    url: str
    job_id: str


def compute_key(record: _Keyable) -> str:
    """Return the external job id when present, else a SHA-1 of the identifying fields."""
    job_id = (record.job_id or "").strip()
    if job_id:
        return job_id
    base = f"{record.title}|{record.company}|{record.location}|{record.url}"
    return hashlib.sha1(base.encode("utf-8")).hexdigest()


def load_seen(path: str | Path) -> set[str]:
    """Load the seen store. A missing file is an empty store; other errors propagate."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return set()
    data = json.loads(raw) if raw.strip() else []
    if not isinstance(data, list):
        raise ValueError(f"Seen store {path} does not hold a JSON array.")
    return {str(key) for key in data}


def save_seen(path: str | Path, keys: Iterable[str]) -> None:
    payload = json.dumps(sorted(set(keys)), indent=2)
    write_text_atomic(path, payload + "\n")
    logger.debug("Seen store saved to %s.", path)
