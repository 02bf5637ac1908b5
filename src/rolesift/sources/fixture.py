"""Zero-network source backed by a YAML/JSON file, for dry runs and tests.

``site.options.path`` points at a file shaped like::

    listings:
      python developer:
        - title: Backend Engineer
          company: Acme
          location: Remote
          posted: Today
          url: https://jobs.example.com/1
          job_id: "1"
          description: Full text used by the fixture extractor.
    descriptions:            # optional, url -> text
      https://jobs.example.com/2: ...

A keyword mapped to ``error: <message>`` raises, to exercise keyword failures.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from rolesift.exceptions import ConfigurationError, SourceError
from rolesift.models import ListingRecord
from rolesift.sources.base import DescriptionExtractor, ListingSource
from rolesift.sources.registry import register_extractor, register_source

logger = logging.getLogger(__name__)

_CACHE: dict[Path, dict[str, Any]] = {}


def load_fixture(path: str | Path) -> dict[str, Any]:
    path = Path(path).resolve()
    if path not in _CACHE:
        if not path.exists():
            raise ConfigurationError(f"Fixture file not found at {path}.")
        text = path.read_text(encoding="utf-8")
        data = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
        _CACHE[path] = data or {}
    return _CACHE[path]


def _fixture_path(options: dict[str, Any]) -> str:
    path = str(options.get("path") or "").strip()
    if not path:
        raise ConfigurationError("The fixture source needs options.path.")
    return path


@register_source
class FixtureSource(ListingSource):
    kind = "fixture"
    needs_browser = False

    async def scrape(self, page: Any, keyword: str) -> list[ListingRecord]:
        data = load_fixture(_fixture_path(self.site.options))
        items = (data.get("listings") or {}).get(keyword) or []
        if isinstance(items, dict) and "error" in items:
            raise SourceError(str(items["error"]))

        scraped_at = self.timestamp()
        records: list[ListingRecord] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            records.append(
                ListingRecord(
                    site=self.site.key,
                    url=str(item.get("url") or "").strip(),
                    title=str(item.get("title") or "").strip(),
                    company=str(item.get("company") or "").strip(),
                    location=str(item.get("location") or "").strip(),
                    posted=str(item.get("posted") or "").strip(),
                    job_id=str(item.get("job_id") or "").strip(),
                    scraped_at=scraped_at,
                )
            )
        return records


@register_extractor
class FixtureDescriptionExtractor(DescriptionExtractor):
    kind = "fixture"
    needs_browser = False

    async def extract(self, page: Any, record: ListingRecord) -> str:
        data = load_fixture(_fixture_path(self.site.options))
        described = data.get("descriptions") or {}
        if record.url in described:
            return str(described[record.url])
        for items in (data.get("listings") or {}).values():
            if not isinstance(items, list):
                continue
            for item in items:
                if isinstance(item, dict) and str(item.get("url") or "").strip() == record.url:
                    return str(item.get("description") or "")
        return ""
