"""Collaborator seams: where raw listings and descriptions come from."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Iterable

from rolesift.clock import display_timestamp, now_in
from rolesift.models import ListingRecord
from rolesift.settings import SiteSettings

logger = logging.getLogger(__name__)


class ListingSource(ABC):
    """Produces listing records for one keyword on one site.

    Contract:
      - ``scrape`` returns every listing found; dedupe happens in the pipeline.
      - Raise on failure; the pipeline logs and skips the keyword.
      - Do not touch the seen store or any pipeline file.
    """

    # Concrete subclasses MUST set this to a stable string, e.g. "fixture"
    kind: str = ""
    needs_browser: bool = True

    def __init__(self, site: SiteSettings, tz_name: str) -> None:
        self.site = site
        self.tz_name = tz_name

    def timestamp(self) -> str:
        return display_timestamp(now_in(self.tz_name))

    @abstractmethod
    async def scrape(self, page: Any, keyword: str) -> list[ListingRecord]:
        raise NotImplementedError


class DescriptionExtractor(ABC):
    """Returns the plain-text description behind a listing's URL."""

    kind: str = ""
    needs_browser: bool = True

    def __init__(self, site: SiteSettings) -> None:
        self.site = site

    @abstractmethod
    async def extract(self, page: Any, record: ListingRecord) -> str:
        raise NotImplementedError


def drop_disallowed(records: Iterable[ListingRecord], patterns: Iterable[str]) -> list[ListingRecord]:
    """Keep records with a URL that matches none of the disallow regexes."""
    compiled = [re.compile(p, re.IGNORECASE) for p in patterns if p.strip()]
    kept: list[ListingRecord] = []
    for record in records:
        url = (record.url or "").strip()
        if not url:
            continue
        if any(rx.search(url) for rx in compiled):
            logger.debug("Dropping disallowed URL %s.", url)
            continue
        kept.append(record)
    return kept
