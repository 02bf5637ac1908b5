"""Description extractor that reads the rendered page with Playwright."""

from __future__ import annotations

import logging
from typing import Any

from rolesift.models import ListingRecord
from rolesift.sources.base import DescriptionExtractor
from rolesift.sources.registry import register_extractor

logger = logging.getLogger(__name__)

_TEXT_TIMEOUT_MS = 5_000


@register_extractor
class PageTextExtractor(DescriptionExtractor):
    """Inner text of ``site.description_selector``; full page HTML if that is empty."""

    kind = "page_text"

    async def extract(self, page: Any, record: ListingRecord) -> str:
        await page.goto(record.url, wait_until="domcontentloaded")
        selector = self.site.description_selector or "body"
        locator = page.locator(selector).first
        if await locator.count():
            try:
                text = (await locator.inner_text(timeout=_TEXT_TIMEOUT_MS)).strip()
            except Exception as exc:
                logger.debug("No text under %s on %s: %s", selector, record.url, exc)
                text = ""
            if text:
                return text
        return await page.content()
