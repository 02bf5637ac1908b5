"""Playwright-backed implementation of BrowserSession."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from rolesift.exceptions import BrowserLaunchError

logger = logging.getLogger(__name__)


class PlaywrightAdapter:
    """Async browser driver built on Playwright Chromium.

    With a ``user_data_dir`` the context is persistent, so cookies and logins
    survive between runs.
    """

    def __init__(
        self,
        headless: bool = True,
        user_data_dir: str = "",
        navigation_timeout_ms: int = 60_000,
    ) -> None:
        self._headless = headless
        self._user_data_dir = user_data_dir
        self._navigation_timeout_ms = navigation_timeout_ms
        self._pw: Any = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    @property
    def context(self) -> BrowserContext:
        assert self._context is not None, "Browser not launched — call launch() first."
        return self._context

    # --- lifecycle ---

    async def launch(self) -> None:
        ctx_kwargs: dict[str, Any] = {
            "viewport": {"width": 1280, "height": 800},
            "locale": "en-US",
        }
        try:
            self._pw = await async_playwright().start()
            if self._user_data_dir:
                user_dir = Path(self._user_data_dir).resolve()
                user_dir.mkdir(parents=True, exist_ok=True)
                self._context = await self._pw.chromium.launch_persistent_context(
                    str(user_dir), headless=self._headless, **ctx_kwargs
                )
            else:
                self._browser = await self._pw.chromium.launch(headless=self._headless)
                self._context = await self._browser.new_context(**ctx_kwargs)
            self._context.set_default_navigation_timeout(self._navigation_timeout_ms)
            logger.info("Browser launched (headless=%s).", self._headless)
        except Exception as exc:
            raise BrowserLaunchError(f"Failed to start Playwright Chromium: {exc}") from exc

    async def close(self) -> None:
        if self._context:
            await self._context.close()
        if self._browser:
            await self._browser.close()
        if self._pw:
            await self._pw.stop()
        self._context = self._browser = self._pw = None
        logger.info("Browser closed.")

    # --- pages ---

    @asynccontextmanager
    async def open_page(self) -> AsyncIterator[Page]:
        page = await self.context.new_page()
        try:
            yield page
        finally:
            try:
                await page.close()
            except Exception as exc:
                logger.debug("Ignoring error while closing page: %s", exc)
