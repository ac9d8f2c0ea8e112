from __future__ import annotations

import logging
import os

from playwright.async_api import (
    BrowserContext,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from ..config import settings
from .highlight import HighlightController


class BrowserSession:
    def __init__(self, user_data_dir: str | None = None, headless: bool | None = None) -> None:
        self.context: BrowserContext | None = None
        self.page: Page | None = None
        self.highlighter: HighlightController | None = None
        self._playwright: Playwright | None = None
        self.headless = settings.headless if headless is None else headless
        self.user_data_dir = os.path.expanduser(
            user_data_dir or settings.user_data_dir or "~/.pageguide_profiles/default"
        )

    async def __aenter__(self) -> "BrowserSession":
        self._playwright = await async_playwright().start()
        self.context = await self._playwright.chromium.launch_persistent_context(
            user_data_dir=self.user_data_dir,
            headless=self.headless,
        )
        self.page = await self.context.new_page()
        self.highlighter = HighlightController(self.page)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.highlighter:
            await self.highlighter.clear()
        if self.context:
            await self.context.close()
        if self._playwright:
            await self._playwright.stop()

    async def goto(self, url: str, wait_ms: int = 1500) -> None:
        """
        Navigate to a URL and give the app a moment to hydrate.
        """
        if not self.page:
            raise RuntimeError("Browser page is not initialized. Use within an async context manager.")

        # A highlight never survives navigation; drop it before the document goes away.
        if self.highlighter:
            await self.highlighter.clear()

        await self.page.goto(url, wait_until="domcontentloaded", timeout=30000)
        try:
            await self.page.wait_for_load_state("networkidle", timeout=5000)
        except PlaywrightTimeoutError:
            logging.info("browser_networkidle_timeout url=%s", url)

        if wait_ms > 0:
            await self.page.wait_for_timeout(wait_ms)

    def __repr__(self) -> str:
        return f"BrowserSession(headless={self.headless})"
