"""Playwright session used for one application page."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)

from .io_utils import RunPaths
from .page_utils import safe_goto


@dataclass(slots=True)
class BrowserConfig:
    headless: bool = True
    slow_mo: float = 0
    action_timeout_ms: int = 15000
    navigation_timeout_ms: int = 45000
    # Application forms collapse to mobile layouts below ~1024px.
    viewport_width: int = 1366
    viewport_height: int = 900
    locale: str = "en-US"


class BrowserSession:
    """Owns the Chromium instance and the single page an autofill run works on."""

    def __init__(
        self,
        config: Optional[BrowserConfig] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or BrowserConfig()
        self.logger = logger or logging.getLogger(__name__)
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def __aenter__(self) -> "BrowserSession":
        cfg = self.config
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=cfg.headless, slow_mo=cfg.slow_mo
        )
        self._context = await self._browser.new_context(
            viewport={"width": cfg.viewport_width, "height": cfg.viewport_height},
            locale=cfg.locale,
        )
        self._page = await self._context.new_page()
        self._page.set_default_timeout(cfg.action_timeout_ms)
        self._page.set_default_navigation_timeout(cfg.navigation_timeout_ms)
        self.logger.debug(
            "Chromium started (headless=%s, locale=%s)", cfg.headless, cfg.locale
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def page(self) -> Page:
        if not self._page:
            raise RuntimeError("BrowserSession is not started")
        return self._page

    async def open(self, url: str) -> str:
        """Navigate to the application form and return the URL it settled on."""
        await safe_goto(
            self.page,
            url,
            timeout_ms=self.config.navigation_timeout_ms,
            logger=self.logger,
        )
        if self.page.url != url:
            self.logger.info("Redirected to %s", self.page.url)
        return self.page.url

    async def capture(self, run_paths: RunPaths, name: str) -> Path:
        """Full-page screenshot stored under the run directory."""
        path = run_paths.build_path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        await self.page.screenshot(path=str(path), full_page=True)
        return path

    async def close(self) -> None:
        if self._context:
            await self._context.close()
            self._context = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
