"""
Browser Manager - single browser page used as the recipe session.

Implements the session provider contract the recipe runner relies on:
open(), navigate(url) and close().
"""

import asyncio
from typing import Optional

import structlog
from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from core.config import BrowserConfig
from core.errors import SessionError

logger = structlog.get_logger()


class BrowserManager:
    """
    Manages one Chromium instance with a single page.

    Features:
    - Launch options from BrowserConfig
    - Fixed viewport for consistent rendering
    - Idempotent close of page, context, browser and driver
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        """
        Initialize browser manager.

        Args:
            config: Browser launch and navigation settings
        """
        self.config = config or BrowserConfig()
        self.viewport = {
            "width": self.config.viewport_width,
            "height": self.config.viewport_height,
        }

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._lock = asyncio.Lock()

    async def open(self) -> Page:
        """Launch the browser and return its page."""
        async with self._lock:
            if self._page is not None:
                return self._page

            logger.info("browser_opening", headless=self.config.headless)

            try:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.config.headless,
                    args=list(self.config.args),
                    slow_mo=self.config.slow_mo_ms or None,
                )

                context_options = {"viewport": self.viewport}
                if self.config.user_agent:
                    context_options["user_agent"] = self.config.user_agent
                self._context = await self._browser.new_context(**context_options)
                self._context.set_default_navigation_timeout(self.config.navigation_timeout_ms)

                self._page = await self._context.new_page()
            except Exception as e:
                raise SessionError(f"Failed to launch browser: {e}", operation="open") from e

            logger.info("browser_opened")
            return self._page

    async def navigate(self, url: str) -> None:
        """Load url in the session page."""
        if self._page is None:
            raise SessionError("Session is not open", operation="navigate", url=url)

        logger.info("browser_navigating", url=url, wait_until=self.config.wait_until)
        try:
            await self._page.goto(url, wait_until=self.config.wait_until)
        except Exception as e:
            raise SessionError(f"Navigation to {url} failed: {e}", operation="navigate", url=url) from e

    async def close(self) -> None:
        """Close everything that was opened. Safe to call more than once."""
        async with self._lock:
            if self._playwright is None:
                return

            logger.info("browser_closing")

            errors = []
            for name, resource in (
                ("page", self._page),
                ("context", self._context),
                ("browser", self._browser),
            ):
                if resource is None:
                    continue
                try:
                    await resource.close()
                except Exception as e:
                    errors.append(f"{name}: {e}")

            try:
                await self._playwright.stop()
            except Exception as e:
                errors.append(f"playwright: {e}")

            self._page = None
            self._context = None
            self._browser = None
            self._playwright = None

            if errors:
                raise SessionError(f"Failed to close browser: {'; '.join(errors)}", operation="close")

            logger.info("browser_closed")

    @property
    def is_open(self) -> bool:
        return self._page is not None
