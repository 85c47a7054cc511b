"""Tests for the Playwright session provider and builtin commands."""

import pytest
import os
import sys
from unittest.mock import AsyncMock, MagicMock, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from playwright.async_api import Error as PlaywrightError

from browser import actions
from browser.manager import BrowserManager
from core.config import BrowserConfig
from core.errors import SessionError


def make_page():
    """Playwright page double with one locator."""
    locator = MagicMock()
    locator.click = AsyncMock()
    locator.fill = AsyncMock()
    locator.wait_for = AsyncMock()
    locator.inner_text = AsyncMock(return_value="Welcome")
    locator.first = locator

    page = MagicMock()
    page.locator = MagicMock(return_value=locator)
    page.wait_for_function = AsyncMock()
    return page, locator


class TestBuiltinCommands:
    """Test puppetchef.builtin.common commands."""

    @pytest.mark.asyncio
    async def test_click(self):
        """click uses the selector and default timeout."""
        page, locator = make_page()

        await actions.click(page, {"command": "click", "selector": "#btn"})

        page.locator.assert_called_once_with("#btn")
        locator.click.assert_awaited_once_with(timeout=30000.0)

    @pytest.mark.asyncio
    async def test_click_custom_timeout(self):
        """A payload timeout is honoured."""
        page, locator = make_page()

        await actions.click(page, {"command": "click", "selector": "#btn", "timeout": 500})

        locator.click.assert_awaited_once_with(timeout=500.0)

    @pytest.mark.asyncio
    async def test_missing_selector(self):
        """Commands that need a selector reject payloads without one."""
        page, _ = make_page()

        with pytest.raises(ValueError, match="selector is required"):
            await actions.click(page, {"command": "click"})

    @pytest.mark.asyncio
    async def test_fill_out(self):
        """fill_out writes payload data as text."""
        page, locator = make_page()

        await actions.fill_out(page, {"command": "fill_out", "selector": "#user", "data": 1234})

        locator.fill.assert_awaited_once_with("1234", timeout=30000.0)

    @pytest.mark.asyncio
    async def test_fill_out_requires_data(self):
        page, _ = make_page()

        with pytest.raises(ValueError, match="data is required"):
            await actions.fill_out(page, {"command": "fill_out", "selector": "#user"})

    @pytest.mark.asyncio
    async def test_select_returns_text(self):
        """select returns the element's inner text."""
        page, locator = make_page()

        result = await actions.select(page, {"command": "select", "selector": "h1"})

        assert result == "Welcome"
        locator.wait_for.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_select_failure_yields_none(self):
        """Playwright errors during select are logged and produce None."""
        page, locator = make_page()
        locator.wait_for.side_effect = PlaywrightError("Timeout 30000ms exceeded")

        assert await actions.select(page, {"command": "select", "selector": "h1"}) is None

    @pytest.mark.asyncio
    async def test_wait(self):
        """wait sleeps for value milliseconds."""
        page, _ = make_page()

        with patch("browser.actions.asyncio.sleep", new=AsyncMock()) as sleep:
            await actions.wait(page, {"command": "wait", "value": "1500"})

        sleep.assert_awaited_once_with(1.5)

    @pytest.mark.asyncio
    async def test_polling_for(self):
        """polling_for waits on a page function once per second."""
        page, _ = make_page()

        result = await actions.polling_for(
            page, {"command": "pollingFor", "selector": "#status", "text": "Ready"}
        )

        assert result is True
        args, kwargs = page.wait_for_function.call_args
        assert kwargs["arg"] == {"selector": "#status", "text": "Ready"}
        assert kwargs["polling"] == 1000
        assert kwargs["timeout"] == 30000.0

    @pytest.mark.asyncio
    async def test_debug_prints(self, capsys):
        """debug prints its format string."""
        page, _ = make_page()

        result = await actions.debug(page, {"command": "debug", "format": "value is hello"})

        assert result == "value is hello"
        assert capsys.readouterr().out == "value is hello\n"

    def test_command_table(self):
        """The exported command table includes the legacy alias."""
        assert actions.COMMANDS["pollingFor"] is actions.polling_for
        assert set(actions.COMMANDS) == {
            "select", "click", "fill_out", "wait", "polling_for", "pollingFor", "debug",
        }


class TestBrowserManager:
    """Test the session lifecycle against a mocked Playwright driver."""

    @pytest.fixture
    def driver(self):
        page = MagicMock()
        page.goto = AsyncMock()
        page.close = AsyncMock()

        context = MagicMock()
        context.new_page = AsyncMock(return_value=page)
        context.close = AsyncMock()

        browser = MagicMock()
        browser.new_context = AsyncMock(return_value=context)
        browser.close = AsyncMock()

        playwright = MagicMock()
        playwright.chromium.launch = AsyncMock(return_value=browser)
        playwright.stop = AsyncMock()

        starter = MagicMock()
        starter.start = AsyncMock(return_value=playwright)

        with patch("browser.manager.async_playwright", return_value=starter):
            yield {
                "playwright": playwright,
                "browser": browser,
                "context": context,
                "page": page,
            }

    @pytest.mark.asyncio
    async def test_open_navigate_close(self, driver):
        """open returns the page, navigate loads the URL, close stops everything."""
        manager = BrowserManager(BrowserConfig(headless=False, args=["--no-sandbox"]))

        page = await manager.open()
        await manager.navigate("https://example.com")
        await manager.close()

        assert page is driver["page"]
        driver["playwright"].chromium.launch.assert_awaited_once_with(
            headless=False, args=["--no-sandbox"], slow_mo=None,
        )
        driver["browser"].new_context.assert_awaited_once_with(
            viewport={"width": 1920, "height": 1080},
        )
        driver["context"].set_default_navigation_timeout.assert_called_once_with(30000)
        driver["page"].goto.assert_awaited_once_with("https://example.com", wait_until="networkidle")
        driver["page"].close.assert_awaited_once()
        driver["browser"].close.assert_awaited_once()
        driver["playwright"].stop.assert_awaited_once()
        assert not manager.is_open

    @pytest.mark.asyncio
    async def test_open_is_idempotent(self, driver):
        manager = BrowserManager()

        first = await manager.open()
        second = await manager.open()

        assert first is second
        driver["playwright"].chromium.launch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_twice(self, driver):
        """A second close is a no-op."""
        manager = BrowserManager()
        await manager.open()

        await manager.close()
        await manager.close()

        driver["playwright"].stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_without_open(self):
        """Closing a never-opened manager does nothing."""
        await BrowserManager().close()

    @pytest.mark.asyncio
    async def test_navigation_failure(self, driver):
        """Navigation errors become SessionError."""
        driver["page"].goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
        manager = BrowserManager()
        await manager.open()

        with pytest.raises(SessionError, match="Navigation to https://bad failed"):
            await manager.navigate("https://bad")

    @pytest.mark.asyncio
    async def test_navigate_before_open(self):
        with pytest.raises(SessionError, match="not open"):
            await BrowserManager().navigate("https://example.com")

    @pytest.mark.asyncio
    async def test_launch_failure(self, driver):
        """Launch errors become SessionError and close still cleans up."""
        driver["playwright"].chromium.launch.side_effect = PlaywrightError("Executable doesn't exist")
        manager = BrowserManager()

        with pytest.raises(SessionError, match="Failed to launch browser"):
            await manager.open()

        await manager.close()
        driver["playwright"].stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_error(self, driver):
        """Errors while closing are reported after everything was attempted."""
        driver["browser"].close.side_effect = RuntimeError("crashed")
        manager = BrowserManager()
        await manager.open()

        with pytest.raises(SessionError, match="browser: crashed"):
            await manager.close()

        driver["playwright"].stop.assert_awaited_once()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
