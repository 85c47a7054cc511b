"""
Builtin plugin namespace ``puppetchef.builtin.common``.

Each command is an async capability ``(page, payload) -> result`` operating
on a Playwright page.
"""

import asyncio
from typing import Any

import structlog
from playwright.async_api import Error as PlaywrightError, Locator, Page

logger = structlog.get_logger()


DEFAULT_TIMEOUT_MS = 30000
POLLING_INTERVAL_MS = 1000

_CONTAINS_TEXT_JS = """
(data) => {
    const element = document.querySelector(data.selector);
    return element ? element.innerText.includes(data.text) : false;
}
"""


def _timeout(payload: dict[str, Any]) -> float:
    return float(payload.get("timeout") or DEFAULT_TIMEOUT_MS)


def _locator(page: Page, payload: dict[str, Any]) -> Locator:
    selector = payload.get("selector")
    if not selector:
        raise ValueError("selector is required")
    return page.locator(selector)


async def select(page: Page, payload: dict[str, Any]) -> Any:
    """
    Read the inner text of the first element matching selector.

    Params:
        selector: CSS selector (required)
        timeout: Timeout in ms (default: 30000)

    A Playwright failure is logged and yields None.
    """
    locator = _locator(page, payload).first
    try:
        await locator.wait_for(timeout=_timeout(payload))
        return await locator.inner_text(timeout=_timeout(payload))
    except PlaywrightError as e:
        logger.error("select_failed", selector=payload.get("selector"), error=str(e))
        return None


async def click(page: Page, payload: dict[str, Any]) -> None:
    """Click the element matching selector."""
    await _locator(page, payload).click(timeout=_timeout(payload))


async def fill_out(page: Page, payload: dict[str, Any]) -> None:
    """Fill the input matching selector with payload["data"]."""
    data = payload.get("data")
    if data is None:
        raise ValueError("data is required")
    await _locator(page, payload).fill(str(data), timeout=_timeout(payload))


async def wait(page: Page, payload: dict[str, Any]) -> None:
    """Sleep for payload["value"] milliseconds."""
    await asyncio.sleep(int(payload.get("value", 0)) / 1000)


async def polling_for(page: Page, payload: dict[str, Any]) -> bool:
    """
    Poll once per second until the element at selector contains text.

    Params:
        selector: CSS selector (required)
        text: Text to wait for (required)
        timeout: Timeout in ms (default: 30000)
    """
    selector = payload.get("selector")
    text = payload.get("text")
    if not selector or text is None:
        raise ValueError("selector and text are required")

    logger.debug("polling_for_text", selector=selector, text=text)
    await page.wait_for_function(
        _CONTAINS_TEXT_JS,
        arg={"selector": selector, "text": str(text)},
        polling=POLLING_INTERVAL_MS,
        timeout=_timeout(payload),
    )
    return True


async def debug(page: Page, payload: dict[str, Any]) -> str:
    """Print payload["format"] to stdout."""
    message = str(payload.get("format", ""))
    print(message)
    return message


COMMANDS = {
    "select": select,
    "click": click,
    "fill_out": fill_out,
    "wait": wait,
    "polling_for": polling_for,
    "pollingFor": polling_for,
    "debug": debug,
}
