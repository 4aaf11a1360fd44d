"""Navigation and bounded-wait helpers.

Every wait here takes an explicit timeout and reports the outcome as a
boolean; none of them raise on expiry.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError


def _log_fallback(logger) -> None:
    if logger:
        logger.debug("load state timed out, retrying with domcontentloaded")


async def safe_goto(
    page,
    url: str,
    *,
    wait_until: str = "load",
    timeout_ms: int = 20000,
    logger=None,
):
    try:
        return await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
    except PlaywrightTimeoutError:
        if wait_until != "load":
            raise
        _log_fallback(logger)
        return await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)


async def settle(ms: float) -> None:
    if ms > 0:
        await asyncio.sleep(ms / 1000)


async def poll_until(
    check: Callable[[], Awaitable[bool]],
    *,
    timeout_ms: float,
    interval_ms: float = 30,
) -> bool:
    """Re-run ``check`` until it passes or ``timeout_ms`` elapses."""
    deadline = time.monotonic() + timeout_ms / 1000
    while True:
        try:
            if await check():
                return True
        except PlaywrightError:
            pass
        if time.monotonic() >= deadline:
            return False
        await settle(interval_ms)


async def wait_for_any_selector(
    page, selectors: str, *, timeout_ms: float
) -> bool:
    """Wait for a selector to attach (DOM-mutation driven inside Playwright)."""
    try:
        await page.wait_for_selector(selectors, state="attached", timeout=timeout_ms)
        return True
    except PlaywrightTimeoutError:
        return False
    except PlaywrightError:
        return False


__all__ = ["safe_goto", "settle", "poll_until", "wait_for_any_selector"]
