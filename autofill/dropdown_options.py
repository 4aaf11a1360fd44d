"""Option harvesting and selection for native and custom dropdowns.

Custom widgets are opened keyboard-first (Space, Enter, ArrowDown) because
many single-page-app dropdowns only render their options after a real
focus + key event; a click on the control is the last resort.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from .option_matching import clean_options, match_option, normalize_text
from .page_utils import settle, wait_for_any_selector

MENU_SELECTOR = '.select__menu, [role="listbox"], [role="menu"], .dropdown-menu'
OPTION_SELECTOR = '[role="option"], .select__option, .Select-option, [class*="option"]'
OPEN_KEYS = ("Space", "Enter", "ArrowDown")

TAG_NAME_SCRIPT = "el => el.tagName.toLowerCase()"
NATIVE_OPTIONS_SCRIPT = """
(el) => Array.from(el.options || []).map(opt => (opt.textContent || '').trim())
"""

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DropdownConfig:
    key_wait_ms: float = 150
    menu_wait_ms: float = 2000
    settle_ms: float = 300
    close_wait_ms: float = 100


async def extract_native_options(select: Locator) -> List[str]:
    raw = await select.evaluate(NATIVE_OPTIONS_SCRIPT)
    return clean_options(raw or [])


async def _text_input(control: Locator) -> Optional[Locator]:
    if await control.evaluate(TAG_NAME_SCRIPT) == "input":
        return control
    for selector in ('input[role="combobox"]', "input"):
        candidate = control.locator(selector).first
        if await candidate.count():
            return candidate
    return None


async def is_menu_open(page: Page) -> bool:
    return await page.locator(MENU_SELECTOR).count() > 0


async def open_menu(
    page: Page,
    control: Locator,
    *,
    config: Optional[DropdownConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> bool:
    config = config or DropdownConfig()
    logger = logger or LOGGER
    target = await _text_input(control) or control
    await target.focus()
    for key in OPEN_KEYS:
        await target.press(key)
        await settle(config.key_wait_ms)
        if await is_menu_open(page):
            logger.debug("Dropdown opened with %s", key)
            return True
    logger.debug("Keyboard open failed, clicking the control")
    await control.click()
    await settle(config.key_wait_ms)
    return await is_menu_open(page)


async def close_menu(
    control: Locator, *, config: Optional[DropdownConfig] = None
) -> None:
    config = config or DropdownConfig()
    target = await _text_input(control) or control
    try:
        await target.press("Escape")
    except PlaywrightError:
        return
    await settle(config.close_wait_ms)


def _menu_options(page: Page) -> Locator:
    return page.locator(MENU_SELECTOR).first.locator(OPTION_SELECTOR)


async def _option_entries(options_locator: Locator) -> List[Tuple[int, str]]:
    # Wrappers matched by [class*="option"] carry every option, one per line.
    texts = [text.strip() for text in await options_locator.all_inner_texts()]
    return [(index, text) for index, text in enumerate(texts) if text and "\n" not in text]


async def _open_and_wait(
    page: Page, control: Locator, config: DropdownConfig, logger: logging.Logger
) -> bool:
    if not await open_menu(page, control, config=config, logger=logger):
        logger.warning("Dropdown did not open")
        return False
    if not await wait_for_any_selector(page, MENU_SELECTOR, timeout_ms=config.menu_wait_ms):
        logger.warning("Dropdown menu never appeared")
        await close_menu(control, config=config)
        return False
    await settle(config.settle_ms)
    return True


async def extract_custom_options(
    page: Page,
    control: Locator,
    *,
    config: Optional[DropdownConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> List[str]:
    config = config or DropdownConfig()
    logger = logger or LOGGER
    try:
        if not await _open_and_wait(page, control, config, logger):
            return []
        options_locator = _menu_options(page)
        entries = await _option_entries(options_locator)
        options = clean_options(text for _, text in entries)
        await close_menu(control, config=config)
    except PlaywrightError as exc:
        logger.warning("Could not extract dropdown options: %s", exc)
        return []
    logger.debug("Extracted %s custom dropdown options", len(options))
    return options


async def extract_options(
    page: Page,
    control: Locator,
    *,
    config: Optional[DropdownConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> List[str]:
    """Options of a native ``<select>`` (or one nested in ``control``), else a custom widget."""
    if await control.evaluate(TAG_NAME_SCRIPT) == "select":
        return await extract_native_options(control)
    nested = control.locator("select").first
    if await nested.count():
        return await extract_native_options(nested)
    return await extract_custom_options(page, control, config=config, logger=logger)


def _pick_option(texts: List[str], wanted: str) -> Optional[int]:
    cleaned = [normalize_text(text) for text in texts]
    target = normalize_text(wanted)
    if target in cleaned:
        return cleaned.index(target)
    hit = match_option(wanted, texts)
    if hit is None:
        return None
    return texts.index(hit)


async def select_custom_option(
    page: Page,
    control: Locator,
    option_text: str,
    *,
    config: Optional[DropdownConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> bool:
    """Open the widget, click the option whose text matches and let the menu close."""
    config = config or DropdownConfig()
    logger = logger or LOGGER
    if not await _open_and_wait(page, control, config, logger):
        return False
    options_locator = _menu_options(page)
    entries = await _option_entries(options_locator)
    picked = _pick_option([text for _, text in entries], option_text)
    if picked is None:
        logger.warning("Option %r not found among %s menu entries", option_text, len(entries))
        await close_menu(control, config=config)
        return False
    await options_locator.nth(entries[picked][0]).click()
    await settle(config.close_wait_ms)
    return True


__all__ = [
    "DropdownConfig",
    "MENU_SELECTOR",
    "OPTION_SELECTOR",
    "extract_native_options",
    "extract_custom_options",
    "extract_options",
    "open_menu",
    "close_menu",
    "is_menu_open",
    "select_custom_option",
]
