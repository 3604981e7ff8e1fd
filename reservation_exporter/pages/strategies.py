"""Ordered fallback strategies for the portal's unstable markup.

Where the portal renders one of several variants (two password forms,
several search inputs, several ways a dialog can be dismissed) the
alternatives are listed here as data and tried in order.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

logger = structlog.get_logger()


@dataclass(frozen=True)
class SelectorProbe:
    """A candidate selector and how long to wait for it to become visible."""

    selector: str
    timeout_ms: int

    async def locate(self, page: Page) -> Optional[Locator]:
        locator = page.locator(self.selector).first
        try:
            await locator.wait_for(state="visible", timeout=self.timeout_ms)
        except PlaywrightError:
            return None
        return locator


@dataclass(frozen=True)
class PasswordVariant(SelectorProbe):
    """One rendering of the password step and its matching submit control."""

    submit_selector: str = ""


async def first_visible(
    page: Page, probes: Sequence[SelectorProbe]
) -> Optional[tuple[SelectorProbe, Locator]]:
    """Return the first probe whose selector becomes visible, with its locator."""
    for probe in probes:
        locator = await probe.locate(page)
        if locator is not None:
            logger.debug("selector_probe_matched", selector=probe.selector)
            return probe, locator
        logger.debug("selector_probe_missed", selector=probe.selector, timeout_ms=probe.timeout_ms)
    return None


class DialogCloseStrategy(ABC):
    """One way of dismissing the reservation detail dialog."""

    name: str = ""

    @abstractmethod
    async def attempt(self, page: Page) -> None:
        """Try to close the dialog; raise if the attempt could not be made."""


class CloseButtonStrategy(DialogCloseStrategy):
    name = "close_button"

    def __init__(self, selector: str, timeout_ms: int = 3000) -> None:
        self.selector = selector
        self.timeout_ms = timeout_ms

    async def attempt(self, page: Page) -> None:
        await page.locator(self.selector).first.click(timeout=self.timeout_ms)


class ScriptedCloseStrategy(DialogCloseStrategy):
    """Click the close button from page script, only if it is rendered."""

    name = "scripted_click"

    SCRIPT = """
    (selector) => {
        const button = document.querySelector(selector);
        if (!button || button.offsetParent === null) return false;
        button.click();
        return true;
    }
    """

    def __init__(self, selector: str) -> None:
        self.selector = selector

    async def attempt(self, page: Page) -> None:
        clicked = await page.evaluate(self.SCRIPT, self.selector)
        if not clicked:
            raise LookupError(f"No visible close button for {self.selector}")


class AlternateCloseButtonStrategy(CloseButtonStrategy):
    name = "alternate_close_button"


class EscapeKeyStrategy(DialogCloseStrategy):
    name = "escape_key"

    async def attempt(self, page: Page) -> None:
        await page.keyboard.press("Escape")


async def close_dialog(
    page: Page,
    strategies: Sequence[DialogCloseStrategy],
    dialog_selector: str,
    verify_timeout_ms: int = 3000,
) -> Optional[str]:
    """Try each close strategy until the dialog is gone.

    A strategy only counts once the dialog has been seen to hide and is
    confirmed absent on a second check.

    Returns:
        Name of the strategy that closed the dialog, or None if all failed.
    """
    dialog = page.locator(dialog_selector).first
    for strategy in strategies:
        try:
            await strategy.attempt(page)
            await dialog.wait_for(state="hidden", timeout=verify_timeout_ms)
            if await dialog.is_visible():
                logger.debug("dialog_still_visible", strategy=strategy.name)
                continue
            logger.debug("dialog_closed", strategy=strategy.name)
            return strategy.name
        except (PlaywrightError, LookupError) as e:
            logger.debug("dialog_close_attempt_failed", strategy=strategy.name, error=str(e))
    return None
