"""Optional virtual-card balance lookup.

This module opens the "See card activity" view of an open reservation in a
second tab and reads the card's remaining balance. It is loaded
conditionally only when capture_card_activity=True is enabled.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .models import NOT_AVAILABLE
from .waits import Pacing

logger = structlog.get_logger()


CARD_ACTIVITY_SELECTORS = {
    "activity_button": ".fds-cell.all-y-gutter-16 button.fds-button2.utility.small",
    # Balance value candidates, most specific first
    "balance_values": [
        ".evc-mock-card-remaining-balance .fds-currency-value",
        ".remaining-balance .fds-currency-value",
        '[class*="remaining-balance"] .fds-currency-value',
        '[class*="balance"] .fds-currency-value',
        ".fds-currency-value",
    ],
}

# Clicks the button with window.open stubbed so the target URL can be
# opened in a tab we control
CAPTURE_URL_SCRIPT = """
(selector) => {
    const button = document.querySelector(selector);
    if (!button) return null;
    const originalOpen = window.open;
    let capturedUrl = null;
    window.open = (url) => {
        capturedUrl = url;
        return { focus: () => {} };
    };
    try {
        button.click();
    } finally {
        window.open = originalOpen;
    }
    return capturedUrl;
}
"""

READ_BALANCE_SCRIPT = """
(selectors) => {
    for (const selector of selectors) {
        for (const element of document.querySelectorAll(selector)) {
            const parent = element.closest('div');
            if (parent && parent.textContent.toLowerCase().includes('balance')) {
                return element.textContent.trim();
            }
        }
    }
    const anyValue = document.querySelector('.fds-currency-value');
    return anyValue ? anyValue.textContent.trim() : null;
}
"""


class CardActivityLookup:
    """Reads the remaining virtual-card balance from the card activity view."""

    def __init__(
        self,
        pacing: Pacing,
        selectors: Optional[dict] = None,
        timeout_ms: int = 30000,
    ) -> None:
        """Initialize the lookup.

        Args:
            pacing: Named settle delays shared by the run.
            selectors: Selector table, defaults to CARD_ACTIVITY_SELECTORS.
            timeout_ms: Navigation timeout for the activity tab.
        """
        self.pacing = pacing
        self.selectors = selectors or CARD_ACTIVITY_SELECTORS
        self.timeout_ms = timeout_ms

    async def _capture_url(self, page: Page) -> Optional[str]:
        return await page.evaluate(CAPTURE_URL_SCRIPT, self.selectors["activity_button"])

    @asynccontextmanager
    async def _activity_tab(self, page: Page, url: str) -> AsyncIterator[Page]:
        """A second tab on the same context, closed on every exit path."""
        tab = await page.context.new_page()
        try:
            await tab.goto(url, wait_until="networkidle", timeout=self.timeout_ms)
            logger.info("card_activity_tab_opened")
            yield tab
        finally:
            await tab.close()
            logger.info("card_activity_tab_closed")

    async def remaining_balance(self, page: Page) -> str:
        """Return the card's remaining balance, or N/A when unavailable.

        Args:
            page: The reservations page with the detail dialog open.
        """
        try:
            url = await self._capture_url(page)
            if not url:
                logger.info("card_activity_unavailable")
                return NOT_AVAILABLE

            async with self._activity_tab(page, url) as tab:
                await self.pacing.settle("card_activity_load")
                balance = await tab.evaluate(
                    READ_BALANCE_SCRIPT, self.selectors["balance_values"]
                )

            logger.info("card_balance_scraped", balance=balance)
            return balance or NOT_AVAILABLE

        except PlaywrightError as e:
            logger.warning("card_activity_failed", error=str(e))
            return NOT_AVAILABLE
