"""Page object for a property's reservations list."""
import re
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from ..exceptions import DialogTimeout, SearchInputNotFoundError, WaitTimeout
from ..models import BasicReservation, ScraperConfig
from ..waits import Pacing, wait_with_fallback
from .base_page import BasePage
from .reservation_dialog import ReservationDialog
from .strategies import SelectorProbe, first_visible

logger = structlog.get_logger()

TOTAL_RESULTS_PATTERN = re.compile(r"of (\d+) Results")


def parse_total_results(text: Optional[str]) -> int:
    """Total count from the pagination summary ("1 - 10 of 42 Results")."""
    if not text:
        return 0
    match = TOTAL_RESULTS_PATTERN.search(text)
    return int(match.group(1)) if match else 0


class ReservationsPage(BasePage):
    """Search box, results table, detail dialogs and pagination."""

    SELECTORS = {
        "layout": ".fds-layout",
        "save_button": "#save-button",
        "result_links": "td.guestName button.guestNameLink",
        "rows": "table.fds-data-table tbody tr",
        "guest_link": "td.guestName button.guestNameLink",
        "results_summary": ".fds-pagination-showing-result",
        "next_button": ".fds-pagination-button.next button",
    }

    # Rendered search inputs seen on this page, in order of preference
    SEARCH_INPUT_PROBES = (
        SelectorProbe('input[name="searchInput"]', 5000),
        SelectorProbe("input.fds-field-input", 5000),
        SelectorProbe('input[type="text"]', 5000),
        SelectorProbe(".fds-field-input", 5000),
        SelectorProbe('input[type="search"]', 5000),
    )

    ROW_SCRIPT = """
    (row) => {
        const text = (selector) => {
            const el = row.querySelector(selector);
            return el ? el.textContent.trim() : '';
        };
        return {
            guestName: text('td.guestName button.guestNameLink span.fds-button2-label'),
            reservationId: text('td.reservationId div.fds-cell'),
            confirmationCode: text('td.confirmationCode label.confirmationCodeLabel'),
            checkInDate: text('td.checkInDate'),
            checkOutDate: text('td.checkOutDate'),
            roomType: text('td.roomType'),
            bookingAmount: text('td.bookingAmount .fds-currency-value'),
            bookedDate: text('td.bookedOnDate'),
        };
    }
    """

    HAS_NEXT_SCRIPT = """
    (selector) => {
        const button = document.querySelector(selector);
        return Boolean(button && !button.disabled);
    }
    """

    SCROLL_SCRIPT = "() => window.scrollBy({ top: 300, behavior: 'smooth' })"

    def __init__(self, page: Page, pacing: Pacing, config: ScraperConfig) -> None:
        super().__init__(page, pacing)
        self.config = config

    @property
    def url_pattern(self) -> str:
        return r"https?://apps\.expediapartnercentral\.com/.*reservations.*"

    async def search(self, term: str) -> None:
        """Type a search term and apply it.

        Raises:
            SearchInputNotFoundError: If no candidate input becomes visible.
        """
        await self.wait_for_selector(
            self.SELECTORS["layout"], timeout=self.config.element_timeout_ms
        )
        match = await first_visible(self._page, self.SEARCH_INPUT_PROBES)
        if match is None:
            await self.save_debug_snapshot("reservation_search_input")
            raise SearchInputNotFoundError("Could not find search input field")

        probe, search_input = match
        logger.info("search_input_found", selector=probe.selector)
        await search_input.click()
        await self.pacing.settle("after_search_click")
        await search_input.fill("")
        await self.type_slowly(search_input, term, self.config.search_typing_delay_ms)

        save = await self.wait_for_selector(self.SELECTORS["save_button"], timeout=10000)
        await save.click()
        await self.pacing.settle("search_results")

    async def result_count(self) -> int:
        return await self._page.locator(self.SELECTORS["result_links"]).count()

    async def total_results(self) -> int:
        text = await self.get_text(self.SELECTORS["results_summary"], timeout=5000)
        return parse_total_results(text)

    async def wait_for_rows(self) -> None:
        await self.wait_for_selector(
            self.SELECTORS["rows"], timeout=self.config.element_timeout_ms
        )

    async def row_count(self) -> int:
        return await self._page.locator(self.SELECTORS["rows"]).count()

    def _row(self, index: int) -> Locator:
        return self._page.locator(self.SELECTORS["rows"]).nth(index)

    async def read_basic(self, index: int) -> BasicReservation:
        """Table fields of the row at index."""
        raw = await self._row(index).evaluate(self.ROW_SCRIPT)
        return BasicReservation.from_dict(raw or {})

    @asynccontextmanager
    async def open_dialog(self, index: int) -> AsyncIterator[ReservationDialog]:
        """Open the detail dialog for a row and close it on exit.

        Raises:
            DialogTimeout: If the dialog does not appear in time.
        """
        dialog = ReservationDialog(
            self._page, self.pacing, attempts=self.config.extraction_attempts
        )
        await self._row(index).locator(self.SELECTORS["guest_link"]).first.click()

        timeout_ms = self.config.dialog_timeout_ms
        try:
            await wait_with_fallback(
                "reservation_dialog",
                lambda: dialog.wait_until_open(timeout_ms),
                timeout_ms,
            )
        except WaitTimeout as e:
            raise DialogTimeout(str(e)) from e

        try:
            await dialog.prepare()
            yield dialog
        finally:
            await dialog.close()

    async def has_next_page(self) -> bool:
        return await self._page.evaluate(
            self.HAS_NEXT_SCRIPT, self.SELECTORS["next_button"]
        )

    async def go_to_next_page(self) -> None:
        await self._page.evaluate(self.SCROLL_SCRIPT)
        await self.pacing.settle("pagination_scroll")
        await self._page.locator(self.SELECTORS["next_button"]).first.click()
        await self.pacing.settle("pagination_click")

    async def reload_results(self, term: str, page_number: int) -> None:
        """Reload, re-apply the search and page forward to page_number."""
        logger.info("reloading_results", search_term=term, page=page_number)
        try:
            await self._page.reload(
                wait_until="networkidle", timeout=self.config.navigation_timeout_ms
            )
        except PlaywrightError as e:
            logger.warning("page_reload_incomplete", error=str(e))
        await self.pacing.settle("page_reload")

        await self.search(term)
        await self.wait_for_rows()
        for _ in range(page_number - 1):
            if not await self.has_next_page():
                break
            await self.go_to_next_page()
