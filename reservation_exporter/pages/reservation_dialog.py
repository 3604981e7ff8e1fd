"""Page object for the reservation detail dialog."""
from typing import Optional

import structlog
from playwright.async_api import Page
from playwright.async_api import Error as PlaywrightError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from ..extractor import (
    PAYMENT_TITLES,
    SIDE_FIELD_LABELS,
    DialogReading,
    is_cancellation_title,
    parse_dialog_reading,
)
from ..waits import Pacing
from .base_page import BasePage
from .strategies import (
    AlternateCloseButtonStrategy,
    CloseButtonStrategy,
    EscapeKeyStrategy,
    ScriptedCloseStrategy,
    close_dialog,
)

logger = structlog.get_logger()


def _needs_retry(reading: DialogReading) -> bool:
    return not reading.has_data and not is_cancellation_title(reading.title)


def _last_reading(retry_state: RetryCallState) -> DialogReading:
    """After the final attempt, keep whatever was read (or re-raise its error)."""
    return retry_state.outcome.result()


class ReservationDialog(BasePage):
    """Reads card and payment details from an open reservation dialog."""

    SELECTORS = {
        "dialog": ".fds-dialog",
        "dialog_content": ".fds-dialog-content",
        "close_button": ".fds-dialog-header button.dialog-close",
        "alternate_close_button": '.fds-dialog button[aria-label="Close"]',
    }

    READ_SCRIPT = """
    ({ titles, sideLabels }) => {
        const text = (el) => (el ? el.textContent.trim() : '');

        const title = text(document.querySelector('.fds-dialog-header'));

        let card = null;
        let statusBadge = null;
        const evcCard = document.querySelector('.evcCardBase');
        if (evcCard) {
            statusBadge = text(evcCard.querySelector('.fds-grid.statusBadge .fds-badge')) || null;
            const details = evcCard.querySelectorAll(
                '.cardDetails .fds-cell.all-cell-1-4.fds-type-color-primary.replay-conceal'
            );
            card = {
                cardNumber: text(evcCard.querySelector('.cardNumber.replay-conceal bdi')),
                expiryDate: text(details[0]),
                cvv: text(details[1]),
                status: statusBadge,
            };
        }

        // Amount next to a section title, by exact title text
        const payment = {};
        const summary = document.querySelector('.fds-card-content');
        if (summary) {
            for (const section of summary.querySelectorAll('.fds-grid')) {
                const sectionTitle = section.querySelector('.sidePanelSectionTitle');
                if (!sectionTitle) continue;
                const label = sectionTitle.textContent.trim();
                if (titles.includes(label) && !(label in payment)) {
                    payment[label] = text(section.querySelector('.fds-currency-value'));
                }
            }
        }

        const side = {};
        const sections = Array.from(
            document.querySelectorAll('.fds-cell.sidePanelSection, .fds-grid.sidePanelSection')
        );
        for (const label of sideLabels) {
            const section = sections.find((s) => s.textContent.includes(label));
            side[label] = section ? text(section.querySelector('.fds-currency-value')) : '';
        }

        return { title, card, payment, side, statusBadge };
    }
    """

    SCROLL_SCRIPT = """
    (selector) => {
        const content = document.querySelector(selector);
        if (content) content.scrollTo(0, content.scrollHeight);
    }
    """

    def __init__(self, page: Page, pacing: Pacing, attempts: int = 3) -> None:
        super().__init__(page, pacing)
        self.attempts = attempts
        self.close_strategies = [
            CloseButtonStrategy(self.SELECTORS["close_button"]),
            ScriptedCloseStrategy(self.SELECTORS["close_button"]),
            AlternateCloseButtonStrategy(self.SELECTORS["alternate_close_button"]),
            EscapeKeyStrategy(),
        ]

    @property
    def url_pattern(self) -> str:
        return r"https?://apps\.expediapartnercentral\.com/.*reservations.*"

    async def wait_until_open(self, timeout_ms: int) -> None:
        await self.wait_for_selector(self.SELECTORS["dialog"], timeout=timeout_ms)

    async def prepare(self) -> None:
        """Let the dialog render, then scroll to the payment summary at the bottom."""
        await self.pacing.settle("dialog_content")
        await self._page.evaluate(self.SCROLL_SCRIPT, self.SELECTORS["dialog_content"])
        await self.pacing.settle("dialog_scroll")

    async def _read_once(self) -> DialogReading:
        raw = await self._page.evaluate(
            self.READ_SCRIPT,
            {"titles": list(PAYMENT_TITLES.values()), "sideLabels": list(SIDE_FIELD_LABELS.values())},
        )
        return parse_dialog_reading(raw)

    async def read(self) -> DialogReading:
        """Read the dialog, retrying while neither card nor payment data shows.

        Cancellation dialogs are returned on the first read; their payment
        block is optional.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.pacing.duration_ms("extraction_retry") / 1000),
            retry=retry_if_result(_needs_retry) | retry_if_exception_type(PlaywrightError),
            retry_error_callback=_last_reading,
            sleep=self.pacing.sleep,
        )
        reading = await retrying(self._read_once)

        if reading.side.remaining_amount_to_charge:
            logger.info("remaining_amount_found", amount=reading.side.remaining_amount_to_charge)
        if reading.side.amount_to_refund:
            logger.info("refund_amount_found", amount=reading.side.amount_to_refund)
        return reading

    async def close(self) -> Optional[str]:
        """Dismiss the dialog, trying each close strategy in turn.

        Returns:
            Name of the strategy that worked, or None (logged as a warning).
        """
        strategy = await close_dialog(
            self._page, self.close_strategies, self.SELECTORS["dialog"]
        )
        if strategy is None:
            logger.warning("dialog_close_failed")
        else:
            await self.pacing.settle("dialog_close")
        return strategy
