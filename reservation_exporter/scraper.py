"""Per-search-term reservation scraping.

One ReservationPageScraper handles one search term on an open reservations
page and moves through these states:

    SEARCH_ENTERED -> RESULTS_LOADED -> PAGING_ROW -> DIALOG_OPEN
        -> FIELDS_EXTRACTED -> DIALOG_CLOSED -> (next row | NEXT_PAGE | DONE)

Row failures never end the term; a failed page is reloaded and retried up
to max_page_retries times, after which the records gathered so far are
returned.
"""
from enum import StrEnum
from typing import Callable, Optional

import structlog
from playwright.async_api import Error as PlaywrightError

from .card_activity import CardActivityLookup
from .exceptions import (
    DialogTimeout,
    ExporterError,
    ExtractionError,
    FATAL_ERRORS,
    PageProcessingError,
    SearchInputNotFoundError,
)
from .extractor import build_degraded_record, build_record
from .models import NOT_AVAILABLE, ReservationRecord
from .pages.reservations_page import ReservationsPage

logger = structlog.get_logger()


class ScrapeState(StrEnum):
    SEARCH_ENTERED = "search_entered"
    RESULTS_LOADED = "results_loaded"
    PAGING_ROW = "paging_row"
    DIALOG_OPEN = "dialog_open"
    FIELDS_EXTRACTED = "fields_extracted"
    DIALOG_CLOSED = "dialog_closed"
    NEXT_PAGE = "next_page"
    DONE = "done"


class ReservationPageScraper:
    """Collects every reservation a single search term returns."""

    def __init__(
        self,
        reservations: ReservationsPage,
        property_id: Optional[str],
        property_name: Optional[str],
        max_page_retries: int = 3,
        card_activity: Optional[CardActivityLookup] = None,
        progress_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        """Initialize the scraper.

        Args:
            reservations: Reservations page object for the open property.
            property_id: Property id stamped on every record.
            property_name: Property name stamped on every record.
            max_page_retries: Reload attempts allowed per failing page.
            card_activity: Optional virtual-card balance lookup.
            progress_callback: Optional callback for progress messages.
        """
        self.reservations = reservations
        self.property_id = property_id
        self.property_name = property_name
        self.max_page_retries = max_page_retries
        self.card_activity = card_activity
        self.progress_callback = progress_callback

        self.state = ScrapeState.DONE
        self.records: list[ReservationRecord] = []
        self._seen_ids: set[str] = set()
        self._total_results = 0

    def _report_progress(self, message: str) -> None:
        if self.progress_callback:
            self.progress_callback(message)

    def _transition(self, state: ScrapeState, **context) -> None:
        self.state = state
        logger.debug("scrape_state", state=str(state), **context)

    async def scrape(self, term: str) -> list[ReservationRecord]:
        """Search for term and return the records from every results page.

        A missing search input, a search that fails to load, or an empty
        result set yields an empty list.
        """
        self._transition(ScrapeState.SEARCH_ENTERED, search_term=term)
        try:
            await self.reservations.search(term)

            count = await self.reservations.result_count()
            logger.info("search_result_count", search_term=term, count=count)
            if count == 0:
                logger.info("no_reservations_found", search_term=term)
                self._transition(ScrapeState.DONE)
                return []

            await self.reservations.pacing.settle("results_render")
            await self.reservations.wait_for_rows()
            self._total_results = await self.reservations.total_results()
        except FATAL_ERRORS:
            raise
        except SearchInputNotFoundError as e:
            logger.error("search_input_not_found", search_term=term, error=str(e))
            self._transition(ScrapeState.DONE)
            return []
        except (PlaywrightError, ExporterError) as e:
            logger.error(
                "search_failed",
                search_term=term,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._transition(ScrapeState.DONE)
            return list(self.records)

        self._transition(
            ScrapeState.RESULTS_LOADED, search_term=term, total=self._total_results
        )

        await self._walk_pages(term)

        logger.info(
            "search_term_complete", search_term=term, reservations=len(self.records)
        )
        if not self.records:
            logger.warning("no_reservations_collected", search_term=term)
        return list(self.records)

    async def _walk_pages(self, term: str) -> None:
        page_number = 1
        retries = 0

        while True:
            try:
                await self._process_page(page_number)
                logger.info(
                    "page_processed",
                    page=page_number,
                    collected=len(self.records),
                    total=self._total_results,
                )
                self._report_progress(
                    f"Processed {len(self.records)} of {self._total_results} reservations"
                )

                if not await self.reservations.has_next_page():
                    break
                self._transition(ScrapeState.NEXT_PAGE, page=page_number + 1)
                await self.reservations.go_to_next_page()
                page_number += 1
                retries = 0

            except FATAL_ERRORS:
                raise
            except (PlaywrightError, ExporterError) as e:
                error = PageProcessingError(page_number, e)
                logger.warning("page_processing_failed", page=page_number, error=str(error))
                retries += 1
                if retries > self.max_page_retries:
                    logger.error(
                        "page_retries_exhausted",
                        page=page_number,
                        retries=self.max_page_retries,
                        collected=len(self.records),
                    )
                    break
                await self._recover(term, page_number)

        self._transition(ScrapeState.DONE)

    async def _recover(self, term: str, page_number: int) -> None:
        """Reload the results; a failed reload is left to the next page attempt."""
        try:
            await self.reservations.reload_results(term, page_number)
        except (PlaywrightError, ExporterError) as e:
            logger.warning("page_recovery_failed", page=page_number, error=str(e))

    async def _process_page(self, page_number: int) -> None:
        await self.reservations.wait_for_rows()
        await self.reservations.pacing.settle("page_render")
        row_count = await self.reservations.row_count()
        logger.info("processing_page", page=page_number, rows=row_count)

        for index in range(row_count):
            self._transition(ScrapeState.PAGING_ROW, page=page_number, row=index)
            await self._process_row(index)

    async def _process_row(self, index: int) -> None:
        try:
            basic = await self.reservations.read_basic(index)
        except PlaywrightError as e:
            logger.warning("row_read_failed", row=index, error=str(e))
            return

        if basic.reservation_id in self._seen_ids:
            logger.info("duplicate_reservation_skipped", reservation_id=basic.reservation_id)
            return
        self._seen_ids.add(basic.reservation_id)

        try:
            async with self.reservations.open_dialog(index) as dialog:
                self._transition(ScrapeState.DIALOG_OPEN, reservation_id=basic.reservation_id)
                reading = await dialog.read()
                remaining_balance = NOT_AVAILABLE
                if self.card_activity is not None:
                    remaining_balance = await self.card_activity.remaining_balance(
                        self.reservations.page
                    )
                record = build_record(
                    basic, reading, self.property_id, self.property_name, remaining_balance
                )
                self._transition(ScrapeState.FIELDS_EXTRACTED)
            self._transition(ScrapeState.DIALOG_CLOSED)

        except DialogTimeout as e:
            logger.info(
                "dialog_timeout_skipped", reservation_id=basic.reservation_id, error=str(e)
            )
            return
        except (PlaywrightError, ExtractionError) as e:
            logger.warning(
                "reservation_extraction_failed",
                reservation_id=basic.reservation_id,
                error=str(e),
            )
            record = build_degraded_record(basic, self.property_id, self.property_name)

        self.records.append(record)
        logger.info("reservation_processed", data=record.to_dict())
