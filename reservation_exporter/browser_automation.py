"""Playwright browser automation for the reservation export run."""
import asyncio
from datetime import datetime
from typing import Callable, Optional

import structlog
from playwright.async_api import Page, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .excel_handler import load_work_items, save_reservations
from .models import PropertyLookup, ReservationRecord, RunResult, ScraperConfig, WorkItem
from .pages.login_page import CodeProvider, LoginPage
from .pages.properties_page import PropertiesPage
from .pages.reservations_page import ReservationsPage
from .scraper import ReservationPageScraper
from .waits import Pacing

logger = structlog.get_logger()


class ReservationExportAutomation:
    """Signs in once, walks every property in the input sheet and exports.

    Properties are processed one after another on a single page; the
    portal session is shared, so nothing runs in parallel.
    """

    BROWSER_ARGS = [
        "--disable-gpu",
        "--disable-dev-shm-usage",
        "--no-sandbox",
    ]

    VIEWPORT = {"width": 1920, "height": 1080}

    def __init__(
        self,
        config: ScraperConfig,
        email: str,
        password: str,
        code_provider: CodeProvider,
        property_filter: Optional[str] = None,
        progress_callback: Optional[Callable[[str], None]] = None,
        pacing: Optional[Pacing] = None,
    ) -> None:
        """Initialize the automation engine.

        Args:
            config: Scraper configuration settings.
            email: Portal account email.
            password: Portal account password.
            code_provider: Blocking callable returning the emailed 2FA code.
            property_filter: If set, only the work item with this group key
                is processed.
            progress_callback: Optional callback function to report progress messages.
            pacing: Named settle delays; built from config when omitted.
        """
        self.config = config
        self.email = email
        self.password = password
        self.code_provider = code_provider
        self.property_filter = property_filter
        self.progress_callback = progress_callback
        self.pacing = pacing or Pacing(config.delays_ms)

        # Conditionally initialize card activity module
        self.card_activity = None
        if config.capture_card_activity:
            from .card_activity import CardActivityLookup
            self.card_activity = CardActivityLookup(
                self.pacing, timeout_ms=config.navigation_timeout_ms
            )
            logger.info("card_activity_enabled")

    def _report_progress(self, message: str) -> None:
        """Report progress via callback if available."""
        if self.progress_callback:
            self.progress_callback(message)

    def run_export(self) -> RunResult:
        """Synchronous entry point - runs the async export.

        Returns:
            RunResult with every record and the written file, if any.
        """
        return asyncio.run(self.run_async())

    def _select_work_items(self, items: list[WorkItem]) -> list[WorkItem]:
        if not self.property_filter:
            return items
        selected = [item for item in items if item.group_key == self.property_filter]
        logger.info(
            "filtered_by_property", property=self.property_filter, remaining_count=len(selected)
        )
        return selected

    async def run_async(self) -> RunResult:
        """Load work items, scrape each property, then export once.

        Any error that escapes a property ends the run; the browser is
        closed first and nothing is exported.
        """
        result = RunResult()
        work_items = self._select_work_items(load_work_items(self.config.input_file))
        logger.info("work_items_selected", count=len(work_items))

        async with async_playwright() as p:
            browser = await p.chromium.launch(
                headless=self.config.headless,
                args=self.BROWSER_ARGS,
            )
            try:
                context = await browser.new_context(viewport=self.VIEWPORT)
                page = await context.new_page()

                self._report_progress("Signing in to the partner portal...")
                await LoginPage(page, self.pacing, self.config).login(
                    self.email, self.password, self.code_provider
                )

                total = len(work_items)
                for idx, item in enumerate(work_items, 1):
                    logger.info(
                        "processing_property",
                        property=item.group_key,
                        progress=f"{idx}/{total}",
                        search_terms=len(item.search_terms),
                    )
                    self._report_progress(f"Property {item.group_key} ({idx}/{total})")

                    records = await self.process_property(page, item)
                    result.records.extend(records)
                    result.properties_processed += 1

                    self._report_progress(
                        f"{item.group_key} complete - {len(records)} reservations found"
                    )
                    if idx < total:
                        await self.pacing.settle("between_properties")
            finally:
                await browser.close()

        result.output_path = save_reservations(result.records, self.config.output_dir)
        result.ended_at = datetime.now()
        logger.info(
            "export_complete",
            total_reservations=len(result.records),
            properties=result.properties_processed,
            output_file=str(result.output_path) if result.output_path else None,
            elapsed_seconds=result.elapsed_seconds,
        )
        return result

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(PlaywrightTimeoutError),
        reraise=True,
    )
    async def _open_property(self, properties: PropertiesPage, item: WorkItem) -> None:
        """Open the property and its reservations list; a slow load is retried once."""
        await properties.open_property(item)
        await properties.open_reservations()

    async def process_property(self, page: Page, item: WorkItem) -> list[ReservationRecord]:
        """Scrape every search term of one work item.

        Args:
            page: Signed-in Playwright page on the property list.
            item: The property and its search terms.

        Returns:
            Records for all search terms, in term order.
        """
        properties = PropertiesPage(page, self.pacing, self.config)
        await self._open_property(properties, item)

        property_name = await properties.current_property_name() or item.group_key
        property_id = item.group_key if item.lookup == PropertyLookup.ID else None
        logger.info("property_opened", property=item.group_key, property_name=property_name)

        reservations = ReservationsPage(page, self.pacing, self.config)
        records: list[ReservationRecord] = []
        for term in item.search_terms:
            logger.info("searching_reservation", property=item.group_key, search_term=term)
            scraper = ReservationPageScraper(
                reservations,
                property_id=property_id,
                property_name=property_name,
                max_page_retries=self.config.max_page_retries,
                card_activity=self.card_activity,
                progress_callback=self.progress_callback,
            )
            records.extend(await scraper.scrape(term))

        logger.info("property_complete", property=item.group_key, reservations=len(records))
        await properties.return_home()
        return records
