"""Page object for the property list and property navigation."""
from abc import ABC, abstractmethod

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from ..exceptions import NavigationLinkNotFoundError, PropertyNotFoundError
from ..models import PropertyLookup, ScraperConfig, WorkItem
from ..waits import Pacing
from .base_page import BasePage

logger = structlog.get_logger()


class PropertyRowLookup(ABC):
    """How a property row is matched against a work item's group key."""

    @abstractmethod
    async def click_match(self, page: Page, key: str) -> bool:
        """Click the matching row's property link; False if nothing matched."""


class ExactNameLookup(PropertyRowLookup):
    """Match the row whose property name equals the key exactly."""

    SCRIPT = """
    (name) => {
        const rows = Array.from(document.querySelectorAll('tbody tr'));
        for (const row of rows) {
            const link = row.querySelector('.property-cell__property-name a');
            if (link && link.textContent.trim() === name) {
                link.click();
                return true;
            }
        }
        return false;
    }
    """

    async def click_match(self, page: Page, key: str) -> bool:
        return await page.evaluate(self.SCRIPT, key)


class PropertyIdLookup(PropertyRowLookup):
    """Scan rows for the property id, then click that row's name link."""

    SCRIPT = """
    (searchId) => {
        const rows = Array.from(document.querySelectorAll('tbody tr'));
        for (const row of rows) {
            const idElement = row.querySelector('.property-cell__property-id span');
            if (idElement && idElement.textContent.includes(searchId)) {
                const link = row.querySelector('.property-cell__property-name a');
                if (link) {
                    link.click();
                    return true;
                }
            }
        }
        return false;
    }
    """

    async def click_match(self, page: Page, key: str) -> bool:
        return await page.evaluate(self.SCRIPT, key)


PROPERTY_LOOKUPS: dict[PropertyLookup, PropertyRowLookup] = {
    PropertyLookup.NAME: ExactNameLookup(),
    PropertyLookup.ID: PropertyIdLookup(),
}


class PropertiesPage(BasePage):
    """Property list, the per-property drawer and the way back home."""

    SELECTORS = {
        "property_table": ".fds-data-table-wrapper",
        "property_search": ".all-properties__search input.fds-field-input",
        "property_rows": "tbody tr",
        "drawer": ".uitk-drawer-content",
        "reservations_ready": 'input[type="radio"][name="dateTypeFilter"]',
        "header": "header.tpg-navigation__header",
        "logo_link": "header.tpg-navigation__header a.tpg-navigation__logo_container",
    }

    # Header dropdown showing the open property's name, most specific first
    PROPERTY_NAME_SELECTORS = [
        ".tpg-navigation__header__dropdown-property-details .fds-dropdown-button-label",
        ".tpg-navigation__header__dropdown-property-details button span",
        ".tpg-navigation__header__dropdown-property-details .fds-button2-label",
        ".tpg-navigation__header__dropdown-property-details",
    ]

    RESERVATIONS_LABEL = "Reservations"

    OPEN_DRAWER_ITEM_SCRIPT = """
    (label) => {
        const item = Array.from(
            document.querySelectorAll('.uitk-action-list-item-content')
        ).find((el) => {
            const text = el.querySelector('.uitk-text.overflow-wrap');
            return text && text.textContent.trim() === label;
        });
        if (!item) return false;
        const link = item.querySelector('a.uitk-action-list-item-link');
        if (!link) return false;
        link.click();
        return true;
    }
    """

    def __init__(self, page: Page, pacing: Pacing, config: ScraperConfig) -> None:
        super().__init__(page, pacing)
        self.config = config

    @property
    def url_pattern(self) -> str:
        return r"https?://apps\.expediapartnercentral\.com/.*"

    async def open_property(self, item: WorkItem) -> None:
        """Search the property list and open the work item's property.

        Raises:
            PropertyNotFoundError: If no row matches the group key.
        """
        await self.wait_for_selector(
            self.SELECTORS["property_table"], timeout=self.config.element_timeout_ms
        )
        search = await self.wait_for_selector(
            self.SELECTORS["property_search"], timeout=self.config.element_timeout_ms
        )
        logger.info("searching_property", property=item.group_key, lookup=str(item.lookup))
        await search.fill("")
        await self.type_slowly(search, item.group_key, self.config.property_typing_delay_ms)
        await self.pacing.settle("property_search")

        try:
            await self.wait_for_selector(self.SELECTORS["property_rows"], timeout=10000)
        except PlaywrightError as e:
            raise PropertyNotFoundError(
                f"No property rows for {item.group_key}: {e}"
            ) from e

        lookup = PROPERTY_LOOKUPS[item.lookup]
        if not await lookup.click_match(self._page, item.group_key):
            await self.save_debug_snapshot(f"property_not_found_{item.group_key}")
            raise PropertyNotFoundError(f"Could not find property: {item.group_key}")

        logger.info("property_clicked", property=item.group_key)
        await self._settle_after_navigation("after_property_open")

    async def open_reservations(self) -> None:
        """Open Reservations from the property drawer.

        Raises:
            NavigationLinkNotFoundError: If the drawer has no Reservations entry.
        """
        logger.info("looking_for_reservations_link")
        await self.wait_for_selector(
            self.SELECTORS["drawer"], timeout=self.config.element_timeout_ms
        )
        clicked = await self._page.evaluate(
            self.OPEN_DRAWER_ITEM_SCRIPT, self.RESERVATIONS_LABEL
        )
        if not clicked:
            await self.save_debug_snapshot("reservations_link")
            raise NavigationLinkNotFoundError("Could not find or click Reservations link")

        await self._settle_after_navigation(
            "after_reservations_open", timeout=self.config.reservations_timeout_ms
        )
        await self.wait_for_selector(
            self.SELECTORS["reservations_ready"],
            timeout=self.config.reservations_timeout_ms,
        )
        logger.info("reservations_page_opened", url=self._page.url)

    async def _settle_after_navigation(self, delay_name: str, timeout: int = 30000) -> None:
        try:
            await self.wait_for_load(timeout=timeout)
        except PlaywrightError as e:
            logger.debug("load_state_timeout", wait=delay_name, error=str(e))
        await self.pacing.settle(delay_name)

    async def current_property_name(self) -> str:
        """Name shown in the header dropdown, or an empty string."""
        for selector in self.PROPERTY_NAME_SELECTORS:
            locator = self._page.locator(selector).first
            try:
                if await locator.count() == 0:
                    continue
                text = await locator.text_content(timeout=2000)
            except PlaywrightError:
                continue
            if text and text.strip():
                return text.strip()
        return ""

    async def return_home(self) -> bool:
        """Go back to the property list via the logo, else the home URL.

        Returns:
            True if either route worked. Failure is only logged.
        """
        try:
            await self.wait_for_selector(self.SELECTORS["header"], timeout=5000)
            logo = self._page.locator(self.SELECTORS["logo_link"]).first
            href = await logo.get_attribute("href", timeout=5000)
            await logo.click(timeout=5000)
            try:
                await self.wait_for_load(timeout=self.config.navigation_timeout_ms)
            except PlaywrightError:
                if not href:
                    raise
                await self._page.goto(href, wait_until="networkidle")
            await self.pacing.settle("after_home")
            return True
        except PlaywrightError as e:
            logger.warning("navigation_logo_failed", error=str(e))

        try:
            await self._page.goto(
                self.config.home_url,
                wait_until="networkidle",
                timeout=self.config.navigation_timeout_ms,
            )
            await self.pacing.settle("after_home")
            return True
        except PlaywrightError as e:
            logger.warning("home_navigation_failed", url=self.config.home_url, error=str(e))
            return False
