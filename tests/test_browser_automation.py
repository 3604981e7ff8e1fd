"""Tests for the run controller and property orchestration."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from structlog.testing import capture_logs

from reservation_exporter.browser_automation import ReservationExportAutomation
from reservation_exporter.exceptions import CodeNotFoundError, PropertyNotFoundError
from reservation_exporter.models import (
    PropertyLookup,
    ReservationRecord,
    WorkItem,
)

MODULE = "reservation_exporter.browser_automation"


def make_record(reservation_id, property_name=None):
    return ReservationRecord(
        guest_name="Guest",
        reservation_id=reservation_id,
        confirmation_code="",
        check_in_date="",
        check_out_date="",
        room_type="",
        booking_amount="",
        booked_date="",
        property_name=property_name,
    )


def fake_playwright():
    """async_playwright() stand-in returning (factory, browser)."""
    browser = MagicMock()
    browser.close = AsyncMock()
    context = MagicMock()
    context.new_page = AsyncMock(return_value=MagicMock())
    browser.new_context = AsyncMock(return_value=context)

    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    manager = MagicMock()
    manager.__aenter__ = AsyncMock(return_value=playwright)
    manager.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=manager), browser


class FakeScraper:
    """Returns one record per search term, tagged with the property name."""

    instances: list["FakeScraper"] = []

    def __init__(self, reservations, property_id, property_name, **kwargs):
        self.property_id = property_id
        self.property_name = property_name
        FakeScraper.instances.append(self)

    async def scrape(self, term):
        return [make_record(term, self.property_name)]


@pytest.fixture
def properties_page():
    page = MagicMock()
    page.open_property = AsyncMock()
    page.open_reservations = AsyncMock()
    page.current_property_name = AsyncMock(return_value="")
    page.return_home = AsyncMock(return_value=True)
    return page


@pytest.fixture
def login_page():
    page = MagicMock()
    page.login = AsyncMock()
    return page


@pytest.fixture
def automation(scraper_config, pacing):
    FakeScraper.instances = []
    return ReservationExportAutomation(
        scraper_config,
        email="ops@example.com",
        password="pw",
        code_provider=lambda: "123456",
        pacing=pacing,
    )


class TestRunAsync:
    """Tests for the whole export run."""

    @pytest.mark.asyncio
    async def test_processes_properties_in_order_and_exports_once(
        self, automation, properties_page, login_page
    ):
        items = [
            WorkItem("Harbour Inn", ("A", "A", "B")),
            WorkItem("Lake Lodge", ("C",)),
        ]
        factory, browser = fake_playwright()

        with patch(f"{MODULE}.async_playwright", factory), \
                patch(f"{MODULE}.load_work_items", return_value=items), \
                patch(f"{MODULE}.LoginPage", return_value=login_page), \
                patch(f"{MODULE}.PropertiesPage", return_value=properties_page), \
                patch(f"{MODULE}.ReservationsPage"), \
                patch(f"{MODULE}.ReservationPageScraper", FakeScraper), \
                patch(f"{MODULE}.save_reservations", return_value=None) as save:
            result = await automation.run_async()

        assert [r.reservation_id for r in result.records] == ["A", "A", "B", "C"]
        assert result.properties_processed == 2
        assert result.ended_at is not None
        login_page.login.assert_awaited_once()
        browser.close.assert_awaited_once()
        save.assert_called_once()
        assert save.call_args.args[0] == result.records

    @pytest.mark.asyncio
    async def test_home_navigation_failure_does_not_abort(
        self, automation, properties_page, login_page
    ):
        properties_page.return_home = AsyncMock(return_value=False)
        items = [WorkItem("P1", ("A",)), WorkItem("P2", ("B",))]
        factory, _ = fake_playwright()

        with patch(f"{MODULE}.async_playwright", factory), \
                patch(f"{MODULE}.load_work_items", return_value=items), \
                patch(f"{MODULE}.LoginPage", return_value=login_page), \
                patch(f"{MODULE}.PropertiesPage", return_value=properties_page), \
                patch(f"{MODULE}.ReservationsPage"), \
                patch(f"{MODULE}.ReservationPageScraper", FakeScraper), \
                patch(f"{MODULE}.save_reservations", return_value=None):
            result = await automation.run_async()

        assert result.properties_processed == 2

    @pytest.mark.asyncio
    async def test_no_records_skips_export_file(
        self, automation, properties_page, login_page, scraper_config
    ):
        factory, _ = fake_playwright()

        with patch(f"{MODULE}.async_playwright", factory), \
                patch(f"{MODULE}.load_work_items", return_value=[]), \
                patch(f"{MODULE}.LoginPage", return_value=login_page):
            result = await automation.run_async()

        assert result.records == []
        assert result.output_path is None
        assert not scraper_config.output_dir.exists()

    @pytest.mark.asyncio
    async def test_login_failure_closes_browser_and_skips_export(
        self, automation, login_page
    ):
        login_page.login = AsyncMock(side_effect=CodeNotFoundError("no code"))
        factory, browser = fake_playwright()

        with patch(f"{MODULE}.async_playwright", factory), \
                patch(f"{MODULE}.load_work_items", return_value=[WorkItem("P", ("A",))]), \
                patch(f"{MODULE}.LoginPage", return_value=login_page), \
                patch(f"{MODULE}.save_reservations") as save:
            with pytest.raises(CodeNotFoundError):
                await automation.run_async()

        browser.close.assert_awaited_once()
        save.assert_not_called()

    @pytest.mark.asyncio
    async def test_property_filter(self, scraper_config, pacing, properties_page, login_page):
        automation = ReservationExportAutomation(
            scraper_config, "ops@example.com", "pw", lambda: "1",
            property_filter="P2", pacing=pacing,
        )
        items = [WorkItem("P1", ("A",)), WorkItem("P2", ("B",))]
        factory, _ = fake_playwright()

        with patch(f"{MODULE}.async_playwright", factory), \
                patch(f"{MODULE}.load_work_items", return_value=items), \
                patch(f"{MODULE}.LoginPage", return_value=login_page), \
                patch(f"{MODULE}.PropertiesPage", return_value=properties_page), \
                patch(f"{MODULE}.ReservationsPage"), \
                patch(f"{MODULE}.ReservationPageScraper", FakeScraper), \
                patch(f"{MODULE}.save_reservations", return_value=None), \
                capture_logs() as logs:
            result = await automation.run_async()

        assert [r.reservation_id for r in result.records] == ["B"]
        selected = [e for e in logs if e["event"] == "work_items_selected"]
        assert selected[0]["count"] == 1


class TestProcessProperty:
    """Tests for one property's session."""

    @pytest.mark.asyncio
    async def test_name_falls_back_to_group_key(self, automation, properties_page):
        with patch(f"{MODULE}.PropertiesPage", return_value=properties_page), \
                patch(f"{MODULE}.ReservationsPage"), \
                patch(f"{MODULE}.ReservationPageScraper", FakeScraper):
            records = await automation.process_property(
                MagicMock(), WorkItem("Harbour Inn", ("A",))
            )

        assert records[0].property_name == "Harbour Inn"
        assert FakeScraper.instances[0].property_id is None
        properties_page.return_home.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_id_lookup_sets_property_id(self, automation, properties_page):
        properties_page.current_property_name = AsyncMock(return_value="Harbour Inn")

        with patch(f"{MODULE}.PropertiesPage", return_value=properties_page), \
                patch(f"{MODULE}.ReservationsPage"), \
                patch(f"{MODULE}.ReservationPageScraper", FakeScraper):
            records = await automation.process_property(
                MagicMock(), WorkItem("12345", ("A", "B"), lookup=PropertyLookup.ID)
            )

        assert [r.property_name for r in records] == ["Harbour Inn", "Harbour Inn"]
        assert FakeScraper.instances[0].property_id == "12345"
        assert len(FakeScraper.instances) == 2

    @pytest.mark.asyncio
    async def test_property_not_found_is_fatal(self, automation, properties_page):
        properties_page.open_property = AsyncMock(
            side_effect=PropertyNotFoundError("Could not find property: X")
        )

        with patch(f"{MODULE}.PropertiesPage", return_value=properties_page):
            with pytest.raises(PropertyNotFoundError):
                await automation.process_property(MagicMock(), WorkItem("X", ("A",)))

        properties_page.open_property.assert_awaited_once()


class TestCardActivityOption:
    def test_loaded_only_when_enabled(self, scraper_config, pacing):
        from dataclasses import replace

        disabled = ReservationExportAutomation(scraper_config, "e", "p", lambda: None, pacing=pacing)
        enabled = ReservationExportAutomation(
            replace(scraper_config, capture_card_activity=True), "e", "p", lambda: None, pacing=pacing
        )

        assert disabled.card_activity is None
        assert enabled.card_activity is not None
