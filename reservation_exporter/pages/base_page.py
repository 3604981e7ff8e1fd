"""Base page object for Playwright automation."""
import json
import re
import shutil
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import structlog
from playwright.async_api import Locator, Page

from ..waits import Pacing

logger = structlog.get_logger()

DEBUG_ROOT = Path("debug")

# Debug snapshot retention policy
MAX_DEBUG_AGE_HOURS = 24


def cleanup_old_debug_snapshots(debug_root: Path = DEBUG_ROOT) -> None:
    """Remove debug snapshots older than MAX_DEBUG_AGE_HOURS."""
    if not debug_root.exists():
        return

    cutoff = datetime.now() - timedelta(hours=MAX_DEBUG_AGE_HOURS)

    for snapshot_dir in debug_root.iterdir():
        if not snapshot_dir.is_dir():
            continue
        try:
            # Directory names are YYYYMMDD_HHMMSS
            dir_time = datetime.strptime(snapshot_dir.name, "%Y%m%d_%H%M%S")
            if dir_time < cutoff:
                shutil.rmtree(snapshot_dir)
                logger.debug("cleaned_debug_snapshot", path=str(snapshot_dir))
        except (ValueError, OSError):
            continue


class BasePage(ABC):
    """Base class for all page objects.

    Provides common functionality for page interactions including
    wait strategies, human-paced typing and debug snapshots.
    """

    def __init__(self, page: Page, pacing: Pacing) -> None:
        """Initialize the base page.

        Args:
            page: Playwright page instance.
            pacing: Named settle delays shared by the run.
        """
        self._page = page
        self.pacing = pacing

    @property
    def page(self) -> Page:
        """Get the underlying Playwright page."""
        return self._page

    async def wait_for_load(self, timeout: int = 30000) -> None:
        """Wait for the network to go idle.

        Args:
            timeout: Maximum wait time in milliseconds.
        """
        await self._page.wait_for_load_state("networkidle", timeout=timeout)

    async def wait_for_selector(
        self, selector: str, timeout: int = 30000, state: str = "visible"
    ) -> Locator:
        """Wait for a selector to be in the specified state.

        Args:
            selector: CSS or other selector string.
            timeout: Maximum wait time in milliseconds.
            state: Expected state ('visible', 'hidden', 'attached', 'detached').

        Returns:
            Locator for the matched element.
        """
        locator = self._page.locator(selector).first
        await locator.wait_for(timeout=timeout, state=state)
        return locator

    async def type_slowly(self, locator: Locator, text: str, delay_ms: int) -> None:
        """Type text one character at a time, like a person would."""
        await locator.press_sequentially(text, delay=delay_ms)

    async def get_text(
        self, selector: str, timeout: int = 30000
    ) -> Optional[str]:
        """Get text content of an element.

        Args:
            selector: CSS or other selector string.
            timeout: Maximum wait time in milliseconds.

        Returns:
            Text content or None if element not found.
        """
        try:
            locator = self._page.locator(selector).first
            return await locator.text_content(timeout=timeout)
        except Exception:
            return None

    async def save_debug_snapshot(self, context: str) -> None:
        """Save page state for debugging when a step fails.

        Creates a timestamped debug directory with screenshot, HTML and
        state JSON.

        Args:
            context: What was being done (e.g. "login_password").
        """
        cleanup_old_debug_snapshots()

        try:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            debug_dir = DEBUG_ROOT / timestamp
            debug_dir.mkdir(parents=True, exist_ok=True)

            safe_context = re.sub(r"[^a-zA-Z0-9_-]", "_", context)

            screenshot_path = debug_dir / f"{safe_context}_screenshot.png"
            await self._page.screenshot(path=str(screenshot_path), full_page=True)

            html_path = debug_dir / f"{safe_context}_page.html"
            html_path.write_text(await self._page.content(), encoding="utf-8")

            state = {
                "url": self._page.url,
                "context": context,
                "timestamp": timestamp,
                "page_title": await self._page.title(),
            }
            state_path = debug_dir / f"{safe_context}_state.json"
            state_path.write_text(json.dumps(state, indent=2), encoding="utf-8")

            logger.info("debug_snapshot_saved", path=str(debug_dir), context=context)

        except Exception as e:
            logger.warning("debug_snapshot_failed", context=context, error=str(e))

    @property
    @abstractmethod
    def url_pattern(self) -> str:
        """Regex pattern to validate current URL.

        Subclasses must implement this to define valid URLs for the page.
        """
        pass

    def is_current(self) -> bool:
        return re.match(self.url_pattern, self._page.url or "") is not None
