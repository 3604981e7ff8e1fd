"""Minimal stand-ins for Playwright pages and locators."""
from unittest.mock import AsyncMock, MagicMock

from playwright.async_api import TimeoutError as PlaywrightTimeoutError


class FakeLocator:
    """Locator whose visibility and contents are set by the test."""

    def __init__(self, visible=True, count=1, disabled=False, drop_first_keystroke=False):
        self.visible = visible
        self._count = count
        self.disabled = disabled
        self.drop_first_keystroke = drop_first_keystroke
        self.value = ""
        self.typed: list[tuple[str, int]] = []
        self.clicks = 0

    @property
    def first(self):
        return self

    async def wait_for(self, state="visible", timeout=None):
        if not self.visible:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded")

    async def press_sequentially(self, text, delay=0):
        self.typed.append((text, delay))
        if self.drop_first_keystroke and len(self.typed) == 1:
            self.value = text[1:]
        else:
            self.value = text

    async def fill(self, value):
        self.value = value

    async def input_value(self):
        return self.value

    async def click(self, timeout=None):
        self.clicks += 1

    async def is_enabled(self):
        return True

    async def is_disabled(self):
        return self.disabled

    async def evaluate(self, script, arg=None):
        return True

    async def count(self):
        return self._count


class FakeNavigation:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakePage:
    """Page with a table of selector -> FakeLocator; unknown selectors are invisible."""

    def __init__(self, locators=None, title="Sign in"):
        self.locators = locators or {}
        self._title = title
        self.url = "https://www.expediapartnercentral.com/Account/Logon"
        self.mouse = MagicMock()
        self.mouse.wheel = AsyncMock()
        self.goto = AsyncMock()
        self.navigations = 0

    def locator(self, selector):
        if selector not in self.locators:
            self.locators[selector] = FakeLocator(visible=False, count=0)
        return self.locators[selector]

    async def title(self):
        return self._title

    async def content(self):
        return "<html><body>" + "x" * 5000 + "</body></html>"

    def expect_navigation(self, **kwargs):
        self.navigations += 1
        return FakeNavigation()
