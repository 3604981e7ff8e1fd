"""Page object for the partner portal sign-in flow."""
import asyncio
from typing import Callable, Optional

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from ..exceptions import (
    CodeNotFoundError,
    FieldNotFoundError,
    NavigationError,
    SubmitButtonDisabledError,
    SubmitButtonMissingError,
    VerificationPageTimeoutError,
)
from ..models import ScraperConfig
from ..waits import Pacing
from .base_page import BasePage
from .strategies import PasswordVariant, first_visible

logger = structlog.get_logger()

CodeProvider = Callable[[], Optional[str]]


class LoginPage(BasePage):
    """Drives credentials entry and the emailed two-factor step.

    Login is all-or-nothing: every failure raises and the caller ends the
    run.
    """

    SELECTORS = {
        "email_input": "#emailControl",
        "email_continue": "#continueButton",
        "passcode_input": 'input[name="passcode-input"]',
        "passcode_submit": 'button[data-testid="passcode-submit-button"]',
    }

    # The password step renders one of two forms; the first is the usual one
    PASSWORD_VARIANTS = (
        PasswordVariant("#password-input", 15000, submit_selector="#password-continue"),
        PasswordVariant("#passwordControl", 30000, submit_selector="#signInButton"),
    )

    PAGE_EXCERPT_CHARS = 2000

    def __init__(self, page: Page, pacing: Pacing, config: ScraperConfig) -> None:
        super().__init__(page, pacing)
        self.config = config

    @property
    def url_pattern(self) -> str:
        return r"https?://(www\.)?expediapartnercentral\.com/Account/Logon.*"

    async def login(self, email: str, password: str, code_provider: CodeProvider) -> None:
        """Sign in and land on the authenticated property list.

        Args:
            email: Portal account email.
            password: Portal account password.
            code_provider: Blocking callable returning the emailed code or None.
        """
        await self.open()
        await self.enter_email(email)
        await self.enter_password(password)
        await self.wait_for_verification_page()

        logger.info("waiting_for_verification_email", grace_ms=self.config.email_grace_ms)
        await self.pacing.pause_ms(self.config.email_grace_ms)

        code = await asyncio.to_thread(code_provider)
        if not code:
            raise CodeNotFoundError("Failed to get verification code from email")
        logger.info("verification_code_received")

        await self.submit_verification_code(code)
        if self.is_current():
            logger.warning("still_on_login_page", url=self._page.url)
        logger.info("login_successful")

    async def open(self) -> None:
        logger.info("navigating_to_login", url=self.config.login_url)
        try:
            await self._page.goto(
                self.config.login_url,
                wait_until="networkidle",
                timeout=self.config.navigation_timeout_ms,
            )
        except PlaywrightError as e:
            raise NavigationError(f"Login page did not load: {e}") from e
        await self.pacing.settle("before_login")

    async def enter_email(self, email: str) -> None:
        await self._page.mouse.wheel(0, 200)
        email_input = await self.wait_for_selector(
            self.SELECTORS["email_input"], timeout=self.config.element_timeout_ms
        )
        await self.type_slowly(email_input, email, self.config.typing_delay_ms)
        await self._page.locator(self.SELECTORS["email_continue"]).first.click()
        logger.info("email_submitted")

    async def enter_password(self, password: str) -> None:
        """Find whichever password form rendered and submit the password."""
        logger.info("waiting_for_password_page")
        match = await first_visible(self._page, self.PASSWORD_VARIANTS)
        if match is None:
            title = await self._page.title()
            content = await self._page.content()
            logger.error("password_field_not_found", page_title=title)
            await self.save_debug_snapshot("login_password")
            raise FieldNotFoundError(
                "Password input field not found on the page",
                page_title=title,
                page_excerpt=content[: self.PAGE_EXCERPT_CHARS],
            )

        variant, password_input = match
        logger.info("password_field_found", selector=variant.selector)
        await self.pacing.settle("password_ready")

        if not await self._is_ready_for_input(password_input):
            logger.info("password_input_not_ready")
            await self.pacing.settle("password_not_ready")

        await password_input.click()
        await password_input.fill("")
        await self.type_slowly(password_input, password, self.config.password_delay_ms)
        await self.pacing.settle("password_submit")

        typed = await password_input.input_value()
        if len(typed) != len(password):
            logger.warning(
                "password_entry_mismatch", expected_length=len(password), actual_length=len(typed)
            )
            await password_input.fill("")
            await self.type_slowly(
                password_input, password, self.config.password_retype_delay_ms
            )
            await self.pacing.settle("password_not_ready")

        logger.info("submitting_password")
        await self._page.locator(variant.submit_selector).first.click()

    async def _is_ready_for_input(self, locator: Locator) -> bool:
        """Enabled and not already focused, so typing starts on a settled field."""
        if not await locator.is_enabled():
            return False
        return await locator.evaluate("(el) => document.activeElement !== el")

    async def wait_for_verification_page(self) -> None:
        logger.info("waiting_for_verification_page")
        try:
            await self.wait_for_selector(
                self.SELECTORS["passcode_input"],
                timeout=self.config.verification_timeout_ms,
            )
        except PlaywrightError as e:
            await self.save_debug_snapshot("login_verification")
            raise VerificationPageTimeoutError(
                f"Verification page did not appear: {e}"
            ) from e

    async def submit_verification_code(self, code: str) -> None:
        code_input = self._page.locator(self.SELECTORS["passcode_input"]).first
        await self.type_slowly(code_input, code, self.config.typing_delay_ms)
        await self.pacing.settle("after_code_entry")

        submit = self._page.locator(self.SELECTORS["passcode_submit"])
        if await submit.count() == 0:
            raise SubmitButtonMissingError("Verify button not found")
        if await submit.first.is_disabled():
            raise SubmitButtonDisabledError("Verify button is disabled")

        try:
            async with self._page.expect_navigation(
                wait_until="networkidle", timeout=self.config.post_login_timeout_ms
            ):
                await submit.first.click()
        except PlaywrightError as e:
            raise NavigationError(f"No navigation after verification: {e}") from e
        logger.info("verify_button_clicked")
