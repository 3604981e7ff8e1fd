"""Error taxonomy for the reservation export run.

Login and navigation errors are fatal and end the run. DialogTimeout and
ExtractionError are scoped to one table row, PageProcessingError to one
results page; the scraper catches those and keeps going.
"""
from typing import Optional


class ExporterError(Exception):
    """Base class for every error raised by the exporter."""


class WaitTimeout(ExporterError):
    """A named wait condition did not hold within its timeout."""

    def __init__(self, name: str, timeout_ms: int) -> None:
        super().__init__(f"Timed out after {timeout_ms}ms waiting for {name}")
        self.name = name
        self.timeout_ms = timeout_ms


class NavigationError(ExporterError):
    """A page did not finish loading within its timeout."""


class FieldNotFoundError(ExporterError):
    """An expected input field is missing from the page."""

    def __init__(
        self,
        message: str,
        page_title: Optional[str] = None,
        page_excerpt: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.page_title = page_title
        self.page_excerpt = page_excerpt


class VerificationPageTimeoutError(ExporterError):
    """The two-factor code input never appeared."""


class CodeNotFoundError(ExporterError):
    """No verification code could be read from the mailbox."""


class SubmitButtonMissingError(ExporterError):
    """The verification submit button is not on the page."""


class SubmitButtonDisabledError(ExporterError):
    """The verification submit button is present but disabled."""


class PropertyNotFoundError(ExporterError):
    """No row in the property list matches the work item's key."""


class NavigationLinkNotFoundError(ExporterError):
    """The Reservations entry is missing from the property drawer."""


class SearchInputNotFoundError(ExporterError):
    """None of the reservation search input candidates became visible."""


class DialogTimeout(ExporterError):
    """A reservation detail dialog did not open in time."""


class ExtractionError(ExporterError):
    """Reading fields from a reservation row or dialog failed."""


class PageProcessingError(ExporterError):
    """Processing a page of results failed and needs a reload."""

    def __init__(self, page_number: int, cause: Exception) -> None:
        super().__init__(f"Error processing page {page_number}: {cause}")
        self.page_number = page_number
        self.cause = cause


FATAL_ERRORS = (
    NavigationError,
    FieldNotFoundError,
    VerificationPageTimeoutError,
    CodeNotFoundError,
    SubmitButtonMissingError,
    SubmitButtonDisabledError,
    PropertyNotFoundError,
    NavigationLinkNotFoundError,
)
