"""Data contracts for type safety and documentation."""
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, Optional


NOT_AVAILABLE = "N/A"


class PropertyLookup(StrEnum):
    """Which identifying field a work item's group key holds."""

    NAME = "name"
    ID = "id"


class LogLevel(StrEnum):
    """Levels understood by the dashboard log document."""

    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    DATA = "DATA"


class ChargeReason(StrEnum):
    """Why an amount is left to charge or refund on a reservation."""

    REMAINING_CHARGE = "Remaining amount to charge"
    REFUND = "Amount to refund"
    CANCELLATION_FEE = "Cancellation Fee"
    NONE = NOT_AVAILABLE


CANCELLED_STATUS = "Cancelled"
ACTIVE_STATUS = "Active"


@dataclass(frozen=True)
class WorkItem:
    """One property's worth of search terms to process."""

    group_key: str
    search_terms: tuple[str, ...]
    lookup: PropertyLookup = PropertyLookup.NAME


@dataclass(frozen=True)
class ScraperConfig:
    """Configuration for the automation run."""

    input_file: Path
    output_dir: Path
    headless: bool = True
    login_url: str = "https://www.expediapartnercentral.com/Account/Logon?signedOff=true"
    home_url: str = "https://apps.expediapartnercentral.com/"
    navigation_timeout_ms: int = 60000
    verification_timeout_ms: int = 60000
    post_login_timeout_ms: int = 60000
    element_timeout_ms: int = 30000
    reservations_timeout_ms: int = 80000
    dialog_timeout_ms: int = 8000
    email_grace_ms: int = 15000
    typing_delay_ms: int = 100
    password_delay_ms: int = 150
    password_retype_delay_ms: int = 200
    search_typing_delay_ms: int = 150
    property_typing_delay_ms: int = 500
    delays_ms: dict[str, int] = field(default_factory=dict)
    capture_card_activity: bool = False
    max_page_retries: int = 3
    extraction_attempts: int = 3


@dataclass(frozen=True)
class BasicReservation:
    """Fields read straight from a reservations table row."""

    guest_name: str = ""
    reservation_id: str = ""
    confirmation_code: str = ""
    check_in_date: str = ""
    check_out_date: str = ""
    room_type: str = ""
    booking_amount: str = ""
    booked_date: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BasicReservation":
        """Build from the camelCase dict returned by the row script."""
        return cls(
            guest_name=data.get("guestName", "") or "",
            reservation_id=data.get("reservationId", "") or "",
            confirmation_code=data.get("confirmationCode", "") or "",
            check_in_date=data.get("checkInDate", "") or "",
            check_out_date=data.get("checkOutDate", "") or "",
            room_type=data.get("roomType", "") or "",
            booking_amount=data.get("bookingAmount", "") or "",
            booked_date=data.get("bookedDate", "") or "",
        )


@dataclass(frozen=True)
class ReservationRecord:
    """A single scraped reservation, ready for export."""

    guest_name: str
    reservation_id: str
    confirmation_code: str
    check_in_date: str
    check_out_date: str
    room_type: str
    booking_amount: str
    booked_date: str
    card_number: Optional[str] = None
    expiry_date: Optional[str] = None
    cvv: Optional[str] = None
    has_card_info: bool = False
    has_payment_info: bool = False
    total_guest_payment: Optional[str] = None
    cancellation_fee: Optional[str] = None
    expedia_compensation: Optional[str] = None
    total_payout: Optional[str] = None
    remaining_amount_to_charge: Optional[str] = None
    amount_to_refund: Optional[str] = None
    amount_to_charge_or_refund: str = NOT_AVAILABLE
    reason_of_charge: str = NOT_AVAILABLE
    status: str = ACTIVE_STATUS
    property_id: Optional[str] = None
    property_name: Optional[str] = None
    remaining_balance: str = NOT_AVAILABLE

    def to_dict(self) -> dict:
        """Convert to dictionary for DataFrame creation."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class RunResult:
    """Records accumulated across every property in one run."""

    records: list[ReservationRecord] = field(default_factory=list)
    output_path: Optional[Path] = None
    properties_processed: int = 0
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: Optional[datetime] = None

    @property
    def elapsed_seconds(self) -> float:
        end = self.ended_at or datetime.now()
        return (end - self.started_at).total_seconds()


@dataclass(frozen=True)
class LogEntry:
    """One line of the dashboard audit trail."""

    timestamp: str
    level: LogLevel
    message: str
    data: Optional[Any] = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "level": str(self.level),
            "message": self.message,
            "data": self.data,
        }
