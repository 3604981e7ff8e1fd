"""Assemble reservation records from raw dialog readings.

The dialog page object returns plain dicts of strings; everything that
decides which fields land in a record lives here so it can be tested
without a browser.
"""
from dataclasses import dataclass
from typing import Any, Optional

from .exceptions import ExtractionError
from .models import (
    ACTIVE_STATUS,
    CANCELLED_STATUS,
    NOT_AVAILABLE,
    BasicReservation,
    ChargeReason,
    ReservationRecord,
)


PAYMENT_TITLES = {
    "total_guest_payment": "Total guest payment",
    "expedia_compensation": "Expedia compensation",
    "total_payout": "Your total payout",
    "cancellation_fee": "Cancellation fee",
}

SIDE_FIELD_LABELS = {
    "remaining_amount_to_charge": "Remaining amount to charge",
    "amount_to_refund": "Amount to refund",
}


@dataclass(frozen=True)
class CardData:
    card_number: str
    expiry_date: str
    cvv: str
    status: Optional[str] = None


@dataclass(frozen=True)
class PaymentData:
    total_guest_payment: str = ""
    expedia_compensation: str = ""
    total_payout: str = ""
    cancellation_fee: str = ""

    def has_values(self) -> bool:
        return any(
            (
                self.total_guest_payment,
                self.expedia_compensation,
                self.total_payout,
                self.cancellation_fee,
            )
        )


@dataclass(frozen=True)
class SideFields:
    remaining_amount_to_charge: str = ""
    amount_to_refund: str = ""


@dataclass(frozen=True)
class DialogReading:
    """Everything read from one open reservation dialog."""

    title: str = ""
    card: Optional[CardData] = None
    payment: Optional[PaymentData] = None
    side: SideFields = SideFields()
    status_badge: Optional[str] = None

    @property
    def has_data(self) -> bool:
        return self.card is not None or self.payment is not None


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_card_data(raw: Optional[dict]) -> Optional[CardData]:
    """Card data counts as present only when the card number is non-empty."""
    if not raw:
        return None
    card_number = _clean(raw.get("cardNumber"))
    if not card_number:
        return None
    return CardData(
        card_number=card_number,
        expiry_date=_clean(raw.get("expiryDate")),
        cvv=_clean(raw.get("cvv")),
        status=_clean(raw.get("status")) or None,
    )


def parse_payment_data(raw: Optional[dict]) -> Optional[PaymentData]:
    """Payment data counts as present when at least one amount is non-empty.

    Args:
        raw: Mapping of section title to currency text.
    """
    if not raw:
        return None
    payment = PaymentData(
        **{field: _clean(raw.get(title)) for field, title in PAYMENT_TITLES.items()}
    )
    return payment if payment.has_values() else None


def parse_side_fields(raw: Optional[dict]) -> SideFields:
    raw = raw or {}
    return SideFields(
        **{field: _clean(raw.get(label)) for field, label in SIDE_FIELD_LABELS.items()}
    )


def parse_dialog_reading(raw: Optional[dict]) -> DialogReading:
    """Build a DialogReading from the dict returned by the dialog script.

    Raises:
        ExtractionError: If the script returned something other than a dict.
    """
    if raw is not None and not isinstance(raw, dict):
        raise ExtractionError(f"Unexpected dialog reading: {type(raw).__name__}")
    raw = raw or {}
    return DialogReading(
        title=_clean(raw.get("title")),
        card=parse_card_data(raw.get("card")),
        payment=parse_payment_data(raw.get("payment")),
        side=parse_side_fields(raw.get("side")),
        status_badge=_clean(raw.get("statusBadge")) or None,
    )


def is_cancellation_title(title: Optional[str]) -> bool:
    return "cancel" in _clean(title).lower()


def resolve_charge_or_refund(
    remaining_amount_to_charge: Optional[str], amount_to_refund: Optional[str]
) -> tuple[str, str]:
    """Pick the amount still to settle and the reason for it.

    Returns:
        (amount, reason): the remaining charge if present, else the refund,
        else N/A for both.
    """
    remaining = _clean(remaining_amount_to_charge)
    refund = _clean(amount_to_refund)
    if remaining:
        return remaining, str(ChargeReason.REMAINING_CHARGE)
    if refund:
        return refund, str(ChargeReason.REFUND)
    return NOT_AVAILABLE, str(ChargeReason.NONE)


def _or_na(value: Optional[str]) -> str:
    return value if value else NOT_AVAILABLE


def build_cancelled_record(
    basic: BasicReservation,
    reading: DialogReading,
    property_id: Optional[str],
    property_name: Optional[str],
    remaining_balance: str = NOT_AVAILABLE,
) -> ReservationRecord:
    """Record for a reservation whose dialog shows a cancellation."""
    payment = reading.payment or PaymentData()
    side = reading.side
    return ReservationRecord(
        guest_name=basic.guest_name,
        reservation_id=basic.reservation_id,
        confirmation_code=basic.confirmation_code,
        check_in_date=basic.check_in_date,
        check_out_date=basic.check_out_date,
        room_type=basic.room_type,
        booking_amount=basic.booking_amount,
        booked_date=basic.booked_date,
        card_number=NOT_AVAILABLE,
        expiry_date=NOT_AVAILABLE,
        cvv=NOT_AVAILABLE,
        has_card_info=False,
        has_payment_info=payment.has_values(),
        total_guest_payment=_or_na(payment.total_guest_payment),
        cancellation_fee=_or_na(payment.cancellation_fee),
        expedia_compensation=_or_na(payment.expedia_compensation),
        total_payout=_or_na(payment.total_payout),
        remaining_amount_to_charge=_or_na(side.remaining_amount_to_charge),
        amount_to_refund=_or_na(side.amount_to_refund),
        amount_to_charge_or_refund=_or_na(payment.cancellation_fee),
        reason_of_charge=str(ChargeReason.CANCELLATION_FEE),
        status=CANCELLED_STATUS,
        property_id=property_id,
        property_name=property_name,
        remaining_balance=remaining_balance,
    )


def build_active_record(
    basic: BasicReservation,
    reading: DialogReading,
    property_id: Optional[str],
    property_name: Optional[str],
    remaining_balance: str = NOT_AVAILABLE,
) -> ReservationRecord:
    """Record for a live reservation.

    Card data wins over payment data; only one of them fills the primary
    payment columns.
    """
    card = reading.card
    payment = None if card else reading.payment
    side = reading.side
    amount, reason = resolve_charge_or_refund(
        side.remaining_amount_to_charge, side.amount_to_refund
    )
    status = (card.status if card else None) or reading.status_badge or ACTIVE_STATUS

    return ReservationRecord(
        guest_name=basic.guest_name,
        reservation_id=basic.reservation_id,
        confirmation_code=basic.confirmation_code,
        check_in_date=basic.check_in_date,
        check_out_date=basic.check_out_date,
        room_type=basic.room_type,
        booking_amount=basic.booking_amount,
        booked_date=basic.booked_date,
        card_number=card.card_number if card else NOT_AVAILABLE,
        expiry_date=_or_na(card.expiry_date) if card else NOT_AVAILABLE,
        cvv=_or_na(card.cvv) if card else NOT_AVAILABLE,
        has_card_info=card is not None,
        has_payment_info=payment is not None,
        total_guest_payment=_or_na(payment.total_guest_payment) if payment else NOT_AVAILABLE,
        cancellation_fee=_or_na(payment.cancellation_fee) if payment else NOT_AVAILABLE,
        expedia_compensation=_or_na(payment.expedia_compensation) if payment else NOT_AVAILABLE,
        total_payout=_or_na(payment.total_payout) if payment else NOT_AVAILABLE,
        remaining_amount_to_charge=_or_na(side.remaining_amount_to_charge),
        amount_to_refund=_or_na(side.amount_to_refund),
        amount_to_charge_or_refund=amount,
        reason_of_charge=reason,
        status=status,
        property_id=property_id,
        property_name=property_name,
        remaining_balance=remaining_balance,
    )


def build_record(
    basic: BasicReservation,
    reading: DialogReading,
    property_id: Optional[str],
    property_name: Optional[str],
    remaining_balance: str = NOT_AVAILABLE,
) -> ReservationRecord:
    """Branch on the dialog type and build the matching record."""
    if is_cancellation_title(reading.title):
        return build_cancelled_record(
            basic, reading, property_id, property_name, remaining_balance
        )
    return build_active_record(
        basic, reading, property_id, property_name, remaining_balance
    )


def build_degraded_record(
    basic: BasicReservation,
    property_id: Optional[str],
    property_name: Optional[str],
) -> ReservationRecord:
    """Record for a row whose dialog could not be read.

    Table fields are kept; every card and payment field is N/A.
    """
    return ReservationRecord(
        guest_name=basic.guest_name,
        reservation_id=basic.reservation_id,
        confirmation_code=basic.confirmation_code,
        check_in_date=basic.check_in_date,
        check_out_date=basic.check_out_date,
        room_type=basic.room_type,
        booking_amount=basic.booking_amount,
        booked_date=basic.booked_date,
        card_number=NOT_AVAILABLE,
        expiry_date=NOT_AVAILABLE,
        cvv=NOT_AVAILABLE,
        has_card_info=False,
        has_payment_info=False,
        total_guest_payment=NOT_AVAILABLE,
        cancellation_fee=NOT_AVAILABLE,
        expedia_compensation=NOT_AVAILABLE,
        total_payout=NOT_AVAILABLE,
        remaining_amount_to_charge=NOT_AVAILABLE,
        amount_to_refund=NOT_AVAILABLE,
        amount_to_charge_or_refund=NOT_AVAILABLE,
        reason_of_charge=NOT_AVAILABLE,
        status=ACTIVE_STATUS,
        property_id=property_id,
        property_name=property_name,
    )
