"""Tests for record assembly from dialog readings."""
import pytest

from reservation_exporter.exceptions import ExtractionError
from reservation_exporter.extractor import (
    build_degraded_record,
    build_record,
    is_cancellation_title,
    parse_card_data,
    parse_dialog_reading,
    parse_payment_data,
    resolve_charge_or_refund,
)
from reservation_exporter.models import BasicReservation


@pytest.fixture
def basic():
    return BasicReservation(
        guest_name="Ada Guest",
        reservation_id="R-1",
        confirmation_code="C-1",
        check_in_date="Jan 1",
        check_out_date="Jan 2",
        room_type="King",
        booking_amount="$100.00",
        booked_date="Dec 1",
    )


CARD = {"cardNumber": "4111 1111 1111 1111", "expiryDate": "12/27", "cvv": "123", "status": "Active"}
PAYMENT = {
    "Total guest payment": "$120.00",
    "Expedia compensation": "$12.00",
    "Your total payout": "$108.00",
}


class TestResolveChargeOrRefund:
    """Remaining charge wins over refund; neither gives N/A."""

    @pytest.mark.parametrize(
        "remaining, refund, expected",
        [
            ("$50.00", "", ("$50.00", "Remaining amount to charge")),
            ("$50.00", "$10.00", ("$50.00", "Remaining amount to charge")),
            ("", "$10.00", ("$10.00", "Amount to refund")),
            (None, "$10.00", ("$10.00", "Amount to refund")),
            ("", "", ("N/A", "N/A")),
            (None, None, ("N/A", "N/A")),
        ],
    )
    def test_resolution_table(self, remaining, refund, expected):
        assert resolve_charge_or_refund(remaining, refund) == expected


class TestParsing:
    """Tests for raw dialog parsing."""

    def test_card_requires_card_number(self):
        assert parse_card_data({"cardNumber": "", "expiryDate": "12/27"}) is None
        assert parse_card_data(None) is None
        assert parse_card_data(CARD).card_number == "4111 1111 1111 1111"

    def test_payment_requires_one_value(self):
        assert parse_payment_data({"Total guest payment": ""}) is None
        assert parse_payment_data({"Cancellation fee": "$5.00"}).cancellation_fee == "$5.00"

    def test_reading_without_data(self):
        reading = parse_dialog_reading({"title": "Reservation details"})

        assert not reading.has_data
        assert reading.side.remaining_amount_to_charge == ""

    def test_non_dict_reading_raises(self):
        with pytest.raises(ExtractionError, match="Unexpected dialog reading"):
            parse_dialog_reading("Reservation details")

    def test_cancellation_title_case_insensitive(self):
        assert is_cancellation_title("Reservation CANCELLED")
        assert is_cancellation_title("Cancellation details")
        assert not is_cancellation_title("Reservation details")
        assert not is_cancellation_title(None)


class TestActiveRecords:
    """Tests for live reservation records."""

    def test_card_data_wins_over_payment(self, basic):
        reading = parse_dialog_reading(
            {"title": "Reservation", "card": CARD, "payment": PAYMENT}
        )

        record = build_record(basic, reading, "P1", "Harbour Inn")

        assert record.has_card_info is True
        assert record.has_payment_info is False
        assert record.card_number == "4111 1111 1111 1111"
        assert record.total_guest_payment == "N/A"
        assert record.status == "Active"

    def test_payment_used_without_card(self, basic):
        reading = parse_dialog_reading({"title": "Reservation", "payment": PAYMENT})

        record = build_record(basic, reading, "P1", "Harbour Inn")

        assert record.has_card_info is False
        assert record.has_payment_info is True
        assert record.card_number == "N/A"
        assert record.total_payout == "$108.00"
        assert record.cancellation_fee == "N/A"

    def test_side_fields_resolve_amount(self, basic):
        reading = parse_dialog_reading({
            "title": "Reservation",
            "card": CARD,
            "side": {"Remaining amount to charge": "", "Amount to refund": "$20.00"},
        })

        record = build_record(basic, reading, None, "Harbour Inn")

        assert record.amount_to_charge_or_refund == "$20.00"
        assert record.reason_of_charge == "Amount to refund"
        assert record.remaining_amount_to_charge == "N/A"

    def test_status_from_badge(self, basic):
        reading = parse_dialog_reading({
            "title": "Reservation",
            "card": dict(CARD, status="Charged"),
        })

        record = build_record(basic, reading, None, None)

        assert record.status == "Charged"

    def test_basic_fields_copied(self, basic):
        reading = parse_dialog_reading({"title": "Reservation", "card": CARD})

        record = build_record(basic, reading, "P1", "Harbour Inn", remaining_balance="$80.00")

        assert record.reservation_id == "R-1"
        assert record.booked_date == "Dec 1"
        assert record.property_id == "P1"
        assert record.property_name == "Harbour Inn"
        assert record.remaining_balance == "$80.00"


class TestCancelledRecords:
    """Cancellation dialogs never carry card info."""

    def test_cancelled_invariants(self, basic):
        reading = parse_dialog_reading({
            "title": "Reservation cancelled",
            "card": CARD,
            "payment": {"Cancellation fee": "$30.00"},
            "side": {"Remaining amount to charge": "$99.00"},
        })

        record = build_record(basic, reading, "P1", "Harbour Inn")

        assert record.status == "Cancelled"
        assert record.reason_of_charge == "Cancellation Fee"
        assert record.has_card_info is False
        assert record.card_number == "N/A"
        assert record.cvv == "N/A"
        assert record.cancellation_fee == "$30.00"
        assert record.amount_to_charge_or_refund == "$30.00"

    def test_cancelled_without_fee(self, basic):
        reading = parse_dialog_reading({"title": "Cancelled reservation"})

        record = build_record(basic, reading, None, None)

        assert record.status == "Cancelled"
        assert record.has_payment_info is False
        assert record.amount_to_charge_or_refund == "N/A"


class TestDegradedRecord:
    def test_keeps_basic_fields_only(self, basic):
        record = build_degraded_record(basic, "P1", "Harbour Inn")

        assert record.guest_name == "Ada Guest"
        assert record.reservation_id == "R-1"
        assert record.card_number == "N/A"
        assert record.expiry_date == "N/A"
        assert record.total_guest_payment == "N/A"
        assert record.amount_to_charge_or_refund == "N/A"
        assert record.has_card_info is False
