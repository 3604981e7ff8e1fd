"""Excel file handling with security hardening."""
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import pandas as pd
import structlog

from .models import NOT_AVAILABLE, PropertyLookup, ReservationRecord, WorkItem

logger = structlog.get_logger()

# Maximum file size in MB to prevent DoS
MAX_FILE_SIZE_MB = 50

PROPERTY_ID_COLUMN = "Property ID"
PROPERTY_NAME_COLUMN = "Property Name"
RESERVATION_ID_COLUMN = "Reservation ID"

# Export columns in record field order
REPORT_COLUMNS: list[tuple[str, str]] = [
    ("guest_name", "Guest Name"),
    ("reservation_id", "Reservation ID"),
    ("confirmation_code", "Confirmation Code"),
    ("check_in_date", "Check-in Date"),
    ("check_out_date", "Check-out Date"),
    ("room_type", "Room Type"),
    ("booking_amount", "Booking Amount"),
    ("booked_date", "Booked Date"),
    ("card_number", "Card Number"),
    ("expiry_date", "Expiry Date"),
    ("cvv", "CVV"),
    ("has_card_info", "Has Card Info"),
    ("has_payment_info", "Has Payment Info"),
    ("total_guest_payment", "Total Guest Payment"),
    ("cancellation_fee", "Cancellation Fee"),
    ("expedia_compensation", "Expedia Compensation"),
    ("total_payout", "Total Payout"),
    ("remaining_amount_to_charge", "Remaining Amount to Charge"),
    ("amount_to_refund", "Amount to Refund"),
    ("amount_to_charge_or_refund", "Amount to Charge/Refund"),
    ("reason_of_charge", "Reason of Charge"),
    ("status", "Status"),
    ("property_id", "Property ID"),
    ("property_name", "Property Name"),
    ("remaining_balance", "Card Remaining Balance"),
]

# Free text copied from the portal; amounts keep their leading minus
TEXT_FIELDS = {"guest_name", "confirmation_code", "room_type", "status", "property_name"}


def sanitize_cell_value(value: Any) -> Any:
    """Sanitize cell values to prevent formula injection.

    Excel formulas can execute commands when prefixed with certain characters.
    This function neutralizes potentially dangerous values by quoting them;
    DDE payloads are also logged.

    Args:
        value: Cell value to sanitize.

    Returns:
        Sanitized value, or original if safe.
    """
    if isinstance(value, str):
        dde_patterns = [
            r"=\s*CMD\s*\|",
            r"=\s*EXEC\s*\(",
            r"=\s*HYPERLINK\s*\(",
            r"=\s*WEBSERVICE\s*\(",
        ]
        for pattern in dde_patterns:
            if re.search(pattern, value, re.IGNORECASE):
                logger.warning("malicious_formula_neutralized", value=value[:50])
                break

        dangerous_prefixes = ("=", "+", "-", "@", "\t", "\r", "\n")
        if value.startswith(dangerous_prefixes):
            return f"'{value}"

    return value


def _normalize_cell(value: Any) -> str:
    """Render a sheet cell as the text a user would type into the portal."""
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
    text = str(value).strip()
    # Numeric ids read as text can carry a float suffix
    if re.fullmatch(r"\d+\.0", text):
        text = text[:-2]
    return text


def _read_sheet(filepath: Path) -> pd.DataFrame:
    if filepath.suffix.lower() == ".csv":
        return pd.read_csv(filepath, dtype=str, keep_default_na=False)
    return pd.read_excel(filepath, engine="openpyxl", dtype=str, keep_default_na=False)


def load_work_items(filepath: Path) -> list[WorkItem]:
    """Load the input sheet and group reservation ids by property.

    Properties keep the order in which they first appear; each property's
    reservation ids keep sheet order, duplicates included. "Property ID"
    is used when present, otherwise "Property Name".

    Args:
        filepath: Path to the Excel (or CSV) file.

    Returns:
        One WorkItem per distinct property.

    Raises:
        FileNotFoundError: If file doesn't exist.
        ValueError: If file is too large, missing columns, or contains invalid data.
    """
    if not filepath.exists():
        raise FileNotFoundError(f"Input file not found: {filepath}")

    file_size_mb = filepath.stat().st_size / (1024 * 1024)
    if file_size_mb > MAX_FILE_SIZE_MB:
        raise ValueError(
            f"File exceeds maximum size of {MAX_FILE_SIZE_MB}MB: {file_size_mb:.2f}MB"
        )

    df = _read_sheet(filepath)

    # Normalize column names: match case-insensitively, keep canonical spelling
    canonical = {
        name.lower(): name
        for name in (PROPERTY_ID_COLUMN, PROPERTY_NAME_COLUMN, RESERVATION_ID_COLUMN)
    }
    df.columns = [
        canonical.get(str(col).strip().lower(), str(col).strip()) for col in df.columns
    ]

    if PROPERTY_ID_COLUMN in df.columns:
        property_column, lookup = PROPERTY_ID_COLUMN, PropertyLookup.ID
    elif PROPERTY_NAME_COLUMN in df.columns:
        property_column, lookup = PROPERTY_NAME_COLUMN, PropertyLookup.NAME
    else:
        raise ValueError(
            f"Missing required columns: ['{PROPERTY_NAME_COLUMN}' or '{PROPERTY_ID_COLUMN}']"
        )
    if RESERVATION_ID_COLUMN not in df.columns:
        raise ValueError(f"Missing required columns: ['{RESERVATION_ID_COLUMN}']")

    grouped: dict[str, list[str]] = {}
    for row_number, row in enumerate(df.itertuples(index=False), start=2):
        values = dict(zip(df.columns, row))
        group_key = _normalize_cell(values[property_column])
        if not group_key:
            logger.warning("skipping_row_without_property", row=row_number)
            continue

        reservation_id = _normalize_cell(values[RESERVATION_ID_COLUMN])
        terms = grouped.setdefault(group_key, [])
        if not reservation_id:
            logger.warning(
                "skipping_row_without_reservation_id", row=row_number, property=group_key
            )
            continue
        terms.append(reservation_id)

    work_items = [
        WorkItem(group_key=key, search_terms=tuple(terms), lookup=lookup)
        for key, terms in grouped.items()
    ]
    logger.info(
        "loaded_work_items",
        properties=len(work_items),
        search_terms=sum(len(item.search_terms) for item in work_items),
        lookup=str(lookup),
    )
    return work_items


def export_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with ':' and '.' replaced by '-'."""
    now = now or datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    stamp = stamp.replace("+00:00", "Z")
    return stamp.replace(":", "-").replace(".", "-")


def _report_value(field: str, value: Any) -> Any:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if value is None or value == "":
        return NOT_AVAILABLE
    if field in TEXT_FIELDS:
        return sanitize_cell_value(value)
    return value


def records_to_frame(records: list[ReservationRecord]) -> pd.DataFrame:
    """Build the export table: fixed headers, one row per record."""
    rows = [
        [_report_value(field, getattr(record, field)) for field, _ in REPORT_COLUMNS]
        for record in records
    ]
    return pd.DataFrame(rows, columns=[header for _, header in REPORT_COLUMNS])


def save_reservations(
    records: list[ReservationRecord],
    output_dir: Path,
    now: Optional[datetime] = None,
) -> Optional[Path]:
    """Save scraped reservations to Excel.

    Args:
        records: Records accumulated over the whole run.
        output_dir: Directory to save the output file.
        now: Timestamp used in the file name (defaults to current UTC time).

    Returns:
        Path to the created output file, or None when there was nothing
        to export.
    """
    if not records:
        logger.warning("no_reservations_to_export")
        return None

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"reservations_{export_timestamp(now)}.xlsx"

    df = records_to_frame(records)

    # Scraped text is never interpreted as a formula or number
    with pd.ExcelWriter(
        output_path,
        engine="xlsxwriter",
        engine_kwargs={"options": {"strings_to_formulas": False, "strings_to_numbers": False}},
    ) as writer:
        workbook = writer.book

        header_format = workbook.add_format(
            {"bold": True, "bg_color": "#4F81BD", "font_color": "white"}
        )
        cancelled_format = workbook.add_format({"bg_color": "#FFC7CE"})

        df.to_excel(writer, sheet_name="Reservations", index=False)
        worksheet = writer.sheets["Reservations"]
        for col_num, value in enumerate(df.columns.values):
            worksheet.write(0, col_num, value, header_format)
        worksheet.set_column(0, len(df.columns) - 1, 18)

        status_col = df.columns.get_loc("Status")
        worksheet.conditional_format(
            1,
            status_col,
            len(df),
            status_col,
            {"type": "text", "criteria": "containing", "value": "Cancelled", "format": cancelled_format},
        )

    logger.info("saved_reservations", output_file=str(output_path), count=len(records))
    return output_path
