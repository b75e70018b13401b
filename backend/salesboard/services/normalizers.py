# Overview: Cell-level normalization for spreadsheet rows: payment labels, dates, numbers and text.

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from openpyxl.utils.datetime import from_excel

from ..records import PaymentType
from salesboard.time_utils import today


# Checked in order; the first matching group wins.
PAYMENT_KEYWORDS: tuple[tuple[PaymentType, tuple[str, ...]], ...] = (
    (PaymentType.CASH, ("наличн", "cash")),
    (PaymentType.QR, ("qr", "таможен")),
    (PaymentType.VIP, ("vip", "вип")),
    (PaymentType.CARD, ("карт", "кредит", "card", "credit")),
)

RETURN_KEYWORDS = ("возврат", "return")

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_NUMERIC_PREFIX = re.compile(r"-?\d*\.?\d+")
_LEADING_INT = re.compile(r"^\s*(\d+)")

# Excel serial day numbers that map to plausible calendar dates (1900..2199)
_EXCEL_SERIAL_RANGE = (1, 109574)


def classify_payment(raw_label: Any, amount: Decimal | float | int = 0) -> PaymentType:
    """
    Map a free-text payment label to a PaymentType.

    Label matching runs first; a negative amount then forces RETURN no matter
    what the label said. Unrecognized labels are UNKNOWN, never an error.
    """
    label = to_text(raw_label).lower()
    result = PaymentType.UNKNOWN
    for payment_type, keywords in PAYMENT_KEYWORDS:
        if any(keyword in label for keyword in keywords):
            result = payment_type
            break

    if amount is not None and amount < 0:
        result = PaymentType.RETURN
    return result


def is_return_label(raw_label: Any) -> bool:
    label = to_text(raw_label).lower()
    return any(keyword in label for keyword in RETURN_KEYWORDS)


@dataclass(frozen=True)
class ParsedDate:
    value: date
    is_fallback: bool = False

    @property
    def year(self) -> int:
        return self.value.year

    @property
    def month(self) -> int:
        return self.value.month

    @property
    def day(self) -> int:
        return self.value.day

    @property
    def iso(self) -> str:
        return self.value.isoformat()


def _leading_int(text: str) -> int | None:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else None


def _split_date_parts(text: str) -> tuple[int | None, int | None, int | None] | None:
    """Return (year, month, day) from the date portion of a string, or None."""
    date_part = text.strip().split()[0] if text.strip() else ""
    date_part = date_part.split("T")[0] if "-" in date_part else date_part

    if "-" in date_part:
        parts = date_part.split("-")
        if len(parts) == 3:
            return _leading_int(parts[0]), _leading_int(parts[1]), _leading_int(parts[2])
    elif "." in date_part:
        parts = date_part.split(".")
        if len(parts) == 3:
            return _leading_int(parts[2]), _leading_int(parts[1]), _leading_int(parts[0])
    elif "/" in date_part:
        parts = date_part.split("/")
        if len(parts) == 3:
            return _leading_int(parts[2]), _leading_int(parts[0]), _leading_int(parts[1])
    return None


def parse_operation_date(raw: Any) -> ParsedDate:
    """
    Parse an operation date cell into a calendar date.

    Never raises. Accepts date/datetime objects, Excel serial numbers and the
    string formats YYYY-MM-DD, DD.MM.YYYY and MM/DD/YYYY (time suffix ignored).
    Anything else yields today's date with is_fallback=True.
    """
    if isinstance(raw, datetime):
        return ParsedDate(raw.date())
    if isinstance(raw, date):
        return ParsedDate(raw)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        low, high = _EXCEL_SERIAL_RANGE
        if low <= raw <= high:
            try:
                converted = from_excel(raw)
            except (ValueError, OverflowError, TypeError):
                converted = None
            if isinstance(converted, datetime):
                return ParsedDate(converted.date())
            if isinstance(converted, date):
                return ParsedDate(converted)
        return ParsedDate(today(), is_fallback=True)

    parts = _split_date_parts(to_text(raw))
    if parts:
        year, month, day = parts
        if year and month and day and 1 <= month <= 12 and 1 <= day <= 31:
            try:
                return ParsedDate(date(year, month, day))
            except ValueError:
                pass
    return ParsedDate(today(), is_fallback=True)


def to_decimal(value: Any, default: Decimal) -> Decimal:
    """
    Permissive numeric parse: strips everything but digits, '.' and '-',
    then reads the leading number ("1500.00 руб." -> 1500.00, "20-" -> 20).

    Input with no leading number returns default.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return default
        return Decimal(repr(value))
    match = _NUMERIC_PREFIX.match(_NON_NUMERIC.sub("", str(value)))
    if not match:
        return default
    return Decimal(match.group())


def to_text(value: Any) -> str:
    """Cell value as a trimmed string; integral floats lose their '.0'."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    return str(value).strip()
