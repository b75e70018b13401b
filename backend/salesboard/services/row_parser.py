# Overview: Turns one positional spreadsheet row into a canonical Transaction.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Sequence

from ..records import PaymentType, Transaction
from .normalizers import (
    classify_payment,
    is_return_label,
    parse_operation_date,
    to_decimal,
    to_text,
)


UNKNOWN_PRODUCT = "Без названия"
STANDARD_VARIANT = "Стандарт"
DEFAULT_UNIT = "шт"
DEFAULT_STATUS = "completed"

DATE_POLICY_TODAY = "today"
DATE_POLICY_REJECT = "reject"
DATE_POLICIES = (DATE_POLICY_TODAY, DATE_POLICY_REJECT)


class RowError(ValueError):
    """Raised when a single row cannot be turned into a transaction."""

    def __init__(self, row_index: int, message: str):
        super().__init__(f"Row {row_index}: {message}")
        self.row_index = row_index


@dataclass(frozen=True)
class ColumnLayout:
    """
    Field -> column index mapping of the point-of-sale export.

    Bump version and add a new layout when the export format changes.
    """
    version: int
    columns: dict[str, int]
    required_cells: int
    max_lengths: dict[str, int]

    def cell(self, row: Sequence[Any], field: str) -> Any:
        index = self.columns[field]
        return row[index] if index < len(row) else None


COLUMN_LAYOUT_V1 = ColumnLayout(
    version=1,
    columns={
        "order_number": 0,
        "product_code": 1,
        "product_name": 2,
        "product_variant": 3,
        "payment_type_raw": 4,
        "quantity": 5,
        "unit": 6,
        "price_per_unit": 7,
        "discount_percent": 8,
        "discount_amount": 9,
        "total_amount": 10,
        "operation_time": 11,
        "operation_date": 12,
        "cashier": 13,
        "shift": 14,
        "check_number": 15,
        "customer_name": 16,
        "customer_phone": 17,
        "notes": 18,
        "status": 19,
    },
    required_cells=13,
    # Matches the orders table column sizes
    max_lengths={
        "order_number": 128,
        "check_number": 128,
        "operation_time": 32,
        "product_code": 128,
        "product_name": 255,
        "product_variant": 255,
        "payment_type_raw": 128,
        "unit": 32,
        "cashier": 128,
        "shift": 64,
        "customer_name": 255,
        "customer_phone": 64,
        "status": 32,
    },
)

COLUMN_LAYOUT = COLUMN_LAYOUT_V1


def parse_row(
    row: Sequence[Any] | None,
    row_index: int,
    *,
    file_id: str | None = None,
    uploaded_by: int | None = None,
    uploaded_at: datetime | None = None,
    date_policy: str = DATE_POLICY_TODAY,
    layout: ColumnLayout = COLUMN_LAYOUT,
) -> Transaction | None:
    """
    Parse one data row.

    Returns None for rows shorter than the required cell count (blank trailing
    rows); those are neither successes nor errors. Raises RowError when the
    row is unusable or a text cell exceeds its stored width.
    """
    if not row or len(row) < layout.required_cells:
        return None

    def cell(field: str) -> Any:
        return layout.cell(row, field)

    raw_amount = to_decimal(cell("total_amount"), Decimal("0"))
    raw_label = to_text(cell("payment_type_raw"))

    parsed_date = parse_operation_date(cell("operation_date"))
    if parsed_date.is_fallback and date_policy == DATE_POLICY_REJECT:
        raise RowError(row_index, f"unreadable operation date {cell('operation_date')!r}")

    is_return = raw_amount < 0 or is_return_label(raw_label)
    payment_type = classify_payment(raw_label, raw_amount)
    if is_return:
        payment_type = PaymentType.RETURN

    # Return lines sometimes carry a negative quantity; the sign is kept in is_return
    quantity = abs(to_decimal(cell("quantity"), Decimal("1")))

    txn = Transaction(
        order_number=to_text(cell("order_number")),
        check_number=to_text(cell("check_number")),
        operation_date=parsed_date.value,
        operation_time=to_text(cell("operation_time")),
        product_code=to_text(cell("product_code")),
        product_name=to_text(cell("product_name")) or UNKNOWN_PRODUCT,
        product_variant=to_text(cell("product_variant")) or STANDARD_VARIANT,
        payment_type_raw=raw_label,
        payment_type=payment_type,
        quantity=quantity,
        unit=to_text(cell("unit")) or DEFAULT_UNIT,
        price_per_unit=to_decimal(cell("price_per_unit"), Decimal("0")),
        discount_percent=to_decimal(cell("discount_percent"), Decimal("0")),
        discount_amount=to_decimal(cell("discount_amount"), Decimal("0")),
        total_amount=abs(raw_amount),
        is_return=is_return,
        cashier=to_text(cell("cashier")),
        shift=to_text(cell("shift")),
        customer_name=to_text(cell("customer_name")),
        customer_phone=to_text(cell("customer_phone")),
        notes=to_text(cell("notes")),
        status=to_text(cell("status")) or DEFAULT_STATUS,
        file_id=file_id,
        uploaded_by=uploaded_by,
        uploaded_at=uploaded_at,
    )

    for field, limit in layout.max_lengths.items():
        if len(getattr(txn, field)) > limit:
            raise RowError(row_index, f"{field} longer than {limit} characters")
    return txn
