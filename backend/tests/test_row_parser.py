from datetime import date
from decimal import Decimal

import pytest

from salesboard.models import Order
from salesboard.records import PaymentType
from salesboard.services.row_parser import (
    COLUMN_LAYOUT,
    DATE_POLICY_REJECT,
    STANDARD_VARIANT,
    UNKNOWN_PRODUCT,
    RowError,
    parse_row,
)

from factories import make_row


def test_layout_is_versioned_and_positional():
    assert COLUMN_LAYOUT.version == 1
    assert COLUMN_LAYOUT.required_cells == 13
    assert COLUMN_LAYOUT.columns["total_amount"] == 10
    assert COLUMN_LAYOUT.columns["check_number"] == 15


def test_minimal_sale_row():
    row = ["O1", "C1", "Widget", "Red", "Cash", 2, "pcs", 10, 0, 0, 20, "12:00", "2024-03-15", "K1"]
    txn = parse_row(row, 1)

    assert txn.payment_type == PaymentType.CASH
    assert txn.total_amount == Decimal("20")
    assert txn.is_return is False
    assert (txn.year, txn.month, txn.day) == (2024, 3, 15)
    assert txn.order_number == "O1"
    assert txn.product_code == "C1"
    assert txn.check_number == ""
    assert txn.cashier == "K1"
    assert txn.quantity == Decimal("2")
    assert txn.unit == "pcs"
    assert txn.status == "completed"


def test_negative_amount_is_a_return():
    row = ["O1", "C1", "Widget", "Red", "Cash", 2, "pcs", 10, 0, 0, -20, "12:00", "2024-03-15", "K1"]
    txn = parse_row(row, 1)

    assert txn.payment_type == PaymentType.RETURN
    assert txn.total_amount == Decimal("20")
    assert txn.is_return is True


def test_return_label_with_positive_amount():
    txn = parse_row(make_row(payment="Возврат", total=15), 1)
    assert txn.is_return is True
    assert txn.payment_type == PaymentType.RETURN
    assert txn.total_amount == Decimal("15")


def test_negative_quantity_is_stored_unsigned():
    txn = parse_row(make_row(quantity=-3, total=-30), 1)
    assert txn.quantity == Decimal("3")
    assert txn.is_return is True


@pytest.mark.parametrize("row", [None, [], ["O1"] * 12])
def test_short_rows_are_skipped(row):
    assert parse_row(row, 5) is None


def test_defaults_for_blank_cells():
    row = make_row(product=None, variant="", quantity="n/a", price="??", total="abc")
    row[6] = None
    row[19] = None
    txn = parse_row(row, 1)

    assert txn.product_name == UNKNOWN_PRODUCT
    assert txn.product_variant == STANDARD_VARIANT
    assert txn.quantity == Decimal("1")
    assert txn.price_per_unit == Decimal("0")
    assert txn.total_amount == Decimal("0")
    assert txn.unit == "шт"
    assert txn.status == "completed"
    assert txn.payment_type == PaymentType.CASH


def test_numeric_identifiers_lose_float_suffix():
    txn = parse_row(make_row(order=1001.0, check=77.0), 1)
    assert txn.order_number == "1001"
    assert txn.check_number == "77"


def test_provenance_is_attached():
    txn = parse_row(make_row(), 3, file_id="abc", uploaded_by=7)
    assert txn.file_id == "abc"
    assert txn.uploaded_by == 7


def test_bad_date_kept_under_today_policy():
    txn = parse_row(make_row(date="garbage"), 1)
    assert txn.operation_date == date.today()


def test_bad_date_rejected_under_reject_policy():
    with pytest.raises(RowError) as exc_info:
        parse_row(make_row(date="garbage"), 4, date_policy=DATE_POLICY_REJECT)
    assert exc_info.value.row_index == 4


def test_serialized_aliases():
    data = parse_row(make_row(product="Cola", variant="Lime", total=12.5), 1).to_dict()
    assert data["product"] == "Cola"
    assert data["flavor"] == "Lime"
    assert data["price"] == 12.5
    assert data["date"] == "2024-03-15"
    assert data["payment_type"] == "CASH"


def test_amount_with_currency_suffix_keeps_its_value():
    txn = parse_row(make_row(total="1500.00 руб.", price="750 руб."), 1)
    assert txn.total_amount == Decimal("1500.00")
    assert txn.price_per_unit == Decimal("750")


def test_trailing_minus_is_ignored():
    txn = parse_row(make_row(total="20-"), 1)
    assert txn.total_amount == Decimal("20")
    assert txn.is_return is False


@pytest.mark.parametrize(
    "field,kwargs",
    [
        ("operation_time", {"time": "x" * 33}),
        ("order_number", {"order": "9" * 129}),
        ("product_name", {"product": "Ж" * 256}),
    ],
)
def test_over_long_text_is_a_row_error(field, kwargs):
    with pytest.raises(RowError) as exc_info:
        parse_row(make_row(**kwargs), 6)
    assert exc_info.value.row_index == 6
    assert field in str(exc_info.value)


def test_text_at_the_limit_is_accepted():
    txn = parse_row(make_row(time="x" * 32), 1)
    assert txn.operation_time == "x" * 32


def test_layout_widths_match_orders_table():
    for field, limit in COLUMN_LAYOUT.max_lengths.items():
        assert Order.__table__.c[field].type.length == limit
