# Overview: Builds downloadable .xlsx reports from the ledger and aggregate stores (read-only).

from __future__ import annotations

import io

from openpyxl import Workbook
from openpyxl.styles import Font

from ..records import Granularity, PaymentType, TransactionFilter, money
from ..repositories.base import SalesRepository
from salesboard.time_utils import utcnow


BOLD = Font(bold=True)

ROLLUP_COLUMNS = [
    PaymentType.CASH,
    PaymentType.QR,
    PaymentType.VIP,
    PaymentType.CARD,
    PaymentType.UNKNOWN,
    PaymentType.RETURN,
]

ORDER_HEADERS = [
    "Date", "Time", "Order", "Check", "Product code", "Product", "Variant",
    "Payment", "Quantity", "Unit", "Price", "Discount %", "Discount", "Total",
    "Return", "Cashier", "Shift", "Customer", "Phone", "Notes", "Status",
]


def _header(ws, headers: list[str]) -> None:
    ws.append(headers)
    for c in range(1, len(headers) + 1):
        ws.cell(row=1, column=c).font = BOLD


def _rollup_sheet(wb: Workbook, title: str, period_label: str, buckets_by_key) -> None:
    ws = wb.create_sheet(title)
    _header(ws, [period_label] + [p.value for p in ROLLUP_COLUMNS] + ["Transactions", "Net"])
    for key, buckets in buckets_by_key.items():
        sales = sum(buckets[p].sum for p in ROLLUP_COLUMNS if p is not PaymentType.RETURN)
        count = sum(b.count for b in buckets.values())
        ws.append(
            [key]
            + [money(buckets[p].sum) for p in ROLLUP_COLUMNS]
            + [count, money(sales - buckets[PaymentType.RETURN].sum)]
        )


def build_report_workbook(*, repository: SalesRepository, filters: TransactionFilter | None = None) -> Workbook:
    """Orders sheet (filtered ledger) plus Yearly and Monthly rollups."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Orders"
    _header(ws, ORDER_HEADERS)
    for txn in repository.list_transactions(filters):
        ws.append([
            txn.operation_date,
            txn.operation_time,
            txn.order_number,
            txn.check_number,
            txn.product_code,
            txn.product_name,
            txn.product_variant,
            txn.payment_type.value,
            float(txn.quantity),
            txn.unit,
            money(txn.price_per_unit),
            float(txn.discount_percent),
            money(txn.discount_amount),
            money(txn.total_amount),
            "yes" if txn.is_return else "",
            txn.cashier,
            txn.shift,
            txn.customer_name,
            txn.customer_phone,
            txn.notes,
            txn.status,
        ])

    _rollup_sheet(wb, "Yearly", "Year", repository.list_buckets(Granularity.YEAR))
    _rollup_sheet(wb, "Monthly", "Month", repository.list_buckets(Granularity.MONTH))
    return wb


def export_report(*, repository: SalesRepository, filters: TransactionFilter | None = None) -> tuple[io.BytesIO, str]:
    """Serialized workbook and a download file name."""
    wb = build_report_workbook(repository=repository, filters=filters)
    buffer = io.BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer, f"report_{utcnow().strftime('%Y%m%d_%H%M%S')}.xlsx"
