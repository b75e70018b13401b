# Overview: Plain domain records shared by the ingestion pipeline, repositories and reporting.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from salesboard.time_utils import to_utc_z


ZERO = Decimal("0")


class PaymentType(str, Enum):
    CASH = "CASH"
    QR = "QR"
    VIP = "VIP"
    CARD = "CARD"
    RETURN = "RETURN"
    UNKNOWN = "UNKNOWN"


class Granularity(str, Enum):
    YEAR = "year"
    MONTH = "month"
    DAY = "day"


def money(value: Decimal | None) -> float:
    """JSON-friendly rendering of a decimal amount."""
    if value is None:
        return 0.0
    return float(value)


def period_keys(operation_date: date) -> dict[Granularity, str]:
    """Aggregate bucket keys for one calendar date."""
    return {
        Granularity.YEAR: f"{operation_date.year:04d}",
        Granularity.MONTH: f"{operation_date.year:04d}-{operation_date.month:02d}",
        Granularity.DAY: operation_date.isoformat(),
    }


@dataclass
class Transaction:
    """
    Canonical sales/return record derived from one spreadsheet row.

    total_amount is always the absolute value; the sign lives in is_return.
    year/month/day are derived from operation_date and cannot drift from it.
    """
    operation_date: date
    product_name: str
    product_variant: str
    payment_type: PaymentType
    total_amount: Decimal
    is_return: bool = False
    order_number: str = ""
    check_number: str = ""
    product_code: str = ""
    payment_type_raw: str = ""
    quantity: Decimal = Decimal("1")
    unit: str = "шт"
    price_per_unit: Decimal = ZERO
    discount_percent: Decimal = ZERO
    discount_amount: Decimal = ZERO
    operation_time: str = ""
    cashier: str = ""
    shift: str = ""
    customer_name: str = ""
    customer_phone: str = ""
    notes: str = ""
    status: str = "completed"
    file_id: str | None = None
    uploaded_by: int | None = None
    uploaded_at: datetime | None = None
    id: int | None = None

    @property
    def year(self) -> int:
        return self.operation_date.year

    @property
    def month(self) -> int:
        return self.operation_date.month

    @property
    def day(self) -> int:
        return self.operation_date.day

    @property
    def dedup_key(self) -> tuple[str, str, date]:
        return (self.order_number, self.check_number, self.operation_date)

    @property
    def product_key(self) -> tuple[str, str]:
        return (self.product_name, self.product_variant)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "check_number": self.check_number,
            "product_code": self.product_code,
            "product_name": self.product_name,
            "product_variant": self.product_variant,
            "payment_type_raw": self.payment_type_raw,
            "payment_type": self.payment_type.value,
            "quantity": float(self.quantity),
            "unit": self.unit,
            "price_per_unit": money(self.price_per_unit),
            "discount_percent": float(self.discount_percent),
            "discount_amount": money(self.discount_amount),
            "total_amount": money(self.total_amount),
            "is_return": self.is_return,
            "operation_time": self.operation_time,
            "operation_date": self.operation_date.isoformat(),
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "cashier": self.cashier,
            "shift": self.shift,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "status": self.status,
            "file_id": self.file_id,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": to_utc_z(self.uploaded_at),
        }
        # Legacy aliases still read by the dashboard
        data["product"] = data["product_name"]
        data["flavor"] = data["product_variant"]
        data["price"] = data["total_amount"]
        data["date"] = data["operation_date"]
        return data


@dataclass
class TransactionFilter:
    start_date: date | None = None
    end_date: date | None = None
    payment_type: PaymentType | None = None
    product_contains: str | None = None
    year: int | None = None
    month: int | None = None
    day: int | None = None

    def matches(self, txn: Transaction) -> bool:
        if self.start_date and txn.operation_date < self.start_date:
            return False
        if self.end_date and txn.operation_date > self.end_date:
            return False
        if self.payment_type and txn.payment_type != self.payment_type:
            return False
        if self.product_contains and self.product_contains.lower() not in txn.product_name.lower():
            return False
        if self.year is not None and txn.year != self.year:
            return False
        if self.month is not None and txn.month != self.month:
            return False
        if self.day is not None and txn.day != self.day:
            return False
        return True


@dataclass
class PaymentBucket:
    count: int = 0
    sum: Decimal = ZERO

    def add(self, amount: Decimal) -> None:
        self.count += 1
        self.sum += amount

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "total": money(self.sum)}


def empty_payment_map() -> dict[PaymentType, PaymentBucket]:
    return {ptype: PaymentBucket() for ptype in PaymentType}


def payment_map_to_dict(buckets: dict[PaymentType, PaymentBucket]) -> dict[str, Any]:
    return {ptype.value: bucket.to_dict() for ptype, bucket in buckets.items()}


@dataclass
class ProductAggregate:
    product_name: str
    product_variant: str
    product_code: str = ""
    sales: int = 0
    returns: int = 0
    revenue: Decimal = ZERO
    return_amount: Decimal = ZERO
    quantity: Decimal = ZERO

    def apply(self, txn: Transaction) -> None:
        if txn.is_return:
            self.returns += 1
            self.return_amount += txn.total_amount
        else:
            self.sales += 1
            self.revenue += txn.total_amount
            self.quantity += txn.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_code": self.product_code,
            "product_name": self.product_name,
            "product_variant": self.product_variant,
            "sales": self.sales,
            "returns": self.returns,
            "revenue": money(self.revenue),
            "return_amount": money(self.return_amount),
            "net_revenue": money(self.revenue - self.return_amount),
            "quantity": float(self.quantity),
        }


@dataclass
class UploadedFileRecord:
    file_id: str
    file_name: str
    size: int
    uploaded_by: int | None
    upload_date: datetime
    records_total: int = 0
    records_new: int = 0
    records_updated: int = 0
    records_duplicate: int = 0
    records_errors: int = 0
    truncated: bool = False
    uploaded_by_name: str | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "file_id": self.file_id,
            "file_name": self.file_name,
            "size": self.size,
            "upload_date": to_utc_z(self.upload_date),
            "records_total": self.records_total,
            "records_new": self.records_new,
            "records_updated": self.records_updated,
            "records_duplicate": self.records_duplicate,
            "records_errors": self.records_errors,
            "truncated": self.truncated,
            "uploaded_by": self.uploaded_by,
            "uploaded_by_name": self.uploaded_by_name,
        }


@dataclass
class IngestionStats:
    total: int = 0
    new: int = 0
    updated: int = 0
    duplicate: int = 0
    errors: int = 0
    skipped: int = 0
    truncated: bool = False
    file_id: Optional[str] = None
    error_rows: list[int] = field(default_factory=list)

    def summary_message(self) -> str:
        message = (
            f"Processed {self.total} rows: {self.new} new, "
            f"{self.duplicate} duplicates, {self.errors} errors."
        )
        if self.truncated:
            message += " Processing stopped early; re-upload the file to ingest the remaining rows."
        return message

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "new": self.new,
            "updated": self.updated,
            "duplicate": self.duplicate,
            "errors": self.errors,
            "skipped": self.skipped,
            "truncated": self.truncated,
        }
