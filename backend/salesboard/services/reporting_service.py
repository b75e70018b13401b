# Overview: Read-side queries over the ledger and aggregate stores, plus aggregate rebuild/verification.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ..extensions import db
from ..models import User
from ..records import (
    ZERO,
    Granularity,
    PaymentBucket,
    PaymentType,
    Transaction,
    TransactionFilter,
    UploadedFileRecord,
    empty_payment_map,
    money,
    payment_map_to_dict,
    period_keys,
)
from ..repositories.base import SalesRepository
from salesboard.time_utils import parse_iso_date


logger = logging.getLogger(__name__)

ALL_PAYMENT_TYPES = "ALL"


class ReportError(Exception):
    """Raised when a report request cannot be served."""
    pass


@dataclass(frozen=True)
class PeriodKey:
    granularity: Granularity
    year: int
    month: int | None = None
    day: int | None = None

    @property
    def aggregate_key(self) -> str:
        if self.granularity is Granularity.YEAR:
            return f"{self.year:04d}"
        if self.granularity is Granularity.MONTH:
            return f"{self.year:04d}-{self.month:02d}"
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"


def parse_period_key(period_key: str | None) -> PeriodKey:
    """
    Parse YYYY, YYYY_MM or YYYY_MM_DD by counting segments.

    Hyphenated keys (the aggregate store's format) are accepted as well.
    """
    raw = (period_key or "").strip()
    parts = raw.replace("-", "_").split("_")
    if not raw or len(parts) > 3 or not all(p.isdigit() for p in parts):
        raise ReportError(f"Invalid period key: {period_key!r}")

    year = int(parts[0])
    month = int(parts[1]) if len(parts) > 1 else None
    day = int(parts[2]) if len(parts) > 2 else None

    if month is not None and not 1 <= month <= 12:
        raise ReportError(f"Invalid month in period key: {period_key!r}")
    if day is not None:
        try:
            date(year, month, day)
        except ValueError as exc:
            raise ReportError(f"Invalid day in period key: {period_key!r}") from exc

    if day is not None:
        return PeriodKey(Granularity.DAY, year, month, day)
    if month is not None:
        return PeriodKey(Granularity.MONTH, year, month)
    return PeriodKey(Granularity.YEAR, year)


def parse_payment_type(value: str | None) -> PaymentType | None:
    """None / "" / "ALL" -> no filter; unknown names raise ReportError."""
    if value is None:
        return None
    raw = value.strip().upper()
    if not raw or raw == ALL_PAYMENT_TYPES:
        return None
    try:
        return PaymentType(raw)
    except ValueError as exc:
        raise ReportError(f"Unknown payment type: {value}") from exc


def _parse_date_param(value: str | None, name: str) -> date | None:
    try:
        return parse_iso_date(value)
    except ValueError as exc:
        raise ReportError(f"{name} must be YYYY-MM-DD") from exc


def get_period_details(
    period_key: str | None,
    payment_type: str | None = ALL_PAYMENT_TYPES,
    *,
    repository: SalesRepository,
) -> list[Transaction]:
    """
    Transactions of one year/month/day, optionally of one payment type.

    A linear scan of the ledger; "all" (or no key) returns every period.
    """
    ptype = parse_payment_type(payment_type)
    if period_key is None or period_key.strip().lower() in ("", "all"):
        return repository.list_transactions(TransactionFilter(payment_type=ptype))

    period = parse_period_key(period_key)
    return repository.list_transactions(
        TransactionFilter(
            year=period.year,
            month=period.month,
            day=period.day,
            payment_type=ptype,
        )
    )


def build_order_filter(
    start_date: str | None = None,
    end_date: str | None = None,
    payment_type: str | None = None,
    product: str | None = None,
) -> TransactionFilter:
    """TransactionFilter from raw query-string values."""
    start = _parse_date_param(start_date, "startDate")
    end = _parse_date_param(end_date, "endDate")
    if start and end and start > end:
        raise ReportError("startDate must be on or before endDate")

    return TransactionFilter(
        start_date=start,
        end_date=end,
        payment_type=parse_payment_type(payment_type),
        product_contains=(product or "").strip() or None,
    )


def list_orders(
    *,
    repository: SalesRepository,
    start_date: str | None = None,
    end_date: str | None = None,
    payment_type: str | None = None,
    product: str | None = None,
) -> list[Transaction]:
    filters = build_order_filter(start_date, end_date, payment_type, product)
    return repository.list_transactions(filters)


def _sum_buckets(bucket_maps) -> dict[PaymentType, PaymentBucket]:
    totals = empty_payment_map()
    for buckets in bucket_maps:
        for ptype, bucket in buckets.items():
            totals[ptype].count += bucket.count
            totals[ptype].sum += bucket.sum
    return totals


def get_statistics(*, repository: SalesRepository) -> dict:
    """
    Headline totals, read from the yearly aggregates.

    total_revenue is gross sales; returns is the returned amount.
    gross_total sums every transaction amount, returns included.
    """
    totals = _sum_buckets(repository.list_buckets(Granularity.YEAR).values())

    total = sum(bucket.count for bucket in totals.values())
    returns = totals[PaymentType.RETURN]
    revenue = sum(
        (bucket.sum for ptype, bucket in totals.items() if ptype is not PaymentType.RETURN),
        ZERO,
    )
    return {
        "total": total,
        "gross_total": money(revenue + returns.sum),
        "total_revenue": money(revenue),
        "returns": money(returns.sum),
        "returns_count": returns.count,
        "net_revenue": money(revenue - returns.sum),
        "by_payment_type": payment_map_to_dict(totals),
    }


def get_reports_data(*, repository: SalesRepository) -> dict:
    def rollup(granularity: Granularity) -> dict:
        return {
            key: payment_map_to_dict(buckets)
            for key, buckets in repository.list_buckets(granularity).items()
        }

    return {
        "yearly": rollup(Granularity.YEAR),
        "monthly": rollup(Granularity.MONTH),
        "daily": rollup(Granularity.DAY),
        "products": [p.to_dict() for p in repository.get_product_summary()],
    }


def list_uploads(*, repository: SalesRepository) -> list[UploadedFileRecord]:
    """Upload history, newest first, with uploader display names."""
    records = repository.list_uploads()
    user_ids = {r.uploaded_by for r in records if r.uploaded_by is not None}
    names: dict[int, str] = {}
    if user_ids:
        users = db.session.query(User).filter(User.id.in_(user_ids)).all()
        names = {u.id: u.full_name for u in users}
    for record in records:
        if record.uploaded_by_name is None and record.uploaded_by is not None:
            record.uploaded_by_name = names.get(record.uploaded_by)
    return records


def rebuild_aggregates(*, repository: SalesRepository) -> int:
    """
    Recompute every aggregate from the ledger.

    Invalidation rule for the aggregate cache: incremental update on ingest,
    wholesale wipe on clear, full rebuild here. Nothing else mutates it.
    """
    with repository.write_section():
        repository.reset_aggregates()
        transactions = repository.list_transactions()
        for txn in transactions:
            repository.apply_to_aggregates(txn)
    logger.info("Rebuilt aggregates from %d transactions (%s)", len(transactions), repository.backend_name)
    return len(transactions)


def _scan_buckets(transactions: list[Transaction]) -> dict[Granularity, dict[str, dict[PaymentType, PaymentBucket]]]:
    scanned = {granularity: {} for granularity in Granularity}
    for txn in transactions:
        for granularity, key in period_keys(txn.operation_date).items():
            scanned[granularity].setdefault(key, empty_payment_map())[txn.payment_type].add(txn.total_amount)
    return scanned


def _bucket_pairs(buckets: dict[PaymentType, PaymentBucket]) -> dict[str, tuple[int, Decimal]]:
    return {ptype.value: (b.count, Decimal(b.sum)) for ptype, b in buckets.items() if b.count or b.sum}


def verify_aggregates(*, repository: SalesRepository) -> list[str]:
    """
    Check the aggregate cache; returns a list of problems (empty when consistent).

    - each year bucket equals the sum of its month buckets, each month the
      sum of its day buckets (per payment type)
    - every bucket equals a fresh re-scan of the ledger
    """
    problems: list[str] = []
    stored = {granularity: repository.list_buckets(granularity) for granularity in Granularity}

    for parent, child in ((Granularity.YEAR, Granularity.MONTH), (Granularity.MONTH, Granularity.DAY)):
        for parent_key, parent_buckets in stored[parent].items():
            children = [
                buckets for key, buckets in stored[child].items()
                if key.startswith(parent_key + "-")
            ]
            if _bucket_pairs(parent_buckets) != _bucket_pairs(_sum_buckets(children)):
                problems.append(f"{parent.value} {parent_key} does not match the sum of its {child.value} buckets")

    scanned = _scan_buckets(repository.list_transactions())
    for granularity in Granularity:
        keys = set(stored[granularity]) | set(scanned[granularity])
        for key in sorted(keys):
            cached = _bucket_pairs(stored[granularity].get(key, empty_payment_map()))
            fresh = _bucket_pairs(scanned[granularity].get(key, empty_payment_map()))
            if cached != fresh:
                problems.append(f"{granularity.value} {key} differs from ledger re-scan")

    return problems


def get_database_info(*, repository: SalesRepository) -> dict:
    transactions = repository.list_transactions()
    dates = [txn.operation_date for txn in transactions]
    return {
        "backend": repository.backend_name,
        "orders": len(transactions),
        "files": len(repository.list_uploads()),
        "users": db.session.query(User).count(),
        "years": len(repository.list_buckets(Granularity.YEAR)),
        "months": len(repository.list_buckets(Granularity.MONTH)),
        "days": len(repository.list_buckets(Granularity.DAY)),
        "products": len(repository.get_product_summary()),
        "first_date": min(dates).isoformat() if dates else None,
        "last_date": max(dates).isoformat() if dates else None,
    }
