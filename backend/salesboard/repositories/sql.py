# Overview: Database-backed repository using the Flask-SQLAlchemy session.

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterator

from sqlalchemy import func
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Order, ProductSummary, SalesSummary, UploadedFile
from ..records import (
    Granularity,
    PaymentBucket,
    PaymentType,
    ProductAggregate,
    Transaction,
    TransactionFilter,
    UploadedFileRecord,
    empty_payment_map,
    period_keys,
)
from ..services.concurrency import run_with_retry, writer_lock
from .base import DuplicateTransactionError, PersistenceError, RejectedRowError, SalesRepository


logger = logging.getLogger(__name__)


class SqlRepository(SalesRepository):
    """
    Ledger and aggregates stored in the application database.

    Must be used inside an app context. Each write_section() is one database
    transaction: the row, its aggregate increments and nothing else.
    """

    backend_name = "sql"

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self._lock = writer_lock(database_url)

    @contextmanager
    def write_section(self) -> Iterator[None]:
        with self._lock:
            try:
                yield
                db.session.commit()
            except (DuplicateTransactionError, RejectedRowError):
                db.session.rollback()
                raise
            except IntegrityError as exc:
                db.session.rollback()
                raise DuplicateTransactionError(str(exc.orig)) from exc
            except DataError as exc:
                db.session.rollback()
                raise RejectedRowError(f"Database rejected values: {exc.orig}") from exc
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise PersistenceError(f"Database write failed: {exc}") from exc
            except Exception:
                db.session.rollback()
                raise

    # Ledger

    def append_transaction(self, txn: Transaction) -> Transaction:
        order = Order.from_transaction(txn)
        db.session.add(order)
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            raise DuplicateTransactionError(f"Transaction {txn.dedup_key!r} already exists") from exc
        except DataError as exc:
            db.session.rollback()
            raise RejectedRowError(f"Database rejected transaction {txn.dedup_key!r}: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(f"Failed to append transaction: {exc}") from exc
        return order.to_transaction()

    def transaction_exists(self, order_number: str, check_number: str, operation_date: date) -> bool:
        try:
            found = (
                db.session.query(Order.id)
                .filter_by(order_number=order_number, check_number=check_number, operation_date=operation_date)
                .first()
            )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Dedup lookup failed: {exc}") from exc
        return found is not None

    def list_transactions(self, filters: TransactionFilter | None = None) -> list[Transaction]:
        filters = filters or TransactionFilter()
        query = db.session.query(Order)
        if filters.start_date:
            query = query.filter(Order.operation_date >= filters.start_date)
        if filters.end_date:
            query = query.filter(Order.operation_date <= filters.end_date)
        if filters.payment_type:
            query = query.filter(Order.payment_type == filters.payment_type.value)
        if filters.year is not None:
            query = query.filter(Order.year == filters.year)
        if filters.month is not None:
            query = query.filter(Order.month == filters.month)
        if filters.day is not None:
            query = query.filter(Order.day == filters.day)

        transactions = [row.to_transaction() for row in query.order_by(Order.id.asc()).all()]
        # Product text match runs in Python: SQLite lower() only folds ASCII
        return [txn for txn in transactions if filters.matches(txn)]

    def count_transactions(self) -> int:
        return db.session.query(func.count(Order.id)).scalar() or 0

    # Aggregates

    def _summary_row(self, granularity: Granularity, period_key: str, payment_type: PaymentType) -> SalesSummary:
        row = db.session.query(SalesSummary).filter_by(
            granularity=granularity.value,
            period_key=period_key,
            payment_type=payment_type.value,
        ).first()
        if row is None:
            row = SalesSummary(
                granularity=granularity.value,
                period_key=period_key,
                payment_type=payment_type.value,
                transactions_count=0,
                total_amount=Decimal("0"),
            )
            db.session.add(row)
        return row

    def apply_to_aggregates(self, txn: Transaction) -> None:
        for granularity, key in period_keys(txn.operation_date).items():
            row = self._summary_row(granularity, key, txn.payment_type)
            row.transactions_count = (row.transactions_count or 0) + 1
            row.total_amount = Decimal(row.total_amount or 0) + txn.total_amount

        product = db.session.query(ProductSummary).filter_by(
            product_name=txn.product_name,
            product_variant=txn.product_variant,
        ).first()
        if product is None:
            product = ProductSummary(
                product_code=txn.product_code,
                product_name=txn.product_name,
                product_variant=txn.product_variant,
                sales=0,
                returns=0,
                revenue=Decimal("0"),
                return_amount=Decimal("0"),
                quantity=Decimal("0"),
            )
            db.session.add(product)

        aggregate = product.to_aggregate()
        aggregate.apply(txn)
        product.sales = aggregate.sales
        product.returns = aggregate.returns
        product.revenue = aggregate.revenue
        product.return_amount = aggregate.return_amount
        product.quantity = aggregate.quantity
        db.session.flush()

    @staticmethod
    def _bucket_map(rows) -> dict[PaymentType, PaymentBucket]:
        buckets = empty_payment_map()
        for row in rows:
            buckets[PaymentType(row.payment_type)] = PaymentBucket(
                count=int(row.transactions_count or 0),
                sum=Decimal(row.total_amount or 0),
            )
        return buckets

    def get_bucket(self, granularity: Granularity, period_key: str) -> dict[PaymentType, PaymentBucket]:
        rows = db.session.query(SalesSummary).filter_by(
            granularity=granularity.value,
            period_key=period_key,
        ).all()
        return self._bucket_map(rows)

    def list_buckets(self, granularity: Granularity) -> dict[str, dict[PaymentType, PaymentBucket]]:
        rows = (
            db.session.query(SalesSummary)
            .filter_by(granularity=granularity.value)
            .order_by(SalesSummary.period_key.asc())
            .all()
        )
        grouped: dict[str, list[SalesSummary]] = {}
        for row in rows:
            grouped.setdefault(row.period_key, []).append(row)
        return {key: self._bucket_map(group) for key, group in grouped.items()}

    def get_product_summary(self) -> list[ProductAggregate]:
        rows = (
            db.session.query(ProductSummary)
            .order_by(ProductSummary.product_name.asc(), ProductSummary.product_variant.asc())
            .all()
        )
        return [row.to_aggregate() for row in rows]

    def reset_aggregates(self) -> None:
        db.session.query(SalesSummary).delete()
        db.session.query(ProductSummary).delete()
        db.session.flush()

    # Upload history

    def record_upload(self, record: UploadedFileRecord) -> UploadedFileRecord:
        row = UploadedFile(
            file_id=record.file_id,
            file_name=record.file_name,
            file_size=record.size,
            uploaded_by=record.uploaded_by,
            uploaded_at=record.upload_date,
            records_total=record.records_total,
            records_new=record.records_new,
            records_updated=record.records_updated,
            records_duplicate=record.records_duplicate,
            records_errors=record.records_errors,
            truncated=record.truncated,
        )
        db.session.add(row)
        db.session.flush()
        return row.to_record()

    def list_uploads(self) -> list[UploadedFileRecord]:
        rows = db.session.query(UploadedFile).order_by(UploadedFile.id.desc()).all()
        return [row.to_record() for row in rows]

    # Maintenance

    def clear_all(self) -> None:
        def _wipe() -> int:
            removed = db.session.query(Order).delete()
            db.session.query(SalesSummary).delete()
            db.session.query(ProductSummary).delete()
            db.session.query(UploadedFile).delete()
            db.session.commit()
            return removed

        with self._lock:
            try:
                removed = run_with_retry(_wipe)
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise PersistenceError(f"Failed to clear ledger: {exc}") from exc
        logger.info("SQL ledger cleared (%d transactions removed)", removed)
