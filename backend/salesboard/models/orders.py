from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..records import PaymentType, ProductAggregate, Transaction, UploadedFileRecord


class Order(db.Model):
    """
    One ingested sales or return line (the ledger).

    Append-only: rows are created by ingestion and removed only by a full wipe.
    The (order_number, check_number, operation_date) triple is the dedup key.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", "check_number", "operation_date", name="uq_orders_dedup_key"),
        db.Index("ix_orders_period", "year", "month", "day"),
        db.Index("ix_orders_payment_type", "payment_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    order_number = db.Column(db.String(128), nullable=False, default="")
    check_number = db.Column(db.String(128), nullable=False, default="")
    operation_date = db.Column(db.Date, nullable=False, index=True)
    operation_time = db.Column(db.String(32), nullable=False, default="")

    # Denormalized from operation_date for period bucketing
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)
    day = db.Column(db.Integer, nullable=False)

    product_code = db.Column(db.String(128), nullable=False, default="")
    product_name = db.Column(db.String(255), nullable=False)
    product_variant = db.Column(db.String(255), nullable=False)

    payment_type_raw = db.Column(db.String(128), nullable=False, default="")
    payment_type = db.Column(db.String(16), nullable=False)

    quantity = db.Column(db.Numeric(14, 3), nullable=False, default=1)
    unit = db.Column(db.String(32), nullable=False, default="шт")
    price_per_unit = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount_percent = db.Column(db.Numeric(7, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False)
    is_return = db.Column(db.Boolean, nullable=False, default=False)

    cashier = db.Column(db.String(128), nullable=False, default="")
    shift = db.Column(db.String(64), nullable=False, default="")
    customer_name = db.Column(db.String(255), nullable=False, default="")
    customer_phone = db.Column(db.String(64), nullable=False, default="")
    notes = db.Column(db.Text, nullable=False, default="")
    status = db.Column(db.String(32), nullable=False, default="completed")

    # Provenance
    file_id = db.Column(db.String(64), nullable=True, index=True)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @classmethod
    def from_transaction(cls, txn: Transaction) -> "Order":
        return cls(
            order_number=txn.order_number,
            check_number=txn.check_number,
            operation_date=txn.operation_date,
            operation_time=txn.operation_time,
            year=txn.year,
            month=txn.month,
            day=txn.day,
            product_code=txn.product_code,
            product_name=txn.product_name,
            product_variant=txn.product_variant,
            payment_type_raw=txn.payment_type_raw,
            payment_type=txn.payment_type.value,
            quantity=txn.quantity,
            unit=txn.unit,
            price_per_unit=txn.price_per_unit,
            discount_percent=txn.discount_percent,
            discount_amount=txn.discount_amount,
            total_amount=txn.total_amount,
            is_return=txn.is_return,
            cashier=txn.cashier,
            shift=txn.shift,
            customer_name=txn.customer_name,
            customer_phone=txn.customer_phone,
            notes=txn.notes,
            status=txn.status,
            file_id=txn.file_id,
            uploaded_by=txn.uploaded_by,
            uploaded_at=txn.uploaded_at,
        )

    def to_transaction(self) -> Transaction:
        return Transaction(
            id=self.id,
            order_number=self.order_number,
            check_number=self.check_number,
            operation_date=self.operation_date,
            operation_time=self.operation_time,
            product_code=self.product_code,
            product_name=self.product_name,
            product_variant=self.product_variant,
            payment_type_raw=self.payment_type_raw,
            payment_type=PaymentType(self.payment_type),
            quantity=Decimal(self.quantity),
            unit=self.unit,
            price_per_unit=Decimal(self.price_per_unit),
            discount_percent=Decimal(self.discount_percent),
            discount_amount=Decimal(self.discount_amount),
            total_amount=Decimal(self.total_amount),
            is_return=bool(self.is_return),
            cashier=self.cashier,
            shift=self.shift,
            customer_name=self.customer_name,
            customer_phone=self.customer_phone,
            notes=self.notes,
            status=self.status,
            file_id=self.file_id,
            uploaded_by=self.uploaded_by,
            uploaded_at=self.uploaded_at,
        )


class SalesSummary(db.Model):
    """
    Cached per-period, per-payment-type rollup of the ledger.

    Derived state: incremented on ingest, wiped on clear, rebuildable by re-scan.
    """
    __tablename__ = "sales_summary"
    __table_args__ = (
        db.UniqueConstraint("granularity", "period_key", "payment_type", name="uq_sales_summary_bucket"),
        db.Index("ix_sales_summary_period", "granularity", "period_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    granularity = db.Column(db.String(8), nullable=False)
    period_key = db.Column(db.String(10), nullable=False)
    payment_type = db.Column(db.String(16), nullable=False)
    transactions_count = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Numeric(16, 2), nullable=False, default=0)


class ProductSummary(db.Model):
    """Cached per-product rollup keyed by (product_name, product_variant)."""
    __tablename__ = "products_summary"
    __table_args__ = (
        db.UniqueConstraint("product_name", "product_variant", name="uq_products_summary_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_code = db.Column(db.String(128), nullable=False, default="")
    product_name = db.Column(db.String(255), nullable=False)
    product_variant = db.Column(db.String(255), nullable=False)
    sales = db.Column(db.Integer, nullable=False, default=0)
    returns = db.Column(db.Integer, nullable=False, default=0)
    revenue = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    return_amount = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    quantity = db.Column(db.Numeric(16, 3), nullable=False, default=0)

    def to_aggregate(self) -> ProductAggregate:
        return ProductAggregate(
            product_code=self.product_code,
            product_name=self.product_name,
            product_variant=self.product_variant,
            sales=self.sales,
            returns=self.returns,
            revenue=Decimal(self.revenue),
            return_amount=Decimal(self.return_amount),
            quantity=Decimal(self.quantity),
        )


class UploadedFile(db.Model):
    """
    One ingestion run.

    Written once, after the run, with its final stats.
    """
    __tablename__ = "uploaded_files"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    file_id = db.Column(db.String(64), nullable=False, unique=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer, nullable=False, default=0)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    records_total = db.Column(db.Integer, nullable=False, default=0)
    records_new = db.Column(db.Integer, nullable=False, default=0)
    records_updated = db.Column(db.Integer, nullable=False, default=0)
    records_duplicate = db.Column(db.Integer, nullable=False, default=0)
    records_errors = db.Column(db.Integer, nullable=False, default=0)
    truncated = db.Column(db.Boolean, nullable=False, default=False)

    uploader = db.relationship("User")

    def to_record(self) -> UploadedFileRecord:
        return UploadedFileRecord(
            id=self.id,
            file_id=self.file_id,
            file_name=self.file_name,
            size=self.file_size,
            uploaded_by=self.uploaded_by,
            upload_date=self.uploaded_at,
            records_total=self.records_total,
            records_new=self.records_new,
            records_updated=self.records_updated,
            records_duplicate=self.records_duplicate,
            records_errors=self.records_errors,
            truncated=bool(self.truncated),
            uploaded_by_name=self.uploader.full_name if self.uploader else None,
        )
