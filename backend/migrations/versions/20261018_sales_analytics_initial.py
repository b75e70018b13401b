"""Initial salesboard schema: users, sessions, order ledger, aggregates, upload history

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("role", sa.String(16), nullable=False, server_default="accountant"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_username", ["username"], unique=True)

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.String(255), nullable=True),
        sa.Column("user_agent", sa.String(255), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.create_index("ix_session_tokens_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_session_tokens_token_hash", ["token_hash"], unique=True)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(128), nullable=False, server_default=""),
        sa.Column("check_number", sa.String(128), nullable=False, server_default=""),
        sa.Column("operation_date", sa.Date(), nullable=False),
        sa.Column("operation_time", sa.String(32), nullable=False, server_default=""),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("day", sa.Integer(), nullable=False),
        sa.Column("product_code", sa.String(128), nullable=False, server_default=""),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("product_variant", sa.String(255), nullable=False),
        sa.Column("payment_type_raw", sa.String(128), nullable=False, server_default=""),
        sa.Column("payment_type", sa.String(16), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False, server_default=sa.text("1")),
        sa.Column("unit", sa.String(32), nullable=False, server_default="шт"),
        sa.Column("price_per_unit", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_percent", sa.Numeric(7, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_amount", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("is_return", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("cashier", sa.String(128), nullable=False, server_default=""),
        sa.Column("shift", sa.String(64), nullable=False, server_default=""),
        sa.Column("customer_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("customer_phone", sa.String(64), nullable=False, server_default=""),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(32), nullable=False, server_default="completed"),
        sa.Column("file_id", sa.String(64), nullable=True),
        sa.Column("uploaded_by", sa.Integer(), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number", "check_number", "operation_date", name="uq_orders_dedup_key"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_operation_date", ["operation_date"], unique=False)
        batch_op.create_index("ix_orders_period", ["year", "month", "day"], unique=False)
        batch_op.create_index("ix_orders_payment_type", ["payment_type"], unique=False)
        batch_op.create_index("ix_orders_file_id", ["file_id"], unique=False)

    op.create_table(
        "sales_summary",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("granularity", sa.String(8), nullable=False),
        sa.Column("period_key", sa.String(10), nullable=False),
        sa.Column("payment_type", sa.String(16), nullable=False),
        sa.Column("transactions_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_amount", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("granularity", "period_key", "payment_type", name="uq_sales_summary_bucket"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales_summary", schema=None) as batch_op:
        batch_op.create_index("ix_sales_summary_period", ["granularity", "period_key"], unique=False)

    op.create_table(
        "products_summary",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_code", sa.String(128), nullable=False, server_default=""),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("product_variant", sa.String(255), nullable=False),
        sa.Column("sales", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("returns", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("revenue", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("return_amount", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity", sa.Numeric(16, 3), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_name", "product_variant", name="uq_products_summary_key"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "uploaded_files",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("file_id", sa.String(64), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("uploaded_by", sa.Integer(), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("records_total", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("records_new", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("records_updated", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("records_duplicate", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("records_errors", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("truncated", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("file_id", name="uq_uploaded_files_file_id"),
        sqlite_autoincrement=True,
    )


def downgrade():
    op.drop_table("uploaded_files")
    op.drop_table("products_summary")
    with op.batch_alter_table("sales_summary", schema=None) as batch_op:
        batch_op.drop_index("ix_sales_summary_period")
    op.drop_table("sales_summary")
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.drop_index("ix_orders_file_id")
        batch_op.drop_index("ix_orders_payment_type")
        batch_op.drop_index("ix_orders_period")
        batch_op.drop_index("ix_orders_operation_date")
    op.drop_table("orders")
    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.drop_index("ix_session_tokens_token_hash")
        batch_op.drop_index("ix_session_tokens_user_id")
    op.drop_table("session_tokens")
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.drop_index("ix_users_username")
    op.drop_table("users")
