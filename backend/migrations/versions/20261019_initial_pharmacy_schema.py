"""Initial pharmacy inventory schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(120), nullable=False, server_default="General"),
        sa.Column("supplier", sa.String(255), nullable=False, server_default=""),
        sa.Column("batch_number", sa.String(120), nullable=False, server_default=""),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("invoice_price_cents", sa.Integer(), nullable=True),
        sa.Column("supplier_discount_bps", sa.Integer(), nullable=True),
        sa.Column("vat_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("other_charges_cents", sa.Integer(), nullable=True),
        sa.Column("cost_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("selling_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("min_stock_level", sa.Integer(), nullable=False, server_default=sa.text("10")),
        sa.Column("barcode", sa.String(64), nullable=False),
        sa.Column("invoice_number", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("barcode", name="uq_products_barcode"),
        sa.CheckConstraint("current_stock >= 0", name="ck_products_current_stock_nonnegative"),
        sa.CheckConstraint("min_stock_level >= 0", name="ck_products_min_stock_nonnegative"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_name_batch", ["name", "batch_number"], unique=False)
        batch_op.create_index("ix_products_category", ["category"], unique=False)
        batch_op.create_index("ix_products_supplier", ["supplier"], unique=False)
        batch_op.create_index("ix_products_invoice_number", ["invoice_number"], unique=False)

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_number", sa.String(64), nullable=False),
        sa.Column("supplier", sa.String(255), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("user_name", sa.String(120), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("invoices", schema=None) as batch_op:
        batch_op.create_index("ix_invoices_invoice_date", ["invoice_date"], unique=False)
        batch_op.create_index("ix_invoices_supplier_date", ["supplier", "invoice_date"], unique=False)

    op.create_table(
        "invoice_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(120), nullable=False),
        sa.Column("batch_number", sa.String(120), nullable=False, server_default=""),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("invoice_price_cents", sa.Integer(), nullable=True),
        sa.Column("supplier_discount_bps", sa.Integer(), nullable=True),
        sa.Column("vat_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("other_charges_cents", sa.Integer(), nullable=True),
        sa.Column("cost_price_cents", sa.Integer(), nullable=False),
        sa.Column("selling_price_cents", sa.Integer(), nullable=False),
        sa.Column("total_cost_cents", sa.Integer(), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity > 0", name="ck_invoice_items_quantity_positive"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("invoice_items", schema=None) as batch_op:
        batch_op.create_index("ix_invoice_items_invoice_id", ["invoice_id"], unique=False)
        batch_op.create_index("ix_invoice_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "credit_notes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("credit_note_number", sa.String(64), nullable=False),
        sa.Column("invoice_number", sa.String(64), nullable=False),
        sa.Column("supplier", sa.String(255), nullable=False),
        sa.Column("return_date", sa.Date(), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("user_name", sa.String(120), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("credit_note_number", name="uq_credit_notes_number"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("credit_notes", schema=None) as batch_op:
        batch_op.create_index("ix_credit_notes_invoice_number", ["invoice_number"], unique=False)
        batch_op.create_index("ix_credit_notes_supplier", ["supplier"], unique=False)
        batch_op.create_index("ix_credit_notes_return_date", ["return_date"], unique=False)

    op.create_table(
        "credit_note_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("credit_note_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("batch_number", sa.String(120), nullable=False, server_default=""),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("cost_price_cents", sa.Integer(), nullable=False),
        sa.Column("total_credit_cents", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["credit_note_id"], ["credit_notes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity > 0", name="ck_credit_note_items_quantity_positive"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("credit_note_items", schema=None) as batch_op:
        batch_op.create_index("ix_credit_note_items_credit_note_id", ["credit_note_id"], unique=False)
        batch_op.create_index("ix_credit_note_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "stock_take_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="in_progress"),
        sa.Column("progress_data", sa.JSON(), nullable=False),
        sa.Column("user_name", sa.String(120), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('in_progress', 'completed')", name="ck_stock_take_sessions_status"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("stock_take_sessions", schema=None) as batch_op:
        batch_op.create_index("ix_stock_take_sessions_status", ["status"], unique=False)
        batch_op.create_index("ix_stock_take_sessions_started_at", ["started_at"], unique=False)

    op.create_table(
        "stock_take_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=True),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("expected_stock", sa.Integer(), nullable=False),
        sa.Column("actual_stock", sa.Integer(), nullable=False),
        sa.Column("difference", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("value_difference_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("user_name", sa.String(120), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["stock_take_sessions.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("expected_stock >= 0", name="ck_stock_take_entries_expected_nonnegative"),
        sa.CheckConstraint("actual_stock >= 0", name="ck_stock_take_entries_actual_nonnegative"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("stock_take_entries", schema=None) as batch_op:
        batch_op.create_index("ix_stock_take_entries_session_id", ["session_id"], unique=False)
        batch_op.create_index("ix_stock_take_entries_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_stock_take_entries_created_at", ["created_at"], unique=False)

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_name", sa.String(120), nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("details", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("activity_logs", schema=None) as batch_op:
        batch_op.create_index("ix_activity_logs_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_activity_logs_action_created", ["action", "created_at"], unique=False)


def downgrade():
    op.drop_table("activity_logs")
    op.drop_table("stock_take_entries")
    op.drop_table("stock_take_sessions")
    op.drop_table("credit_note_items")
    op.drop_table("credit_notes")
    op.drop_table("invoice_items")
    op.drop_table("invoices")
    op.drop_table("products")
