from __future__ import annotations

from ..extensions import db
from pharmacy.time_utils import to_iso_date, to_utc_z


class Invoice(db.Model):
    """
    Goods receipt header.

    Created once per receipt by the invoice commit saga, before any item
    exists. total_amount_cents is computed up front from the priced lines,
    so it equals the sum of the item totals once the items are inserted.

    Deleting an invoice removes its items but does NOT reverse the stock it
    added.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        db.Index("ix_invoices_supplier_date", "supplier", "invoice_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False)
    supplier = db.Column(db.String(255), nullable=False)
    invoice_date = db.Column(db.Date, nullable=False, index=True)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    user_name = db.Column(db.String(120), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "InvoiceItem",
        backref="invoice",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "supplier": self.supplier,
            "invoice_date": to_iso_date(self.invoice_date),
            "total_amount_cents": self.total_amount_cents,
            "notes": self.notes,
            "user_name": self.user_name,
            "created_at": to_utc_z(self.created_at),
        }


class InvoiceItem(db.Model):
    """Priced receipt line. Immutable after insert; carries a snapshot of the pricing inputs."""
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_invoice_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(
        db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )
    position = db.Column(db.Integer, nullable=False, default=0)

    product_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=False)
    batch_number = db.Column(db.String(120), nullable=False, default="")
    expiry_date = db.Column(db.Date, nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    invoice_price_cents = db.Column(db.Integer, nullable=True)
    supplier_discount_bps = db.Column(db.Integer, nullable=True)
    vat_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    other_charges_cents = db.Column(db.Integer, nullable=True)
    cost_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)
    total_cost_cents = db.Column(db.Integer, nullable=False)

    barcode = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "position": self.position,
            "product_name": self.product_name,
            "category": self.category,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "quantity": self.quantity,
            "invoice_price_cents": self.invoice_price_cents,
            "supplier_discount_bps": self.supplier_discount_bps,
            "vat_rate_bps": self.vat_rate_bps,
            "other_charges_cents": self.other_charges_cents,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "total_cost_cents": self.total_cost_cents,
            "barcode": self.barcode,
            "created_at": to_utc_z(self.created_at),
        }


class CreditNote(db.Model):
    """
    Return-to-supplier document.

    The header is inserted before its lines; total_amount_cents grows as
    each line is committed, so it always equals the sum of the committed
    items even when a later line fails.
    """
    __tablename__ = "credit_notes"
    __table_args__ = (
        db.UniqueConstraint("credit_note_number", name="uq_credit_notes_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    credit_note_number = db.Column(db.String(64), nullable=False)
    invoice_number = db.Column(db.String(64), nullable=False, index=True)
    supplier = db.Column(db.String(255), nullable=False, index=True)
    return_date = db.Column(db.Date, nullable=False, index=True)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    reason = db.Column(db.Text, nullable=False, default="Return")
    user_name = db.Column(db.String(120), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "CreditNoteItem",
        backref="credit_note",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="CreditNoteItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "credit_note_number": self.credit_note_number,
            "invoice_number": self.invoice_number,
            "supplier": self.supplier,
            "return_date": to_iso_date(self.return_date),
            "total_amount_cents": self.total_amount_cents,
            "reason": self.reason,
            "user_name": self.user_name,
            "created_at": to_utc_z(self.created_at),
        }


class CreditNoteItem(db.Model):
    __tablename__ = "credit_note_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_credit_note_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    credit_note_id = db.Column(
        db.Integer, db.ForeignKey("credit_notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )
    product_name = db.Column(db.String(255), nullable=False)
    batch_number = db.Column(db.String(120), nullable=False, default="")
    quantity = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False)
    total_credit_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "credit_note_id": self.credit_note_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "batch_number": self.batch_number,
            "quantity": self.quantity,
            "cost_price_cents": self.cost_price_cents,
            "total_credit_cents": self.total_credit_cents,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }
