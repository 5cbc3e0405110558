from __future__ import annotations

from ..extensions import db
from pharmacy.time_utils import to_iso_date, to_utc_z


class Product(db.Model):
    """
    Product master data, one row per (name, batch_number).

    STOCK DESIGN DECISION:
    current_stock is a stored, mutable quantity. Goods receipts add to it,
    credit notes subtract from it, stock-take completion overwrites it with
    the counted value and direct edits may set it. It must never be negative
    (check constraint + engine validation before each write).

    PRICING:
    Money is stored in cents, percentages in basis points (1600 = 16%).
    cost_price_cents / selling_price_cents are derived by
    services.pricing whenever the invoice terms change.

    NOTE: No version column. Concurrent read-modify-write of current_stock
    can lose updates; that hazard is known and not detected.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("barcode", name="uq_products_barcode"),
        db.Index("ix_products_name_batch", "name", "batch_number"),
        db.CheckConstraint("current_stock >= 0", name="ck_products_current_stock_nonnegative"),
        db.CheckConstraint("min_stock_level >= 0", name="ck_products_min_stock_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=False, default="General", index=True)
    supplier = db.Column(db.String(255), nullable=False, default="", index=True)
    batch_number = db.Column(db.String(120), nullable=False, default="")
    expiry_date = db.Column(db.Date, nullable=True)

    # Supplier invoice terms (optional; absent for manually priced products)
    invoice_price_cents = db.Column(db.Integer, nullable=True)
    supplier_discount_bps = db.Column(db.Integer, nullable=True)
    vat_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    other_charges_cents = db.Column(db.Integer, nullable=True)

    # Derived (or manual) unit prices
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=10)

    barcode = db.Column(db.String(64), nullable=False)
    invoice_number = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<Product id={self.id} name={self.name!r} batch={self.batch_number!r} "
            f"stock={self.current_stock}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "supplier": self.supplier,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "invoice_price_cents": self.invoice_price_cents,
            "supplier_discount_bps": self.supplier_discount_bps,
            "vat_rate_bps": self.vat_rate_bps,
            "other_charges_cents": self.other_charges_cents,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "current_stock": self.current_stock,
            "min_stock_level": self.min_stock_level,
            "barcode": self.barcode,
            "invoice_number": self.invoice_number,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
