# Overview: Product catalogue operations: direct creation, edits, lookups and stock alerts.

"""
Products Service

STOCK:
Direct edits may set current_stock, but never below zero. Receipts, returns
and stock-takes change stock through their own services.

PRICING:
Whenever a pricing input changes, cost_price_cents and selling_price_cents
are re-derived with services.pricing. An explicitly requested selling price
is floored at the minimum selling price; otherwise the minimum is used.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import date

from ..errors import NotFoundError, ValidationError
from ..models import Product
from ..time_utils import today as utc_today
from ..validation import (
    coerce_date,
    coerce_int,
    coerce_price_cents,
    optional_text,
    require_text,
)
from .activity_service import PRODUCT_CREATED, PRODUCT_UPDATED, log_activity
from .pricing import DEFAULT_VAT_RATE, PricingInputs, derive_pricing
from .store import Store, get_store


DEFAULT_CATEGORY = "General"
DEFAULT_MIN_STOCK_LEVEL = 10
EXPIRY_WARNING_DAYS = 30

ALERT_LOW_STOCK = "low_stock"
ALERT_EXPIRY_WARNING = "expiry_warning"

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "category",
    "supplier",
    "batch_number",
    "expiry_date",
    "current_stock",
    "min_stock_level",
    "barcode",
    "invoice_number",
}
PRICING_FIELDS = {
    "invoice_price_cents",
    "supplier_discount_percent",
    "vat_rate_percent",
    "other_charges_cents",
    "cost_price_cents",
    "selling_price_cents",
}


def generate_barcode() -> str:
    return uuid.uuid4().hex[:16].upper()


def pricing_inputs_from(data: dict) -> PricingInputs:
    """Pricing inputs from a request/line dict; missing keys keep the calculator defaults."""
    vat = data.get("vat_rate_percent")
    return PricingInputs(
        invoice_price_cents=data.get("invoice_price_cents"),
        supplier_discount_percent=data.get("supplier_discount_percent"),
        vat_rate_percent=DEFAULT_VAT_RATE if vat is None else vat,
        other_charges_cents=data.get("other_charges_cents"),
        cost_price_cents=data.get("cost_price_cents"),
    )


def priced_columns(inputs: PricingInputs, requested_selling_price_cents=None) -> dict:
    """Stored pricing columns (terms + derived cost and selling price)."""
    result = derive_pricing(inputs, requested_selling_price_cents)
    columns = inputs.to_columns()
    columns["cost_price_cents"] = result.net_cost_cents
    columns["selling_price_cents"] = result.selling_price_cents
    return columns


def _validate_pricing_payload(data: dict) -> None:
    for key in ("invoice_price_cents", "other_charges_cents", "cost_price_cents", "selling_price_cents"):
        if key in data:
            coerce_price_cents(data[key], key)


def get_product(product_id: int, *, store: Store | None = None) -> Product:
    product = get_store(store).get("products", product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def find_product(name: str, batch_number: str = "", *, store: Store | None = None) -> Product | None:
    """Products are keyed by (name, batch_number)."""
    return get_store(store).select_one(
        "products", {"name": name, "batch_number": batch_number or ""}
    )


def list_products(
    *,
    category: str | None = None,
    supplier: str | None = None,
    store: Store | None = None,
) -> list[Product]:
    filters = {}
    if category:
        filters["category"] = category
    if supplier:
        filters["supplier"] = supplier
    rows = get_store(store).select("products", filters=filters or None)
    return sorted(rows, key=lambda p: (p.name.lower(), p.batch_number or "", p.id))


def create_product(
    *,
    name: str,
    category: str | None = None,
    supplier: str | None = None,
    batch_number: str | None = None,
    expiry_date=None,
    invoice_price_cents=None,
    supplier_discount_percent=None,
    vat_rate_percent=None,
    other_charges_cents=None,
    cost_price_cents=None,
    selling_price_cents=None,
    current_stock=0,
    min_stock_level=DEFAULT_MIN_STOCK_LEVEL,
    barcode: str | None = None,
    invoice_number: str | None = None,
    user_name: str | None = None,
    store: Store | None = None,
) -> Product:
    """
    Create a product directly (outside a goods receipt).

    Raises:
        ValidationError: bad input, raised before any write
    """
    name = require_text(name, "name")
    stock = coerce_int(current_stock, "current_stock", minimum=0)
    min_level = coerce_int(
        DEFAULT_MIN_STOCK_LEVEL if min_stock_level is None else min_stock_level,
        "min_stock_level",
        minimum=0,
    )
    pricing_payload = {
        "invoice_price_cents": invoice_price_cents,
        "supplier_discount_percent": supplier_discount_percent,
        "vat_rate_percent": vat_rate_percent,
        "other_charges_cents": other_charges_cents,
        "cost_price_cents": cost_price_cents,
        "selling_price_cents": selling_price_cents,
    }
    _validate_pricing_payload(pricing_payload)

    store = get_store(store)
    values = {
        "name": name,
        "category": optional_text(category, DEFAULT_CATEGORY),
        "supplier": optional_text(supplier, ""),
        "batch_number": optional_text(batch_number, ""),
        "expiry_date": coerce_date(expiry_date, "expiry_date"),
        "current_stock": stock,
        "min_stock_level": min_level,
        "barcode": optional_text(barcode) or generate_barcode(),
        "invoice_number": optional_text(invoice_number),
    }
    values.update(priced_columns(pricing_inputs_from(pricing_payload), selling_price_cents))

    product = store.insert("products", values)
    log_activity(
        PRODUCT_CREATED,
        f"Created product {product.name} (batch {product.batch_number or '-'}) with stock {product.current_stock}",
        user_name=user_name,
        store=store,
    )
    return product


def update_product(
    product_id: int,
    changes: dict,
    *,
    user_name: str | None = None,
    store: Store | None = None,
) -> Product:
    """
    Apply a direct edit.

    Pricing fields are merged over the stored terms and re-derived.
    """
    if not isinstance(changes, dict) or not changes:
        raise ValidationError("No changes supplied")
    unknown = sorted(set(changes) - PRODUCT_MUTABLE_FIELDS - PRICING_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    store = get_store(store)
    product = get_product(product_id, store=store)

    values: dict = {}
    for key in PRODUCT_MUTABLE_FIELDS & set(changes):
        raw = changes[key]
        if key == "name":
            values[key] = require_text(raw, "name")
        elif key in ("current_stock", "min_stock_level"):
            values[key] = coerce_int(raw, key, minimum=0)
        elif key == "expiry_date":
            values[key] = coerce_date(raw, "expiry_date")
        elif key == "barcode":
            values[key] = require_text(raw, "barcode")
        elif key == "category":
            values[key] = optional_text(raw, DEFAULT_CATEGORY)
        elif key == "invoice_number":
            values[key] = optional_text(raw)
        else:
            values[key] = optional_text(raw, "")

    pricing_changes = {k: changes[k] for k in PRICING_FIELDS & set(changes)}
    if pricing_changes:
        _validate_pricing_payload(pricing_changes)
        inputs = PricingInputs.from_record(product)
        overrides = {k: v for k, v in pricing_changes.items() if k != "selling_price_cents"}
        if overrides.get("vat_rate_percent", 0) is None:
            overrides["vat_rate_percent"] = DEFAULT_VAT_RATE
        inputs = replace(inputs, **overrides)
        values.update(priced_columns(inputs, pricing_changes.get("selling_price_cents")))

    product = store.update("products", product.id, values)
    log_activity(
        PRODUCT_UPDATED,
        f"Updated product {product.name}: {', '.join(sorted(changes))}",
        user_name=user_name,
        store=store,
    )
    return product


@dataclass(frozen=True)
class StockAlert:
    alert_type: str
    product_id: int
    product_name: str
    message: str
    current_stock: int
    min_stock_level: int
    expiry_date: date | None = None
    days_to_expiry: int | None = None

    def to_dict(self) -> dict:
        return {
            "alert_type": self.alert_type,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "message": self.message,
            "current_stock": self.current_stock,
            "min_stock_level": self.min_stock_level,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "days_to_expiry": self.days_to_expiry,
        }


def get_stock_alerts(*, today: date | None = None, store: Store | None = None) -> list[StockAlert]:
    """
    Low stock: current_stock <= min_stock_level.
    Expiry warning: expiry date 1 to 30 days ahead (already expired is not a warning).
    """
    today = today or utc_today()
    alerts: list[StockAlert] = []
    for product in list_products(store=store):
        if product.current_stock <= product.min_stock_level:
            alerts.append(
                StockAlert(
                    alert_type=ALERT_LOW_STOCK,
                    product_id=product.id,
                    product_name=product.name,
                    message=f"Low stock: {product.name} ({product.current_stock} remaining)",
                    current_stock=product.current_stock,
                    min_stock_level=product.min_stock_level,
                    expiry_date=product.expiry_date,
                )
            )
        if product.expiry_date is not None:
            days = (product.expiry_date - today).days
            if 0 < days <= EXPIRY_WARNING_DAYS:
                alerts.append(
                    StockAlert(
                        alert_type=ALERT_EXPIRY_WARNING,
                        product_id=product.id,
                        product_name=product.name,
                        message=f"Expiring soon: {product.name} expires in {days} days",
                        current_stock=product.current_stock,
                        min_stock_level=product.min_stock_level,
                        expiry_date=product.expiry_date,
                        days_to_expiry=days,
                    )
                )
    return alerts
