# Overview: Flask API routes for products; validates input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, json_body, with_operator
from ..errors import NotFoundError, StoreError, ValidationError
from ..services import product_service
from ..services.pricing import PricingInputs, derive_pricing
from ..time_utils import parse_iso_date


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

CREATE_FIELDS = {
    "name",
    "category",
    "supplier",
    "batch_number",
    "expiry_date",
    "invoice_price_cents",
    "supplier_discount_percent",
    "vat_rate_percent",
    "other_charges_cents",
    "cost_price_cents",
    "selling_price_cents",
    "current_stock",
    "min_stock_level",
    "barcode",
    "invoice_number",
}


@products_bp.get("")
def list_products():
    try:
        rows = product_service.list_products(
            category=request.args.get("category") or None,
            supplier=request.args.get("supplier") or None,
        )
        return jsonify({"items": [p.to_dict() for p in rows], "count": len(rows)})
    except StoreError as e:
        return error_response(e)


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        product = product_service.get_product(product_id)
        pricing = derive_pricing(
            PricingInputs.from_record(product), product.selling_price_cents
        )
        return jsonify({**product.to_dict(), "pricing": pricing.to_dict()})
    except (NotFoundError, StoreError) as e:
        return error_response(e)


@products_bp.post("")
@with_operator
def create_product():
    """
    Create a product outside a goods receipt.

    Request body: name (required) plus optional descriptive, pricing and
    stock fields. Returns 201 with the product.
    """
    try:
        data = json_body()
        unknown = sorted(set(data) - CREATE_FIELDS)
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(unknown)}")
        if "name" not in data:
            raise ValidationError("Missing required fields: name")
        product = product_service.create_product(user_name=g.operator, **data)
        return jsonify(product.to_dict()), 201
    except (ValidationError, StoreError) as e:
        return error_response(e)


@products_bp.patch("/<int:product_id>")
@with_operator
def update_product(product_id: int):
    try:
        product = product_service.update_product(product_id, json_body(), user_name=g.operator)
        return jsonify(product.to_dict())
    except (ValidationError, NotFoundError, StoreError) as e:
        return error_response(e)


@products_bp.get("/alerts")
def stock_alerts():
    """
    Low-stock and expiry alerts.

    Query: ?today=YYYY-MM-DD (defaults to the current UTC date)
    """
    try:
        try:
            today = parse_iso_date(request.args.get("today"))
        except ValueError:
            raise ValidationError("today must be an ISO date (YYYY-MM-DD)")
        alerts = product_service.get_stock_alerts(today=today)
        return jsonify({"items": [a.to_dict() for a in alerts], "count": len(alerts)})
    except (ValidationError, StoreError) as e:
        return error_response(e)
