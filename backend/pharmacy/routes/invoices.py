# Overview: Flask API routes for goods receipt invoices; thin wrapper over the commit saga.

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, json_body, with_operator
from ..errors import NotFoundError, StoreError, ValidationError
from ..services import invoice_service


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _page_args() -> tuple[int, int]:
    try:
        limit = min(max(int(request.args.get("limit", 50)), 1), 500)
        offset = max(int(request.args.get("offset", 0)), 0)
    except ValueError:
        raise ValidationError("limit and offset must be integers")
    return limit, offset


@invoices_bp.get("")
def list_invoices():
    try:
        limit, offset = _page_args()
        rows = invoice_service.list_invoices(
            supplier=request.args.get("supplier") or None, limit=limit, offset=offset
        )
        return jsonify({"items": [i.to_dict() for i in rows], "count": len(rows)})
    except (ValidationError, StoreError) as e:
        return error_response(e)


@invoices_bp.get("/<int:invoice_id>")
def get_invoice(invoice_id: int):
    try:
        return jsonify(invoice_service.get_invoice_with_items(invoice_id))
    except (NotFoundError, StoreError) as e:
        return error_response(e)


@invoices_bp.post("")
@with_operator
def commit_invoice():
    """
    Commit a goods receipt.

    Request body:
    {
        "invoice_number": str,
        "supplier": str,
        "invoice_date": "YYYY-MM-DD" (optional),
        "notes": str (optional),
        "items": [
            {"product_name": str, "quantity": int, "batch_number": str,
             "expiry_date": "YYYY-MM-DD", "invoice_price_cents": int,
             "supplier_discount_percent": num, "vat_rate_percent": num,
             "other_charges_cents": int, "cost_price_cents": int,
             "selling_price_cents": int}
        ]
    }

    Returns:
        201: Invoice committed (with items and progress messages)
        400: Invalid request (nothing written)
        502: Store failure; rollback attempted
    """
    steps = []

    def _progress(step: int, total: int, message: str) -> None:
        steps.append({"step": step, "total": total, "message": message})

    try:
        data = json_body()
        invoice = invoice_service.commit_invoice(
            invoice_number=data.get("invoice_number"),
            supplier=data.get("supplier"),
            items=data.get("items"),
            invoice_date=data.get("invoice_date"),
            notes=data.get("notes"),
            user_name=g.operator,
            progress=_progress,
        )
        body = invoice_service.get_invoice_with_items(invoice.id)
        body["progress"] = steps
        return jsonify(body), 201
    except (ValidationError, StoreError, invoice_service.InvoiceCommitError) as e:
        return error_response(e)


@invoices_bp.delete("/<int:invoice_id>")
@with_operator
def delete_invoice(invoice_id: int):
    """Delete an invoice and its items. Received stock is not reversed."""
    try:
        invoice_service.delete_invoice(invoice_id, user_name=g.operator)
        return "", 204
    except (NotFoundError, StoreError) as e:
        return error_response(e)
