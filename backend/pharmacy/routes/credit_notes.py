# Overview: Flask API routes for credit notes (returns to supplier).

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, json_body, with_operator
from ..errors import NotFoundError, StoreError, ValidationError
from ..services import credit_note_service


credit_notes_bp = Blueprint("credit_notes", __name__, url_prefix="/api/credit-notes")


@credit_notes_bp.get("")
def list_credit_notes():
    try:
        try:
            limit = min(max(int(request.args.get("limit", 50)), 1), 500)
            offset = max(int(request.args.get("offset", 0)), 0)
        except ValueError:
            raise ValidationError("limit and offset must be integers")
        rows = credit_note_service.list_credit_notes(
            supplier=request.args.get("supplier") or None,
            invoice_number=request.args.get("invoice_number") or None,
            limit=limit,
            offset=offset,
        )
        return jsonify({"items": [n.to_dict() for n in rows], "count": len(rows)})
    except (ValidationError, StoreError) as e:
        return error_response(e)


@credit_notes_bp.get("/<int:credit_note_id>")
def get_credit_note(credit_note_id: int):
    try:
        return jsonify(credit_note_service.get_credit_note_with_items(credit_note_id))
    except (NotFoundError, StoreError) as e:
        return error_response(e)


@credit_notes_bp.post("")
@with_operator
def create_credit_note():
    """
    Return stock to a supplier.

    Request body:
    {
        "invoice_number": str,
        "supplier": str,
        "return_date": "YYYY-MM-DD" (optional),
        "items": [{"product_id": int, "quantity": int, "reason": str,
                   "cost_price_cents": int (optional)}]
    }

    Returns:
        201: Credit note created
        400: Invalid request
        409: Insufficient stock (earlier lines stay committed)
    """
    try:
        data = json_body()
        note = credit_note_service.create_credit_note(
            invoice_number=data.get("invoice_number"),
            supplier=data.get("supplier"),
            items=data.get("items"),
            return_date=data.get("return_date"),
            user_name=g.operator,
        )
        return jsonify(credit_note_service.get_credit_note_with_items(note.id)), 201
    except (ValidationError, StoreError, credit_note_service.CreditNoteError) as e:
        return error_response(e)


@credit_notes_bp.delete("/<int:credit_note_id>")
@with_operator
def delete_credit_note(credit_note_id: int):
    """Delete a credit note. Returned stock is not added back."""
    try:
        credit_note_service.delete_credit_note(credit_note_id, user_name=g.operator)
        return "", 204
    except (NotFoundError, StoreError) as e:
        return error_response(e)
