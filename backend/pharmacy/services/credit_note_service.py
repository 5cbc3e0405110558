# Overview: Returns to supplier; decrements stock line by line and records credit notes.

"""
Credit Note Service

Each returned line is checked against live stock and committed on its own:
header first, then per line fetch -> check -> decrement -> item -> header
total. A line that would drive stock negative is rejected before its write.

NOT COMPENSATED: lines committed before a failing line stay committed, and
the header keeps the total of those lines. Unlike goods receipts there is
no rollback on this path.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from flask import current_app

from ..errors import (
    InsufficientStockError,
    NotFoundError,
    OperationError,
    StoreError,
    ValidationError,
)
from ..models import CreditNote, CreditNoteItem
from ..time_utils import today
from ..validation import coerce_date, coerce_int, coerce_price_cents, require_text
from .activity_service import CREDIT_NOTE_CREATED, CREDIT_NOTE_DELETED, log_activity
from .pricing import PricingInputs, net_cost_cents
from .store import Store, get_store


class CreditNoteError(OperationError):
    """Raised when a credit note cannot be fully processed."""
    pass


@dataclass(frozen=True)
class ReturnLine:
    product_id: int
    quantity: int
    reason: str
    cost_price_cents: int | None


def next_credit_note_number() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    return f"CN-{stamp}"


def _validate_lines(items) -> list[ReturnLine]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")
    lines = []
    for position, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"Item {position} must be an object")
        label = f"Item {position}"
        lines.append(
            ReturnLine(
                product_id=coerce_int(item.get("product_id"), f"{label}: product_id", minimum=1),
                quantity=coerce_int(item.get("quantity"), f"{label}: quantity", minimum=1),
                reason=require_text(item.get("reason"), f"{label}: reason"),
                cost_price_cents=coerce_price_cents(
                    item.get("cost_price_cents"), f"{label}: cost_price_cents"
                ),
            )
        )
    return lines


def create_credit_note(
    *,
    invoice_number: str,
    supplier: str,
    items: list[dict],
    return_date=None,
    user_name: str | None = None,
    store: Store | None = None,
) -> CreditNote:
    """
    Return stock to a supplier.

    Raises:
        ValidationError: bad header or line, before any write
        CreditNoteError: a line failed (insufficient stock, missing product,
            store failure); earlier lines remain committed
    """
    invoice_number = require_text(invoice_number, "invoice_number")
    supplier = require_text(supplier, "supplier")
    lines = _validate_lines(items)
    return_day = coerce_date(return_date, "return_date") or today()

    reasons = []
    for line in lines:
        if line.reason not in reasons:
            reasons.append(line.reason)

    store = get_store(store)
    credit_note_number = next_credit_note_number()
    try:
        note = store.insert(
            "credit_notes",
            {
                "credit_note_number": credit_note_number,
                "invoice_number": invoice_number,
                "supplier": supplier,
                "return_date": return_day,
                "total_amount_cents": 0,
                "reason": "; ".join(reasons),
                "user_name": user_name or "system",
            },
        )
        note_id = note.id

        total = 0
        for line in lines:
            product = store.get("products", line.product_id)
            if product is None:
                raise NotFoundError(f"Product {line.product_id} not found")

            new_stock = product.current_stock - line.quantity
            if new_stock < 0:
                raise InsufficientStockError(product.name, product.current_stock, line.quantity)

            unit_credit = line.cost_price_cents
            if unit_credit is None:
                unit_credit = net_cost_cents(PricingInputs.from_record(product))
            line_credit = unit_credit * line.quantity

            store.update("products", product.id, {"current_stock": new_stock})
            store.insert(
                "credit_note_items",
                {
                    "credit_note_id": note_id,
                    "product_id": product.id,
                    "product_name": product.name,
                    "batch_number": product.batch_number,
                    "quantity": line.quantity,
                    "cost_price_cents": unit_credit,
                    "total_credit_cents": line_credit,
                    "reason": line.reason,
                },
            )
            total += line_credit
            store.update("credit_notes", note_id, {"total_amount_cents": total})
    except (InsufficientStockError, NotFoundError, StoreError) as exc:
        current_app.logger.exception("Credit note %s failed", credit_note_number)
        raise CreditNoteError(f"Credit note could not be completed: {exc}", cause=exc) from exc

    log_activity(
        CREDIT_NOTE_CREATED,
        f"Created credit note {credit_note_number} for invoice {invoice_number} ({len(lines)} items)",
        user_name=user_name,
        store=store,
    )
    return store.get("credit_notes", note_id)


def get_credit_note(credit_note_id: int, *, store: Store | None = None) -> CreditNote:
    note = get_store(store).get("credit_notes", credit_note_id)
    if note is None:
        raise NotFoundError(f"Credit note {credit_note_id} not found")
    return note


def list_credit_note_items(credit_note_id: int, *, store: Store | None = None) -> list[CreditNoteItem]:
    return get_store(store).select("credit_note_items", filters={"credit_note_id": credit_note_id})


def get_credit_note_with_items(credit_note_id: int, *, store: Store | None = None) -> dict:
    store = get_store(store)
    note = get_credit_note(credit_note_id, store=store)
    items = list_credit_note_items(credit_note_id, store=store)
    return {
        "credit_note": note.to_dict(),
        "items": [item.to_dict() for item in items],
        "item_count": len(items),
        "total_quantity": sum(item.quantity for item in items),
    }


def list_credit_notes(
    *,
    supplier: str | None = None,
    invoice_number: str | None = None,
    limit: int = 50,
    offset: int = 0,
    store: Store | None = None,
) -> list[CreditNote]:
    """Newest return_date first."""
    filters = {}
    if supplier:
        filters["supplier"] = supplier
    if invoice_number:
        filters["invoice_number"] = invoice_number
    return get_store(store).select(
        "credit_notes", filters=filters or None, order_by="return_date", limit=limit, offset=offset
    )


def delete_credit_note(
    credit_note_id: int,
    *,
    user_name: str | None = None,
    store: Store | None = None,
) -> None:
    """Remove a credit note and its items. Returned stock is NOT added back."""
    store = get_store(store)
    note = get_credit_note(credit_note_id, store=store)
    number = note.credit_note_number
    store.delete("credit_notes", credit_note_id)
    log_activity(
        CREDIT_NOTE_DELETED,
        f"Deleted credit note {number}",
        user_name=user_name,
        store=store,
    )
