# Overview: Goods receipt commit saga; independently committed steps with manual compensation.

"""
Invoice Commit Service

WHY: The store commits every call on its own, so a goods receipt cannot be
wrapped in one transaction. The commit runs as a saga: each step that
changes durable state records how to undo it, and the undo log is replayed
in reverse when a later step fails.

PROTOCOL (strictly sequential):
1. Insert the invoice header (total known up front from the priced lines).
2. For each line, in input order: find the product by (name, batch_number);
   add the received quantity and refresh its pricing, or create it.
   Supplier, invoice_number and expiry of an existing product are left as is.
3. Insert all invoice items in one store call.
4. Append INVOICE_CREATED (fire-and-forget).

COMPENSATION:
- Updated products get their pre-commit current_stock and pricing written back.
- The header is deleted (items cascade).
- Products created by the failed commit stay, with their received stock.
- Compensation failures are logged, never raised.

The caller always sees a single InvoiceCommitError for a failed commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable

from flask import current_app

from ..errors import NotFoundError, OperationError, ValidationError
from ..models import Invoice, InvoiceItem
from ..time_utils import today
from ..validation import (
    coerce_date,
    coerce_int,
    coerce_price_cents,
    optional_text,
    require_text,
)
from .activity_service import INVOICE_CREATED, INVOICE_DELETED, log_activity
from .pricing import PricingInputs, derive_pricing
from .product_service import DEFAULT_CATEGORY, generate_barcode, pricing_inputs_from
from .store import Store, get_store


ProgressCallback = Callable[[int, int, str], None]

# Compensation entry kinds
UNDO_DELETE_INVOICE = "delete_invoice"
UNDO_RESTORE_STOCK = "restore_stock"
UNDO_KEEP_NEW_PRODUCT = "keep_new_product"


class InvoiceCommitError(OperationError):
    """A goods receipt failed partway; compensation has been attempted."""

    def __init__(self, message: str, *, cause: BaseException | None = None):
        super().__init__(message, cause=cause)
        self.rollback_attempted = True


@dataclass(frozen=True)
class UndoEntry:
    kind: str
    target_id: int
    original_stock: int | None = None
    # Pricing columns as they were before the receipt
    original_values: dict | None = None


@dataclass
class CompensationLog:
    """Ordered record of what the saga changed, replayed newest first on failure."""

    entries: list[UndoEntry] = field(default_factory=list)

    def record_invoice(self, invoice_id: int) -> None:
        self.entries.append(UndoEntry(UNDO_DELETE_INVOICE, invoice_id))

    def record_stock(self, product_id: int, original_stock: int, original_values: dict | None = None) -> None:
        self.entries.append(UndoEntry(UNDO_RESTORE_STOCK, product_id, original_stock, original_values))

    def record_new_product(self, product_id: int) -> None:
        self.entries.append(UndoEntry(UNDO_KEEP_NEW_PRODUCT, product_id))

    @property
    def invoice_id(self) -> int | None:
        for entry in self.entries:
            if entry.kind == UNDO_DELETE_INVOICE:
                return entry.target_id
        return None

    def replay(self, store: Store) -> list[str]:
        """
        Undo in reverse order. Returns the failures (already logged).
        """
        failures: list[str] = []
        for entry in reversed(self.entries):
            if entry.kind == UNDO_KEEP_NEW_PRODUCT:
                continue
            try:
                if entry.kind == UNDO_RESTORE_STOCK:
                    values = dict(entry.original_values or {})
                    values["current_stock"] = entry.original_stock
                    store.update("products", entry.target_id, values)
                elif entry.kind == UNDO_DELETE_INVOICE:
                    store.delete("invoices", entry.target_id)
            except Exception as exc:
                message = f"{entry.kind} {entry.target_id} failed: {exc}"
                current_app.logger.warning("Invoice compensation step %s", message)
                failures.append(message)
        return failures


@dataclass(frozen=True)
class PricedLine:
    position: int
    product_name: str
    category: str
    batch_number: str
    expiry_date: object
    quantity: int
    inputs: PricingInputs
    cost_price_cents: int
    selling_price_cents: int
    barcode: str | None

    @property
    def total_cost_cents(self) -> int:
        return self.cost_price_cents * self.quantity

    def pricing_columns(self) -> dict:
        columns = self.inputs.to_columns()
        columns["cost_price_cents"] = self.cost_price_cents
        columns["selling_price_cents"] = self.selling_price_cents
        return columns


def _price_lines(items: Iterable[dict]) -> list[PricedLine]:
    lines: list[PricedLine] = []
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"Item {position + 1} must be an object")
        label = f"Item {position + 1}"
        name = require_text(item.get("product_name") or item.get("name"), f"{label}: product_name")
        quantity = coerce_int(item.get("quantity"), f"{label}: quantity", minimum=1)

        invoice_price = coerce_price_cents(
            item.get("invoice_price_cents"), f"{label}: invoice_price_cents", negative_as_zero=True
        )
        cost_price = coerce_price_cents(
            item.get("cost_price_cents"), f"{label}: cost_price_cents", negative_as_zero=True
        )
        if invoice_price is None and cost_price is None:
            raise ValidationError(f"{label}: invoice_price_cents or cost_price_cents is required")
        requested = coerce_price_cents(
            item.get("selling_price_cents"), f"{label}: selling_price_cents", negative_as_zero=True
        )

        inputs = pricing_inputs_from(item)
        result = derive_pricing(inputs, requested)
        lines.append(
            PricedLine(
                position=position,
                product_name=name,
                category=optional_text(item.get("category"), DEFAULT_CATEGORY),
                batch_number=optional_text(item.get("batch_number"), ""),
                expiry_date=coerce_date(item.get("expiry_date"), f"{label}: expiry_date"),
                quantity=quantity,
                inputs=inputs,
                cost_price_cents=result.net_cost_cents,
                selling_price_cents=result.selling_price_cents,
                barcode=optional_text(item.get("barcode")),
            )
        )
    if not lines:
        raise ValidationError("At least one item is required")
    return lines


def commit_invoice(
    *,
    invoice_number: str,
    supplier: str,
    items: list[dict],
    invoice_date=None,
    notes: str | None = None,
    user_name: str | None = None,
    progress: ProgressCallback | None = None,
    store: Store | None = None,
) -> Invoice:
    """
    Commit a goods receipt.

    Args:
        invoice_number: Supplier invoice number (unique)
        supplier: Supplier name
        items: Line dicts (product_name, quantity, invoice terms, batch, expiry...)
        progress: Optional callback(step_index, total_steps, message)

    Returns:
        The committed Invoice

    Raises:
        ValidationError: bad input, before any write
        InvoiceCommitError: a step failed; compensation was attempted
    """
    invoice_number = require_text(invoice_number, "invoice_number")
    supplier = require_text(supplier, "supplier")
    if not isinstance(items, list):
        raise ValidationError("items must be a list")
    lines = _price_lines(items)
    invoice_day = coerce_date(invoice_date, "invoice_date") or today()

    store = get_store(store)
    if store.select_one("invoices", {"invoice_number": invoice_number}) is not None:
        raise ValidationError(f"Invoice {invoice_number} already exists")

    line_count = len(lines)
    total_steps = line_count + 2

    def _report(step: int, message: str) -> None:
        if progress is not None:
            progress(step, total_steps, message)

    log = CompensationLog()
    try:
        invoice = store.insert(
            "invoices",
            {
                "invoice_number": invoice_number,
                "supplier": supplier,
                "invoice_date": invoice_day,
                "total_amount_cents": sum(line.total_cost_cents for line in lines),
                "notes": optional_text(notes),
                "user_name": user_name or "system",
            },
        )
        invoice_id = invoice.id
        log.record_invoice(invoice_id)
        _report(1, f"Created invoice header {invoice_number}")

        pending: list[dict] = []
        for index, line in enumerate(lines, start=1):
            product = store.select_one(
                "products", {"name": line.product_name, "batch_number": line.batch_number}
            )
            if product is not None:
                columns = line.pricing_columns()
                log.record_stock(
                    product.id,
                    product.current_stock,
                    {key: getattr(product, key) for key in columns},
                )
                product = store.update(
                    "products",
                    product.id,
                    {"current_stock": product.current_stock + line.quantity, **columns},
                )
            else:
                product = store.insert(
                    "products",
                    {
                        "name": line.product_name,
                        "category": line.category,
                        "supplier": supplier,
                        "batch_number": line.batch_number,
                        "expiry_date": line.expiry_date,
                        "current_stock": line.quantity,
                        "barcode": line.barcode or generate_barcode(),
                        "invoice_number": invoice_number,
                        **line.pricing_columns(),
                    },
                )
                log.record_new_product(product.id)

            pending.append(
                {
                    "invoice_id": invoice_id,
                    "product_id": product.id,
                    "position": line.position,
                    "product_name": line.product_name,
                    "category": line.category,
                    "batch_number": line.batch_number,
                    "expiry_date": line.expiry_date,
                    "quantity": line.quantity,
                    "total_cost_cents": line.total_cost_cents,
                    "barcode": product.barcode,
                    **line.pricing_columns(),
                }
            )
            _report(index + 1, f"Processed {line.product_name} ({index}/{line_count})")

        store.insert_many("invoice_items", pending)
        _report(total_steps, f"Saved {line_count} invoice items")
    except Exception as exc:
        current_app.logger.exception("Invoice %s commit failed; rolling back", invoice_number)
        failures = log.replay(store)
        message = f"Invoice {invoice_number} could not be saved and a rollback was attempted: {exc}"
        if failures:
            message += f" ({len(failures)} compensation step(s) failed)"
        raise InvoiceCommitError(message, cause=exc) from exc

    log_activity(
        INVOICE_CREATED,
        f"Created invoice {invoice_number} from {supplier} with {line_count} items",
        user_name=user_name,
        store=store,
    )
    current_app.logger.info("Committed invoice %s (%s items)", invoice_number, line_count)
    return store.get("invoices", invoice_id)


def get_invoice(invoice_id: int, *, store: Store | None = None) -> Invoice:
    invoice = get_store(store).get("invoices", invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def list_invoice_items(invoice_id: int, *, store: Store | None = None) -> list[InvoiceItem]:
    rows = get_store(store).select("invoice_items", filters={"invoice_id": invoice_id})
    return sorted(rows, key=lambda item: (item.position, item.id))


def get_invoice_with_items(invoice_id: int, *, store: Store | None = None) -> dict:
    store = get_store(store)
    invoice = get_invoice(invoice_id, store=store)
    items = list_invoice_items(invoice_id, store=store)
    return {
        "invoice": invoice.to_dict(),
        "items": [item.to_dict() for item in items],
        "item_count": len(items),
        "total_quantity": sum(item.quantity for item in items),
    }


def list_invoices(
    *,
    supplier: str | None = None,
    limit: int = 50,
    offset: int = 0,
    store: Store | None = None,
) -> list[Invoice]:
    """Newest invoice_date first."""
    filters = {"supplier": supplier} if supplier else None
    return get_store(store).select(
        "invoices", filters=filters, order_by="invoice_date", limit=limit, offset=offset
    )


def delete_invoice(
    invoice_id: int,
    *,
    user_name: str | None = None,
    store: Store | None = None,
) -> None:
    """
    Remove an invoice and its items.

    NOTE: Stock received by the invoice is NOT reversed.
    """
    store = get_store(store)
    invoice = get_invoice(invoice_id, store=store)
    invoice_number = invoice.invoice_number
    store.delete("invoices", invoice_id)
    log_activity(
        INVOICE_DELETED,
        f"Deleted invoice {invoice_number}",
        user_name=user_name,
        store=store,
    )
