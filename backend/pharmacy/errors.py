"""
Shared error taxonomy for the inventory engine.

Operation-level failures (InvoiceCommitError, CreditNoteError,
StockTakeError) live next to the service that raises them and extend
OperationError, so callers see exactly one human-readable failure per
operation with the underlying cause chained.
"""
from __future__ import annotations


class ValidationError(ValueError):
    """400-level input problem. Raised before any store call."""


class NotFoundError(LookupError):
    """A referenced record does not exist."""


class StoreError(Exception):
    """The persistent store call itself failed (database unavailable, constraint, etc.)."""

    def __init__(self, message: str, *, collection: str | None = None, action: str | None = None):
        super().__init__(message)
        self.collection = collection
        self.action = action


class InsufficientStockError(Exception):
    """A decrement would drive current_stock negative."""

    def __init__(self, product_name: str, available: int, requested: int):
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for {product_name}. "
            f"Available: {available}, Returning: {requested}"
        )


class NothingToReconcileError(Exception):
    """Stock-take submission where every count matches the live stock."""

    def __init__(self, message: str = "No stock discrepancies found: nothing to reconcile"):
        super().__init__(message)


class OperationError(Exception):
    """
    Aggregate failure of a multi-step operation.

    `cause` keeps the first error that stopped the operation.
    """

    def __init__(self, message: str, *, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause
