# Overview: Append-only operator activity trail; writes never fail the operation being recorded.

"""
Activity Log Invariants

- One event per successful mutation, appended after the mutation committed.
- Fire-and-forget: a failed append is logged and dropped.
- No updates or deletes of existing events.
"""

from __future__ import annotations

from flask import current_app

from ..errors import StoreError
from ..models import ActivityLog
from .store import Store, get_store


# Action codes
INVOICE_CREATED = "INVOICE_CREATED"
INVOICE_DELETED = "INVOICE_DELETED"
CREDIT_NOTE_CREATED = "CREDIT_NOTE_CREATED"
CREDIT_NOTE_DELETED = "CREDIT_NOTE_DELETED"
CREATE_STOCK_TAKE_SESSION = "CREATE_STOCK_TAKE_SESSION"
UPDATE_STOCK_TAKE_SESSION = "UPDATE_STOCK_TAKE_SESSION"
DELETE_STOCK_TAKE_SESSION = "DELETE_STOCK_TAKE_SESSION"
COMPLETE_STOCK_TAKE_SESSION = "COMPLETE_STOCK_TAKE_SESSION"
PRODUCT_CREATED = "PRODUCT_CREATED"
PRODUCT_UPDATED = "PRODUCT_UPDATED"

DEFAULT_USER_NAME = "system"


def log_activity(
    action: str,
    details: str,
    *,
    user_name: str | None = None,
    store: Store | None = None,
) -> ActivityLog | None:
    """
    Append an activity event.

    Returns the stored row, or None when the append failed.
    """
    store = get_store(store)
    try:
        return store.insert(
            "activity_logs",
            {
                "user_name": user_name or DEFAULT_USER_NAME,
                "action": action,
                "details": details,
            },
        )
    except StoreError as exc:
        current_app.logger.warning("Dropped activity event %s: %s", action, exc)
        return None


def list_activity(
    *,
    action: str | None = None,
    limit: int = 100,
    offset: int = 0,
    store: Store | None = None,
) -> list[ActivityLog]:
    """Newest first."""
    store = get_store(store)
    filters = {"action": action} if action else None
    return store.select(
        "activity_logs", filters=filters, order_by="created_at", limit=limit, offset=offset
    )
