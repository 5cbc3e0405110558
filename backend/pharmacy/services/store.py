# Overview: Persistent Store collaborator; single-record calls, each committed on its own.

"""
Persistent Store

The engine talks to persistence only through this interface:
select / get / insert / insert_many / update / delete / count against
named collections. None of the calls is composed into a multi-statement
transaction: every call commits (or fails) on its own, which is exactly
what the invoice saga compensates for.

SqlStore is the Flask-SQLAlchemy implementation. Transient database
failures (OperationalError: locked database, dropped connection) are
retried with exponential backoff; anything that still fails surfaces as a
StoreError after the session is rolled back.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Iterable

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from ..errors import NotFoundError, StoreError
from ..extensions import db
from ..models import (
    ActivityLog,
    CreditNote,
    CreditNoteItem,
    Invoice,
    InvoiceItem,
    Product,
    StockTakeEntry,
    StockTakeSession,
)


COLLECTIONS = {
    "products": Product,
    "invoices": Invoice,
    "invoice_items": InvoiceItem,
    "credit_notes": CreditNote,
    "credit_note_items": CreditNoteItem,
    "stock_take_sessions": StockTakeSession,
    "stock_take_entries": StockTakeEntry,
    "activity_logs": ActivityLog,
}


def run_with_retry(func: Callable[[], Any], *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on transient failures.

    Retries on OperationalError (locks, dropped connections). Other errors
    propagate immediately.
    """
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Transient database error (attempt %s/%s), retrying", attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))


class Store:
    """
    Abstract persistent store.

    Filters are equality filters ({"column": value}). order_by names a
    column sorted descending (newest first); ties break on id descending.
    """

    def select(
        self,
        collection: str,
        *,
        filters: dict | None = None,
        order_by: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list:
        raise NotImplementedError

    def select_one(self, collection: str, filters: dict):
        rows = self.select(collection, filters=filters, limit=1)
        return rows[0] if rows else None

    def get(self, collection: str, row_id: int):
        raise NotImplementedError

    def count(self, collection: str, *, filters: dict | None = None) -> int:
        raise NotImplementedError

    def insert(self, collection: str, values: dict):
        raise NotImplementedError

    def insert_many(self, collection: str, rows: Iterable[dict]) -> list:
        raise NotImplementedError

    def update(self, collection: str, row_id: int, values: dict):
        raise NotImplementedError

    def delete(self, collection: str, row_id: int) -> None:
        raise NotImplementedError


class SqlStore(Store):
    """Store backed by the Flask-SQLAlchemy session (requires an app context)."""

    def _model(self, collection: str):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise StoreError(f"Unknown collection: {collection}", collection=collection) from None

    @staticmethod
    def _check_columns(model, values: dict, collection: str) -> None:
        columns = {c.key for c in model.__mapper__.columns}
        unknown = sorted(set(values) - columns)
        if unknown:
            raise StoreError(
                f"Unknown column(s) for {collection}: {', '.join(unknown)}",
                collection=collection,
            )

    def _execute(self, action: str, collection: str, func: Callable[[], Any]):
        config = current_app.config
        try:
            return run_with_retry(
                func,
                attempts=config.get("STORE_RETRY_ATTEMPTS", 3),
                backoff_base=config.get("STORE_RETRY_BACKOFF_SECONDS", 0.1),
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(
                f"{action} on {collection} failed: {exc.__class__.__name__}",
                collection=collection,
                action=action,
            ) from exc

    # ------------------------------------------------------------------
    # reads

    def select(self, collection, *, filters=None, order_by=None, limit=None, offset=None):
        model = self._model(collection)
        if filters:
            self._check_columns(model, filters, collection)
        if order_by:
            self._check_columns(model, {order_by: None}, collection)

        def _op():
            query = db.session.query(model)
            if filters:
                query = query.filter_by(**filters)
            if order_by:
                query = query.order_by(getattr(model, order_by).desc(), model.id.desc())
            else:
                query = query.order_by(model.id.asc())
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return query.all()

        return self._execute("select", collection, _op)

    def get(self, collection, row_id):
        model = self._model(collection)
        return self._execute("get", collection, lambda: db.session.get(model, row_id))

    def count(self, collection, *, filters=None):
        model = self._model(collection)
        if filters:
            self._check_columns(model, filters, collection)

        def _op():
            query = db.session.query(model)
            if filters:
                query = query.filter_by(**filters)
            return query.count()

        return self._execute("count", collection, _op)

    # ------------------------------------------------------------------
    # writes (each call is its own transaction)

    def insert(self, collection, values):
        model = self._model(collection)
        self._check_columns(model, values, collection)

        def _op():
            row = model(**values)
            db.session.add(row)
            db.session.commit()
            return row

        return self._execute("insert", collection, _op)

    def insert_many(self, collection, rows):
        model = self._model(collection)
        rows = list(rows)
        for values in rows:
            self._check_columns(model, values, collection)

        def _op():
            created = [model(**values) for values in rows]
            db.session.add_all(created)
            db.session.commit()
            return created

        return self._execute("insert_many", collection, _op)

    def update(self, collection, row_id, values):
        model = self._model(collection)
        self._check_columns(model, values, collection)

        def _op():
            row = db.session.get(model, row_id)
            if row is None:
                raise NotFoundError(f"{collection} row {row_id} not found")
            for key, value in values.items():
                setattr(row, key, value)
            db.session.commit()
            return row

        return self._execute("update", collection, _op)

    def delete(self, collection, row_id):
        model = self._model(collection)

        def _op():
            row = db.session.get(model, row_id)
            if row is None:
                raise NotFoundError(f"{collection} row {row_id} not found")
            db.session.delete(row)
            db.session.commit()

        self._execute("delete", collection, _op)


sql_store = SqlStore()


def get_store(store: Store | None = None) -> Store:
    """Resolve the store a service call should use (injected or the SQL default)."""
    return store if store is not None else sql_store
