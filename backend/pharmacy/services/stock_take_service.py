# Overview: Stock-take sessions; progress kept in memory, saved remotely and mirrored locally.

"""
Stock-Take Session Service

LIFECYCLE:
1. in_progress: counts are recorded against an open SessionHandle and saved
   repeatedly (remote progress_data + local cache mirror)
2. completed: discrepancies posted as StockTakeEntry rows, counted stock
   written to the products, progress cleared
3. deleted: explicit, from any state; stock effects of a completed session
   are NOT reversed

DUAL PERSISTENCE:
The remote session row is authoritative. The local cache mirror
(stockTakeSession_{id}) is only used by resume when the remote progress is
empty. A debounced AutoSaveTimer refreshes the mirror while counts are
being entered.

NOT COMPENSATED: submission writes entries and product stock one at a time;
a failure partway leaves the earlier writes in place.
"""
from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from flask import current_app

from ..errors import NotFoundError, NothingToReconcileError, OperationError, StoreError
from ..extensions import local_cache as default_cache
from ..local_cache import SESSION_INDEX_KEY, LocalCache, session_key
from ..models import StockTakeEntry, StockTakeSession
from ..models.stock_takes import SESSION_STATUS_COMPLETED, SESSION_STATUS_IN_PROGRESS
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from ..validation import coerce_int, optional_text, require_text
from .activity_service import (
    COMPLETE_STOCK_TAKE_SESSION,
    CREATE_STOCK_TAKE_SESSION,
    DELETE_STOCK_TAKE_SESSION,
    DEFAULT_USER_NAME,
    UPDATE_STOCK_TAKE_SESSION,
    log_activity,
)
from .store import Store, get_store


DEFAULT_AUTOSAVE_SECONDS = 20.0


class StockTakeError(OperationError):
    """Raised when a stock-take operation fails."""
    pass


def prefer_remote_if_present(remote: dict | None, local: dict | None) -> dict:
    """Remote progress when present and non-empty, else the local mirror, else empty."""
    if remote:
        return remote
    if local:
        return local
    return {}


def _normalize_progress(raw: dict | None) -> dict[int, dict]:
    """JSON progress ({"12": {...}}) -> {12: {"actual_stock": int, "reason": str}}."""
    progress: dict[int, dict] = {}
    for key, entry in (raw or {}).items():
        try:
            product_id = int(key)
            actual = int(entry["actual_stock"])
        except (KeyError, TypeError, ValueError):
            current_app.logger.warning("Ignoring malformed stock-take progress entry %r", key)
            continue
        progress[product_id] = {
            "actual_stock": actual,
            "reason": str(entry.get("reason") or ""),
        }
    return progress


@dataclass
class SessionHandle:
    """The open stock-take session an operator is counting against."""

    id: int
    name: str
    started_at: datetime | None
    progress: dict[int, dict] = field(default_factory=dict)

    def progress_json(self) -> dict[str, dict]:
        return {str(pid): dict(entry) for pid, entry in sorted(self.progress.items())}

    def to_cache_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "started_at": to_utc_z(self.started_at),
            "progress": self.progress_json(),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_name": self.name,
            "started_at": to_utc_z(self.started_at),
            "progress_data": self.progress_json(),
        }


class AutoSaveTimer:
    """
    Debounce timer: every schedule() replaces the pending fire.

    The callback runs on a timer thread; exceptions are logged there.
    """

    def __init__(self, delay: float, callback: Callable[[SessionHandle], None], logger):
        self.delay = delay
        self._callback = callback
        self._logger = logger
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self, handle: SessionHandle) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self.delay, self._fire)
            timer.args = (handle, timer)
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None

    def _fire(self, handle: SessionHandle, timer: threading.Timer) -> None:
        with self._lock:
            # A replaced or cancelled timer may still wake up; only the latest one saves
            if self._timer is not timer:
                return
            self._timer = None
        try:
            self._callback(handle)
        except Exception:
            self._logger.exception("Auto-save of stock-take session %s failed", handle.id)


@dataclass(frozen=True)
class Discrepancy:
    product_id: int
    product_name: str
    expected_stock: int
    actual_stock: int
    unit_cost_cents: int
    reason: str

    @property
    def difference(self) -> int:
        return self.actual_stock - self.expected_stock

    @property
    def value_difference_cents(self) -> int:
        return self.difference * self.unit_cost_cents

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "expected_stock": self.expected_stock,
            "actual_stock": self.actual_stock,
            "difference": self.difference,
            "unit_cost_cents": self.unit_cost_cents,
            "value_difference_cents": self.value_difference_cents,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class StockTakeSummary:
    counted_products: int
    discrepancies: list[Discrepancy]

    @property
    def total_discrepancies(self) -> int:
        return sum(abs(d.difference) for d in self.discrepancies)

    @property
    def value_difference_cents(self) -> int:
        return sum(d.value_difference_cents for d in self.discrepancies)

    def to_dict(self) -> dict:
        return {
            "counted_products": self.counted_products,
            "discrepancy_count": len(self.discrepancies),
            "total_discrepancies": self.total_discrepancies,
            "value_difference_cents": self.value_difference_cents,
            "discrepancies": [d.to_dict() for d in self.discrepancies],
        }


class StockTakeManager:
    """
    Owns the store, the local cache and the open session handles.

    Open handles are tracked per session id, each with its own auto-save
    timer, so counts entered against one session survive other sessions
    being opened. Each operator has one focused session: opening another
    one flushes the previous session's pending auto-save and stops its
    timer. Handles stay open until submitted, deleted or closed.

    Must be created inside an application context.
    """

    def __init__(
        self,
        *,
        store: Store | None = None,
        cache: LocalCache | None = None,
        autosave_seconds: float | None = None,
    ):
        self.store = get_store(store)
        self.cache = cache if cache is not None else current_app.extensions.get("local_cache", default_cache)
        if autosave_seconds is None:
            autosave_seconds = current_app.config.get("STOCK_TAKE_AUTOSAVE_SECONDS", DEFAULT_AUTOSAVE_SECONDS)
        self.autosave_seconds = float(autosave_seconds)
        self._logger = current_app.logger
        self._lock = threading.RLock()
        self._handles: dict[int, SessionHandle] = {}
        self._timers: dict[int, AutoSaveTimer] = {}
        self._focus: dict[str, int] = {}
        self._finished: set[int] = set()

    # ------------------------------------------------------------------
    # local mirror

    def _write_mirror(self, handle: SessionHandle) -> None:
        with self._lock:
            self.cache.set(session_key(handle.id), handle.to_cache_dict())

    def _auto_mirror(self, handle: SessionHandle) -> None:
        """Timer callback. Skips handles that were completed, deleted or replaced meanwhile."""
        with self._lock:
            if self._handles.get(handle.id) is not handle:
                return
            self.cache.set(session_key(handle.id), handle.to_cache_dict())

    def _index(self) -> list[dict]:
        index = self.cache.get(SESSION_INDEX_KEY, [])
        return index if isinstance(index, list) else []

    def _index_upsert(self, session_id: int, **fields) -> None:
        index = self._index()
        for entry in index:
            if entry.get("id") == session_id:
                entry.update(fields)
                break
        else:
            index.append({"id": session_id, **fields})
        self.cache.set(SESSION_INDEX_KEY, index)

    def _index_remove(self, session_id: int) -> None:
        index = [entry for entry in self._index() if entry.get("id") != session_id]
        self.cache.set(SESSION_INDEX_KEY, index)

    # ------------------------------------------------------------------
    # open handles and timers (callers hold self._lock)

    def _timer_for(self, session_id: int) -> AutoSaveTimer:
        timer = self._timers.get(session_id)
        if timer is None:
            timer = AutoSaveTimer(self.autosave_seconds, self._auto_mirror, self._logger)
            self._timers[session_id] = timer
        return timer

    def _stop_timer(self, session_id: int) -> None:
        timer = self._timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()

    def _flush(self, session_id: int) -> None:
        """Write a pending auto-save now and stop that session's timer."""
        timer = self._timers.pop(session_id, None)
        if timer is None:
            return
        pending = timer.pending
        timer.cancel()
        handle = self._handles.get(session_id)
        if pending and handle is not None:
            self._write_mirror(handle)

    def _focus_on(self, operator: str | None, session_id: int) -> None:
        operator = operator or DEFAULT_USER_NAME
        previous = self._focus.get(operator)
        if previous is not None and previous != session_id:
            self._flush(previous)
        self._focus[operator] = session_id

    def _unfocus(self, session_id: int) -> None:
        for operator, focused in list(self._focus.items()):
            if focused == session_id:
                del self._focus[operator]

    def _open(self, handle: SessionHandle, operator: str | None) -> SessionHandle:
        with self._lock:
            if self._handles.get(handle.id) is not handle:
                self._stop_timer(handle.id)
            self._handles[handle.id] = handle
            self._finished.discard(handle.id)
            self._focus_on(operator, handle.id)
        return handle

    def _forget(self, session_id: int) -> None:
        """Completed or deleted: drop handle, timer and local mirror together."""
        with self._lock:
            self._stop_timer(session_id)
            self._handles.pop(session_id, None)
            self._unfocus(session_id)
            self._finished.add(session_id)
            self.cache.remove(session_key(session_id))

    def _get_session(self, session_id: int) -> StockTakeSession:
        row = self.store.get("stock_take_sessions", session_id)
        if row is None:
            raise NotFoundError(f"Stock-take session {session_id} not found")
        return row

    def find_open(self, session_id: int) -> SessionHandle | None:
        with self._lock:
            return self._handles.get(session_id)

    def autosave_pending(self, session_id: int) -> bool:
        with self._lock:
            timer = self._timers.get(session_id)
        return timer is not None and timer.pending

    def open_handle(self, session_id: int, *, operator: str | None = None) -> SessionHandle:
        """The open handle for a session, with its unsaved counts; resumed from storage otherwise."""
        with self._lock:
            handle = self._handles.get(session_id)
            if handle is not None:
                self._focus_on(operator, session_id)
                return handle
        return self.resume(session_id, operator=operator)

    # ------------------------------------------------------------------
    # lifecycle

    def start(self, name: str, *, user_name: str | None = None) -> SessionHandle:
        name = require_text(name, "session_name")
        try:
            row = self.store.insert(
                "stock_take_sessions",
                {
                    "session_name": name,
                    "status": SESSION_STATUS_IN_PROGRESS,
                    "progress_data": {},
                    "user_name": user_name or DEFAULT_USER_NAME,
                },
            )
        except StoreError as exc:
            self._logger.exception("Failed to create stock-take session %r", name)
            raise StockTakeError(f"Could not start stock-take: {exc}", cause=exc) from exc

        handle = SessionHandle(id=row.id, name=row.session_name, started_at=row.started_at)
        self._index_upsert(
            handle.id, name=handle.name, started_at=to_utc_z(handle.started_at), active=True
        )
        log_activity(
            CREATE_STOCK_TAKE_SESSION,
            f"Started stock-take session {name}",
            user_name=user_name,
            store=self.store,
        )
        return self._open(handle, user_name)

    def record_count(
        self,
        handle: SessionHandle,
        product_id: int,
        actual_stock: int,
        reason: str | None = "",
    ) -> None:
        """In-memory only; the session's auto-save timer is rescheduled."""
        product_id = coerce_int(product_id, "product_id", minimum=1)
        actual = coerce_int(actual_stock, "actual_stock", minimum=0)
        with self._lock:
            if handle.id in self._finished:
                raise StockTakeError(f"Stock-take session {handle.id} is no longer open")
            handle.progress[product_id] = {
                "actual_stock": actual,
                "reason": optional_text(reason, ""),
            }
            self._handles.setdefault(handle.id, handle)
            self._timer_for(handle.id).schedule(handle)

    def save_progress(self, handle: SessionHandle, *, user_name: str | None = None) -> None:
        """
        Persist progress to the session row and mirror it locally.

        The local mirror is written even when the remote write fails.
        """
        with self._lock:
            progress = handle.progress_json()
        try:
            self.store.update("stock_take_sessions", handle.id, {"progress_data": progress})
        except StoreError as exc:
            self._logger.exception("Failed to save stock-take session %s", handle.id)
            raise StockTakeError(f"Could not save progress: {exc}", cause=exc) from exc
        finally:
            with self._lock:
                self._stop_timer(handle.id)
                if handle.id not in self._finished:
                    self._write_mirror(handle)

    def resume(self, session_id: int, *, operator: str | None = None) -> SessionHandle:
        """Reopen from storage; an already open handle for the session is replaced."""
        row = self._get_session(session_id)
        if row.status == SESSION_STATUS_COMPLETED:
            raise StockTakeError(f"Stock-take session {session_id} is already completed")

        mirror = self.cache.get(session_key(row.id)) or {}
        local = mirror.get("progress") if isinstance(mirror, dict) else None
        progress = _normalize_progress(prefer_remote_if_present(row.progress_data, local))

        handle = SessionHandle(
            id=row.id,
            name=row.session_name,
            started_at=row.started_at,
            progress=progress,
        )
        self._index_upsert(
            handle.id, name=handle.name, started_at=to_utc_z(handle.started_at), active=True
        )
        return self._open(handle, operator)

    def _discrepancies(self, handle: SessionHandle) -> tuple[int, list[Discrepancy]]:
        with self._lock:
            counts = sorted(handle.progress.items())
        found: list[Discrepancy] = []
        for product_id, entry in counts:
            product = self.store.get("products", product_id)
            if product is None:
                self._logger.warning(
                    "Stock-take %s: product %s no longer exists, skipping", handle.id, product_id
                )
                continue
            item = Discrepancy(
                product_id=product.id,
                product_name=product.name,
                expected_stock=product.current_stock,
                actual_stock=entry["actual_stock"],
                unit_cost_cents=product.cost_price_cents,
                reason=entry.get("reason") or "",
            )
            if item.difference != 0:
                found.append(item)
        return len(counts), found

    def summarize(self, handle: SessionHandle) -> StockTakeSummary:
        counted, found = self._discrepancies(handle)
        return StockTakeSummary(counted_products=counted, discrepancies=found)

    def submit(self, handle: SessionHandle, *, user_name: str | None = None) -> StockTakeSession:
        """
        Post discrepancies and complete the session.

        Raises:
            NothingToReconcileError: every count matches live stock (session stays open)
            StockTakeError: store failure; earlier writes are not undone
        """
        try:
            row = self._get_session(handle.id)
            if row.status == SESSION_STATUS_COMPLETED:
                raise StockTakeError(f"Stock-take session {handle.id} is already completed")
            _, found = self._discrepancies(handle)
            if not found:
                raise NothingToReconcileError()

            for item in found:
                self.store.insert(
                    "stock_take_entries",
                    {
                        "session_id": handle.id,
                        "product_id": item.product_id,
                        "product_name": item.product_name,
                        "expected_stock": item.expected_stock,
                        "actual_stock": item.actual_stock,
                        "difference": item.difference,
                        "unit_cost_cents": item.unit_cost_cents,
                        "value_difference_cents": item.value_difference_cents,
                        "reason": item.reason or None,
                        "user_name": user_name or "system",
                    },
                )
                self.store.update("products", item.product_id, {"current_stock": item.actual_stock})

            row = self.store.update(
                "stock_take_sessions",
                handle.id,
                {
                    "status": SESSION_STATUS_COMPLETED,
                    "completed_at": utcnow(),
                    "progress_data": {},
                },
            )
        except StoreError as exc:
            self._logger.exception("Failed to complete stock-take session %s", handle.id)
            raise StockTakeError(f"Could not complete stock-take: {exc}", cause=exc) from exc

        with self._lock:
            handle.progress.clear()
            self._forget(handle.id)
        self._index_upsert(handle.id, active=False)

        summary = StockTakeSummary(counted_products=len(found), discrepancies=found)
        log_activity(
            COMPLETE_STOCK_TAKE_SESSION,
            f"Completed stock-take session {handle.name} with {len(found)} discrepancies "
            f"(value difference {summary.value_difference_cents} cents)",
            user_name=user_name,
            store=self.store,
        )
        current_app.logger.info("Completed stock-take session %s", handle.id)
        return row

    def rename(self, session_id: int, name: str, *, user_name: str | None = None) -> StockTakeSession:
        name = require_text(name, "session_name")
        self._get_session(session_id)
        try:
            row = self.store.update("stock_take_sessions", session_id, {"session_name": name})
        except StoreError as exc:
            self._logger.exception("Failed to rename stock-take session %s", session_id)
            raise StockTakeError(f"Could not rename stock-take: {exc}", cause=exc) from exc

        with self._lock:
            handle = self._handles.get(session_id)
            if handle is not None:
                handle.name = name
            mirror = self.cache.get(session_key(session_id))
            if isinstance(mirror, dict):
                mirror["name"] = name
                self.cache.set(session_key(session_id), mirror)
        if any(entry.get("id") == session_id for entry in self._index()):
            self._index_upsert(session_id, name=name)

        log_activity(
            UPDATE_STOCK_TAKE_SESSION,
            f"Renamed stock-take session {session_id} to {name}",
            user_name=user_name,
            store=self.store,
        )
        return row

    def delete(self, session_id: int, *, user_name: str | None = None) -> None:
        """Unconditional; stock written by an earlier completion stays."""
        row = self._get_session(session_id)
        name = row.session_name
        try:
            self.store.delete("stock_take_sessions", session_id)
        except StoreError as exc:
            self._logger.exception("Failed to delete stock-take session %s", session_id)
            raise StockTakeError(f"Could not delete stock-take: {exc}", cause=exc) from exc

        self._forget(session_id)
        self._index_remove(session_id)
        log_activity(
            DELETE_STOCK_TAKE_SESSION,
            f"Deleted stock-take session {name}",
            user_name=user_name,
            store=self.store,
        )

    def close(self, session_id: int | None = None) -> None:
        """
        Operator left the stock-take screen: stop auto-saves and drop open handles.

        Without a session id every open session is closed. Unsaved counts
        are discarded; the session can be resumed from storage later.
        """
        with self._lock:
            if session_id is None:
                ids = set(self._handles) | set(self._timers)
            else:
                ids = {session_id}
            for sid in ids:
                self._stop_timer(sid)
                self._handles.pop(sid, None)
                self._unfocus(sid)

    # ------------------------------------------------------------------
    # reads

    def list_sessions(self, *, status: str | None = None) -> list[StockTakeSession]:
        filters = {"status": status} if status else None
        return self.store.select("stock_take_sessions", filters=filters, order_by="started_at")

    def list_entries(self, session_id: int) -> list[StockTakeEntry]:
        return self.store.select("stock_take_entries", filters={"session_id": session_id})

    def local_sessions(self) -> list[dict]:
        """Index of sessions known to this cache."""
        return self._index()

    def history_by_date(self) -> list[dict]:
        """Posted entries grouped by calendar day, newest day first."""
        groups: OrderedDict[str, dict] = OrderedDict()
        for entry in self.store.select("stock_take_entries", order_by="created_at"):
            created = entry.created_at
            if isinstance(created, str):
                created = parse_iso_datetime(created)
            day = created.date().isoformat() if created else "unknown"
            group = groups.setdefault(
                day,
                {
                    "date": day,
                    "entries": [],
                    "session_ids": [],
                    "total_discrepancies": 0,
                    "value_difference_cents": 0,
                },
            )
            group["entries"].append(entry.to_dict())
            if entry.session_id is not None and entry.session_id not in group["session_ids"]:
                group["session_ids"].append(entry.session_id)
            group["total_discrepancies"] += abs(entry.difference)
            group["value_difference_cents"] += entry.value_difference_cents
        return list(groups.values())


def get_manager() -> StockTakeManager:
    """The application's shared manager; open sessions are tracked per session id."""
    manager = current_app.extensions.get("stock_take_manager")
    if manager is None:
        manager = StockTakeManager()
        current_app.extensions["stock_take_manager"] = manager
    return manager
