"""
Stock-take session tests: progress persistence, resume priority, submission
and the auto-save debounce timer.
"""

import threading
import time

import pytest

from pharmacy.errors import NotFoundError, NothingToReconcileError, ValidationError
from pharmacy.extensions import local_cache
from pharmacy.local_cache import SESSION_INDEX_KEY, session_key
from pharmacy.models import ActivityLog, StockTakeEntry, StockTakeSession
from pharmacy.models.stock_takes import SESSION_STATUS_COMPLETED, SESSION_STATUS_IN_PROGRESS
from pharmacy.services.activity_service import (
    COMPLETE_STOCK_TAKE_SESSION,
    CREATE_STOCK_TAKE_SESSION,
    DELETE_STOCK_TAKE_SESSION,
)
from pharmacy.services.stock_take_service import (
    AutoSaveTimer,
    StockTakeError,
    StockTakeManager,
    prefer_remote_if_present,
)


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def manager(db_session):
    manager = StockTakeManager(autosave_seconds=0.05)
    yield manager
    manager.close()


class TestPreferRemote:
    def test_remote_wins_when_present(self):
        assert prefer_remote_if_present({"1": {"actual_stock": 4}}, {"1": {"actual_stock": 9}}) == {
            "1": {"actual_stock": 4}
        }

    def test_local_used_when_remote_empty(self):
        assert prefer_remote_if_present({}, {"2": {"actual_stock": 1}}) == {"2": {"actual_stock": 1}}
        assert prefer_remote_if_present(None, {"2": {"actual_stock": 1}}) == {"2": {"actual_stock": 1}}

    def test_empty_when_neither(self):
        assert prefer_remote_if_present(None, None) == {}


class TestSessionLifecycle:
    def test_start_creates_row_and_index_entry(self, manager, db_session):
        handle = manager.start("October count", user_name="dave")

        row = db_session.get(StockTakeSession, handle.id)
        assert row.status == SESSION_STATUS_IN_PROGRESS
        assert row.user_name == "dave"
        assert handle.progress == {}
        index = local_cache.get(SESSION_INDEX_KEY)
        assert index == [
            {"id": handle.id, "name": "October count", "started_at": index[0]["started_at"], "active": True}
        ]
        assert db_session.query(ActivityLog).filter_by(action=CREATE_STOCK_TAKE_SESSION).count() == 1

    def test_start_requires_name(self, manager):
        with pytest.raises(ValidationError):
            manager.start("  ")

    def test_record_count_rejects_negative(self, manager, make_product):
        product = make_product()
        handle = manager.start("Count")
        with pytest.raises(ValidationError):
            manager.record_count(handle, product.id, -1)
        assert handle.progress == {}

    def test_save_then_resume_round_trip(self, manager, make_product):
        a = make_product("A")
        b = make_product("B")
        handle = manager.start("Count")
        manager.record_count(handle, a.id, 42, "Broken box")
        manager.record_count(handle, b.id, 0)
        manager.save_progress(handle)

        resumed = StockTakeManager(autosave_seconds=0.05).resume(handle.id)

        assert resumed.progress == handle.progress
        assert resumed.progress[a.id] == {"actual_stock": 42, "reason": "Broken box"}

    def test_save_mirrors_to_local_cache(self, manager, make_product):
        product = make_product()
        handle = manager.start("Count")
        manager.record_count(handle, product.id, 7)
        manager.save_progress(handle)

        mirror = local_cache.get(session_key(handle.id))
        assert mirror["id"] == handle.id
        assert mirror["name"] == "Count"
        assert mirror["progress"] == {str(product.id): {"actual_stock": 7, "reason": ""}}
        assert not manager.autosave_pending(handle.id)

    def test_resume_prefers_remote_progress(self, manager, make_product):
        product = make_product()
        handle = manager.start("Count")
        manager.record_count(handle, product.id, 42)
        manager.save_progress(handle)
        local_cache.set(
            session_key(handle.id),
            {"id": handle.id, "progress": {str(product.id): {"actual_stock": 40, "reason": ""}}},
        )

        resumed = manager.resume(handle.id)
        assert resumed.progress[product.id]["actual_stock"] == 42

    def test_resume_falls_back_to_local_mirror(self, manager, make_product):
        product = make_product()
        handle = manager.start("Count")
        local_cache.set(
            session_key(handle.id),
            {"id": handle.id, "progress": {str(product.id): {"actual_stock": 40, "reason": "Shelf"}}},
        )

        resumed = manager.resume(handle.id)
        assert resumed.progress == {product.id: {"actual_stock": 40, "reason": "Shelf"}}

    def test_resume_missing_session(self, manager):
        with pytest.raises(NotFoundError):
            manager.resume(9999)

    def test_rename(self, manager):
        handle = manager.start("Count")
        row = manager.rename(handle.id, "Year end")
        assert row.session_name == "Year end"
        assert manager.find_open(handle.id).name == "Year end"
        assert local_cache.get(SESSION_INDEX_KEY)[0]["name"] == "Year end"

    def test_list_sessions_by_status(self, manager, make_product):
        product = make_product(current_stock=5)
        open_handle = manager.start("Open")
        done = manager.start("Done")
        manager.record_count(done, product.id, 4)
        manager.submit(done)

        in_progress = manager.list_sessions(status=SESSION_STATUS_IN_PROGRESS)
        assert [s.id for s in in_progress] == [open_handle.id]
        assert len(manager.list_sessions()) == 2


class TestSubmit:
    def test_discrepancy_is_posted(self, manager, make_product, reload, db_session):
        product = make_product(current_stock=50, min_stock_level=10, cost_price_cents=1000)
        handle = manager.start("Count")
        manager.record_count(handle, product.id, 42, "Breakage")
        manager.save_progress(handle)

        session = manager.submit(handle, user_name="erin")

        entry = db_session.query(StockTakeEntry).one()
        assert entry.expected_stock == 50
        assert entry.actual_stock == 42
        assert entry.difference == -8
        assert entry.value_difference_cents == -8 * 1000
        assert entry.reason == "Breakage"
        assert entry.user_name == "erin"
        assert reload(product).current_stock == 42

        assert session.status == SESSION_STATUS_COMPLETED
        assert session.completed_at is not None
        assert session.progress_data == {}
        assert local_cache.get(session_key(handle.id)) is None
        assert local_cache.get(SESSION_INDEX_KEY)[0]["active"] is False
        assert db_session.query(ActivityLog).filter_by(action=COMPLETE_STOCK_TAKE_SESSION).count() == 1

    def test_matching_counts_are_not_posted(self, manager, make_product, db_session):
        matching = make_product("A", current_stock=10)
        short = make_product("B", current_stock=10)
        handle = manager.start("Count")
        manager.record_count(handle, matching.id, 10)
        manager.record_count(handle, short.id, 9)

        manager.submit(handle)

        entries = db_session.query(StockTakeEntry).all()
        assert [e.product_id for e in entries] == [short.id]

    def test_nothing_to_reconcile_keeps_session_open(self, manager, make_product, db_session):
        product = make_product(current_stock=50)
        handle = manager.start("Count")
        manager.record_count(handle, product.id, 50)

        with pytest.raises(NothingToReconcileError):
            manager.submit(handle)

        assert db_session.get(StockTakeSession, handle.id).status == SESSION_STATUS_IN_PROGRESS
        assert db_session.query(StockTakeEntry).count() == 0

    def test_empty_session_has_nothing_to_reconcile(self, manager):
        handle = manager.start("Count")
        with pytest.raises(NothingToReconcileError):
            manager.submit(handle)

    def test_completed_session_cannot_be_resumed(self, manager, make_product):
        product = make_product(current_stock=5)
        handle = manager.start("Count")
        manager.record_count(handle, product.id, 1)
        manager.submit(handle)

        with pytest.raises(StockTakeError):
            manager.resume(handle.id)

    def test_store_failure_is_not_compensated(self, db_session, make_product, reload, flaky_store):
        product = make_product(current_stock=50)
        store = flaky_store({("update", "stock_take_sessions"): 1})
        manager = StockTakeManager(store=store, autosave_seconds=0.05)
        try:
            handle = manager.start("Count")
            manager.record_count(handle, product.id, 45)

            with pytest.raises(StockTakeError):
                manager.submit(handle)

            # Entry and stock writes before the failure stay in place
            assert db_session.query(StockTakeEntry).count() == 1
            assert reload(product).current_stock == 45
        finally:
            manager.close()

    def test_summarize(self, manager, make_product):
        a = make_product("A", current_stock=50, cost_price_cents=1000)
        b = make_product("B", current_stock=5, cost_price_cents=200)
        c = make_product("C", current_stock=7, cost_price_cents=300)
        handle = manager.start("Count")
        manager.record_count(handle, a.id, 42)
        manager.record_count(handle, b.id, 8)
        manager.record_count(handle, c.id, 7)

        summary = manager.summarize(handle)

        assert summary.counted_products == 3
        assert len(summary.discrepancies) == 2
        assert summary.total_discrepancies == 8 + 3
        assert summary.value_difference_cents == -8000 + 600

    def test_history_by_date(self, manager, make_product):
        product = make_product(current_stock=10, cost_price_cents=100)
        handle = manager.start("Count")
        manager.record_count(handle, product.id, 7)
        manager.submit(handle)

        history = manager.history_by_date()
        assert len(history) == 1
        assert history[0]["total_discrepancies"] == 3
        assert history[0]["value_difference_cents"] == -300
        assert history[0]["session_ids"] == [handle.id]


class TestDelete:
    def test_delete_removes_session_and_mirror(self, manager, make_product, db_session):
        product = make_product()
        handle = manager.start("Count")
        manager.record_count(handle, product.id, 3)
        manager.save_progress(handle)

        manager.delete(handle.id, user_name="frank")

        assert db_session.get(StockTakeSession, handle.id) is None
        assert local_cache.get(session_key(handle.id)) is None
        assert local_cache.get(SESSION_INDEX_KEY) == []
        assert manager.find_open(handle.id) is None
        assert db_session.query(ActivityLog).filter_by(action=DELETE_STOCK_TAKE_SESSION).count() == 1

    def test_delete_completed_session_keeps_stock(self, manager, make_product, reload, db_session):
        product = make_product(current_stock=50)
        handle = manager.start("Count")
        manager.record_count(handle, product.id, 40)
        manager.submit(handle)

        manager.delete(handle.id)

        assert reload(product).current_stock == 40
        assert db_session.query(StockTakeEntry).count() == 1

    def test_delete_missing(self, manager):
        with pytest.raises(NotFoundError):
            manager.delete(12345)


class TestAutoSave:
    def test_timer_debounces(self, app):
        fired = []
        done = threading.Event()

        def _callback(handle):
            fired.append(handle)
            done.set()

        timer = AutoSaveTimer(0.05, _callback, app.logger)
        handle = type("Handle", (), {"id": 1})()
        for _ in range(5):
            timer.schedule(handle)

        assert done.wait(2.0)
        time.sleep(0.1)
        assert len(fired) == 1
        assert not timer.pending

    def test_edit_is_mirrored_after_delay(self, manager, make_product):
        product = make_product()
        handle = manager.start("Count")
        manager.record_count(handle, product.id, 12)
        assert manager.autosave_pending(handle.id)

        assert _wait_for(lambda: local_cache.get(session_key(handle.id)) is not None)
        mirror = local_cache.get(session_key(handle.id))
        assert mirror["progress"] == {str(product.id): {"actual_stock": 12, "reason": ""}}

    def test_close_cancels_pending_save(self, manager, make_product):
        product = make_product()
        handle = manager.start("Count")
        manager.record_count(handle, product.id, 12)
        manager.close()

        time.sleep(0.15)
        assert not manager.autosave_pending(handle.id)
        assert local_cache.get(session_key(handle.id)) is None

    def test_opening_another_session_flushes_pending_edit(self, manager, make_product):
        product = make_product()
        first = manager.start("First", user_name="dave")
        manager.record_count(first, product.id, 12)

        manager.start("Second", user_name="dave")

        assert not manager.autosave_pending(first.id)
        mirror = local_cache.get(session_key(first.id))
        assert mirror["progress"] == {str(product.id): {"actual_stock": 12, "reason": ""}}
        # The first session stays open with its count
        assert manager.find_open(first.id).progress[product.id]["actual_stock"] == 12

    def test_each_session_has_its_own_timer(self, manager, make_product):
        product = make_product()
        first = manager.start("First", user_name="dave")
        second = manager.start("Second", user_name="erin")
        manager.record_count(first, product.id, 12)
        manager.record_count(second, product.id, 30)

        assert manager.autosave_pending(first.id)
        assert manager.autosave_pending(second.id)
        assert _wait_for(lambda: local_cache.get(session_key(first.id)) is not None)
        assert _wait_for(lambda: local_cache.get(session_key(second.id)) is not None)
        assert local_cache.get(session_key(second.id))["progress"][str(product.id)]["actual_stock"] == 30

    def test_late_autosave_does_not_recreate_mirror(self, manager, make_product):
        product = make_product(current_stock=50)
        handle = manager.start("Count")
        manager.record_count(handle, product.id, 42)
        manager.submit(handle)

        # A timer that already woke up runs its callback after the submit
        manager._auto_mirror(handle)

        assert local_cache.get(session_key(handle.id)) is None

    def test_counts_rejected_after_delete(self, manager, make_product):
        product = make_product()
        handle = manager.start("Count")
        manager.delete(handle.id)

        with pytest.raises(StockTakeError):
            manager.record_count(handle, product.id, 3)

        time.sleep(0.15)
        assert local_cache.get(session_key(handle.id)) is None


class TestOpenHandles:
    def test_open_handle_keeps_unsaved_counts(self, manager, make_product):
        product = make_product(current_stock=50)
        first = manager.start("First", user_name="dave")
        manager.record_count(first, product.id, 42)
        second = manager.start("Second", user_name="erin")

        # Reading another session does not disturb the first
        assert manager.open_handle(second.id, operator="erin") is second
        assert manager.open_handle(first.id, operator="dave") is first
        assert manager.summarize(first).total_discrepancies == 8

    def test_open_handle_resumes_closed_session(self, manager, make_product):
        product = make_product()
        handle = manager.start("Count")
        manager.record_count(handle, product.id, 5)
        manager.save_progress(handle)
        manager.close(handle.id)

        assert manager.find_open(handle.id) is None
        reopened = manager.open_handle(handle.id)
        assert reopened is not handle
        assert reopened.progress == {product.id: {"actual_stock": 5, "reason": ""}}

    def test_close_one_session_leaves_others(self, manager):
        first = manager.start("First", user_name="dave")
        second = manager.start("Second", user_name="erin")

        manager.close(first.id)

        assert manager.find_open(first.id) is None
        assert manager.find_open(second.id) is second
