"""
Activity log tests: appends never fail the caller.
"""

from pharmacy.models import ActivityLog
from pharmacy.services import activity_service
from pharmacy.services.activity_service import INVOICE_CREATED, PRODUCT_CREATED


class TestLogActivity:
    def test_append(self, db_session):
        row = activity_service.log_activity(INVOICE_CREATED, "Created invoice INV-1", user_name="hank")
        assert row.action == INVOICE_CREATED
        assert db_session.query(ActivityLog).count() == 1

    def test_default_user(self, db_session):
        row = activity_service.log_activity(PRODUCT_CREATED, "x")
        assert row.user_name == "system"

    def test_store_failure_is_swallowed(self, db_session, flaky_store):
        store = flaky_store({("insert", "activity_logs"): 1})
        assert activity_service.log_activity(INVOICE_CREATED, "x", store=store) is None
        assert db_session.query(ActivityLog).count() == 0


def test_list_newest_first(db_session):
    activity_service.log_activity(PRODUCT_CREATED, "first")
    activity_service.log_activity(INVOICE_CREATED, "second")

    rows = activity_service.list_activity()
    assert [r.details for r in rows] == ["second", "first"]
    assert [r.details for r in activity_service.list_activity(action=PRODUCT_CREATED)] == ["first"]
