from __future__ import annotations

from ..extensions import db
from pharmacy.time_utils import to_utc_z


# Session status constants
SESSION_STATUS_IN_PROGRESS = "in_progress"
SESSION_STATUS_COMPLETED = "completed"


class StockTakeSession(db.Model):
    """
    One physical inventory count.

    LIFECYCLE:
    1. in_progress: counts are entered and progress_data is saved repeatedly
    2. completed: discrepancies posted as StockTakeEntry rows, progress_data cleared

    progress_data maps str(product_id) -> {"actual_stock": int, "reason": str}.
    JSON object keys are always strings; the service converts them back to ints.
    """
    __tablename__ = "stock_take_sessions"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('in_progress', 'completed')", name="ck_stock_take_sessions_status"
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SESSION_STATUS_IN_PROGRESS, index=True)
    progress_data = db.Column(db.JSON, nullable=False, default=dict)
    user_name = db.Column(db.String(120), nullable=False)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_name": self.session_name,
            "status": self.status,
            "progress_data": self.progress_data or {},
            "user_name": self.user_name,
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }


class StockTakeEntry(db.Model):
    """
    Posted discrepancy for one product in a completed session.

    Only created where difference != 0. Immutable afterwards. Entries
    survive deletion of their session (session_id is nulled).
    """
    __tablename__ = "stock_take_entries"
    __table_args__ = (
        db.CheckConstraint("expected_stock >= 0", name="ck_stock_take_entries_expected_nonnegative"),
        db.CheckConstraint("actual_stock >= 0", name="ck_stock_take_entries_actual_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(
        db.Integer, db.ForeignKey("stock_take_sessions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )
    product_name = db.Column(db.String(255), nullable=False)
    expected_stock = db.Column(db.Integer, nullable=False)
    actual_stock = db.Column(db.Integer, nullable=False)
    difference = db.Column(db.Integer, nullable=False)

    # Cost snapshot at completion; value_difference = difference * unit cost
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    value_difference_cents = db.Column(db.Integer, nullable=False, default=0)

    reason = db.Column(db.Text, nullable=True)
    user_name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "expected_stock": self.expected_stock,
            "actual_stock": self.actual_stock,
            "difference": self.difference,
            "unit_cost_cents": self.unit_cost_cents,
            "value_difference_cents": self.value_difference_cents,
            "reason": self.reason,
            "user_name": self.user_name,
            "created_at": to_utc_z(self.created_at),
        }
