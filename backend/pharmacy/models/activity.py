from __future__ import annotations

from ..extensions import db
from pharmacy.time_utils import to_utc_z


class ActivityLog(db.Model):
    """
    Append-only operator activity trail.

    - One row per successful mutation (action code + human-readable details).
    - Writing here never fails the operation being recorded.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_action_created", "action", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_name = db.Column(db.String(120), nullable=False)
    action = db.Column(db.String(64), nullable=False)
    details = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_name": self.user_name,
            "action": self.action,
            "details": self.details,
            "created_at": to_utc_z(self.created_at),
        }
