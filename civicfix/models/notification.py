"""
CivicFix
Notification domain model.

Models:
    - Notification: citizen-facing message about one of their reports
"""

from datetime import datetime, timezone

from civicfix.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {"status-change", "team-assigned", "comment", "resolved"}


class Notification(db.Model):
    """
    In-app notification entity.

    Addressed to the report owner by user id, device id, or both.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(
        db.String(36), db.ForeignKey("reports.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    user_id = db.Column(db.String(100), nullable=True, index=True)
    device_id = db.Column(db.String(100), nullable=True, index=True)
    type = db.Column(db.String(30), nullable=False, default="status-change")
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=True, comment="Report status at notification time")

    # Read tracking
    read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "report_id": self.report_id,
            "user_id": self.user_id,
            "device_id": self.device_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "status": self.status,
            "read": self.read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
