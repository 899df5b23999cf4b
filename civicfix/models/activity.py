"""
CivicFix
Activity log model - append-only trail of what happened to each report.

Models:
    - ActivityLogEntry: one action performed on a report

Helpers:
    - write_activity(): convenience writer used by services
"""

from datetime import datetime, timezone

from civicfix.models import db


PERFORMER_TYPES = ("admin", "team", "system", "citizen")


class ActivityLogEntry(db.Model):
    """Immutable activity row. Never updated in place."""

    __tablename__ = "activity_log"
    __table_args__ = (
        db.Index("idx_activity_report_created", "report_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(
        db.String(36), db.ForeignKey("reports.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    action = db.Column(db.String(50), nullable=False, comment="status_changed, team_assigned, ...")
    performed_by = db.Column(db.String(200), nullable=False, default="system")
    performed_by_type = db.Column(db.String(20), nullable=False, default="system")
    details = db.Column(db.Text, nullable=True)
    # "metadata" is reserved on declarative classes
    meta = db.Column("metadata", db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "report_id": self.report_id,
            "action": self.action,
            "performed_by": self.performed_by,
            "performed_by_type": self.performed_by_type,
            "details": self.details,
            "metadata": self.meta or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ActivityLogEntry {self.id}: {self.action} on {self.report_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_activity(
    *,
    report_id: str | None,
    action: str,
    performed_by: str = "system",
    performed_by_type: str = "system",
    details: str | None = None,
    metadata: dict | None = None,
) -> ActivityLogEntry:
    """
    Append a single activity row.  Uses ``flush`` so callers keep
    transaction control.
    """
    if performed_by_type not in PERFORMER_TYPES:
        performed_by_type = "system"

    entry = ActivityLogEntry(
        report_id=report_id,
        action=action,
        performed_by=performed_by or "system",
        performed_by_type=performed_by_type,
        details=details,
        meta=metadata or {},
    )
    db.session.add(entry)
    db.session.flush()
    return entry
