"""
CivicFix
Report domain model.

Models:
    - Report: citizen-submitted hazard record (raw row; normalized on read)
"""

import uuid
from datetime import datetime, timezone

from civicfix.models import db


# ── Constants ────────────────────────────────────────────────────────────────

REPORT_STATUSES = ("pending", "in-progress", "resolved")
REPORT_SEVERITIES = ("low", "medium", "high")
REPORT_CATEGORIES = ("sanitation", "roads", "water", "electrical", "other")
REPORT_PRIORITIES = ("critical", "high", "medium", "low")


def _new_id():
    return str(uuid.uuid4())


class Report(db.Model):
    """
    Hazard report as stored.

    ``category`` keeps the label produced by classification (e.g. "Pothole");
    the public shape is produced by ``convert_report_from_db``.
    """

    __tablename__ = "reports"
    __table_args__ = (
        db.Index("idx_reports_status", "status"),
        db.Index("idx_reports_created", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    image_url = db.Column(db.String(500), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    category = db.Column(db.String(100), default="Other", comment="Label as classified")
    severity = db.Column(db.String(20), default="medium")
    status = db.Column(db.String(20), nullable=False, default="pending")
    description = db.Column(db.Text, default="")
    ai_model = db.Column(db.String(100), nullable=True, comment="Model that produced the classification")

    # Identity axes - either, both or neither may be set
    reporter_id = db.Column(db.String(100), nullable=True, index=True, comment="Authenticated user id")
    device_id = db.Column(db.String(100), nullable=True, index=True, comment="Anonymous device id")

    # Triage
    assigned_to = db.Column(db.String(200), nullable=True, index=True, comment="Team name")
    priority = db.Column(db.String(20), nullable=True, comment="Manual override; derived when NULL")
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    proof_image_url = db.Column(db.String(500), nullable=True)

    def to_row(self):
        """Raw row shape, as pushed through the change feed."""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "image_url": self.image_url,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "category": self.category,
            "severity": self.severity,
            "status": self.status,
            "description": self.description,
            "ai_model": self.ai_model,
            "reporter_id": self.reporter_id,
            "device_id": self.device_id,
            "assigned_to": self.assigned_to,
            "priority": self.priority,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "proof_image_url": self.proof_image_url,
        }

    def to_dict(self, now=None):
        from civicfix.services.normalization import convert_report_from_db
        return convert_report_from_db(self.to_row(), now=now)

    def __repr__(self):
        return f"<Report {self.id[:8]}: {self.category} ({self.status})>"
