"""
CivicFix
Report note model.

Models:
    - ReportNote: internal or public note attached to a report
"""

from datetime import datetime, timezone

from civicfix.models import db


class ReportNote(db.Model):
    """Note written by staff. Public notes are visible to the reporter."""

    __tablename__ = "report_notes"

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(
        db.String(36), db.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    content = db.Column(db.Text, nullable=False)
    author_id = db.Column(db.String(100), nullable=True)
    author_name = db.Column(db.String(200), nullable=False, default="Admin")
    is_public = db.Column(db.Boolean, nullable=False, default=False)
    mentions = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "report_id": self.report_id,
            "content": self.content,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "is_public": self.is_public,
            "mentions": self.mentions or [],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ReportNote {self.id} on {self.report_id}>"
