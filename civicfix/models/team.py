"""
CivicFix
Team domain model.

Models:
    - Team: field crew that reports are assigned to (by name)
"""

from datetime import datetime, timezone

from civicfix.models import db


class Team(db.Model):
    """Response team. Deleting a team only deactivates it."""

    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    department = db.Column(db.String(200), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)
    members_count = db.Column(db.Integer, nullable=False, default=0)
    contact_email = db.Column(db.String(200), nullable=True)
    contact_phone = db.Column(db.String(50), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self, active_jobs=0):
        return {
            "id": self.id,
            "name": self.name,
            "department": self.department,
            "description": self.description,
            "members": self.members_count,
            "active_jobs": active_jobs,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Team {self.id}: {self.name}>"
