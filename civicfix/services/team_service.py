"""Team service layer.

Transaction policy: methods use flush() for ID generation, never commit().
Caller (route handler) is responsible for db.session.commit().

Operations:
- Team CRUD (delete is a soft delete via is_active)
- Active-job counts derived from non-resolved reports assigned by team name
"""
import logging

from sqlalchemy import func

from civicfix.core.exceptions import ConflictError, NotFoundError, ValidationError
from civicfix.models import db
from civicfix.models.report import Report
from civicfix.models.team import Team

logger = logging.getLogger(__name__)

_UPDATABLE = ("name", "department", "description", "members_count",
              "contact_email", "contact_phone", "is_active")


def active_job_counts():
    """Map team name → number of non-resolved reports assigned to it."""
    rows = (
        db.session.query(Report.assigned_to, func.count(Report.id))
        .filter(Report.assigned_to.isnot(None), Report.status != "resolved")
        .group_by(Report.assigned_to)
        .all()
    )
    return {name: count for name, count in rows}


def serialize_team(team, counts=None):
    counts = active_job_counts() if counts is None else counts
    return team.to_dict(active_jobs=counts.get(team.name, 0))


def list_teams(include_inactive=False):
    q = Team.query
    if not include_inactive:
        q = q.filter(Team.is_active.is_(True))
    return q.order_by(Team.name.asc()).all()


def get_team(team_id):
    team = db.session.get(Team, team_id)
    if not team:
        raise NotFoundError(resource="Team", resource_id=team_id)
    return team


def find_active_team(name):
    """Active team by exact name, or None."""
    if not name:
        return None
    return Team.query.filter(Team.name == name, Team.is_active.is_(True)).first()


def _members(value):
    try:
        members = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("members must be an integer", details={"members": value}) from exc
    if members < 0:
        raise ValidationError("members must be >= 0", details={"members": members})
    return members


def _check_unique_name(name, exclude_id=None):
    q = Team.query.filter(Team.name == name)
    if exclude_id is not None:
        q = q.filter(Team.id != exclude_id)
    if q.first():
        raise ConflictError("Team", "name", name)


def create_team(data):
    """Create a team. Requires ``name`` and ``department``.

    Returns:
        Team instance (already flushed).
    """
    name = (data.get("name") or "").strip()
    department = (data.get("department") or "").strip()
    errors = {}
    if not name:
        errors["name"] = "required"
    if not department:
        errors["department"] = "required"
    if errors:
        raise ValidationError("Team name and department are required", details=errors)
    _check_unique_name(name)

    team = Team(
        name=name,
        department=department,
        description=data.get("description") or None,
        members_count=_members(data.get("members_count", data.get("members", 0)) or 0),
        contact_email=data.get("contact_email") or None,
        contact_phone=data.get("contact_phone") or None,
        is_active=True,
    )
    db.session.add(team)
    db.session.flush()
    logger.info("Team created: %s (%s)", team.name, team.department)
    return team


def update_team(team, data):
    """Partial update. Renaming does not rewrite existing report assignments."""
    if "members" in data and "members_count" not in data:
        data = dict(data, members_count=data["members"])

    for field in _UPDATABLE:
        if field not in data:
            continue
        value = data[field]
        if field == "name":
            value = (value or "").strip()
            if not value:
                raise ValidationError("Team name cannot be empty", details={"name": "required"})
            _check_unique_name(value, exclude_id=team.id)
        elif field == "members_count":
            value = _members(value)
        elif field == "is_active":
            value = bool(value)
        setattr(team, field, value)

    db.session.flush()
    return team


def deactivate_team(team):
    team.is_active = False
    db.session.flush()
    logger.info("Team deactivated: %s", team.name)
    return team
