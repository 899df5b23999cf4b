"""Report service layer.

Transaction policy: methods use flush() for ID generation, never commit().
Caller (route handler) is responsible for db.session.commit().

Operations:
- Submission: store image → classify → insert (→ optional auto-assignment)
- Admin listing with search, filters and sort
- Citizen "my reports" lookup by user id / device id / fallback ids
- Status change, team assignment, priority override (each logged + notified)
- Proof-of-resolution upload
- Delete (resolved reports only)
"""
import logging

from flask import current_app
from sqlalchemy import or_

from civicfix.ai.classifier import get_classifier
from civicfix.core.exceptions import NotFoundError, ValidationError
from civicfix.models import db
from civicfix.models.report import REPORT_PRIORITIES, Report
from civicfix.services import auto_assignment, storage
from civicfix.services.activity_log import log_activity
from civicfix.services.normalization import (
    normalize_category,
    normalize_severity,
    parse_status,
)
from civicfix.services.notification import NotificationService
from civicfix.services.team_service import find_active_team
from civicfix.utils.helpers import parse_datetime, utcnow

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {p: i for i, p in enumerate(REPORT_PRIORITIES)}
STATUS_ORDER = {"pending": 0, "in-progress": 1, "resolved": 2}
SORT_KEYS = ("date", "priority", "status")


def get_report(report_id):
    report = db.session.get(Report, report_id)
    if not report:
        raise NotFoundError(resource="Report", resource_id=report_id)
    return report


def _validate_coordinates(latitude, longitude):
    errors = {}
    if latitude is None or not -90 <= latitude <= 90:
        errors["latitude"] = "must be between -90 and 90"
    if longitude is None or not -180 <= longitude <= 180:
        errors["longitude"] = "must be between -180 and 180"
    if errors:
        raise ValidationError("Invalid coordinates", details=errors)


# ── Submission ───────────────────────────────────────────────────────────


def submit_report(file_storage, latitude, longitude, identity):
    """Store the photo, classify it and insert the report.

    Classification failure does not block submission: the default
    classification is stored instead.

    Returns:
        (Report, Classification)
    """
    _validate_coordinates(latitude, longitude)
    stored = storage.save_image(file_storage)

    result = get_classifier().classify(stored.data, stored.mime_type, filename=file_storage.filename)

    report = Report(
        image_url=stored.url,
        latitude=latitude,
        longitude=longitude,
        category=result.category,
        severity=normalize_severity(result.severity),
        description=result.description,
        status="pending",
        ai_model=result.model,
        reporter_id=identity.user_id,
        device_id=identity.device_id,
    )
    db.session.add(report)
    db.session.flush()

    log_activity(
        report.id, "report_created",
        performed_by=identity.user_id or identity.device_id or "anonymous",
        performed_by_type="citizen",
        details=f"Classified as {result.category} ({result.severity})",
        metadata={"model": result.model, "ai_fallback": result.fallback},
    )
    logger.info("Report %s submitted (category=%s, fallback=%s)", report.id, result.category, result.fallback)

    if current_app.config.get("AUTO_ASSIGN_ENABLED"):
        auto_assign(report, performed_by="Auto-Assignment System")

    return report, result


# ── Queries ──────────────────────────────────────────────────────────────


def _matches_search(view, needle):
    haystack = " ".join(
        str(view.get(k) or "")
        for k in ("id", "title", "description", "category", "category_label", "assigned_to", "location")
    ).lower()
    return needle in haystack


def sort_views(views, sort="date"):
    """Sort normalized report dicts. Ties fall back to newest first."""
    views = sorted(views, key=lambda v: v.get("timestamp") or "", reverse=True)
    if sort == "priority":
        views.sort(key=lambda v: PRIORITY_ORDER.get(v.get("priority"), len(PRIORITY_ORDER)))
    elif sort == "status":
        views.sort(key=lambda v: STATUS_ORDER.get(v.get("status"), len(STATUS_ORDER)))
    return views


def list_reports(filters=None, now=None):
    """Admin listing.

    Filters (all optional): ``q``, ``status``, ``category``, ``priority``,
    ``assigned_to``, ``start``, ``end``, ``sort``.

    Returns:
        list of normalized report dicts.
    """
    filters = filters or {}
    q = Report.query

    status = filters.get("status")
    if status and status != "all":
        parsed = parse_status(status)
        if not parsed:
            raise ValidationError("Unknown status filter", details={"status": status})
        q = q.filter(Report.status == parsed)

    start = parse_datetime(filters.get("start"))
    if start:
        q = q.filter(Report.created_at >= start)
    end = parse_datetime(filters.get("end"))
    if end:
        q = q.filter(Report.created_at <= end)

    if filters.get("assigned_to"):
        q = q.filter(Report.assigned_to == filters["assigned_to"])

    now = now or utcnow()
    views = [r.to_dict(now=now) for r in q.order_by(Report.created_at.desc()).all()]

    category = (filters.get("category") or "").lower()
    if category and category != "all":
        views = [v for v in views if v["category"] == normalize_category(category)]

    priority = (filters.get("priority") or "").lower()
    if priority and priority != "all":
        views = [v for v in views if v["priority"] == priority]

    needle = (filters.get("q") or "").strip().lower()
    if needle:
        views = [v for v in views if _matches_search(v, needle)]

    sort = filters.get("sort") or "date"
    if sort not in SORT_KEYS:
        sort = "date"
    return sort_views(views, sort)


def fetch_reports_for_identity(identity):
    """Reports owned by a citizen, newest first.

    A user id takes precedence. Without one, the device id and any fallback
    report ids are combined. No identity yields an empty list.
    """
    q = Report.query
    if identity.user_id:
        q = q.filter(Report.reporter_id == identity.user_id)
    elif identity.device_id and identity.report_ids:
        q = q.filter(or_(Report.device_id == identity.device_id, Report.id.in_(identity.report_ids)))
    elif identity.device_id:
        q = q.filter(Report.device_id == identity.device_id)
    elif identity.report_ids:
        q = q.filter(Report.id.in_(identity.report_ids))
    else:
        return []
    return q.order_by(Report.created_at.desc()).all()


# ── Mutations ────────────────────────────────────────────────────────────


def update_status(report, new_status, performed_by="Admin", performed_by_type="admin"):
    """Change status; stamps/clears ``resolved_at`` and notifies the reporter.

    Any valid status may follow any other.
    """
    status = parse_status(new_status)
    if not status:
        raise ValidationError(
            "Invalid status", details={"status": new_status, "allowed": list(STATUS_ORDER)},
        )

    old_status = report.status
    report.status = status
    if status != "resolved":
        report.resolved_at = None
    elif report.resolved_at is None:
        report.resolved_at = utcnow()
    db.session.flush()

    if old_status != status:
        log_activity(
            report.id, "status_changed",
            performed_by=performed_by, performed_by_type=performed_by_type,
            details=f"Status changed from {old_status} to {status}",
            metadata={"old_status": old_status, "new_status": status},
        )
        NotificationService.notify_status_change(report, old_status, status)
    return report


def assign_team(report, team_name, performed_by="Admin", performed_by_type="admin"):
    """Assign an active team by name. ``None``/empty unassigns."""
    team_name = (team_name or "").strip() or None
    if team_name and not find_active_team(team_name):
        raise NotFoundError(resource="Team", resource_id=team_name)

    previous = report.assigned_to
    report.assigned_to = team_name
    db.session.flush()

    if previous != team_name:
        log_activity(
            report.id, "team_assigned" if team_name else "team_unassigned",
            performed_by=performed_by, performed_by_type=performed_by_type,
            details=f"Assigned to {team_name}" if team_name else f"Unassigned from {previous}",
            metadata={"previous_team": previous, "team": team_name},
        )
        if team_name:
            NotificationService.notify_team_assigned(report, team_name)
    return report


def update_priority(report, priority, performed_by="Admin"):
    """Set a manual priority override; ``None`` returns to the derived value."""
    value = (priority or "").strip().lower() or None
    if value and value not in PRIORITY_ORDER:
        raise ValidationError(
            "Invalid priority", details={"priority": priority, "allowed": list(REPORT_PRIORITIES)},
        )
    previous = report.priority
    report.priority = value
    db.session.flush()
    log_activity(
        report.id, "priority_changed",
        performed_by=performed_by, performed_by_type="admin",
        details=f"Priority set to {value}" if value else "Priority override cleared",
        metadata={"previous": previous, "priority": value},
    )
    return report


def attach_proof(report, file_storage, performed_by="Admin"):
    stored = storage.save_image(file_storage, proof=True)
    report.proof_image_url = stored.url
    db.session.flush()
    log_activity(
        report.id, "proof_uploaded",
        performed_by=performed_by, performed_by_type="admin",
        details="Proof of resolution uploaded",
        metadata={"proof_image_url": stored.url},
    )
    return report


def delete_report(report):
    if report.status != "resolved":
        raise ValidationError(
            "Only resolved reports can be deleted. Please resolve the report first.",
            details={"status": report.status},
        )
    report_id = report.id
    db.session.delete(report)
    db.session.flush()
    logger.info("Report %s deleted", report_id)


# ── Auto-assignment ──────────────────────────────────────────────────────


def suggest_team(report, rules=None):
    return auto_assignment.select_team(report.to_dict(), rules)


def auto_assign(report, rules=None, performed_by="Auto-Assignment System"):
    """Apply assignment rules. Returns the ``TeamSuggestion`` used."""
    suggestion = suggest_team(report, rules)
    if suggestion.team_name:
        assign_team(report, suggestion.team_name,
                    performed_by=performed_by, performed_by_type="system")
    else:
        logger.info("No team auto-assigned for report %s: %s", report.id, suggestion.reason)
    return suggestion
