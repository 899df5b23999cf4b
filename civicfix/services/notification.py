"""
CivicFix
Notification Service.

Creates, queries and updates citizen notifications. Report lifecycle events
(status change, team assignment, public note) call the ``notify_*`` helpers;
those never fail the primary action. A failed insert is rolled back to a
savepoint, logged and skipped.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from civicfix.core.exceptions import NotFoundError, PermissionDeniedError
from civicfix.models import db
from civicfix.models.notification import NOTIFICATION_TYPES, Notification

logger = logging.getLogger(__name__)

LIST_LIMIT = 50

# Transitions a reporter hears about; others (e.g. reopen) stay silent.
MEANINGFUL_TRANSITIONS = {
    ("pending", "in-progress"),
    ("in-progress", "resolved"),
    ("pending", "resolved"),
}

STATUS_LABELS = {
    "pending": "Pending",
    "in-progress": "In Progress",
    "resolved": "Resolved",
}


def _identity_filter(query, user_id, device_id):
    """User id wins over device id. Returns None when neither is known."""
    if user_id:
        return query.filter(Notification.user_id == user_id)
    if device_id:
        return query.filter(Notification.device_id == device_id)
    return None


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, report_id, title, message="", type="status-change",
               user_id=None, device_id=None, status=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (flushed, not committed).
        """
        if type not in NOTIFICATION_TYPES:
            type = "status-change"
        notif = Notification(
            report_id=report_id,
            user_id=user_id or None,
            device_id=device_id or None,
            type=type,
            title=title,
            message=message,
            status=status,
            read=False,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_identity(user_id=None, device_id=None, unread_only=False, limit=LIST_LIMIT):
        """Newest first, capped at ``limit`` (max 50)."""
        q = _identity_filter(Notification.query, user_id, device_id)
        if q is None:
            return []
        if unread_only:
            q = q.filter(Notification.read.is_(False))
        limit = max(1, min(int(limit or LIST_LIMIT), LIST_LIMIT))
        return (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def unread_count(user_id=None, device_id=None):
        q = _identity_filter(Notification.query, user_id, device_id)
        if q is None:
            return 0
        return q.filter(Notification.read.is_(False)).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def _get_owned(notification_id, identity):
        notif = db.session.get(Notification, notification_id)
        if not notif:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        if not identity.addresses(notif):
            raise PermissionDeniedError("Notification belongs to another reporter")
        return notif

    @staticmethod
    def mark_read(notification_id, identity):
        notif = NotificationService._get_owned(notification_id, identity)
        notif.mark_read()
        db.session.flush()
        return notif

    @staticmethod
    def mark_all_read(user_id=None, device_id=None):
        """Returns the number of notifications flipped to read."""
        q = _identity_filter(Notification.query, user_id, device_id)
        if q is None:
            return 0
        unread = q.filter(Notification.read.is_(False)).all()
        for notif in unread:
            notif.mark_read()
        db.session.flush()
        return len(unread)

    @staticmethod
    def delete(notification_id, identity):
        notif = NotificationService._get_owned(notification_id, identity)
        db.session.delete(notif)
        db.session.flush()

    # ── Lifecycle hooks ───────────────────────────────────────────────────

    @staticmethod
    def _safe_create(**kwargs):
        if not (kwargs.get("user_id") or kwargs.get("device_id")):
            return None
        try:
            with db.session.begin_nested():
                return NotificationService.create(**kwargs)
        except SQLAlchemyError:
            logger.exception("Notification for report %s skipped", kwargs.get("report_id"))
            return None

    @staticmethod
    def notify_status_change(report, old_status, new_status):
        if (old_status, new_status) not in MEANINGFUL_TRANSITIONS:
            logger.debug("No notification for %s -> %s", old_status, new_status)
            return None
        label = STATUS_LABELS.get(new_status, new_status)
        resolved = new_status == "resolved"
        title = "Your report has been resolved" if resolved else f"Report status: {label}"
        message = (
            f"Your {report.category or 'report'} report is now {label.lower()}."
        )
        return NotificationService._safe_create(
            report_id=report.id,
            user_id=report.reporter_id,
            device_id=report.device_id,
            type="resolved" if resolved else "status-change",
            title=title,
            message=message,
            status=new_status,
        )

    @staticmethod
    def notify_team_assigned(report, team_name):
        return NotificationService._safe_create(
            report_id=report.id,
            user_id=report.reporter_id,
            device_id=report.device_id,
            type="team-assigned",
            title="A team has been assigned",
            message=f"{team_name} will handle your {report.category or 'report'} report.",
            status=report.status,
        )

    @staticmethod
    def notify_comment(report, note):
        return NotificationService._safe_create(
            report_id=report.id,
            user_id=report.reporter_id,
            device_id=report.device_id,
            type="comment",
            title="New update on your report",
            message=note.content[:200],
            status=report.status,
        )
