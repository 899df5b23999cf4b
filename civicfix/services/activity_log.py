"""
CivicFix
Activity log service - record and read the per-report action trail.

Activity rows are secondary writes: a failure to record one is logged and
never fails the action being recorded.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from civicfix.models import db
from civicfix.models.activity import ActivityLogEntry, write_activity

logger = logging.getLogger(__name__)

REPORT_LOG_LIMIT = 100
MAX_RECENT_LIMIT = 500


def log_activity(report_id, action, *, performed_by="system", performed_by_type="system",
                 details=None, metadata=None):
    """Append an activity row inside a savepoint. Returns the entry or None."""
    try:
        with db.session.begin_nested():
            return write_activity(
                report_id=report_id,
                action=action,
                performed_by=performed_by,
                performed_by_type=performed_by_type,
                details=details,
                metadata=metadata,
            )
    except SQLAlchemyError:
        logger.exception("Activity %s for report %s not recorded", action, report_id)
        return None


def list_for_report(report_id, limit=REPORT_LOG_LIMIT):
    """Newest first."""
    return (
        ActivityLogEntry.query
        .filter_by(report_id=report_id)
        .order_by(ActivityLogEntry.created_at.desc(), ActivityLogEntry.id.desc())
        .limit(limit)
        .all()
    )


def list_recent(limit=REPORT_LOG_LIMIT):
    limit = max(1, min(int(limit), MAX_RECENT_LIMIT))
    return (
        ActivityLogEntry.query
        .order_by(ActivityLogEntry.created_at.desc(), ActivityLogEntry.id.desc())
        .limit(limit)
        .all()
    )
