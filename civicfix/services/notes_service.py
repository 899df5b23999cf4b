"""Report notes service.

Transaction policy: flush only; the route handler commits.

Public notes are shown to the reporter and produce a ``comment``
notification; internal notes are staff-only.
"""
import logging

from civicfix.core.exceptions import NotFoundError, ValidationError
from civicfix.models import db
from civicfix.models.note import ReportNote
from civicfix.services.activity_log import log_activity
from civicfix.services.notification import NotificationService

logger = logging.getLogger(__name__)


def _content(value):
    content = (value or "").strip()
    if not content:
        raise ValidationError("Note content cannot be empty", details={"content": "required"})
    return content


def _mentions(value):
    if not value:
        return None
    if isinstance(value, str):
        value = value.split(",")
    return [str(m).strip() for m in value if str(m).strip()] or None


def list_notes(report_id, public_only=False):
    """Oldest first, the order a conversation reads in."""
    q = ReportNote.query.filter_by(report_id=report_id)
    if public_only:
        q = q.filter(ReportNote.is_public.is_(True))
    return q.order_by(ReportNote.created_at.asc(), ReportNote.id.asc()).all()


def get_note(note_id):
    note = db.session.get(ReportNote, note_id)
    if not note:
        raise NotFoundError(resource="Note", resource_id=note_id)
    return note


def add_note(report, data, author="Admin"):
    note = ReportNote(
        report_id=report.id,
        content=_content(data.get("content")),
        author_id=data.get("author_id") or None,
        author_name=(data.get("author_name") or author or "Admin").strip(),
        is_public=bool(data.get("is_public", False)),
        mentions=_mentions(data.get("mentions")),
    )
    db.session.add(note)
    db.session.flush()

    log_activity(
        report.id, "note_added",
        performed_by=note.author_name, performed_by_type="admin",
        details="Public note added" if note.is_public else "Internal note added",
        metadata={"note_id": note.id, "is_public": note.is_public},
    )
    if note.is_public:
        NotificationService.notify_comment(report, note)
    return note


def update_note(note, data):
    if "content" in data:
        note.content = _content(data.get("content"))
    if "is_public" in data:
        note.is_public = bool(data["is_public"])
    if "mentions" in data:
        note.mentions = _mentions(data["mentions"])
    db.session.flush()
    return note


def delete_note(note):
    report_id = note.report_id
    db.session.delete(note)
    db.session.flush()
    logger.info("Note %s deleted from report %s", note.id, report_id)
