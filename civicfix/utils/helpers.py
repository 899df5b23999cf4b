"""Shared utility functions for blueprints.

parse_datetime:      ISO date/datetime query values → aware datetime (None on bad input)
parse_float:         form/JSON numeric values → float (ValueError on bad input)
db_commit_or_error:  commit helper returning a ready error response on failure
"""
import logging
from datetime import date, datetime, timezone

from sqlalchemy.exc import IntegrityError, OperationalError

from civicfix.models import db
from civicfix.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def utcnow():
    return datetime.now(timezone.utc)


def as_aware(value):
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_datetime(value):
    """Parse an ISO date or datetime string to an aware datetime.

    Returns None for empty/invalid input. A bare date maps to midnight UTC.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return as_aware(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_aware(datetime.fromisoformat(text))
    except (ValueError, TypeError):
        return None


def parse_float(value, field):
    """Parse a numeric input, raising ValueError with the field name on failure."""
    if value is None or value == "":
        raise ValueError(f"{field} is required")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field} must be a number") from exc


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure - ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError → 409 (duplicate / constraint violation)
    OperationalError → 500 (connection / lock issues)
    Other → 500 (unexpected)
    """
    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Duplicate or constraint violation")
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        return api_error(E.DATABASE, "Database error")
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit")
        return api_error(E.DATABASE, "Database error")
