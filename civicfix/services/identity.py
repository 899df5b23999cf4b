"""
CivicFix
Reporter identity - authenticated user id and/or anonymous device id.

Citizens are not required to sign in. A browser keeps a generated device id
and sends it with every request; signed-in users also send their user id.
Clients that lost their device id can still pass the ids of reports they
submitted (``report_ids``) as a last-resort lookup key.
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass, field

from flask import request

from civicfix.models import db
from civicfix.models.notification import Notification
from civicfix.models.report import Report

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase
MAX_FALLBACK_IDS = 100


def generate_device_id():
    """Return ``device-{epoch_ms}-{random base36}``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(13))
    return f"device-{int(time.time() * 1000)}-{suffix}"


@dataclass(frozen=True)
class ReporterIdentity:
    user_id: str | None = None
    device_id: str | None = None
    report_ids: tuple = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not (self.user_id or self.device_id or self.report_ids)

    def owns(self, row) -> bool:
        """True when a raw report row belongs to this identity."""
        if not row:
            return False
        if self.user_id and row.get("reporter_id") == self.user_id:
            return True
        if self.device_id and row.get("device_id") == self.device_id:
            return True
        return bool(self.report_ids) and row.get("id") in self.report_ids

    def addresses(self, notification: Notification) -> bool:
        """True when a notification is addressed to this identity."""
        if self.user_id and notification.user_id == self.user_id:
            return True
        return bool(self.device_id) and notification.device_id == self.device_id


def _clean(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _split_ids(raw):
    if not raw:
        return ()
    if isinstance(raw, (list, tuple)):
        items = raw
    else:
        items = str(raw).split(",")
    ids = [str(i).strip() for i in items if str(i).strip()]
    return tuple(dict.fromkeys(ids))[:MAX_FALLBACK_IDS]


def identity_from_request() -> ReporterIdentity:
    """Read identity from headers, then form fields, then query args."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = {}

    def _pick(header, name):
        return _clean(
            request.headers.get(header)
            or request.form.get(name)
            or body.get(name)
            or request.args.get(name)
        )

    return ReporterIdentity(
        user_id=_pick("X-User-Id", "user_id"),
        device_id=_pick("X-Device-Id", "device_id"),
        report_ids=_split_ids(
            request.headers.get("X-Report-Ids")
            or request.args.get("report_ids")
            or body.get("report_ids")
        ),
    )


def claim_device_reports(user_id, device_id):
    """
    Attach a device's unowned reports and notifications to a user id.

    Only rows without a user id are touched. Returns counts of updated rows.
    """
    user_id = _clean(user_id)
    device_id = _clean(device_id)
    if not user_id or not device_id:
        return {"reports": 0, "notifications": 0}

    reports = (
        Report.query
        .filter(Report.device_id == device_id, Report.reporter_id.is_(None))
        .all()
    )
    for report in reports:
        report.reporter_id = user_id

    notifications = (
        Notification.query
        .filter(Notification.device_id == device_id, Notification.user_id.is_(None))
        .all()
    )
    for notification in notifications:
        notification.user_id = user_id

    db.session.flush()
    logger.info(
        "Claimed %d reports, %d notifications for user %s from device %s",
        len(reports), len(notifications), user_id, device_id,
    )
    return {"reports": len(reports), "notifications": len(notifications)}
