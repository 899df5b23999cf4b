"""
CivicFix
Citizen blueprint - report submission, "my reports", notifications.

No API key: reporters are correlated by identity headers
(X-User-Id / X-Device-Id, optional X-Report-Ids fallback list).

Endpoints summary:
    IDENTITY /api/v1/citizen/identity/device              POST
             /api/v1/citizen/identity/claim               POST
    REPORTS  /api/v1/citizen/reports                      GET, POST
             /api/v1/citizen/reports/<id>                 GET
             /api/v1/citizen/reports/stream               GET  (text/event-stream)
    NOTIF    /api/v1/citizen/notifications                GET
             /api/v1/citizen/notifications/unread-count   GET
             /api/v1/citizen/notifications/<id>/read      POST
             /api/v1/citizen/notifications/read-all       POST
             /api/v1/citizen/notifications/<id>           DELETE
"""

import logging
from dataclasses import replace

from flask import Blueprint, Response, jsonify, request

from civicfix.services import notes_service, report_service
from civicfix.services.identity import (
    claim_device_reports,
    generate_device_id,
    identity_from_request,
)
from civicfix.services.notification import NotificationService
from civicfix.services.realtime import change_feed, identity_predicate, sse_stream
from civicfix.utils.errors import E, api_error, register_error_handlers
from civicfix.utils.helpers import db_commit_or_error, parse_float
from civicfix.utils.pagination import paginate_list

logger = logging.getLogger(__name__)

citizen_bp = Blueprint("citizen_bp", __name__, url_prefix="/api/v1/citizen")
register_error_handlers(citizen_bp)


def _identity_or_400():
    identity = identity_from_request()
    if identity.is_empty:
        return None, api_error(
            E.VALIDATION_REQUIRED, "Provide X-User-Id, X-Device-Id or report_ids",
        )
    return identity, None


# ═══════════════════════════════════════════════════════════════════════════
#  IDENTITY
# ═══════════════════════════════════════════════════════════════════════════

@citizen_bp.route("/identity/device", methods=["POST"])
def issue_device_id():
    return jsonify({"device_id": generate_device_id()}), 201


@citizen_bp.route("/identity/claim", methods=["POST"])
def claim_reports():
    """Attach a device's anonymous reports to a signed-in user."""
    identity = identity_from_request()
    if not identity.user_id or not identity.device_id:
        return api_error(E.VALIDATION_REQUIRED, "user_id and device_id are both required")

    counts = claim_device_reports(identity.user_id, identity.device_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"user_id": identity.user_id, "claimed": counts}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  REPORTS
# ═══════════════════════════════════════════════════════════════════════════

@citizen_bp.route("/reports", methods=["POST"])
def submit_report():
    """Multipart: ``image`` file, ``latitude``, ``longitude``."""
    try:
        latitude = parse_float(request.form.get("latitude"), "latitude")
        longitude = parse_float(request.form.get("longitude"), "longitude")
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))

    identity = identity_from_request()
    issued_device = None
    if not identity.user_id and not identity.device_id:
        issued_device = generate_device_id()
        identity = replace(identity, device_id=issued_device)

    report, classification = report_service.submit_report(
        request.files.get("image"), latitude, longitude, identity,
    )
    err = db_commit_or_error()
    if err:
        return err

    body = {
        "report": report.to_dict(),
        "classification": classification.to_dict(),
    }
    if issued_device:
        body["device_id"] = issued_device
    return jsonify(body), 201


@citizen_bp.route("/reports", methods=["GET"])
def my_reports():
    identity = identity_from_request()
    reports = report_service.fetch_reports_for_identity(identity)
    items, meta = paginate_list([r.to_dict() for r in reports])
    return jsonify({"items": items, "pagination": meta}), 200


@citizen_bp.route("/reports/stream", methods=["GET"])
def my_reports_stream():
    identity, err = _identity_or_400()
    if err:
        return err
    return Response(
        sse_stream(change_feed, identity_predicate(identity)),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@citizen_bp.route("/reports/<report_id>", methods=["GET"])
def get_report(report_id):
    report = report_service.get_report(report_id)
    data = report.to_dict()
    data["notes"] = [n.to_dict() for n in notes_service.list_notes(report.id, public_only=True)]
    return jsonify(data), 200


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATIONS
# ═══════════════════════════════════════════════════════════════════════════

@citizen_bp.route("/notifications", methods=["GET"])
def list_notifications():
    identity = identity_from_request()
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")
    items = NotificationService.list_for_identity(
        identity.user_id, identity.device_id, unread_only=unread_only,
        limit=request.args.get("limit", type=int),
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "unread_count": NotificationService.unread_count(identity.user_id, identity.device_id),
    }), 200


@citizen_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    identity = identity_from_request()
    return jsonify({
        "unread_count": NotificationService.unread_count(identity.user_id, identity.device_id),
    }), 200


@citizen_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    identity, err = _identity_or_400()
    if err:
        return err
    notif = NotificationService.mark_read(notification_id, identity)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(notif.to_dict()), 200


@citizen_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_read():
    identity, err = _identity_or_400()
    if err:
        return err
    count = NotificationService.mark_all_read(identity.user_id, identity.device_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"marked_read": count}), 200


@citizen_bp.route("/notifications/<int:notification_id>", methods=["DELETE"])
def delete_notification(notification_id):
    identity, err = _identity_or_400()
    if err:
        return err
    NotificationService.delete(notification_id, identity)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"deleted": True}), 200
