"""
CivicFix
Admin blueprint - triage, assignment, notes, teams, dashboard.

All routes require an API key when API_AUTH_ENABLED (see civicfix.auth):
viewer for reads, editor for mutations, admin for deletes.

Endpoints summary:
    REPORTS  /api/v1/admin/reports                        GET
             /api/v1/admin/reports/stream                 GET  (text/event-stream)
             /api/v1/admin/reports/<id>                   GET, DELETE
             /api/v1/admin/reports/<id>/status            PATCH
             /api/v1/admin/reports/<id>/assign            PATCH
             /api/v1/admin/reports/<id>/priority          PATCH
             /api/v1/admin/reports/<id>/proof             POST (multipart)
             /api/v1/admin/reports/<id>/auto-assign       POST
             /api/v1/admin/reports/<id>/suggest-team      GET

    NOTES    /api/v1/admin/reports/<id>/notes             GET, POST
             /api/v1/admin/notes/<id>                     PUT, DELETE

    ACTIVITY /api/v1/admin/reports/<id>/activity          GET
             /api/v1/admin/activity                       GET

    TEAMS    /api/v1/admin/teams                          GET, POST
             /api/v1/admin/teams/<id>                     GET, PUT, DELETE

    RULES    /api/v1/admin/assignment-rules               GET
    STATS    /api/v1/admin/dashboard                      GET
"""

import logging

from flask import Blueprint, Response, jsonify, request

from civicfix.auth import current_actor, require_role
from civicfix.core.exceptions import ValidationError
from civicfix.services import (
    activity_log,
    notes_service,
    report_service,
    team_service,
)
from civicfix.services.auto_assignment import default_rules
from civicfix.services.dashboard_service import compute_dashboard
from civicfix.services.realtime import change_feed, sse_stream
from civicfix.utils.errors import E, api_error, register_error_handlers
from civicfix.utils.helpers import db_commit_or_error, utcnow
from civicfix.utils.pagination import paginate_list

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/v1/admin")
register_error_handlers(admin_bp)

_LIST_FILTERS = ("q", "status", "category", "priority", "assigned_to", "start", "end", "sort")


def _json_body():
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", details={"body": type(body).__name__})
    return body


# ═══════════════════════════════════════════════════════════════════════════
#  REPORTS
# ═══════════════════════════════════════════════════════════════════════════

@admin_bp.route("/reports", methods=["GET"])
def list_reports():
    filters = {k: request.args.get(k) for k in _LIST_FILTERS if request.args.get(k)}
    views = report_service.list_reports(filters, now=utcnow())
    items, meta = paginate_list(views, default_per_page=20)
    return jsonify({"items": items, "pagination": meta, "filters": filters}), 200


@admin_bp.route("/reports/stream", methods=["GET"])
def reports_stream():
    return Response(
        sse_stream(change_feed),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@admin_bp.route("/reports/<report_id>", methods=["GET"])
def get_report(report_id):
    report = report_service.get_report(report_id)
    data = report.to_dict()
    data["activity_log"] = [a.to_dict() for a in activity_log.list_for_report(report.id)]
    data["notes"] = [n.to_dict() for n in notes_service.list_notes(report.id)]
    data["reporter_id"] = report.reporter_id
    data["device_id"] = report.device_id
    return jsonify(data), 200


@admin_bp.route("/reports/<report_id>/status", methods=["PATCH"])
@require_role("editor")
def update_status(report_id):
    data = _json_body()
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")

    report = report_service.get_report(report_id)
    report_service.update_status(report, data["status"], performed_by=current_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(report.to_dict()), 200


@admin_bp.route("/reports/<report_id>/assign", methods=["PATCH"])
@require_role("editor")
def assign_team(report_id):
    data = _json_body()
    if "team_name" not in data:
        return api_error(E.VALIDATION_REQUIRED, "team_name is required (null to unassign)")

    report = report_service.get_report(report_id)
    report_service.assign_team(report, data.get("team_name"), performed_by=current_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(report.to_dict()), 200


@admin_bp.route("/reports/<report_id>/priority", methods=["PATCH"])
@require_role("editor")
def update_priority(report_id):
    data = _json_body()
    report = report_service.get_report(report_id)
    report_service.update_priority(report, data.get("priority"), performed_by=current_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(report.to_dict()), 200


@admin_bp.route("/reports/<report_id>/proof", methods=["POST"])
@require_role("editor")
def upload_proof(report_id):
    report = report_service.get_report(report_id)
    report_service.attach_proof(report, request.files.get("image"), performed_by=current_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(report.to_dict()), 200


@admin_bp.route("/reports/<report_id>", methods=["DELETE"])
@require_role("admin")
def delete_report(report_id):
    report = report_service.get_report(report_id)
    report_service.delete_report(report)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"deleted": True, "id": report_id}), 200


@admin_bp.route("/reports/<report_id>/auto-assign", methods=["POST"])
@require_role("editor")
def auto_assign(report_id):
    report = report_service.get_report(report_id)
    suggestion = report_service.auto_assign(report, performed_by=current_actor("Auto-Assignment System"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "success": suggestion.team_name is not None,
        "team_name": suggestion.team_name,
        "reason": suggestion.reason,
        "report": report.to_dict(),
    }), 200


@admin_bp.route("/reports/<report_id>/suggest-team", methods=["GET"])
def suggest_team(report_id):
    report = report_service.get_report(report_id)
    return jsonify(report_service.suggest_team(report).to_dict()), 200


# ═══════════════════════════════════════════════════════════════════════════
#  NOTES
# ═══════════════════════════════════════════════════════════════════════════

@admin_bp.route("/reports/<report_id>/notes", methods=["GET"])
def list_notes(report_id):
    report = report_service.get_report(report_id)
    return jsonify({"items": [n.to_dict() for n in notes_service.list_notes(report.id)]}), 200


@admin_bp.route("/reports/<report_id>/notes", methods=["POST"])
@require_role("editor")
def add_note(report_id):
    report = report_service.get_report(report_id)
    note = notes_service.add_note(report, _json_body(), author=current_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(note.to_dict()), 201


@admin_bp.route("/notes/<int:note_id>", methods=["PUT"])
@require_role("editor")
def update_note(note_id):
    note = notes_service.get_note(note_id)
    notes_service.update_note(note, _json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(note.to_dict()), 200


@admin_bp.route("/notes/<int:note_id>", methods=["DELETE"])
@require_role("editor")
def delete_note(note_id):
    note = notes_service.get_note(note_id)
    notes_service.delete_note(note)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"deleted": True}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  ACTIVITY
# ═══════════════════════════════════════════════════════════════════════════

@admin_bp.route("/reports/<report_id>/activity", methods=["GET"])
def report_activity(report_id):
    report = report_service.get_report(report_id)
    return jsonify({"items": [a.to_dict() for a in activity_log.list_for_report(report.id)]}), 200


@admin_bp.route("/activity", methods=["GET"])
def recent_activity():
    limit = request.args.get("limit", default=activity_log.REPORT_LOG_LIMIT, type=int)
    return jsonify({"items": [a.to_dict() for a in activity_log.list_recent(limit)]}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  TEAMS
# ═══════════════════════════════════════════════════════════════════════════

@admin_bp.route("/teams", methods=["GET"])
def list_teams():
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")
    counts = team_service.active_job_counts()
    teams = team_service.list_teams(include_inactive=include_inactive)
    return jsonify({"items": [team_service.serialize_team(t, counts) for t in teams]}), 200


@admin_bp.route("/teams", methods=["POST"])
@require_role("editor")
def create_team():
    team = team_service.create_team(_json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(team_service.serialize_team(team)), 201


@admin_bp.route("/teams/<int:team_id>", methods=["GET"])
def get_team(team_id):
    team = team_service.get_team(team_id)
    return jsonify(team_service.serialize_team(team)), 200


@admin_bp.route("/teams/<int:team_id>", methods=["PUT"])
@require_role("editor")
def update_team(team_id):
    team = team_service.get_team(team_id)
    team_service.update_team(team, _json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(team_service.serialize_team(team)), 200


@admin_bp.route("/teams/<int:team_id>", methods=["DELETE"])
@require_role("admin")
def delete_team(team_id):
    team = team_service.get_team(team_id)
    team_service.deactivate_team(team)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"deleted": True, "id": team_id}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  RULES & DASHBOARD
# ═══════════════════════════════════════════════════════════════════════════

@admin_bp.route("/assignment-rules", methods=["GET"])
def assignment_rules():
    return jsonify({"items": [r.to_dict() for r in default_rules()]}), 200


@admin_bp.route("/dashboard", methods=["GET"])
def dashboard():
    return jsonify(compute_dashboard()), 200
