"""JSON error bodies for the CivicFix API.

Every error response has the shape ``{"error": <message>, "code": <E.*>}``
plus an optional ``details`` object (field errors, allowed values).

    from civicfix.utils.errors import api_error, E

    return api_error(E.VALIDATION_REQUIRED, "status is required")
"""

from __future__ import annotations

import logging

from flask import jsonify, request

from civicfix.core.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class E:
    """Machine-readable error codes."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"   # missing field → 400
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"     # malformed / rejected value → 400 or 422
    NOT_FOUND = "ERR_NOT_FOUND"                       # 404
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"     # unique name / constraint → 409
    FORBIDDEN = "ERR_FORBIDDEN"                       # another reporter's data → 403
    EXTERNAL = "ERR_EXTERNAL"                         # storage write failed → 502
    DATABASE = "ERR_DATABASE"                         # commit failed → 500
    INTERNAL = "ERR_INTERNAL"                         # 500


_STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.FORBIDDEN: 403,
    E.EXTERNAL: 502,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(jsonify(body), status)`` ready to return from a view.

    ``status`` defaults to the code's usual HTTP status (400 when unknown).
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)


def register_error_handlers(bp):
    """Map service exceptions raised inside ``bp`` views to JSON responses."""

    @bp.errorhandler(NotFoundError)
    def _not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _invalid(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), status=422, details=error.details)

    @bp.errorhandler(ConflictError)
    def _conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(PermissionDeniedError)
    def _forbidden(error: PermissionDeniedError):
        return api_error(E.FORBIDDEN, str(error) or "Access denied")

    @bp.errorhandler(ExternalServiceError)
    def _upstream(error: ExternalServiceError):
        logger.error("Upstream failure in %s: %s", request.endpoint, error)
        return api_error(E.EXTERNAL, str(error))

    return bp
