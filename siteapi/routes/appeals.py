from flask import Blueprint, jsonify, request

from siteapi.errors import ConflictError, NotFoundError, ValidationError
from siteapi.extensions import services
from siteapi.middleware.admin_guard import admin_required
from siteapi.middleware.admission import client_ip
from siteapi.moderation.appeals import AppealNotFound, AppealValidationError, NoActiveRestriction
from siteapi.moderation.models import InvalidStateTransition

bp = Blueprint("appeals", __name__, url_prefix="/api")


@bp.route("/appeals", methods=["POST"])
def submit_appeal():
    payload = request.get_json(silent=True) or {}
    try:
        appeal = services().appeals.submit(
            client_ip(),
            payload.get("email"),
            payload.get("reason"),
            user_agent=request.headers.get("User-Agent", "Unknown"),
        )
    except AppealValidationError as e:
        raise ValidationError(str(e)) from e
    except NoActiveRestriction as e:
        raise NotFoundError(str(e)) from e

    return jsonify({
        "success": True,
        "message": "Appeal submitted successfully. We will review it within 24-48 hours.",
        "appealType": appeal.appeal_type.value,
    }), 201


@bp.route("/admin/appeals", methods=["GET"])
@admin_required
def list_appeals():
    try:
        result = services().appeals.list(
            status=request.args.get("status"),
            sort=request.args.get("sort", "newest"),
        )
    except AppealValidationError as e:
        raise ValidationError(str(e)) from e
    return jsonify(result)


def _resolve(appeal_id, method):
    payload = request.get_json(silent=True) or {}
    try:
        result = method(appeal_id, admin_notes=payload.get("adminNotes", ""))
    except AppealNotFound as e:
        raise NotFoundError(str(e)) from e
    except InvalidStateTransition as e:
        raise ConflictError(str(e)) from e
    return jsonify({"success": True, **result})


@bp.route("/admin/appeals/<appeal_id>/approve", methods=["POST"])
@admin_required
def approve_appeal(appeal_id):
    return _resolve(appeal_id, services().appeals.approve)


@bp.route("/admin/appeals/<appeal_id>/deny", methods=["POST"])
@admin_required
def deny_appeal(appeal_id):
    return _resolve(appeal_id, services().appeals.deny)
