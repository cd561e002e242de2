from flask import Blueprint, jsonify, request

from siteapi.errors import ValidationError
from siteapi.extensions import services
from siteapi.middleware.admin_guard import admin_required

bp = Blueprint("users", __name__, url_prefix="/api/admin/users")


def _verified_filter(raw):
    if raw in (None, "", "all"):
        return None
    if raw not in ("true", "false"):
        raise ValidationError("verified must be true, false or all")
    return raw == "true"


@bp.route("", methods=["GET"])
@admin_required
def list_users():
    return jsonify(services().accounts.list_users(
        search=request.args.get("search"),
        status=request.args.get("status"),
        verified=_verified_filter(request.args.get("verified")),
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 50, type=int),
    ))


@bp.route("/<user_id>", methods=["PATCH"])
@admin_required
def update_user(user_id):
    payload = request.get_json(silent=True) or {}
    email_verified = payload.get("emailVerified")
    if email_verified is not None and not isinstance(email_verified, bool):
        raise ValidationError("emailVerified must be a boolean")
    user = services().accounts.update_user(user_id, status=payload.get("status"), email_verified=email_verified)
    return jsonify({"success": True, "user": user})


@bp.route("/<user_id>/suspend", methods=["POST"])
@admin_required
def suspend_user(user_id):
    return jsonify({"success": True, "user": services().accounts.update_user(user_id, status="Suspended")})


@bp.route("/<user_id>/reactivate", methods=["POST"])
@admin_required
def reactivate_user(user_id):
    return jsonify({"success": True, "user": services().accounts.update_user(user_id, status="Active")})


@bp.route("/<user_id>", methods=["DELETE"])
@admin_required
def delete_user(user_id):
    return jsonify({"success": True, **services().accounts.delete_user(user_id)})
