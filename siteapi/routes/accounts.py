from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import create_access_token, get_jwt_identity, jwt_required

from siteapi.extensions import limiter, services
from siteapi.middleware.admission import admission_required

bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


def _login_limit():
    return current_app.config.get("LOGIN_RATE_LIMIT", "10 per minute")


@bp.route("/register", methods=["POST"])
@admission_required("signup")
def register():
    payload = request.get_json(silent=True) or {}
    user = services().accounts.register(
        payload.get("name"), payload.get("email"), payload.get("password")
    )
    return jsonify({
        "success": True,
        "message": "Account created. Please check your email to verify your address.",
        "user": user,
    }), 201


@bp.route("/login", methods=["POST"])
@limiter.limit(_login_limit)
def login():
    payload = request.get_json(silent=True) or {}
    user = services().accounts.authenticate(payload.get("email"), payload.get("password"))
    token = create_access_token(identity=user["id"], additional_claims={"email": user["email"]})
    return jsonify({"success": True, "token": token, "user": user})


@bp.route("/me", methods=["GET"])
@jwt_required()
def me():
    return jsonify({"user": services().accounts.profile(get_jwt_identity())})


@bp.route("/verify-email", methods=["POST"])
def verify_email():
    payload = request.get_json(silent=True) or {}
    result = services().accounts.verify_email(payload.get("token"))
    return jsonify({"success": True, **result})


@bp.route("/resend-verification", methods=["POST"])
@admission_required("signup")
def resend_verification():
    payload = request.get_json(silent=True) or {}
    result = services().accounts.resend_verification(payload.get("email"))
    return jsonify({"success": True, **result})


@bp.route("/password-reset", methods=["POST"])
@admission_required("signup")
def request_password_reset():
    payload = request.get_json(silent=True) or {}
    result = services().accounts.request_password_reset(payload.get("email"))
    return jsonify({"success": True, **result})


@bp.route("/password-reset/confirm", methods=["POST"])
def reset_password():
    payload = request.get_json(silent=True) or {}
    result = services().accounts.reset_password(payload.get("token"), payload.get("newPassword"))
    return jsonify({"success": True, **result})
