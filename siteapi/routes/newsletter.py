from flask import Blueprint, jsonify, request

from siteapi.extensions import services
from siteapi.middleware.admin_guard import admin_required
from siteapi.middleware.admission import admission_required, client_ip
from siteapi.services.newsletter_service import SUBSCRIBERS, UNSUBSCRIBED

bp = Blueprint("newsletter", __name__, url_prefix="/api/newsletter")


@bp.route("/subscribe", methods=["POST"])
@admission_required("newsletter")
def subscribe():
    payload = request.get_json(silent=True) or {}
    result = services().newsletter.subscribe(payload.get("email"), ip=client_ip())
    return jsonify({"success": True, **result})


@bp.route("/confirm", methods=["GET"])
def confirm():
    result = services().newsletter.confirm(request.args.get("token"))
    return jsonify({"success": True, **result})


@bp.route("/unsubscribe", methods=["POST"])
def unsubscribe():
    payload = request.get_json(silent=True) or {}
    result = services().newsletter.unsubscribe(
        payload.get("email"), reason=payload.get("reason"), ip=client_ip()
    )
    return jsonify({"success": True, **result})


admin_bp = Blueprint("newsletter_admin", __name__, url_prefix="/api/admin/newsletter")


@admin_bp.route("/subscribers", methods=["GET"])
@admin_required
def list_subscribers():
    return jsonify(services().newsletter.list_subscribers())


@admin_bp.route("/subscribers/<record_id>", methods=["DELETE"])
@admin_required
def delete_subscriber(record_id):
    services().newsletter.delete_record(SUBSCRIBERS, record_id)
    return jsonify({"success": True, "message": "Record deleted"})


@admin_bp.route("/unsubscribed/<record_id>", methods=["DELETE"])
@admin_required
def delete_unsubscribed(record_id):
    services().newsletter.delete_record(UNSUBSCRIBED, record_id)
    return jsonify({"success": True, "message": "Record deleted"})


@admin_bp.route("/unsubscribe-stats", methods=["GET"])
@admin_required
def unsubscribe_stats():
    return jsonify(services().newsletter.unsubscribe_stats())


@admin_bp.route("/send", methods=["POST"])
@admin_required
def send_newsletter():
    payload = request.get_json(silent=True) or {}
    result = services().newsletter.broadcast(payload.get("subject"), payload.get("message"))
    return jsonify({"success": True, **result})
