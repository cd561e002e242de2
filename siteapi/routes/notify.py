import logging

from flask import Blueprint, jsonify, request

from siteapi.errors import UpstreamError, ValidationError
from siteapi.extensions import services
from siteapi.integrations.notifier import NotifierError
from siteapi.middleware.admin_guard import admin_required

logger = logging.getLogger(__name__)

bp = Blueprint("notify", __name__, url_prefix="/api/admin")


@bp.route("/notify", methods=["POST"])
@admin_required
def relay_notification():
    payload = request.get_json(silent=True) or {}
    notification_type = payload.get("type")
    data = payload.get("data") or {}
    if not notification_type or not isinstance(data, dict):
        raise ValidationError("type and an object data are required")

    try:
        sent = services().notifier.send(notification_type, data, mention=payload.get("mention"))
    except NotifierError as e:
        raise UpstreamError("Failed to send notification") from e

    if not sent:
        return jsonify({"success": False, "skipped": True, "message": "Chat webhook not configured"})
    return jsonify({"success": True})
