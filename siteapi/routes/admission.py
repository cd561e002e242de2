import logging

from flask import Blueprint, jsonify, request

from siteapi.config import AdmissionConfig
from siteapi.errors import ValidationError
from siteapi.extensions import services
from siteapi.middleware.admission import client_ip

logger = logging.getLogger(__name__)

bp = Blueprint("admission", __name__, url_prefix="/api")


@bp.route("/check-rate-limit", methods=["POST"])
def check_rate_limit():
    """Classify the caller for a form action without performing it."""
    payload = request.get_json(silent=True) or {}
    action = payload.get("action")
    if not action or action not in AdmissionConfig.ACTIONS:
        raise ValidationError(
            "Invalid action",
            payload={"validActions": list(AdmissionConfig.ACTIONS)},
        )

    decision = services().classifier.classify(client_ip(), action)
    return jsonify(decision.to_dict()), decision.status_code
