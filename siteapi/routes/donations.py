import logging

from flask import Blueprint, jsonify, request

from siteapi.errors import ServiceUnavailableError, UpstreamError, ValidationError
from siteapi.extensions import services
from siteapi.integrations.payments import InvalidAmount, InvalidWebhook, PaymentError, PaymentsDisabledError
from siteapi.middleware.admin_guard import admin_required
from siteapi.middleware.admission import admission_required

logger = logging.getLogger(__name__)

bp = Blueprint("donations", __name__, url_prefix="/api/donations")


@bp.route("/checkout", methods=["POST"])
@admission_required("donation")
def create_checkout():
    payload = request.get_json(silent=True) or {}
    try:
        return jsonify(services().donations.checkout(payload.get("amount")))
    except PaymentsDisabledError as e:
        raise ServiceUnavailableError("Payment system not configured") from e
    except InvalidAmount as e:
        raise ValidationError(str(e)) from e
    except PaymentError as e:
        raise UpstreamError(str(e)) from e


@bp.route("/webhook", methods=["POST"])
def stripe_webhook():
    try:
        result = services().donations.handle_webhook(
            request.get_data(), request.headers.get("Stripe-Signature")
        )
    except PaymentsDisabledError as e:
        raise ServiceUnavailableError("Webhook secret not configured") from e
    except InvalidWebhook as e:
        logger.warning("Rejected webhook: %s", e)
        raise ValidationError("Invalid signature") from e
    return jsonify({"received": True, **result})


@bp.route("/summary", methods=["GET"])
@admin_required
def donation_summary():
    return jsonify(services().donations.summary())
