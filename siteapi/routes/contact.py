import html
import logging

from flask import Blueprint, current_app, jsonify, request

from siteapi.errors import ServiceUnavailableError, UpstreamError, ValidationError
from siteapi.extensions import services
from siteapi.integrations.mailer import MailerError
from siteapi.middleware.admission import admission_required
from siteapi.validation import is_valid_email

logger = logging.getLogger(__name__)

bp = Blueprint("contact", __name__, url_prefix="/api")

MAX_MESSAGE_LENGTH = 5000


@bp.route("/contact", methods=["POST"])
@admission_required("contact")
def send_contact():
    payload = request.get_json(silent=True) or {}
    name = (payload.get("name") or "").strip()
    email = (payload.get("email") or "").strip()
    message = (payload.get("message") or "").strip()

    if not name or not email or not message:
        raise ValidationError("Name, email, and message are required")
    if not is_valid_email(email):
        raise ValidationError("Invalid email address")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

    html_body = (
        "<h2>New Contact Form Message</h2>"
        f"<p><strong>Name:</strong> {html.escape(name)}</p>"
        f"<p><strong>Email:</strong> {html.escape(email)}</p>"
        f'<hr /><p style="white-space: pre-wrap;">{html.escape(message)}</p>'
    )
    text_body = f"New Contact Form Message\n\nName: {name}\nEmail: {email}\n\n{message}"

    try:
        sent = services().mailer.send(
            current_app.config.get("CONTACT_RECIPIENT"),
            f"Contact form: {name} <{email}>",
            html_body=html_body,
            text_body=text_body,
            reply_to=email,
        )
    except MailerError as e:
        logger.error("Contact message could not be sent: %s", e)
        raise UpstreamError("Failed to send contact message") from e

    if not sent:
        raise ServiceUnavailableError("Contact form is not configured")
    return jsonify({"success": True})
