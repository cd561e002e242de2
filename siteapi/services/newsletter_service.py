import logging
import secrets
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from siteapi.admission.best_effort import best_effort
from siteapi.errors import ConflictError, NotFoundError, ServiceUnavailableError, ValidationError
from siteapi.integrations.mailer import MailerError
from siteapi.integrations.tables import TableClient, field_equals, field_equals_ci
from siteapi.moderation.models import format_timestamp, parse_timestamp, utcnow
from siteapi.validation import is_disposable_email, is_valid_email, normalize_email

logger = logging.getLogger(__name__)

SUBSCRIBERS = "Subscribers"
UNSUBSCRIBED = "Unsubscribed"

STATUS_PENDING = "Pending"
STATUS_ACTIVE = "Active"


CONFIRMATION_TEMPLATE = """\
<p>Thanks for subscribing!</p>
<p>Please confirm your subscription by clicking the link below:</p>
<p><a href="{link}">Confirm subscription</a></p>
<p>If you did not sign up, you can ignore this email.</p>
"""

WELCOME_TEMPLATE = """\
<p>Your subscription is confirmed. You'll receive newsletters when they are sent.</p>
<p>You can unsubscribe at any time from <a href="{site_url}/unsubscribe.html">this page</a>.</p>
"""

BROADCAST_FOOTER = """\
<hr>
<p style="font-size: 0.9em; color: #666;">
Don't want to receive these emails? <a href="{link}">Unsubscribe</a>
</p>
"""

MAX_SUBJECT_LENGTH = 200


class NewsletterService:
    """Double opt-in newsletter list: Pending until the emailed link is followed."""

    def __init__(self, tables: TableClient, mailer, notifier=None, site_url: str = ""):
        self.tables = tables
        self.mailer = mailer
        self.notifier = notifier
        self.site_url = site_url.rstrip("/")

    def _find(self, email: str):
        return self.tables.first(SUBSCRIBERS, field_equals_ci("Email", email))

    def _confirmation_link(self, token: str) -> str:
        return f"{self.site_url}/api/newsletter/confirm?token={token}"

    def _send_confirmation(self, email: str, token: str) -> bool:
        sent = best_effort(
            self.mailer.send,
            email,
            "Confirm your newsletter subscription",
            html_body=CONFIRMATION_TEMPLATE.format(link=self._confirmation_link(token)),
            default=False,
            label="confirmation email",
        )
        return bool(sent)

    def subscribe(self, email: Optional[str], ip: str = "Unknown", now: Optional[datetime] = None) -> Dict[str, Any]:
        email = normalize_email(email)
        if not is_valid_email(email):
            raise ValidationError("Invalid email address")
        if is_disposable_email(email):
            raise ValidationError("Disposable email addresses are not allowed")

        existing = self._find(email)
        if existing and existing.get("Status") == STATUS_ACTIVE:
            raise ConflictError("Already subscribed")

        if existing:
            # Still Pending: issue a fresh link rather than a second record
            token = secrets.token_hex(32)
            self.tables.update(SUBSCRIBERS, existing.id, {"VerificationToken": token})
            sent = self._send_confirmation(email, token)
            return {"message": "Confirmation email re-sent", "email": email, "emailSent": sent}

        token = secrets.token_hex(32)
        self.tables.create(SUBSCRIBERS, {
            "Email": email,
            "Status": STATUS_PENDING,
            "VerificationToken": token,
            "SubscribedDate": format_timestamp(now or utcnow()),
            "IPAddress": ip,
        })
        logger.info("New pending subscriber", extra={"email_domain": email.rsplit("@", 1)[-1]})
        sent = self._send_confirmation(email, token)
        return {
            "message": "Please check your email to confirm your subscription",
            "email": email,
            "emailSent": sent,
        }

    def confirm(self, token: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
        if not token:
            raise ValidationError("Missing confirmation token")

        record = self.tables.first(SUBSCRIBERS, field_equals("VerificationToken", token))
        if not record:
            raise NotFoundError("Subscription not found. The link may have already been used.")

        email = record.get("Email", "")
        if record.get("Status") == STATUS_ACTIVE:
            return {"message": "Subscription already confirmed", "email": email, "alreadyConfirmed": True}

        self.tables.update(SUBSCRIBERS, record.id, {
            "Status": STATUS_ACTIVE,
            "ConfirmedAt": format_timestamp(now or utcnow()),
        })
        logger.info("Subscription confirmed: %s", record.id)

        best_effort(
            self.mailer.send,
            email,
            "Welcome to the newsletter",
            html_body=WELCOME_TEMPLATE.format(site_url=self.site_url),
            label="welcome email",
        )
        if self.notifier:
            best_effort(
                self.notifier.send, "new_subscriber", {"email": email}, label="subscriber notification"
            )
        return {"message": "Subscription confirmed", "email": email, "alreadyConfirmed": False}

    def unsubscribe(
        self,
        email: Optional[str],
        reason: Optional[str] = None,
        ip: str = "Unknown",
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        email = normalize_email(email)
        if not is_valid_email(email):
            raise ValidationError("Invalid email address")

        record = self._find(email)
        if not record:
            raise NotFoundError("Email address is not subscribed")

        subscribed = parse_timestamp(record.get("SubscribedDate") or record.created_time)
        self.tables.delete(SUBSCRIBERS, record.id)
        self.tables.create(UNSUBSCRIBED, {
            "Email": email,
            "UnsubscribedDate": format_timestamp(now or utcnow()),
            "PreviouslySubscribedDate": format_timestamp(subscribed),
            "Reason": reason or "Not specified",
            "IPAddress": ip,
        })
        logger.info("Subscriber removed: %s", record.id)
        return {"message": "Successfully unsubscribed", "email": email}

    # -- administration -----------------------------------------------------

    def list_subscribers(self) -> Dict[str, Any]:
        subscribers = [
            {
                "id": r.id,
                "email": r.get("Email", ""),
                "status": r.get("Status", STATUS_ACTIVE),
                "subscribedDate": r.get("SubscribedDate") or r.created_time,
                "confirmedAt": r.get("ConfirmedAt"),
                "ip": r.get("IPAddress", ""),
            }
            for r in self.tables.select(SUBSCRIBERS, sort=[("SubscribedDate", "desc")])
        ]
        unsubscribed = [
            {
                "id": r.id,
                "email": r.get("Email", ""),
                "date": r.get("UnsubscribedDate") or r.created_time,
                "reason": r.get("Reason", ""),
            }
            for r in self.tables.select(UNSUBSCRIBED, sort=[("UnsubscribedDate", "desc")])
        ]
        return {
            "subscribers": subscribers,
            "unsubscribed": unsubscribed,
            "stats": {
                "active": sum(1 for s in subscribers if s["status"] == STATUS_ACTIVE),
                "pending": sum(1 for s in subscribers if s["status"] == STATUS_PENDING),
                "unsubscribed": len(unsubscribed),
            },
        }

    def delete_record(self, table: str, record_id: str) -> None:
        if table not in (SUBSCRIBERS, UNSUBSCRIBED):
            raise ValidationError("Invalid table name")
        if not self.tables.find(table, record_id):
            raise NotFoundError("Record not found")
        self.tables.delete(table, record_id)
        logger.info("Deleted %s record %s", table, record_id)

    def unsubscribe_stats(self) -> Dict[str, Any]:
        reasons = Counter(
            (r.get("Reason") or "Not specified").strip() or "Not specified"
            for r in self.tables.select(UNSUBSCRIBED)
        )
        return {
            "total": sum(reasons.values()),
            "reasons": [{"reason": reason, "count": count} for reason, count in reasons.most_common()],
        }

    def broadcast(self, subject: Optional[str], message: Optional[str]) -> Dict[str, Any]:
        """Mail ``message`` to every Active subscriber with a personal unsubscribe link."""
        subject = (subject or "").strip()
        message = (message or "").strip()
        if not subject or not message:
            raise ValidationError("Subject and message are required")
        if len(subject) > MAX_SUBJECT_LENGTH:
            raise ValidationError(f"Subject must be at most {MAX_SUBJECT_LENGTH} characters")
        if not self.mailer.configured:
            raise ServiceUnavailableError("Email service not configured")

        recipients = self.tables.select(SUBSCRIBERS, field_equals("Status", STATUS_ACTIVE))
        results: List[Dict[str, Any]] = []
        for record in recipients:
            email = record.get("Email", "")
            link = f"{self.site_url}/unsubscribe.html?email={quote(email)}"
            try:
                self.mailer.send(email, subject, html_body=message + BROADCAST_FOOTER.format(link=link))
            except MailerError as e:
                logger.warning("Newsletter delivery failed for %s: %s", record.id, e)
                results.append({"email": email, "success": False, "error": str(e)})
            else:
                results.append({"email": email, "success": True})

        sent = sum(1 for r in results if r["success"])
        logger.info("Newsletter sent", extra={"sent": sent, "failed": len(results) - sent})
        return {"sent": sent, "failed": len(results) - sent, "results": results}
