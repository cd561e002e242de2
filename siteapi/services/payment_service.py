import logging
from datetime import datetime
from typing import Any, Dict, Optional

from siteapi.admission.best_effort import best_effort
from siteapi.integrations.payments import StripeGateway
from siteapi.integrations.tables import TableClient, field_equals
from siteapi.moderation.models import format_timestamp, utcnow

logger = logging.getLogger(__name__)

DONATIONS = "Donations"

THANK_YOU_TEMPLATE = """\
<p>Thank you!</p>
<p>Your donation of <strong>{currency} {amount}</strong> is much appreciated.</p>
"""


def _as_dict(obj) -> Dict[str, Any]:
    # StripeObject is not a dict subclass on current SDK releases
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


class DonationService:
    """Checkout creation and completed-payment bookkeeping."""

    def __init__(self, gateway: StripeGateway, tables: TableClient, mailer=None, notifier=None, site_url: str = ""):
        self.gateway = gateway
        self.tables = tables
        self.mailer = mailer
        self.notifier = notifier
        self.site_url = site_url.rstrip("/")

    def checkout(self, amount: Any) -> Dict[str, Any]:
        return self.gateway.create_checkout_session(
            amount,
            success_url=f"{self.site_url}/donate.html?success=true",
            cancel_url=f"{self.site_url}/donate.html?canceled=true",
        )

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        event = self.gateway.construct_event(payload, signature)
        event_type = event["type"]

        if event_type == "checkout.session.completed":
            return self._handle_checkout_completed(_as_dict(event["data"]["object"]))

        logger.info("Unhandled webhook event type: %s", event_type)
        return {"status": "ignored", "type": event_type}

    def _handle_checkout_completed(self, session, now: Optional[datetime] = None) -> Dict[str, Any]:
        session_id = session["id"]
        if self.tables.first(DONATIONS, field_equals("StripeSessionId", session_id)):
            logger.info("Donation already recorded for session %s", session_id)
            return {"status": "duplicate"}

        amount = (session.get("amount_total") or 0) / 100
        currency = (session.get("currency") or "usd").upper()
        customer = _as_dict(session.get("customer_details"))
        email = customer.get("email") or "Anonymous"

        self.tables.create(DONATIONS, {
            "Amount": amount,
            "Currency": currency,
            "Email": email,
            "StripeSessionId": session_id,
            "Status": "completed",
            "Timestamp": format_timestamp(now or utcnow()),
        })
        logger.info("Donation recorded", extra={"session_id": session_id, "amount": amount})

        if self.notifier:
            best_effort(
                self.notifier.send,
                "new_donation",
                {"amount": f"{amount:.2f}", "currency": currency, "email": email},
                label="donation notification",
            )
        if self.mailer and email != "Anonymous":
            best_effort(
                self.mailer.send,
                email,
                "Thank you for your support!",
                html_body=THANK_YOU_TEMPLATE.format(currency=currency, amount=f"{amount:.2f}"),
                label="thank-you email",
            )
        return {"status": "recorded"}

    def summary(self) -> Dict[str, Any]:
        """Total and count of completed donations."""
        records = self.tables.select(
            DONATIONS, field_equals("Status", "completed"), sort=[("Timestamp", "desc")]
        )
        total = 0.0
        for record in records:
            try:
                total += float(record.get("Amount") or 0)
            except (TypeError, ValueError):
                logger.warning("Ignoring donation %s with unreadable amount", record.id)
        return {
            "total": round(total, 2),
            "count": len(records),
            "currency": records[0].get("Currency", "USD") if records else "USD",
            "recent": [
                {
                    "amount": record.get("Amount"),
                    "currency": record.get("Currency", "USD"),
                    "email": record.get("Email", "Anonymous"),
                    "timestamp": record.get("Timestamp") or record.created_time,
                }
                for record in records[:20]
            ],
        }
