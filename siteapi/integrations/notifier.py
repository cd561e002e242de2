"""Relays site events to a Discord-compatible chat webhook."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

BLUE = 3447003
GREEN = 2067276
ORANGE = 15844367
RED = 15158332
DARK_RED = 10038562
PURPLE = 7506394


class NotifierError(Exception):
    """Raised when the webhook rejects a notification."""


def _field(name: str, value: Any, inline: bool = True) -> Dict[str, Any]:
    return {"name": name, "value": str(value) if value not in (None, "") else "Unknown", "inline": inline}


class DiscordNotifier:
    """
    Builds one embed per notification type and posts it to the webhook.

    ``send`` returns False when no webhook is configured and raises
    ``NotifierError`` when the webhook call fails.
    """

    # Types that always ping the configured mention
    PING_TYPES = {"error_alert", "block_appeal"}
    DONATION_PING_THRESHOLD = 10

    def __init__(
        self,
        webhook_url: Optional[str],
        mention_id: str = "",
        timeout: float = 3.0,
        session: Optional[requests.Session] = None,
    ):
        self.webhook_url = webhook_url
        self.mention_id = mention_id or ""
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)

    def send(self, type: str, data: Optional[Dict[str, Any]] = None, mention: Optional[str] = None) -> bool:
        data = data or {}
        if not self.configured:
            logger.info("Chat webhook not configured, dropping %s notification", type)
            return False

        embed = self.build_embed(type, data)
        content = mention or self._default_mention(type, data)
        payload: Dict[str, Any] = {"embeds": [embed]}
        if content:
            payload["content"] = content

        try:
            response = self.session.post(self.webhook_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise NotifierError(f"Chat webhook unreachable: {e}") from e

        if response.status_code >= 400:
            raise NotifierError(
                f"Chat webhook failed: {response.status_code} {response.text[:200]}"
            )

        logger.info("Chat notification sent: %s", type)
        return True

    def _default_mention(self, type: str, data: Dict[str, Any]) -> str:
        if type in self.PING_TYPES:
            return self.mention_id
        if type == "new_donation":
            try:
                if float(data.get("amount") or 0) >= self.DONATION_PING_THRESHOLD:
                    return self.mention_id
            except (TypeError, ValueError):
                pass
        return ""

    @staticmethod
    def build_embed(type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        timestamp = datetime.now(timezone.utc).isoformat()

        if type == "new_subscriber":
            embed = {
                "title": "New Newsletter Subscriber!",
                "description": "Someone just subscribed to the newsletter",
                "color": BLUE,
                "fields": [
                    _field("Email", data.get("email")),
                    _field("Source", data.get("source") or "Homepage"),
                ],
                "footer": {"text": "Newsletter Subscription"},
            }
        elif type == "new_donation":
            embed = {
                "title": "New Donation Received!",
                "description": "Someone just sent support!",
                "color": GREEN,
                "fields": [
                    _field("Amount", f"${data.get('amount') or 0}"),
                    _field("Email", data.get("email") or "Anonymous"),
                ],
                "footer": {"text": "Donation System"},
            }
        elif type == "error_alert":
            embed = {
                "title": "Error Alert!",
                "description": data.get("message") or "An error occurred",
                "color": RED,
                "fields": [
                    _field("Error Type", data.get("errorType")),
                    _field("Location", data.get("location") or "N/A"),
                ],
                "footer": {"text": "Error Monitoring"},
            }
        elif type == "ip_blocked":
            embed = {
                "title": "IP Blocked",
                "description": "An IP has been automatically blocked",
                "color": DARK_RED,
                "fields": [
                    _field("IP Address", data.get("ip")),
                    _field("Reason", data.get("reason") or "Spam pattern detected"),
                    _field("Auto-blocked", "Yes" if data.get("autoBlocked") else "No"),
                ],
                "footer": {"text": "Security System"},
            }
        elif type == "vpn_detected":
            embed = {
                "title": "VPN / Proxy Detected",
                "description": f"Flagged address used the {data.get('action') or 'unknown'} form",
                "color": ORANGE,
                "fields": [
                    _field("IP Address", data.get("ip")),
                    _field("Type", data.get("type")),
                    _field("Risk", data.get("risk")),
                    _field("Network", data.get("asn")),
                    _field("Detections", data.get("count") or 1),
                ],
                "footer": {"text": "Security System"},
            }
        elif type == "block_appeal":
            appeal_type = data.get("appealType") or "IP_Block"
            embed = {
                "title": "Block/Suspension Appeal Submitted",
                "description": (
                    "A suspended account submitted an appeal"
                    if appeal_type.startswith("Account_")
                    else "Someone requested to unblock their IP"
                ),
                "color": ORANGE,
                "fields": [
                    _field("Type", appeal_type.replace("_", " ")),
                    _field("IP Address", data.get("ip")),
                    _field("Email", data.get("email") or "Not provided"),
                    _field("Reason", data.get("reason") or "No reason provided", inline=False),
                ],
                "footer": {"text": "Appeal System"},
            }
        elif type == "new_user_signup":
            embed = {
                "title": "New User Signup",
                "description": "A new user just registered to your site",
                "color": BLUE,
                "fields": [
                    _field("Name", data.get("name")),
                    _field("Email", data.get("email") or "Not provided"),
                ],
                "footer": {"text": "User Registration"},
            }
        else:
            embed = {
                "title": "Notification",
                "description": data.get("message") or "New activity",
                "color": PURPLE,
            }

        embed["timestamp"] = timestamp
        return embed
