"""Outbound mail through Microsoft Graph (client-credentials flow)."""

import logging
import threading
import time
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class MailerError(Exception):
    """Raised when a message could not be handed to the mail service."""


class GraphMailer:
    TOKEN_URL = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
    SEND_URL = "https://graph.microsoft.com/v1.0/users/{sender}/sendMail"
    SCOPE = "https://graph.microsoft.com/.default"

    # Refresh the access token this many seconds before it expires
    TOKEN_LEEWAY = 60

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        sender: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        clock=time.time,
    ):
        if not all([tenant_id, client_id, client_secret, sender]):
            raise MailerError("Mail credentials are not configured")
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.sender = sender
        self.timeout = timeout
        self.session = session or requests.Session()
        self._clock = clock
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return True

    def _access_token(self) -> str:
        with self._lock:
            if self._token and self._clock() < self._token_expires_at - self.TOKEN_LEEWAY:
                return self._token

            try:
                response = self.session.post(
                    self.TOKEN_URL.format(tenant_id=self.tenant_id),
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "scope": self.SCOPE,
                        "grant_type": "client_credentials",
                    },
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                raise MailerError(f"Token endpoint unreachable: {e}") from e

            if response.status_code >= 400:
                raise MailerError(f"Failed to get access token: {response.text[:200]}")

            data = response.json()
            self._token = data["access_token"]
            self._token_expires_at = self._clock() + float(data.get("expires_in", 3600))
            return self._token

    def send(
        self,
        to: str,
        subject: str,
        html_body: Optional[str] = None,
        text_body: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> bool:
        message = {
            "subject": subject,
            "body": {
                "contentType": "HTML" if html_body else "Text",
                "content": html_body or text_body or "",
            },
            "toRecipients": [{"emailAddress": {"address": to}}],
        }
        if reply_to:
            message["replyTo"] = [{"emailAddress": {"address": reply_to}}]

        token = self._access_token()
        try:
            response = self.session.post(
                self.SEND_URL.format(sender=self.sender),
                json={"message": message, "saveToSentItems": False},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise MailerError(f"Mail service unreachable: {e}") from e

        if response.status_code >= 400:
            raise MailerError(f"Failed to send email: {response.status_code} {response.text[:200]}")

        logger.info("Email sent: %s", subject, extra={"recipient_domain": to.rsplit("@", 1)[-1]})
        return True


class NullMailer:
    """Used when mail credentials are absent. Logs and drops every message."""

    @property
    def configured(self) -> bool:
        return False

    def send(self, to, subject, html_body=None, text_body=None, reply_to=None) -> bool:
        logger.warning("Mail not configured, dropping message: %s", subject)
        return False
