import ipaddress
import logging
from typing import Optional

import requests

from siteapi.admission.models import ReputationInfo

logger = logging.getLogger(__name__)


class ReputationError(Exception):
    """Raised when the reputation service cannot give an answer."""


def risk_tier(score: Optional[int]) -> str:
    if score is None:
        return "unknown"
    if score < 34:
        return "low"
    if score < 67:
        return "medium"
    return "high"


def is_public_ip(ip: str) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return address.is_global


class ReputationClient:
    """
    Client for a proxycheck.io compatible IP reputation API.

    One lookup per request, bounded by ``timeout`` seconds. Private, loopback
    and unparseable identifiers are answered locally as unknown.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://proxycheck.io/v2",
        timeout: float = 3.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def lookup(self, ip: str) -> ReputationInfo:
        if not is_public_ip(ip):
            return ReputationInfo.unknown()

        params = {"vpn": 1, "risk": 1, "asn": 1}
        if self.api_key:
            params["key"] = self.api_key

        try:
            response = self.session.get(
                f"{self.base_url}/{ip}", params=params, timeout=self.timeout
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ReputationError(f"Reputation lookup failed for {ip}: {e}") from e

        if payload.get("status") not in ("ok", "warning"):
            raise ReputationError(
                f"Reputation service returned {payload.get('status')}: {payload.get('message', '')}"
            )

        entry = payload.get(ip) or {}
        return self._parse(entry)

    @staticmethod
    def _parse(entry: dict) -> ReputationInfo:
        score = entry.get("risk")
        try:
            score = int(score) if score is not None else None
        except (TypeError, ValueError):
            score = None

        return ReputationInfo(
            is_flagged=str(entry.get("proxy", "no")).lower() == "yes",
            type=entry.get("type") or "Unknown",
            risk=risk_tier(score),
            risk_score=score,
            asn=entry.get("asn") or "Unknown",
            provider=entry.get("provider") or entry.get("organisation") or "Unknown",
        )
