import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from siteapi.admission.models import ReputationInfo
from siteapi.moderation.ledger import ModerationLedger
from siteapi.moderation.models import (
    AllowEntry,
    BlockEntry,
    InvalidStateTransition,
    VpnAlert,
    VpnAlertStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


class UnknownAlertAction(ValueError):
    pass


class AlertNotFound(LookupError):
    pass


class VpnAlertService:
    """
    Aggregates reputation-positive detections and applies admin resolutions.

    There is at most one Open alert per (ip, action). A detection arriving after
    the pair's alert was resolved opens a fresh alert instead of reopening the
    old one, so the admin's earlier resolution stays on record.
    """

    ACTIONS = {
        "resolve": VpnAlertStatus.RESOLVED,
        "ignore": VpnAlertStatus.IGNORED,
        "block": VpnAlertStatus.BLOCKED,
        "allowlist": VpnAlertStatus.ALLOWLISTED,
    }

    def __init__(self, ledger: ModerationLedger):
        self.ledger = ledger

    def record_detection(
        self,
        ip: str,
        action: str,
        reputation: ReputationInfo,
        now: Optional[datetime] = None,
    ) -> Tuple[VpnAlert, bool]:
        """Upsert the open alert for the pair. Returns (alert, created)."""
        now = now or utcnow()
        alert = self.ledger.find_open_alert(ip, action)

        if alert:
            alert.count += 1
            alert.last_seen = now
            alert.type = reputation.type
            alert.risk = reputation.risk
            alert.asn = reputation.asn
            alert.provider = reputation.provider
            return self.ledger.save_alert(alert), False

        alert = VpnAlert(
            ip=ip,
            action=action,
            first_seen=now,
            last_seen=now,
            type=reputation.type,
            risk=reputation.risk,
            asn=reputation.asn,
            provider=reputation.provider,
        )
        logger.info("Opening VPN alert for %s on %s", ip, action)
        return self.ledger.create_alert(alert), True

    def update(
        self,
        alert_id: str,
        action: str,
        ip: Optional[str] = None,
        note: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> VpnAlert:
        status = self.ACTIONS.get(str(action or "").lower())
        if status is None:
            raise UnknownAlertAction(f"Unknown action: {action}")

        alert = self.ledger.get_alert(alert_id)
        if not alert:
            raise AlertNotFound(f"VPN alert {alert_id} not found")
        if not alert.is_open:
            raise InvalidStateTransition(f"VPN alert {alert_id} is already {alert.status.value}")

        now = now or utcnow()
        ip = ip or alert.ip
        note = (note or "").strip()

        if status == VpnAlertStatus.BLOCKED:
            self.ledger.upsert_block(BlockEntry(
                ip=ip,
                reason=f"Manual block: {note}" if note else "Manual block from VPN alerts",
                blocked_at=now,
                expires_at=expires_at,
                auto_blocked=False,
            ))
        elif status == VpnAlertStatus.ALLOWLISTED:
            self.ledger.upsert_allow(AllowEntry(
                ip=ip,
                note=note or "Allowlisted from VPN alerts",
                added_at=now,
            ))

        alert.status = status
        alert.last_action_at = now
        if note:
            alert.note = note
        logger.info("VPN alert %s marked %s", alert_id, status.value)
        return self.ledger.save_alert(alert)

    def list(self, limit: int = 200) -> Dict[str, Any]:
        alerts: List[VpnAlert] = self.ledger.list_alerts(limit)
        stats = {"total": len(alerts)}
        for status in VpnAlertStatus:
            stats[status.value.lower()] = sum(1 for a in alerts if a.status == status)
        return {"alerts": [a.to_dict() for a in alerts], "stats": stats}
