"""
Admission decision for public mutating requests.

Order of checks:

1. allowlist (skips every other check)
2. reputation lookup, which only tightens the limits and opens a VPN alert
3. active block list entry
4. static spam patterns, which auto-block
5. rate limiter, strict table when the reputation lookup flagged the client

Collaborator failures never reject a request: each call goes through
``best_effort`` and the classify call itself admits on any unexpected error.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional, Type

from siteapi.admission.best_effort import best_effort
from siteapi.admission.cooldown import CooldownCache, MemoryCooldownCache
from siteapi.admission.models import AdmissionDecision, ReputationInfo, build_appeal_url
from siteapi.admission.rate_limiter import RateLimiter
from siteapi.config.admission import AdmissionConfig
from siteapi.moderation.ledger import ModerationLedger
from siteapi.moderation.models import BlockEntry
from siteapi.moderation.vpn_alerts import VpnAlertService

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "Unknown"


class AbuseClassifier:

    def __init__(
        self,
        ledger: Optional[ModerationLedger],
        limiter: RateLimiter,
        reputation=None,
        notifier=None,
        cooldowns: Optional[CooldownCache] = None,
        config: Type[AdmissionConfig] = AdmissionConfig,
    ):
        self.ledger = ledger
        self.limiter = limiter
        self.reputation = reputation
        self.notifier = notifier
        self.cooldowns = cooldowns or MemoryCooldownCache()
        self.config = config
        self.alerts = VpnAlertService(ledger) if ledger else None

    def classify(self, client_id: str, action: str, now: Optional[float] = None) -> AdmissionDecision:
        now = time.time() if now is None else now
        client_id = client_id or UNKNOWN_CLIENT
        try:
            return self._classify(client_id, action, now)
        except Exception:
            logger.exception("Admission check failed for %s, allowing request", client_id)
            return AdmissionDecision.admit()

    def _classify(self, client_id: str, action: str, now: float) -> AdmissionDecision:
        moment = datetime.fromtimestamp(now, tz=timezone.utc)

        if self._is_allowlisted(client_id, moment):
            return AdmissionDecision.admit(allowlisted=True)

        reputation = self._lookup(client_id)
        strict = reputation.is_flagged
        if strict:
            self._record_detection(client_id, action, reputation, now, moment)

        block = self._active_block(client_id, moment)
        if block:
            logger.warning(
                "Blocked IP attempt: %s - %s", client_id, block.reason,
                extra={"client_id": client_id, "action": action},
            )
            return AdmissionDecision.reject_blocked(
                "Your IP has been blocked due to suspicious activity",
                appeal_url=build_appeal_url(self.config.APPEAL_PATH, block.reason),
                strict_mode=strict,
                reputation=reputation,
            )

        if self.config.matches_spam_pattern(client_id):
            logger.warning("Spam IP pattern matched: %s", client_id)
            self._auto_block(client_id, moment)
            return AdmissionDecision.reject_blocked(
                "Suspicious IP address detected",
                appeal_url=build_appeal_url(self.config.APPEAL_PATH, self.config.SPAM_BLOCK_REASON),
                strict_mode=strict,
                reputation=reputation,
            )

        verdict = self.limiter.check_and_record(client_id, action, now=now, strict=strict)
        if not verdict.allowed:
            return AdmissionDecision.reject_rate_limited(
                verdict.retry_after_seconds, strict_mode=strict, reputation=reputation
            )
        return AdmissionDecision.admit(strict_mode=strict, reputation=reputation)

    def _is_allowlisted(self, client_id: str, moment: datetime) -> bool:
        if not self.ledger or client_id == UNKNOWN_CLIENT:
            return False
        entry = best_effort(
            self.ledger.find_active_allow, client_id, moment, label="allowlist lookup"
        )
        return entry is not None

    def _lookup(self, client_id: str) -> ReputationInfo:
        if not self.reputation or client_id == UNKNOWN_CLIENT:
            return ReputationInfo.unknown()
        return best_effort(
            self.reputation.lookup, client_id,
            default=ReputationInfo.unknown, label="reputation lookup",
        )

    def _active_block(self, client_id: str, moment: datetime) -> Optional[BlockEntry]:
        if not self.ledger:
            return None
        return best_effort(
            self.ledger.find_active_block, client_id, moment, label="block list lookup"
        )

    def _record_detection(
        self, client_id: str, action: str, reputation: ReputationInfo, now: float, moment: datetime
    ) -> None:
        result = None
        if self.alerts:
            result = best_effort(
                self.alerts.record_detection, client_id, action, reputation, moment,
                label="VPN alert upsert",
            )

        cooldown = self.config.VPN_NOTIFY_COOLDOWN.total_seconds()
        if not self.notifier:
            return
        acquired = best_effort(
            self.cooldowns.acquire, f"vpn:{client_id}:{action}", cooldown, now=now,
            default=False, label="notification cooldown",
        )
        if not acquired:
            return

        count = result[0].count if result else 1
        best_effort(
            self.notifier.send,
            "vpn_detected",
            {
                "ip": client_id,
                "action": action,
                "type": reputation.type,
                "risk": reputation.risk,
                "asn": reputation.asn,
                "count": count,
            },
            label="VPN notification",
        )

    def _auto_block(self, client_id: str, moment: datetime) -> None:
        if self.ledger:
            best_effort(
                self.ledger.upsert_block,
                BlockEntry(
                    ip=client_id,
                    reason=self.config.SPAM_BLOCK_REASON,
                    blocked_at=moment,
                    auto_blocked=True,
                ),
                label="auto block",
            )
        if self.notifier:
            best_effort(
                self.notifier.send,
                "ip_blocked",
                {"ip": client_id, "reason": self.config.SPAM_BLOCK_REASON, "autoBlocked": True},
                label="block notification",
            )
