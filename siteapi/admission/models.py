import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import quote


def retry_after_minutes(seconds: Optional[int]) -> Optional[int]:
    """Whole minutes to report for a retry delay, rounded up, never below one."""
    if seconds is None:
        return None
    return max(1, math.ceil(seconds / 60))


@dataclass(frozen=True)
class ReputationInfo:
    """Result of an IP reputation lookup."""

    is_flagged: bool = False
    type: str = "Unknown"
    risk: str = "unknown"
    risk_score: Optional[int] = None
    asn: str = "Unknown"
    provider: str = "Unknown"

    @classmethod
    def unknown(cls) -> "ReputationInfo":
        """Neutral result used when no lookup happened or it failed."""
        return cls()

    def to_fields(self) -> Dict[str, Any]:
        return {
            "Type": self.type,
            "Risk": self.risk,
            "ASN": self.asn,
            "Provider": self.provider,
        }


@dataclass
class AdmissionDecision:
    """Verdict handed back to every admission-checked handler."""

    allowed: bool
    reason: str = ""
    blocked: bool = False
    rate_limited: bool = False
    retry_after_seconds: Optional[int] = None
    appeal_url: Optional[str] = None
    strict_mode: bool = False
    allowlisted: bool = False
    reputation: ReputationInfo = field(default_factory=ReputationInfo.unknown)

    @property
    def retry_after_minutes(self) -> Optional[int]:
        return retry_after_minutes(self.retry_after_seconds)

    @property
    def status_code(self) -> int:
        if self.allowed:
            return 200
        if self.blocked:
            return 403
        if self.rate_limited:
            return 429
        return 200

    @classmethod
    def admit(cls, **kwargs) -> "AdmissionDecision":
        return cls(allowed=True, **kwargs)

    @classmethod
    def reject_blocked(cls, reason: str, appeal_url: Optional[str] = None, **kwargs) -> "AdmissionDecision":
        return cls(allowed=False, reason=reason, blocked=True, appeal_url=appeal_url, **kwargs)

    @classmethod
    def reject_rate_limited(cls, retry_after_seconds: int, **kwargs) -> "AdmissionDecision":
        decision = cls(
            allowed=False,
            rate_limited=True,
            retry_after_seconds=retry_after_seconds,
            **kwargs,
        )
        decision.reason = (
            f"Too many requests. Please try again in {decision.retry_after_minutes} minute(s)."
        )
        return decision

    def to_dict(self) -> Dict[str, Any]:
        if self.allowed:
            body: Dict[str, Any] = {"allowed": True, "message": "Request allowed"}
        else:
            body = {"allowed": False, "reason": self.reason}
            if self.blocked:
                body["blocked"] = True
            if self.appeal_url:
                body["appealUrl"] = self.appeal_url
            if self.rate_limited:
                body["rateLimited"] = True
                body["retryAfterMinutes"] = self.retry_after_minutes

        if self.allowlisted:
            body["allowlisted"] = True
        if self.reputation.is_flagged:
            body["vpnDetected"] = True
            body["vpnType"] = self.reputation.type
            body["vpnRisk"] = self.reputation.risk
        return body


def build_appeal_url(path: str, reason: str) -> str:
    return f"{path}?reason={quote(reason, safe='')}"
