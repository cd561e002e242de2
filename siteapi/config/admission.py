import re
from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class LimitRule:
    """How many admission-checked requests an action allows per window."""

    max_requests: int
    window_minutes: int

    def __post_init__(self):
        if self.max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if self.window_minutes <= 0:
            raise ValueError("window_minutes must be positive")

    @property
    def window_seconds(self) -> float:
        return self.window_minutes * 60.0


class AdmissionConfig:
    """Centralized configuration for the admission-control system."""

    ACTIONS = ("newsletter", "donation", "contact", "signup")
    DEFAULT_ACTION = "newsletter"

    # Normal limits per action
    RATE_LIMITS = {
        "newsletter": LimitRule(max_requests=3, window_minutes=60),
        "donation": LimitRule(max_requests=10, window_minutes=60),
        "contact": LimitRule(max_requests=5, window_minutes=30),
        "signup": LimitRule(max_requests=3, window_minutes=60),
    }

    # Applied when the reputation lookup flags the client
    STRICT_RATE_LIMITS = {
        "newsletter": LimitRule(max_requests=1, window_minutes=60),
        "donation": LimitRule(max_requests=3, window_minutes=60),
        "contact": LimitRule(max_requests=2, window_minutes=30),
        "signup": LimitRule(max_requests=1, window_minutes=60),
    }

    # Known spam ranges
    SPAM_IP_PATTERNS = (
        re.compile(r"^45\.155\."),
        re.compile(r"^185\.220\."),  # Tor exit nodes
    )
    SPAM_BLOCK_REASON = "Matched known spam IP pattern"

    # Probability of pruning empty windows on a request
    SWEEP_PROBABILITY = 0.1

    # Notification throttling for repeat VPN detections
    VPN_NOTIFY_COOLDOWN = timedelta(minutes=15)

    # Outbound call bounds (seconds)
    REPUTATION_TIMEOUT = 3.0
    NOTIFY_TIMEOUT = 3.0

    # Where blocked clients are sent
    APPEAL_PATH = "/blocked.html"

    @classmethod
    def matches_spam_pattern(cls, ip: str) -> bool:
        return any(pattern.search(ip) for pattern in cls.SPAM_IP_PATTERNS)
