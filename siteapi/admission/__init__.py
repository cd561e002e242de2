from .best_effort import best_effort
from .classifier import AbuseClassifier
from .cooldown import CooldownCache, MemoryCooldownCache, RedisCooldownCache
from .models import AdmissionDecision, ReputationInfo
from .rate_limiter import RateDecision, RateLimiter
from .reputation import ReputationClient, ReputationError
from .window_store import MemoryWindowStore, RedisWindowStore, WindowStore

__all__ = [
    "AbuseClassifier",
    "AdmissionDecision",
    "CooldownCache",
    "MemoryCooldownCache",
    "MemoryWindowStore",
    "RateDecision",
    "RateLimiter",
    "RedisCooldownCache",
    "RedisWindowStore",
    "ReputationClient",
    "ReputationError",
    "ReputationInfo",
    "WindowStore",
    "best_effort",
]
