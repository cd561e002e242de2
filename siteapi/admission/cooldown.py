import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional


class CooldownCache(ABC):
    """Suppresses repeats of the same event key for a cooldown interval."""

    @abstractmethod
    def acquire(self, key: str, ttl_seconds: float, now: Optional[float] = None) -> bool:
        """Return True if the key was not cooling down and start its cooldown."""


class MemoryCooldownCache(CooldownCache):

    def __init__(self):
        self._expiry: Dict[str, float] = {}
        self._lock = threading.Lock()

    def acquire(self, key, ttl_seconds, now=None):
        now = time.time() if now is None else now
        with self._lock:
            expires = self._expiry.get(key)
            if expires is not None and expires > now:
                return False
            self._expiry[key] = now + ttl_seconds
            # Opportunistic cleanup
            for stale in [k for k, v in self._expiry.items() if v <= now]:
                del self._expiry[stale]
            return True


class RedisCooldownCache(CooldownCache):

    def __init__(self, client, prefix: str = "admission:cooldown:"):
        self.client = client
        self.prefix = prefix

    def acquire(self, key, ttl_seconds, now=None):
        return bool(
            self.client.set(f"{self.prefix}{key}", "1", nx=True, ex=max(1, int(ttl_seconds)))
        )
