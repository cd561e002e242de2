"""
State stores backing the admission rate limiter.

A window store owns the per-(client, action) timestamp sequences. The limiter
never touches the sequences directly: each check is a single atomic
``record_if_allowed`` call, so two concurrent requests can never both observe
``count == max_requests - 1`` and both be admitted.

Nothing here survives a cold start unless the Redis store is used; with the
in-memory store every limit resets when the process restarts.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowResult:
    allowed: bool
    count: int
    oldest: Optional[float] = None


class WindowStore(ABC):
    """Interface for trailing-window request bookkeeping."""

    @abstractmethod
    def record_if_allowed(
        self, key: str, now: float, window_seconds: float, max_requests: int
    ) -> WindowResult:
        """
        Purge entries older than the window, then either append ``now`` and
        allow, or deny and report the oldest retained timestamp.
        """

    @abstractmethod
    def sweep(self, now: float, max_age_seconds: float) -> int:
        """Drop windows with no entries younger than ``max_age_seconds``."""

    @abstractmethod
    def clear(self) -> None:
        """Forget every window."""


class MemoryWindowStore(WindowStore):
    """Process-local store guarded by a single lock."""

    def __init__(self):
        self._windows: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def record_if_allowed(self, key, now, window_seconds, max_requests):
        with self._lock:
            recent = [t for t in self._windows.get(key, []) if now - t < window_seconds]

            if len(recent) >= max_requests:
                self._windows[key] = recent
                return WindowResult(allowed=False, count=len(recent), oldest=min(recent))

            recent.append(now)
            self._windows[key] = recent
            return WindowResult(allowed=True, count=len(recent))

    def sweep(self, now, max_age_seconds):
        removed = 0
        with self._lock:
            for key in list(self._windows):
                recent = [t for t in self._windows[key] if now - t < max_age_seconds]
                if recent:
                    self._windows[key] = recent
                else:
                    del self._windows[key]
                    removed += 1
        if removed:
            logger.debug("Swept %d empty rate-limit windows", removed)
        return removed

    def clear(self):
        with self._lock:
            self._windows.clear()

    def __len__(self):
        return len(self._windows)

    def entries(self, key: str) -> List[float]:
        with self._lock:
            return list(self._windows.get(key, []))


# ZREMRANGEBYSCORE + ZCARD + ZADD must run as one unit
_RECORD_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)

if count >= limit then
  local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
  return {0, count, oldest[2]}
end

redis.call('ZADD', key, now, ARGV[4])
redis.call('PEXPIRE', key, math.ceil(window * 1000))
return {1, count + 1}
"""


class RedisWindowStore(WindowStore):
    """Shared store for multi-instance deployments, one sorted set per window."""

    def __init__(self, client, prefix: str = "admission:window:"):
        self.client = client
        self.prefix = prefix
        self._script = client.register_script(_RECORD_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def record_if_allowed(self, key, now, window_seconds, max_requests):
        member = f"{now:.6f}:{uuid.uuid4().hex}"
        reply = self._script(
            keys=[self._key(key)],
            args=[now, window_seconds, max_requests, member],
        )
        allowed = bool(int(reply[0]))
        count = int(reply[1])
        oldest = float(reply[2]) if len(reply) > 2 and reply[2] is not None else None
        return WindowResult(allowed=allowed, count=count, oldest=oldest)

    def sweep(self, now, max_age_seconds):
        # Keys carry a TTL of one window, Redis evicts them on its own
        return 0

    def clear(self):
        for key in self.client.scan_iter(match=f"{self.prefix}*"):
            self.client.delete(key)
