import logging
import math
import random
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from siteapi.admission.models import retry_after_minutes
from siteapi.admission.window_store import WindowStore
from siteapi.config.admission import AdmissionConfig, LimitRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after_seconds: Optional[int] = None
    remaining: int = 0
    rule: Optional[LimitRule] = None

    @property
    def retry_after_minutes(self) -> Optional[int]:
        return retry_after_minutes(self.retry_after_seconds)


class RateLimiter:
    """
    Trailing-window limiter keyed by (client, action).

    Timestamps are tracked in seconds with sub-second resolution; only the
    externally reported retry value is rounded up to whole minutes.
    """

    def __init__(
        self,
        store: WindowStore,
        rules: Optional[Mapping[str, LimitRule]] = None,
        strict_rules: Optional[Mapping[str, LimitRule]] = None,
        sweep_probability: float = AdmissionConfig.SWEEP_PROBABILITY,
        random_fn: Callable[[], float] = random.random,
    ):
        self.store = store
        self.rules = dict(rules or AdmissionConfig.RATE_LIMITS)
        self.strict_rules = dict(strict_rules or AdmissionConfig.STRICT_RATE_LIMITS)
        self.sweep_probability = sweep_probability
        self._random = random_fn

    def rule_for(self, action: str, strict: bool = False) -> LimitRule:
        table = self.strict_rules if strict else self.rules
        return table.get(action) or table[AdmissionConfig.DEFAULT_ACTION]

    @staticmethod
    def window_key(client_id: str, action: str) -> str:
        # One window per pair; strict mode only lowers the ceiling
        return f"{client_id}:{action}"

    def check_and_record(
        self,
        client_id: str,
        action: str,
        now: Optional[float] = None,
        strict: bool = False,
    ) -> RateDecision:
        if not client_id:
            raise ValueError("client_id must be a non-empty string")

        now = time.time() if now is None else now
        rule = self.rule_for(action, strict)

        result = self.store.record_if_allowed(
            self.window_key(client_id, action),
            now,
            rule.window_seconds,
            rule.max_requests,
        )

        self._maybe_sweep(now)

        if result.allowed:
            return RateDecision(
                allowed=True,
                remaining=max(0, rule.max_requests - result.count),
                rule=rule,
            )

        retry_after = math.ceil(result.oldest + rule.window_seconds - now)
        logger.info(
            "Rate limit exceeded for %s on action %s", client_id, action,
            extra={"client_id": client_id, "action": action, "strict": strict},
        )
        return RateDecision(
            allowed=False,
            retry_after_seconds=max(1, retry_after),
            remaining=0,
            rule=rule,
        )

    def _maybe_sweep(self, now: float) -> None:
        if self._random() >= self.sweep_probability:
            return
        longest = max(
            rule.window_seconds
            for rule in list(self.rules.values()) + list(self.strict_rules.values())
        )
        self.store.sweep(now, longest)
