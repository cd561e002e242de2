"""
Single home of the fail-open policy.

Collaborator calls made while deciding admission (reputation lookups, ledger
reads and upserts, notifications) go through ``best_effort``: any exception is
logged and replaced by a neutral default so the public forms stay available.
"""

import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


def best_effort(
    fn: Callable[..., Any],
    *args: Any,
    default: Any = None,
    label: Optional[str] = None,
    log_level: int = logging.WARNING,
    **kwargs: Any,
) -> Any:
    """Call ``fn`` and return ``default`` instead of raising."""
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        operation = label or getattr(fn, "__qualname__", repr(fn))
        logger.log(
            log_level,
            f"Best-effort call failed: {operation}",
            extra={
                "operation": operation,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        return default() if callable(default) else default
