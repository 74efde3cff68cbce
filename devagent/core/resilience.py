"""
Resilience Layer - rate-limit aware retry and ordered fallback.

Provides the error classification, the exponential backoff loop and the
fallback chain used by the translation client.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Sequence, Tuple

from devagent.core.errors import RateLimitError

logger = logging.getLogger(__name__)

RATE_LIMIT_MARKERS = ("429", "rate limit", "quota exceeded", "too many requests")


def is_rate_limit_message(message: str) -> bool:
    """True if an error message reads like rate limiting."""
    lowered = (message or "").lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def is_rate_limit_error(exc: BaseException) -> bool:
    """Classify an exception as rate limiting (retryable) or not."""
    if isinstance(exc, RateLimitError):
        return True
    if getattr(exc, "status_code", None) == 429:
        return True
    return is_rate_limit_message(str(exc))


def retry_on_rate_limit(
    func: Callable[[], Any],
    max_retries: int,
    delay_for_attempt: Callable[[int], float],
    sleep: Callable[[float], None] = time.sleep,
    label: str = "call",
) -> Any:
    """
    Call ``func`` up to ``max_retries + 1`` times.

    Only rate-limit failures are retried; after failed attempt n the loop
    sleeps ``delay_for_attempt(n)`` seconds.  Any other exception, or the
    last rate-limit failure, propagates.

    Args:
        func: Zero-argument callable to run
        max_retries: Retries after the first attempt
        delay_for_attempt: Seconds to wait after failed attempt n (0-indexed)
        sleep: Wait function (injectable for hosts and tests)
        label: Name used in log messages
    """
    for attempt in range(max_retries + 1):
        try:
            return func()
        except Exception as e:
            if not is_rate_limit_error(e):
                logger.warning("%s failed (not retryable): %s", label, e)
                raise
            if attempt >= max_retries:
                logger.error(
                    "%s still rate limited after %d attempts: %s",
                    label, attempt + 1, e,
                )
                raise
            delay = delay_for_attempt(attempt)
            logger.warning(
                "%s rate limited, retrying in %.1fs (attempt %d/%d)",
                label, delay, attempt + 1, max_retries + 1,
            )
            sleep(delay)
    raise RuntimeError(f"{label}: retry loop ended without a result")


class FallbackChain:
    """
    Ordered chain of fallback strategies.

    Each strategy is tried exactly once, in order, until one returns a
    value without raising.
    """

    def __init__(self, strategies: Sequence[Tuple[str, Callable[[], Any]]]) -> None:
        """
        Args:
            strategies: (name, zero-argument callable) pairs in priority order
        """
        self.strategies = list(strategies)

    def execute(self) -> Dict[str, Any]:
        """Execute with fallback chain."""
        errors: List[str] = []

        for i, (name, func) in enumerate(self.strategies):
            logger.info(
                "Trying strategy %d/%d: %s", i + 1, len(self.strategies), name
            )
            try:
                result = func()
            except Exception as e:
                errors.append(f"{name}: {e}")
                logger.warning("Strategy '%s' failed: %s", name, e)
                continue

            logger.info("Strategy '%s' succeeded", name)
            return {
                "success": True,
                "result": result,
                "strategy_used": name,
                "attempts": i + 1,
                "errors": errors,
            }

        return {
            "success": False,
            "result": None,
            "strategy_used": None,
            "error": "All strategies failed" if self.strategies else "No strategies available",
            "errors": errors,
            "attempts": len(self.strategies),
        }
