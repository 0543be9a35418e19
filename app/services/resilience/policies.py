"""Retry policies per external-service category."""
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict

from app.core.errors import ErrorCategory


class RetryStrategy(str, Enum):
    """How the delay grows between attempts."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


class RetryPolicy(BaseModel):
    """Immutable retry configuration.

    ``max_retries`` counts the retries after the first attempt, so a policy
    with ``max_retries=3`` runs an operation at most four times.
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int
    base_delay_ms: int
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    timeout_ms: Optional[int] = None


DEFAULT_RETRY_POLICIES: Dict[ErrorCategory, RetryPolicy] = {
    ErrorCategory.DIALER: RetryPolicy(
        max_retries=3, base_delay_ms=1000, strategy=RetryStrategy.EXPONENTIAL, timeout_ms=10000
    ),
    ErrorCategory.CRM: RetryPolicy(
        max_retries=5, base_delay_ms=2000, strategy=RetryStrategy.LINEAR, timeout_ms=15000
    ),
    ErrorCategory.SMS: RetryPolicy(
        max_retries=3, base_delay_ms=1500, strategy=RetryStrategy.EXPONENTIAL, timeout_ms=10000
    ),
    ErrorCategory.DATABASE: RetryPolicy(
        max_retries=2, base_delay_ms=500, strategy=RetryStrategy.FIXED, timeout_ms=5000
    ),
    ErrorCategory.VOICE_PLATFORM: RetryPolicy(
        max_retries=3, base_delay_ms=1000, strategy=RetryStrategy.EXPONENTIAL, timeout_ms=30000
    ),
}


def compute_delay_ms(attempt: int, policy: RetryPolicy) -> int:
    """
    Delay before the given retry attempt.

    Args:
        attempt: 1-based number of the failed attempt being retried
        policy: Policy supplying base delay and strategy

    Returns:
        Delay in milliseconds
    """
    if policy.strategy == RetryStrategy.EXPONENTIAL:
        return policy.base_delay_ms * 2 ** (attempt - 1)
    if policy.strategy == RetryStrategy.LINEAR:
        return policy.base_delay_ms * attempt
    return policy.base_delay_ms
