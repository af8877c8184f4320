from dataclasses import dataclass, field
from typing import Callable

from resumerefresh.core.errors import TransmissionFailure


def linear_backoff(base_delay: float) -> Callable[[int], float]:
    """attempt 1 → base, attempt 2 → 2×base, ..."""
    return lambda attempt: max(attempt, 0) * base_delay


def is_transient(error: BaseException) -> bool:
    return isinstance(error, TransmissionFailure) and error.transient


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry: how many attempts, how long to wait, and which errors qualify."""
    max_attempts: int = 3
    base_delay: float = 2.0
    retryable: Callable[[BaseException], bool] = field(default=is_transient)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay cannot be negative")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after a failed attempt before the next one."""
        return linear_backoff(self.base_delay)(attempt)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        return attempt < self.max_attempts and self.retryable(error)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry.max_attempts,
            base_delay=settings.retry.base_delay,
        )
