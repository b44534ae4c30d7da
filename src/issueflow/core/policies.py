"""Per-stage execution policies.

A StagePolicy bounds one executor stage:
- deadline for each attempt
- retry count with exponential backoff

The scheduler never retries; retries belong to the stage that failed.
"""

from __future__ import annotations

from dataclasses import dataclass

STAGES = ("classify", "generate", "review", "publish")


@dataclass(frozen=True)
class StagePolicy:
    """Deadline and retry settings for a stage.

    Attributes:
        timeout_seconds: Deadline per attempt. None means no deadline.
        retry_count: Extra attempts after the first failure (0 = no retries).
        retry_delay_ms: Delay before the first retry in milliseconds.
        retry_backoff: Multiplier applied to the delay after each retry.

    Example:
        # Give generation 10 minutes and two retries: 1s, then 2s apart
        policy = StagePolicy(timeout_seconds=600, retry_count=2, retry_delay_ms=1000)
    """

    timeout_seconds: float | None = 300.0
    retry_count: int = 0
    retry_delay_ms: int = 1000
    retry_backoff: float = 2.0

    def __post_init__(self) -> None:
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

        if self.retry_count < 0:
            raise ValueError("retry_count cannot be negative")

        if self.retry_delay_ms < 0:
            raise ValueError("retry_delay_ms cannot be negative")

        if self.retry_backoff < 1.0:
            raise ValueError("retry_backoff must be >= 1.0")

    def get_delay_for_attempt(self, attempt: int) -> float:
        """Delay in seconds before retrying after the given (0-indexed) attempt."""
        delay_ms = self.retry_delay_ms * (self.retry_backoff**attempt)
        return delay_ms / 1000.0

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.retry_count


def default_policies(timeout_seconds: float | None = 300.0) -> dict[str, StagePolicy]:
    """One policy per stage, all sharing the same deadline and no retries."""
    return {stage: StagePolicy(timeout_seconds=timeout_seconds) for stage in STAGES}
