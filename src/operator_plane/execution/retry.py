"""Retry policy and the retryable egress job.

``RetryPolicy`` is a pure calculator; it never sleeps.  Whoever owns the
retry loop (the egress pipeline, the plan executor) asks it for a delay
and sleeps through an injected function.

Example:
    >>> policy = RetryPolicy(base_delay_ms=100, max_delay_ms=400)
    >>> [policy.backoff_ms(a) for a in range(1, 5)]
    [100, 200, 400, 400]
"""

import uuid
from dataclasses import dataclass, field
from typing import Any

from operator_plane.core.timestamps import now_unix_ms


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with bounded jitter.

    backoff(attempt)          = min(base_delay_ms * 2 ** (attempt - 1), max_delay_ms)
    delay_with_jitter(a, j)   = backoff(a) + min(j, jitter_ms)

    Attributes:
        max_attempts: Total attempts including the first
        base_delay_ms: Delay after the first failed attempt
        max_delay_ms: Cap on the exponential part
        jitter_ms: Upper bound for the random jitter added on top
    """

    max_attempts: int = 5
    base_delay_ms: int = 500
    max_delay_ms: int = 30_000
    jitter_ms: int = 250

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay_ms=settings.retry_base_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            jitter_ms=settings.retry_jitter_ms,
        )

    def backoff_ms(self, attempt: int) -> int:
        """Backoff before the attempt after ``attempt`` (1-based)."""
        exponent = max(attempt, 1) - 1
        # max_delay_ms caps the result long before 2**32
        delay = self.base_delay_ms * (1 << min(exponent, 32))
        return min(delay, self.max_delay_ms)

    def delay_with_jitter_ms(self, attempt: int, jitter_ms: int) -> int:
        return self.backoff_ms(attempt) + min(max(jitter_ms, 0), self.jitter_ms)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts


@dataclass
class EgressJob:
    """One outbound envelope working its way through render → encode → send.

    Mutated in place across attempts; ``attempt`` only ever increases.
    """

    provider: str
    envelope: dict[str, Any]
    max_attempts: int = 5
    job_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    attempt: int = 0
    next_run_at_unix_ms: int = field(default_factory=now_unix_ms)
    plan_cache: Any = None
    last_error: str | None = None

    def __post_init__(self) -> None:
        self.max_attempts = max(1, self.max_attempts)

    def increment_attempt(self) -> int:
        self.attempt += 1
        return self.attempt

    def schedule_next(self, delay_ms: int, now_ms: int | None = None) -> None:
        base = now_unix_ms() if now_ms is None else now_ms
        self.next_run_at_unix_ms = base + max(delay_ms, 0)

    def with_plan(self, plan: Any) -> "EgressJob":
        self.plan_cache = plan
        return self

    def record_error(self, message: str) -> None:
        self.last_error = message

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts
