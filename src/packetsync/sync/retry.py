"""Bounded fixed-backoff retry for a single sync attempt."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from packetsync.config import SyncSettings
from packetsync.errors import Outcome

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 2
    backoff_ms: int = 1000

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            backoff_ms=settings.retry_backoff_ms,
        )


def run_with_retry(
    attempt: Callable[[], Outcome[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
) -> Outcome[T]:
    max_attempts = max(1, policy.max_attempts)
    backoff_seconds = max(0, policy.backoff_ms) / 1000.0
    outcome: Outcome[T] = attempt()
    attempt_number = 1
    while not outcome.ok and outcome.kind is not None and outcome.kind.retryable:
        if attempt_number >= max_attempts:
            logger.warning(
                "Giving up after %d attempts: %s", attempt_number, outcome.message
            )
            break
        logger.info(
            "Attempt %d failed with %s; retrying in %.3fs",
            attempt_number,
            outcome.kind.value,
            backoff_seconds,
        )
        sleep(backoff_seconds)
        attempt_number += 1
        outcome = attempt()
    return outcome
