from __future__ import annotations

import unittest

from packetsync.config import SyncSettings
from packetsync.errors import Outcome, SyncErrorKind
from packetsync.sync.retry import RetryPolicy, run_with_retry


class _ScriptedAttempt:
    def __init__(self, outcomes: list[Outcome[str]]) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    def __call__(self) -> Outcome[str]:
        self.calls += 1
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


def _offline() -> Outcome[str]:
    return Outcome.failure(SyncErrorKind.CONNECTIVITY_FAILURE, "offline")


class RetryTests(unittest.TestCase):
    def test_success_returns_without_sleeping(self) -> None:
        sleeps: list[float] = []
        attempt = _ScriptedAttempt([Outcome.success("done")])
        outcome = run_with_retry(attempt, RetryPolicy(), sleep=sleeps.append)
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.value, "done")
        self.assertEqual(attempt.calls, 1)
        self.assertEqual(sleeps, [])

    def test_connectivity_failure_is_retried_up_to_max_attempts(self) -> None:
        sleeps: list[float] = []
        attempt = _ScriptedAttempt([_offline()])
        outcome = run_with_retry(attempt, RetryPolicy(max_attempts=2, backoff_ms=1000), sleep=sleeps.append)
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.kind, SyncErrorKind.CONNECTIVITY_FAILURE)
        self.assertEqual(attempt.calls, 2)
        self.assertEqual(sleeps, [1.0])

    def test_backoff_is_fixed_between_attempts(self) -> None:
        sleeps: list[float] = []
        attempt = _ScriptedAttempt([_offline()])
        run_with_retry(attempt, RetryPolicy(max_attempts=4, backoff_ms=250), sleep=sleeps.append)
        self.assertEqual(attempt.calls, 4)
        self.assertEqual(sleeps, [0.25, 0.25, 0.25])

    def test_recovers_after_transient_failure(self) -> None:
        attempt = _ScriptedAttempt([_offline(), Outcome.success("ok")])
        outcome = run_with_retry(attempt, RetryPolicy(max_attempts=3, backoff_ms=0), sleep=lambda _: None)
        self.assertTrue(outcome.ok)
        self.assertEqual(attempt.calls, 2)

    def test_non_connectivity_failures_are_not_retried(self) -> None:
        for kind in (
            SyncErrorKind.ENCRYPTION_FAILURE,
            SyncErrorKind.SERVER_REJECTED,
            SyncErrorKind.MALFORMED_RESPONSE,
            SyncErrorKind.PRECONDITION_FAILED,
        ):
            attempt = _ScriptedAttempt([Outcome.failure(kind, "boom")])
            outcome = run_with_retry(attempt, RetryPolicy(max_attempts=5), sleep=lambda _: None)
            self.assertEqual(outcome.kind, kind)
            self.assertEqual(attempt.calls, 1)

    def test_policy_from_settings_and_clamping(self) -> None:
        policy = RetryPolicy.from_settings(SyncSettings(retry_max_attempts=3, retry_backoff_ms=50))
        self.assertEqual(policy, RetryPolicy(max_attempts=3, backoff_ms=50))
        attempt = _ScriptedAttempt([_offline()])
        run_with_retry(attempt, RetryPolicy(max_attempts=0, backoff_ms=-5), sleep=lambda _: None)
        self.assertEqual(attempt.calls, 1)


if __name__ == "__main__":
    unittest.main()
