"""Tests for RetryPolicy and EgressJob."""

import pytest

from operator_plane.core.config import OperatorSettings
from operator_plane.execution.retry import EgressJob, RetryPolicy


class TestRetryPolicy:
    """Backoff arithmetic."""

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 5
        assert policy.base_delay_ms == 500
        assert policy.max_delay_ms == 30_000
        assert policy.jitter_ms == 250

    def test_exponential_backoff_capped(self):
        policy = RetryPolicy(base_delay_ms=100, max_delay_ms=400)
        assert [policy.backoff_ms(a) for a in (1, 2, 3, 4)] == [100, 200, 400, 400]

    def test_attempt_zero_treated_as_first(self):
        assert RetryPolicy(base_delay_ms=100).backoff_ms(0) == 100

    def test_huge_attempt_does_not_overflow_cap(self):
        assert RetryPolicy(base_delay_ms=500, max_delay_ms=30_000).backoff_ms(10_000) == 30_000

    @pytest.mark.parametrize("jitter, expected", [(0, 200), (50, 250), (250, 450), (999, 450), (-5, 200)])
    def test_jitter_is_bounded(self, jitter, expected):
        policy = RetryPolicy(base_delay_ms=100, max_delay_ms=400, jitter_ms=250)
        assert policy.delay_with_jitter_ms(2, jitter) == expected

    def test_should_retry(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.should_retry(1) is True
        assert policy.should_retry(2) is True
        assert policy.should_retry(3) is False

    def test_from_settings(self):
        settings = OperatorSettings(
            _env_file=None,
            retry_max_attempts=2,
            retry_base_delay_ms=10,
            retry_max_delay_ms=20,
            retry_jitter_ms=5,
        )
        assert RetryPolicy.from_settings(settings) == RetryPolicy(2, 10, 20, 5)


class TestEgressJob:
    """Job bookkeeping."""

    def test_new_job(self):
        job = EgressJob(provider="slack", envelope={"text": "hi"})
        assert job.attempt == 0
        assert job.max_attempts == 5
        assert job.job_id
        assert job.exhausted is False

    def test_max_attempts_clamped(self):
        assert EgressJob(provider="slack", envelope={}, max_attempts=0).max_attempts == 1

    def test_attempts_increase(self):
        job = EgressJob(provider="slack", envelope={}, max_attempts=2)
        assert job.increment_attempt() == 1
        assert job.exhausted is False
        assert job.increment_attempt() == 2
        assert job.exhausted is True

    def test_schedule_next(self):
        job = EgressJob(provider="slack", envelope={})
        job.schedule_next(250, now_ms=1_000)
        assert job.next_run_at_unix_ms == 1_250
        job.schedule_next(-10, now_ms=2_000)
        assert job.next_run_at_unix_ms == 2_000

    def test_plan_and_error(self):
        job = EgressJob(provider="slack", envelope={}).with_plan({"blocks": []})
        job.record_error("boom")
        assert job.plan_cache == {"blocks": []}
        assert job.last_error == "boom"

    def test_unique_ids(self):
        assert EgressJob(provider="a", envelope={}).job_id != EgressJob(provider="a", envelope={}).job_id
