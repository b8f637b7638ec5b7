"""
Tests for the retry, backoff and expiration policy.

Validates:
- A counter strictly above its maximum purges, equal to it does not
- Each counter produces its own purge reason
- Expiration is independent of the counters
- Arithmetic and geometric backoff, capped at the max delay
- Fatal/transient classification of remote error codes
"""

from datetime import datetime, timezone, timedelta

import pytest

from mws_jobs.jobs.models import JobFamily
from mws_jobs.jobs.retry import (
    RetryPolicy,
    RetryPeriodType,
    JobSnapshot,
    PolicyAction,
    PurgeReason,
    ErrorCategory,
    evaluate,
    is_expired,
    calculate_backoff,
    is_retry_due,
    classify_error_code,
)
from mws_jobs.tests.helpers.factories import build_job

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def snapshot(**overrides) -> JobSnapshot:
    fields = {"job_id": "job-1", "created_at": NOW - timedelta(hours=1)}
    fields.update(overrides)
    return JobSnapshot(**fields)


class TestPurgeDecisions:
    """Tests for evaluate()."""

    def test_fresh_job_continues(self):
        """A new job with no failures stays in the queue."""
        decision = evaluate(snapshot(), RetryPolicy(), NOW)
        assert decision.action == PolicyAction.CONTINUE
        assert decision.reason is None
        assert not decision.should_purge

    @pytest.mark.parametrize("counter,reason", [
        ("submit_retry_count", PurgeReason.SUBMIT_RETRY_EXCEEDED),
        ("download_retry_count", PurgeReason.DOWNLOAD_RETRY_EXCEEDED),
        ("status_retry_count", PurgeReason.STATUS_RETRY_EXCEEDED),
        ("callback_retry_count", PurgeReason.CALLBACK_RETRY_EXCEEDED),
    ])
    def test_counter_above_max_purges_with_reason(self, counter, reason):
        """Each counter exceeding its max yields its own reason."""
        decision = evaluate(snapshot(**{counter: 4}), RetryPolicy(), NOW)
        assert decision.should_purge
        assert decision.reason == reason
        assert decision.message

    @pytest.mark.parametrize("counter", [
        "submit_retry_count",
        "download_retry_count",
        "status_retry_count",
        "callback_retry_count",
    ])
    def test_counter_equal_to_max_continues(self, counter):
        """Reaching the max is allowed; only exceeding it purges."""
        decision = evaluate(snapshot(**{counter: 3}), RetryPolicy(), NOW)
        assert decision.action == PolicyAction.CONTINUE

    def test_zero_max_purges_after_first_failure(self):
        """With a max of 0, a single failure is already too many."""
        policy = RetryPolicy(max_download_retries=0)
        decision = evaluate(snapshot(download_retry_count=1), policy, NOW)
        assert decision.reason == PurgeReason.DOWNLOAD_RETRY_EXCEEDED

    def test_expired_job_purged_without_failures(self):
        """Expiration applies even when every counter is zero."""
        old = snapshot(created_at=NOW - timedelta(days=2, seconds=1))
        decision = evaluate(old, RetryPolicy(), NOW)
        assert decision.reason == PurgeReason.EXPIRED

    def test_job_at_exact_expiration_kept(self):
        """Age equal to the expiration period is not yet expired."""
        edge = snapshot(created_at=NOW - timedelta(days=2))
        assert not is_expired(edge, RetryPolicy(), NOW)
        assert not evaluate(edge, RetryPolicy(), NOW).should_purge

    def test_multiple_conditions_single_decision(self):
        """A job matching several rules gets one decision."""
        both = snapshot(
            submit_retry_count=9,
            callback_retry_count=9,
            created_at=NOW - timedelta(days=10),
        )
        decision = evaluate(both, RetryPolicy(), NOW)
        assert decision.reason == PurgeReason.SUBMIT_RETRY_EXCEEDED

    def test_snapshot_from_job(self):
        """Snapshots copy counters and normalize timestamps to UTC."""
        job = build_job(status_retry_count=2, created_at=datetime(2024, 1, 1, 8, 0))
        snap = JobSnapshot.from_job(job)
        assert snap.status_retry_count == 2
        assert snap.submit_retry_count == 0
        assert snap.created_at.tzinfo is not None
        assert snap.last_interaction_at is None


class TestBackoffCalculation:
    """Tests for retry delay progression."""

    def test_no_failures_no_delay(self):
        """Zero recorded failures means no delay."""
        assert calculate_backoff(0) == timedelta(0)

    def test_arithmetic_progression(self):
        """Arithmetic delays grow by the interval each time."""
        policy = RetryPolicy(
            retry_initial_delay=timedelta(minutes=30),
            retry_interval=timedelta(hours=1),
        )
        assert calculate_backoff(1, policy) == timedelta(minutes=30)
        assert calculate_backoff(2, policy) == timedelta(minutes=90)
        assert calculate_backoff(3, policy) == timedelta(minutes=150)

    def test_geometric_progression(self):
        """Geometric delays double each time."""
        policy = RetryPolicy(
            retry_initial_delay=timedelta(minutes=30),
            retry_period_type=RetryPeriodType.GEOMETRIC,
        )
        assert calculate_backoff(1, policy) == timedelta(minutes=30)
        assert calculate_backoff(2, policy) == timedelta(hours=1)
        assert calculate_backoff(4, policy) == timedelta(hours=4)

    def test_delay_capped_at_max(self):
        """Delay never exceeds max_retry_delay."""
        policy = RetryPolicy(
            retry_period_type=RetryPeriodType.GEOMETRIC,
            max_retry_delay=timedelta(hours=2),
        )
        assert calculate_backoff(10, policy) == timedelta(hours=2)

    def test_retry_due_after_delay(self):
        """A failed stage becomes due once its delay has elapsed."""
        policy = RetryPolicy(retry_initial_delay=timedelta(minutes=30))
        last = NOW - timedelta(minutes=29)
        assert not is_retry_due(1, last, policy, NOW)
        assert is_retry_due(1, last, policy, NOW + timedelta(minutes=1))

    def test_never_failed_always_due(self):
        """Stages without failures are always due."""
        assert is_retry_due(0, NOW, RetryPolicy(), NOW)
        assert is_retry_due(2, None, RetryPolicy(), NOW)


class TestErrorClassification:
    """Tests for remote error code classification."""

    @pytest.mark.parametrize("code", [
        "AccessToReportDenied",
        "InvalidReportId",
        "InvalidReportType",
        "InvalidRequest",
        "ReportNoLongerAvailable",
    ])
    def test_report_fatal_codes(self, code):
        """Report fatal codes purge immediately."""
        assert classify_error_code(code, JobFamily.REPORT) == ErrorCategory.FATAL

    @pytest.mark.parametrize("code", [
        "AccessToFeedProcessingResultDenied",
        "FeedCanceled",
        "FeedProcessingResultNoLongerAvailable",
        "InputDataError",
        "InvalidFeedType",
        "InvalidRequest",
    ])
    def test_feed_fatal_codes(self, code):
        """Feed fatal codes purge immediately."""
        assert classify_error_code(code, JobFamily.FEED) == ErrorCategory.FATAL

    def test_codes_are_family_specific(self):
        """A feed-only code is not fatal for a report job."""
        assert classify_error_code("InvalidFeedType", JobFamily.REPORT) == ErrorCategory.TRANSIENT

    @pytest.mark.parametrize("code", [None, "", "RequestThrottled", "SomethingNew"])
    def test_unknown_codes_transient(self, code):
        """Missing and unknown codes default to transient."""
        assert classify_error_code(code, JobFamily.REPORT) == ErrorCategory.TRANSIENT
