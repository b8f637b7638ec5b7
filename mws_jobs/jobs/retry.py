"""
Retry, backoff and expiration policy for queued jobs.

Implements the per-stage purge rules evaluated on every sweep:
- submit, download, status and callback retry counters each have a maximum;
  a counter strictly above its maximum purges the job
- a job older than the expiration period is purged regardless of counters
- remote error codes are classified as fatal (purge now) or transient
  (counted retry); unknown codes are transient

Backoff between retries of one stage follows an arithmetic or geometric
progression: initial_delay, then initial_delay + interval * n, or
initial_delay * 2^n.

All functions are pure over a JobSnapshot so purge decisions can be tested
without a database.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from mws_jobs.jobs.models import Job, JobFamily

logger = logging.getLogger(__name__)

# Retry configuration defaults
MAX_SUBMIT_RETRIES = 3
MAX_DOWNLOAD_RETRIES = 3
MAX_STATUS_RETRIES = 3
MAX_CALLBACK_RETRIES = 3
EXPIRATION_PERIOD = timedelta(days=2)
RETRY_INITIAL_DELAY = timedelta(minutes=30)
RETRY_INTERVAL = timedelta(hours=1)
MAX_RETRY_DELAY = timedelta(hours=12)


class RetryPeriodType(str, Enum):
    """How the delay between two retries of the same stage grows."""
    ARITHMETIC = "arithmetic"  # initial, initial + interval, initial + 2 * interval
    GEOMETRIC = "geometric"  # initial, initial * 2, initial * 4


class PolicyAction(str, Enum):
    CONTINUE = "continue"
    PURGE = "purge"


class PurgeReason(str, Enum):
    """Why a job was removed from the queue."""
    SUBMIT_RETRY_EXCEEDED = "submit_retry_exceeded"
    DOWNLOAD_RETRY_EXCEEDED = "download_retry_exceeded"
    STATUS_RETRY_EXCEEDED = "status_retry_exceeded"
    CALLBACK_RETRY_EXCEEDED = "callback_retry_exceeded"
    EXPIRED = "expired"
    FATAL_REMOTE_ERROR = "fatal_remote_error"
    DONE_NO_DATA = "done_no_data"


PURGE_REASON_MESSAGES = {
    PurgeReason.SUBMIT_RETRY_EXCEEDED: "Failure while submitting the request. Max submit retry count exceeded.",
    PurgeReason.DOWNLOAD_RETRY_EXCEEDED: "Failure while downloading the result. Max download retry count exceeded.",
    PurgeReason.STATUS_RETRY_EXCEEDED: "Failure while waiting for a _DONE_ processing status. Max status retry count exceeded.",
    PurgeReason.CALLBACK_RETRY_EXCEEDED: "The result was downloaded but the callback failed. Max callback retry count exceeded.",
    PurgeReason.EXPIRED: "Expiration period exceeded.",
    PurgeReason.FATAL_REMOTE_ERROR: "The remote service rejected the request with a fatal error.",
    PurgeReason.DONE_NO_DATA: "The remote service finished processing but produced no data.",
}


class ErrorCategory(str, Enum):
    """Remote error classification for retry decisions."""
    FATAL = "fatal"  # malformed, denied, unavailable - purge immediately
    TRANSIENT = "transient"  # throttled, not ready, unknown - counted retry


# Fatal error codes per family. Anything not listed is transient.
REPORT_FATAL_ERROR_CODES = frozenset({
    "AccessToReportDenied",
    "InvalidReportId",
    "InvalidReportType",
    "InvalidRequest",
    "ReportNoLongerAvailable",
})

FEED_FATAL_ERROR_CODES = frozenset({
    "AccessToFeedProcessingResultDenied",
    "FeedCanceled",
    "FeedProcessingResultNoLongerAvailable",
    "InputDataError",
    "InvalidFeedType",
    "InvalidRequest",
})

FATAL_ERROR_CODES = {
    JobFamily.REPORT: REPORT_FATAL_ERROR_CODES,
    JobFamily.FEED: FEED_FATAL_ERROR_CODES,
}


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry and expiration thresholds.

    Attributes:
        max_submit_retries: Submit failures tolerated before purge
        max_download_retries: Download/checksum failures tolerated before purge
        max_status_retries: Cancelled/unknown statuses tolerated before purge
        max_callback_retries: Callback failures tolerated before purge
        expiration_period: Age after which an unfinished job is purged
        retry_initial_delay: Delay before the first retry of a stage
        retry_interval: Increment between retries (arithmetic progression)
        retry_period_type: Arithmetic or geometric growth
        max_retry_delay: Upper bound for any retry delay
    """
    max_submit_retries: int = MAX_SUBMIT_RETRIES
    max_download_retries: int = MAX_DOWNLOAD_RETRIES
    max_status_retries: int = MAX_STATUS_RETRIES
    max_callback_retries: int = MAX_CALLBACK_RETRIES
    expiration_period: timedelta = EXPIRATION_PERIOD
    retry_initial_delay: timedelta = RETRY_INITIAL_DELAY
    retry_interval: timedelta = RETRY_INTERVAL
    retry_period_type: RetryPeriodType = RetryPeriodType.ARITHMETIC
    max_retry_delay: timedelta = MAX_RETRY_DELAY


@dataclass(frozen=True)
class JobSnapshot:
    """Immutable view of the fields the policy looks at."""
    job_id: str
    created_at: datetime
    last_interaction_at: Optional[datetime] = None
    submit_retry_count: int = 0
    download_retry_count: int = 0
    status_retry_count: int = 0
    callback_retry_count: int = 0

    @classmethod
    def from_job(cls, job: Job) -> "JobSnapshot":
        return cls(
            job_id=job.job_id,
            created_at=job.created_at_utc(),
            last_interaction_at=job.last_interaction_at_utc(),
            submit_retry_count=job.submit_retry_count or 0,
            download_retry_count=job.download_retry_count or 0,
            status_retry_count=job.status_retry_count or 0,
            callback_retry_count=job.callback_retry_count or 0,
        )


@dataclass(frozen=True)
class PolicyDecision:
    """
    Result of policy evaluation.

    Attributes:
        action: continue or purge
        reason: Purge reason (None when continuing)
    """
    action: PolicyAction
    reason: Optional[PurgeReason] = None

    @property
    def should_purge(self) -> bool:
        return self.action == PolicyAction.PURGE

    @property
    def message(self) -> str:
        return PURGE_REASON_MESSAGES.get(self.reason, "") if self.reason else ""


CONTINUE = PolicyDecision(action=PolicyAction.CONTINUE)


def evaluate(
    snapshot: JobSnapshot,
    policy: RetryPolicy,
    now: datetime,
) -> PolicyDecision:
    """
    Decide whether a job stays in the queue.

    The four counter checks and the expiration check are independent; the
    first one that matches names the purge reason.

    Args:
        snapshot: Job counters and timestamps
        policy: Thresholds
        now: Current time (aware UTC)

    Returns:
        PolicyDecision
    """
    if snapshot.submit_retry_count > policy.max_submit_retries:
        return PolicyDecision(PolicyAction.PURGE, PurgeReason.SUBMIT_RETRY_EXCEEDED)

    if snapshot.download_retry_count > policy.max_download_retries:
        return PolicyDecision(PolicyAction.PURGE, PurgeReason.DOWNLOAD_RETRY_EXCEEDED)

    if snapshot.status_retry_count > policy.max_status_retries:
        return PolicyDecision(PolicyAction.PURGE, PurgeReason.STATUS_RETRY_EXCEEDED)

    if snapshot.callback_retry_count > policy.max_callback_retries:
        return PolicyDecision(PolicyAction.PURGE, PurgeReason.CALLBACK_RETRY_EXCEEDED)

    if is_expired(snapshot, policy, now):
        return PolicyDecision(PolicyAction.PURGE, PurgeReason.EXPIRED)

    return CONTINUE


def is_expired(snapshot: JobSnapshot, policy: RetryPolicy, now: datetime) -> bool:
    """True when the job has been in the queue longer than the expiration period."""
    return now - snapshot.created_at > policy.expiration_period


def calculate_backoff(
    attempt: int,
    policy: RetryPolicy = RetryPolicy(),
) -> timedelta:
    """
    Delay to wait after the given number of failed attempts.

    Formula:
        arithmetic: initial + interval * (attempt - 1)
        geometric:  initial * 2^(attempt - 1)
    capped at max_retry_delay. Zero failures means no delay.

    Args:
        attempt: Number of failures recorded so far for the stage
        policy: Retry policy configuration

    Returns:
        Delay before the stage may be attempted again
    """
    if attempt <= 0:
        return timedelta(0)

    if policy.retry_period_type == RetryPeriodType.GEOMETRIC:
        delay = policy.retry_initial_delay * (2 ** (attempt - 1))
    else:
        delay = policy.retry_initial_delay + policy.retry_interval * (attempt - 1)

    return min(delay, policy.max_retry_delay)


def is_retry_due(
    retry_count: int,
    last_interaction_at: Optional[datetime],
    policy: RetryPolicy,
    now: datetime,
) -> bool:
    """
    Check whether a stage that failed retry_count times may run again.

    A stage that never failed, or was never attempted, is always due.
    """
    if retry_count <= 0 or last_interaction_at is None:
        return True
    return now >= last_interaction_at + calculate_backoff(retry_count, policy)


def classify_error_code(
    error_code: Optional[str],
    family: JobFamily,
) -> ErrorCategory:
    """
    Classify a remote error code.

    Args:
        error_code: Marketplace error code (may be None)
        family: Job family the call belonged to

    Returns:
        FATAL if the code is in the family's fatal table, TRANSIENT otherwise
    """
    if error_code and error_code in FATAL_ERROR_CODES.get(family, frozenset()):
        return ErrorCategory.FATAL
    return ErrorCategory.TRANSIENT


def log_purge_decision(
    job: Job,
    decision: PolicyDecision,
) -> None:
    """
    Log a purge for observability.

    Purges are silent towards the original caller; this log line is the only
    trace left behind.
    """
    logger.warning(
        "job.purged",
        extra={
            "job_id": job.job_id,
            "family": job.family.value if job.family else None,
            "region": job.region,
            "merchant_id": job.merchant_id,
            "reason": decision.reason.value if decision.reason else None,
            "detail": decision.message,
            "submit_retry_count": job.submit_retry_count,
            "download_retry_count": job.download_retry_count,
            "status_retry_count": job.status_retry_count,
            "callback_retry_count": job.callback_retry_count,
        },
    )
