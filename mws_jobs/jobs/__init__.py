"""Report and feed job queue: lifecycle engine and host API."""

from mws_jobs.jobs.models import (
    Job,
    JobFamily,
    JobState,
)
from mws_jobs.jobs.payloads import ReportRequestPayload, FeedSubmissionPayload
from mws_jobs.jobs.callbacks import (
    CallbackDescriptor,
    CallbackKind,
    CallbackContext,
    CallbackRegistry,
    CallbackDispatcher,
)
from mws_jobs.jobs.dispatcher import JobDispatcher, InvalidArgumentError
from mws_jobs.jobs.lifecycle import JobLifecycle, SweepResult
from mws_jobs.jobs.runner import JobRunner, run_worker_cycle
from mws_jobs.jobs.retry import RetryPolicy, RetryPeriodType, calculate_backoff
from mws_jobs.jobs.store import JobStore, SqlAlchemyJobStore

__all__ = [
    "Job",
    "JobFamily",
    "JobState",
    "ReportRequestPayload",
    "FeedSubmissionPayload",
    "CallbackDescriptor",
    "CallbackKind",
    "CallbackContext",
    "CallbackRegistry",
    "CallbackDispatcher",
    "JobDispatcher",
    "InvalidArgumentError",
    "JobLifecycle",
    "SweepResult",
    "JobRunner",
    "run_worker_cycle",
    "RetryPolicy",
    "RetryPeriodType",
    "calculate_backoff",
    "JobStore",
    "SqlAlchemyJobStore",
]
