"""
Family pipelines: the remote calls behind each lifecycle stage.

A pipeline adapts one job family to the marketplace client:
- submit: send the request, return the remote request id
- poll_status: batch processing-status lookup by request id
- fetch: download the result together with its digest
- on_downloaded: family-specific bookkeeping after a verified download

Pipelines raise whatever the client raises. The lifecycle decides between
an immediate purge and a counted retry with is_fatal().
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import FrozenSet, List, Optional

from mws_jobs.integrations.marketplace import MarketplaceClient, MarketplaceError
from mws_jobs.jobs.archive import extract_archive
from mws_jobs.jobs.checksum import compute_md5
from mws_jobs.jobs.models import Job, JobFamily
from mws_jobs.jobs.payloads import ReportRequestPayload, FeedSubmissionPayload
from mws_jobs.jobs.retry import ErrorCategory, classify_error_code

logger = logging.getLogger(__name__)

# Processing statuses shared by both families
STATUS_DONE = "_DONE_"
STATUS_DONE_NO_DATA = "_DONE_NO_DATA_"
STATUS_CANCELLED = "_CANCELLED_"
STATUS_SUBMITTED = "_SUBMITTED_"
STATUS_IN_PROGRESS = "_IN_PROGRESS_"

# Feed-only intermediate statuses
STATUS_AWAITING_ASYNCHRONOUS_REPLY = "_AWAITING_ASYNCHRONOUS_REPLY_"
STATUS_IN_SAFETY_NET = "_IN_SAFETY_NET_"
STATUS_UNCONFIRMED = "_UNCONFIRMED_"


@dataclass(frozen=True)
class RemoteStatus:
    """Processing status of one submitted request."""
    request_id: str
    status: str
    result_id: Optional[str] = None


@dataclass(frozen=True)
class FetchResult:
    """Downloaded bytes and the digest the remote service sent with them."""
    content: bytes
    content_md5: Optional[str]


class JobPipeline(ABC):
    """Remote operations for one job family, scoped to a merchant."""

    family: JobFamily
    pending_statuses: FrozenSet[str] = frozenset({STATUS_SUBMITTED, STATUS_IN_PROGRESS})

    def __init__(self, client: MarketplaceClient, merchant_id: str):
        self.client = client
        self.merchant_id = merchant_id

    @abstractmethod
    def submit(self, job: Job) -> Optional[str]:
        """Send the job's request; returns the remote request id."""

    @abstractmethod
    def poll_status(self, request_ids: List[str]) -> List[RemoteStatus]:
        """Look up processing statuses for a batch of request ids."""

    @abstractmethod
    def fetch(self, job: Job) -> FetchResult:
        """Download the result identified by job.remote_result_id."""

    def on_downloaded(self, job: Job) -> None:
        """Called after content has been verified and stored."""

    def classify(self, error: Exception) -> ErrorCategory:
        """
        Classify an exception raised by this pipeline.

        Only marketplace errors carrying a fatal code for this family are
        fatal. Network failures, timeouts and anything unexpected are
        transient.
        """
        if isinstance(error, MarketplaceError):
            return classify_error_code(error.error_code, self.family)
        return ErrorCategory.TRANSIENT

    def is_fatal(self, error: Exception) -> bool:
        return self.classify(error) == ErrorCategory.FATAL


class ReportPipeline(JobPipeline):
    """Request a report, poll until generated, download it."""

    family = JobFamily.REPORT

    def submit(self, job: Job) -> Optional[str]:
        payload = ReportRequestPayload.from_dict(job.payload)
        result = self.client.request_report(
            merchant_id=self.merchant_id,
            report_type=payload.report_type,
            marketplace_ids=payload.marketplace_ids,
            start_date=payload.start_date,
            end_date=payload.end_date,
            report_options=payload.report_options,
        )
        if result.info is None:
            return None
        return result.info.report_request_id or None

    def poll_status(self, request_ids: List[str]) -> List[RemoteStatus]:
        listing = self.client.get_report_request_list(
            merchant_id=self.merchant_id,
            report_request_ids=request_ids,
        )
        return [
            RemoteStatus(
                request_id=info.report_request_id,
                status=info.processing_status,
                result_id=info.generated_report_id,
            )
            for info in listing.items
        ]

    def fetch(self, job: Job) -> FetchResult:
        document = self.client.get_report(
            merchant_id=self.merchant_id,
            report_id=job.remote_result_id,
        )
        return FetchResult(content=document.content, content_md5=document.content_md5)


class FeedPipeline(JobPipeline):
    """
    Submit a feed, poll until processed, download the processing report.

    The processing report is fetched by feed submission id, so the result id
    of a finished feed is its request id. Once the report is downloaded the
    submitted body is no longer needed and is dropped from the job.
    """

    family = JobFamily.FEED
    pending_statuses = JobPipeline.pending_statuses | frozenset({
        STATUS_AWAITING_ASYNCHRONOUS_REPLY,
        STATUS_IN_SAFETY_NET,
        STATUS_UNCONFIRMED,
    })

    def submit(self, job: Job) -> Optional[str]:
        payload = FeedSubmissionPayload.from_dict(job.payload)
        body = extract_archive(job.submission_content)
        result = self.client.submit_feed(
            merchant_id=self.merchant_id,
            feed_type=payload.feed_type,
            feed_content=body,
            content_md5=compute_md5(body),
            marketplace_ids=payload.marketplace_ids,
            purge_and_replace=payload.purge_and_replace,
        )
        if result.info is None:
            return None
        return result.info.feed_submission_id or None

    def poll_status(self, request_ids: List[str]) -> List[RemoteStatus]:
        listing = self.client.get_feed_submission_list(
            merchant_id=self.merchant_id,
            feed_submission_ids=request_ids,
        )
        return [
            RemoteStatus(
                request_id=info.feed_submission_id,
                status=info.processing_status,
                result_id=info.feed_submission_id,
            )
            for info in listing.items
        ]

    def fetch(self, job: Job) -> FetchResult:
        document = self.client.get_feed_submission_result(
            merchant_id=self.merchant_id,
            feed_submission_id=job.remote_result_id,
        )
        return FetchResult(content=document.content, content_md5=document.content_md5)

    def on_downloaded(self, job: Job) -> None:
        job.submission_content = None


PIPELINES = {
    JobFamily.REPORT: ReportPipeline,
    JobFamily.FEED: FeedPipeline,
}


def get_pipeline(family: JobFamily, client: MarketplaceClient, merchant_id: str) -> JobPipeline:
    """Build the pipeline for a job family."""
    try:
        pipeline_class = PIPELINES[JobFamily(family)]
    except (KeyError, ValueError):
        raise ValueError(f"Unsupported job family: {family}")
    return pipeline_class(client, merchant_id)
