"""
Job lifecycle state machine.

One sweep over a (family, region, merchant_id) partition runs five stages
in order:

1. cleanup            purge jobs over a retry limit or past expiration
2. submit_next        submit the single most eligible queued job
3. poll_statuses      one batched status lookup for all submitted jobs
4. download_next      download and verify the single oldest ready result
5. dispatch_callbacks deliver every downloaded result, delete on success

A job makes at most one transition per sweep. Each stage commits its own
changes, so a crash between stages loses at most the stage in progress.
Remote and callback failures are handled per job and never abort the sweep.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from mws_jobs.jobs import checksum
from mws_jobs.jobs.archive import create_archive, extract_archive
from mws_jobs.jobs.callbacks import CallbackContext, CallbackDescriptor, CallbackDispatcher
from mws_jobs.jobs.models import Job, JobState
from mws_jobs.jobs.pipelines import (
    JobPipeline,
    STATUS_DONE,
    STATUS_DONE_NO_DATA,
)
from mws_jobs.jobs.retry import (
    RetryPolicy,
    JobSnapshot,
    PolicyAction,
    PolicyDecision,
    PurgeReason,
    evaluate,
    is_retry_due,
    log_purge_decision,
)
from mws_jobs.jobs.store import JobStore
from mws_jobs.models.base import utcnow

logger = logging.getLogger(__name__)

DEFAULT_STATUS_POLL_BATCH_SIZE = 100


@dataclass
class SweepResult:
    """Per-stage counts for one sweep."""
    purged: int = 0
    submitted: int = 0
    submit_failures: int = 0
    ready: int = 0
    requeued: int = 0
    no_data: int = 0
    downloaded: int = 0
    download_failures: int = 0
    callbacks_delivered: int = 0
    callback_failures: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class JobLifecycle:
    """
    Drives the jobs of one partition through their lifecycle.

    Args:
        pipeline: Remote operations for the partition's family
        store: Job repository
        region: Partition region
        merchant_id: Partition merchant
        policy: Retry and expiration thresholds
        callback_dispatcher: Delivers downloaded content. When omitted, one is
            built per lifecycle and its HTTP client is closed after every sweep
        status_poll_batch_size: Max request ids per status lookup
        clock: Returns the current aware UTC time
    """

    def __init__(
        self,
        pipeline: JobPipeline,
        store: JobStore,
        region: str,
        merchant_id: str,
        policy: RetryPolicy = RetryPolicy(),
        callback_dispatcher: Optional[CallbackDispatcher] = None,
        status_poll_batch_size: int = DEFAULT_STATUS_POLL_BATCH_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ):
        if not merchant_id:
            raise ValueError("merchant_id is required")
        if status_poll_batch_size < 1:
            raise ValueError("status_poll_batch_size must be at least 1")

        self.pipeline = pipeline
        self.store = store
        self.region = region
        self.merchant_id = merchant_id
        self.policy = policy
        # A dispatcher built here is closed after each sweep; a passed-in one
        # belongs to the caller
        self._owns_dispatcher = callback_dispatcher is None
        self.callback_dispatcher = callback_dispatcher or CallbackDispatcher()
        self.status_poll_batch_size = status_poll_batch_size
        self.clock = clock

    @property
    def family(self):
        return self.pipeline.family

    def _jobs(self) -> List[Job]:
        return self.store.get_all(self.family, self.region, self.merchant_id)

    def _purge(self, job: Job, decision: PolicyDecision) -> None:
        log_purge_decision(job, decision)
        self.store.delete(job)

    def _log(self, event: str, job: Job, level: int = logging.INFO, **fields) -> None:
        logger.log(
            level,
            event,
            extra={
                "job_id": job.job_id,
                "family": self.family.value,
                "region": self.region,
                "merchant_id": self.merchant_id,
                **fields,
            },
        )

    def sweep(self) -> SweepResult:
        """Run all five stages once."""
        result = SweepResult()
        moved: Set[str] = set()

        try:
            result.purged = self.cleanup()
            self.submit_next(result, moved)
            self.poll_statuses(result, moved)
            self.download_next(result, moved)
            self.dispatch_callbacks(result, moved)
        finally:
            if self._owns_dispatcher:
                self.callback_dispatcher.close()

        logger.info(
            "sweep.completed",
            extra={
                "family": self.family.value,
                "region": self.region,
                "merchant_id": self.merchant_id,
                **result.to_dict(),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Stage 1: cleanup
    # ------------------------------------------------------------------

    def cleanup(self) -> int:
        """Purge every job the retry/expiration policy rejects."""
        now = self.clock()
        purged = 0

        for job in self._jobs():
            decision = evaluate(JobSnapshot.from_job(job), self.policy, now)
            if decision.action == PolicyAction.PURGE:
                self._purge(job, decision)
                purged += 1

        self.store.save_changes()
        return purged

    # ------------------------------------------------------------------
    # Stage 2: submit
    # ------------------------------------------------------------------

    def _next_to_submit(self, now: datetime, moved: Set[str]) -> Optional[Job]:
        candidates = [
            job for job in self._jobs()
            if job.state == JobState.QUEUED
            and job.job_id not in moved
            and is_retry_due(job.submit_retry_count, job.last_interaction_at_utc(), self.policy, now)
        ]
        if not candidates:
            return None
        # Never-contacted jobs first, then least recently contacted
        candidates.sort(key=lambda j: (
            j.last_interaction_at is not None,
            j.last_interaction_at_utc() or j.created_at_utc(),
        ))
        return candidates[0]

    def submit_next(self, result: Optional[SweepResult] = None, moved: Optional[Set[str]] = None) -> Optional[Job]:
        """
        Submit the single most eligible queued job.

        Returns:
            The job that was attempted, or None if nothing was eligible
        """
        result = result if result is not None else SweepResult()
        moved = moved if moved is not None else set()
        now = self.clock()

        job = self._next_to_submit(now, moved)
        if job is None:
            return None

        moved.add(job.job_id)
        job.touch(now)

        try:
            request_id = self.pipeline.submit(job)
        except Exception as e:
            if self.pipeline.is_fatal(e):
                self._purge(job, PolicyDecision(PolicyAction.PURGE, PurgeReason.FATAL_REMOTE_ERROR))
                result.purged += 1
            else:
                job.submit_retry_count += 1
                self.store.update(job)
                result.submit_failures += 1
                self._log(
                    "job.submit_failed", job, logging.WARNING,
                    submit_retry_count=job.submit_retry_count,
                    error=str(e),
                    error_code=getattr(e, "error_code", None),
                    error_type=type(e).__name__,
                )
            self.store.save_changes()
            return job

        if request_id:
            job.mark_submitted(request_id)
            result.submitted += 1
            self._log("job.submitted", job, remote_request_id=request_id)
        else:
            job.submit_retry_count += 1
            result.submit_failures += 1
            self._log(
                "job.submit_failed", job, logging.WARNING,
                submit_retry_count=job.submit_retry_count,
                error="Remote service returned no request id",
            )

        self.store.update(job)
        self.store.save_changes()
        return job

    # ------------------------------------------------------------------
    # Stage 3: status polling
    # ------------------------------------------------------------------

    def poll_statuses(self, result: Optional[SweepResult] = None, moved: Optional[Set[str]] = None) -> int:
        """
        Look up statuses for submitted jobs in one batched call.

        Returns:
            Number of jobs whose state changed
        """
        result = result if result is not None else SweepResult()
        moved = moved if moved is not None else set()
        now = self.clock()

        submitted = [
            job for job in self._jobs()
            if job.state == JobState.SUBMITTED and job.job_id not in moved
        ]
        if not submitted:
            return 0

        submitted.sort(key=lambda j: j.last_interaction_at_utc() or j.created_at_utc())
        batch = submitted[:self.status_poll_batch_size]
        by_request_id: Dict[str, Job] = {job.remote_request_id: job for job in batch}

        try:
            statuses = self.pipeline.poll_status(list(by_request_id))
        except Exception as e:
            logger.warning(
                "job.status_poll_failed",
                extra={
                    "family": self.family.value,
                    "region": self.region,
                    "merchant_id": self.merchant_id,
                    "batch_size": len(batch),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return 0

        for job in batch:
            job.touch(now)
            self.store.update(job)

        changed = 0
        for status in statuses:
            job = by_request_id.pop(status.request_id, None)
            if job is None:
                continue

            if status.status in self.pipeline.pending_statuses:
                continue

            moved.add(job.job_id)
            changed += 1

            if status.status == STATUS_DONE and status.result_id:
                job.mark_result_ready(status.result_id, now)
                result.ready += 1
                self._log("job.result_ready", job, remote_result_id=status.result_id)
            elif status.status == STATUS_DONE_NO_DATA:
                self._purge(job, PolicyDecision(PolicyAction.PURGE, PurgeReason.DONE_NO_DATA))
                result.no_data += 1
            else:
                # Anything else puts the job back in the queue
                previous_request_id = job.remote_request_id
                job.mark_requeued()
                self.store.update(job)
                result.requeued += 1
                self._log(
                    "job.requeued", job, logging.WARNING,
                    processing_status=status.status,
                    remote_request_id=previous_request_id,
                    status_retry_count=job.status_retry_count,
                )

        self.store.save_changes()
        return changed

    # ------------------------------------------------------------------
    # Stage 4: download
    # ------------------------------------------------------------------

    def _next_to_download(self, now: datetime, moved: Set[str]) -> Optional[Job]:
        candidates = [
            job for job in self._jobs()
            if job.state == JobState.AWAITING_DOWNLOAD
            and job.job_id not in moved
            and is_retry_due(job.download_retry_count, job.last_interaction_at_utc(), self.policy, now)
        ]
        if not candidates:
            return None
        candidates.sort(key=lambda j: j.result_ready_at_utc() or j.created_at_utc())
        return candidates[0]

    def download_next(self, result: Optional[SweepResult] = None, moved: Optional[Set[str]] = None) -> Optional[Job]:
        """
        Download and verify the oldest ready result.

        Returns:
            The job that was attempted, or None if nothing was eligible
        """
        result = result if result is not None else SweepResult()
        moved = moved if moved is not None else set()
        now = self.clock()

        job = self._next_to_download(now, moved)
        if job is None:
            return None

        moved.add(job.job_id)
        job.touch(now)

        try:
            fetched = self.pipeline.fetch(job)
        except Exception as e:
            if self.pipeline.is_fatal(e):
                self._purge(job, PolicyDecision(PolicyAction.PURGE, PurgeReason.FATAL_REMOTE_ERROR))
                result.purged += 1
            else:
                job.download_retry_count += 1
                self.store.update(job)
                result.download_failures += 1
                self._log(
                    "job.download_failed", job, logging.WARNING,
                    download_retry_count=job.download_retry_count,
                    error=str(e),
                    error_code=getattr(e, "error_code", None),
                    error_type=type(e).__name__,
                )
            self.store.save_changes()
            return job

        if checksum.verify(fetched.content, fetched.content_md5):
            job.mark_downloaded(create_archive(fetched.content))
            self.pipeline.on_downloaded(job)
            result.downloaded += 1
            self._log("job.downloaded", job, size_bytes=len(fetched.content))
        else:
            job.download_retry_count += 1
            result.download_failures += 1
            self._log(
                "job.checksum_mismatch", job, logging.WARNING,
                download_retry_count=job.download_retry_count,
                expected_md5=fetched.content_md5,
            )

        self.store.update(job)
        self.store.save_changes()
        return job

    # ------------------------------------------------------------------
    # Stage 5: callbacks
    # ------------------------------------------------------------------

    def _deliver(self, job: Job) -> bool:
        try:
            descriptor = CallbackDescriptor.from_dict(job.callback_descriptor)
            content = extract_archive(job.content)
        except Exception as e:
            self._log(
                "job.callback_unreadable", job, logging.ERROR,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        context = CallbackContext(
            job_id=job.job_id,
            family=self.family,
            region=self.region,
            merchant_id=self.merchant_id,
            arguments=dict(descriptor.arguments),
        )
        return self.callback_dispatcher.dispatch(descriptor, content, context)

    def dispatch_callbacks(self, result: Optional[SweepResult] = None, moved: Optional[Set[str]] = None) -> int:
        """
        Deliver every downloaded result; delivered jobs are deleted.

        Returns:
            Number of successful deliveries
        """
        result = result if result is not None else SweepResult()
        moved = moved if moved is not None else set()

        delivered = 0
        for job in self._jobs():
            if job.state != JobState.DOWNLOADED or job.job_id in moved:
                continue

            moved.add(job.job_id)

            if self._deliver(job):
                self.store.delete(job)
                delivered += 1
                result.callbacks_delivered += 1
                self._log("job.completed", job)
            else:
                job.callback_retry_count += 1
                self.store.update(job)
                result.callback_failures += 1
                self._log(
                    "job.callback_failed", job, logging.WARNING,
                    callback_retry_count=job.callback_retry_count,
                )

        self.store.save_changes()
        return delivered
