"""
Job dispatcher: the host-facing entry point for queueing jobs.

Handles:
- Validating and enqueueing report requests and feed submissions
- Purging every job of a (family, region, merchant_id) partition

Enqueue only writes the record. Submission happens on the next sweep.
"""

import logging
import uuid
from typing import Any, Dict, Union

from mws_jobs.jobs.archive import create_archive
from mws_jobs.jobs.callbacks import CallbackDescriptor
from mws_jobs.jobs.exceptions import InvalidArgumentError
from mws_jobs.jobs.models import Job, JobFamily
from mws_jobs.jobs.payloads import (
    Payload,
    PAYLOAD_TYPES,
    FeedSubmissionPayload,
)
from mws_jobs.jobs.store import JobStore

logger = logging.getLogger(__name__)

__all__ = ["JobDispatcher", "InvalidArgumentError"]


class JobDispatcher:
    """
    Enqueue and purge jobs for one (region, merchant_id) pair.

    Each enqueued job is persisted immediately; results are delivered later
    through its callback descriptor.
    """

    def __init__(self, store: JobStore, region: str, merchant_id: str):
        """
        Initialize job dispatcher.

        Args:
            store: Job repository
            region: Marketplace region
            merchant_id: Merchant identifier

        Raises:
            ValueError: If region or merchant_id is empty
        """
        if not region:
            raise ValueError("region is required")
        if not merchant_id:
            raise ValueError("merchant_id is required")

        self.store = store
        self.region = str(getattr(region, "value", region))
        self.merchant_id = merchant_id

    def _validate(
        self,
        family: JobFamily,
        payload: Payload,
        callback: CallbackDescriptor,
    ) -> None:
        expected_type = PAYLOAD_TYPES.get(family)
        if expected_type is None:
            raise InvalidArgumentError(f"Unsupported job family: {family}", field="family")
        if payload is None:
            raise InvalidArgumentError("Payload is missing", field="payload")
        if not isinstance(payload, expected_type):
            raise InvalidArgumentError(
                f"{family.value} jobs take a {expected_type.__name__} payload",
                field="payload",
            )
        payload.validate()

        if callback is None or callback.is_empty:
            raise InvalidArgumentError("Callback descriptor is missing", field="callback")

    def enqueue(
        self,
        family: Union[JobFamily, str],
        payload: Payload,
        callback: Union[CallbackDescriptor, Dict[str, Any]],
    ) -> str:
        """
        Validate and queue a new job.

        Args:
            family: report or feed
            payload: ReportRequestPayload or FeedSubmissionPayload
            callback: Where the result is delivered

        Returns:
            The new job id

        Raises:
            InvalidArgumentError: If the payload or callback is incomplete
        """
        try:
            family = JobFamily(family)
        except ValueError:
            raise InvalidArgumentError(f"Unsupported job family: {family}", field="family")

        if isinstance(callback, dict):
            try:
                callback = CallbackDescriptor.from_dict(callback)
            except ValueError:
                raise InvalidArgumentError(
                    f"Unsupported callback kind: {callback.get('kind')}", field="callback"
                )

        self._validate(family, payload, callback)

        job_id = str(uuid.uuid4())
        job = Job(
            job_id=job_id,
            family=family,
            region=self.region,
            merchant_id=self.merchant_id,
            payload=payload.to_dict(),
            callback_descriptor=callback.to_dict(),
        )
        if isinstance(payload, FeedSubmissionPayload):
            job.submission_content = create_archive(payload.feed_content.encode("utf-8"))

        self.store.create(job)
        self.store.save_changes()

        logger.info(
            "job.queued",
            extra={
                "job_id": job_id,
                "family": family.value,
                "region": self.region,
                "merchant_id": self.merchant_id,
                "callback_kind": callback.kind.value,
            },
        )

        return job_id

    def purge(self, family: Union[JobFamily, str]) -> int:
        """
        Delete every job of the family in this partition, whatever its state.

        Returns:
            Number of deleted jobs
        """
        family = JobFamily(family)
        jobs = self.store.get_all(family, self.region, self.merchant_id)
        for job in jobs:
            self.store.delete(job)
        self.store.save_changes()

        logger.warning(
            "queue.purged",
            extra={
                "family": family.value,
                "region": self.region,
                "merchant_id": self.merchant_id,
                "deleted_count": len(jobs),
            },
        )
        return len(jobs)
