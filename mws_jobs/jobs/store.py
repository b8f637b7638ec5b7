"""
Persistence interface for queued jobs.

The lifecycle engine only needs a narrow repository: load a partition, add,
update and delete records, and commit. JobStore is that interface;
SqlAlchemyJobStore implements it on a SQLAlchemy session.

Every read is scoped to one (family, region, merchant_id) partition.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mws_jobs.jobs.models import Job, JobFamily

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """Repository of queued jobs."""

    @abstractmethod
    def get_all(self, family: JobFamily, region: str, merchant_id: str) -> List[Job]:
        """Return every job of the partition, oldest first."""

    @abstractmethod
    def create(self, job: Job) -> None:
        """Add a new job."""

    @abstractmethod
    def update(self, job: Job) -> None:
        """Mark a job as modified."""

    @abstractmethod
    def delete(self, job: Job) -> None:
        """Remove a job. Deleting an already deleted job is a no-op."""

    @abstractmethod
    def save_changes(self) -> None:
        """Persist pending changes."""

    @abstractmethod
    def get(self, job_id: str) -> Optional[Job]:
        """Return a job by id, or None if it does not exist."""


class SqlAlchemyJobStore(JobStore):
    """
    JobStore backed by a SQLAlchemy session.

    The caller owns the session; save_changes() commits it and rolls back
    on failure before re-raising.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_all(self, family: JobFamily, region: str, merchant_id: str) -> List[Job]:
        jobs = (
            self.db.query(Job)
            .filter(
                Job.family == family,
                Job.region == region,
                Job.merchant_id == merchant_id,
            )
            .order_by(Job.created_at.asc(), Job.job_id.asc())
            .all()
        )
        # Deletes not yet flushed are still returned by the query
        return [job for job in jobs if job not in self.db.deleted]

    def get(self, job_id: str) -> Optional[Job]:
        job = self.db.get(Job, job_id)
        if job is None or job in self.db.deleted:
            return None
        return job

    def create(self, job: Job) -> None:
        self.db.add(job)

    def update(self, job: Job) -> None:
        self.db.add(job)

    def delete(self, job: Job) -> None:
        state = inspect(job)
        if state.transient or state.deleted or state.was_deleted or job in self.db.deleted:
            return
        if state.pending:
            self.db.expunge(job)
            return
        self.db.delete(job)

    def save_changes(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "store.commit_failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            raise
