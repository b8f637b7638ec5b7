"""
Queued job model for the report/feed lifecycle engine.

Defines the Job model that tracks one report request or feed submission:
- Partition isolation via PartitionScopedMixin (region + merchant_id)
- Remote identifiers (request id, result id) that drive the lifecycle state
- Four independent per-stage retry counters
- Archived content and the caller-supplied callback descriptor

The lifecycle state is derived from the fields and never stored.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    String,
    Integer,
    Enum,
    DateTime,
    Index,
    JSON,
    LargeBinary,
)
from sqlalchemy.dialects.postgresql import JSONB

from mws_jobs.db_base import Base
from mws_jobs.models.base import (
    TimestampMixin,
    PartitionScopedMixin,
    generate_uuid,
    utcnow,
    as_utc,
)

# Use JSONB for PostgreSQL, JSON for other databases (testing)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class JobFamily(str, enum.Enum):
    """Job family enumeration."""
    REPORT = "report"
    FEED = "feed"


class JobState(str, enum.Enum):
    """
    Lifecycle state, derived from the record fields.

    queued -> submitted -> awaiting_download -> downloaded -> (deleted)
    """
    QUEUED = "queued"
    SUBMITTED = "submitted"
    AWAITING_DOWNLOAD = "awaiting_download"
    DOWNLOADED = "downloaded"


class Job(Base, TimestampMixin, PartitionScopedMixin):
    """
    One report request or feed submission tracked through its lifecycle.

    Attributes:
        job_id: Primary key (UUID)
        family: report or feed (immutable)
        region: Marketplace region (partition key)
        merchant_id: Merchant identifier (partition key)
        payload: Family-specific request description (immutable)
        remote_request_id: Set once the remote service accepts the submission
        remote_result_id: Set once the remote service reports the job as done
        result_ready_at: When remote_result_id was set
        content: Archived downloaded content, set after a verified download
        submission_content: Archived feed body awaiting submission
        last_interaction_at: Last remote call attempt for this job
        submit_retry_count: Failed submit attempts
        download_retry_count: Failed download attempts
        status_retry_count: Cancelled/unrecognized processing statuses
        callback_retry_count: Failed callback deliveries
        callback_descriptor: Serialized CallbackDescriptor (immutable)
    """

    __tablename__ = "queued_jobs"

    job_id = Column(
        String(255),
        primary_key=True,
        default=generate_uuid,
        comment="Primary key (UUID)"
    )

    family = Column(
        Enum(JobFamily),
        nullable=False,
        index=True,
        comment="Job family: report or feed"
    )

    payload = Column(
        JSONType,
        nullable=False,
        comment="Family-specific request description"
    )

    # Remote identifiers
    remote_request_id = Column(
        String(255),
        nullable=True,
        index=True,
        comment="Remote id assigned when the submission is accepted"
    )
    remote_result_id = Column(
        String(255),
        nullable=True,
        comment="Remote id of the generated result"
    )
    result_ready_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the remote service reported the result as ready"
    )

    # Content
    content = Column(
        LargeBinary,
        nullable=True,
        comment="Archived downloaded content"
    )
    submission_content = Column(
        LargeBinary,
        nullable=True,
        comment="Archived content to submit (feeds only)"
    )

    last_interaction_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Most recent remote call attempt"
    )

    # Retry tracking
    submit_retry_count = Column(Integer, default=0, nullable=False)
    download_retry_count = Column(Integer, default=0, nullable=False)
    status_retry_count = Column(Integer, default=0, nullable=False)
    callback_retry_count = Column(Integer, default=0, nullable=False)

    callback_descriptor = Column(
        JSONType,
        nullable=False,
        comment="Serialized callback descriptor"
    )

    __table_args__ = (
        # All queue scans are partition-scoped
        Index("ix_queued_jobs_partition", "family", "region", "merchant_id"),
        Index("ix_queued_jobs_remote_ids", "remote_request_id", "remote_result_id"),
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("submit_retry_count", 0)
        kwargs.setdefault("download_retry_count", 0)
        kwargs.setdefault("status_retry_count", 0)
        kwargs.setdefault("callback_retry_count", 0)
        kwargs.setdefault("created_at", utcnow())
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return (
            f"<Job("
            f"job_id={self.job_id}, "
            f"family={self.family.value if self.family else None}, "
            f"region={self.region}, "
            f"merchant_id={self.merchant_id}, "
            f"state={self.state.value}"
            f")>"
        )

    @property
    def state(self) -> JobState:
        """Current lifecycle state."""
        if self.content is not None:
            return JobState.DOWNLOADED
        if self.remote_request_id is None:
            return JobState.QUEUED
        if self.remote_result_id is None:
            return JobState.SUBMITTED
        return JobState.AWAITING_DOWNLOAD

    def created_at_utc(self) -> Optional[datetime]:
        return as_utc(self.created_at)

    def last_interaction_at_utc(self) -> Optional[datetime]:
        return as_utc(self.last_interaction_at)

    def result_ready_at_utc(self) -> Optional[datetime]:
        return as_utc(self.result_ready_at)

    def mark_submitted(self, remote_request_id: str) -> None:
        """Record the id the remote service assigned to the submission."""
        self.remote_request_id = remote_request_id
        self.submit_retry_count = 0

    def mark_result_ready(self, remote_result_id: str, now: Optional[datetime] = None) -> None:
        """Move to awaiting-download with the generated result id."""
        self.remote_result_id = remote_result_id
        self.result_ready_at = now or utcnow()
        self.status_retry_count = 0

    def mark_requeued(self) -> None:
        """Put the job back in the submit queue after a cancelled/unknown status."""
        self.remote_request_id = None
        self.remote_result_id = None
        self.result_ready_at = None
        self.status_retry_count += 1

    def mark_downloaded(self, archived_content: bytes) -> None:
        """Store verified, archived content."""
        self.content = archived_content
        self.download_retry_count = 0

    def touch(self, now: Optional[datetime] = None) -> None:
        """Record a remote call attempt."""
        self.last_interaction_at = now or utcnow()
