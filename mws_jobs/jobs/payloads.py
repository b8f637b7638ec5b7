"""
Request payloads for the two job families.

A payload describes what to ask the marketplace for. It is serialized into
the job record when the job is enqueued and never changes afterwards. Feed
bodies are kept out of the serialized payload and stored archived on the job.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from mws_jobs.jobs.exceptions import InvalidArgumentError
from mws_jobs.jobs.models import JobFamily


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class ReportRequestPayload:
    """Parameters of a report generation request."""

    report_type: str
    marketplace_ids: List[str] = field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    report_options: Optional[str] = None

    family = JobFamily.REPORT

    def validate(self) -> None:
        if not self.report_type:
            raise InvalidArgumentError("Report type is missing", field="report_type")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise InvalidArgumentError("Report start date is after end date", field="start_date")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_type": self.report_type,
            "marketplace_ids": list(self.marketplace_ids),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "report_options": self.report_options,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportRequestPayload":
        return cls(
            report_type=data.get("report_type", ""),
            marketplace_ids=list(data.get("marketplace_ids") or []),
            start_date=_parse_datetime(data.get("start_date")),
            end_date=_parse_datetime(data.get("end_date")),
            report_options=data.get("report_options"),
        )


@dataclass
class FeedSubmissionPayload:
    """Parameters of a feed submission; feed_content is the body to upload."""

    feed_type: str
    feed_content: str = ""
    marketplace_ids: List[str] = field(default_factory=list)
    purge_and_replace: bool = False

    family = JobFamily.FEED

    def validate(self) -> None:
        if not self.feed_type:
            raise InvalidArgumentError("Feed type is missing", field="feed_type")
        if not self.feed_content:
            raise InvalidArgumentError("Feed content is missing", field="feed_content")

    def to_dict(self) -> Dict[str, Any]:
        """Serialized form stored on the job. The body is stored separately."""
        return {
            "feed_type": self.feed_type,
            "marketplace_ids": list(self.marketplace_ids),
            "purge_and_replace": self.purge_and_replace,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], feed_content: str = "") -> "FeedSubmissionPayload":
        return cls(
            feed_type=data.get("feed_type", ""),
            feed_content=feed_content,
            marketplace_ids=list(data.get("marketplace_ids") or []),
            purge_and_replace=bool(data.get("purge_and_replace", False)),
        )


Payload = Union[ReportRequestPayload, FeedSubmissionPayload]

PAYLOAD_TYPES = {
    JobFamily.REPORT: ReportRequestPayload,
    JobFamily.FEED: FeedSubmissionPayload,
}
