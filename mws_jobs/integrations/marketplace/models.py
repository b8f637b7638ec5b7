"""
Data models for marketplace API requests and responses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any


class Region(str, Enum):
    """Marketplace regions; each one is served by its own endpoint."""

    NORTH_AMERICA = "north_america"
    BRAZIL = "brazil"
    EUROPE = "europe"
    INDIA = "india"
    CHINA = "china"
    JAPAN = "japan"
    AUSTRALIA = "australia"


REGION_ENDPOINTS: Dict[Region, str] = {
    Region.NORTH_AMERICA: "https://mws.amazonservices.com",
    Region.BRAZIL: "https://mws.amazonservices.com",
    Region.EUROPE: "https://mws-eu.amazonservices.com",
    Region.INDIA: "https://mws.amazonservices.in",
    Region.CHINA: "https://mws.amazonservices.com.cn",
    Region.JAPAN: "https://mws.amazonservices.jp",
    Region.AUSTRALIA: "https://mws.amazonservices.com.au",
}


def endpoint_for_region(region: Region) -> str:
    """Return the API root URL for a region."""
    try:
        return REGION_ENDPOINTS[Region(region)]
    except (KeyError, ValueError):
        raise ValueError(f"{region} is unknown - no endpoint configured for it")


def _parse_timestamp(ts: Any) -> Optional[datetime]:
    if not ts:
        return None
    if isinstance(ts, str):
        return datetime.fromisoformat(ts.replace("Z", "+00:00"))
    return None


@dataclass
class ResponseMetadata:
    """Request id and timestamp the marketplace attaches to every response."""

    request_id: str = "unknown"
    timestamp: str = "unknown"

    @classmethod
    def from_headers(cls, headers: Any) -> "ResponseMetadata":
        return cls(
            request_id=headers.get("x-mws-request-id") or "unknown",
            timestamp=headers.get("x-mws-timestamp") or "unknown",
        )


@dataclass
class ReportRequestInfo:
    """Processing state of one report request."""

    report_request_id: str
    report_type: str = ""
    processing_status: str = ""
    generated_report_id: Optional[str] = None
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportRequestInfo":
        return cls(
            report_request_id=data.get("ReportRequestId", ""),
            report_type=data.get("ReportType", ""),
            processing_status=data.get("ReportProcessingStatus", ""),
            generated_report_id=data.get("GeneratedReportId") or None,
            submitted_at=_parse_timestamp(data.get("SubmittedDate")),
            completed_at=_parse_timestamp(data.get("CompletedDate")),
        )


@dataclass
class FeedSubmissionInfo:
    """Processing state of one feed submission."""

    feed_submission_id: str
    feed_type: str = ""
    processing_status: str = ""
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedSubmissionInfo":
        return cls(
            feed_submission_id=data.get("FeedSubmissionId", ""),
            feed_type=data.get("FeedType", ""),
            processing_status=data.get("FeedProcessingStatus", ""),
            submitted_at=_parse_timestamp(data.get("SubmittedDate")),
            completed_at=_parse_timestamp(data.get("CompletedProcessingDate")),
        )


@dataclass
class DownloadedDocument:
    """A downloaded report or processing report with its digest."""

    content: bytes
    content_md5: Optional[str]
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)


@dataclass
class ReportRequestResult:
    """Response to a report request."""

    info: Optional[ReportRequestInfo]
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)


@dataclass
class FeedSubmissionResult:
    """Response to a feed submission."""

    info: Optional[FeedSubmissionInfo]
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)


@dataclass
class ReportRequestList:
    items: List[ReportRequestInfo] = field(default_factory=list)
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)


@dataclass
class FeedSubmissionList:
    items: List[FeedSubmissionInfo] = field(default_factory=list)
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)
