"""
Fake marketplace client for testing.

Provides deterministic responses without making real API calls.
Supports configuring processing statuses, downloadable documents and
per-method failures for different test scenarios.
"""

from typing import Any, Dict, List, Optional, Tuple

from mws_jobs.integrations.marketplace.exceptions import (
    MarketplaceError,
    MarketplaceNotFoundError,
)
from mws_jobs.integrations.marketplace.models import (
    ReportRequestInfo,
    FeedSubmissionInfo,
    DownloadedDocument,
    ReportRequestResult,
    FeedSubmissionResult,
    ReportRequestList,
    FeedSubmissionList,
)
from mws_jobs.jobs.checksum import compute_md5


class FakeMarketplaceClient:
    """
    Fake marketplace client for testing.

    Features:
    - Deterministic request ids (RR-1, RR-2 ... / FS-1, FS-2 ...)
    - New requests start in _SUBMITTED_ until the test changes the status
    - Every call is recorded in .calls
    - Failures can be configured per method, optionally for N calls only
    """

    def __init__(self):
        """Initialize fake client with empty state."""
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.statuses: Dict[str, Tuple[str, Optional[str]]] = {}
        self.documents: Dict[str, Tuple[bytes, Optional[str]]] = {}
        self.return_empty_ids = False
        self.closed = False
        self._failures: Dict[str, List[Any]] = {}
        self._next_id = 1

    def reset(self) -> None:
        """Reset all fake state."""
        self.__init__()

    def configure_failure(
        self,
        method: str,
        error: Optional[Exception] = None,
        times: Optional[int] = None,
    ) -> None:
        """Make a method raise, forever or for the next `times` calls."""
        self._failures[method] = [error or MarketplaceError("Fake API failure"), times]

    def clear_failure(self, method: str) -> None:
        self._failures.pop(method, None)

    def set_status(self, request_id: str, status: str, result_id: Optional[str] = None) -> None:
        self.statuses[request_id] = (status, result_id)

    def set_document(
        self,
        result_id: str,
        content: bytes,
        content_md5: Optional[str] = None,
    ) -> None:
        """Make a result downloadable; the digest defaults to the correct one."""
        self.documents[result_id] = (content, content_md5 if content_md5 is not None else compute_md5(content))

    def complete(self, request_id: str, content: bytes, result_id: Optional[str] = None) -> str:
        """Mark a request _DONE_ and make its result downloadable."""
        result_id = result_id or request_id
        self.set_status(request_id, "_DONE_", result_id)
        self.set_document(result_id, content)
        return result_id

    def calls_to(self, method: str) -> List[Dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    def _record(self, method: str, **kwargs) -> None:
        self.calls.append((method, kwargs))
        failure = self._failures.get(method)
        if failure is None:
            return
        error, times = failure
        if times is not None:
            failure[1] = times - 1
            if failure[1] <= 0:
                self._failures.pop(method)
        raise error

    def _new_id(self, prefix: str) -> str:
        request_id = f"{prefix}-{self._next_id}"
        self._next_id += 1
        self.statuses[request_id] = ("_SUBMITTED_", None)
        return request_id

    def _document(self, result_id: str) -> DownloadedDocument:
        if result_id not in self.documents:
            raise MarketplaceNotFoundError(f"No document {result_id}", resource_id=result_id)
        content, content_md5 = self.documents[result_id]
        return DownloadedDocument(content=content, content_md5=content_md5)

    # Reports

    def request_report(self, merchant_id: str, report_type: str, **kwargs) -> ReportRequestResult:
        self._record("request_report", merchant_id=merchant_id, report_type=report_type, **kwargs)
        if self.return_empty_ids:
            return ReportRequestResult(info=None)
        request_id = self._new_id("RR")
        return ReportRequestResult(
            info=ReportRequestInfo(
                report_request_id=request_id,
                report_type=report_type,
                processing_status="_SUBMITTED_",
            )
        )

    def get_report_request_list(self, merchant_id: str, report_request_ids: List[str]) -> ReportRequestList:
        self._record("get_report_request_list", merchant_id=merchant_id, report_request_ids=list(report_request_ids))
        return ReportRequestList(items=[
            ReportRequestInfo(
                report_request_id=request_id,
                processing_status=self.statuses[request_id][0],
                generated_report_id=self.statuses[request_id][1],
            )
            for request_id in report_request_ids
            if request_id in self.statuses
        ])

    def get_report(self, merchant_id: str, report_id: str) -> DownloadedDocument:
        self._record("get_report", merchant_id=merchant_id, report_id=report_id)
        return self._document(report_id)

    # Feeds

    def submit_feed(
        self,
        merchant_id: str,
        feed_type: str,
        feed_content: bytes,
        content_md5: str,
        **kwargs,
    ) -> FeedSubmissionResult:
        self._record(
            "submit_feed",
            merchant_id=merchant_id,
            feed_type=feed_type,
            feed_content=feed_content,
            content_md5=content_md5,
            **kwargs,
        )
        if self.return_empty_ids:
            return FeedSubmissionResult(info=None)
        submission_id = self._new_id("FS")
        return FeedSubmissionResult(
            info=FeedSubmissionInfo(
                feed_submission_id=submission_id,
                feed_type=feed_type,
                processing_status="_SUBMITTED_",
            )
        )

    def get_feed_submission_list(self, merchant_id: str, feed_submission_ids: List[str]) -> FeedSubmissionList:
        self._record("get_feed_submission_list", merchant_id=merchant_id, feed_submission_ids=list(feed_submission_ids))
        return FeedSubmissionList(items=[
            FeedSubmissionInfo(
                feed_submission_id=submission_id,
                processing_status=self.statuses[submission_id][0],
            )
            for submission_id in feed_submission_ids
            if submission_id in self.statuses
        ])

    def get_feed_submission_result(self, merchant_id: str, feed_submission_id: str) -> DownloadedDocument:
        self._record("get_feed_submission_result", merchant_id=merchant_id, feed_submission_id=feed_submission_id)
        return self._document(feed_submission_id)

    def close(self) -> None:
        self.closed = True
