"""
Marketplace API client for report requests and feed submissions.

This client handles:
- Report requests (request, list processing statuses, download)
- Feed submissions (submit, list processing statuses, download processing report)
- Request signing with the seller's access key / secret key
- Mapping HTTP and marketplace error responses to typed exceptions

The client is synchronous: one queue sweep performs its remote calls one
after the other and returns.

SECURITY: The secret key must be stored securely and never logged.
"""

import base64
import hashlib
import hmac
import logging
import os
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from urllib.parse import urlencode, urlsplit

import httpx

from mws_jobs.integrations.marketplace.exceptions import (
    MarketplaceError,
    MarketplaceAuthenticationError,
    MarketplaceRateLimitError,
    MarketplaceConnectionError,
    MarketplaceNotFoundError,
)
from mws_jobs.integrations.marketplace.models import (
    Region,
    endpoint_for_region,
    ResponseMetadata,
    ReportRequestInfo,
    FeedSubmissionInfo,
    DownloadedDocument,
    ReportRequestResult,
    FeedSubmissionResult,
    ReportRequestList,
    FeedSubmissionList,
)

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
USER_AGENT = "mws-jobs/1.0"

THROTTLING_ERROR_CODES = frozenset({"RequestThrottled", "QuotaExceeded"})


class MarketplaceClient:
    """
    Client for the marketplace reports and feeds API.

    One client serves one region. All methods are scoped to a merchant id
    passed by the caller.

    SECURITY: Secret key must be stored securely and never logged.
    """

    def __init__(
        self,
        region: Region = Region.NORTH_AMERICA,
        access_key_id: Optional[str] = None,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize marketplace client.

        Args:
            region: Marketplace region (selects the endpoint)
            access_key_id: Access key (default: MWS_ACCESS_KEY_ID env var)
            secret_key: Secret key (default: MWS_SECRET_KEY env var)
            base_url: Override the region endpoint (default: MWS_BASE_URL env var)
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.region = Region(region)
        self.base_url = (
            base_url or os.getenv("MWS_BASE_URL") or endpoint_for_region(self.region)
        ).rstrip("/")
        self.access_key_id = access_key_id or os.getenv("MWS_ACCESS_KEY_ID")
        self.secret_key = secret_key or os.getenv("MWS_SECRET_KEY")

        if not self.access_key_id or not self.secret_key:
            raise ValueError(
                "Marketplace access key id and secret key are required. Set MWS_ACCESS_KEY_ID "
                "and MWS_SECRET_KEY environment variables or pass them explicitly."
            )

        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            headers={
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
            },
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "MarketplaceClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _sign(self, method: str, url: str, params: Dict[str, Any], timestamp: str) -> str:
        """Signature over method, host, path, sorted query and timestamp."""
        parts = urlsplit(url)
        canonical_query = urlencode(sorted((k, str(v)) for k, v in params.items()))
        string_to_sign = "\n".join(
            [method.upper(), parts.netloc.lower(), parts.path or "/", canonical_query, timestamp]
        )
        digest = hmac.new(
            self.secret_key.encode("utf-8"),
            string_to_sign.encode("utf-8"),
            hashlib.sha256,
        ).digest()
        return base64.b64encode(digest).decode("ascii")

    def _raise_for_error(self, response: httpx.Response, endpoint: str) -> None:
        """Translate an error response into a MarketplaceError subclass."""
        error_body: Dict[str, Any] = {}
        try:
            parsed = response.json()
        except ValueError:
            parsed = None
        # Only an object body carries structured error fields
        if isinstance(parsed, dict):
            error_body = parsed

        error = error_body.get("error") or {}
        if isinstance(error, str):
            error = {"code": error}
        elif not isinstance(error, dict):
            error = {}
        error_code = error.get("code")
        error_type = error.get("type")
        message = error.get("message") or f"Marketplace API error: {response.status_code}"
        request_id = error_body.get("requestId") or response.headers.get("x-mws-request-id")

        logger.error(
            "Marketplace API error",
            extra={
                "status_code": response.status_code,
                "endpoint": endpoint,
                "error_code": error_code,
                "error_type": error_type,
                "request_id": request_id,
            },
        )

        details = {
            "error_code": error_code,
            "error_type": error_type,
            "request_id": request_id,
            "response": error_body,
        }

        if response.status_code in (401, 403):
            raise MarketplaceAuthenticationError(
                message=message, status_code=response.status_code, **details
            )

        if response.status_code == 404:
            raise MarketplaceNotFoundError(message=message, **details)

        if response.status_code == 429 or error_code in THROTTLING_ERROR_CODES:
            retry_after = response.headers.get("Retry-After")
            raise MarketplaceRateLimitError(
                message=message,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                status_code=response.status_code,
                **details,
            )

        raise MarketplaceError(message=message, status_code=response.status_code, **details)

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Make a signed HTTP request to the marketplace API.

        Args:
            method: HTTP method (GET, POST)
            endpoint: API endpoint path
            params: Query parameters
            content: Raw request body
            headers: Extra request headers

        Returns:
            The successful response

        Raises:
            MarketplaceError: On API errors
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        params = {k: v for k, v in (params or {}).items() if v is not None}
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

        request_headers = {
            "X-MWS-AccessKeyId": self.access_key_id,
            "X-MWS-Timestamp": timestamp,
            "X-MWS-Signature": self._sign(method, url, params, timestamp),
            **(headers or {}),
        }

        try:
            response = self._client.request(
                method=method,
                url=url,
                params=params,
                content=content,
                headers=request_headers,
            )
        except httpx.TimeoutException as e:
            logger.error(
                "Marketplace API timeout",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise MarketplaceConnectionError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error(
                "Marketplace API connection error",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise MarketplaceConnectionError(f"Connection error: {e}")

        if response.status_code >= 400:
            self._raise_for_error(response, endpoint)

        return response

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def request_report(
        self,
        merchant_id: str,
        report_type: str,
        marketplace_ids: Optional[List[str]] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        report_options: Optional[str] = None,
    ) -> ReportRequestResult:
        """
        Ask the marketplace to generate a report.

        Returns:
            ReportRequestResult; info.report_request_id identifies the request

        Raises:
            MarketplaceError: On API errors
        """
        params = {
            "Merchant": merchant_id,
            "ReportType": report_type,
            "MarketplaceIdList": ",".join(marketplace_ids) if marketplace_ids else None,
            "StartDate": start_date.isoformat() if start_date else None,
            "EndDate": end_date.isoformat() if end_date else None,
            "ReportOptions": report_options,
        }
        response = self._request("POST", "/reports/requests", params=params)
        data = response.json()
        info = data.get("ReportRequestInfo")

        return ReportRequestResult(
            info=ReportRequestInfo.from_dict(info) if info else None,
            metadata=ResponseMetadata.from_headers(response.headers),
        )

    def get_report_request_list(
        self,
        merchant_id: str,
        report_request_ids: List[str],
    ) -> ReportRequestList:
        """
        Get processing statuses for a batch of report requests.

        Raises:
            MarketplaceError: On API errors
        """
        params = {
            "Merchant": merchant_id,
            "ReportRequestIdList": ",".join(report_request_ids),
        }
        response = self._request("GET", "/reports/requests", params=params)
        data = response.json()

        items = [ReportRequestInfo.from_dict(item) for item in data.get("ReportRequestInfo") or []]

        logger.debug(
            "Listed report requests",
            extra={"merchant_id": merchant_id, "count": len(items)},
        )

        return ReportRequestList(
            items=items,
            metadata=ResponseMetadata.from_headers(response.headers),
        )

    def get_report(self, merchant_id: str, report_id: str) -> DownloadedDocument:
        """
        Download a generated report.

        Raises:
            MarketplaceError: On API errors
        """
        response = self._request(
            "GET",
            f"/reports/{report_id}",
            params={"Merchant": merchant_id},
            headers={"Accept": "application/octet-stream"},
        )

        return DownloadedDocument(
            content=response.content,
            content_md5=response.headers.get("Content-MD5"),
            metadata=ResponseMetadata.from_headers(response.headers),
        )

    # ------------------------------------------------------------------
    # Feeds
    # ------------------------------------------------------------------

    def submit_feed(
        self,
        merchant_id: str,
        feed_type: str,
        feed_content: bytes,
        content_md5: str,
        marketplace_ids: Optional[List[str]] = None,
        purge_and_replace: bool = False,
    ) -> FeedSubmissionResult:
        """
        Upload a feed for processing.

        Returns:
            FeedSubmissionResult; info.feed_submission_id identifies the submission

        Raises:
            MarketplaceError: On API errors
        """
        params = {
            "Merchant": merchant_id,
            "FeedType": feed_type,
            "MarketplaceIdList": ",".join(marketplace_ids) if marketplace_ids else None,
            "PurgeAndReplace": "true" if purge_and_replace else None,
        }
        response = self._request(
            "POST",
            "/feeds/submissions",
            params=params,
            content=feed_content,
            headers={
                "Content-Type": "application/octet-stream",
                "Content-MD5": content_md5,
            },
        )
        data = response.json()
        info = data.get("FeedSubmissionInfo")

        return FeedSubmissionResult(
            info=FeedSubmissionInfo.from_dict(info) if info else None,
            metadata=ResponseMetadata.from_headers(response.headers),
        )

    def get_feed_submission_list(
        self,
        merchant_id: str,
        feed_submission_ids: List[str],
    ) -> FeedSubmissionList:
        """
        Get processing statuses for a batch of feed submissions.

        Raises:
            MarketplaceError: On API errors
        """
        params = {
            "Merchant": merchant_id,
            "FeedSubmissionIdList": ",".join(feed_submission_ids),
        }
        response = self._request("GET", "/feeds/submissions", params=params)
        data = response.json()

        items = [FeedSubmissionInfo.from_dict(item) for item in data.get("FeedSubmissionInfo") or []]

        return FeedSubmissionList(
            items=items,
            metadata=ResponseMetadata.from_headers(response.headers),
        )

    def get_feed_submission_result(
        self,
        merchant_id: str,
        feed_submission_id: str,
    ) -> DownloadedDocument:
        """
        Download the processing report of a feed submission.

        Raises:
            MarketplaceError: On API errors
        """
        response = self._request(
            "GET",
            f"/feeds/submissions/{feed_submission_id}/result",
            params={"Merchant": merchant_id},
            headers={"Accept": "application/octet-stream"},
        )

        return DownloadedDocument(
            content=response.content,
            content_md5=response.headers.get("Content-MD5"),
            metadata=ResponseMetadata.from_headers(response.headers),
        )


def get_marketplace_client(
    region: Region = Region.NORTH_AMERICA,
    access_key_id: Optional[str] = None,
    secret_key: Optional[str] = None,
    base_url: Optional[str] = None,
) -> MarketplaceClient:
    """
    Factory function to create a MarketplaceClient.

    Args:
        region: Marketplace region
        access_key_id: Override access key
        secret_key: Override secret key
        base_url: Override API base URL

    Returns:
        Configured MarketplaceClient instance
    """
    return MarketplaceClient(
        region=region,
        access_key_id=access_key_id,
        secret_key=secret_key,
        base_url=base_url,
    )
