"""
Marketplace integration for report requests and feed submissions.

This module provides a client for the marketplace reports and feeds API.
"""

from mws_jobs.integrations.marketplace.client import MarketplaceClient, get_marketplace_client
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
    ReportRequestInfo,
    FeedSubmissionInfo,
    DownloadedDocument,
)

__all__ = [
    # Client
    "MarketplaceClient",
    "get_marketplace_client",
    # Exceptions
    "MarketplaceError",
    "MarketplaceAuthenticationError",
    "MarketplaceRateLimitError",
    "MarketplaceConnectionError",
    "MarketplaceNotFoundError",
    # Models
    "Region",
    "endpoint_for_region",
    "ReportRequestInfo",
    "FeedSubmissionInfo",
    "DownloadedDocument",
]
