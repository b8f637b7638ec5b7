"""
Marketplace-specific exceptions for error handling.

Every exception carries the marketplace error code when the service sent
one; the job pipelines classify failures by that code.
"""

from typing import Optional, Dict, Any


class MarketplaceError(Exception):
    """Base exception for marketplace API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        error_type: Optional[str] = None,
        request_id: Optional[str] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.error_type = error_type
        self.request_id = request_id
        self.response = response or {}

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"status_code={self.status_code}, error_code={self.error_code!r})"
        )


class MarketplaceAuthenticationError(MarketplaceError):
    """Raised when request signing or authorization fails (401/403)."""

    def __init__(
        self,
        message: str = "Authentication failed - access key may be invalid or lack permissions",
        status_code: int = 401,
        **kwargs,
    ):
        super().__init__(message, status_code=status_code, **kwargs)


class MarketplaceRateLimitError(MarketplaceError):
    """Raised when the request was throttled (429 / RequestThrottled)."""

    def __init__(
        self,
        message: str = "Request throttled - please retry after a delay",
        retry_after: Optional[int] = None,
        status_code: int = 429,
        **kwargs,
    ):
        super().__init__(message, status_code=status_code, **kwargs)
        self.retry_after = retry_after


class MarketplaceConnectionError(MarketplaceError):
    """Raised when network/connection errors or timeouts occur."""

    def __init__(
        self,
        message: str = "Connection error - unable to reach the marketplace API",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class MarketplaceNotFoundError(MarketplaceError):
    """Raised when a requested resource is not found (404)."""

    def __init__(
        self,
        message: str = "Resource not found",
        resource_id: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, status_code=404, **kwargs)
        self.resource_id = resource_id
