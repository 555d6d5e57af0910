"""
Provider error classification.

Every external provider call goes through BaseAPIClient, which classifies
failures into this hierarchy. Adapters surface any of them to the
aggregator as ProviderUnavailable, which the aggregator recovers locally by
marking that provider's fields absent.
"""

from typing import Optional, Dict, Any


class APIError(Exception):
    """
    Base exception for all provider-related errors.

    Attributes:
        message: Human-readable error description
        source: Provider name (e.g., 'open_meteo', 'usgs')
        status_code: HTTP status code if applicable
        response_data: Raw response data for debugging
        retryable: Whether this error should trigger a retry
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.source = source
        self.status_code = status_code
        self.response_data = response_data
        self.retryable = retryable

    def __str__(self) -> str:
        parts = [self.message]
        if self.source:
            parts.insert(0, f"[{self.source}]")
        if self.status_code:
            parts.append(f"(HTTP {self.status_code})")
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source": self.source,
            "status_code": self.status_code,
            "retryable": self.retryable,
        }


class RetryableError(APIError):
    """
    Transient errors: 5xx responses, network failures, resets.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=status_code,
            response_data=response_data,
            retryable=True,
        )


class RateLimitError(APIError):
    """
    HTTP 429. Retryable, but only after retry_after seconds.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        retry_after: Optional[float] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=429,
            response_data=response_data,
            retryable=True,
        )
        self.retry_after = retry_after if retry_after is not None else 5.0


class FatalError(APIError):
    """
    Permanent problems: bad key (401), forbidden (403), bad request (400),
    not found (404). Never retried.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=status_code,
            response_data=response_data,
            retryable=False,
        )


class AuthenticationError(FatalError):
    """Authentication failed - invalid or missing API key."""

    def __init__(
        self,
        message: str = "Authentication failed - check API key",
        source: Optional[str] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message, source=source, status_code=401, response_data=response_data
        )


class ProviderUnavailable(APIError):
    """
    A provider could not deliver a usable reading for one aggregation.

    Raised by adapters for timeouts, non-2xx responses and payloads that do
    not have the expected shape. Never surfaced to API callers.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        status_code = getattr(cause, "status_code", None)
        super().__init__(
            message=message,
            source=source,
            status_code=status_code,
            retryable=False,
        )
        self.cause = cause


def classify_http_error(
    status_code: int, response_text: str = "", source: Optional[str] = None
) -> APIError:
    """
    Classify an HTTP error into the appropriate APIError subclass.

    Args:
        status_code: HTTP status code
        response_text: Response body text
        source: Provider name

    Returns:
        Appropriate APIError subclass instance
    """
    snippet = response_text[:200]
    if status_code == 429:
        return RateLimitError(message=f"Rate limited: {snippet}", source=source)
    if status_code == 401:
        return AuthenticationError(message=f"Authentication failed: {snippet}", source=source)
    if status_code in (400, 403, 404):
        return FatalError(
            message=f"Request rejected: {snippet}",
            source=source,
            status_code=status_code,
        )
    if 500 <= status_code < 600:
        return RetryableError(
            message=f"Server error: {snippet}",
            source=source,
            status_code=status_code,
        )
    return APIError(
        message=f"HTTP error {status_code}: {snippet}",
        source=source,
        status_code=status_code,
        retryable=False,
    )
