"""
Custom exceptions for the feed ingestion pipeline with structured error context.

Every exception carries a human-readable message, a context dictionary
(partner, feed, URL, row number...) and the original exception, so that
partner-level failures can be logged and written to the sync log without
losing detail.

Exception Hierarchy:
    IngestionException (base)
    ├── DiscoveryError
    │   ├── PartnerAPIError
    │   │   ├── AuthenticationError
    │   │   ├── RateLimitError
    │   │   └── NetworkError
    │   └── FeedCatalogError
    ├── TransportError
    │   ├── ArchiveDownloadError
    │   ├── DownloadTimeoutError
    │   └── ArchiveTooLargeError
    ├── DecodeError
    │   └── ArchiveDecodeError
    ├── RecordError
    │   ├── NormalizationError
    │   └── ValidationError
    ├── StoreError
    │   ├── UpsertError
    │   └── SyncLogError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class IngestionException(Exception):
    """
    Base exception for all ingestion errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (partner, url, row...)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(IngestionException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Service unavailable (HTTP 5xx)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0
    ):
        super().__init__(message, context, original_exception)
        self.max_retries = max_retries
        self.retry_delay = retry_delay


class NonRetryableError(IngestionException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Resource not found (HTTP 404)
    - Malformed payloads
    """
    pass


# ============================================================================
# Discovery Errors (partner / feed lookup)
# ============================================================================

class DiscoveryError(IngestionException):
    """Partner or feed lookup failed. Non-fatal: the partner is skipped."""
    pass


class PartnerAPIError(DiscoveryError):
    """
    Exception raised when the partner HTTP API fails.

    Context should include:
        - api_url: The endpoint that failed (without credentials)
        - status_code: HTTP status code (if applicable)
        - retry_count: Number of retries attempted
    """
    pass


class FeedCatalogError(DiscoveryError):
    """The feed catalog listing could not be fetched or parsed."""
    pass


class NetworkError(RetryableError, PartnerAPIError):
    """Network-related errors that should be retried."""
    pass


class RateLimitError(RetryableError, PartnerAPIError):
    """Rate limiting errors (HTTP 429) that should be retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class AuthenticationError(NonRetryableError, PartnerAPIError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass


class ResourceNotFoundError(NonRetryableError, PartnerAPIError):
    """Resource not found errors (HTTP 404) that should not be retried."""
    pass


# ============================================================================
# Transport Errors (archive download)
# ============================================================================

class TransportError(IngestionException):
    """Archive retrieval failed. Fatal for the current partner only."""
    pass


class ArchiveDownloadError(TransportError):
    """
    Exception raised when the feed archive cannot be downloaded.

    Context should include:
        - partner_name: Partner whose feed was requested
        - status_code: HTTP status code (if applicable)
    """
    pass


class DownloadTimeoutError(TransportError):
    """The archive download exceeded its time budget."""
    pass


class ArchiveTooLargeError(NonRetryableError, TransportError):
    """The archive exceeded the temporary storage bound."""
    pass


# ============================================================================
# Decode Errors
# ============================================================================

class DecodeError(IngestionException):
    """Payload is not a valid compressed/tabular archive."""
    pass


class ArchiveDecodeError(NonRetryableError, DecodeError):
    """
    Exception raised when the archive cannot be decompressed or decoded.

    Context should include:
        - archive_path: Temporary file being decoded
        - entry: Archive member being read (if applicable)
    """
    pass


# ============================================================================
# Record Errors (per row, never fatal)
# ============================================================================

class RecordError(IngestionException):
    """Base exception for a single record that cannot be ingested."""
    pass


class NormalizationError(RecordError):
    """
    Exception raised when a raw record cannot be mapped to a canonical product.

    Context should include:
        - field_name: The missing or malformed field
        - platform: Platform the record came from
    """
    pass


class ValidationError(RecordError):
    """
    Exception raised when a normalized product fails validation.

    Context should include:
        - field_errors: Validation errors reported by the schema
    """
    pass


# ============================================================================
# Store Errors
# ============================================================================

class StoreError(IngestionException):
    """Base exception for catalog / sync-log store failures."""
    pass


class UpsertError(StoreError):
    """
    Exception raised when a product write is rejected.

    Context should include:
        - source_url: Identity key of the product
        - operation: INSERT, UPDATE or UPSERT
    """
    pass


class SyncLogError(StoreError):
    """Exception raised when a sync log entry cannot be written."""
    pass
