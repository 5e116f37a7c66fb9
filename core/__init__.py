"""
Core utilities and configuration for the catalog feed ingestion service.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Async database engine and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import session_scope
    from core.exceptions import ArchiveDecodeError, DownloadTimeoutError
    from core.logging import setup_logging

Example:
    setup_logging()

    async with session_scope() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "get_session",
    "session_scope",
    "setup_logging",
    # Exceptions
    "IngestionException",
    "DiscoveryError",
    "PartnerAPIError",
    "FeedCatalogError",
    "NetworkError",
    "RateLimitError",
    "AuthenticationError",
    "ResourceNotFoundError",
    "TransportError",
    "ArchiveDownloadError",
    "DownloadTimeoutError",
    "ArchiveTooLargeError",
    "DecodeError",
    "ArchiveDecodeError",
    "RecordError",
    "NormalizationError",
    "ValidationError",
    "StoreError",
    "UpsertError",
    "SyncLogError",
    "RetryableError",
    "NonRetryableError",
]
