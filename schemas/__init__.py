"""
Pydantic schemas for data validation and serialization.

Schemas:
    normalized: Canonical catalog product (NormalizedProduct)
    partner: Partner programmes and feed catalog rows
    api: HTTP request/response bodies and sync run results

Usage:
    from schemas.normalized import NormalizedProduct
    from schemas.partner import Partner, Feed
    from schemas.api import IngestStats, FeedStats, HealthCheckResponse

Validation:
    NormalizedProduct rejects empty titles/source URLs, negative prices and
    categories outside the taxonomy, so a record that reaches the catalog
    store is always complete.
"""

__all__ = [
    "NormalizedProduct",
    "Partner",
    "Feed",
    "IngestStats",
    "IngestResponse",
    "FeedStats",
    "PartnerSyncResult",
    "SyncRunResult",
    "HealthCheckResponse",
]
