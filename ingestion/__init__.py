"""
Feed ingestion pipeline components.

This package contains everything between the affiliate partner API and the
catalog store:

Modules:
    base: Store interfaces (CatalogStore, SyncLogStore) and upsert outcomes
    runner: Sync orchestrator, one partner after the other
    scheduler: APScheduler integration for periodic syncs
    submissions: Batch submission service behind POST /ingest

Subpackages:
    extractors: Partner API client, feed locator, archive stream processor
    transformers: Category classifier, record normalizer, trust engine
    loaders: PostgreSQL stores and the dedup/upsert controller

Architecture:
    Orchestrator -> Feed Locator -> Archive Stream Processor, then per row:

    1. Run-scoped dedup on the tracking link
    2. Category classification (rows that cannot be classified are dropped)
    3. Price parsing and normalization
    4. Trust engine (wanted ads and noise are dropped)
    5. Conflict-safe upsert keyed on source_url

    Per-row failures are counted, partner failures are logged to the sync
    log, and neither stops the remaining partners.

Usage:
    from ingestion.runner import SyncOrchestrator
    from ingestion.loaders.postgres_loader import PostgresCatalogStore, PostgresSyncLogStore

Example:
    async with session_scope() as session:
        orchestrator = SyncOrchestrator(
            PostgresCatalogStore(session),
            PostgresSyncLogStore(session),
        )
        run = await orchestrator.run_all(partner_filter="Fnac")

    print(run.totals)

Error Handling:
    All components raise the structured exceptions from core.exceptions;
    see that module for the hierarchy and propagation rules.
"""

__all__ = [
    "CatalogStore",
    "SyncLogStore",
    "SyncOrchestrator",
    "SyncScheduler",
    "BatchIngestionService",
    "PartnerAPIClient",
    "FeedLocator",
    "ArchiveStreamProcessor",
    "UpsertController",
    "RecordNormalizer",
]
