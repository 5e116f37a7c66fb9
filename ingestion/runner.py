# ============================================================================
# File: ingestion/runner.py
# Description: Sync orchestrator - partner by partner feed ingestion
# ============================================================================
"""
Sync Runner - orchestrates discovery, archive processing and sync logging.

This module provides partner-level orchestration with:
- Sequential partner iteration with a fixed inter-partner delay
- Stale RUNNING log recovery before each partner run
- Partner-level failure isolation (one partner failing never stops the rest)
- Exactly one terminal sync log update per partner run
"""

import asyncio
from datetime import datetime
from typing import List, Optional
import logging

from core.config import settings
from core.exceptions import DownloadTimeoutError, IngestionException, PartnerAPIError, StoreError
from ingestion.base import CatalogStore, SyncLogStore
from ingestion.extractors.archive_processor import ArchiveStreamProcessor
from ingestion.extractors.feed_locator import FeedLocator
from ingestion.extractors.partner_api import PartnerAPIClient
from ingestion.transformers.normalizer import platform_key
from models.base import SyncStatus
from schemas.api import FeedStats, PartnerSyncResult, SyncRunResult
from schemas.partner import Partner

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """
    Sync orchestrator

    State per partner run: running -> success | error | timeout.
    Partners without an active feed are skipped and get no sync log.
    """

    def __init__(
        self,
        catalog_store: CatalogStore,
        sync_log_store: SyncLogStore,
        api_client: Optional[PartnerAPIClient] = None,
        feed_locator: Optional[FeedLocator] = None,
        processor: Optional[ArchiveStreamProcessor] = None,
        inter_partner_delay: Optional[float] = None,
        network: Optional[str] = None,
    ):
        self.catalog_store = catalog_store
        self.sync_log_store = sync_log_store
        self.api_client = api_client or PartnerAPIClient()
        self.feed_locator = feed_locator or FeedLocator(self.api_client)
        self.processor = processor or ArchiveStreamProcessor(catalog_store, sync_log_store)
        self.inter_partner_delay = (
            settings.INTER_PARTNER_DELAY_SECONDS if inter_partner_delay is None else inter_partner_delay
        )
        self.network = network or settings.AFFILIATE_NETWORK

    def log_platform(self, partner: Partner) -> str:
        """Sync log platform key, e.g. 'awin-Fnac'"""
        return f"{self.network}-{partner.name}"

    async def _finalize(
        self,
        log_id: int,
        status: SyncStatus,
        stats: FeedStats,
        error_message: Optional[str] = None,
    ) -> None:
        try:
            await self.sync_log_store.finalize(
                log_id,
                status,
                items_found=stats.processed,
                items_added=stats.added,
                error_message=error_message,
            )
        except StoreError as e:
            logger.error(
                f"Failed to finalize sync log {log_id} as {status.value}: {e.message}",
                extra={"error_context": e.to_dict()}
            )

    async def sync_partner(self, partner: Partner) -> PartnerSyncResult:
        """
        Run one partner end to end.

        Raises:
            SyncLogError: the sync log could not be prepared
        """
        platform = self.log_platform(partner)
        result = PartnerSyncResult(
            partner_id=partner.id,
            partner_name=partner.name,
            platform=platform,
            status="skipped",
        )

        await self.sync_log_store.mark_stale_running(platform)

        feed_id = await self.feed_locator.locate_feed(partner)
        if feed_id is None:
            logger.warning(f"Skipping {partner.name}: no active feed")
            result.error_message = "No active feed"
            return result
        result.feed_id = feed_id

        log_id = await self.sync_log_store.create_running(platform)
        result.log_id = log_id

        stats = result.stats
        try:
            await self.processor.process_feed(
                self.api_client.feed_download_url(feed_id),
                partner.id,
                partner.name,
                log_id,
                stats=stats,
            )
        except DownloadTimeoutError as e:
            logger.error(
                f"Sync timed out for {platform}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            result.status = SyncStatus.TIMEOUT.value
            result.error_message = e.message
            await self._finalize(log_id, SyncStatus.TIMEOUT, stats, e.message)
            return result
        except IngestionException as e:
            logger.error(
                f"Sync failed for {platform}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            result.status = SyncStatus.ERROR.value
            result.error_message = e.message
            await self._finalize(log_id, SyncStatus.ERROR, stats, e.message)
            return result
        except Exception as e:
            logger.exception(f"Unexpected error syncing {platform}")
            result.status = SyncStatus.ERROR.value
            result.error_message = str(e)
            await self._finalize(log_id, SyncStatus.ERROR, stats, str(e))
            return result

        error_message = f"{stats.errors} row errors" if stats.errors else None
        result.status = SyncStatus.SUCCESS.value
        result.error_message = error_message
        await self._finalize(log_id, SyncStatus.SUCCESS, stats, error_message)
        return result

    async def run_all(self, partner_filter: Optional[str] = None) -> SyncRunResult:
        """
        Sync every joined partner, one after the other.

        Args:
            partner_filter: Only sync partners whose name (or platform key)
                contains this text, case-insensitive

        Returns:
            SyncRunResult with one entry per attempted partner
        """
        run = SyncRunResult(started_at=datetime.utcnow())

        try:
            partners = await self.api_client.fetch_joined_programmes()
        except PartnerAPIError as e:
            logger.error(
                f"Could not fetch joined programmes: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            run.error_message = e.message
            run.completed_at = datetime.utcnow()
            return run

        if partner_filter:
            needle = partner_filter.strip().lower()
            key = platform_key(needle)
            partners = [
                p for p in partners
                if needle in p.name.lower() or (key and key in platform_key(p.name))
            ]

        run.partners_found = len(partners)
        logger.info(f"Starting sync for {len(partners)} partner(s)")

        for index, partner in enumerate(partners):
            if index > 0 and self.inter_partner_delay > 0:
                await asyncio.sleep(self.inter_partner_delay)

            try:
                run.partners.append(await self.sync_partner(partner))
            except Exception as e:
                logger.exception(f"Partner {partner.name} failed")
                run.partners.append(PartnerSyncResult(
                    partner_id=partner.id,
                    partner_name=partner.name,
                    platform=self.log_platform(partner),
                    status=SyncStatus.ERROR.value,
                    error_message=str(e),
                ))

        run.completed_at = datetime.utcnow()
        totals = run.totals
        logger.info(
            f"Sync finished: {len(run.partners)} partner(s), processed={totals['processed']}, "
            f"added={totals['added']}, skipped={totals['skipped']}, errors={totals['errors']}"
        )
        return run


def summarize_partners(run: SyncRunResult) -> List[dict]:
    """Compact per-partner view for HTTP responses and CLI output"""
    return [
        {
            "partner": p.partner_name,
            "platform": p.platform,
            "status": p.status,
            **p.stats.model_dump(),
            "error": p.error_message,
        }
        for p in run.partners
    ]
