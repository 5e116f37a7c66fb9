import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import settings
from core.database import session_scope
from ingestion.loaders.postgres_loader import PostgresCatalogStore, PostgresSyncLogStore
from ingestion.runner import SyncOrchestrator

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(self, interval_minutes: Optional[int] = None):
        self.scheduler = AsyncIOScheduler()
        self.interval_minutes = interval_minutes or settings.SYNC_INTERVAL_MINUTES

    async def run_sync_job(self):
        """Job to run a full partner sync"""
        logger.info("Scheduler: Starting sync job")
        try:
            async with session_scope() as session:
                orchestrator = SyncOrchestrator(
                    PostgresCatalogStore(session),
                    PostgresSyncLogStore(session),
                )
                run = await orchestrator.run_all()
                totals = run.totals
                logger.info(
                    f"Scheduler: Sync job finished - {len(run.partners)} partner(s), "
                    f"added={totals['added']}, errors={totals['errors']}"
                )
        except Exception as e:
            logger.error(f"Scheduler: Sync job failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_sync_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="partner_sync_job",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"Sync Scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Sync Scheduler stopped")
