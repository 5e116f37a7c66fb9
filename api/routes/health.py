"""
Health check endpoint with database and sync status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from api.dependencies import get_db, get_sync_log_store
from ingestion.base import SyncLogStore
from models.base import SyncStatus
from schemas.api import HealthCheckResponse, SyncLogInfo
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])

FAILED_STATUSES = {SyncStatus.ERROR, SyncStatus.TIMEOUT, SyncStatus.BANNED, SyncStatus.SUSPICIOUS}


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    sync_log_store: SyncLogStore = Depends(get_sync_log_store),
):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Latest sync log of every platform
    """

    # Check database connectivity
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database connection failed: {str(e)}")

    sync_logs = []
    failed_platforms = 0
    running_platforms = 0

    if db_connected:
        try:
            for log in await sync_log_store.latest_per_platform():
                info = SyncLogInfo.model_validate(log)
                if info.status in FAILED_STATUSES:
                    failed_platforms += 1
                elif info.status == SyncStatus.RUNNING:
                    running_platforms += 1
                sync_logs.append(info)
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch sync logs: {str(e)}")

    # Status calculation is handled by the validator in HealthCheckResponse
    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        sync_logs=sync_logs,
        total_platforms=len(sync_logs),
        failed_platforms=failed_platforms,
        running_platforms=running_platforms,
    )
