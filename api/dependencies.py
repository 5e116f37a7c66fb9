"""
FastAPI dependencies: database session, stores and services
"""

import secrets
from typing import AsyncIterator, Optional
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import get_session
from ingestion.base import CatalogStore, SyncLogStore
from ingestion.loaders.postgres_loader import PostgresCatalogStore, PostgresSyncLogStore
from ingestion.runner import SyncOrchestrator
from ingestion.submissions import BatchIngestionService


async def get_db() -> AsyncIterator[AsyncSession]:
    async for session in get_session():
        yield session


def get_catalog_store(db: AsyncSession = Depends(get_db)) -> CatalogStore:
    return PostgresCatalogStore(db)


def get_sync_log_store(db: AsyncSession = Depends(get_db)) -> SyncLogStore:
    return PostgresSyncLogStore(db)


def get_ingestion_service(
    catalog_store: CatalogStore = Depends(get_catalog_store),
) -> BatchIngestionService:
    return BatchIngestionService(catalog_store)


def get_orchestrator(
    catalog_store: CatalogStore = Depends(get_catalog_store),
    sync_log_store: SyncLogStore = Depends(get_sync_log_store),
) -> SyncOrchestrator:
    return SyncOrchestrator(catalog_store, sync_log_store)


def _matches(provided: Optional[str], expected: Optional[str]) -> bool:
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip()
    return None


def is_ingest_authorized(request: Request, secret: Optional[str]) -> bool:
    """Bearer token or X-API-Key header matching the ingestion secret"""
    return _matches(bearer_token(request), secret) or _matches(request.headers.get("X-API-Key"), secret)


def is_cron_authorized(request: Request, secret: Optional[str] = None) -> bool:
    """Scheduler header, or bearer token matching the cron secret"""
    if request.headers.get("x-vercel-cron", "").lower() == "true":
        return True
    return _matches(bearer_token(request), secret if secret is not None else settings.cron_secret)
