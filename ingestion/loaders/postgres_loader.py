"""
PostgreSQL catalog and sync-log stores with conflict-safe upsert (idempotency)
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, literal_column, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
import logging

from core.exceptions import SyncLogError, UpsertError
from ingestion.base import CatalogStore, SyncLogStore, UpsertOutcome
from models.base import SyncStatus
from models.product import Product
from models.sync_log import SyncLog
from schemas.normalized import NormalizedProduct

logger = logging.getLogger(__name__)

STALE_RUN_MESSAGE = "Interrupted by new sync or timeout"


class PostgresCatalogStore(CatalogStore):
    """
    Products table access.

    Ensures:
    - One row per source_url across runs
    - Re-ingestion refreshes price and updated_at only
    - Every write is its own transaction; a failed write is rolled back
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def upsert(self, product: NormalizedProduct) -> UpsertOutcome:
        """
        INSERT ... ON CONFLICT (source_url) DO UPDATE price, updated_at.

        RETURNING (xmax = 0) tells a fresh insert from a conflict update.
        """
        now = datetime.utcnow()
        row = product.to_row()
        row["created_at"] = now
        row["updated_at"] = now

        stmt = insert(Product).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["source_url"],
            set_={
                "price": stmt.excluded.price,
                "updated_at": stmt.excluded.updated_at,
            }
        ).returning(literal_column("(xmax = 0)").label("inserted"))

        try:
            result = await self.db.execute(stmt)
            inserted = result.scalar_one()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpsertError(
                "Failed to upsert product",
                context={
                    "source_url": product.source_url,
                    "operation": "UPSERT",
                    "table_name": "products",
                },
                original_exception=e
            )

        return UpsertOutcome.INSERTED if inserted else UpsertOutcome.UPDATED

    async def get_by_source_url(self, source_url: str) -> Optional[NormalizedProduct]:
        try:
            result = await self.db.execute(
                select(Product).where(Product.source_url == source_url)
            )
        except SQLAlchemyError as e:
            raise UpsertError(
                "Failed to look up product",
                context={"source_url": source_url, "operation": "SELECT"},
                original_exception=e
            )

        existing = result.scalar_one_or_none()
        if existing is None:
            return None
        return NormalizedProduct.model_validate(existing)

    async def insert(self, product: NormalizedProduct) -> None:
        self.db.add(Product(**product.to_row()))
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpsertError(
                "Failed to insert product",
                context={"source_url": product.source_url, "operation": "INSERT"},
                original_exception=e
            )

    async def update_price(self, source_url: str, price: Decimal) -> None:
        try:
            await self.db.execute(
                update(Product)
                .where(Product.source_url == source_url)
                .values(price=price, updated_at=datetime.utcnow())
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpsertError(
                "Failed to update product price",
                context={"source_url": source_url, "operation": "UPDATE"},
                original_exception=e
            )


class PostgresSyncLogStore(SyncLogStore):
    """Sync log rows, one per partner run"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _write(self, stmt, operation: str, **context):
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
            return result
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise SyncLogError(
                f"Failed to {operation} sync log",
                context={**context, "operation": operation, "table_name": "sync_logs"},
                original_exception=e
            )

    async def mark_stale_running(self, platform: str) -> int:
        result = await self._write(
            update(SyncLog)
            .where(SyncLog.platform == platform, SyncLog.status == SyncStatus.RUNNING)
            .values(
                status=SyncStatus.ERROR,
                error_message=STALE_RUN_MESSAGE,
                updated_at=datetime.utcnow(),
            ),
            "mark stale",
            platform=platform,
        )
        count = result.rowcount or 0
        if count:
            logger.warning(f"Marked {count} stale running sync log(s) for {platform} as error")
        return count

    async def create_running(self, platform: str) -> int:
        log = SyncLog(
            platform=platform,
            status=SyncStatus.RUNNING,
            items_found=0,
            items_added=0,
        )
        self.db.add(log)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise SyncLogError(
                "Failed to create sync log",
                context={"platform": platform, "operation": "INSERT", "table_name": "sync_logs"},
                original_exception=e
            )
        return log.id

    async def update_progress(self, log_id: int, items_found: int, items_added: int) -> None:
        await self._write(
            update(SyncLog)
            .where(SyncLog.id == log_id)
            .values(items_found=items_found, items_added=items_added, updated_at=datetime.utcnow()),
            "update",
            log_id=log_id,
        )

    async def finalize(
        self,
        log_id: int,
        status: SyncStatus,
        items_found: int,
        items_added: int,
        error_message: Optional[str] = None,
    ) -> None:
        await self._write(
            update(SyncLog)
            .where(SyncLog.id == log_id)
            .values(
                status=status,
                items_found=items_found,
                items_added=items_added,
                error_message=error_message,
                updated_at=datetime.utcnow(),
            ),
            "finalize",
            log_id=log_id,
        )
        logger.info(f"Sync log {log_id} finalized as {status.value}")

    async def latest_per_platform(self) -> List[SyncLog]:
        latest_ids = (
            select(func.max(SyncLog.id))
            .group_by(SyncLog.platform)
        )
        result = await self.db.execute(
            select(SyncLog)
            .where(SyncLog.id.in_(latest_ids))
            .order_by(SyncLog.created_at.desc())
        )
        return list(result.scalars().all())
