"""
Dedup/upsert controller: run-scoped duplicate detection plus persistent upsert
"""

from typing import Mapping, Optional, Set
from decimal import Decimal
import logging

from core.exceptions import StoreError
from ingestion.base import CatalogStore, UpsertOutcome, UpsertResult
from ingestion.transformers.trust_engine import score_for_category
from models.base import Category
from schemas.normalized import NormalizedProduct

logger = logging.getLogger(__name__)


class UpsertController:
    """
    Write products to the catalog exactly once per source_url and run.

    One controller instance is one run: the seen-set lives as long as the
    controller and is never shared between partners or runs.
    """

    def __init__(
        self,
        store: CatalogStore,
        category_medians: Optional[Mapping[Category, Decimal]] = None,
    ):
        self.store = store
        self.category_medians = category_medians
        self.seen: Set[str] = set()

    def check_and_mark(self, source_url: str) -> bool:
        """
        Record a sighting of source_url.

        Returns:
            True on first sighting in this run, False for a duplicate
        """
        if source_url in self.seen:
            return False
        self.seen.add(source_url)
        return True

    def score(self, product: NormalizedProduct) -> NormalizedProduct:
        """Attach the price score; only called for trusted products"""
        return product.model_copy(
            update={"price_score": score_for_category(product, self.category_medians)}
        )

    async def upsert(self, product: NormalizedProduct) -> UpsertResult:
        """
        Conflict-safe write keyed on source_url.

        A new row carries the full shape including price score; an existing
        row only has its price and updated_at refreshed. Store failures are
        reported, not raised.
        """
        try:
            outcome = await self.store.upsert(self.score(product))
        except StoreError as e:
            return UpsertResult(UpsertOutcome.ERROR, error=e.message)
        return UpsertResult(outcome)

    async def submit(self, product: NormalizedProduct) -> UpsertResult:
        """
        Existence check, then insert-with-score or update-price-only.

        Used by the batch submission path where every record may carry its
        own partner-independent identity.
        """
        try:
            existing = await self.store.get_by_source_url(product.source_url)
            if existing is None:
                await self.store.insert(self.score(product))
                return UpsertResult(UpsertOutcome.INSERTED)

            await self.store.update_price(product.source_url, product.price)
            return UpsertResult(UpsertOutcome.UPDATED)
        except StoreError as e:
            logger.debug(f"Store rejected {product.source_url}: {e.message}")
            return UpsertResult(UpsertOutcome.ERROR, error=e.message)
