"""
Batch submission service behind POST /ingest
"""

from decimal import Decimal
from typing import Any, List, Mapping, Optional
import logging

from core.exceptions import RecordError
from ingestion.base import CatalogStore, UpsertOutcome
from ingestion.loaders.upsert_controller import UpsertController
from ingestion.transformers.normalizer import RecordNormalizer
from ingestion.transformers.trust_engine import has_wanted_intent, is_noise
from models.base import Category
from schemas.api import IngestStats

logger = logging.getLogger(__name__)


def extract_products(body: Any) -> List[Any]:
    """
    Pull the product list out of a request body.

    Accepts {"products": [...]}, {"product": {...}} or a bare list.
    Anything else yields an empty list.
    """
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        products = body.get("products")
        if isinstance(products, list):
            return products
        product = body.get("product")
        if product:
            return [product]
    return []


class BatchIngestionService:
    """
    Ingest submitted products one by one.

    Each record is normalized, checked by the trust engine and then either
    inserted with a price score or has its price refreshed. A rejected
    record is counted but never written.
    """

    def __init__(
        self,
        catalog_store: CatalogStore,
        normalizer: Optional[RecordNormalizer] = None,
        category_medians: Optional[Mapping[Category, Decimal]] = None,
    ):
        self.normalizer = normalizer or RecordNormalizer()
        self.controller = UpsertController(catalog_store, category_medians)

    async def ingest(self, raw_products: List[Any]) -> IngestStats:
        stats = IngestStats(received=len(raw_products))

        for index, raw in enumerate(raw_products):
            try:
                product = self.normalizer.normalize_submission(raw)
            except RecordError as e:
                logger.debug(f"Submitted product {index} invalid: {e.message}")
                stats.skipped_invalid += 1
                continue

            if has_wanted_intent(product):
                stats.skipped_wanted += 1
                continue

            if is_noise(product):
                stats.skipped_noise += 1
                continue

            result = await self.controller.submit(product)
            if result.outcome == UpsertOutcome.INSERTED:
                stats.inserted += 1
            elif result.outcome == UpsertOutcome.UPDATED:
                stats.updated += 1
            else:
                stats.errors.append(f"Store error for {product.source_url}: {result.error}")

        logger.info(
            f"Batch ingestion: received={stats.received}, inserted={stats.inserted}, "
            f"updated={stats.updated}, invalid={stats.skipped_invalid}, "
            f"wanted={stats.skipped_wanted}, noise={stats.skipped_noise}, errors={len(stats.errors)}"
        )
        return stats
