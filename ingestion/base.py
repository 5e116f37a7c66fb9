"""
Abstract store interfaces for the catalog and the sync log
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional
import enum

from models.base import SyncStatus
from schemas.normalized import NormalizedProduct


class UpsertOutcome(str, enum.Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    ERROR = "error"


@dataclass
class UpsertResult:
    outcome: UpsertOutcome
    error: Optional[str] = None

    @property
    def written(self) -> bool:
        return self.outcome in (UpsertOutcome.INSERTED, UpsertOutcome.UPDATED)


class CatalogStore(ABC):
    """
    Persistent product catalog keyed by source_url.

    Implementations provide atomic single-row writes; no operation here
    spans more than one product.
    """

    @abstractmethod
    async def upsert(self, product: NormalizedProduct) -> UpsertOutcome:
        """
        Insert the product, or refresh price and updated_at of the existing
        row with the same source_url. Returns INSERTED or UPDATED.

        Raises:
            UpsertError: the store rejected the write
        """
        pass

    @abstractmethod
    async def get_by_source_url(self, source_url: str) -> Optional[NormalizedProduct]:
        pass

    @abstractmethod
    async def insert(self, product: NormalizedProduct) -> None:
        """Raises UpsertError on failure"""
        pass

    @abstractmethod
    async def update_price(self, source_url: str, price: Decimal) -> None:
        """Raises UpsertError on failure"""
        pass


class SyncLogStore(ABC):
    """
    Per-platform sync run records.

    A platform has at most one RUNNING entry: callers mark stale entries
    before creating a new one.
    """

    @abstractmethod
    async def mark_stale_running(self, platform: str) -> int:
        """Flip every RUNNING entry of the platform to ERROR. Returns the count."""
        pass

    @abstractmethod
    async def create_running(self, platform: str) -> int:
        """Insert a RUNNING entry and return its id"""
        pass

    @abstractmethod
    async def update_progress(self, log_id: int, items_found: int, items_added: int) -> None:
        pass

    @abstractmethod
    async def finalize(
        self,
        log_id: int,
        status: SyncStatus,
        items_found: int,
        items_added: int,
        error_message: Optional[str] = None,
    ) -> None:
        pass

    @abstractmethod
    async def latest_per_platform(self) -> List:
        """Most recent entry of every platform, newest first"""
        pass
