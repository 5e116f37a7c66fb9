"""
Pytest configuration and fixtures
"""

import csv
import io
import re
import zipfile
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

import httpx
import pytest

from core.exceptions import SyncLogError, UpsertError
from ingestion.base import CatalogStore, SyncLogStore, UpsertOutcome
from ingestion.extractors.partner_api import PartnerAPIClient
from ingestion.transformers.normalizer import FEED_COLUMNS
from models.base import Category, SyncStatus
from models.sync_log import SyncLog
from schemas.normalized import NormalizedProduct

PARTNER_BASE_URL = "https://partner.test"
FEED_BASE_URL = "https://feeds.test/datafeed"


# ============================================================================
# In-memory stores
# ============================================================================

class InMemoryCatalogStore(CatalogStore):
    """Catalog keyed by source_url with the same update policy as PostgreSQL"""

    def __init__(self):
        self.rows: Dict[str, NormalizedProduct] = {}
        self.writes: List[str] = []
        self.fail_urls = set()

    def _check(self, source_url: str, operation: str):
        if source_url in self.fail_urls:
            raise UpsertError(
                f"{operation} rejected for {source_url}",
                context={"source_url": source_url, "operation": operation}
            )

    async def upsert(self, product: NormalizedProduct) -> UpsertOutcome:
        self._check(product.source_url, "UPSERT")
        self.writes.append(product.source_url)
        now = datetime.utcnow()
        existing = self.rows.get(product.source_url)
        if existing is not None:
            self.rows[product.source_url] = existing.model_copy(
                update={"price": product.price, "updated_at": now}
            )
            return UpsertOutcome.UPDATED
        self.rows[product.source_url] = product.model_copy(update={"created_at": now, "updated_at": now})
        return UpsertOutcome.INSERTED

    async def get_by_source_url(self, source_url: str) -> Optional[NormalizedProduct]:
        return self.rows.get(source_url)

    async def insert(self, product: NormalizedProduct) -> None:
        self._check(product.source_url, "INSERT")
        self.writes.append(product.source_url)
        now = datetime.utcnow()
        self.rows[product.source_url] = product.model_copy(update={"created_at": now, "updated_at": now})

    async def update_price(self, source_url: str, price: Decimal) -> None:
        self._check(source_url, "UPDATE")
        self.writes.append(source_url)
        self.rows[source_url] = self.rows[source_url].model_copy(
            update={"price": price, "updated_at": datetime.utcnow()}
        )


class InMemorySyncLogStore(SyncLogStore):
    """Sync logs as detached SyncLog instances"""

    def __init__(self):
        self.logs: Dict[int, SyncLog] = {}
        self.progress: List[tuple] = []
        self.fail_progress = False
        self._next_id = 1

    def add_log(self, platform: str, status: SyncStatus, **fields) -> SyncLog:
        now = datetime.utcnow()
        log = SyncLog(
            id=self._next_id,
            platform=platform,
            status=status,
            items_found=fields.get("items_found", 0),
            items_added=fields.get("items_added", 0),
            error_message=fields.get("error_message"),
            created_at=fields.get("created_at", now),
            updated_at=now,
        )
        self.logs[log.id] = log
        self._next_id += 1
        return log

    def running(self, platform: str) -> List[SyncLog]:
        return [
            log for log in self.logs.values()
            if log.platform == platform and log.status == SyncStatus.RUNNING
        ]

    async def mark_stale_running(self, platform: str) -> int:
        stale = self.running(platform)
        for log in stale:
            log.status = SyncStatus.ERROR
            log.error_message = "Interrupted by new sync or timeout"
        return len(stale)

    async def create_running(self, platform: str) -> int:
        assert not self.running(platform), "platform already has a running log"
        return self.add_log(platform, SyncStatus.RUNNING).id

    async def update_progress(self, log_id: int, items_found: int, items_added: int) -> None:
        if self.fail_progress:
            raise SyncLogError("progress update rejected", context={"log_id": log_id})
        self.progress.append((log_id, items_found, items_added))
        self.logs[log_id].items_found = items_found
        self.logs[log_id].items_added = items_added

    async def finalize(
        self,
        log_id: int,
        status: SyncStatus,
        items_found: int,
        items_added: int,
        error_message: Optional[str] = None,
    ) -> None:
        log = self.logs[log_id]
        assert log.status == SyncStatus.RUNNING, "sync log finalized twice"
        log.status = status
        log.items_found = items_found
        log.items_added = items_added
        log.error_message = error_message

    async def latest_per_platform(self) -> List[SyncLog]:
        latest: Dict[str, SyncLog] = {}
        for log in self.logs.values():
            if log.platform not in latest or log.id > latest[log.platform].id:
                latest[log.platform] = log
        return sorted(latest.values(), key=lambda log: log.created_at, reverse=True)


@pytest.fixture
def catalog_store():
    return InMemoryCatalogStore()


@pytest.fixture
def sync_log_store():
    return InMemorySyncLogStore()


# ============================================================================
# Records and archives
# ============================================================================

@pytest.fixture
def make_product():
    """Factory for canonical products"""

    def _make(**overrides) -> NormalizedProduct:
        fields = {
            "title": "Sony WH-1000XM5 Auriculares",
            "description": "Cancelación de ruido",
            "price": Decimal("299.00"),
            "currency": "EUR",
            "image_url": "https://img.test/sony.jpg",
            "source_url": "https://track.test/p/1",
            "platform": "fnac",
            "category": Category.TECH_ELECTRONICS,
        }
        fields.update(overrides)
        return NormalizedProduct(**fields)

    return _make


@pytest.fixture
def feed_row():
    """Factory for raw feed rows with every requested column"""

    def _row(index: int = 1, **overrides) -> Dict[str, str]:
        row = {
            "product_name": f"Auriculares Bluetooth modelo {index}",
            "description": "Auriculares inalámbricos",
            "search_price": "59.90",
            "currency": "EUR",
            "merchant_image_url": f"https://img.test/{index}.jpg",
            "aw_product_id": str(1000 + index),
            "merchant_product_id": f"SKU-{index}",
            "merchant_category": "Electrónica > Audio",
            "aw_deep_link": f"https://track.test/p/{index}",
            "merchant_deep_link": f"https://shop.test/p/{index}",
        }
        row.update(overrides)
        return row

    return _row


def rows_to_csv(rows: List[Dict[str, str]], columns: Optional[List[str]] = None) -> str:
    columns = columns or FEED_COLUMNS
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()


def build_archive(members: Dict[str, str]) -> bytes:
    """Zip bytes with one entry per (name, text) pair"""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, text in members.items():
            archive.writestr(name, text)
    return buffer.getvalue()


@pytest.fixture
def archive_bytes():
    """Factory: rows -> zipped CSV feed"""

    def _archive(rows: List[Dict[str, str]], name: str = "datafeed.csv") -> bytes:
        return build_archive({name: rows_to_csv(rows)})

    return _archive


# ============================================================================
# Partner HTTP
# ============================================================================

def feed_catalog_text(feeds: List[Dict[str, object]]) -> str:
    """Feed list export in the partner's column layout"""
    header = [
        "Advertiser ID", "Advertiser Name", "Primary Region", "Membership Status",
        "Feed ID", "Feed Name", "Language", "Vertical", "Last Imported",
        "Last Checked", "No of products", "URL",
    ]
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL)
    writer.writerow(header)
    for feed in feeds:
        writer.writerow([
            feed["partner_id"], feed.get("partner_name", ""), "ES", feed.get("status", "active"),
            feed["feed_id"], feed.get("name", ""), "es", "", "", "",
            feed.get("item_count", 0), "",
        ])
    return buffer.getvalue()


class PartnerServer:
    """httpx.MockTransport handler emulating programmes, feed list and downloads"""

    def __init__(self, programmes=None, catalog: str = "", archives=None):
        self.programmes = programmes or []
        self.catalog = catalog
        self.archives: Dict[int, object] = archives or {}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/programmes"):
            return httpx.Response(200, json=self.programmes)

        if "/list/apikey/" in path:
            return httpx.Response(200, text=self.catalog)

        match = re.search(r"/fid/(\d+)/", path)
        if "/download/" in path and match:
            archive = self.archives.get(int(match.group(1)))
            if archive is None:
                return httpx.Response(404)
            if isinstance(archive, Exception):
                raise archive
            return httpx.Response(200, content=archive)

        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def partner_server():
    return PartnerServer()


@pytest.fixture
def api_client(partner_server):
    return PartnerAPIClient(
        api_token="token-123",
        feed_key="feedkey-456",
        publisher_id="777",
        base_url=PARTNER_BASE_URL,
        feed_base_url=FEED_BASE_URL,
        http_client=partner_server.client(),
        max_retries=3,
        retry_delay=0,
        timeout=5,
    )


@pytest.fixture
def feed_catalog():
    """Factory: feed dicts -> feed list export text"""
    return feed_catalog_text


@pytest.fixture
def zip_archive():
    """Factory: {member name: text} -> zip bytes"""
    return build_archive


@pytest.fixture
def feed_csv():
    """Factory: rows -> CSV text with the feed header"""
    return rows_to_csv
