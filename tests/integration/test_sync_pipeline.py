"""
Integration tests for the complete partner sync pipeline
"""

from decimal import Decimal

import httpx
import pytest
from models.base import Category, SyncStatus
from ingestion.extractors.archive_processor import ArchiveStreamProcessor
from ingestion.extractors.partner_api import PartnerAPIClient
from ingestion.runner import SyncOrchestrator, summarize_partners

PROGRAMMES = [{"id": 101, "name": "Fnac"}, {"id": 202, "name": "Bikila"}]


@pytest.fixture
def make_orchestrator(partner_server, catalog_store, sync_log_store, tmp_path):
    """Orchestrator wired to the mock partner server and in-memory stores"""

    def _make(server=None, **kwargs):
        server = server or partner_server
        client = PartnerAPIClient(
            api_token="token-123",
            feed_key="feedkey-456",
            publisher_id="777",
            base_url="https://partner.test",
            feed_base_url="https://feeds.test/datafeed",
            http_client=server.client(),
            max_retries=1,
            retry_delay=0,
        )
        processor = ArchiveStreamProcessor(
            catalog_store,
            sync_log_store,
            http_client=server.client(),
            temp_dir=str(tmp_path),
            **kwargs
        )
        return SyncOrchestrator(
            catalog_store,
            sync_log_store,
            api_client=client,
            processor=processor,
            inter_partner_delay=0,
            network="awin",
        )

    return _make


@pytest.fixture
def two_partners(partner_server, feed_catalog, feed_row, archive_bytes):
    """Fnac (feed 11) and Bikila (feed 22), three sellable rows each"""
    partner_server.programmes = list(PROGRAMMES)
    partner_server.catalog = feed_catalog([
        {"partner_id": 101, "feed_id": 11, "name": "Fnac ES", "item_count": 3},
        {"partner_id": 202, "feed_id": 22, "name": "Bikila Running", "item_count": 3},
    ])
    partner_server.archives = {
        11: archive_bytes([feed_row(i) for i in range(1, 4)]),
        22: archive_bytes([
            feed_row(
                i,
                product_name=f"Zapatillas trail {i}",
                merchant_category="Deportes > Running",
                search_price="89.95",
                aw_deep_link=f"https://track.test/bikila/{i}",
            )
            for i in range(1, 4)
        ]),
    }
    return partner_server


@pytest.mark.asyncio
async def test_full_sync_pipeline(two_partners, make_orchestrator, catalog_store, sync_log_store):
    """
    Integration test: programmes -> feed catalog -> archive -> catalog and sync logs
    """
    run = await make_orchestrator().run_all()

    assert run.error_message is None
    assert run.partners_found == 2
    assert [p.status for p in run.partners] == ["success", "success"]
    assert run.totals == {"processed": 6, "added": 6, "skipped": 0, "errors": 0}

    assert len(catalog_store.rows) == 6
    assert catalog_store.rows["https://track.test/p/1"].category == Category.TECH_ELECTRONICS
    assert catalog_store.rows["https://track.test/bikila/1"].category == Category.SPORTS_LEISURE
    assert catalog_store.rows["https://track.test/bikila/1"].platform == "bikila"

    logs = sorted(sync_log_store.logs.values(), key=lambda log: log.id)
    assert [(log.platform, log.status) for log in logs] == [
        ("awin-Fnac", SyncStatus.SUCCESS),
        ("awin-Bikila", SyncStatus.SUCCESS),
    ]
    assert (logs[0].items_found, logs[0].items_added, logs[0].error_message) == (3, 3, None)

    summary = summarize_partners(run)
    assert summary[0]["partner"] == "Fnac"
    assert summary[0]["added"] == 3


@pytest.mark.asyncio
async def test_rerun_is_idempotent(
    two_partners, make_orchestrator, catalog_store, feed_row, archive_bytes
):
    """Second run with a new price keeps one row per link and its first title"""
    await make_orchestrator().run_all()
    first = dict(catalog_store.rows)

    two_partners.archives[11] = archive_bytes([
        feed_row(i, product_name=f"Auriculares renombrados {i}", search_price="49.90")
        for i in range(1, 4)
    ])
    run = await make_orchestrator().run_all()

    assert run.totals["errors"] == 0
    assert len(catalog_store.rows) == 6
    stored = catalog_store.rows["https://track.test/p/2"]
    assert stored.price == Decimal("49.90")
    assert stored.title == first["https://track.test/p/2"].title
    assert stored.category == first["https://track.test/p/2"].category
    assert stored.price_score == first["https://track.test/p/2"].price_score
    assert stored.created_at == first["https://track.test/p/2"].created_at


@pytest.mark.asyncio
async def test_stale_running_log_recovered(two_partners, make_orchestrator, sync_log_store):
    stale = sync_log_store.add_log("awin-Fnac", SyncStatus.RUNNING)

    await make_orchestrator().run_all()

    assert stale.status == SyncStatus.ERROR
    assert stale.error_message == "Interrupted by new sync or timeout"
    fnac_logs = [log for log in sync_log_store.logs.values() if log.platform == "awin-Fnac"]
    assert len(fnac_logs) == 2
    assert fnac_logs[-1].status == SyncStatus.SUCCESS
    assert sync_log_store.running("awin-Fnac") == []


@pytest.mark.asyncio
async def test_failing_partner_does_not_stop_the_run(two_partners, make_orchestrator, sync_log_store, catalog_store):
    two_partners.archives[11] = b"<html>Feed temporarily unavailable</html>"

    run = await make_orchestrator().run_all()

    fnac, bikila = run.partners
    assert fnac.status == "error"
    assert "zip" in fnac.error_message
    assert bikila.status == "success"
    assert bikila.stats.added == 3

    statuses = {log.platform: log.status for log in sync_log_store.logs.values()}
    assert statuses == {"awin-Fnac": SyncStatus.ERROR, "awin-Bikila": SyncStatus.SUCCESS}
    assert all(url.startswith("https://track.test/bikila/") for url in catalog_store.rows)


@pytest.mark.asyncio
async def test_download_timeout_recorded(two_partners, make_orchestrator, sync_log_store):
    two_partners.archives[11] = httpx.ReadTimeout("read timed out")

    run = await make_orchestrator().run_all()

    assert run.partners[0].status == "timeout"
    fnac_log = next(log for log in sync_log_store.logs.values() if log.platform == "awin-Fnac")
    assert fnac_log.status == SyncStatus.TIMEOUT
    assert fnac_log.error_message
    assert run.partners[1].status == "success"


@pytest.mark.asyncio
async def test_partner_without_feed_is_skipped(two_partners, make_orchestrator, feed_catalog, sync_log_store):
    two_partners.catalog = feed_catalog([
        {"partner_id": 101, "feed_id": 11, "name": "Fnac ES", "item_count": 3},
        {"partner_id": 202, "feed_id": 22, "name": "Bikila Running", "status": "inactive"},
    ])

    run = await make_orchestrator().run_all()

    bikila = run.partners[1]
    assert bikila.status == "skipped"
    assert bikila.log_id is None
    assert "awin-Bikila" not in {log.platform for log in sync_log_store.logs.values()}


@pytest.mark.asyncio
async def test_stale_log_recovered_when_feed_is_gone(two_partners, make_orchestrator, feed_catalog, sync_log_store):
    two_partners.catalog = feed_catalog([
        {"partner_id": 101, "feed_id": 11, "name": "Fnac ES", "item_count": 3},
    ])
    stale = sync_log_store.add_log("awin-Bikila", SyncStatus.RUNNING)

    run = await make_orchestrator().run_all()

    assert run.partners[1].status == "skipped"
    assert stale.status == SyncStatus.ERROR
    assert sync_log_store.running("awin-Bikila") == []


@pytest.mark.asyncio
async def test_programmes_failure_aborts_run(make_orchestrator, sync_log_store):
    class DownServer:
        def __call__(self, request):
            return httpx.Response(503)

        def client(self):
            return httpx.AsyncClient(transport=httpx.MockTransport(self))

    run = await make_orchestrator(server=DownServer()).run_all()

    assert run.partners == []
    assert run.error_message
    assert run.completed_at is not None
    assert sync_log_store.logs == {}


@pytest.mark.asyncio
async def test_partner_filter(two_partners, make_orchestrator):
    run = await make_orchestrator().run_all(partner_filter="bik")

    assert run.partners_found == 1
    assert [p.partner_name for p in run.partners] == ["Bikila"]
    assert not any("/fid/11/" in str(r.url) for r in two_partners.requests)


@pytest.mark.asyncio
async def test_row_errors_reported_on_success(two_partners, make_orchestrator, catalog_store, sync_log_store):
    catalog_store.fail_urls = {"https://track.test/p/2"}

    run = await make_orchestrator().run_all()

    fnac = run.partners[0]
    assert fnac.status == "success"
    assert fnac.stats.errors == 1
    assert fnac.error_message == "1 row errors"
    fnac_log = next(log for log in sync_log_store.logs.values() if log.platform == "awin-Fnac")
    assert (fnac_log.items_found, fnac_log.items_added) == (3, 2)
