"""
Tests for failure scenarios and error handling
"""

import io
import zipfile

import pytest
from unittest.mock import AsyncMock
from core.exceptions import SyncLogError
from ingestion.extractors.archive_processor import ArchiveStreamProcessor
from ingestion.extractors.partner_api import PartnerAPIClient
from ingestion.runner import SyncOrchestrator
from models.base import SyncStatus


@pytest.fixture
def fnac_server(partner_server, feed_catalog, feed_row, archive_bytes):
    partner_server.programmes = [{"id": 101, "name": "Fnac"}, {"id": 202, "name": "Bikila"}]
    partner_server.catalog = feed_catalog([
        {"partner_id": 101, "feed_id": 11, "name": "Fnac ES", "item_count": 3},
        {"partner_id": 202, "feed_id": 22, "name": "Bikila", "item_count": 1},
    ])
    partner_server.archives = {
        11: archive_bytes([feed_row(i) for i in range(1, 4)]),
        22: archive_bytes([feed_row(9, aw_deep_link="https://track.test/bikila/9")]),
    }
    return partner_server


@pytest.fixture
def orchestrator(fnac_server, catalog_store, sync_log_store, tmp_path):
    client = PartnerAPIClient(
        api_token="token-123",
        feed_key="feedkey-456",
        publisher_id="777",
        base_url="https://partner.test",
        feed_base_url="https://feeds.test/datafeed",
        http_client=fnac_server.client(),
        max_retries=1,
        retry_delay=0,
    )
    processor = ArchiveStreamProcessor(
        catalog_store,
        sync_log_store,
        http_client=fnac_server.client(),
        temp_dir=str(tmp_path),
    )
    return SyncOrchestrator(
        catalog_store,
        sync_log_store,
        api_client=client,
        processor=processor,
        inter_partner_delay=0,
        network="awin",
    )


def fnac_log(sync_log_store):
    return next(log for log in sync_log_store.logs.values() if log.platform == "awin-Fnac")


@pytest.mark.asyncio
async def test_archive_not_found_logged(fnac_server, orchestrator, sync_log_store):
    """
    Test: feed download returns 404, partner run ends in error, run continues
    """
    del fnac_server.archives[11]

    run = await orchestrator.run_all()

    assert run.partners[0].status == "error"
    assert "404" in run.partners[0].error_message
    assert fnac_log(sync_log_store).status == SyncStatus.ERROR
    assert run.partners[1].status == "success"


@pytest.mark.asyncio
async def test_corrupt_archive_keeps_partial_counts(
    fnac_server, orchestrator, sync_log_store, catalog_store, feed_row, feed_csv
):
    """
    Test: second archive entry fails its CRC check after the first entry was
    ingested; the error log still carries the counts reached so far
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_STORED) as archive:
        archive.writestr("part1.csv", feed_csv([feed_row(1), feed_row(2)]))
        archive.writestr("part2.csv", feed_csv([feed_row(3, product_name="CORRUPTMARKER")]))
    fnac_server.archives[11] = buffer.getvalue().replace(b"CORRUPTMARKER", b"CORRUPTMARKEX")

    run = await orchestrator.run_all()

    fnac = run.partners[0]
    assert fnac.status == "error"
    assert fnac.stats.added == 2
    log = fnac_log(sync_log_store)
    assert log.status == SyncStatus.ERROR
    assert (log.items_found, log.items_added) == (2, 2)
    fnac_urls = {url for url in catalog_store.rows if "/p/" in url}
    assert fnac_urls == {"https://track.test/p/1", "https://track.test/p/2"}


@pytest.mark.asyncio
async def test_feed_catalog_down_skips_partners(fnac_server, orchestrator, sync_log_store):
    """
    Test: feed catalog unavailable, partners are skipped without sync logs
    """
    fnac_server.catalog = "Advertiser ID,Feed ID\n"

    run = await orchestrator.run_all()

    assert [p.status for p in run.partners] == ["skipped", "skipped"]
    assert sync_log_store.logs == {}


@pytest.mark.asyncio
async def test_sync_log_creation_failure_isolated(orchestrator, sync_log_store):
    """
    Test: sync log cannot be created for one partner, the next still runs
    """
    original = sync_log_store.create_running

    async def create_running(platform):
        if platform == "awin-Fnac":
            raise SyncLogError("sync_logs unavailable", context={"platform": platform})
        return await original(platform)

    sync_log_store.create_running = create_running

    run = await orchestrator.run_all()

    assert run.partners[0].status == "error"
    assert "sync_logs unavailable" in run.partners[0].error_message
    assert run.partners[1].status == "success"


@pytest.mark.asyncio
async def test_finalize_failure_does_not_crash(orchestrator, sync_log_store, caplog):
    """
    Test: terminal sync log update fails, the failure is logged, the run goes on
    """
    sync_log_store.finalize = AsyncMock(side_effect=SyncLogError("finalize rejected"))

    run = await orchestrator.run_all()

    assert [p.status for p in run.partners] == ["success", "success"]
    assert sync_log_store.finalize.await_count == 2
    assert "Failed to finalize sync log" in caplog.text


@pytest.mark.asyncio
async def test_unexpected_processor_error(orchestrator, sync_log_store):
    """
    Test: a non-pipeline exception still finalizes the log exactly once
    """
    orchestrator.processor.process_feed = AsyncMock(side_effect=RuntimeError("disk full"))

    run = await orchestrator.run_all()

    assert run.partners[0].status == "error"
    assert run.partners[0].error_message == "disk full"
    log = fnac_log(sync_log_store)
    assert log.status == SyncStatus.ERROR
    assert log.error_message == "disk full"
    assert all(log.status != SyncStatus.RUNNING for log in sync_log_store.logs.values())
