"""
Archive stream processor - download a zipped feed, stream-decode its rows and
push each row through normalization, trust filtering and upsert.

Memory model:
- The archive body is copied chunk by chunk into a size-bounded temp file
- Each tabular member is decompressed as a stream and decoded by pandas in
  fixed-size chunks, so at most CSV_CHUNK_SIZE rows are alive at a time
- Rows are handed downstream one at a time through a generator
"""

import asyncio
import os
import tempfile
import zipfile
import zlib
from contextlib import asynccontextmanager, closing
from decimal import Decimal
from pathlib import Path
from typing import AsyncIterator, Dict, Iterable, Iterator, Mapping, Optional, Set
import logging

import httpx
import pandas as pd

from core.config import settings
from core.exceptions import (
    ArchiveDecodeError,
    ArchiveDownloadError,
    ArchiveTooLargeError,
    DownloadTimeoutError,
    RecordError,
    StoreError,
)
from ingestion.base import CatalogStore, SyncLogStore, UpsertOutcome, UpsertResult
from ingestion.loaders.upsert_controller import UpsertController
from ingestion.transformers.categorizer import classify
from ingestion.transformers.normalizer import RawRecord, RecordNormalizer, parse_price, platform_key
from ingestion.transformers.trust_engine import is_trusted
from models.base import Category
from schemas.api import FeedStats

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024


def iter_archive_rows(
    path: str,
    extensions: Optional[Iterable[str]] = None,
    chunk_size: Optional[int] = None,
) -> Iterator[Dict[str, str]]:
    """
    Yield the rows of every tabular member of a zip archive, in archive order.

    Columns come from each member's header line; column names and string
    values are trimmed, blank lines and malformed lines are skipped.

    Raises:
        ArchiveDecodeError: not a zip, no tabular member, or undecodable data
    """
    extensions = {e.lower() for e in (extensions or settings.TABULAR_EXTENSIONS)}
    chunk_size = chunk_size or settings.CSV_CHUNK_SIZE

    try:
        archive = zipfile.ZipFile(path)
    except (zipfile.BadZipFile, OSError) as e:
        raise ArchiveDecodeError(
            "Archive is not a valid zip file",
            context={"archive_path": path},
            original_exception=e
        )

    with archive:
        members = [
            m for m in archive.infolist()
            if not m.is_dir() and Path(m.filename).suffix.lower() in extensions
        ]
        if not members:
            raise ArchiveDecodeError(
                "Archive contains no tabular entry",
                context={"archive_path": path, "entries": archive.namelist()[:20]}
            )

        for member in members:
            separator = "\t" if member.filename.lower().endswith(".tsv") else ","
            logger.debug(f"Decoding archive entry {member.filename} ({member.file_size} bytes)")
            try:
                with archive.open(member) as stream:
                    with pd.read_csv(
                        stream,
                        sep=separator,
                        chunksize=chunk_size,
                        dtype=str,
                        keep_default_na=False,
                        skip_blank_lines=True,
                        skipinitialspace=True,
                        on_bad_lines="skip",
                        encoding_errors="replace",
                    ) as reader:
                        for chunk in reader:
                            columns = [str(c).strip() for c in chunk.columns]
                            for values in chunk.itertuples(index=False, name=None):
                                yield {
                                    column: value.strip() if isinstance(value, str) else value
                                    for column, value in zip(columns, values)
                                }
            except pd.errors.EmptyDataError:
                logger.warning(f"Archive entry {member.filename} is empty")
            except (pd.errors.ParserError, zipfile.BadZipFile, zlib.error, EOFError) as e:
                raise ArchiveDecodeError(
                    "Failed to decode archive entry",
                    context={"archive_path": path, "entry": member.filename},
                    original_exception=e
                )


class ArchiveStreamProcessor:
    """
    Process one partner feed archive end to end.

    Per-row order:
    1. Run-scoped dedup on the tracking link
    2. Category classification
    3. Price parsing
    4. Normalization and trust filtering
    5. Upsert; store failures are counted, never raised

    Attributes:
        download_timeout: Time budget for the whole archive download
        max_bytes: Temp file size bound
        checkpoint_interval: Rows between sync log progress updates
    """

    def __init__(
        self,
        catalog_store: CatalogStore,
        sync_log_store: Optional[SyncLogStore] = None,
        normalizer: Optional[RecordNormalizer] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        category_medians: Optional[Mapping[Category, Decimal]] = None,
        download_timeout: Optional[float] = None,
        max_bytes: Optional[int] = None,
        temp_dir: Optional[str] = None,
        checkpoint_interval: Optional[int] = None,
        max_logged_errors: Optional[int] = None,
    ):
        self.catalog_store = catalog_store
        self.sync_log_store = sync_log_store
        self.normalizer = normalizer or RecordNormalizer()
        self.category_medians = category_medians
        self.download_timeout = download_timeout or settings.ARCHIVE_DOWNLOAD_TIMEOUT
        self.max_bytes = max_bytes or settings.ARCHIVE_MAX_BYTES
        self.temp_dir = temp_dir or settings.ARCHIVE_TEMP_DIR
        self.checkpoint_interval = checkpoint_interval or settings.CHECKPOINT_INTERVAL
        self.max_logged_errors = settings.MAX_LOGGED_ROW_ERRORS if max_logged_errors is None else max_logged_errors
        self._http_client = http_client

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.download_timeout, follow_redirects=True) as client:
            yield client

    async def _download(self, feed_url: str, path: str, partner_name: str) -> int:
        """Stream the response body into path; returns the byte count"""
        written = 0
        async with self._client() as client:
            async with client.stream("GET", feed_url) as response:
                if response.status_code >= 400:
                    raise ArchiveDownloadError(
                        f"Archive download failed with status {response.status_code}",
                        context={"partner_name": partner_name, "status_code": response.status_code}
                    )
                with open(path, "wb") as fh:
                    async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                        written += len(chunk)
                        if written > self.max_bytes:
                            raise ArchiveTooLargeError(
                                "Archive exceeds the temporary storage bound",
                                context={"partner_name": partner_name, "max_bytes": self.max_bytes}
                            )
                        fh.write(chunk)
        return written

    @asynccontextmanager
    async def downloaded_archive(self, feed_url: str, partner_name: str = "") -> AsyncIterator[str]:
        """
        Download the archive to a temp file and yield its path.

        The temp file is removed on every exit path.

        Raises:
            DownloadTimeoutError: download exceeded download_timeout
            ArchiveDownloadError: HTTP or transport failure
            ArchiveTooLargeError: body exceeded max_bytes
        """
        fd, path = tempfile.mkstemp(prefix="feed-", suffix=".zip", dir=self.temp_dir)
        os.close(fd)

        try:
            try:
                size = await asyncio.wait_for(
                    self._download(feed_url, path, partner_name),
                    timeout=self.download_timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                raise DownloadTimeoutError(
                    f"Archive download exceeded {self.download_timeout}s",
                    context={"partner_name": partner_name, "timeout": self.download_timeout},
                    original_exception=e
                )
            except httpx.HTTPError as e:
                raise ArchiveDownloadError(
                    "Archive download failed",
                    context={"partner_name": partner_name},
                    original_exception=e
                )

            logger.info(f"Downloaded {size} bytes for {partner_name}")
            yield path
        finally:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass

    async def process_row(
        self,
        record: RawRecord,
        platform: str,
        controller: UpsertController,
    ) -> Optional[UpsertResult]:
        """Returns None when the row is skipped"""
        source_url = record.text("aw_deep_link", "merchant_deep_link")
        if not source_url or not controller.check_and_mark(source_url):
            return None

        category = classify(record.text("merchant_category"), record.text("product_name"))
        if category is None:
            return None

        price = parse_price(record.text("search_price"))
        if price is None:
            return None

        try:
            product = self.normalizer.normalize_feed_row(record, platform, category, price)
        except RecordError as e:
            logger.debug(f"Row rejected: {e.message}")
            return None

        if not is_trusted(product):
            return None

        return await controller.upsert(product)

    async def _checkpoint(self, log_id: Optional[int], stats: FeedStats) -> None:
        if log_id is None or self.sync_log_store is None:
            return
        try:
            await self.sync_log_store.update_progress(log_id, stats.processed, stats.added)
            logger.debug(f"Checkpoint log {log_id}: processed={stats.processed} added={stats.added}")
        except StoreError as e:
            logger.warning(f"Checkpoint failed for sync log {log_id}: {e.message}")

    async def process_feed(
        self,
        feed_url: str,
        partner_id: int,
        partner_name: str,
        log_id: Optional[int] = None,
        stats: Optional[FeedStats] = None,
    ) -> FeedStats:
        """
        Download, decode and ingest one feed.

        Returns:
            FeedStats with processed/added/skipped/errors counters. When a
            stats object is passed it is filled in place, so callers still see
            partial counts if the archive fails mid-way.

        Raises:
            TransportError: download failed or timed out
            ArchiveDecodeError: archive not decodable
        """
        platform = platform_key(partner_name)
        controller = UpsertController(self.catalog_store, self.category_medians)
        stats = stats if stats is not None else FeedStats()
        logged_errors: Set[str] = set()

        logger.info(f"Processing feed for {partner_name} ({partner_id})")

        async with self.downloaded_archive(feed_url, partner_name) as path:
            with closing(iter_archive_rows(path)) as rows:
                for row in rows:
                    stats.processed += 1
                    result = await self.process_row(RawRecord(row), platform, controller)

                    if result is None:
                        stats.skipped += 1
                    elif result.outcome == UpsertOutcome.ERROR:
                        stats.errors += 1
                        if result.error not in logged_errors and len(logged_errors) < self.max_logged_errors:
                            logged_errors.add(result.error)
                            logger.error(f"Row {stats.processed} of {partner_name} failed: {result.error}")
                    else:
                        stats.added += 1

                    if stats.processed % self.checkpoint_interval == 0:
                        await self._checkpoint(log_id, stats)

        logger.info(
            f"Feed for {partner_name} done: processed={stats.processed}, added={stats.added}, "
            f"skipped={stats.skipped}, errors={stats.errors}"
        )
        return stats
