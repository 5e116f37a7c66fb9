"""
Feed locator - pick the feed to sync for a partner from the feed catalog
"""

import io
import re
from typing import List, Optional
import logging

import pandas as pd

from core.exceptions import DiscoveryError, FeedCatalogError
from ingestion.extractors.partner_api import PartnerAPIClient
from schemas.partner import Feed, Partner

logger = logging.getLogger(__name__)

# Header name -> positional fallback in the feed list export
CATALOG_COLUMNS = {
    "partner_id": ("Advertiser ID", 0),
    "status": ("Membership Status", 3),
    "feed_id": ("Feed ID", 4),
    "name": ("Feed Name", 5),
    "item_count": ("No of products", 10),
}

GENERAL_FEED_PATTERN = re.compile(r"general|universal|default", re.IGNORECASE)


def _to_int(value: str) -> Optional[int]:
    digits = re.sub(r"[^\d]", "", value or "")
    return int(digits) if digits else None


def parse_feed_catalog(text: str) -> List[Feed]:
    """
    Parse the delimited feed catalog listing.

    Rows without a numeric partner id or feed id are ignored.

    Raises:
        FeedCatalogError: the listing is not parseable as delimited text
    """
    if not text or not text.strip():
        return []

    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            on_bad_lines="skip",
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise FeedCatalogError("Failed to parse feed catalog", original_exception=e)

    df.columns = [str(c).strip() for c in df.columns]

    columns = {}
    for field, (header, position) in CATALOG_COLUMNS.items():
        if header in df.columns:
            columns[field] = header
        elif position < len(df.columns):
            columns[field] = df.columns[position]
        else:
            raise FeedCatalogError(
                f"Feed catalog has no '{header}' column",
                context={"columns": list(df.columns)}
            )

    feeds = []
    for row in df.to_dict(orient="records"):
        partner_id = _to_int(row[columns["partner_id"]])
        feed_id = _to_int(row[columns["feed_id"]])
        if partner_id is None or feed_id is None:
            continue
        feeds.append(Feed(
            id=feed_id,
            partner_id=partner_id,
            name=row[columns["name"]].strip(),
            status=row[columns["status"]].strip().lower(),
            item_count=_to_int(row[columns["item_count"]]) or 0,
        ))
    return feeds


def select_feed(feeds: List[Feed], partner_id: int) -> Optional[Feed]:
    """
    Choose one active feed of the partner.

    Precedence: a general/universal/default feed, then the largest item
    count. Ties keep catalog order.
    """
    candidates = [f for f in feeds if f.partner_id == partner_id and f.is_active]
    if not candidates:
        return None

    for feed in candidates:
        if GENERAL_FEED_PATTERN.search(feed.name):
            return feed

    best = candidates[0]
    for feed in candidates[1:]:
        if feed.item_count > best.item_count:
            best = feed
    return best


class FeedLocator:
    """
    Resolve a partner to its feed id.

    The catalog is fetched fresh for every lookup; failures are logged
    and reported as not-found so the orchestrator just skips the partner.
    """

    def __init__(self, client: PartnerAPIClient):
        self.client = client

    async def locate_feed(self, partner: Partner) -> Optional[int]:
        partner_id = _to_int(partner.feed_api_identifier) or partner.id

        try:
            feeds = parse_feed_catalog(await self.client.fetch_feed_catalog())
        except DiscoveryError as e:
            logger.warning(
                f"Feed catalog unavailable for {partner.name}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return None

        feed = select_feed(feeds, partner_id)
        if feed is None:
            logger.warning(f"No active feed found for {partner.name} ({partner_id})")
            return None

        logger.info(f"Selected feed {feed.id} '{feed.name}' ({feed.item_count} items) for {partner.name}")
        return feed.id
