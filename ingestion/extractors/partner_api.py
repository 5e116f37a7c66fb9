"""
Affiliate partner API client with authentication and retry logic.

Covers the three partner endpoints the pipeline consumes:
- joined programmes (bearer token)
- feed catalog listing (API key in the path)
- feed archive download URL construction

Transient failures (timeouts, connection errors, 5xx, 429) are retried with
exponential backoff; 401/403/404 fail immediately.
"""

import asyncio
import math
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, AsyncIterator, Dict, List, Optional
import httpx
import logging

from core.config import settings
from core.exceptions import (
    AuthenticationError,
    NetworkError,
    PartnerAPIError,
    RateLimitError,
    ResourceNotFoundError,
)
from ingestion.transformers.normalizer import FEED_COLUMNS
from schemas.partner import Partner

logger = logging.getLogger(__name__)


def parse_retry_after(value: Optional[str], default: float) -> float:
    """
    Seconds to wait from a Retry-After header.

    Accepts delay-seconds ("120", "1.5") or an HTTP-date. Missing or
    unparseable values fall back to the backoff delay; past dates give 0.
    """
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        return max(seconds, 0.0) if math.isfinite(seconds) else default
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unparseable Retry-After header: {value!r}")
        return default
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max((retry_at - datetime.now(timezone.utc)).total_seconds(), 0.0)


class PartnerAPIClient:
    """
    Client for the affiliate network's programme and feed endpoints.

    Attributes:
        max_retries: Maximum number of attempts per request
        retry_delay: Initial retry delay in seconds, doubled per attempt
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        api_token: Optional[str] = None,
        feed_key: Optional[str] = None,
        publisher_id: Optional[str] = None,
        base_url: Optional[str] = None,
        feed_base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self.api_token = api_token or settings.AWIN_API_TOKEN
        self.feed_key = feed_key or settings.feed_api_key or self.api_token
        self.publisher_id = publisher_id or settings.AWIN_PUBLISHER_ID
        self.base_url = (base_url or settings.PARTNER_API_BASE_URL).rstrip("/")
        self.feed_base_url = (feed_base_url or settings.FEED_BASE_URL).rstrip("/")
        self.max_retries = max_retries or settings.MAX_RETRIES
        self.retry_delay = settings.RETRY_DELAY if retry_delay is None else retry_delay
        self.timeout = timeout or settings.FEED_CATALOG_TIMEOUT
        self._http_client = http_client

    @asynccontextmanager
    async def client(self, timeout: Optional[float] = None) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the injected client, or a short-lived one"""
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=timeout or self.timeout, follow_redirects=True) as client:
            yield client

    def _redact(self, url: str) -> str:
        if self.feed_key:
            url = url.replace(self.feed_key, "***")
        return url

    async def _get_with_retry(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        GET with retry logic and exponential backoff.

        Raises:
            AuthenticationError: 401/403
            ResourceNotFoundError: 404
            RateLimitError: 429 after max retries
            NetworkError: timeouts, connection errors or 5xx after max retries
        """
        safe_url = self._redact(url)

        async with self.client() as client:
            for attempt in range(self.max_retries):
                delay = self.retry_delay * (2 ** attempt)
                last_attempt = attempt == self.max_retries - 1
                context = {"api_url": safe_url, "retry_count": attempt + 1}

                try:
                    logger.debug(f"Request attempt {attempt + 1}/{self.max_retries} to {safe_url}")
                    response = await client.get(url, headers=headers, params=params, timeout=self.timeout)
                except httpx.TimeoutException as e:
                    if last_attempt:
                        raise NetworkError(
                            f"Request timeout after {self.max_retries} attempts",
                            context={**context, "timeout": self.timeout},
                            original_exception=e
                        )
                    logger.warning(f"Request timeout on {safe_url}. Retrying in {delay} seconds")
                    await asyncio.sleep(delay)
                    continue
                except httpx.TransportError as e:
                    if last_attempt:
                        raise NetworkError(
                            f"Network error after {self.max_retries} attempts",
                            context=context,
                            original_exception=e
                        )
                    logger.warning(f"Network error on {safe_url}. Retrying in {delay} seconds")
                    await asyncio.sleep(delay)
                    continue

                if response.status_code in (401, 403):
                    raise AuthenticationError(
                        f"Authentication failed for {safe_url}",
                        context={**context, "status_code": response.status_code}
                    )

                if response.status_code == 404:
                    raise ResourceNotFoundError(
                        f"Resource not found: {safe_url}",
                        context={**context, "status_code": 404}
                    )

                if response.status_code == 429:
                    retry_after = parse_retry_after(response.headers.get("Retry-After"), delay)
                    if last_attempt:
                        raise RateLimitError(
                            f"Rate limit exceeded for {safe_url}",
                            context={**context, "status_code": 429},
                            retry_after=retry_after
                        )
                    logger.warning(f"Rate limited. Retrying after {retry_after} seconds")
                    await asyncio.sleep(retry_after)
                    continue

                if response.status_code >= 500:
                    if last_attempt:
                        raise NetworkError(
                            f"Server error after {self.max_retries} attempts",
                            context={
                                **context,
                                "status_code": response.status_code,
                                "response_body": response.text[:500],
                            }
                        )
                    logger.warning(
                        f"Server error {response.status_code}. "
                        f"Retrying in {delay} seconds (attempt {attempt + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue

                if response.status_code >= 400:
                    raise PartnerAPIError(
                        f"Unexpected status {response.status_code} from {safe_url}",
                        context={**context, "status_code": response.status_code}
                    )

                return response

        raise PartnerAPIError("Max retries exceeded", context={"api_url": safe_url})

    async def fetch_joined_programmes(self) -> List[Partner]:
        """
        Fetch all programmes the publisher has joined.

        Raises:
            PartnerAPIError: credentials missing or the API failed
        """
        if not self.api_token or not self.publisher_id:
            raise AuthenticationError(
                "Partner API credentials (AWIN_API_TOKEN, AWIN_PUBLISHER_ID) are missing"
            )

        url = f"{self.base_url}/publishers/{self.publisher_id}/programmes"
        response = await self._get_with_retry(
            url,
            headers={
                "Authorization": f"Bearer {self.api_token}",
                "Content-Type": "application/json",
            },
            params={"relationship": "joined"},
        )

        try:
            data = response.json()
        except ValueError as e:
            raise PartnerAPIError(
                "Failed to parse programmes response",
                context={"api_url": url, "response_body": response.text[:500]},
                original_exception=e
            )

        if isinstance(data, dict):
            data = data.get("data", data.get("programmes", []))

        partners = []
        for item in data or []:
            if not isinstance(item, dict) or "id" not in item:
                continue
            try:
                partner_id = int(item["id"])
            except (TypeError, ValueError):
                logger.warning(f"Skipping programme with non-numeric id: {item['id']!r}")
                continue
            partners.append(Partner(
                id=partner_id,
                name=str(item.get("name") or item["id"]),
                feed_api_identifier=str(item["id"]),
            ))

        logger.info(f"Fetched {len(partners)} joined programmes")
        return partners

    async def fetch_feed_catalog(self) -> str:
        """Raw feed catalog listing (delimited text)"""
        if not self.feed_key:
            raise AuthenticationError("Feed API key (AWIN_FEED_KEY) is missing")
        response = await self._get_with_retry(f"{self.feed_base_url}/list/apikey/{self.feed_key}")
        return response.text

    def feed_download_url(self, feed_id: int, columns: Optional[List[str]] = None) -> str:
        """Download URL of a zipped CSV feed restricted to the columns we map"""
        column_list = ",".join(columns or FEED_COLUMNS)
        return (
            f"{self.feed_base_url}/download/apikey/{self.feed_key}"
            f"/language/any/fid/{feed_id}/columns/{column_list}/format/csv/compression/zip"
        )
