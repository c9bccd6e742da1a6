"""
StreetEasy rentals search via RapidAPI.
"""
import os
import logging
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

import httpx

from rentwatch.exceptions import ConfigurationError, SourceError, SourceTimeoutError
from rentwatch.schemas import Listing
from rentwatch.services.sources.base_source import FetchReport, ListingSource

logger = logging.getLogger(__name__)


def area_slug(name: str) -> str:
    """'East Village' -> 'east-village'"""
    return "-".join(name.strip().lower().replace("_", " ").split())


class StreetEasySource(ListingSource):
    """
    Listing source backed by the StreetEasy rentals API on RapidAPI.

    Pages through results with limit/offset until the API reports no more
    results, a short page comes back, or max_pages is reached. Stopping at
    max_pages marks the call's FetchReport as truncated.
    """

    API_HOST = "streeteasy-rentals.p.rapidapi.com"
    API_URL = f"https://{API_HOST}/rentals/search"

    def __init__(
        self,
        api_key: Optional[str] = None,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__("streeteasy")
        self.api_key = api_key if api_key is not None else os.getenv("RAPIDAPI_KEY", "")
        self.page_size = page_size or int(os.getenv("STREETEASY_PAGE_SIZE", "100"))
        self.max_pages = max_pages or int(os.getenv("STREETEASY_MAX_PAGES", "5"))
        self.timeout = timeout or float(os.getenv("EXTERNAL_CALL_TIMEOUT", "15"))
        self._transport = transport

        if not self.api_key:
            logger.warning("RAPIDAPI_KEY not set - StreetEasy source will be disabled")

    async def iter_listings(self, areas: Iterable[str], report: Optional[FetchReport] = None) -> AsyncIterator[Listing]:
        if not self.api_key:
            raise ConfigurationError("RAPIDAPI_KEY not configured")

        slugs = sorted({area_slug(a) for a in areas if a and a.strip()})
        if not slugs:
            return

        # Fresh client per iteration so each Celery event loop gets its own
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            headers={
                "X-RapidAPI-Key": self.api_key,
                "X-RapidAPI-Host": self.API_HOST,
            },
            transport=self._transport,
        ) as client:
            offset = 0
            for page in range(self.max_pages):
                payload = await self._fetch_page(client, slugs, offset)
                items = payload.get("listings") or payload.get("results") or []
                if not isinstance(items, list):
                    raise SourceError("Unexpected payload shape", source_id=self.source_id)

                for item in items:
                    listing = self._normalize_listing(item)
                    if listing:
                        yield listing

                offset += len(items)
                total = payload.get("total")
                if len(items) < self.page_size or payload.get("hasMore") is False:
                    break
                if isinstance(total, int) and offset >= total:
                    break
            else:
                # More results may exist past the cap
                logger.info(f"StreetEasy pagination stopped at max_pages={self.max_pages} for {slugs}")
                if report is not None:
                    report.truncated = True

    async def _fetch_page(self, client: httpx.AsyncClient, slugs: List[str], offset: int) -> Dict[str, Any]:
        params = {
            "areas": ",".join(slugs),
            "limit": self.page_size,
            "offset": offset,
        }
        try:
            response = await client.get(self.API_URL, params=params)
        except httpx.TimeoutException as e:
            raise SourceTimeoutError(f"Request timed out: {e}", source_id=self.source_id)
        except httpx.HTTPError as e:
            raise SourceError(f"Request failed: {e}", source_id=self.source_id)

        if response.status_code != 200:
            raise SourceError(
                "Unexpected response status",
                source_id=self.source_id,
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise SourceError(f"Invalid JSON: {e}", source_id=self.source_id)
        if not isinstance(payload, dict):
            raise SourceError("Unexpected payload shape", source_id=self.source_id)
        return payload

    def _normalize_listing(self, raw: Dict[str, Any]) -> Optional[Listing]:
        """Convert one API item to a Listing, or None if required fields are missing."""
        try:
            external_id = raw.get("id") or raw.get("listingId")
            price = self._parse_int(raw.get("price") or raw.get("rent"))
            if not external_id or not price:
                logger.warning(f"Dropping StreetEasy item without id or price: {str(raw)[:200]}")
                return None

            photos = raw.get("photos") or []
            image_url = raw.get("imageUrl") or raw.get("image") or (photos[0] if photos else None)
            if isinstance(image_url, dict):
                image_url = image_url.get("url")

            no_fee = raw.get("noFee")
            if no_fee is None:
                no_fee = raw.get("no_fee", False)

            address = raw.get("address") or ""
            if isinstance(address, dict):
                address = address.get("street") or address.get("full") or ""

            return Listing(
                id=f"{self.source_id}:{external_id}",
                source=self.source_id,
                title=raw.get("title") or raw.get("name") or "",
                address=address,
                neighborhood=raw.get("neighborhood") or raw.get("areaName") or "",
                price=price,
                bedrooms=self._parse_int(raw.get("bedrooms", raw.get("beds"))) or 0,
                bathrooms=self._parse_float(raw.get("bathrooms", raw.get("baths"))) or 0,
                sqft=self._parse_int(raw.get("sqft") or raw.get("squareFeet")),
                no_fee=bool(no_fee),
                listing_url=raw.get("url") or raw.get("listingUrl") or raw.get("link") or "",
                image_url=image_url,
                latitude=self._parse_float(raw.get("latitude", raw.get("lat"))),
                longitude=self._parse_float(raw.get("longitude", raw.get("lng"))),
            )
        except (ValueError, TypeError) as e:
            logger.warning(f"Failed to normalize StreetEasy listing: {e}")
            return None
