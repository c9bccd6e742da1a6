"""
Fan-out over every configured listing source.
"""
import os
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from rentwatch.exceptions import RentwatchError, SourceTimeoutError
from rentwatch.schemas import Listing
from rentwatch.services.sources.base_source import FetchReport, ListingSource

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """
    Listings from all sources, one error string per failed source and the
    ids of sources that stopped before their feed was exhausted.
    """
    listings: List[Listing] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    truncated: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        """True when every source answered with its whole feed."""
        return not self.errors and not self.truncated


class ListingSourceAdapter:
    """
    Runs all sources for a set of neighborhoods.

    A failing source contributes an error and zero listings. It never
    stops the other sources.
    """

    def __init__(self, sources: Optional[List[ListingSource]] = None, timeout: Optional[float] = None):
        if sources is None:
            from rentwatch.services.sources.streeteasy_source import StreetEasySource
            sources = [StreetEasySource()]
        self.sources = sources
        # Whole-source budget, pages included
        self.timeout = timeout or float(os.getenv("SOURCE_FETCH_TIMEOUT", "60"))

    async def fetch(self, areas: Iterable[str]) -> FetchResult:
        areas = list(areas)
        outcomes = await asyncio.gather(*(self._collect(source, areas) for source in self.sources))

        result = FetchResult()
        seen: Dict[str, Listing] = {}
        for source, (listings, error, truncated) in zip(self.sources, outcomes):
            if error:
                result.errors.append(error)
            if truncated:
                result.truncated.append(source.source_id)
            for listing in listings:
                # First source wins on id collisions
                if listing.id not in seen:
                    seen[listing.id] = listing
        result.listings = list(seen.values())
        return result

    async def _collect(self, source: ListingSource, areas: List[str]):
        report = FetchReport()

        async def _drain() -> List[Listing]:
            return [listing async for listing in source.iter_listings(areas, report=report)]

        try:
            listings = await asyncio.wait_for(_drain(), timeout=self.timeout)
            logger.info(f"Source {source.source_id} returned {len(listings)} listings for {areas}")
            if report.truncated:
                logger.info(f"Source {source.source_id} returned a partial feed for {areas}")
            return listings, None, report.truncated
        except asyncio.TimeoutError:
            error = SourceTimeoutError(f"Timed out after {self.timeout}s", source_id=source.source_id)
        except RentwatchError as e:
            error = e
        except Exception as e:
            logger.exception(f"Unexpected error from source {source.source_id}: {e}")
            error = e
        message = str(error) if str(error).startswith("[") else f"[{source.source_id}] {error}"
        logger.warning(f"Listing source failed: {message}")
        return [], message, False
