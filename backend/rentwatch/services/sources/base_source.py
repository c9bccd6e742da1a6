"""
Base class for listing sources.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, Optional

from rentwatch.schemas import Listing


@dataclass
class FetchReport:
    """What a source noticed while serving one iter_listings call."""
    # Set when the source stopped before the feed was exhausted
    truncated: bool = False


class ListingSource(ABC):
    """
    A place rental listings come from.

    Sources are stateless between calls: iter_listings can be started again
    from the beginning at any time and yields normalized listings. Anything
    worth telling the caller about a call goes into the FetchReport it
    passes in, never onto the source itself.
    """

    def __init__(self, source_id: str):
        self.source_id = source_id

    @abstractmethod
    def iter_listings(self, areas: Iterable[str], report: Optional[FetchReport] = None) -> AsyncIterator[Listing]:
        """
        Yield normalized listings for the given neighborhoods.

        Raises:
            SourceError: the source could not be read
            ConfigurationError: credentials are missing
        """

    @staticmethod
    def _parse_int(value) -> Optional[int]:
        if value is None or value == "":
            return None
        if isinstance(value, str):
            value = value.replace("$", "").replace(",", "").strip()
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _parse_float(value) -> Optional[float]:
        if value is None or value == "":
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    async def close(self):
        """Release any held connections."""
