"""
Listing sources and the adapter that fans out over them.
"""
from rentwatch.services.sources.base_source import FetchReport, ListingSource
from rentwatch.services.sources.streeteasy_source import StreetEasySource
from rentwatch.services.sources.adapter import FetchResult, ListingSourceAdapter

__all__ = [
    "FetchReport",
    "ListingSource",
    "StreetEasySource",
    "FetchResult",
    "ListingSourceAdapter",
]
