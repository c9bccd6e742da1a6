"""Listing-against-alert criteria matching.

Pure functions with no I/O. Every bound is checked on its own and only
when the alert sets it, so an alert whose stored min/max are inverted
simply matches nothing in that dimension.
"""

import re
from dataclasses import dataclass
from typing import Optional

from rentwatch.schemas import AlertCriteria, Listing, RentStabilizationStatus


STABILIZED_MIN_PROBABILITY = 0.70


@dataclass
class MatchResult:
    matched: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.matched


def normalize_area(name: str) -> str:
    """'East Village', 'east-village' and 'EAST_VILLAGE' all map to 'east village'."""
    return re.sub(r"[\s\-_]+", " ", (name or "").strip().lower())


def passes_stabilization_filter(listing: Listing) -> bool:
    """Confirmed, or probable with enough probability. Unknown never passes."""
    status = listing.rent_stabilization_status
    if status == RentStabilizationStatus.CONFIRMED:
        return True
    if status == RentStabilizationStatus.PROBABLE:
        probability = listing.rent_stabilization_probability
        return probability is not None and probability >= STABILIZED_MIN_PROBABILITY
    return False


def evaluate(alert: AlertCriteria, listing: Listing, check_stabilization: bool = True) -> MatchResult:
    """
    Check one listing against one alert.

    With check_stabilization=False the rent-stabilization filter is left out,
    which is how candidates are picked before enrichment runs.
    """
    areas = {normalize_area(a) for a in alert.areas}
    if normalize_area(listing.neighborhood) not in areas:
        return MatchResult(False, f"neighborhood {listing.neighborhood!r} not in alert areas")

    if alert.min_price is not None and listing.price < alert.min_price:
        return MatchResult(False, f"price {listing.price} below min {alert.min_price}")
    if alert.max_price is not None and listing.price > alert.max_price:
        return MatchResult(False, f"price {listing.price} above max {alert.max_price}")

    if alert.min_beds is not None and listing.bedrooms < alert.min_beds:
        return MatchResult(False, f"{listing.bedrooms} bedrooms below min {alert.min_beds}")
    if alert.max_beds is not None and listing.bedrooms > alert.max_beds:
        return MatchResult(False, f"{listing.bedrooms} bedrooms above max {alert.max_beds}")

    if alert.min_baths is not None and listing.bathrooms < alert.min_baths:
        return MatchResult(False, f"{listing.bathrooms} bathrooms below min {alert.min_baths}")

    if alert.no_fee and not listing.no_fee:
        return MatchResult(False, "listing charges a broker fee")

    if check_stabilization and alert.filter_rent_stabilized and not passes_stabilization_filter(listing):
        probability = listing.rent_stabilization_probability
        return MatchResult(
            False,
            f"rent stabilization {listing.rent_stabilization_status.value}"
            + (f" ({probability:.2f})" if probability is not None else ""),
        )

    return MatchResult(True)


def matches(alert: AlertCriteria, listing: Listing) -> bool:
    return evaluate(alert, listing).matched
