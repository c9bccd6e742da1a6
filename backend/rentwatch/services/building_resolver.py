"""
Building lookup against NYC PLUTO and rent-stabilization scoring.

The score is a heuristic built from two building facts: the number of
residential units and the year built. Buildings with six or more units
built before 1974 fall under the Emergency Tenant Protection Act, so they
are treated as confirmed. Buildings from 1974 to 1984 often entered
stabilization through tax-abatement programs (421-a, J-51).
"""
import os
import json
import math
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import httpx
import redis.asyncio as aioredis

from rentwatch.exceptions import RegistryError
from rentwatch.schemas import RentStabilizationStatus

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
PLUTO_ENDPOINT = os.getenv("PLUTO_ENDPOINT", "https://data.cityofnewyork.us/resource/64uk-42ks.json")

# Bounding-box half width in degrees (about 55 m of latitude)
COORDINATE_TOLERANCE = 0.0005
CANDIDATE_LIMIT = 10
EARTH_RADIUS_M = 6371000

CACHE_TTL_SECONDS = 30 * 24 * 3600
NEGATIVE_CACHE_TTL_SECONDS = 24 * 3600


@dataclass
class BuildingRecord:
    bbl: str
    address: str = ""
    residential_units: Optional[int] = None
    year_built: Optional[int] = None
    building_class: Optional[str] = None
    zip_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass
class StabilizationScore:
    status: RentStabilizationStatus
    probability: Optional[float]
    reason: str


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def score(building: Optional[BuildingRecord]) -> StabilizationScore:
    """Deterministic rent-stabilization likelihood for a building."""
    if building is None:
        return StabilizationScore(RentStabilizationStatus.UNKNOWN, None, "Building not found in PLUTO")

    units = building.residential_units or 0
    year = building.year_built or 0

    if units == 0:
        return StabilizationScore(RentStabilizationStatus.UNLIKELY, 0.0, "No residential units on record")
    if units < 6:
        return StabilizationScore(
            RentStabilizationStatus.UNLIKELY, 0.05,
            f"{units} units, below the 6-unit threshold",
        )
    if 0 < year < 1974:
        return StabilizationScore(
            RentStabilizationStatus.CONFIRMED, 0.95,
            f"{units} units built in {year}, pre-1974",
        )
    if 1974 <= year <= 1984:
        return StabilizationScore(
            RentStabilizationStatus.PROBABLE, 0.70,
            f"{units} units built in {year}, likely tax-abatement stabilized",
        )
    if units >= 50:
        return StabilizationScore(
            RentStabilizationStatus.PROBABLE, 0.75,
            f"Large building with {units} units",
        )
    return StabilizationScore(
        RentStabilizationStatus.UNLIKELY, 0.20,
        f"{units} units built in {year or 'unknown year'}",
    )


def _to_int(value) -> Optional[int]:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _to_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class BuildingResolver:
    """Resolves coordinates to a PLUTO building, with a Redis cache in front."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        use_cache: bool = True,
    ):
        self.endpoint = endpoint or PLUTO_ENDPOINT
        self.timeout = timeout or float(os.getenv("PLUTO_TIMEOUT", "5"))
        self.use_cache = use_cache
        self._transport = transport

    @staticmethod
    async def _get_redis() -> aioredis.Redis:
        return aioredis.from_url(REDIS_URL, decode_responses=True)

    @staticmethod
    def cache_key(lat: float, lng: float) -> str:
        return f"pluto:{round(lat / COORDINATE_TOLERANCE)}:{round(lng / COORDINATE_TOLERANCE)}"

    async def resolve(self, lat: float, lng: float) -> Optional[BuildingRecord]:
        """
        Find the building at a coordinate.

        Returns None when PLUTO has no building within tolerance.

        Raises:
            RegistryError: PLUTO could not be queried
        """
        key = self.cache_key(lat, lng)
        cached = await self._cache_get(key)
        if cached is not None:
            return BuildingRecord(**cached) if cached else None

        candidates = await self._query(lat, lng)
        building = self._nearest(candidates, lat, lng)

        if building:
            await self._cache_set(key, asdict(building), CACHE_TTL_SECONDS)
        else:
            await self._cache_set(key, {}, NEGATIVE_CACHE_TTL_SECONDS)
        return building

    async def _query(self, lat: float, lng: float) -> List[Dict[str, Any]]:
        where = (
            f"latitude between {lat - COORDINATE_TOLERANCE} and {lat + COORDINATE_TOLERANCE} "
            f"AND longitude between {lng - COORDINATE_TOLERANCE} and {lng + COORDINATE_TOLERANCE}"
        )
        params = {
            "$where": where,
            "$limit": CANDIDATE_LIMIT,
            "$select": "bbl,address,unitsres,yearbuilt,bldgclass,zipcode,latitude,longitude",
        }
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), transport=self._transport) as client:
                response = await client.get(self.endpoint, params=params)
                response.raise_for_status()
                rows = response.json()
        except httpx.HTTPError as e:
            raise RegistryError(f"PLUTO query failed: {e}")
        except ValueError as e:
            raise RegistryError(f"PLUTO returned invalid JSON: {e}")

        if not isinstance(rows, list):
            raise RegistryError("PLUTO returned an unexpected payload")
        return rows

    @staticmethod
    def _nearest(rows: List[Dict[str, Any]], lat: float, lng: float) -> Optional[BuildingRecord]:
        """Closest candidate by haversine distance. Ties keep registry order."""
        best = None
        best_distance = None
        for row in rows:
            row_lat = _to_float(row.get("latitude"))
            row_lng = _to_float(row.get("longitude"))
            if row_lat is None or row_lng is None or not row.get("bbl"):
                continue
            distance = haversine_m(lat, lng, row_lat, row_lng)
            if best_distance is None or distance < best_distance:
                best, best_distance = row, distance

        if best is None:
            return None
        return BuildingRecord(
            bbl=str(_to_int(best["bbl"]) or best["bbl"]),
            address=best.get("address") or "",
            residential_units=_to_int(best.get("unitsres")),
            year_built=_to_int(best.get("yearbuilt")),
            building_class=best.get("bldgclass"),
            zip_code=best.get("zipcode"),
            latitude=_to_float(best.get("latitude")),
            longitude=_to_float(best.get("longitude")),
        )

    async def _cache_get(self, key: str) -> Optional[dict]:
        if not self.use_cache:
            return None
        try:
            r = await self._get_redis()
            raw = await r.get(key)
            return json.loads(raw) if raw is not None else None
        except Exception as e:
            logger.warning(f"Redis error reading building cache: {e}")
            return None  # Fail open

    async def _cache_set(self, key: str, value: dict, ttl: int) -> None:
        if not self.use_cache:
            return
        try:
            r = await self._get_redis()
            await r.set(key, json.dumps(value), ex=ttl)
        except Exception as e:
            logger.warning(f"Redis error writing building cache: {e}")
