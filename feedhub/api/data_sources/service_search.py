"""
Shared machinery for the nearby-service searches (pharmacies, hospitals,
fuel stations, post offices).

A family answers three lookups (postal code, city, coordinates) against one
open-data upstream. Results are cached per normalized query key; the stale
copy of that key is what handlers fall back to when the upstream fails.

Design Pattern: Template Method (search() dispatches to the family's lookups)
Algorithm: Cache-aside around one or more JSON fetches, client-side ranking
Big O: O(n log n) for ranking n candidates
"""

import math
import re
from typing import Any, Callable, Optional

from feedhub.lib._fetch_lib import (
    RETRY_CONFIGS,
    fetch_with_retry,
    parse_json_response,
    raise_for_upstream,
)
from feedhub.lib._geo_lib import (
    DEFAULT_LIMIT,
    DEFAULT_RADIUS_KM,
    MAX_LIMIT,
    MAX_RADIUS_KM,
    GeoServiceItem,
    ServiceSearchParams,
    parse_service_search_params,
    validate_coordinates,
    validate_radius,
)

from ..cache import TTLCache
from ..logging_config import create_retry_logger, get_logger

logger = get_logger(__name__)

SERVICE_USER_AGENT = "FeedHub-API/1.0"
# Upstream page size cap for the opendatasoft explore API
ODS_MAX_PAGE = 100
# Geo queries never look at less than this around the point
MIN_GEO_RADIUS_METERS = 500

_POSTAL_PREFIX_RE = re.compile(r"^(\d{5})")


def escape_ods_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(parsed) else parsed


def clamp_page_size(limit: int, maximum: int = ODS_MAX_PAGE) -> int:
    return min(max(limit, 1), maximum)


def geo_radius_meters(radius_km: float) -> int:
    return max(MIN_GEO_RADIUS_METERS, round(radius_km * 1000))


def finess_address(record: dict[str, Any]) -> str:
    address = record.get("address") or ""
    if not address and record.get("voie"):
        parts = [record.get(k) for k in ("numvoie", "typvoie", "voie", "compvoie")]
        address = " ".join(str(p) for p in parts if p)
    return address or "Adresse non disponible"


def finess_postal_code(record: dict[str, Any]) -> str:
    match = _POSTAL_PREFIX_RE.match(record.get("ligneacheminement") or "")
    if match:
        return match.group(1)
    return (record.get("com_code") or "")[:5]


def finess_city(record: dict[str, Any]) -> str:
    if record.get("com_name"):
        return record["com_name"]
    return re.sub(r"^\d{5}\s*", "", record.get("ligneacheminement") or "")


class ServiceSearchFamily:
    """
    Base class. Subclasses set the class attributes and implement the three
    ``search_by_*`` lookups; ``search`` adds validation and caching.
    """

    name = "service"
    items_key = "items"
    source_name = ""
    upstream = ""
    default_limit = DEFAULT_LIMIT
    max_limit = MAX_LIMIT
    default_radius_km = DEFAULT_RADIUS_KM
    max_radius_km = MAX_RADIUS_KM
    examples: tuple[str, ...] = ()

    def __init__(self, cache: TTLCache, fetch: Callable = fetch_with_retry):
        self.cache = cache
        self.fetch = fetch

    def parse_params(self, query) -> ServiceSearchParams:
        return parse_service_search_params(
            query,
            default_limit=self.default_limit,
            max_limit=self.max_limit,
            default_radius_km=self.default_radius_km,
            max_radius_km=self.max_radius_km,
        )

    async def get_json(self, url: str, params: Optional[dict[str, Any]] = None) -> Any:
        retry = RETRY_CONFIGS["stable_api"].merged(on_retry=create_retry_logger(f"services:{self.name}"))
        response = await self.fetch(
            url,
            headers={"Accept": "application/json", "User-Agent": SERVICE_USER_AGENT},
            params=params,
            retry=retry,
            upstream=self.upstream,
        )
        raise_for_upstream(response, self.upstream)
        return parse_json_response(response, self.upstream)

    async def search(self, params: ServiceSearchParams) -> list[GeoServiceItem]:
        cached = self.cache.get(params.cache_key)
        if cached is not None:
            return cached

        if params.mode == "cp":
            items = await self.search_by_postal_code(params.postal_code, params.limit)
        elif params.mode == "city":
            items = await self.search_by_city(params.city, params.limit)
        else:
            items = await self.search_by_geo(params.lat, params.lng, params.radius_km, params.limit)

        self.cache.set(params.cache_key, items)
        logger.debug(f"[SERVICES] {self.name} {params.mode}: {len(items)} items for {params.cache_key}")
        return items

    def get_stale(self, cache_key: str) -> Optional[list[GeoServiceItem]]:
        return self.cache.get_stale(cache_key)

    def check_geo(self, lat: float, lng: float, radius_km: float) -> None:
        """Raises ValidationError before anything touches the network."""
        validate_coordinates(lat, lng)
        validate_radius(radius_km, self.max_radius_km)

    async def search_by_postal_code(self, postal_code: str, limit: int) -> list[GeoServiceItem]:
        raise NotImplementedError

    async def search_by_city(self, city: str, limit: int) -> list[GeoServiceItem]:
        raise NotImplementedError

    async def search_by_geo(self, lat: float, lng: float, radius_km: float, limit: int) -> list[GeoServiceItem]:
        raise NotImplementedError
