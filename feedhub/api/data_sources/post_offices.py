"""
La Poste contact-point search (DataNova data-fair dataset).

The upstream has no geo filter, so coordinate searches rank the full
dataset client-side. The full dataset is cached on its own under a single
key and reused by every coordinate query.

Design Pattern: ServiceSearchFamily subclass
Algorithm: Paginated full-dataset fetch (``next`` links, bounded), haversine ranking
Big O: O(n log n) for the n sites in the dataset
"""

from typing import Any, Optional

from feedhub.lib._geo_lib import GeoServiceItem, normalize_city, rank_by_distance

from ..cache import TTLCache
from ..logging_config import get_logger
from .service_search import ServiceSearchFamily, escape_ods_string, to_float

logger = get_logger(__name__)

POST_OFFICE_API_URL = "https://datanova.laposte.fr/data-fair/api/v1/datasets/laposte-poincont2/lines"
FULL_DATASET_KEY = "all_post_offices"
FULL_DATASET_PAGE_SIZE = 1000
MAX_PAGES = 30


def parse_geopoint(value: Optional[str]) -> Optional[tuple[float, float]]:
    """``"48.85,2.35"`` -> (lat, lon)."""
    if not value:
        return None
    parts = value.split(",")
    if len(parts) != 2:
        return None
    lat, lon = to_float(parts[0].strip()), to_float(parts[1].strip())
    if lat is None or lon is None:
        return None
    return lat, lon


def record_to_post_office(record: dict[str, Any]) -> GeoServiceItem:
    geopoint = parse_geopoint(record.get("_geopoint"))
    lat = to_float(record.get("latitude"))
    lng = to_float(record.get("longitude"))
    if lat is None and geopoint:
        lat = geopoint[0]
    if lng is None and geopoint:
        lng = geopoint[1]

    postal_code = record.get("code_postal") or ""
    site = record.get("libelle_du_site") or ""
    return GeoServiceItem(
        id=record.get("identifiant_a") or f"{postal_code or '00000'}-{site or 'site'}",
        name=site or "Point La Poste",
        address=record.get("adresse") or "Adresse non disponible",
        postal_code=postal_code,
        city=record.get("localite") or "",
        phone=record.get("numero_de_telephone") or None,
        latitude=lat,
        longitude=lng,
        extra={"site_type": record.get("caracteristique_du_site") or "Point de contact"},
    )


def build_filter(field: str, value: str) -> str:
    return f'{field}:"{escape_ods_string(value)}"'


class PostOfficeSearch(ServiceSearchFamily):
    name = "post-offices"
    items_key = "post_offices"
    source_name = "DataNova La Poste - laposte-poincont2"
    upstream = "datanova.laposte.fr"
    default_limit = 20
    default_radius_km = 10.0
    max_radius_km = 50.0
    examples = (
        "/api/v1/services/post-offices?cp=75001",
        "/api/v1/services/post-offices?city=Paris",
        "/api/v1/services/post-offices?lat=48.8566&lng=2.3522&radius=10",
    )

    def __init__(self, cache: TTLCache, dataset_cache: Optional[TTLCache] = None, **kwargs):
        super().__init__(cache, **kwargs)
        self.dataset_cache = dataset_cache or TTLCache(cache.default_ttl, name="post_offices_dataset")

    async def _fetch_page(self, url: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        return await self.get_json(url, params=params)

    async def fetch_all(self) -> list[GeoServiceItem]:
        cached = self.dataset_cache.get(FULL_DATASET_KEY)
        if cached is not None:
            return cached

        items: list[GeoServiceItem] = []
        next_url: Optional[str] = POST_OFFICE_API_URL
        params: Optional[dict[str, Any]] = {"size": FULL_DATASET_PAGE_SIZE}
        pages = 0
        while next_url and pages < MAX_PAGES:
            payload = await self._fetch_page(next_url, params)
            items.extend(record_to_post_office(r) for r in payload.get("results") or [])
            # ``next`` already carries the query string
            next_url = payload.get("next")
            params = None
            pages += 1

        if next_url:
            logger.warning(f"[SERVICES] post-offices dataset truncated at {MAX_PAGES} pages")
        self.dataset_cache.set(FULL_DATASET_KEY, items)
        return items

    async def search_by_postal_code(self, postal_code: str, limit: int) -> list[GeoServiceItem]:
        payload = await self._fetch_page(
            POST_OFFICE_API_URL, {"qs": build_filter("code_postal", postal_code), "size": min(limit, 100)}
        )
        return [record_to_post_office(r) for r in payload.get("results") or []][:limit]

    async def search_by_city(self, city: str, limit: int) -> list[GeoServiceItem]:
        payload = await self._fetch_page(
            POST_OFFICE_API_URL, {"qs": build_filter("localite", city.upper()), "size": min(limit, 150)}
        )
        wanted = normalize_city(city)
        offices = [record_to_post_office(r) for r in payload.get("results") or []]
        return [o for o in offices if normalize_city(o.city) == wanted][:limit]

    async def search_by_geo(self, lat: float, lng: float, radius_km: float, limit: int) -> list[GeoServiceItem]:
        self.check_geo(lat, lng, radius_km)
        offices = await self.fetch_all()
        return rank_by_distance(offices, lat, lng, limit, radius_km * 1000)
