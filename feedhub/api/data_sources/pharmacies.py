"""
Pharmacy search over the FINESS registry (opendatasoft mirror).

Design Pattern: ServiceSearchFamily subclass
Algorithm: Server-side filtering by ``where`` clause, client-side distance ranking
Big O: O(n log n) for n returned records
"""

import re
from typing import Any

from feedhub.lib._geo_lib import GeoServiceItem, normalize_city, rank_by_distance

from .service_search import (
    ODS_MAX_PAGE,
    ServiceSearchFamily,
    clamp_page_size,
    escape_ods_string,
    finess_address,
    finess_city,
    finess_postal_code,
)

FINESS_API_URL = (
    "https://public.opendatasoft.com/api/explore/v2.1/catalog/datasets/healthref-france-finess/records"
)
PHARMACY_CATEGORY = 620

_LEGAL_FORM_RE = re.compile(r"^(SELARL|SARL|SNC|EURL|SAS)\s+", re.IGNORECASE)
_PHARMACIE_RE = re.compile(r"^PHARMACIE\s+", re.IGNORECASE)


def format_pharmacy_name(name: str) -> str:
    """Drop legal-form prefixes: "SELARL PHARMACIE DU PORT" -> "Pharmacie DU PORT"."""
    name = _LEGAL_FORM_RE.sub("", name)
    return _PHARMACIE_RE.sub("Pharmacie ", name).strip()


def record_to_pharmacy(record: dict[str, Any]) -> GeoServiceItem:
    coord = record.get("coord") or {}
    return GeoServiceItem(
        id=str(record.get("nofinesset") or ""),
        name=format_pharmacy_name(record.get("rs") or record.get("rslongue") or "Pharmacie"),
        address=finess_address(record),
        postal_code=finess_postal_code(record),
        city=finess_city(record),
        phone=record.get("telephone") or None,
        latitude=coord.get("lat"),
        longitude=coord.get("lon"),
        extra={"finess": record.get("nofinesset")},
    )


class PharmacySearch(ServiceSearchFamily):
    name = "pharmacies"
    items_key = "pharmacies"
    source_name = "FINESS - public.opendatasoft.com"
    upstream = "public.opendatasoft.com"
    examples = (
        "/api/v1/services/pharmacies?cp=75001",
        "/api/v1/services/pharmacies?city=Paris",
        "/api/v1/services/pharmacies?lat=48.8566&lng=2.3522&radius=3",
    )

    async def _fetch(self, where: str, limit: int) -> list[GeoServiceItem]:
        payload = await self.get_json(
            FINESS_API_URL,
            params={"where": f"categetab={PHARMACY_CATEGORY} AND {where}", "limit": clamp_page_size(limit)},
        )
        return [record_to_pharmacy(r) for r in payload.get("results") or []]

    async def search_by_postal_code(self, postal_code: str, limit: int) -> list[GeoServiceItem]:
        return await self._fetch(f'startswith(ligneacheminement, "{escape_ods_string(postal_code)}")', limit)

    async def search_by_city(self, city: str, limit: int) -> list[GeoServiceItem]:
        # Equality upstream is case and accent sensitive; full-text search is not
        wanted = normalize_city(city)
        candidates = await self._fetch(f'search(com_name, "{escape_ods_string(wanted)}")', ODS_MAX_PAGE)
        return [p for p in candidates if normalize_city(p.city) == wanted][:limit]

    async def search_by_geo(self, lat: float, lng: float, radius_km: float, limit: int) -> list[GeoServiceItem]:
        self.check_geo(lat, lng, radius_km)
        radius_meters = radius_km * 1000
        candidates = await self._fetch(
            f"within_distance(coord, GEOM'POINT({lng} {lat})', {round(radius_meters)}m)", limit * 4
        )
        return rank_by_distance(candidates, lat, lng, limit, radius_meters)
