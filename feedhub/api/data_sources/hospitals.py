"""
Hospital search over the FINESS registry.

Design Pattern: ServiceSearchFamily subclass
Algorithm: Category-filtered fetch, local city matching, distance ranking
Big O: O(n log n) for n returned records
"""

from typing import Any

from feedhub.lib._geo_lib import GeoServiceItem, normalize_city, rank_by_distance

from .pharmacies import FINESS_API_URL
from .service_search import (
    ODS_MAX_PAGE,
    ServiceSearchFamily,
    clamp_page_size,
    escape_ods_string,
    finess_address,
    finess_city,
    finess_postal_code,
    geo_radius_meters,
)

# Hospital centers, regional centers, private clinics, cancer centers
HOSPITAL_CATEGORY_CODES = (101, 106, 292, 355)


def record_to_hospital(record: dict[str, Any]) -> GeoServiceItem:
    coord = record.get("coord") or {}
    return GeoServiceItem(
        id=str(record.get("nofinesset") or ""),
        name=record.get("rs") or record.get("rslongue") or "Hôpital",
        address=finess_address(record),
        postal_code=finess_postal_code(record),
        city=finess_city(record),
        phone=record.get("telephone") or None,
        latitude=coord.get("lat"),
        longitude=coord.get("lon"),
        extra={
            "finess": record.get("nofinesset"),
            "category_code": record.get("categetab"),
            "category_label": record.get("libcategetab"),
        },
    )


class HospitalSearch(ServiceSearchFamily):
    name = "hospitals"
    items_key = "hospitals"
    source_name = "FINESS - public.opendatasoft.com"
    upstream = "public.opendatasoft.com"
    default_limit = 20
    default_radius_km = 8.0
    examples = (
        "/api/v1/services/hospitals?cp=75013",
        "/api/v1/services/hospitals?city=Lyon",
        "/api/v1/services/hospitals?lat=48.8566&lng=2.3522&radius=8",
    )

    async def _fetch(self, where: str, limit: int) -> list[GeoServiceItem]:
        categories = ",".join(str(c) for c in HOSPITAL_CATEGORY_CODES)
        clause = f"categetab in ({categories})"
        if where:
            clause = f"{clause} AND {where}"
        payload = await self.get_json(FINESS_API_URL, params={"where": clause, "limit": clamp_page_size(limit)})
        return [record_to_hospital(r) for r in payload.get("results") or []]

    async def search_by_postal_code(self, postal_code: str, limit: int) -> list[GeoServiceItem]:
        return await self._fetch(f'startswith(ligneacheminement, "{escape_ods_string(postal_code)}")', limit)

    async def search_by_city(self, city: str, limit: int) -> list[GeoServiceItem]:
        # Upstream city match is case-sensitive; fetch wide and compare normalized names
        wanted = normalize_city(city)
        hospitals = await self._fetch("com_name is not null", ODS_MAX_PAGE)
        return [h for h in hospitals if normalize_city(h.city) == wanted][:limit]

    async def search_by_geo(self, lat: float, lng: float, radius_km: float, limit: int) -> list[GeoServiceItem]:
        self.check_geo(lat, lng, radius_km)
        radius_meters = geo_radius_meters(radius_km)
        candidates = await self._fetch(
            f"within_distance(coord, GEOM'POINT({lng} {lat})', {radius_meters}m)", limit * 4
        )
        return rank_by_distance(candidates, lat, lng, limit)
