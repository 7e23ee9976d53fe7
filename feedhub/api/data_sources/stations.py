"""
Fuel station search over the government fuel-price feed.

Design Pattern: ServiceSearchFamily subclass
Algorithm: Upstream distance ordering for candidates, haversine re-ranking with radius bound
Big O: O(n log n) for n candidates
"""

import json
from typing import Any, Optional

from feedhub.lib._geo_lib import GeoServiceItem, normalize_city, rank_by_distance

from .service_search import (
    ODS_MAX_PAGE,
    ServiceSearchFamily,
    clamp_page_size,
    escape_ods_string,
    geo_radius_meters,
    to_float,
)

STATIONS_API_URL = (
    "https://data.economie.gouv.fr/api/explore/v2.1/catalog/datasets/"
    "prix-des-carburants-en-france-flux-instantane-v2/records"
)

# (label, field prefix)
FUEL_FIELDS = (
    ("Gazole", "gazole"),
    ("SP95", "sp95"),
    ("E10", "e10"),
    ("SP98", "sp98"),
    ("E85", "e85"),
    ("GPLc", "gplc"),
)


def parse_coordinate(value: Any) -> Optional[float]:
    parsed = to_float(value)
    if parsed is None:
        return None
    # Some records carry coordinates scaled by 100000
    if abs(parsed) > 180:
        return parsed / 100000
    return parsed


def parse_string_list(value: Any) -> list[str]:
    """List fields arrive as JSON arrays, JSON-encoded strings, or ``{"service": [...]}``."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if isinstance(value, dict):
        value = value.get("service")
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return []


def build_fuels(record: dict[str, Any]) -> list[dict[str, Any]]:
    available = set(parse_string_list(record.get("carburants_disponibles")))
    unavailable = set(parse_string_list(record.get("carburants_indisponibles")))

    fuels = []
    for label, key in FUEL_FIELDS:
        price = to_float(record.get(f"{key}_prix"))
        updated_at = record.get(f"{key}_maj")
        rupture = str(record.get(f"{key}_rupture_type") or "").strip()

        if price is None and label not in available and label not in unavailable and not rupture:
            continue

        if rupture or label in unavailable:
            is_available = False
        elif label in available:
            is_available = True
        else:
            is_available = price is not None

        fuels.append({
            "fuel": label,
            "price": price,
            "updated_at": updated_at if isinstance(updated_at, str) else None,
            "available": is_available,
        })
    return fuels


def record_to_station(record: dict[str, Any]) -> GeoServiceItem:
    geom = record.get("geom") or {}
    lat = geom.get("lat")
    lng = geom.get("lon")
    if lat is None:
        lat = parse_coordinate(record.get("latitude"))
    if lng is None:
        lng = parse_coordinate(record.get("longitude"))

    postal_code = (record.get("cp") or "").strip()
    city = (record.get("ville") or "").strip()
    locality = " ".join(part for part in (postal_code, city) if part)

    return GeoServiceItem(
        id=str(record.get("id")),
        name=f"Station-service {locality}" if locality else "Station-service",
        address=record.get("adresse") or "Adresse non disponible",
        postal_code=postal_code,
        city=city,
        latitude=lat,
        longitude=lng,
        extra={
            "fuels": build_fuels(record),
            "services": parse_string_list(record.get("services_service")),
            "open24h": str(record.get("horaires_automate_24_24") or "").lower() == "oui",
        },
    )


class StationSearch(ServiceSearchFamily):
    name = "stations"
    items_key = "stations"
    source_name = "Ministère de l'Économie - prix des carburants"
    upstream = "data.economie.gouv.fr"
    max_radius_km = 25.0
    examples = (
        "/api/v1/services/stations?cp=75001",
        "/api/v1/services/stations?city=Paris",
        "/api/v1/services/stations?lat=48.8566&lng=2.3522&radius=5",
    )

    async def _fetch(self, where: str, limit: int, order_by: Optional[str] = None) -> list[GeoServiceItem]:
        params = {"where": where, "limit": clamp_page_size(limit)}
        if order_by:
            params["order_by"] = order_by
        payload = await self.get_json(STATIONS_API_URL, params=params)
        return [record_to_station(r) for r in payload.get("results") or []]

    async def search_by_postal_code(self, postal_code: str, limit: int) -> list[GeoServiceItem]:
        return await self._fetch(f'cp="{escape_ods_string(postal_code)}"', limit)

    async def search_by_city(self, city: str, limit: int) -> list[GeoServiceItem]:
        wanted = normalize_city(city)
        candidates = await self._fetch(f'search(ville, "{escape_ods_string(wanted)}")', ODS_MAX_PAGE)
        return [s for s in candidates if normalize_city(s.city) == wanted][:limit]

    async def search_by_geo(self, lat: float, lng: float, radius_km: float, limit: int) -> list[GeoServiceItem]:
        self.check_geo(lat, lng, radius_km)
        candidates = await self._fetch(
            "cp is not null", limit * 4, order_by=f"distance(geom, geom'POINT({lng} {lat})')"
        )
        return rank_by_distance(candidates, lat, lng, limit, geo_radius_meters(radius_km))
