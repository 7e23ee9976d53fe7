"""
Geo helpers shared by the nearby-service searches (pharmacies, stations,
hospitals, post offices).

Design Pattern: Pure functions + immutable query object
Algorithm: Haversine great-circle distance, filter-then-sort-then-truncate ranking
Big O: O(n log n) for ranking n candidates
"""

from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional

EARTH_RADIUS_METERS = 6_371_000.0

SERVICE_CONTRACT_VERSION = "2026-02-24.services-v1"

DEFAULT_LIMIT = 25
MAX_LIMIT = 50
DEFAULT_RADIUS_KM = 5.0
MAX_RADIUS_KM = 30.0

_POSTAL_CODE_RE = re.compile(r"^\d{5}$")


class ValidationError(ValueError):
    """Bad search parameters. Never retryable."""

    retryable = False


@dataclass(frozen=True)
class GeoServiceItem:
    id: str
    name: str
    address: str = ""
    postal_code: str = ""
    city: str = ""
    phone: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance: Optional[float] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def with_distance(self, meters: float) -> GeoServiceItem:
        return replace(self, distance=round(meters))

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "postal_code": self.postal_code,
            "city": self.city,
            "phone": self.phone,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }
        if self.distance is not None:
            data["distance"] = self.distance
        data.update(self.extra)
        return data


@dataclass(frozen=True)
class ServiceSearchParams:
    mode: str
    cache_key: str
    limit: int
    radius_km: float
    postal_code: Optional[str] = None
    city: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    def query_dict(self) -> dict[str, Any]:
        if self.mode == "cp":
            return {"postal_code": self.postal_code, "limit": self.limit}
        if self.mode == "city":
            return {"city": self.city, "limit": self.limit}
        return {"lat": self.lat, "lng": self.lng, "radius": self.radius_km, "limit": self.limit}


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def normalize_city(value: str) -> str:
    """Lowercase, strip accents, fold hyphens/apostrophes to spaces, collapse whitespace."""
    decomposed = unicodedata.normalize("NFD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = re.sub(r"[-'’]", " ", stripped)
    return re.sub(r"\s+", " ", stripped).strip()


def validate_coordinates(lat: float, lng: float) -> None:
    if math.isnan(lat) or math.isnan(lng):
        raise ValidationError("lat and lng must be valid numbers")
    if lat < -90 or lat > 90 or lng < -180 or lng > 180:
        raise ValidationError("lat or lng is out of range")


def validate_radius(radius_km: float, max_radius_km: float = MAX_RADIUS_KM) -> None:
    if math.isnan(radius_km) or radius_km <= 0 or radius_km > max_radius_km:
        raise ValidationError(f"radius must be a positive number up to {max_radius_km:g} km")


def rank_by_distance(
    items: Iterable[GeoServiceItem],
    lat: float,
    lng: float,
    limit: int,
    radius_meters: Optional[float] = None,
) -> list[GeoServiceItem]:
    """
    Nearest first. Items without coordinates are dropped, and the radius
    bound is applied before truncating to ``limit``.
    """
    ranked = []
    for item in items:
        if not item.has_coordinates:
            continue
        meters = haversine_distance(lat, lng, item.latitude, item.longitude)
        if radius_meters is not None and meters > radius_meters:
            continue
        ranked.append((meters, item))

    ranked.sort(key=lambda pair: pair[0])
    return [item.with_distance(meters) for meters, item in ranked[:limit]]


def _first(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    return str(value)


def _parse_float(raw: Optional[str]) -> float:
    try:
        return float(raw) if raw is not None else math.nan
    except ValueError:
        return math.nan


def parse_limit(raw: Optional[str], default: int = DEFAULT_LIMIT, maximum: int = MAX_LIMIT) -> int:
    if raw is None or raw == "":
        return default
    try:
        limit = int(raw)
    except ValueError:
        limit = 0
    if limit < 1 or limit > maximum:
        raise ValidationError(f"limit must be an integer between 1 and {maximum}")
    return limit


def parse_service_search_params(
    query: Mapping[str, Any],
    *,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
    default_radius_km: float = DEFAULT_RADIUS_KM,
    max_radius_km: float = MAX_RADIUS_KM,
) -> ServiceSearchParams:
    """
    Validate ``cp`` | ``city`` | ``lat``+``lng`` (+``radius``) and ``limit``.

    The first mode present wins, in that order. Raises ValidationError.
    """
    cp = (_first(query.get("cp")) or "").strip()
    city = (_first(query.get("city")) or "").strip()
    lat_raw = _first(query.get("lat"))
    lng_raw = _first(query.get("lng"))
    radius_raw = _first(query.get("radius"))

    limit = parse_limit(_first(query.get("limit")), default_limit, max_limit)

    if cp:
        if not _POSTAL_CODE_RE.match(cp):
            raise ValidationError("cp must be a 5-digit postal code")
        return ServiceSearchParams(
            mode="cp", cache_key=f"cp_{cp}_{limit}", limit=limit,
            radius_km=default_radius_km, postal_code=cp,
        )

    if city:
        if len(city) < 2:
            raise ValidationError("city must contain at least 2 characters")
        return ServiceSearchParams(
            mode="city", cache_key=f"city_{normalize_city(city)}_{limit}", limit=limit,
            radius_km=default_radius_km, city=city,
        )

    if lat_raw or lng_raw:
        lat = _parse_float(lat_raw)
        lng = _parse_float(lng_raw)
        radius_km = _parse_float(radius_raw) if radius_raw else default_radius_km
        validate_coordinates(lat, lng)
        validate_radius(radius_km, max_radius_km)
        return ServiceSearchParams(
            mode="geo",
            cache_key=f"geo_{lat:.3f}_{lng:.3f}_{radius_km:g}_{limit}",
            limit=limit,
            radius_km=radius_km,
            lat=lat,
            lng=lng,
        )

    raise ValidationError("Provide cp, city, or lat+lng search parameters")
