"""
Nearby-service endpoints - pharmacies, fuel stations, hospitals, post offices.

Query: ``cp`` | ``city`` | ``lat`` + ``lng`` (+ ``radius`` km), and ``limit``.
Invalid parameters are rejected with 400 before any upstream call.

Design Pattern: One generic handler over the ServiceSearchFamily registry
Algorithm: Validate, cache-aside search, stale fallback
Big O: O(n log n) for ranking n upstream candidates
"""

from fastapi import APIRouter, Depends, Request

from feedhub.lib._geo_lib import SERVICE_CONTRACT_VERSION, ValidationError

from ..logging_config import get_logger
from ..state import Services, get_services
from .utils import STALE_SUFFIX, error_from_exception, error_response, success_response, utc_now_iso

router = APIRouter()
logger = get_logger(__name__)

STALE_NOTE = "Résultats issus du cache suite à une indisponibilité de la source."


@router.get("/v1/services/{service}")
async def search_services(service: str, request: Request, services: Services = Depends(get_services)):
    family = services.service_families.get(service)
    if family is None:
        return error_response(
            404, "NOT_FOUND", f"Unknown service: {service}",
            details={"available_services": sorted(services.service_families)},
        )

    try:
        params = family.parse_params(request.query_params)
    except ValidationError as e:
        return error_from_exception(
            e, details={"contract_version": SERVICE_CONTRACT_VERSION, "examples": list(family.examples)}
        )

    def payload(items, *, stale: bool = False) -> dict:
        last_updated = utc_now_iso()
        data = {
            family.items_key: [item.to_dict() for item in items],
            "total": len(items),
            "query": params.query_dict(),
            "limit": params.limit,
            "contract_version": SERVICE_CONTRACT_VERSION,
            "last_updated": f"{last_updated}{STALE_SUFFIX}" if stale else last_updated,
            "source": f"{family.source_name}{STALE_SUFFIX}" if stale else family.source_name,
        }
        if stale:
            data["note"] = STALE_NOTE
        return data

    try:
        items = await family.search(params)
    except ValidationError as e:
        return error_from_exception(
            e, details={"contract_version": SERVICE_CONTRACT_VERSION, "examples": list(family.examples)}
        )
    except Exception as e:
        logger.warning(f"[SERVICES] {service} search failed ({params.cache_key}): {type(e).__name__}: {e}")
        stale = family.get_stale(params.cache_key)
        if stale is not None:
            return success_response(
                payload(stale, stale=True), cached=True, stale=True, source=family.source_name
            )
        return error_from_exception(e, details={"contract_version": SERVICE_CONTRACT_VERSION})

    return success_response(payload(items), source=family.source_name)
