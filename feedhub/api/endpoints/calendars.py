"""
Calendar endpoints - registry listing, ICS proxy, per-team rugby feeds and
feed metadata.

The ICS and metadata routes are abuse-tracked; in enforce mode a
blocked client gets 429 before any upstream call is made.

Design Pattern: Cache-Aside with stale fallback
Algorithm: Fresh cache read, else fetch+parse, else stale cache read
Big O: O(n) in feed size on a miss, O(1) on a hit
"""

from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from ..constants import CACHE_TTL
from ..data_sources.calendars import UnknownCalendarError, UnknownTeamError
from ..logging_config import get_logger
from ..state import Services, get_services
from .utils import (
    blocked_response,
    cache_control,
    error_from_exception,
    error_response,
    mark_stale_dict,
    success_response,
    track_abuse,
)

router = APIRouter()
logger = get_logger(__name__)

ICS_MEDIA_TYPE = "text/calendar; charset=utf-8"


@router.get("/v1/calendars/list")
def list_calendars(services: Services = Depends(get_services)):
    calendars = services.calendars.list_calendars()
    return success_response({"calendars": calendars, "total": len(calendars)}, ttl=CACHE_TTL["calendar"])


@router.get("/v1/calendars/metadata/{slug}")
async def get_calendar_metadata(slug: str, request: Request, services: Services = Depends(get_services)):
    """
    Next event countdown, event count and date range for a registered feed.

    Served from a 5 minute cache; on upstream failure the last computed
    metadata is returned with ``meta.stale`` set.
    """
    decision = await track_abuse(request, services, "metadata", slug)
    if decision.blocked:
        return blocked_response(decision)

    try:
        services.calendars.get_mapping(slug)
    except UnknownCalendarError as e:
        return error_response(404, "NOT_FOUND", str(e), headers=decision.headers)

    cache_key = f"v1:metadata:{slug}"
    ttl = CACHE_TTL["metadata"]
    cached = services.metadata_cache.get(cache_key)
    if cached is not None:
        return success_response(cached, cached=True, ttl=ttl, headers=decision.headers)

    try:
        metadata = (await services.calendars.fetch_metadata(slug)).to_dict()
    except Exception as e:
        logger.warning(f"[METADATA] {slug} fetch failed: {type(e).__name__}: {e}")
        stale = services.metadata_cache.get_stale(cache_key)
        if stale is not None:
            return success_response(mark_stale_dict(stale), cached=True, stale=True, ttl=ttl, headers=decision.headers)
        return error_from_exception(e, headers=decision.headers)

    services.metadata_cache.set(cache_key, metadata)
    return success_response(metadata, ttl=ttl, headers=decision.headers)


async def _serve_ics(
    services: Services,
    cache_key: str,
    label: str,
    produce: Callable[[], Awaitable[str]],
    headers: dict[str, str],
    abuse_headers: dict[str, str],
) -> Response:
    """Fresh cache, else ``produce()``, else the stale copy flagged with X-Feedhub-Stale."""
    cached = services.calendar_cache.get(cache_key)
    if cached is not None:
        return Response(content=cached, media_type=ICS_MEDIA_TYPE, headers=headers)

    try:
        ics_text = await produce()
    except Exception as e:
        logger.warning(f"[CALENDAR] {label} fetch failed: {type(e).__name__}: {e}")
        stale = services.calendar_cache.get_stale(cache_key)
        if stale is not None:
            return Response(
                content=stale, media_type=ICS_MEDIA_TYPE,
                headers={**headers, "X-Feedhub-Stale": "true"},
            )
        return error_from_exception(e, headers=abuse_headers)

    services.calendar_cache.set(cache_key, ics_text)
    return Response(content=ics_text, media_type=ICS_MEDIA_TYPE, headers=headers)


def _ics_headers(filename: str, abuse_headers: dict[str, str]) -> dict[str, str]:
    return {
        "Content-Disposition": f'attachment; filename="{filename}.ics"',
        **cache_control(CACHE_TTL["calendar"]),
        **abuse_headers,
    }


@router.get("/v1/calendars/rugby/{team}")
async def rugby_team_calendar(team: str, request: Request, services: Services = Depends(get_services)):
    """Top 14 fixtures for one team, cut from the league-wide feed."""
    decision = await track_abuse(request, services, "calendars", f"rugby-{team}")
    if decision.blocked:
        return blocked_response(decision)

    try:
        services.calendars.get_team(team)
    except UnknownTeamError as e:
        return error_response(
            404, "NOT_FOUND", str(e),
            details={"available_teams": sorted(services.calendars.teams)},
            headers=decision.headers,
        )

    return await _serve_ics(
        services,
        f"v1:calendar:rugby:{team}",
        f"rugby/{team}",
        lambda: services.calendars.fetch_team_ics(team),
        _ics_headers(team, decision.headers),
        decision.headers,
    )


@router.get("/v1/calendars/{slug}")
async def proxy_calendar(slug: str, request: Request, services: Services = Depends(get_services)):
    """
    Registered ICS feed with the display name and product id rewritten
    (and the slug's event filter applied, e.g. race sessions only).
    """
    decision = await track_abuse(request, services, "calendars", slug)
    if decision.blocked:
        return blocked_response(decision)

    try:
        services.calendars.get_mapping(slug)
    except UnknownCalendarError as e:
        return error_response(
            404, "NOT_FOUND", str(e),
            details={"hint": "Use /api/v1/calendars/list for the full list"},
            headers=decision.headers,
        )

    return await _serve_ics(
        services,
        f"v1:calendar:{slug}",
        slug,
        lambda: services.calendars.fetch_proxied_ics(slug),
        _ics_headers(slug, decision.headers),
        decision.headers,
    )
