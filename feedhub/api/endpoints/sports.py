"""
Sports endpoints - match/race results and the Ligue 1 TV schedule.

Design Pattern: Cache-Aside with stale fallback
Algorithm: Cache read, else scrape; team filters run on the cached copy
Big O: O(n) in page size on a miss, O(r) filtering r cached records
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..constants import CACHE_TTL, SUPPORTED_SPORTS
from ..data_sources.flashscore import SOURCE as RESULTS_SOURCE
from ..data_sources.flashscore import filter_football_results, filter_rugby_results, mark_stale
from ..data_sources.footmercato import SOURCE as TV_SOURCE
from ..data_sources.footmercato import filter_schedule_by_team
from ..logging_config import get_logger
from ..state import Services, get_services
from .utils import error_from_exception, error_response, success_response

router = APIRouter()
logger = get_logger(__name__)

RESULT_TTLS = {
    "football": CACHE_TTL["match_results"],
    "rugby": CACHE_TTL["rugby_results"],
    "f1": CACHE_TTL["race_results"],
    "motogp": CACHE_TTL["race_results"],
}
TEAM_FILTERS = {
    "football": filter_football_results,
    "rugby": filter_rugby_results,
}
TV_CACHE_KEY = "v1:tv-schedule:ligue1"


def _scraper_for(services: Services, sport: str):
    scraper = services.results_scraper
    return {
        "football": scraper.scrape_football,
        "rugby": scraper.scrape_rugby,
        "f1": scraper.scrape_f1,
        "motogp": scraper.scrape_motogp,
    }[sport]


@router.get("/v1/sports/results/{sport}")
async def get_sport_results(
    sport: str,
    team: Optional[str] = Query(None, description="Team filter (football and rugby only)"),
    services: Services = Depends(get_services),
):
    sport = sport.lower()
    if sport not in SUPPORTED_SPORTS:
        return error_response(
            404, "NOT_FOUND", f"Unknown sport: {sport}",
            details={"available_sports": list(SUPPORTED_SPORTS)},
        )

    cache_key = f"v1:results:{sport}"
    ttl = RESULT_TTLS[sport]
    cached = True
    stale = False
    results = services.results_cache.get(cache_key)

    if results is None:
        cached = False
        try:
            results = await _scraper_for(services, sport)()
        except Exception as e:
            logger.warning(f"[SCRAPER] {sport} results failed: {type(e).__name__}: {e}")
            fallback = services.results_cache.get_stale(cache_key)
            if fallback is None:
                return error_from_exception(e)
            results, cached, stale = mark_stale(fallback), True, True
        else:
            services.results_cache.set(cache_key, results, ttl=ttl)

    team_filter = TEAM_FILTERS.get(sport)
    if team and team_filter:
        results = team_filter(results, team)

    return success_response(results.to_dict(), cached=cached, stale=stale, source=RESULTS_SOURCE, ttl=ttl)


@router.get("/v1/sports/tv-schedule")
async def get_tv_schedule(
    team: Optional[str] = Query(None, description="Team filter, e.g. psg or om"),
    services: Services = Depends(get_services),
):
    ttl = CACHE_TTL["tv_schedule"]
    cached = True
    stale = False
    schedule = services.tv_cache.get(TV_CACHE_KEY)

    if schedule is None:
        cached = False
        try:
            schedule = await services.tv_scraper.scrape()
        except Exception as e:
            logger.warning(f"[SCRAPER] TV schedule failed: {type(e).__name__}: {e}")
            fallback = services.tv_cache.get_stale(TV_CACHE_KEY)
            if fallback is None:
                return error_from_exception(e)
            schedule, cached, stale = mark_stale(fallback), True, True
        else:
            services.tv_cache.set(TV_CACHE_KEY, schedule)

    if team:
        schedule = filter_schedule_by_team(schedule, team)

    return success_response(schedule.to_dict(), cached=cached, stale=stale, source=TV_SOURCE, ttl=ttl)
