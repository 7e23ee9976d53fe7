"""
Sports results scraped from flashscore.fr result pages.

Each page embeds a compressed feed; the scraper fetches the page, pulls the
feed out and hands it to the micro-format parser. A page without a feed
yields an empty response, a transport failure propagates to the handler
(which then falls back to its stale cache entry).

Design Pattern: Adapter over the micro-format parser
Algorithm: One fetch + one linear parse per sport
Big O: O(n) in feed length
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from feedhub.lib._fetch_lib import RETRY_CONFIGS, fetch_with_retry, raise_for_upstream, response_text
from feedhub.lib._microformat_lib import (
    F1_POINTS,
    MOTOGP_POINTS,
    MatchResult,
    RaceResult,
    extract_embedded_feed,
    parse_match_results,
    parse_race_results,
)
from feedhub.lib.team_name_mapping import (
    FOOTBALL_TEAM_ALIASES,
    RUGBY_TEAM_ALIASES,
    expand_team_query,
    matches_team,
    normalize_f1_driver,
    normalize_football_team,
    normalize_motogp_rider,
    normalize_rugby_team,
)

from ..constants import FLASHSCORE_URLS
from ..logging_config import create_retry_logger, get_logger

logger = get_logger(__name__)

SOURCE = "flashscore.fr"
PAGE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "fr-FR,fr;q=0.9,en;q=0.8",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class MatchResultsResponse:
    competition: str
    results: list[MatchResult] = field(default_factory=list)
    last_updated: str = ""
    source: str = SOURCE

    def to_dict(self) -> dict[str, Any]:
        return {
            "competition": self.competition,
            "results": [r.to_dict() for r in self.results],
            "last_updated": self.last_updated,
            "source": self.source,
        }


@dataclass(frozen=True)
class RaceResultsResponse:
    competition: str
    race_name: str = "Grand Prix"
    circuit: str = ""
    date: str = ""
    podium: list[RaceResult] = field(default_factory=list)
    last_updated: str = ""
    source: str = SOURCE

    def to_dict(self) -> dict[str, Any]:
        return {
            "competition": self.competition,
            "race_name": self.race_name,
            "circuit": self.circuit,
            "date": self.date,
            "podium": [r.to_dict() for r in self.podium],
            "last_updated": self.last_updated,
            "source": self.source,
        }


def mark_stale(response):
    """Copy of a cached response flagged as served from the stale cache."""
    return replace(response, last_updated=f"{response.last_updated} (cached)")


def filter_results_by_team(response: MatchResultsResponse, team: str, aliases: dict[str, list[str]]) -> MatchResultsResponse:
    terms = expand_team_query(team, aliases)
    kept = [r for r in response.results if matches_team((r.home_team, r.away_team), terms)]
    return replace(response, results=kept)


def filter_football_results(response: MatchResultsResponse, team: str) -> MatchResultsResponse:
    return filter_results_by_team(response, team, FOOTBALL_TEAM_ALIASES)


def filter_rugby_results(response: MatchResultsResponse, team: str) -> MatchResultsResponse:
    return filter_results_by_team(response, team, RUGBY_TEAM_ALIASES)


class FlashscoreScraper:
    """Fetch-and-parse for the four supported result pages."""

    def __init__(self, fetch: Callable = fetch_with_retry, urls: Optional[dict[str, str]] = None):
        self.fetch = fetch
        self.urls = urls or FLASHSCORE_URLS

    async def _fetch_feed(self, sport: str) -> Optional[str]:
        retry = RETRY_CONFIGS["scraper"].merged(on_retry=create_retry_logger(f"results:{sport}"))
        response = await self.fetch(self.urls[sport], headers=PAGE_HEADERS, retry=retry, upstream=SOURCE)
        raise_for_upstream(response, SOURCE)

        feed = extract_embedded_feed(response_text(response))
        if feed is None:
            logger.warning(f"[SCRAPER] No embedded feed found on {sport} results page")
        return feed

    async def scrape_football(self) -> MatchResultsResponse:
        feed = await self._fetch_feed("football")
        results = []
        if feed:
            results = parse_match_results(feed, "Ligue 1", normalize_football_team, id_prefix="flash")
        logger.info(f"[SCRAPER] Ligue 1: parsed {len(results)} results")
        return MatchResultsResponse(competition="Ligue 1", results=results, last_updated=_now_iso())

    async def scrape_rugby(self) -> MatchResultsResponse:
        feed = await self._fetch_feed("rugby")
        results = []
        if feed:
            results = parse_match_results(feed, "Top 14", normalize_rugby_team, id_prefix="rugby")
        logger.info(f"[SCRAPER] Top 14: parsed {len(results)} results")
        return MatchResultsResponse(competition="Top 14", results=results, last_updated=_now_iso())

    async def _scrape_race(self, sport: str, competition: str, points: dict[int, int], normalize) -> RaceResultsResponse:
        feed = await self._fetch_feed(sport)
        if not feed:
            return RaceResultsResponse(competition=competition, last_updated=_now_iso())

        summary = parse_race_results(feed, points, normalize, id_prefix=sport)
        logger.info(f"[SCRAPER] {competition}: {summary.race_name} podium of {len(summary.podium)}")
        return RaceResultsResponse(
            competition=competition,
            race_name=summary.race_name,
            circuit=summary.circuit,
            date=summary.date,
            podium=summary.podium,
            last_updated=_now_iso(),
        )

    async def scrape_f1(self) -> RaceResultsResponse:
        return await self._scrape_race("f1", "Formula 1", F1_POINTS, normalize_f1_driver)

    async def scrape_motogp(self) -> RaceResultsResponse:
        return await self._scrape_race("motogp", "MotoGP", MOTOGP_POINTS, normalize_motogp_rider)
