"""
Ligue 1 TV schedule scraped from footmercato.net.

Design Pattern: Adapter over the HTML schedule parser
Algorithm: One fetch, then the strategy cascade in _schedule_html_lib
Big O: O(n) in page size
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from feedhub.lib._fetch_lib import RETRY_CONFIGS, fetch_with_retry, raise_for_upstream, response_text
from feedhub.lib._schedule_html_lib import ScheduleEntry, filter_by_team, parse_schedule

from ..constants import TV_SCHEDULE_URL
from ..logging_config import create_retry_logger, get_logger

logger = get_logger(__name__)

SOURCE = "footmercato.net"


@dataclass(frozen=True)
class TVScheduleResponse:
    competition: str
    matches: list[ScheduleEntry] = field(default_factory=list)
    last_updated: str = ""
    source: str = SOURCE

    def to_dict(self) -> dict[str, Any]:
        return {
            "competition": self.competition,
            "matches": [m.to_dict() for m in self.matches],
            "last_updated": self.last_updated,
            "source": self.source,
        }


def filter_schedule_by_team(schedule: TVScheduleResponse, team: str) -> TVScheduleResponse:
    return replace(schedule, matches=filter_by_team(schedule.matches, team))


class TvScheduleScraper:
    def __init__(self, fetch: Callable = fetch_with_retry, url: Optional[str] = None):
        self.fetch = fetch
        self.url = url or TV_SCHEDULE_URL

    async def scrape(self) -> TVScheduleResponse:
        retry = RETRY_CONFIGS["scraper"].merged(on_retry=create_retry_logger("tv-schedule"))
        response = await self.fetch(
            self.url,
            headers={"Accept": "text/html,application/xhtml+xml", "Accept-Language": "fr-FR,fr;q=0.9"},
            retry=retry,
            upstream=SOURCE,
        )
        raise_for_upstream(response, SOURCE)

        matches = parse_schedule(response_text(response))
        if not matches:
            # Selectors no longer match the page layout
            logger.warning("[SCRAPER] TV schedule page parsed to zero matches")
        else:
            logger.info(f"[SCRAPER] TV schedule: {len(matches)} matches")

        return TVScheduleResponse(
            competition="Ligue 1",
            matches=matches,
            last_updated=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        )
