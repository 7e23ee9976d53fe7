"""
ICS calendar source: fetch a registered feed, rewrite it for the proxy, or
reduce it to a metadata summary.

Design Pattern: Registry lookup + Adapter over _ics_lib
Algorithm: One fetch per call, then linear ICS parsing
Big O: O(n) in feed size
"""

from typing import Callable, Optional

from feedhub.lib._fetch_lib import RETRY_CONFIGS, fetch_with_retry, raise_for_upstream, response_text
from feedhub.lib._ics_lib import (
    FeedMetadata,
    ParsedIcsEvent,
    PrecisionDecision,
    apply_calendar_transform,
    build_calendar_metadata,
    parse_ics_events,
    rewrite_calendar,
    rewrite_team_calendar,
)

from ..constants import (
    CALENDAR_REGISTRY,
    TOP14_PRODID,
    TOP14_SOURCE_URL,
    TOP14_TEAM_CALENDARS,
    CalendarMapping,
    TeamCalendar,
)
from ..logging_config import create_retry_logger, get_logger

logger = get_logger(__name__)

PROXY_USER_AGENT = "FeedHub/1.0 (iOS Calendar App)"
METADATA_USER_AGENT = "FeedHub/1.0 (Calendar Metadata Service)"
ICS_ACCEPT = "text/calendar, text/plain, */*"


class UnknownCalendarError(LookupError):
    def __init__(self, slug: str, kind: str = "calendar"):
        super().__init__(f"Unknown {kind}: {slug}")
        self.slug = slug


class UnknownTeamError(UnknownCalendarError):
    def __init__(self, team: str):
        super().__init__(team, kind="team")


class CalendarSource:
    def __init__(
        self,
        fetch: Callable = fetch_with_retry,
        registry: Optional[dict[str, CalendarMapping]] = None,
        log_precision: bool = False,
        team_source_url: str = TOP14_SOURCE_URL,
        teams: Optional[dict[str, TeamCalendar]] = None,
    ):
        self.fetch = fetch
        self.registry = CALENDAR_REGISTRY if registry is None else registry
        self.log_precision = log_precision
        self.team_source_url = team_source_url
        self.teams = TOP14_TEAM_CALENDARS if teams is None else teams

    def get_mapping(self, slug: str) -> CalendarMapping:
        mapping = self.registry.get(slug)
        if mapping is None:
            raise UnknownCalendarError(slug)
        return mapping

    def list_calendars(self) -> list[dict]:
        return [
            {"slug": slug, "name": m.name, "description": m.description}
            for slug, m in self.registry.items()
        ]

    async def fetch_ics(self, slug: str, *, user_agent: str = PROXY_USER_AGENT, label: Optional[str] = None) -> str:
        """Raw ICS text for ``slug``. Raises UnknownCalendarError or FetchError."""
        mapping = self.get_mapping(slug)
        return await self._download(mapping.source_url, user_agent, label or f"calendar:{slug}")

    async def _download(self, url: str, user_agent: str, label: str) -> str:
        retry = RETRY_CONFIGS["calendar"].merged(on_retry=create_retry_logger(label))
        response = await self.fetch(url, headers={"User-Agent": user_agent, "Accept": ICS_ACCEPT}, retry=retry)
        raise_for_upstream(response, url)
        return response_text(response)

    async def fetch_proxied_ics(self, slug: str) -> str:
        """ICS text ready to serve: slug transform, display name and product id applied."""
        mapping = self.get_mapping(slug)
        text = await self.fetch_ics(slug)
        return rewrite_calendar(slug, text, mapping.name)

    async def fetch_metadata(self, slug: str) -> FeedMetadata:
        mapping = self.get_mapping(slug)
        text = await self.fetch_ics(slug, user_agent=METADATA_USER_AGENT, label="metadata")
        events = parse_ics_events(apply_calendar_transform(slug, text))

        def _log_precision(event: ParsedIcsEvent, decision: PrecisionDecision) -> None:
            logger.info(
                f"[METADATA] {slug} precision={decision.precision} rule={decision.rule} "
                f"summary={event.summary[:60]!r} dtstart={event.dtstart.raw if event.dtstart else None}"
            )

        metadata = build_calendar_metadata(
            slug,
            mapping.name,
            events,
            on_precision=_log_precision if self.log_precision else None,
        )
        logger.debug(f"[METADATA] {slug}: {metadata.event_count} events")
        return metadata

    def get_team(self, team: str) -> TeamCalendar:
        calendar = self.teams.get(team)
        if calendar is None:
            raise UnknownTeamError(team)
        return calendar

    async def fetch_team_ics(self, team: str) -> str:
        """One Top 14 team's matches out of the league feed, renamed for the team."""
        calendar = self.get_team(team)
        text = await self._download(self.team_source_url, PROXY_USER_AGENT, f"rugby:{team}")
        filtered = rewrite_team_calendar(text, calendar.names, calendar.name, TOP14_PRODID)
        logger.debug(f"[CALENDAR] rugby/{team}: {filtered.count('BEGIN:VEVENT')} events kept")
        return filtered
