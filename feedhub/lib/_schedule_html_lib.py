"""
TV schedule extraction from the footmercato "programme TV" page.

The selectors are tied to the live page structure and will break on a
redesign. An empty result is the signal to watch for, not an exception.

Design Pattern: Strategy Pattern (PrimarySelectorStrategy, FallbackTextHeuristicStrategy)
Algorithm: DOM walk with BeautifulSoup, then dedupe, sort and window filter
Big O: O(n) in the number of DOM nodes per strategy
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, NamedTuple, Optional, Sequence
from zoneinfo import ZoneInfo

from bs4 import BeautifulSoup, NavigableString, Tag

from .team_name_mapping import FOOTBALL_TEAM_ALIASES, expand_team_query, matches_team

LOCAL_TZ = ZoneInfo("Europe/Paris")
# Kickoff instants from <time datetime> are shifted by a fixed offset, not DST-aware
KICKOFF_UTC_OFFSET = timedelta(hours=1)

DEFAULT_WINDOW_DAYS = 14
DEFAULT_FALLBACK_SIZE = 20
MAX_DATE_HEADER_LENGTH = 100


class Channel(NamedTuple):
    name: str
    key: str


UNKNOWN_CHANNEL = Channel("unknown", "unknown")

# Lowercase alias found in alt text or copy -> channel
CHANNEL_MAPPING = {
    "ligue 1+": Channel("Ligue 1+", "ligue1plus"),
    "ligue1+": Channel("Ligue 1+", "ligue1plus"),
    "dazn": Channel("DAZN", "dazn"),
    "bein sports": Channel("beIN Sports", "beinsports"),
    "bein": Channel("beIN Sports", "beinsports"),
    "canal+": Channel("Canal+", "canalplus"),
    "canal plus": Channel("Canal+", "canalplus"),
    "amazon": Channel("Prime Video", "amazonprime"),
    "prime": Channel("Prime Video", "amazonprime"),
    "france": Channel("France TV", "francetv"),
}

# Primary rights holder first; simulcast partners after
CHANNEL_PRIORITY = ("ligue1plus", "canalplus", "beinsports", "dazn", "amazonprime", "francetv")

FRENCH_MONTHS = {
    "janvier": 1, "février": 2, "fevrier": 2, "mars": 3, "avril": 4,
    "mai": 5, "juin": 6, "juillet": 7, "août": 8, "aout": 8,
    "septembre": 9, "octobre": 10, "novembre": 11, "décembre": 12, "decembre": 12,
}

_FRENCH_DATE_RE = re.compile(
    r"(\d{1,2})\s+(" + "|".join(FRENCH_MONTHS) + r")\b", re.IGNORECASE
)
_TIME_RE = re.compile(r"(?<!\d)(\d{1,2})[:h](\d{2})(?!\d)")
_LIVE_HREF_RE = re.compile(r"/live/(\d+)")
_VIA_RE = re.compile(r"\bvia\s+([^\n,;.()]+)", re.IGNORECASE)
_TEAM_SPLIT_RE = re.compile(r"\s+-\s+|\s{2,}")
_LOGO_RE = re.compile(r"Logo\s*", re.IGNORECASE)
_CHANNEL_ALIAS_RES = {
    alias: re.compile(rf"(?<![a-z0-9]){re.escape(alias)}(?![a-z0-9])")
    for alias in CHANNEL_MAPPING
}


@dataclass(frozen=True)
class ScheduleEntry:
    id: str
    home_team: str
    away_team: str
    date: str
    time: str
    channel: str
    channel_key: str
    competition: str = "Ligue 1"

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Field helpers
# =============================================================================

def parse_french_date(text: str, today: date) -> Optional[date]:
    """
    "samedi 14 décembre" -> date. January/February seen from November or
    December belong to next year.
    """
    match = _FRENCH_DATE_RE.search(text)
    if not match:
        return None
    day = int(match.group(1))
    month = FRENCH_MONTHS[match.group(2).lower()]
    year = today.year
    if today.month >= 11 and month <= 2:
        year += 1
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_time_text(text: str) -> Optional[str]:
    match = _TIME_RE.search(text)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def parse_kickoff_attr(value: str) -> Optional[tuple[str, str]]:
    """``<time datetime>`` value -> (date, time) at the fixed kickoff offset."""
    try:
        instant = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    try:
        local = instant.astimezone(timezone.utc) + KICKOFF_UTC_OFFSET
    except OverflowError:
        return None
    return local.date().isoformat(), local.strftime("%H:%M")


def split_team_text(text: str) -> Optional[tuple[str, str]]:
    """Team pair from free text like ``PSG - OM``, with logo captions stripped."""
    without_time = _TIME_RE.sub("", text, count=1).strip()
    parts = [p for p in _TEAM_SPLIT_RE.split(without_time) if p.strip()]
    if len(parts) < 2:
        return None
    home = _LOGO_RE.sub("", parts[0]).strip()
    away = _LOGO_RE.sub("", parts[1]).strip()
    if not home or not away:
        return None
    return home, away


def _channels_in(text: str) -> set[str]:
    lowered = text.lower()
    return {
        CHANNEL_MAPPING[alias].key
        for alias, pattern in _CHANNEL_ALIAS_RES.items()
        if pattern.search(lowered)
    }


def _by_priority(keys: Iterable[str]) -> Optional[Channel]:
    ranked = sorted(
        keys,
        key=lambda k: CHANNEL_PRIORITY.index(k) if k in CHANNEL_PRIORITY else len(CHANNEL_PRIORITY),
    )
    if not ranked:
        return None
    return next(c for c in CHANNEL_MAPPING.values() if c.key == ranked[0])


def resolve_channel(container: Tag) -> Channel:
    """
    Explicit "via <channel>" wording, then broadcast logo alt text, then any
    channel name in the container's text. Priority breaks ties within a tier.
    """
    text = container.get_text(" ")

    via_keys: set[str] = set()
    for match in _VIA_RE.finditer(text):
        via_keys |= _channels_in(match.group(1))
    channel = _by_priority(via_keys)
    if channel:
        return channel

    logo_keys: set[str] = set()
    for img in container.find_all("img"):
        logo_keys |= _channels_in(img.get("alt") or "")
    channel = _by_priority(logo_keys)
    if channel:
        return channel

    return _by_priority(_channels_in(text)) or UNKNOWN_CHANNEL


def _direct_text(element: Tag) -> str:
    return "".join(
        str(child) for child in element.children if isinstance(child, NavigableString)
    ).strip()


def _is_date_header_text(text: str) -> bool:
    return 0 < len(text) < MAX_DATE_HEADER_LENGTH


# =============================================================================
# Strategies
# =============================================================================

class PrimarySelectorStrategy:
    """Structured ``.matchFull`` containers with labeled team elements."""

    name = "primary"
    container_selector = ".matchFull"
    team_selector = ".matchTeam__name"

    def extract(self, soup: BeautifulSoup, today: date) -> list[ScheduleEntry]:
        entries = []
        for container in soup.select(self.container_selector):
            entry = self._entry(container, today)
            if entry is not None:
                entries.append(entry)
        return entries

    def _match_id(self, container: Tag) -> Optional[str]:
        match_id = container.get("data-match-id")
        if match_id:
            return str(match_id)
        anchors = [container] if container.name == "a" else []
        anchors += container.find_all("a", href=True)
        for anchor in anchors:
            found = _LIVE_HREF_RE.search(anchor.get("href") or "")
            if found:
                return found.group(1)
        return None

    def _kickoff(self, container: Tag, today: date) -> Optional[tuple[str, str]]:
        time_tag = container.find("time", attrs={"datetime": True})
        if time_tag is not None:
            kickoff = parse_kickoff_attr(time_tag["datetime"])
            if kickoff:
                return kickoff

        clock = parse_time_text(container.get_text(" "))
        if clock is None:
            return None
        day = today
        for text in container.find_all_previous(string=True):
            candidate = text.strip()
            if not _is_date_header_text(candidate):
                continue
            parsed = parse_french_date(candidate, today)
            if parsed:
                day = parsed
                break
        return day.isoformat(), clock

    def _teams(self, container: Tag) -> Optional[tuple[str, str]]:
        names = [
            _LOGO_RE.sub("", tag.get_text(" ")).strip()
            for tag in container.select(self.team_selector)
        ]
        names = [n for n in names if n]
        if len(names) >= 2:
            return names[0], names[1]
        return split_team_text(container.get_text())

    def _entry(self, container: Tag, today: date) -> Optional[ScheduleEntry]:
        match_id = self._match_id(container)
        kickoff = self._kickoff(container, today)
        teams = self._teams(container)
        if not match_id or kickoff is None or teams is None:
            return None
        channel = resolve_channel(container)
        return ScheduleEntry(
            id=match_id,
            home_team=teams[0],
            away_team=teams[1],
            date=kickoff[0],
            time=kickoff[1],
            channel=channel.name,
            channel_key=channel.key,
        )


class FallbackTextHeuristicStrategy:
    """
    Document-order walk: French date headers set the current day, and every
    ``/live/<id>`` anchor with a visible time and a team pair is an entry.
    """

    name = "fallback"
    skip_tags = ("script", "style", "meta", "link")

    def extract(self, soup: BeautifulSoup, today: date) -> list[ScheduleEntry]:
        entries = []
        current_day = today

        for element in soup.find_all(True):
            if element.name in self.skip_tags:
                continue

            direct = _direct_text(element)
            if _is_date_header_text(direct):
                parsed = parse_french_date(direct, today)
                if parsed:
                    current_day = parsed

            if element.name != "a":
                continue
            found = _LIVE_HREF_RE.search(element.get("href") or "")
            if not found:
                continue

            text = element.get_text()
            clock = parse_time_text(text)
            teams = split_team_text(text)
            if clock is None or teams is None:
                continue

            channel = resolve_channel(element)
            entries.append(
                ScheduleEntry(
                    id=found.group(1),
                    home_team=teams[0],
                    away_team=teams[1],
                    date=current_day.isoformat(),
                    time=clock,
                    channel=channel.name,
                    channel_key=channel.key,
                )
            )
        return entries


DEFAULT_STRATEGIES = (PrimarySelectorStrategy(), FallbackTextHeuristicStrategy())


# =============================================================================
# Entry point
# =============================================================================

def parse_schedule(
    html: str,
    *,
    today: Optional[date] = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
    fallback_size: int = DEFAULT_FALLBACK_SIZE,
    strategies: Sequence = DEFAULT_STRATEGIES,
) -> list[ScheduleEntry]:
    """
    Run the strategies in order, keep the first entry seen per match id,
    sort by kickoff and keep the next ``window_days``. When the window is
    empty the first ``fallback_size`` entries are returned instead.
    """
    today = today or datetime.now(LOCAL_TZ).date()
    soup = BeautifulSoup(html, "html.parser")

    seen: set[str] = set()
    entries: list[ScheduleEntry] = []
    for strategy in strategies:
        for entry in strategy.extract(soup, today):
            if entry.id in seen:
                continue
            seen.add(entry.id)
            entries.append(entry)

    entries.sort(key=lambda e: (e.date, e.time))

    cutoff = (today + timedelta(days=window_days)).isoformat()
    upcoming = [e for e in entries if e.date <= cutoff]
    return upcoming if upcoming else entries[:fallback_size]


def filter_by_team(entries: list[ScheduleEntry], query: str) -> list[ScheduleEntry]:
    terms = expand_team_query(query, FOOTBALL_TEAM_ALIASES)
    return [e for e in entries if matches_team((e.home_team, e.away_team), terms)]
