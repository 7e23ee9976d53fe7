"""
iCalendar parsing and rewriting for the calendar proxy and metadata endpoints.

Only the subset of RFC 5545 emitted by the known upstream feeds is handled:
VEVENT blocks, SUMMARY, DTSTART/DTEND (date, floating and UTC values) and
line folding.

Design Pattern: Pipeline of pure text transforms
Algorithm: Regex segmentation of VEVENT spans + ordered rule cascade for date precision
Big O: O(n) in the size of the calendar text
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, Optional
from zoneinfo import ZoneInfo

LOCAL_TZ = ZoneInfo("Europe/Paris")

RACE_ONLY_F1_SLUG = "f1-races-only"
PROXY_PRODID = "-//FeedHub//Calendar Proxy v1//FR"

PRECISION_DAY = "day"
PRECISION_TIME = "time"

_FOLD_RE = re.compile(r"\r?\n[ \t]")
_EVENT_SPAN_RE = re.compile(r"BEGIN:VEVENT[\s\S]*?END:VEVENT\r?\n?")
_SUMMARY_RE = re.compile(r"^SUMMARY[^:\r\n]*:(.*)$", re.IGNORECASE | re.MULTILINE)
_ALL_DAY_FLAG_RE = re.compile(r"X-MICROSOFT-CDO-ALLDAYEVENT:TRUE", re.IGNORECASE)
_VALUE_DATE_RE = re.compile(r";VALUE=DATE(?:;|$)")
_DATE_ONLY_RE = re.compile(r"^\d{8}$")
_DATE_TIME_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})(Z?)$")

NON_RACE_SESSION_RE = re.compile(
    r"\b(sprint|qualif(?:ying|ication)?|practice|essai(?:s| libre| libres)?"
    r"|fp1|fp2|fp3|shootout|testing|test session)\b",
    re.IGNORECASE,
)
_RACE_TOKEN_RE = re.compile(r"\brace\b", re.IGNORECASE)
_GRAND_PRIX_RE = re.compile(r"\b(grand prix|gp)\b", re.IGNORECASE)


# =============================================================================
# Parsing
# =============================================================================

@dataclass(frozen=True)
class ParsedDateToken:
    """A DTSTART/DTEND property as written, plus the instant it denotes."""

    raw: str
    value: str
    has_value_date_param: bool
    is_date_only: bool
    is_midnight_value: bool
    parsed: Optional[datetime] = None


@dataclass(frozen=True)
class ParsedIcsEvent:
    summary: str
    start: datetime
    dtstart: ParsedDateToken
    end: Optional[datetime] = None
    dtend: Optional[ParsedDateToken] = None
    has_all_day_flag: bool = False


@dataclass(frozen=True)
class PrecisionDecision:
    precision: str
    rule: str


def unfold_lines(text: str) -> str:
    return _FOLD_RE.sub("", text)


def parse_ics_date_value(value: str, tz: ZoneInfo = LOCAL_TZ) -> Optional[datetime]:
    """
    ``YYYYMMDD`` is local midnight, ``YYYYMMDDTHHMMSS`` local time,
    and a trailing ``Z`` makes it UTC. Anything else is unparseable.
    """
    try:
        if _DATE_ONLY_RE.match(value):
            return datetime(int(value[0:4]), int(value[4:6]), int(value[6:8]), tzinfo=tz)

        match = _DATE_TIME_RE.match(value)
        if match:
            year, month, day, hour, minute, second, zulu = match.groups()
            return datetime(
                int(year), int(month), int(day), int(hour), int(minute), int(second),
                tzinfo=timezone.utc if zulu else tz,
            )
    except ValueError:
        # Out-of-range components such as month 13
        return None
    return None


def parse_date_token(
    event_content: str, property_name: str, tz: ZoneInfo = LOCAL_TZ
) -> Optional[ParsedDateToken]:
    match = re.search(
        rf"^{property_name}([^:\r\n]*):([^\r\n]+)", event_content, re.MULTILINE
    )
    if not match:
        return None

    params = match.group(1).upper()
    value = match.group(2).strip()
    is_date_only = bool(_DATE_ONLY_RE.match(value))
    time_match = _DATE_TIME_RE.match(value)
    is_midnight = is_date_only or bool(time_match and "".join(time_match.groups()[3:6]) == "000000")

    return ParsedDateToken(
        raw=match.group(0),
        value=value,
        has_value_date_param=bool(_VALUE_DATE_RE.search(params)),
        is_date_only=is_date_only,
        is_midnight_value=is_midnight,
        parsed=parse_ics_date_value(value, tz),
    )


def extract_summary(event_block: str) -> str:
    """Raw SUMMARY text of an event block after unfolding, or '' when absent."""
    match = _SUMMARY_RE.search(unfold_lines(event_block))
    return match.group(1).strip() if match else ""


def parse_ics_events(ics_text: str, tz: ZoneInfo = LOCAL_TZ) -> list[ParsedIcsEvent]:
    """
    Tokenize calendar text into events.

    Fragments without END:VEVENT are discarded. Events without a parseable
    DTSTART or without a SUMMARY are dropped.
    """
    events: list[ParsedIcsEvent] = []

    for fragment in ics_text.split("BEGIN:VEVENT")[1:]:
        end_index = fragment.find("END:VEVENT")
        if end_index == -1:
            continue

        content = unfold_lines(fragment[:end_index])

        dtstart = parse_date_token(content, "DTSTART", tz)
        if dtstart is None or dtstart.parsed is None:
            continue

        summary_match = _SUMMARY_RE.search(content)
        summary = summary_match.group(1).strip() if summary_match else ""
        if not summary:
            continue

        dtend = parse_date_token(content, "DTEND", tz)
        events.append(
            ParsedIcsEvent(
                summary=summary,
                start=dtstart.parsed,
                dtstart=dtstart,
                end=dtend.parsed if dtend else None,
                dtend=dtend,
                has_all_day_flag=bool(_ALL_DAY_FLAG_RE.search(content)),
            )
        )

    return events


def detect_time_precision(event: ParsedIcsEvent) -> PrecisionDecision:
    """First matching rule wins; anything not provably all-day is timed."""
    if event.dtstart.has_value_date_param:
        return PrecisionDecision(PRECISION_DAY, "rule-1-value-date-param")

    if event.dtstart.is_date_only:
        return PrecisionDecision(PRECISION_DAY, "rule-2-date-only")

    if event.has_all_day_flag:
        return PrecisionDecision(PRECISION_DAY, "rule-3-microsoft-flag")

    if (
        event.end is not None
        and event.dtend is not None
        and event.dtend.is_midnight_value
        and event.dtstart.is_midnight_value
    ):
        duration = event.end - event.start
        one_day = timedelta(days=1)
        if duration >= one_day and duration % one_day == timedelta(0):
            return PrecisionDecision(PRECISION_DAY, "rule-4-midnight-span")

    return PrecisionDecision(PRECISION_TIME, "rule-5-default-time")


# =============================================================================
# Metadata
# =============================================================================

@dataclass(frozen=True)
class EventSummary:
    summary: str
    start: str
    days_until: int
    time_precision: str

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "start": self.start,
            "days_until": self.days_until,
            "time_precision": self.time_precision,
        }


@dataclass(frozen=True)
class FeedMetadata:
    slug: str
    name: str
    last_updated: str
    event_count: int
    next_event: Optional[EventSummary] = None
    upcoming_events: list[EventSummary] = field(default_factory=list)
    date_range: Optional[dict[str, str]] = None

    def to_dict(self) -> dict:
        return {
            "slug": self.slug,
            "name": self.name,
            "next_event": self.next_event.to_dict() if self.next_event else None,
            "upcoming_events": [event.to_dict() for event in self.upcoming_events],
            "last_updated": self.last_updated,
            "event_count": self.event_count,
            "date_range": self.date_range,
        }


def days_until(start: datetime, now: datetime, tz: ZoneInfo = LOCAL_TZ) -> int:
    """Calendar days between today and the event's local date."""
    return (start.astimezone(tz).date() - now.astimezone(tz).date()).days


def _utc_date(value: datetime) -> date:
    return value.astimezone(timezone.utc).date()


def _to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def build_calendar_metadata(
    slug: str,
    name: str,
    events: list[ParsedIcsEvent],
    now: Optional[datetime] = None,
    *,
    upcoming_limit: int = 5,
    on_precision: Optional[Callable[[ParsedIcsEvent, PrecisionDecision], None]] = None,
) -> FeedMetadata:
    now = now or datetime.now(timezone.utc)

    upcoming = sorted((e for e in events if e.start > now), key=lambda e: e.start)
    summaries = []
    for event in upcoming[:upcoming_limit]:
        decision = detect_time_precision(event)
        if on_precision is not None:
            on_precision(event, decision)
        summaries.append(
            EventSummary(
                summary=event.summary,
                start=_to_iso(event.start),
                days_until=days_until(event.start, now),
                time_precision=decision.precision,
            )
        )

    starts = sorted(e.start for e in events)
    date_range = None
    if starts:
        date_range = {
            "start": _utc_date(starts[0]).isoformat(),
            "end": _utc_date(starts[-1]).isoformat(),
        }

    return FeedMetadata(
        slug=slug,
        name=name,
        last_updated=_to_iso(now),
        event_count=len(events),
        next_event=summaries[0] if summaries else None,
        upcoming_events=summaries,
        date_range=date_range,
    )


# =============================================================================
# Rewriting
# =============================================================================

def filter_events(ics_text: str, should_keep: Callable[[str], bool]) -> str:
    """
    Keep only the VEVENT spans accepted by ``should_keep``.

    Text before the first span and after the last one is preserved verbatim.
    """
    spans = list(_EVENT_SPAN_RE.finditer(ics_text))
    if not spans:
        return ics_text

    header = ics_text[: spans[0].start()]
    footer = ics_text[spans[-1].end():]
    kept = "".join(span.group(0) for span in spans if should_keep(span.group(0)))
    return f"{header}{kept}{footer}"


def is_race_event(event_block: str) -> bool:
    summary = extract_summary(event_block).lower()
    if not summary:
        return False
    if NON_RACE_SESSION_RE.search(summary):
        return False
    return bool(_RACE_TOKEN_RE.search(summary) or _GRAND_PRIX_RE.search(summary))


def upsert_header_property(ics_text: str, key: str, value: str) -> str:
    """
    Set a calendar-level property, leaving every event untouched.

    The header is everything before the first BEGIN:VEVENT. An existing
    property (with any folded continuation lines) is replaced, otherwise a
    line is inserted right after BEGIN:VCALENDAR.
    """
    body_start = ics_text.find("BEGIN:VEVENT")
    if body_start == -1:
        body_start = len(ics_text)
    header, body = ics_text[:body_start], ics_text[body_start:]

    newline = "\r\n" if "\r\n" in ics_text else "\n"
    line = f"{key}:{value}"

    existing = re.compile(
        rf"^{re.escape(key)}(?=[;:])[^\r\n]*(?:\r?\n[ \t][^\r\n]*)*", re.MULTILINE
    )
    if existing.search(header):
        header = existing.sub(lambda _: line, header, count=1)
        return header + body

    begin = re.search(r"^BEGIN:VCALENDAR[^\r\n]*(?:\r?\n|$)", header, re.MULTILINE)
    if begin is None:
        return f"{line}{newline}{header}{body}"

    anchor = begin.group(0)
    if not anchor.endswith("\n"):
        # BEGIN:VCALENDAR is the last header line with no terminator
        insert = f"{newline}{line}"
    else:
        insert = f"{line}{newline}"
    header = header[: begin.end()] + insert + header[begin.end():]
    return header + body


CALENDAR_TRANSFORMS: dict[str, Callable[[str], str]] = {
    RACE_ONLY_F1_SLUG: lambda text: filter_events(text, is_race_event),
}


def apply_calendar_transform(slug: str, ics_text: str) -> str:
    transform = CALENDAR_TRANSFORMS.get(slug)
    return transform(ics_text) if transform else ics_text


def rewrite_calendar(slug: str, ics_text: str, display_name: str, prodid: str = PROXY_PRODID) -> str:
    """Full proxy rewrite: slug transform, then display name and product id."""
    text = apply_calendar_transform(slug, ics_text)
    text = upsert_header_property(text, "X-WR-CALNAME", display_name)
    return upsert_header_property(text, "PRODID", prodid)


def summary_mentions(names: Iterable[str]) -> Callable[[str], bool]:
    """
    Predicate for ``filter_events``: SUMMARY names one of ``names`` as a
    whole word, case-insensitively. Events without a SUMMARY never match.
    """
    pattern = re.compile(
        r"\b(?:" + "|".join(re.escape(name) for name in names) + r")\b", re.IGNORECASE
    )

    def _mentions(event_block: str) -> bool:
        summary = extract_summary(event_block)
        return bool(summary) and pattern.search(summary) is not None

    return _mentions


def rewrite_team_calendar(ics_text: str, names: Iterable[str], display_name: str, prodid: str) -> str:
    """League feed cut down to one team's events, renamed for that team."""
    text = filter_events(ics_text, summary_mentions(names))
    text = upsert_header_property(text, "X-WR-CALNAME", display_name)
    text = upsert_header_property(text, "NAME", display_name)
    return upsert_header_property(text, "PRODID", prodid)
