"""
Parser for the compressed sports-data feed embedded in flashscore pages.

Wire format: ``CODE÷VALUE`` pairs joined by ``¬``; records separated by
``~AA÷``. There is no grammar, so fields are pulled out by a table of
(name, regex) extractions and any record missing a mandatory field is
skipped.

Design Pattern: Table-driven extraction
Algorithm: Split on record delimiter, then one regex search per field pattern
Big O: O(r * f) where r = records, f = field patterns
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Optional, Sequence
from zoneinfo import ZoneInfo

from .team_name_mapping import Competitor

LOCAL_TZ = ZoneInfo("Europe/Paris")

RECORD_DELIMITER = "~AA÷"
MIN_RECORD_LENGTH = 10
BAD_EPOCH_ERRORS = (ValueError, OverflowError, OSError)
MAX_MATCH_RESULTS = 30
PODIUM_SIZE = 3
UNKNOWN_GAP = "+?.???s"

F1_POINTS = {1: 25, 2: 18, 3: 15, 4: 12, 5: 10, 6: 8, 7: 6, 8: 4, 9: 2, 10: 1}
MOTOGP_POINTS = {
    1: 25, 2: 20, 3: 16, 4: 13, 5: 11, 6: 10, 7: 9, 8: 8,
    9: 7, 10: 6, 11: 5, 12: 4, 13: 3, 14: 2, 15: 1,
}

# 3 and 100 both mean the match is over
STATUS_CODES = {3: "finished", 100: "finished", 2: "live", 1: "scheduled"}

_TEXT = r"[^¬~]+"
_DIGITS = r"\d+"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    pattern: re.Pattern


def code_field(name: str, code: str, value: str = _TEXT) -> FieldSpec:
    """A field read from ``CODE÷VALUE`` at a pair boundary."""
    return FieldSpec(name, re.compile(rf"(?:^|[¬~]){code}÷({value})"))


def nested_field(name: str, outer: str, inner: str, value: str = _TEXT) -> FieldSpec:
    """A field found two pairs after ``outer``, e.g. ``WM÷..¬..¬AF÷name``."""
    return FieldSpec(name, re.compile(rf"(?:^|[¬~]){outer}÷[^¬]*¬[^¬]*¬{inner}÷({value})"))


MATCH_FIELDS = (
    code_field("match_id", "AA"),
    code_field("timestamp", "AD", _DIGITS),
    code_field("home_team", "CX"),
    code_field("away_team", "AF"),
    code_field("home_score", "AG", _DIGITS),
    code_field("away_score", "AH", _DIGITS),
    code_field("status", "AB", _DIGITS),
    code_field("round", "ER"),
)
MATCH_FALLBACKS = (
    nested_field("home_team", "WM", "AF"),
    nested_field("away_team", "WN", "AF"),
)

RACE_FIELDS = (
    code_field("position", "AB", _DIGITS),
    code_field("driver", "AF"),
    code_field("team", "AK"),
    code_field("time", "AG"),
    code_field("timestamp", "AD", _DIGITS),
)
RACE_FALLBACKS = (
    nested_field("driver", "WM", "AF"),
)

RACE_HEADER_FIELDS = (
    code_field("race_name", "WN"),
    code_field("circuit", "AE"),
)
_EVENT_NAME_RE = re.compile(r"~ZA÷[^~]*÷([^¬~]+)")

EMBEDDED_FEED_PATTERNS = (
    re.compile(r"cjs\.initialFeeds\['results'\]\s*=\s*\{[^}]*data:\s*`([^`]+)`"),
    re.compile(r"SA÷1¬~ZA÷[^`]*"),
    re.compile(r"~AA÷[^`]+"),
)


# =============================================================================
# Domain records
# =============================================================================

@dataclass(frozen=True)
class MatchResult:
    id: str
    home_team: str
    away_team: str
    home_score: int
    away_score: int
    date: str
    time: str
    status: str
    competition: str
    matchday: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class RaceResult:
    id: str
    position: int
    driver: str
    team: str
    time: str
    points: int
    fastest_lap: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class RaceSummary:
    race_name: str
    circuit: str
    date: str
    podium: list[RaceResult] = field(default_factory=list)


# =============================================================================
# Extraction
# =============================================================================

def split_records(raw: str) -> list[str]:
    """
    Split a feed into records. Every record after the first gets its
    ``AA÷`` prefix back so the id is readable like any other field.
    """
    records = []
    for index, piece in enumerate(raw.split(RECORD_DELIMITER)):
        if len(piece) < MIN_RECORD_LENGTH:
            continue
        records.append(piece if index == 0 else f"AA÷{piece}")
    return records


def extract_fields(
    record: str, specs: Sequence[FieldSpec], fallbacks: Sequence[FieldSpec] = ()
) -> dict[str, str]:
    fields: dict[str, str] = {}
    for spec in specs:
        match = spec.pattern.search(record)
        if match:
            fields[spec.name] = match.group(1)
    for spec in fallbacks:
        if spec.name in fields:
            continue
        match = spec.pattern.search(record)
        if match:
            fields[spec.name] = match.group(1)
    return fields


def extract_embedded_feed(html: str) -> Optional[str]:
    """Pull the compressed feed literal out of a results page, if any."""
    for pattern in EMBEDDED_FEED_PATTERNS:
        match = pattern.search(html)
        if match:
            return match.group(1) if match.groups() else match.group(0)
    return None


def _local_datetime(epoch_seconds: str) -> datetime:
    # ValueError, OverflowError or OSError for epochs outside the platform range
    return datetime.fromtimestamp(int(epoch_seconds), tz=timezone.utc).astimezone(LOCAL_TZ)


# =============================================================================
# Match results (football, rugby)
# =============================================================================

def parse_match_results(
    raw: str,
    competition: str,
    normalize: Callable[[str], str] = str.strip,
    *,
    id_prefix: str = "flash",
    max_results: int = MAX_MATCH_RESULTS,
    today: Optional[date] = None,
) -> list[MatchResult]:
    """Most recent first, capped at ``max_results``. Records without both scores are skipped."""
    today = today or datetime.now(LOCAL_TZ).date()
    results: list[MatchResult] = []

    for record in split_records(raw):
        fields = extract_fields(record, MATCH_FIELDS, MATCH_FALLBACKS)

        if "home_score" not in fields or "away_score" not in fields:
            continue

        home_team = normalize(fields.get("home_team", ""))
        away_team = normalize(fields.get("away_team", ""))
        if not home_team or not away_team:
            continue

        match_date = today.isoformat()
        match_time = ""
        if "timestamp" in fields:
            try:
                kickoff = _local_datetime(fields["timestamp"])
            except BAD_EPOCH_ERRORS:
                continue
            match_date = kickoff.date().isoformat()
            match_time = kickoff.strftime("%H:%M")

        status = "finished"
        if "status" in fields:
            status = STATUS_CODES.get(int(fields["status"]), status)

        matchday = None
        round_number = re.search(r"\d+", fields.get("round", ""))
        if round_number:
            matchday = f"Journée {round_number.group(0)}"

        results.append(
            MatchResult(
                id=fields.get("match_id") or f"{id_prefix}_{len(results)}",
                home_team=home_team,
                away_team=away_team,
                home_score=int(fields["home_score"]),
                away_score=int(fields["away_score"]),
                date=match_date,
                time=match_time,
                status=status,
                competition=competition,
                matchday=matchday,
            )
        )

    results.sort(key=lambda r: (r.date, r.time), reverse=True)
    return results[:max_results]


# =============================================================================
# Race results (F1, MotoGP)
# =============================================================================

def parse_race_results(
    raw: str,
    points_table: dict[int, int],
    normalize: Callable[[str], Competitor],
    *,
    id_prefix: str = "race",
    today: Optional[date] = None,
) -> RaceSummary:
    """Podium (positions 1-3) sorted by position, plus race name, circuit and date."""
    header = extract_fields(raw, RACE_HEADER_FIELDS)
    race_name = header.get("race_name", "Grand Prix")
    event = _EVENT_NAME_RE.search(raw)
    if event and ("Grand Prix" in event.group(1) or "GP" in event.group(1)):
        race_name = event.group(1)

    race_date = (today or datetime.now(LOCAL_TZ).date()).isoformat()
    podium: list[RaceResult] = []

    for record in split_records(raw):
        fields = extract_fields(record, RACE_FIELDS, RACE_FALLBACKS)

        position = int(fields.get("position", "0"))
        if not 1 <= position <= PODIUM_SIZE:
            continue

        competitor = normalize(fields.get("driver", ""))
        if "timestamp" in fields:
            try:
                race_date = _local_datetime(fields["timestamp"]).date().isoformat()
            except BAD_EPOCH_ERRORS:
                continue

        podium.append(
            RaceResult(
                id=f"{id_prefix}_{position}",
                position=position,
                driver=competitor.short,
                team=fields.get("team") or competitor.team,
                time=fields.get("time") or ("" if position == 1 else UNKNOWN_GAP),
                points=points_table.get(position, 0),
            )
        )

    podium.sort(key=lambda r: r.position)
    return RaceSummary(
        race_name=race_name,
        circuit=header.get("circuit", ""),
        date=race_date,
        podium=podium[:PODIUM_SIZE],
    )
