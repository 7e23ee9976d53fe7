"""ICS parsing, time-precision detection and feed metadata."""

from datetime import datetime, timezone

from feedhub.lib._ics_lib import (
    LOCAL_TZ,
    build_calendar_metadata,
    detect_time_precision,
    parse_ics_date_value,
    parse_ics_events,
)


def _calendar(*events: str) -> str:
    body = "".join(f"BEGIN:VEVENT\r\n{event}END:VEVENT\r\n" for event in events)
    return f"BEGIN:VCALENDAR\r\nVERSION:2.0\r\n{body}END:VCALENDAR\r\n"


def _single(event: str):
    events = parse_ics_events(_calendar(event))
    assert len(events) == 1
    return events[0]


def test_parse_date_values():
    assert parse_ics_date_value("20260301") == datetime(2026, 3, 1, tzinfo=LOCAL_TZ)
    assert parse_ics_date_value("20260301T143000") == datetime(2026, 3, 1, 14, 30, tzinfo=LOCAL_TZ)
    assert parse_ics_date_value("20260301T143000Z") == datetime(2026, 3, 1, 14, 30, tzinfo=timezone.utc)
    assert parse_ics_date_value("20261301") is None
    assert parse_ics_date_value("2026-03-01") is None


def test_parse_events_unfolds_summary_and_reads_end():
    event = _single(
        "SUMMARY:Grand Prix de\r\n  Monaco\r\n"
        "DTSTART:20260607T130000Z\r\n"
        "DTEND:20260607T150000Z\r\n"
    )
    assert event.summary == "Grand Prix de Monaco"
    assert event.start == datetime(2026, 6, 7, 13, tzinfo=timezone.utc)
    assert event.end == datetime(2026, 6, 7, 15, tzinfo=timezone.utc)


def test_parse_events_drops_unusable_blocks():
    text = _calendar(
        "SUMMARY:No start\r\n",
        "SUMMARY:Bad date\r\nDTSTART:20261340\r\n",
        "DTSTART:20260301T100000Z\r\n",
        "SUMMARY:Kept\r\nDTSTART:20260301T100000Z\r\n",
    )
    text += "BEGIN:VEVENT\r\nSUMMARY:Truncated\r\nDTSTART:20260302\r\n"
    assert [e.summary for e in parse_ics_events(text)] == ["Kept"]


def test_precision_value_date_param():
    event = _single("SUMMARY:A\r\nDTSTART;VALUE=DATE:20260301\r\n")
    decision = detect_time_precision(event)
    assert (decision.precision, decision.rule) == ("day", "rule-1-value-date-param")


def test_precision_date_only_value():
    event = _single("SUMMARY:A\r\nDTSTART:20260301\r\n")
    assert detect_time_precision(event).rule == "rule-2-date-only"


def test_precision_microsoft_all_day_flag():
    event = _single("SUMMARY:A\r\nDTSTART:20260301T000000\r\nX-MICROSOFT-CDO-ALLDAYEVENT:TRUE\r\n")
    assert detect_time_precision(event).rule == "rule-3-microsoft-flag"


def test_precision_midnight_to_midnight_span():
    event = _single("SUMMARY:A\r\nDTSTART:20260301T000000\r\nDTEND:20260303T000000\r\n")
    decision = detect_time_precision(event)
    assert (decision.precision, decision.rule) == ("day", "rule-4-midnight-span")


def test_precision_midnight_start_with_short_duration_is_timed():
    event = _single("SUMMARY:A\r\nDTSTART:20260301T000000Z\r\nDTEND:20260301T020000Z\r\n")
    assert detect_time_precision(event).precision == "time"


def test_precision_default_is_time():
    event = _single("SUMMARY:A\r\nDTSTART:20260301T143000Z\r\n")
    decision = detect_time_precision(event)
    assert (decision.precision, decision.rule) == ("time", "rule-5-default-time")


def test_build_metadata_next_event_and_range():
    events = parse_ics_events(_calendar(
        "SUMMARY:Past\r\nDTSTART:20260201T100000Z\r\n",
        "SUMMARY:Later\r\nDTSTART:20260305T140000Z\r\n",
        "SUMMARY:Tomorrow\r\nDTSTART;VALUE=DATE:20260302\r\n",
    ))
    now = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)

    metadata = build_calendar_metadata("psg", "PSG", events, now=now)

    assert metadata.event_count == 3
    assert metadata.next_event.summary == "Tomorrow"
    assert metadata.next_event.days_until == 1
    assert metadata.next_event.time_precision == "day"
    assert [e.summary for e in metadata.upcoming_events] == ["Tomorrow", "Later"]
    assert metadata.date_range == {"start": "2026-02-01", "end": "2026-03-05"}
    assert metadata.last_updated == "2026-03-01T12:00:00Z"


def test_build_metadata_limits_upcoming_and_reports_precision():
    events = parse_ics_events(_calendar(*[
        f"SUMMARY:Match {day}\r\nDTSTART:202603{day:02d}T180000Z\r\n" for day in range(2, 12)
    ]))
    seen = []
    metadata = build_calendar_metadata(
        "om", "OM", events,
        now=datetime(2026, 3, 1, tzinfo=timezone.utc),
        upcoming_limit=3,
        on_precision=lambda event, decision: seen.append(decision.rule),
    )
    assert len(metadata.upcoming_events) == 3
    assert seen == ["rule-5-default-time"] * 3


def test_build_metadata_empty_feed():
    metadata = build_calendar_metadata("x", "X", [], now=datetime(2026, 3, 1, tzinfo=timezone.utc))
    data = metadata.to_dict()
    assert data["next_event"] is None
    assert data["upcoming_events"] == []
    assert data["event_count"] == 0
    assert data["date_range"] is None
