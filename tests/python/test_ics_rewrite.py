"""Proxy rewriting: race-only filter and calendar header upserts."""

from feedhub.lib._ics_lib import (
    PROXY_PRODID,
    RACE_ONLY_F1_SLUG,
    filter_events,
    is_race_event,
    rewrite_calendar,
    rewrite_team_calendar,
    summary_mentions,
    upsert_header_property,
)

F1_FEED = (
    "BEGIN:VCALENDAR\r\n"
    "PRODID:-//Upstream//Feed//EN\r\n"
    "X-WR-CALNAME:Formula 1\r\n"
    "BEGIN:VEVENT\r\nSUMMARY:FORMULA 1 GRAND PRIX DE MONACO - Practice 1\r\nDTSTART:20260605T113000Z\r\nEND:VEVENT\r\n"
    "BEGIN:VEVENT\r\nSUMMARY:FORMULA 1 GRAND PRIX DE MONACO - Qualifying\r\nDTSTART:20260606T140000Z\r\nEND:VEVENT\r\n"
    "BEGIN:VEVENT\r\nSUMMARY:FORMULA 1 GRAND PRIX DE MONACO - Race\r\nDTSTART:20260607T130000Z\r\nEND:VEVENT\r\n"
    "BEGIN:VEVENT\r\nSUMMARY:Miami Sprint\r\nDTSTART:20260502T160000Z\r\nEND:VEVENT\r\n"
    "END:VCALENDAR\r\n"
)


def test_is_race_event():
    assert is_race_event("BEGIN:VEVENT\nSUMMARY:Monaco - Race\nEND:VEVENT\n")
    assert is_race_event("BEGIN:VEVENT\nSUMMARY:Grand Prix du Canada\nEND:VEVENT\n")
    assert not is_race_event("BEGIN:VEVENT\nSUMMARY:Grand Prix du Canada - Essais Libres 1\nEND:VEVENT\n")
    assert not is_race_event("BEGIN:VEVENT\nSUMMARY:Sprint Race\nEND:VEVENT\n")
    assert not is_race_event("BEGIN:VEVENT\nDTSTART:20260101\nEND:VEVENT\n")


def test_filter_events_keeps_header_and_footer():
    filtered = filter_events(F1_FEED, is_race_event)
    assert filtered.startswith("BEGIN:VCALENDAR\r\nPRODID:-//Upstream//Feed//EN\r\n")
    assert filtered.endswith("END:VCALENDAR\r\n")
    assert filtered.count("BEGIN:VEVENT") == 1
    assert "MONACO - Race" in filtered


def test_filter_events_without_events_is_identity():
    text = "BEGIN:VCALENDAR\nEND:VCALENDAR\n"
    assert filter_events(text, lambda block: False) == text


def test_upsert_replaces_existing_header_property_only():
    text = (
        "BEGIN:VCALENDAR\nX-WR-CALNAME:Old\n  continued\n"
        "BEGIN:VEVENT\nX-WR-CALNAME:inside event\nEND:VEVENT\nEND:VCALENDAR\n"
    )
    result = upsert_header_property(text, "X-WR-CALNAME", "New")
    assert result.startswith("BEGIN:VCALENDAR\nX-WR-CALNAME:New\nBEGIN:VEVENT")
    assert "X-WR-CALNAME:inside event" in result


def test_upsert_inserts_after_begin_and_keeps_crlf():
    text = "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nEND:VCALENDAR\r\n"
    result = upsert_header_property(text, "PRODID", PROXY_PRODID)
    assert result == f"BEGIN:VCALENDAR\r\nPRODID:{PROXY_PRODID}\r\nVERSION:2.0\r\nEND:VCALENDAR\r\n"


def test_upsert_is_idempotent():
    once = upsert_header_property(F1_FEED, "X-WR-CALNAME", "F1")
    assert upsert_header_property(once, "X-WR-CALNAME", "F1") == once


def test_rewrite_calendar_race_only_slug():
    result = rewrite_calendar(RACE_ONLY_F1_SLUG, F1_FEED, "F1 - Courses uniquement")
    assert "X-WR-CALNAME:F1 - Courses uniquement\r\n" in result
    assert f"PRODID:{PROXY_PRODID}\r\n" in result
    assert "-//Upstream//Feed//EN" not in result
    assert result.count("BEGIN:VEVENT") == 1


def test_rewrite_calendar_other_slug_keeps_all_events():
    result = rewrite_calendar("f1", F1_FEED, "Formula 1")
    assert result.count("BEGIN:VEVENT") == 4


TOP14_FEED = (
    "BEGIN:VCALENDAR\r\n"
    "PRODID:-//rugbyfixture//Top 14//EN\r\n"
    "X-WR-CALNAME:Top 14\r\n"
    "BEGIN:VEVENT\r\nSUMMARY:Toulouse v Racing 92\r\nDTSTART:20260912T190500Z\r\nEND:VEVENT\r\n"
    "BEGIN:VEVENT\r\nSUMMARY:Lyon v Clermont\r\nDTSTART:20260913T140000Z\r\nEND:VEVENT\r\n"
    "BEGIN:VEVENT\r\nSUMMARY:Bayonne v Section Paloise\r\nDTSTART:20260913T160000Z\r\nEND:VEVENT\r\n"
    "BEGIN:VEVENT\r\nDTSTART:20260914T160000Z\r\nEND:VEVENT\r\n"
    "END:VCALENDAR\r\n"
)


def test_summary_mentions_matches_whole_words_only():
    lyon = summary_mentions(["Lyon", "LOU"])
    assert lyon("BEGIN:VEVENT\r\nSUMMARY:LOU Rugby v Pau\r\nEND:VEVENT\r\n")
    assert lyon("BEGIN:VEVENT\r\nSUMMARY:lyon v pau\r\nEND:VEVENT\r\n")
    assert not lyon("BEGIN:VEVENT\r\nSUMMARY:Toulouse v Pau\r\nEND:VEVENT\r\n")
    assert not lyon("BEGIN:VEVENT\r\nDTSTART:20260101\r\nEND:VEVENT\r\n")


def test_rewrite_team_calendar():
    text = rewrite_team_calendar(TOP14_FEED, ("Pau", "Section Paloise"), "Section Paloise", "-//Test//Rugby//FR")

    assert text.count("BEGIN:VEVENT") == 1
    assert "SUMMARY:Bayonne v Section Paloise\r\n" in text
    assert "X-WR-CALNAME:Section Paloise\r\n" in text
    assert "\r\nNAME:Section Paloise\r\n" in text
    assert "PRODID:-//Test//Rugby//FR\r\n" in text
    assert "Top 14" not in text
    assert text.endswith("END:VCALENDAR\r\n")
