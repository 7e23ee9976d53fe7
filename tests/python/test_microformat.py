"""Compressed results feed: match and race record extraction."""

from datetime import date

from feedhub.lib._microformat_lib import (
    F1_POINTS,
    extract_embedded_feed,
    parse_match_results,
    parse_race_results,
    split_records,
)
from feedhub.lib.team_name_mapping import normalize_f1_driver, normalize_football_team

# 2026-01-04 20:00 UTC and 2026-01-11 14:00 UTC
MATCH_FEED = (
    "SA÷1¬~ZA÷FRANCE: Ligue 1¬ZEE÷abc"
    "~AA÷m1¬AD÷1767556800¬CX÷Paris Saint-Germain¬AF÷Olympique de Marseille¬AG÷3¬AH÷1¬AB÷3¬ER÷Journée 17¬"
    "~AA÷m2¬AD÷1768140000¬CX÷Lyon¬AF÷Monaco¬AG÷0¬AH÷0¬AB÷2¬"
    "~AA÷m3¬AD÷1768140000¬CX÷Lens¬AF÷Nice¬AB÷1¬"
)

# Race on 2026-06-07 13:00 UTC
RACE_FEED = (
    "SA÷1¬AE÷Circuit de Monaco¬~ZA÷FORMULA 1¬ZEE÷Grand Prix de Monaco"
    "~AA÷r3¬AB÷3¬AF÷Unknown Guy¬"
    "~AA÷r1¬AB÷1¬AF÷Max Verstappen¬AK÷Red Bull Racing¬AG÷1:40:52.554¬AD÷1780837200¬"
    "~AA÷r4¬AB÷4¬AF÷Stroll¬AG÷+9.000s¬"
    "~AA÷r2¬AB÷2¬AF÷Lando Norris¬AG÷+2.345s¬"
)


def test_split_records_restores_id_prefix():
    records = split_records(MATCH_FEED)
    assert len(records) == 4
    assert records[1].startswith("AA÷m1¬")


def test_parse_match_results():
    results = parse_match_results(MATCH_FEED, "Ligue 1", normalize_football_team, today=date(2026, 1, 20))

    assert [r.id for r in results] == ["m2", "m1"]
    latest, earlier = results
    assert (latest.home_team, latest.away_team) == ("OL", "Monaco")
    assert latest.status == "live"
    assert (latest.date, latest.time) == ("2026-01-11", "15:00")

    assert (earlier.home_team, earlier.away_team) == ("PSG", "OM")
    assert (earlier.home_score, earlier.away_score) == (3, 1)
    assert earlier.status == "finished"
    assert earlier.matchday == "Journée 17"
    assert earlier.competition == "Ligue 1"
    assert earlier.to_dict()["time"] == "21:00"


def test_parse_match_results_caps_and_defaults():
    record = "~AA÷x{0}¬CX÷Home{0}¬AF÷Away{0}¬AG÷1¬AH÷0¬"
    raw = "SA÷1¬~ZA÷League" + "".join(record.format(i) for i in range(40))
    results = parse_match_results(raw, "Cup", today=date(2026, 2, 1), max_results=30)
    assert len(results) == 30
    assert all(r.date == "2026-02-01" and r.time == "" for r in results)
    assert all(r.status == "finished" and r.matchday is None for r in results)


def test_parse_race_results_podium():
    summary = parse_race_results(RACE_FEED, F1_POINTS, normalize_f1_driver, id_prefix="f1", today=date(2026, 1, 1))

    assert summary.race_name == "Grand Prix de Monaco"
    assert summary.circuit == "Circuit de Monaco"
    assert summary.date == "2026-06-07"
    assert [r.position for r in summary.podium] == [1, 2, 3]

    winner, second, third = summary.podium
    assert (winner.id, winner.driver, winner.team, winner.points) == ("f1_1", "Verstappen", "Red Bull Racing", 25)
    assert winner.time == "1:40:52.554"
    assert (second.driver, second.team, second.time, second.points) == ("Norris", "McLaren", "+2.345s", 18)
    assert (third.driver, third.team, third.time) == ("Unknown Guy", "Unknown", "+?.???s")


def test_parse_race_results_without_records():
    summary = parse_race_results("SA÷1¬WN÷Some Race¬", F1_POINTS, normalize_f1_driver, today=date(2026, 3, 8))
    assert summary.race_name == "Some Race"
    assert summary.podium == []
    assert summary.date == "2026-03-08"


def test_extract_embedded_feed():
    html = "<script>cjs.initialFeeds['results'] = {id: 1, data: `SA÷1¬~AA÷abc¬AB÷3`};</script>"
    assert extract_embedded_feed(html) == "SA÷1¬~AA÷abc¬AB÷3"
    assert extract_embedded_feed("<html>nothing here</html>") is None


def test_out_of_range_kickoff_skips_only_that_match():
    raw = (
        "SA÷1¬~ZA÷FRANCE: Ligue 1"
        "~AA÷good¬AD÷1767556800¬CX÷Lens¬AF÷Nice¬AG÷2¬AH÷1¬"
        "~AA÷bad¬AD÷99999999999999¬CX÷Brest¬AF÷Lorient¬AG÷1¬AH÷0¬"
    )
    results = parse_match_results(raw, "Ligue 1", today=date(2026, 1, 20))
    assert [r.id for r in results] == ["good"]


def test_out_of_range_race_date_skips_only_that_row():
    raw = (
        "SA÷1¬~ZA÷FORMULA 1¬ZEE÷Grand Prix de Monaco"
        "~AA÷r1¬AB÷1¬AF÷Max Verstappen¬AD÷1780837200¬"
        "~AA÷r2¬AB÷2¬AF÷Lando Norris¬AD÷99999999999999¬"
    )
    summary = parse_race_results(raw, F1_POINTS, normalize_f1_driver, today=date(2026, 6, 1))
    assert [r.position for r in summary.podium] == [1]
    assert summary.date == "2026-06-07"
