"""
Application constants: calendar registry, cache TTLs, upstream URLs.

Slugs are part of the public URL contract (mobile clients hard-code them),
so they are never renamed.

Design Pattern: Constants Module Pattern
Algorithm: Static data lookup
Big O: O(1) for lookups
"""

from typing import NamedTuple, Optional

from feedhub.lib._ics_lib import RACE_ONLY_F1_SLUG

API_VERSION = "1.0.0"


class CalendarMapping(NamedTuple):
    source_url: str
    name: str
    description: Optional[str] = None


def _fixtures(team: str) -> str:
    return f"https://ics.fixtur.es/v2/{team}.ics"


F1_SOURCE_URL = "https://better-f1-calendar.vercel.app/api/calendar.ics"

MOTORSPORT_CALENDARS: dict[str, CalendarMapping] = {
    "f1": CalendarMapping(
        F1_SOURCE_URL,
        "Formule 1 - Calendrier complet",
        "GP, Qualifications, Essais, Sprints",
    ),
    RACE_ONLY_F1_SLUG: CalendarMapping(
        F1_SOURCE_URL,
        "Formule 1 - Courses",
        "Uniquement les Grands Prix",
    ),
    "motogp": CalendarMapping(
        "https://ics.fixtur.es/v2/league/motogp.ics",
        "MotoGP - Grands Prix",
        "Tous les Grands Prix MotoGP",
    ),
    "nascar": CalendarMapping(
        "https://calendar.google.com/calendar/ical/"
        "db8c47ne2bt9qbld2mhdabm0u8%40group.calendar.google.com/public/basic.ics",
        "NASCAR Cup Series",
        "Toutes les courses NASCAR",
    ),
}

BASKETBALL_CALENDARS: dict[str, CalendarMapping] = {
    "basketball": CalendarMapping(
        "https://fixturedownload.com/download/nba-2024-GMTStandardTime.ics",
        "NBA - Calendrier complet",
        "Tous les matchs NBA 2024-25",
    ),
}

# Ligue 1
FOOTBALL_CALENDARS: dict[str, CalendarMapping] = {
    "psg": CalendarMapping(_fixtures("paris-saint-germain"), "Paris Saint-Germain"),
    "om": CalendarMapping(_fixtures("olympique-marseille"), "Olympique de Marseille"),
    "ol": CalendarMapping(_fixtures("olympique-lyon"), "Olympique Lyonnais"),
    "asMonaco": CalendarMapping(_fixtures("as-monaco"), "AS Monaco"),
    "losc": CalendarMapping(_fixtures("lille"), "LOSC Lille"),
    "rcLens": CalendarMapping(_fixtures("lens"), "RC Lens"),
    "stadeRennais": CalendarMapping(_fixtures("stade-rennes"), "Stade Rennais"),
    "nice": CalendarMapping(_fixtures("ogc-nice"), "OGC Nice"),
    "rcStrasbourg": CalendarMapping(_fixtures("rc-strasbourg"), "RC Strasbourg"),
    "fcNantes": CalendarMapping(_fixtures("fc-nantes"), "FC Nantes"),
    "toulouseFc": CalendarMapping(_fixtures("toulouse"), "Toulouse FC"),
    "stadeBrest": CalendarMapping(_fixtures("stade-brestois-29"), "Stade Brestois"),
    "auxerre": CalendarMapping(_fixtures("auxerre"), "AJ Auxerre"),
    "angers": CalendarMapping(_fixtures("angers-sco"), "Angers SCO"),
    "lehavre": CalendarMapping(_fixtures("le-havre"), "Le Havre AC"),
}

# Top 14
RUGBY_CALENDARS: dict[str, CalendarMapping] = {
    "toulouse": CalendarMapping(_fixtures("toulouse"), "Stade Toulousain"),
    "stadefrancais": CalendarMapping(_fixtures("stade-francais"), "Stade Français Paris"),
    "racing92": CalendarMapping(_fixtures("racing-92"), "Racing 92"),
    "laRochelle": CalendarMapping(_fixtures("la-rochelle"), "Stade Rochelais"),
    "bordeaux": CalendarMapping(_fixtures("bordeaux-begles"), "Union Bordeaux-Bègles"),
    "clermont": CalendarMapping(_fixtures("clermont"), "ASM Clermont"),
    "toulon": CalendarMapping(_fixtures("toulon"), "RC Toulon"),
    "castres": CalendarMapping(_fixtures("castres"), "Castres Olympique"),
    "pau": CalendarMapping(_fixtures("pau"), "Section Paloise"),
    "bayonne": CalendarMapping(_fixtures("bayonne"), "Aviron Bayonnais"),
}

# Later groups win on slug collisions
CALENDAR_REGISTRY: dict[str, CalendarMapping] = {
    **MOTORSPORT_CALENDARS,
    **BASKETBALL_CALENDARS,
    **FOOTBALL_CALENDARS,
    **RUGBY_CALENDARS,
}


class TeamCalendar(NamedTuple):
    """A team's slice of a league-wide feed: SUMMARY spellings plus the display name."""
    names: tuple[str, ...]
    name: str


# Whole Top 14 season, filtered per team on request
TOP14_SOURCE_URL = "https://data.rugbyfixture.io/ical/v1/top14.ics"
TOP14_PRODID = "-//FeedHub//Rugby Top 14//FR"

TOP14_TEAM_CALENDARS: dict[str, TeamCalendar] = {
    "toulouse": TeamCalendar(("Toulouse",), "Stade Toulousain"),
    "stadefrancais": TeamCalendar(("Stade Français", "Stade Francais"), "Stade Français Paris"),
    "racing92": TeamCalendar(("Racing Métro", "Racing Metro", "Racing 92"), "Racing 92"),
    "laRochelle": TeamCalendar(("La Rochelle", "Stade Rochelais"), "Stade Rochelais"),
    "bordeaux": TeamCalendar(("Bordeaux", "UBB", "Bordeaux-Bègles"), "Union Bordeaux-Bègles"),
    "clermont": TeamCalendar(("Clermont", "ASM Clermont"), "ASM Clermont"),
    "toulon": TeamCalendar(("Toulon", "RC Toulon", "RCT"), "RC Toulon"),
    "lyon": TeamCalendar(("Lyon", "LOU"), "LOU Rugby"),
    "montpellier": TeamCalendar(("Montpellier", "MHR"), "Montpellier Hérault Rugby"),
    "castres": TeamCalendar(("Castres", "CO"), "Castres Olympique"),
    "pau": TeamCalendar(("Pau", "Section Paloise"), "Section Paloise"),
    "perpignan": TeamCalendar(("Perpignan", "USAP"), "USAP Perpignan"),
    "bayonne": TeamCalendar(("Bayonne", "Aviron Bayonnais"), "Aviron Bayonnais"),
    "vannes": TeamCalendar(("Vannes", "RC Vannes"), "RC Vannes"),
}


def get_calendar_mapping(slug: str) -> Optional[CalendarMapping]:
    return CALENDAR_REGISTRY.get(slug)


# Cache TTLs in seconds
CACHE_TTL = {
    "calendar": 3600,
    "metadata": 300,
    "tv_schedule": 1800,
    "match_results": 300,
    "rugby_results": 600,
    "race_results": 1800,
    "pharmacies": 86400,
    "hospitals": 86400,
    "stations": 1800,
    "post_offices": 43200,
    "health": 60,
}

# Upstream pages
FLASHSCORE_URLS = {
    "football": "https://www.flashscore.fr/football/france/ligue-1/resultats/",
    "rugby": "https://www.flashscore.fr/rugby/france/top-14/resultats/",
    "f1": "https://www.flashscore.fr/formule-1/",
    "motogp": "https://www.flashscore.fr/motogp/",
}
TV_SCHEDULE_URL = "https://www.footmercato.net/programme-tv/france/ligue-1"

SUPPORTED_SPORTS = ("football", "rugby", "f1", "motogp")
