"""
Team, driver and rider name normalization for the sports endpoints.

Maps the raw names found in scraped feeds (full names, short names, club
acronyms) to the short display names served by the API, and expands user
team queries ("psg", "marseille") into every alias worth matching.

Design Pattern: Dictionary Lookup with alias expansion
Algorithm: O(1) for exact match, O(n) for query expansion where n = number of alias groups
"""

from __future__ import annotations

from typing import Iterable, NamedTuple

# Ligue 1: lowercase raw name -> display name
LIGUE1_TEAMS = {
    # Paris Saint-Germain
    "paris saint-germain": "PSG",
    "paris": "PSG",
    "psg": "PSG",

    # Olympique de Marseille
    "olympique de marseille": "OM",
    "marseille": "OM",
    "om": "OM",

    # Olympique Lyonnais
    "olympique lyonnais": "OL",
    "lyon": "OL",
    "ol": "OL",

    "as monaco": "Monaco",
    "monaco": "Monaco",
    "asm": "Monaco",
    "lille": "LOSC",
    "losc": "LOSC",
    "rc lens": "Lens",
    "lens": "Lens",
    "rcl": "Lens",
    "stade rennais": "Rennes",
    "rennes": "Rennes",
    "srfc": "Rennes",
    "nice": "Nice",
    "ogc nice": "Nice",
    "ogcn": "Nice",
    "stade brestois": "Brest",
    "brest": "Brest",
    "sb29": "Brest",
    "stade de reims": "Reims",
    "reims": "Reims",
    "toulouse": "Toulouse",
    "tfc": "Toulouse",
    "montpellier": "Montpellier",
    "mhsc": "Montpellier",
    "rc strasbourg": "Strasbourg",
    "strasbourg": "Strasbourg",
    "rcs": "Strasbourg",
    "fc nantes": "Nantes",
    "nantes": "Nantes",
    "fcn": "Nantes",
    "aj auxerre": "Auxerre",
    "auxerre": "Auxerre",
    "aja": "Auxerre",
    "le havre": "Le Havre",
    "hac": "Le Havre",
    "angers": "Angers",
    "sco": "Angers",
    "as saint-etienne": "Saint-Etienne",
    "saint-etienne": "Saint-Etienne",
    "asse": "Saint-Etienne",
}

# Top 14: lowercase raw name -> display name
TOP14_TEAMS = {
    "stade toulousain": "Toulouse",
    "toulouse": "Toulouse",
    "union bordeaux-begles": "UBB",
    "bordeaux-begles": "UBB",
    "bordeaux": "UBB",
    "ubb": "UBB",
    "montpellier herault": "Montpellier",
    "montpellier hr": "Montpellier",
    "montpellier": "Montpellier",
    "mhr": "Montpellier",
    "lou rugby": "Lyon",
    "lyon ou": "Lyon",
    "lyon": "Lyon",
    "lou": "Lyon",
    "castres olympique": "Castres",
    "castres": "Castres",
    "section paloise": "Pau",
    "pau": "Pau",
    "stade rochelais": "La Rochelle",
    "la rochelle": "La Rochelle",
    "rc toulon": "Toulon",
    "toulon": "Toulon",
    "rct": "Toulon",
    "racing 92": "Racing 92",
    "racing": "Racing 92",
    "r92": "Racing 92",
    "asm clermont": "Clermont",
    "clermont auvergne": "Clermont",
    "clermont": "Clermont",
    "usap": "Perpignan",
    "usa perpignan": "Perpignan",
    "perpignan": "Perpignan",
    "aviron bayonnais": "Bayonne",
    "bayonne": "Bayonne",
    "stade francais": "Stade Francais",
    "stade francais paris": "Stade Francais",
    "sfp": "Stade Francais",
    "rc vannes": "Vannes",
    "vannes": "Vannes",
    "rcv": "Vannes",
}


class Competitor(NamedTuple):
    short: str
    team: str


F1_DRIVERS = {
    "max verstappen": Competitor("Verstappen", "Red Bull"),
    "verstappen": Competitor("Verstappen", "Red Bull"),
    "lewis hamilton": Competitor("Hamilton", "Ferrari"),
    "hamilton": Competitor("Hamilton", "Ferrari"),
    "charles leclerc": Competitor("Leclerc", "Ferrari"),
    "leclerc": Competitor("Leclerc", "Ferrari"),
    "carlos sainz": Competitor("Sainz", "Williams"),
    "sainz": Competitor("Sainz", "Williams"),
    "lando norris": Competitor("Norris", "McLaren"),
    "norris": Competitor("Norris", "McLaren"),
    "oscar piastri": Competitor("Piastri", "McLaren"),
    "piastri": Competitor("Piastri", "McLaren"),
    "george russell": Competitor("Russell", "Mercedes"),
    "russell": Competitor("Russell", "Mercedes"),
    "kimi antonelli": Competitor("Antonelli", "Mercedes"),
    "antonelli": Competitor("Antonelli", "Mercedes"),
    "fernando alonso": Competitor("Alonso", "Aston Martin"),
    "alonso": Competitor("Alonso", "Aston Martin"),
    "lance stroll": Competitor("Stroll", "Aston Martin"),
    "stroll": Competitor("Stroll", "Aston Martin"),
}

MOTOGP_RIDERS = {
    "jorge martin": Competitor("Martin", "Aprilia"),
    "martin": Competitor("Martin", "Aprilia"),
    "francesco bagnaia": Competitor("Bagnaia", "Ducati"),
    "pecco bagnaia": Competitor("Bagnaia", "Ducati"),
    "bagnaia": Competitor("Bagnaia", "Ducati"),
    "marc marquez": Competitor("Marquez", "Ducati"),
    "marquez": Competitor("Marquez", "Ducati"),
    "enea bastianini": Competitor("Bastianini", "KTM"),
    "bastianini": Competitor("Bastianini", "KTM"),
    "pedro acosta": Competitor("Acosta", "KTM"),
    "acosta": Competitor("Acosta", "KTM"),
    "maverick vinales": Competitor("Vinales", "KTM"),
    "vinales": Competitor("Vinales", "KTM"),
    "fabio quartararo": Competitor("Quartararo", "Yamaha"),
    "quartararo": Competitor("Quartararo", "Yamaha"),
    "alex rins": Competitor("Rins", "Yamaha"),
    "rins": Competitor("Rins", "Yamaha"),
}

# Query aliases used by the ?team= filters (results and TV schedule)
FOOTBALL_TEAM_ALIASES = {
    "psg": ["paris saint-germain", "paris", "psg", "paris sg"],
    "om": ["olympique de marseille", "marseille", "om", "olympique marseille"],
    "ol": ["olympique lyonnais", "lyon", "ol", "olympique lyon"],
    "monaco": ["as monaco", "monaco", "asm"],
    "lille": ["lille", "losc", "lille osc"],
    "lens": ["rc lens", "lens", "rcl", "racing lens"],
    "rennes": ["stade rennais", "rennes", "srfc"],
    "nice": ["nice", "ogc nice", "ogcn"],
    "brest": ["stade brestois", "brest", "sb29"],
    "reims": ["stade de reims", "reims"],
    "toulouse": ["toulouse", "tfc"],
    "montpellier": ["montpellier", "mhsc"],
    "strasbourg": ["rc strasbourg", "strasbourg", "rcs", "racing strasbourg"],
    "nantes": ["fc nantes", "nantes", "fcn"],
    "auxerre": ["aj auxerre", "auxerre", "aja"],
    "le havre": ["le havre", "hac"],
    "angers": ["angers", "sco", "angers sco"],
    "saint-etienne": ["as saint-etienne", "saint-etienne", "asse", "st etienne"],
    "lorient": ["fc lorient", "lorient", "fcl"],
    "metz": ["fc metz", "metz", "fcm"],
}

RUGBY_TEAM_ALIASES = {
    "toulouse": ["stade toulousain", "toulouse"],
    "ubb": ["union bordeaux-begles", "bordeaux", "ubb"],
    "montpellier": ["montpellier herault", "montpellier", "mhr"],
    "lyon": ["lou rugby", "lyon", "lou"],
    "castres": ["castres olympique", "castres"],
    "pau": ["section paloise", "pau"],
    "la rochelle": ["stade rochelais", "la rochelle"],
    "toulon": ["rc toulon", "toulon", "rct"],
    "racing 92": ["racing 92", "racing", "r92"],
    "clermont": ["asm clermont", "clermont", "asm"],
    "perpignan": ["usap", "perpignan"],
    "bayonne": ["aviron bayonnais", "bayonne"],
    "stade francais": ["stade francais", "stade francais paris", "sfp"],
    "vannes": ["rc vannes", "vannes", "rcv"],
}


def normalize_football_team(raw: str) -> str:
    return LIGUE1_TEAMS.get(raw.strip().lower(), raw.strip())


def normalize_rugby_team(raw: str) -> str:
    return TOP14_TEAMS.get(raw.strip().lower(), raw.strip())


def normalize_f1_driver(raw: str) -> Competitor:
    return F1_DRIVERS.get(raw.strip().lower(), Competitor(raw.strip(), "Unknown"))


def normalize_motogp_rider(raw: str) -> Competitor:
    return MOTOGP_RIDERS.get(raw.strip().lower(), Competitor(raw.strip(), "Unknown"))


def expand_team_query(query: str, aliases: dict[str, list[str]]) -> list[str]:
    """
    Expand a team query with the first alias group it belongs to.

    An exact key or alias match wins; otherwise the first group with an
    alias containing (or contained in) the query is used.
    """
    query = query.strip().lower()
    terms = [query]
    group_key = next(
        (key for key, group in aliases.items() if key == query or query in group),
        None,
    )
    if group_key is None:
        group_key = next(
            (key for key, group in aliases.items()
             if any(query in alias or alias in query for alias in group)),
            None,
        )
    if group_key is not None:
        for term in (group_key, *aliases[group_key]):
            if term not in terms:
                terms.append(term)
    return terms


# Acronyms shorter than this only match exactly ("ol" must not hit "olympique de marseille")
MIN_SUBSTRING_LENGTH = 4


def _name_matches(name: str, term: str) -> bool:
    if name == term:
        return True
    if len(term) >= MIN_SUBSTRING_LENGTH and term in name:
        return True
    return len(name) >= MIN_SUBSTRING_LENGTH and name in term


def matches_team(names: Iterable[str], terms: list[str]) -> bool:
    lowered = [name.lower() for name in names if name]
    return any(
        _name_matches(name, term)
        for term in terms
        for name in lowered
    )
