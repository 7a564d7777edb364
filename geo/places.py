from __future__ import annotations

import re

from normalize.models import Location


_NAME_CLEAN_RE = re.compile(r"[^\w\s]+", flags=re.UNICODE)
_WS_RE = re.compile(r"\s+")

DEFAULT_TOPIC = "general"
DEFAULT_PLACE = "Sonora"


def _rule(pattern: str, value: str) -> tuple[re.Pattern[str], str]:
    return (re.compile(pattern, flags=re.IGNORECASE | re.UNICODE), value)


# Order matters: text mentioning both a fire and an evacuation is a fire.
TOPIC_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    _rule(
        r"\b(inundaci[oó]n\w*|inundad\w*|lluvias?|tormentas?|crecidas?|arroyos?"
        r"|desbordamientos?|encharcamientos?)\b",
        "floods",
    ),
    _rule(r"\b(incendios?|fuego|quemas?|llamas)\b", "fires"),
    _rule(r"\b(sismos?|temblor(es)?|terremotos?|s[ií]smic\w*)\b", "seismic"),
    _rule(
        r"\b(accidentes?|choques?|volcaduras?|colisi[oó]n|atropell\w*)\b",
        "accidents",
    ),
    _rule(r"\b(evacua\w*|desaloj\w*|albergues?)\b", "evacuations"),
    _rule(r"\b(alertas?|avisos?|advertencias?)\b", "alerts"),
    _rule(
        r"\b(salud|dengue|golpes? de calor|ola de calor|hospital\w*|epidemias?"
        r"|brotes?|temperaturas?)\b",
        "health",
    ),
    _rule(
        r"\b(apag[oó]n\w*|corte de (luz|agua|energ[ií]a)|cfe|carreteras?"
        r"|puentes?|bloqueos?|suministro)\b",
        "infrastructure",
    ),
)

# Specific localities come before the regional areas that contain them.
PLACE_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    _rule(r"\bbah[ií]a de kino\b", "Bahía de Kino"),
    _rule(r"\bsan luis r[ií]o colorado\b", "San Luis Río Colorado"),
    _rule(r"\bpuerto pe[ñn]asco\b", "Puerto Peñasco"),
    _rule(r"\b(ciudad|cd\.?) obreg[oó]n\b|\bcajeme\b", "Ciudad Obregón"),
    _rule(r"\bagua prieta\b", "Agua Prieta"),
    _rule(r"\bhermosillo\b", "Hermosillo"),
    _rule(r"\bnogales\b", "Nogales"),
    _rule(r"\bguaymas\b", "Guaymas"),
    _rule(r"\bempalme\b", "Empalme"),
    _rule(r"\bnavojoa\b", "Navojoa"),
    _rule(r"\bcaborca\b", "Caborca"),
    _rule(r"\bcananea\b", "Cananea"),
    _rule(r"\bhuatabampo\b", "Huatabampo"),
    _rule(r"\b[aá]lamos\b", "Álamos"),
    _rule(r"\bnorte de sonora\b", "Norte de Sonora"),
    _rule(r"\bsur de sonora\b", "Sur de Sonora"),
)

PLACE_COORDINATES: dict[str, tuple[float, float]] = {
    "Bahía de Kino": (28.8222, -111.9406),
    "San Luis Río Colorado": (32.4561, -114.7719),
    "Puerto Peñasco": (31.3172, -113.5372),
    "Ciudad Obregón": (27.4828, -109.9304),
    "Agua Prieta": (31.3275, -109.5489),
    "Hermosillo": (29.0729, -110.9559),
    "Nogales": (31.3086, -110.9422),
    "Guaymas": (27.9179, -110.8989),
    "Empalme": (27.9617, -110.8125),
    "Navojoa": (27.0728, -109.4437),
    "Caborca": (30.7159, -112.1571),
    "Cananea": (30.9869, -110.2903),
    "Huatabampo": (26.8263, -109.6420),
    "Álamos": (27.0275, -108.9400),
    "Norte de Sonora": (29.1056, -110.9428),
    "Sur de Sonora": (28.3890, -109.5000),
    DEFAULT_PLACE: (29.2972, -110.3309),
}


def normalize_place_name(name: str) -> str:
    cleaned = _NAME_CLEAN_RE.sub(" ", name.strip().casefold())
    return _WS_RE.sub(" ", cleaned).strip()


_COORDINATES_BY_NORMALIZED_NAME = {
    normalize_place_name(name): coords for name, coords in PLACE_COORDINATES.items()
}


def _first_match(
    rules: tuple[tuple[re.Pattern[str], str], ...], text: str, fallback: str
) -> str:
    for pattern, value in rules:
        if pattern.search(text):
            return value
    return fallback


def extract_topic(text: str) -> str:
    return _first_match(TOPIC_RULES, text, DEFAULT_TOPIC)


def extract_place(text: str) -> str:
    return _first_match(PLACE_RULES, text, DEFAULT_PLACE)


def extract_topic_and_place(text: str) -> tuple[str, str]:
    return (extract_topic(text), extract_place(text))


def coordinates_for(place: str) -> tuple[float, float]:
    """Approximate coordinates for a place name; unknown names get the
    region-wide default."""
    return _COORDINATES_BY_NORMALIZED_NAME.get(
        normalize_place_name(place), PLACE_COORDINATES[DEFAULT_PLACE]
    )


def locate(place: str) -> Location:
    lat, lng = coordinates_for(place)
    return Location(area=place, lat=lat, lng=lng)
