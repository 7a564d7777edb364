from __future__ import annotations

import re

from normalize.models import RISK_LEVELS


def _keywords(*words: str) -> re.Pattern[str]:
    # Whole words only, with an optional plural "s".
    alternation = "|".join(re.escape(w) for w in words)
    return re.compile(rf"\b(?:{alternation})s?\b", flags=re.IGNORECASE | re.UNICODE)


# Evaluated in order; the first tier with a matching keyword wins.
RISK_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    (
        "high",
        _keywords(
            "emergencia",
            "evacuación",
            "evacuacion",
            "alerta roja",
            "peligro",
            "desastre",
        ),
    ),
    (
        "medium",
        _keywords(
            "precaución",
            "precaucion",
            "lluvia",
            "viento",
            "alerta",
            "daños",
            "danos",
            "afectados",
        ),
    ),
)

CHANGE_PATTERN = _keywords(
    "actualización",
    "actualizacion",
    "nuevo",
    "nueva",
    "se eleva",
    "aumenta",
)


def classify_risk(text: str) -> str:
    for level, pattern in RISK_RULES:
        if pattern.search(text):
            return level
    return "low"


def coerce_risk(value: str | None) -> str:
    """Map a source-supplied risk value onto a tier, defaulting to medium."""
    if value is None:
        return "medium"
    normalized = str(value).strip().casefold()
    if normalized in RISK_LEVELS:
        return normalized
    return "medium"


def detect_change(text: str) -> bool:
    return CHANGE_PATTERN.search(text) is not None
