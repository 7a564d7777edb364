from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime


SOURCE_TYPES = ("official", "social", "news", "syndication")

RISK_LEVELS = ("low", "medium", "high")
RISK_ORDER = {level: rank for rank, level in enumerate(RISK_LEVELS)}

TOPICS = (
    "floods",
    "fires",
    "seismic",
    "accidents",
    "evacuations",
    "alerts",
    "health",
    "infrastructure",
    "general",
)


@dataclass(frozen=True)
class Location:
    area: str
    lat: float
    lng: float


@dataclass(frozen=True)
class RawRecord:
    """Source-agnostic envelope every adapter maps its payload into.

    The optional trailing fields are only set by sources that already know
    them; the normalizer derives whatever is left as ``None``.
    """

    source_type: str
    source_name: str
    external_id: str
    published: str | None
    title: str
    body: str
    url: str | None = None
    topic: str | None = None
    risk: str | None = None
    change_flag: bool | None = None
    location: Location | None = None


@dataclass(frozen=True)
class Event:
    id: str
    timestamp: datetime
    source_type: str
    source_name: str
    source_url: str | None
    topic: str
    headline: str
    summary: str
    public_health_risk: str
    change_flag: bool
    location: Location | None

    def to_dict(self) -> dict:
        location = None
        if self.location is not None:
            location = {
                "area": self.location.area,
                "lat": self.location.lat,
                "lng": self.location.lng,
            }
        return {
            "id": self.id,
            "timestamp": self.timestamp.astimezone(tz=UTC)
            .isoformat()
            .replace("+00:00", "Z"),
            "source_type": self.source_type,
            "source_name": self.source_name,
            "source_url": self.source_url,
            "topic": self.topic,
            "headline": self.headline,
            "summary": self.summary,
            "public_health_risk": self.public_health_risk,
            "change_flag": self.change_flag,
            "location": location,
        }
