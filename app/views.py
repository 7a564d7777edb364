from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from ingest.pipeline import AggregationPipeline
from normalize.models import RISK_LEVELS, RISK_ORDER, SOURCE_TYPES, Event


SUMMARY_TEXTS = {
    "high": "Situación crítica con impacto severo. Evacuaciones y riesgos significativos.",
    "medium": "Impacto moderado, riesgos sanitarios localizados. Mantente informado.",
    "low": "Situación controlada, impacto menor.",
}


def highest_risk(events: Sequence[Event]) -> str:
    highest = "low"
    for event in events:
        if RISK_ORDER[event.public_health_risk] > RISK_ORDER[highest]:
            highest = event.public_health_risk
    return highest


def summarize(events: Sequence[Event]) -> dict:
    risk_level = highest_risk(events)
    return {
        "risk_level": risk_level,
        "summary": SUMMARY_TEXTS[risk_level],
        "total_events": len(events),
        "critical_alerts": sum(1 for e in events if e.public_health_risk == "high"),
    }


def compute_stats(events: Sequence[Event], *, include_topics: bool = True) -> dict:
    by_type = Counter(e.source_type for e in events)
    by_risk = Counter(e.public_health_risk for e in events)
    stats = {
        "total": len(events),
        "by_type": {t: by_type.get(t, 0) for t in SOURCE_TYPES},
        "by_risk": {r: by_risk.get(r, 0) for r in reversed(RISK_LEVELS)},
    }
    if include_topics:
        by_topic = Counter(e.topic for e in events)
        stats["by_topic"] = dict(sorted(by_topic.items()))
    return stats


class QueryService:
    def __init__(self, pipeline: AggregationPipeline) -> None:
        self.pipeline = pipeline

    async def events(self) -> list[dict]:
        return [e.to_dict() for e in await self.pipeline.events()]

    async def summary(self) -> dict:
        return summarize(await self.pipeline.events())

    async def stats(self, *, include_topics: bool = True) -> dict:
        return compute_stats(await self.pipeline.events(), include_topics=include_topics)
