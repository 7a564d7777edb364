from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

import httpx

from ingest.adapters import SourceAdapter
from normalize.models import Event, RawRecord
from normalize.normalize import InvalidRecordError, normalize_record
from store.cache import TTLCache

log = logging.getLogger(__name__)

EVENTS_CACHE_KEY = "emergency_events"


def merge_events(
    batches: list[list[RawRecord]],
    *,
    headline_max_length: int,
    max_events: int | None = None,
) -> tuple[Event, ...]:
    """Normalize adapter batches into one list, newest first.

    Ties keep batch order because ``sorted`` is stable under ``reverse``.
    """
    events: list[Event] = []
    seen_ids: set[str] = set()
    for batch in batches:
        for record in batch:
            try:
                event = normalize_record(record, headline_max_length=headline_max_length)
            except InvalidRecordError as e:
                log.warning("dropping record: %s", e)
                continue

            if event.id in seen_ids:
                suffix = 2
                while f"{event.id}-{suffix}" in seen_ids:
                    suffix += 1
                event = replace(event, id=f"{event.id}-{suffix}")
            seen_ids.add(event.id)
            events.append(event)

    events = sorted(events, key=lambda e: e.timestamp, reverse=True)
    if max_events is not None:
        events = events[:max_events]
    return tuple(events)


class AggregationPipeline:
    def __init__(
        self,
        adapters: list[SourceAdapter],
        *,
        client: httpx.AsyncClient,
        cache: TTLCache,
        headline_max_length: int = 50,
        max_events: int | None = None,
        adapter_timeout_seconds: float | None = 20.0,
    ) -> None:
        self.adapters = adapters
        self.client = client
        self.cache = cache
        self.headline_max_length = headline_max_length
        self.max_events = max_events
        self.adapter_timeout_seconds = adapter_timeout_seconds

    async def events(self) -> tuple[Event, ...]:
        cached = self.cache.get(EVENTS_CACHE_KEY)
        if cached is not None:
            return cached

        batches = await asyncio.gather(
            *(self._fetch_adapter(adapter) for adapter in self.adapters)
        )
        events = merge_events(
            list(batches),
            headline_max_length=self.headline_max_length,
            max_events=self.max_events,
        )
        log.info(
            "aggregated %d events from %d sources", len(events), len(self.adapters)
        )
        self.cache.set(EVENTS_CACHE_KEY, events)
        return events

    async def _fetch_adapter(self, adapter: SourceAdapter) -> list[RawRecord]:
        try:
            return await asyncio.wait_for(
                adapter.fetch(self.client), timeout=self.adapter_timeout_seconds
            )
        except asyncio.TimeoutError:
            log.warning(
                "%s: no answer within %.1fs", adapter.name, self.adapter_timeout_seconds
            )
            adapter.health.record_fetch_error(
                adapter.name, status_code=None, error="deadline_exceeded"
            )
        except Exception:
            log.exception("%s: adapter failed", adapter.name)
            adapter.health.record_fetch_error(
                adapter.name, status_code=None, error="adapter_error"
            )
        return []
