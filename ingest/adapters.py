from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import httpx

from geo.places import extract_place
from health.health import HealthRegistry
from ingest.feed_packs import FeedPackEntry, enabled_feeds
from ingest.fetch import fetch
from ingest.parsers.rss import parse_rss
from normalize.models import Location, RawRecord

log = logging.getLogger(__name__)

TWITTER_SEARCH_URL = "https://api.twitter.com/2/tweets/search/recent"
NEWSAPI_EVERYTHING_URL = "https://newsapi.org/v2/everything"

OFFICIAL_TWITTER_ACCOUNTS = {
    "pc_sonora": "PC_Sonora",
    "clima_sonora": "ClimaSonora",
    "gobierno_sonora": "GobiernoSonora",
}

NEWS_KEYWORDS = (
    "emergencia",
    "lluvias",
    "inundación",
    "incendio",
    "sismo",
    "evacuación",
    "accidente",
    "protección civil",
)
NEWS_REGION_TERMS = ("Hermosillo", "Sonora")


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _short_digest(*parts: str) -> str:
    return hashlib.sha1("\n".join(parts).encode("utf-8")).hexdigest()[:16]


def _optional_str(value: object, field: str) -> str | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise TypeError(f"{field} must be a string, got {type(value).__name__}")
    return value


def build_twitter_query(accounts: list[str]) -> str:
    return " OR ".join(f"from:{account}" for account in accounts)


def build_news_query() -> str:
    keywords = " OR ".join(
        f'"{k}"' if " " in k else k for k in NEWS_KEYWORDS
    )
    region = " OR ".join(NEWS_REGION_TERMS)
    return f"({region}) AND ({keywords})"


class SourceAdapter(ABC):
    """Fetches raw records from one external source.

    ``fetch`` never raises for source-side problems: missing credentials,
    transport errors, non-2xx answers and malformed payloads are logged,
    recorded in the health registry and reported as an empty list.
    """

    name: str = ""
    source_type: str = ""

    def __init__(
        self, *, user_agent: str = "monson/0.1", health: HealthRegistry | None = None
    ) -> None:
        self.user_agent = user_agent
        self.health = health if health is not None else HealthRegistry()

    @abstractmethod
    async def fetch(self, client: httpx.AsyncClient) -> list[RawRecord]:
        ...

    async def _get(
        self,
        client: httpx.AsyncClient,
        *,
        source: str,
        url: str,
        params: dict[str, str | int] | None = None,
        extra_headers: dict[str, str] | None = None,
    ) -> tuple[int, bytes] | None:
        try:
            status_code, content, elapsed_ms = await fetch(
                client,
                url=url,
                user_agent=self.user_agent,
                params=params,
                extra_headers=extra_headers,
            )
        except httpx.TimeoutException:
            log.warning("%s: request timed out", source)
            self.health.record_fetch_error(source, status_code=None, error="timeout")
            return None
        except httpx.RequestError as e:
            log.warning("%s: request failed: %s", source, e.__class__.__name__)
            self.health.record_fetch_error(
                source,
                status_code=None,
                error=f"request_error:{e.__class__.__name__}",
            )
            return None

        if content is None:
            log.warning("%s: HTTP %d", source, status_code)
            self.health.record_fetch_error(
                source, status_code=status_code, error=f"http_{status_code}"
            )
            return None

        log.debug("%s: HTTP %d in %d ms", source, status_code, elapsed_ms)
        return (status_code, content)

    def _parse_failed(self, source: str, status_code: int, exc: Exception) -> None:
        log.warning("%s: malformed payload: %r", source, exc)
        self.health.record_fetch_error(
            source, status_code=status_code, error=f"parse_error:{exc.__class__.__name__}"
        )


class OfficialMockAdapter(SourceAdapter):
    """Stand-in for the state civil-protection feed until a real API exists."""

    name = "official"
    source_type = "official"

    def __init__(
        self,
        *,
        now: Callable[[], datetime] = _utc_now,
        health: HealthRegistry | None = None,
    ) -> None:
        super().__init__(health=health)
        self._now = now

    def records(self) -> list[RawRecord]:
        now = self._now()
        return [
            RawRecord(
                source_type="official",
                source_name="Protección Civil Sonora",
                external_id="pc_001",
                published=now.isoformat(),
                title="Alerta por lluvias intensas en el norte de Sonora",
                body=(
                    "Se emite alerta por lluvias intensas en los municipios del norte "
                    "de Sonora. Se recomienda precaución."
                ),
                url="https://sonora.gob.mx",
                topic="floods",
                risk="high",
                change_flag=True,
                location=Location(area="Norte de Sonora", lat=29.1056, lng=-110.9428),
            ),
            RawRecord(
                source_type="official",
                source_name="Servicio Meteorológico Sonora",
                external_id="clima_001",
                published=(now - timedelta(hours=2)).isoformat(),
                title="Pronóstico de temperaturas elevadas para el fin de semana",
                body=(
                    "Se esperan temperaturas superiores a los 40°C en el sur del "
                    "estado durante el fin de semana."
                ),
                url="https://sonora.gob.mx",
                topic="health",
                risk="medium",
                change_flag=False,
                location=Location(area="Sur de Sonora", lat=28.389, lng=-109.5),
            ),
        ]

    async def fetch(self, client: httpx.AsyncClient) -> list[RawRecord]:
        records = self.records()
        self.health.record_fetch_success(
            self.name, status_code=None, record_count=len(records)
        )
        return records


class TwitterAdapter(SourceAdapter):
    name = "twitter"
    source_type = "social"

    def __init__(
        self,
        *,
        bearer_token: str | None,
        accounts: list[str] | None = None,
        max_results: int = 20,
        user_agent: str = "monson/0.1",
        health: HealthRegistry | None = None,
    ) -> None:
        super().__init__(user_agent=user_agent, health=health)
        self.bearer_token = bearer_token
        self.accounts = accounts or list(OFFICIAL_TWITTER_ACCOUNTS.values())
        self.max_results = max_results

    async def fetch(self, client: httpx.AsyncClient) -> list[RawRecord]:
        if not self.bearer_token:
            log.warning("Twitter bearer token not configured; skipping Twitter data")
            return []

        result = await self._get(
            client,
            source=self.name,
            url=TWITTER_SEARCH_URL,
            params={
                "query": build_twitter_query(self.accounts),
                "max_results": self.max_results,
                "tweet.fields": "created_at,author_id,text",
                "expansions": "author_id",
                "user.fields": "username",
            },
            extra_headers={"Authorization": f"Bearer {self.bearer_token}"},
        )
        if result is None:
            return []
        status_code, content = result

        try:
            doc = json.loads(content)
            records = self._to_records(doc)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            self._parse_failed(self.name, status_code, e)
            return []

        self.health.record_fetch_success(
            self.name, status_code=status_code, record_count=len(records)
        )
        return records

    def _to_records(self, doc: dict) -> list[RawRecord]:
        usernames = {
            str(user["id"]): str(user["username"])
            for user in (doc.get("includes") or {}).get("users") or []
        }
        records: list[RawRecord] = []
        for tweet in doc.get("data") or []:
            tweet_id = str(tweet["id"])
            text = str(tweet["text"])
            author_id = str(tweet.get("author_id") or "")
            handle = usernames.get(author_id) or author_id
            records.append(
                RawRecord(
                    source_type="social",
                    source_name=f"Twitter/@{handle}",
                    external_id=tweet_id,
                    published=_optional_str(tweet.get("created_at"), "created_at"),
                    title=text,
                    body=text,
                    url=f"https://twitter.com/{handle}/status/{tweet_id}",
                )
            )
        return records


class NewsApiAdapter(SourceAdapter):
    name = "newsapi"
    source_type = "news"

    def __init__(
        self,
        *,
        api_key: str | None,
        page_size: int = 20,
        user_agent: str = "monson/0.1",
        health: HealthRegistry | None = None,
    ) -> None:
        super().__init__(user_agent=user_agent, health=health)
        self.api_key = api_key
        self.page_size = page_size

    async def fetch(self, client: httpx.AsyncClient) -> list[RawRecord]:
        if not self.api_key:
            log.warning("NewsAPI key not configured; skipping news articles")
            return []

        result = await self._get(
            client,
            source=self.name,
            url=NEWSAPI_EVERYTHING_URL,
            params={
                "q": build_news_query(),
                "language": "es",
                "sortBy": "publishedAt",
                "pageSize": self.page_size,
            },
            extra_headers={"X-Api-Key": self.api_key},
        )
        if result is None:
            return []
        status_code, content = result

        try:
            doc = json.loads(content)
            if doc.get("status") not in (None, "ok"):
                raise ValueError(f"newsapi status {doc.get('status')}: {doc.get('code')}")
            records = self._to_records(doc)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            self._parse_failed(self.name, status_code, e)
            return []

        self.health.record_fetch_success(
            self.name, status_code=status_code, record_count=len(records)
        )
        return records

    def _to_records(self, doc: dict) -> list[RawRecord]:
        records: list[RawRecord] = []
        for index, article in enumerate(doc.get("articles") or []):
            url = _optional_str(article.get("url"), "url")
            title = str(article.get("title") or "")
            source_name = str((article.get("source") or {}).get("name") or "NewsAPI")
            external_id = _short_digest(url) if url else _short_digest(title, str(index))
            records.append(
                RawRecord(
                    source_type="news",
                    source_name=source_name,
                    external_id=external_id,
                    published=_optional_str(article.get("publishedAt"), "publishedAt"),
                    title=title,
                    body=str(article.get("description") or ""),
                    url=url,
                )
            )
        return records


class RssAdapter(SourceAdapter):
    """Reads every enabled feed of the configured feed packs.

    Feeds are fetched concurrently and each one fails on its own.
    """

    name = "rss"
    source_type = "syndication"

    def __init__(
        self,
        *,
        feeds: list[FeedPackEntry],
        user_agent: str = "monson/0.1",
        health: HealthRegistry | None = None,
    ) -> None:
        super().__init__(user_agent=user_agent, health=health)
        self.feeds = feeds

    @classmethod
    def from_feeds_dir(
        cls,
        feeds_dir: Path,
        *,
        user_agent: str = "monson/0.1",
        health: HealthRegistry | None = None,
    ) -> RssAdapter:
        return cls(feeds=enabled_feeds(feeds_dir), user_agent=user_agent, health=health)

    async def fetch(self, client: httpx.AsyncClient) -> list[RawRecord]:
        results = await asyncio.gather(
            *(self._fetch_feed(client, feed) for feed in self.feeds)
        )
        return [record for records in results for record in records]

    async def _fetch_feed(
        self, client: httpx.AsyncClient, feed: FeedPackEntry
    ) -> list[RawRecord]:
        source = f"{self.name}:{feed.feed_id}"
        result = await self._get(client, source=source, url=feed.url)
        if result is None:
            return []
        status_code, content = result

        try:
            entries = parse_rss(content)
            records = [self._to_record(feed, entry) for entry in entries]
        except (ValueError, KeyError, TypeError) as e:
            self._parse_failed(source, status_code, e)
            return []

        self.health.record_fetch_success(
            source, status_code=status_code, record_count=len(records)
        )
        return records

    def _to_record(self, feed: FeedPackEntry, entry: dict) -> RawRecord:
        entry_id = str(entry.get("id") or entry.get("link") or entry.get("title") or "")
        location = None
        point = entry.get("point")
        if point is not None:
            text = f"{entry.get('title') or ''} {entry.get('summary') or ''}"
            location = Location(area=extract_place(text), lat=point[0], lng=point[1])
        return RawRecord(
            source_type="syndication",
            source_name=feed.name,
            external_id=_short_digest(feed.feed_id, entry_id),
            published=_optional_str(
                entry.get("published") or entry.get("updated"), "published"
            ),
            title=str(entry.get("title") or ""),
            body=str(entry.get("summary") or entry.get("content") or ""),
            url=_optional_str(entry.get("link"), "link"),
            location=location,
        )
