import asyncio
from datetime import UTC, datetime
from pathlib import Path

import httpx

from health.health import HealthRegistry
from ingest.adapters import (
    NewsApiAdapter,
    OfficialMockAdapter,
    RssAdapter,
    TwitterAdapter,
    build_twitter_query,
)
from ingest.feed_packs import FeedPackEntry
from ingest.fetch import fetch


FIXTURES = Path(__file__).resolve().parent / "fixtures"


def _run(adapter, handler) -> list:
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await adapter.fetch(client)

    return asyncio.run(go())


def _fail_if_called(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


def _feed(feed_id: str, url: str) -> FeedPackEntry:
    return FeedPackEntry(
        feed_id=feed_id,
        name=f"Feed {feed_id}",
        url=url,
        enabled=True,
    )


def test_official_mock_is_deterministic_for_a_clock() -> None:
    now = datetime(2024, 7, 15, 18, 0, tzinfo=UTC)
    adapter = OfficialMockAdapter(now=lambda: now)
    records = _run(adapter, _fail_if_called)
    assert [r.external_id for r in records] == ["pc_001", "clima_001"]
    assert records[0].risk == "high"
    assert records[0].change_flag is True
    assert records[1].published == "2024-07-15T16:00:00+00:00"
    assert records == _run(adapter, _fail_if_called)


def test_twitter_without_token_skips_network() -> None:
    health = HealthRegistry()
    adapter = TwitterAdapter(bearer_token=None, health=health)
    assert _run(adapter, _fail_if_called) == []
    assert health.get("twitter") is None


def test_twitter_maps_tweets_and_usernames() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "data": [
                    {
                        "id": "17",
                        "text": "Alerta por viento en Nogales",
                        "author_id": "99",
                        "created_at": "2024-07-15T18:00:00.000Z",
                    }
                ],
                "includes": {"users": [{"id": "99", "username": "PC_Sonora"}]},
            },
        )

    health = HealthRegistry()
    records = _run(TwitterAdapter(bearer_token="secret", health=health), handler)

    assert seen[0].headers["Authorization"] == "Bearer secret"
    assert seen[0].url.params["query"] == (
        "from:PC_Sonora OR from:ClimaSonora OR from:GobiernoSonora"
    )
    assert len(records) == 1
    assert records[0].source_name == "Twitter/@PC_Sonora"
    assert records[0].url == "https://twitter.com/PC_Sonora/status/17"
    assert records[0].source_type == "social"
    assert health.get("twitter").last_record_count == 1


def test_twitter_http_error_is_empty() -> None:
    health = HealthRegistry()
    adapter = TwitterAdapter(bearer_token="secret", health=health)
    records = _run(adapter, lambda request: httpx.Response(401, json={"title": "Unauthorized"}))
    assert records == []
    assert health.get("twitter").last_error == "http_401"
    assert health.get("twitter").consecutive_failures == 1


def test_twitter_network_error_is_empty() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    health = HealthRegistry()
    assert _run(TwitterAdapter(bearer_token="secret", health=health), handler) == []
    assert health.get("twitter").last_error == "request_error:ConnectError"


def test_twitter_timeout_is_empty() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    health = HealthRegistry()
    assert _run(TwitterAdapter(bearer_token="secret", health=health), handler) == []
    assert health.get("twitter").last_error == "timeout"


def test_twitter_malformed_payload_is_empty() -> None:
    health = HealthRegistry()
    adapter = TwitterAdapter(bearer_token="secret", health=health)
    records = _run(adapter, lambda request: httpx.Response(200, content=b"not json"))
    assert records == []
    assert health.get("twitter").last_error.startswith("parse_error:")


def test_news_without_key_skips_network() -> None:
    assert _run(NewsApiAdapter(api_key=""), _fail_if_called) == []


def test_news_maps_articles() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["X-Api-Key"] == "k"
        assert request.url.params["language"] == "es"
        return httpx.Response(
            200,
            json={
                "status": "ok",
                "articles": [
                    {
                        "source": {"name": "El Imparcial"},
                        "title": "Incendio en Caborca",
                        "description": "Bomberos controlan el fuego.",
                        "url": "https://example.mx/incendio",
                        "publishedAt": "2024-07-15T17:00:00Z",
                    },
                    {
                        "source": {},
                        "title": "Sin enlace",
                        "description": None,
                        "url": None,
                        "publishedAt": "2024-07-15T16:00:00Z",
                    },
                ],
            },
        )

    records = _run(NewsApiAdapter(api_key="k"), handler)
    assert [r.source_name for r in records] == ["El Imparcial", "NewsAPI"]
    assert records[0].body == "Bomberos controlan el fuego."
    assert records[1].body == ""
    assert records[0].external_id != records[1].external_id
    assert records == _run(NewsApiAdapter(api_key="k"), handler)


def test_news_error_status_is_empty() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "error", "code": "rateLimited"})

    health = HealthRegistry()
    assert _run(NewsApiAdapter(api_key="k", health=health), handler) == []
    assert health.get("newsapi").error_count == 1


def test_rss_feed_failures_are_isolated() -> None:
    data = (FIXTURES / "sonora.rss.xml").read_bytes()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "good.example":
            return httpx.Response(200, content=data)
        if request.url.host == "broken.example":
            return httpx.Response(200, content=b"<html><body>oops")
        return httpx.Response(503)

    health = HealthRegistry()
    adapter = RssAdapter(
        feeds=[
            _feed("broken", "https://broken.example/rss"),
            _feed("good", "https://good.example/rss"),
            _feed("down", "https://down.example/rss"),
        ],
        health=health,
    )
    records = _run(adapter, handler)

    assert len(records) == 2
    assert {r.source_name for r in records} == {"Feed good"}
    assert all(r.source_type == "syndication" for r in records)
    assert health.get("rss:good").success_count == 1
    assert health.get("rss:broken").error_count == 1
    assert health.get("rss:down").last_error == "http_503"


def test_rss_ids_differ_across_feeds() -> None:
    data = (FIXTURES / "sonora.rss.xml").read_bytes()
    adapter = RssAdapter(
        feeds=[_feed("a", "https://a.example/rss"), _feed("b", "https://b.example/rss")]
    )
    records = _run(adapter, lambda request: httpx.Response(200, content=data))
    assert len({r.external_id for r in records}) == 4


def test_twitter_query_builder() -> None:
    assert build_twitter_query(["A", "B"]) == "from:A OR from:B"
    assert build_twitter_query([]) == ""


def test_fetch_works_with_mock_transport() -> None:
    async def go():
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"ok"))
        async with httpx.AsyncClient(transport=transport) as client:
            return await fetch(client, url="https://a.example/", user_agent="ua")

    status_code, content, elapsed_ms = asyncio.run(go())
    assert (status_code, content) == (200, b"ok")
    assert elapsed_ms >= 0


def test_news_non_string_published_is_a_parse_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "status": "ok",
                "articles": [
                    {
                        "title": "Incendio en Caborca",
                        "url": "https://example.mx/incendio",
                        "publishedAt": 1721066400,
                    }
                ],
            },
        )

    health = HealthRegistry()
    assert _run(NewsApiAdapter(api_key="k", health=health), handler) == []
    assert health.get("newsapi").last_error == "parse_error:TypeError"


def test_news_non_string_url_is_a_parse_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "status": "ok",
                "articles": [
                    {
                        "title": "Incendio en Caborca",
                        "url": 123,
                        "publishedAt": "2024-07-15T17:00:00Z",
                    }
                ],
            },
        )

    health = HealthRegistry()
    assert _run(NewsApiAdapter(api_key="k", health=health), handler) == []
    assert health.get("newsapi").last_error == "parse_error:TypeError"


def test_twitter_non_string_created_at_is_a_parse_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"data": [{"id": "17", "text": "Alerta", "created_at": 123}]},
        )

    health = HealthRegistry()
    assert _run(TwitterAdapter(bearer_token="secret", health=health), handler) == []
    assert health.get("twitter").last_error == "parse_error:TypeError"
