from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.settings import Settings
from app.views import QueryService
from health.health import HealthRegistry
from ingest.adapters import (
    NewsApiAdapter,
    OfficialMockAdapter,
    RssAdapter,
    SourceAdapter,
    TwitterAdapter,
)
from ingest.pipeline import AggregationPipeline
from store.cache import TTLCache

log = logging.getLogger(__name__)

SERVICE_MESSAGE = "Backend MonSON en línea"


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")


def default_adapters(settings: Settings, health: HealthRegistry) -> list[SourceAdapter]:
    # Merge order is the tie-break order for events with equal timestamps.
    return [
        OfficialMockAdapter(health=health),
        TwitterAdapter(
            bearer_token=settings.twitter_bearer_token,
            user_agent=settings.user_agent,
            health=health,
        ),
        NewsApiAdapter(
            api_key=settings.news_api_key,
            user_agent=settings.user_agent,
            health=health,
        ),
        RssAdapter.from_feeds_dir(
            settings.feeds_dir, user_agent=settings.user_agent, health=health
        ),
    ]


def create_app(
    settings: Settings | None = None,
    *,
    adapters: list[SourceAdapter] | None = None,
    health: HealthRegistry | None = None,
    cache: TTLCache | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_settings = settings or Settings()
        registry = health or HealthRegistry()
        sources = (
            adapters if adapters is not None else default_adapters(app_settings, registry)
        )
        async with httpx.AsyncClient(follow_redirects=True) as client:
            pipeline = AggregationPipeline(
                sources,
                client=client,
                cache=cache or TTLCache(app_settings.cache_ttl_seconds),
                headline_max_length=app_settings.headline_max_length,
                max_events=app_settings.max_events,
                adapter_timeout_seconds=app_settings.adapter_timeout_seconds,
            )
            app.state.settings = app_settings
            app.state.health = registry
            app.state.queries = QueryService(pipeline)
            log.info(
                "serving %d sources: %s",
                len(sources),
                ", ".join(a.name for a in sources),
            )
            yield

    app = FastAPI(title="MonSON", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/api/events")
    async def api_events(request: Request) -> JSONResponse:
        queries: QueryService = request.app.state.queries
        try:
            events = await queries.events()
        except Exception:
            log.exception("failed to build events")
            return JSONResponse({"error": "Error al obtener eventos"}, status_code=500)
        return JSONResponse(events)

    @app.get("/api/summary")
    async def api_summary(request: Request) -> JSONResponse:
        queries: QueryService = request.app.state.queries
        try:
            summary = await queries.summary()
        except Exception:
            log.exception("failed to build summary")
            return JSONResponse({"error": "Error al generar resumen"}, status_code=500)
        return JSONResponse(summary)

    @app.get("/api/stats")
    async def api_stats(request: Request, topics: bool = True) -> JSONResponse:
        queries: QueryService = request.app.state.queries
        try:
            stats = await queries.stats(include_topics=topics)
        except Exception:
            log.exception("failed to build stats")
            return JSONResponse(
                {"error": "Error al generar estadísticas"}, status_code=500
            )
        return JSONResponse(stats)

    @app.get("/api/health")
    async def api_health(request: Request) -> JSONResponse:
        app_settings: Settings = request.app.state.settings
        registry: HealthRegistry = request.app.state.health
        return JSONResponse(
            {
                "status": "ok",
                "message": SERVICE_MESSAGE,
                "timestamp": _utc_now_iso(),
                "environment": app_settings.environment,
                "sources": registry.snapshot(),
            }
        )

    @app.get("/")
    async def index() -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "message": SERVICE_MESSAGE,
                "endpoints": {
                    "events": "/api/events",
                    "summary": "/api/summary",
                    "stats": "/api/stats",
                    "health": "/api/health",
                },
            }
        )

    return app


app = create_app()


def run() -> None:
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    log.info("starting server on port %d", settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
