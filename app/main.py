"""Entry point for the FastAPI-powered content roulette."""

from __future__ import annotations

import logging
import random
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import Settings, settings
from .database import Database
from .models import ContentFilters, ContentItem, parse_media_kind
from .services.cache import ResultCache
from .services.catalog import DEFAULT_SORT, CatalogQueryService
from .services.details import DetailCache, DetailPreloader
from .services.errors import CatalogQueryError, NotFoundError
from .services.fetcher import RetryFetcher
from .services.pool import DrawThrottle, PoolManager
from .services.state import KeyValueStore, UserState
from .services.tmdb import TMDBClient
from .utils import coerce_bool, parse_iso_date

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@dataclass(slots=True)
class Services:
    """Components shared by every request of the single user session."""

    catalog: CatalogQueryService
    state: UserState
    preloader: DetailPreloader
    pools: PoolManager


def build_services(
    config: Settings,
    http_client: httpx.AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    rng: random.Random | None = None,
) -> Services:
    """Wire the fetch, cache, catalog, state and pool layers together."""

    rng = rng or random.Random()
    fetcher = RetryFetcher(
        http_client,
        retries=config.fetch_retries,
        base_delay=config.retry_base_delay,
    )
    catalog = CatalogQueryService(
        TMDBClient(config, fetcher),
        ResultCache(config.cache_ttl_seconds),
        rng=rng,
    )
    state = UserState(
        KeyValueStore(session_factory),
        history_limit=config.history_limit,
        recent_limit=config.recent_ring_size,
    )
    preloader = DetailPreloader(
        catalog, DetailCache(config.cache_ttl_seconds), state=state
    )
    pools = PoolManager(
        catalog,
        state,
        preloader,
        rng=rng,
        throttle=DrawThrottle(config.draw_interval_seconds),
        page_count=config.pool_page_count,
        max_page=config.pool_max_page,
        stagger=config.pool_stagger_seconds,
        low_water=config.pool_low_water,
        regeneration_attempts=config.pool_regeneration_attempts,
        preload_count=config.pool_preload_count,
    )
    return Services(catalog=catalog, state=state, preloader=preloader, pools=pools)


@asynccontextmanager
async def lifespan(_: FastAPI):
    exit_stack = AsyncExitStack()
    http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    if not settings.tmdb_api_key:
        logger.warning("TMDB_API_KEY is not configured; catalog queries will fail")

    services = build_services(settings, http_client, database.session_factory)
    await services.state.load()
    services.preloader.cache.load_blob(services.state.detail_cache)

    app.state.services = services
    app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await services.preloader.aclose()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Endless no-repeat movie and series roulette powered by TMDB",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_services(app: FastAPI) -> Services:
    services = getattr(app.state, "services", None)
    if not isinstance(services, Services):
        raise RuntimeError("Services not initialised")
    return services


def _error(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def _items_payload(items: list[ContentItem]) -> dict[str, Any]:
    return {"success": True, "results": [item.to_payload() for item in items]}


def _optional_int(params: Mapping[str, str], name: str) -> int | None:
    raw = params.get(name)
    if raw is None or raw.strip() in {"", "all"}:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc


async def _read_item(request: Request) -> ContentItem:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid payload") from exc
    try:
        return ContentItem.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc


def _pool_filters(params: Mapping[str, str]) -> ContentFilters:
    return ContentFilters(
        genre=params.get("genre"),
        year=params.get("year"),
        min_rating=params.get("rating"),
        actor=params.get("actor"),
    )


def register_routes(fastapi_app: FastAPI) -> None:
    async def _dispatch_content(params: Mapping[str, str]) -> JSONResponse:
        services = get_services(fastapi_app)
        catalog = services.catalog
        kind = parse_media_kind(params.get("type"))

        if coerce_bool(params.get("coming_soon")):
            entry = await catalog.coming_soon(kind)
            return JSONResponse(_items_payload(entry.items))

        if coerce_bool(params.get("leaving_soon")):
            entry = await catalog.leaving_soon(kind)
            return JSONResponse(_items_payload(entry.items))

        date_range = params.get("date_range")
        if date_range:
            start_raw, _, end_raw = date_range.partition(",")
            start = parse_iso_date(start_raw)
            end = parse_iso_date(end_raw)
            entry = await catalog.by_date_range(kind, start, end)
            return JSONResponse(_items_payload(entry.items))

        actor = (params.get("actor") or "").strip()
        if actor:
            try:
                results = await catalog.search_by_actor(actor, kind)
            except NotFoundError as exc:
                return JSONResponse({"success": False, "error": str(exc)})
            payload = _items_payload(results.items)
            payload["actorName"] = results.actor_name
            return JSONResponse(payload)

        query = (params.get("search") or "").strip()
        if query:
            return JSONResponse(
                _items_payload(await catalog.search_by_title(query, kind))
            )

        content_id = _optional_int(params, "id")
        if content_id is not None:
            item = await catalog.get_details(content_id, kind)
            return JSONResponse({"success": True, "result": item.to_payload()})

        if coerce_bool(params.get("new_releases")):
            entry = await catalog.new_releases(
                kind, _optional_int(params, "year"), _optional_int(params, "month")
            )
            return JSONResponse(_items_payload(entry.items))

        filters = ContentFilters(
            genre=params.get("genre"),
            year=params.get("year"),
            min_rating=params.get("rating"),
        )
        page = _optional_int(params, "page") or 1
        limit = _optional_int(params, "limit")
        sort_by = params.get("sort_by") or DEFAULT_SORT
        entry = await catalog.discover(kind, filters, page=page, sort_by=sort_by)
        items = entry.items[:limit] if limit else entry.items
        return JSONResponse(
            {
                "success": True,
                "results": [item.to_payload() for item in items],
                "total": entry.total_count,
                "page": page,
                "hasMore": page < entry.total_pages,
            }
        )

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/content")
    async def content(request: Request) -> JSONResponse:
        try:
            return await _dispatch_content(request.query_params)
        except CatalogQueryError as exc:
            return _error(str(exc))
        except ValueError as exc:
            return _error(str(exc), status_code=400)

    @fastapi_app.post("/roulette/draw")
    async def draw(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        params = request.query_params
        try:
            kind = parse_media_kind(params.get("type"))
            filters = _pool_filters(params)
        except ValueError as exc:
            return _error(str(exc), status_code=400)
        outcome = await services.pools.draw(kind, filters)
        return JSONResponse(outcome.to_payload())

    @fastapi_app.post("/roulette/reset")
    async def reset() -> dict[str, bool]:
        await get_services(fastapi_app).pools.reset()
        return {"success": True}

    @fastapi_app.get("/library")
    async def library() -> dict[str, Any]:
        state = get_services(fastapi_app).state
        return {
            "success": True,
            "favorites": [item.to_payload() for item in state.favorites],
            "watched": [item.to_payload() for item in state.watched],
            "history": [item.to_payload() for item in state.history],
            "ratings": {str(key): value for key, value in state.ratings.items()},
            "muted": state.muted,
            "seenCount": len(state.seen_ids),
        }

    @fastapi_app.post("/library/favorites")
    async def toggle_favorite(request: Request) -> dict[str, Any]:
        item = await _read_item(request)
        added = await get_services(fastapi_app).state.toggle_favorite(item)
        return {"success": True, "favorite": added}

    @fastapi_app.post("/library/watched")
    async def toggle_watched(request: Request) -> dict[str, Any]:
        item = await _read_item(request)
        added = await get_services(fastapi_app).state.toggle_watched(item)
        return {"success": True, "watched": added}

    @fastapi_app.post("/library/history")
    async def record_history(request: Request) -> dict[str, Any]:
        item = await _read_item(request)
        await get_services(fastapi_app).state.record_open(item)
        return {"success": True, "url": item.external_watch_url}

    @fastapi_app.put("/library/ratings/{content_id}")
    async def rate(content_id: int, request: Request) -> dict[str, Any]:
        try:
            payload = await request.json()
            rating = int(payload["rating"])
        except (ValueError, KeyError, TypeError) as exc:
            raise HTTPException(status_code=400, detail="rating must be an integer") from exc
        if not 1 <= rating <= 5:
            raise HTTPException(status_code=400, detail="rating must be between 1 and 5")
        await get_services(fastapi_app).state.set_rating(content_id, rating)
        return {"success": True, "rating": rating}

    @fastapi_app.put("/library/muted")
    async def set_muted(request: Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid payload") from exc
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")
        muted = coerce_bool(payload.get("muted"))
        await get_services(fastapi_app).state.set_muted(muted)
        return {"success": True, "muted": muted}


app = create_app()
