"""HTTP route tests using stubbed services."""

from __future__ import annotations

from typing import Any, cast

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.main import Services, register_routes
from app.models import ContentFilters, ContentItem, ContentPage
from app.services.cache import CacheEntry
from app.services.catalog import ActorResults, CatalogQueryService
from app.services.details import DetailPreloader
from app.services.errors import CatalogQueryError, NotFoundError
from app.services.pool import DrawOutcome, PoolManager
from app.services.state import KeyValueStore, UserState


class MemoryStore:
    def __init__(self) -> None:
        self.values: dict[str, Any] = {}

    async def load_all(self) -> dict[str, Any]:
        return dict(self.values)

    async def set(self, key: str, value: Any) -> None:
        self.values[key] = value


def _item(content_id: int, title: str = "Inception") -> ContentItem:
    return ContentItem(
        id=content_id,
        title=title,
        external_watch_url=f"https://www.netflix.com/search?q={title}",
    )


def _entry(*items: ContentItem, total_pages: int = 1) -> CacheEntry:
    return CacheEntry(
        page=ContentPage(items=list(items), total_pages=total_pages, total_count=42),
        fetched_at=0.0,
    )


class StubCatalog:
    """Records which catalog operation each request dispatched to."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, Any]] = []

    async def discover(self, kind, filters=None, page=1, sort_by="popularity.desc"):
        self.calls.append(("discover", (kind, filters, page, sort_by)))
        if self.fail:
            raise CatalogQueryError("content discovery", "HTTP 500: Internal Server Error")
        return _entry(_item(1), _item(2, "Heat"), total_pages=3)

    async def coming_soon(self, kind):
        self.calls.append(("coming_soon", kind))
        return _entry(_item(3))

    async def leaving_soon(self, kind):
        self.calls.append(("leaving_soon", kind))
        return _entry(_item(4))

    async def by_date_range(self, kind, start, end):
        self.calls.append(("date_range", (start.isoformat(), end.isoformat())))
        return _entry(_item(5))

    async def search_by_actor(self, name, kind, page=1):
        self.calls.append(("actor", name))
        if name == "Nobody":
            raise NotFoundError("actor not found")
        return ActorResults(items=[_item(6)], actor_id=9, actor_name="Keanu Reeves")

    async def search_by_title(self, query, kind):
        self.calls.append(("search", query))
        return [_item(7)]

    async def get_details(self, content_id, kind):
        self.calls.append(("details", content_id))
        return _item(content_id)

    async def new_releases(self, kind, year=None, month=None):
        self.calls.append(("new_releases", (year, month)))
        return _entry(_item(8))


class StubPools:
    def __init__(self) -> None:
        self.draws: list[tuple[str, ContentFilters]] = []
        self.resets = 0

    async def draw(self, kind, filters):
        self.draws.append((kind, filters))
        return DrawOutcome("selected", item=_item(11, "Drawn"))

    async def reset(self) -> None:
        self.resets += 1


def _app(catalog: StubCatalog | None = None) -> tuple[FastAPI, StubCatalog, StubPools, UserState]:
    catalog = catalog or StubCatalog()
    pools = StubPools()
    state = UserState(cast(KeyValueStore, MemoryStore()))
    app = FastAPI()
    register_routes(app)
    app.state.services = Services(
        catalog=cast(CatalogQueryService, catalog),
        state=state,
        preloader=cast(DetailPreloader, object()),
        pools=cast(PoolManager, pools),
    )
    return app, catalog, pools, state


def test_discovery_is_the_default_content_query() -> None:
    app, catalog, _, _ = _app()

    with TestClient(app) as client:
        response = client.get(
            "/content", params={"type": "tv", "genre": "drama", "page": 2, "limit": 1}
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert [item["id"] for item in payload["results"]] == [1]
    assert payload["total"] == 42
    assert payload["page"] == 2
    assert payload["hasMore"] is True
    name, (kind, filters, page, _) = catalog.calls[0]
    assert (name, kind, filters.genre, page) == ("discover", "series", "drama", 2)


def test_dispatch_order_prefers_windowed_queries() -> None:
    app, catalog, _, _ = _app()

    with TestClient(app) as client:
        client.get("/content", params={"coming_soon": "true", "actor": "Keanu"})
        client.get("/content", params={"leaving_soon": "1", "search": "heat"})
        client.get("/content", params={"date_range": "2024-01-01,2024-02-01", "id": 3})
        client.get("/content", params={"actor": "Keanu", "search": "heat"})
        client.get("/content", params={"search": "heat", "id": 3})
        client.get("/content", params={"id": 3, "new_releases": "true"})
        client.get("/content", params={"new_releases": "true", "year": 2024, "month": 5})

    assert [name for name, _ in catalog.calls] == [
        "coming_soon",
        "leaving_soon",
        "date_range",
        "actor",
        "search",
        "details",
        "new_releases",
    ]
    assert catalog.calls[2][1] == ("2024-01-01", "2024-02-01")
    assert catalog.calls[-1][1] == (2024, 5)


def test_unknown_actor_is_reported_without_server_error() -> None:
    app, _, _, _ = _app()

    with TestClient(app) as client:
        response = client.get("/content", params={"actor": "Nobody"})

    assert response.status_code == 200
    assert response.json() == {"success": False, "error": "actor not found"}


def test_actor_results_include_resolved_name() -> None:
    app, _, _, _ = _app()

    with TestClient(app) as client:
        response = client.get("/content", params={"actor": "keanu"})

    payload = response.json()
    assert payload["actorName"] == "Keanu Reeves"
    assert [item["id"] for item in payload["results"]] == [6]


def test_catalog_failures_use_error_envelope() -> None:
    app, _, _, _ = _app(StubCatalog(fail=True))

    with TestClient(app) as client:
        response = client.get("/content")

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "content discovery failed: HTTP 500: Internal Server Error",
    }


def test_invalid_parameters_are_rejected() -> None:
    app, _, _, _ = _app()

    with TestClient(app) as client:
        bad_type = client.get("/content", params={"type": "music"})
        bad_range = client.get("/content", params={"date_range": "yesterday,today"})

    assert bad_type.status_code == 400
    assert bad_range.status_code == 400
    assert bad_range.json()["success"] is False


def test_draw_and_reset_routes() -> None:
    app, _, pools, _ = _app()

    with TestClient(app) as client:
        drawn = client.post(
            "/roulette/draw", params={"type": "movie", "genre": "action", "rating": "7.5"}
        )
        reset = client.post("/roulette/reset")

    assert drawn.status_code == 200
    assert drawn.json()["success"] is True
    assert drawn.json()["result"]["id"] == 11
    kind, filters = pools.draws[0]
    assert (kind, filters.genre, filters.min_rating) == ("movie", "action", 7)
    assert reset.json() == {"success": True}
    assert pools.resets == 1


def test_library_routes_update_state() -> None:
    app, _, _, state = _app()
    payload = _item(21, "Dune").to_payload()

    with TestClient(app) as client:
        favorite = client.post("/library/favorites", json=payload)
        opened = client.post("/library/history", json=payload)
        rated = client.put("/library/ratings/21", json={"rating": 5})
        bad_rating = client.put("/library/ratings/21", json={"rating": 9})
        muted = client.put("/library/muted", json={"muted": True})
        invalid = client.post("/library/watched", json={"title": "missing id"})
        library = client.get("/library").json()

    assert favorite.json() == {"success": True, "favorite": True}
    assert opened.json()["url"] == "https://www.netflix.com/search?q=Dune"
    assert rated.json()["rating"] == 5
    assert bad_rating.status_code == 400
    assert muted.json()["muted"] is True
    assert invalid.status_code == 400
    assert [item["id"] for item in library["favorites"]] == [21]
    assert [item["id"] for item in library["history"]] == [21]
    assert library["ratings"] == {"21": 5}
    assert library["muted"] is True
    assert library["seenCount"] == 0
    assert state.ratings == {21: 5}


def test_healthcheck() -> None:
    app, _, _, _ = _app()

    with TestClient(app) as client:
        response = client.get("/healthz")

    assert response.json() == {"status": "ok"}
