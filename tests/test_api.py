import httpx
import pytest

from streamcheck import tmdb
from streamcheck.importer import ImportSession

ALIEN = {"id": 348, "title": "Alien", "release_date": "1979-05-25", "vote_average": 8.2, "popularity": 60.0}
ALIENS = {"id": 679, "title": "Aliens", "release_date": "1986-07-18", "vote_average": 7.9, "popularity": 80.0}
HEAT = {"id": 949, "title": "Heat", "release_date": "1995-12-15", "vote_average": 7.9, "popularity": 40.0}


@pytest.fixture
def upstream(monkeypatch):
    """Replace the TMDB calls the proxy makes and record them."""
    calls: dict[str, list] = {}

    def record(name, *args, **kwargs):
        calls.setdefault(name, []).append((args, kwargs))

    async def search_movie(query, page=1, year=None, language=None, region=None):
        record("search", query, year=year)
        if query == "Alien":
            results = [ALIENS, ALIEN] if year in (None, 1979) else []
        elif query == "Heat":
            results = [HEAT]
        else:
            results = []
        return {"page": page, "results": results, "total_results": len(results)}

    async def get_release_dates(movie_id):
        record("release_dates", movie_id)
        years = {348: "1979-05-25T00:00:00.000Z", 679: "1986-07-18T00:00:00.000Z", 949: "1995-12-15T00:00:00.000Z"}
        return {"id": movie_id, "results": [{"iso_3166_1": "US", "release_dates": [{"release_date": years[movie_id]}]}]}

    async def get_watch_providers(movie_id):
        record("watch_providers", movie_id)
        if movie_id == 949:
            raise httpx.ConnectError("refused")
        return {
            "NO": {"flatrate": [{"provider_id": 8, "provider_name": "Netflix", "logo_path": "/n.jpg"}]},
            "US": {"buy": [{"provider_id": 2, "provider_name": "Apple TV"}]},
        }

    async def get_movie_details(movie_id, language=None):
        record("details", movie_id)
        return {**ALIEN, "runtime": 117, "genres": [{"id": 27, "name": "Horror"}]}

    monkeypatch.setattr(tmdb, "search_movie", search_movie)
    monkeypatch.setattr(tmdb, "get_release_dates", get_release_dates)
    monkeypatch.setattr(tmdb, "get_watch_providers", get_watch_providers)
    monkeypatch.setattr(tmdb, "get_movie_details", get_movie_details)
    return calls


class TestProxy:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.json() == {"status": "ok"}
        assert resp.headers["X-Content-Type-Options"] == "nosniff"

    def test_search_is_cached(self, client, upstream):
        first = client.get("/api/movies/search", params={"q": "Heat"})
        second = client.get("/api/movies/search", params={"q": "Heat"})
        assert first.json() == second.json()
        assert len(upstream["search"]) == 1

    def test_search_requires_query(self, client, upstream):
        assert client.get("/api/movies/search").status_code == 422

    def test_search_sort_by_rating(self, client, upstream):
        data = client.get("/api/movies/search", params={"q": "Alien", "sort": "rating"}).json()
        assert [m["id"] for m in data["results"]] == [348, 679]

    def test_search_sort_by_year(self, client, upstream):
        data = client.get("/api/movies/search", params={"q": "Alien", "sort": "year"}).json()
        assert [m["id"] for m in data["results"]] == [679, 348]

    def test_watch_providers_narrowed_to_region(self, client, upstream):
        data = client.get("/api/movies/348/watch-providers", params={"watch_region": "NO"}).json()
        assert list(data["results"]) == ["NO"]

    def test_upstream_status_error_is_502(self, client, monkeypatch):
        async def failing(movie_id, language=None):
            request = httpx.Request("GET", "https://api.themoviedb.org/3/movie/1")
            raise httpx.HTTPStatusError("boom", request=request, response=httpx.Response(404, request=request))

        monkeypatch.setattr(tmdb, "get_movie_details", failing)
        resp = client.get("/api/movies/1")
        assert resp.status_code == 502
        assert "404" in resp.json()["detail"]

    def test_missing_api_key_is_502(self, client, monkeypatch):
        monkeypatch.delenv("TMDB_API_KEY", raising=False)
        resp = client.get("/api/movies/genres")
        assert resp.status_code == 502

    def test_netflix_resolves_provider_once(self, client, monkeypatch):
        provider_calls = []
        discover_calls = []

        async def get_provider_list(country=None):
            provider_calls.append(country)
            return [{"provider_id": 337, "provider_name": "Disney Plus"}, {"provider_id": 8, "provider_name": "Netflix"}]

        async def discover(params, page=1):
            discover_calls.append((dict(params), page))
            return {"page": page, "results": [HEAT], "total_pages": 1, "total_results": 1}

        monkeypatch.setattr(tmdb, "get_provider_list", get_provider_list)
        monkeypatch.setattr(tmdb, "discover", discover)
        client.get("/api/movies/netflix", params={"region": "NO", "genres": "18,x,80"})
        client.get("/api/movies/netflix", params={"region": "NO", "page": 2, "sort": "bogus"})
        assert provider_calls == ["NO"]
        params, _ = discover_calls[0]
        assert params["with_watch_providers"] == 8
        assert params["with_watch_monetization_types"] == "flatrate"
        assert params["with_genres"] == "18,80"
        assert discover_calls[1][0]["sort_by"] == "popularity.desc"


class TestWatchlistRoutes:
    def test_add_list_remove(self, client):
        body = {"id": 348, "title": " Alien ", "release_date": "1979-05-25"}
        assert client.post("/api/watchlist", json=body).json()["already_exists"] is False
        assert client.post("/api/watchlist", json=body).json()["already_exists"] is True
        items = client.get("/api/watchlist").json()["results"]
        assert [(i["id"], i["title"]) for i in items] == [(348, "Alien")]
        assert client.delete("/api/watchlist/348").json()["removed"] is True
        assert client.get("/api/watchlist").json()["results"] == []

    def test_provider_enrichment_swallows_failures(self, client, upstream):
        client.post("/api/watchlist", json={"id": 348, "title": "Alien"})
        client.post("/api/watchlist", json={"id": 949, "title": "Heat"})
        data = client.get("/api/watchlist/providers", params={"region": "NO"}).json()
        assert data["providers"]["949"] is None
        assert data["providers"]["348"]["flatrate"][0]["provider_id"] == 8
        assert data["available"][0]["count"] == 1

        filtered = client.get("/api/watchlist", params={"hide_no_providers": "true", "region": "NO"}).json()
        assert [i["id"] for i in filtered["results"]] == [348]

    def test_details_with_providers(self, client, upstream):
        data = client.get("/api/watchlist/348/details", params={"region": "US"}).json()
        assert data["movie"]["runtime"] == 117
        assert data["watch_providers"]["buy"][0]["provider_name"] == "Apple TV"


class TestImportFlow:
    CSV = "Date,Name,Year,Letterboxd URI\n2024-01-01,Alien,1979,x\n2024-01-02,Aliens,1979,y\n2024-01-03,Heat,1995,z\n"

    def _upload(self, client, content=CSV):
        return client.post("/api/import/letterboxd", files={"file": ("watchlist.csv", content.encode(), "text/csv")})

    def test_upload_match_commit(self, client, upstream):
        uploaded = self._upload(client).json()
        assert uploaded["rows"] == [
            {"title": "Alien", "year": "1979"},
            {"title": "Aliens", "year": "1979"},
            {"title": "Heat", "year": "1995"},
        ]
        assert {r["status"] for r in uploaded["results"]} == {"pending"}

        matched = client.post("/api/import/match").json()
        statuses = [(r["status"], (r["movie"] or {}).get("id")) for r in matched["results"]]
        assert statuses == [("found", 348), ("not_found", None), ("found", 949)]
        assert matched["completed"] == 3
        assert matched["results"][0]["exact_match"] is True

        client.put("/api/import/rows/2/selected", json={"selected": False})
        assert client.post("/api/import/commit").json() == {"added": 1}
        assert client.post("/api/import/commit").json() == {"added": 0}
        assert [i["id"] for i in client.get("/api/watchlist").json()["results"]] == [348]

    def test_manual_override(self, client, upstream):
        self._upload(client, "Name,Year\nAliens,1979\n")
        client.post("/api/import/match")

        state = client.post("/api/import/rows/0/manual-search", json={}).json()
        assert state["query"] == "Aliens 1979"
        assert state["results"] == []

        state = client.post("/api/import/rows/0/manual-search", json={"query": "Alien"}).json()
        assert [m["id"] for m in state["results"]] == [679, 348]

        assert client.post("/api/import/rows/0/accept", json={"movie_id": 1}).status_code == 400
        result = client.post("/api/import/rows/0/accept", json={"movie_id": 679}).json()
        assert result["status"] == "found"
        assert result["exact_match"] is False
        assert client.get("/api/import").json()["manual"] == {}

    def test_bad_row_index(self, client):
        self._upload(client, "Name\nAlien\n")
        assert client.put("/api/import/rows/5/selected", json={"selected": True}).status_code == 404

    def test_row_edits_conflict_while_matching(self, client, monkeypatch):
        self._upload(client, "Name,Year\nAlien,1979\n")
        monkeypatch.setattr(ImportSession, "running", property(lambda self: True))
        assert client.put("/api/import/rows/0/selected", json={"selected": False}).status_code == 409
        assert client.post("/api/import/rows/0/manual-search", json={}).status_code == 409
        assert client.post("/api/import/rows/0/accept", json={"movie_id": 348}).status_code == 409
        assert client.post("/api/import/commit").status_code == 409

    def test_match_without_rows(self, client):
        assert client.post("/api/import/match").status_code == 400

    def test_empty_upload_resets_session(self, client):
        data = self._upload(client, "").json()
        assert data["rows"] == []
        assert data["limit_applied"] is False
