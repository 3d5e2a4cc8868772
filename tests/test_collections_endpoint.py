"""
Tests for GET /v1/collections and GET /v1/collections/{slug}.
"""
from utils.query import decode_offset_cursor


class TestCollectionsList:
    def test_published_only_in_order(self, client):
        resp = client.get("/v1/collections")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert [c["id"] for c in data["items"]] == ["c1", "c2", "c4"]
        first = data["items"][0]
        assert first["title"] == "Bistrots du Marais"
        assert first["poi_count"] == 2
        assert first["cover"]["variants"][0]["format"] == "avif"
        assert data["items"][1]["cover"] is None
        assert data["pagination"]["total"] == 3
        assert data["pagination"]["next_cursor"] is None
        assert resp.headers["Cache-Control"] == "public, max-age=600"

    def test_city_filter(self, client):
        data = client.get("/v1/collections", params={"city": "lyon"}).json()["data"]
        assert [c["id"] for c in data["items"]] == ["c4"]

    def test_lang_en(self, client):
        items = client.get("/v1/collections", params={"lang": "en"}).json()["data"]["items"]
        assert items[0]["slug"] == "marais-bistros"
        assert items[1]["slug"] == "bars-de-nuit"

    def test_cursor_pagination(self, client):
        data = client.get("/v1/collections", params={"limit": 2}).json()["data"]
        assert [c["id"] for c in data["items"]] == ["c1", "c2"]
        token = data["pagination"]["next_cursor"]
        assert decode_offset_cursor(token) == 2
        assert data["pagination"]["previous_cursor"] is None

        page2 = client.get("/v1/collections", params={"limit": 2, "cursor": token}).json()["data"]
        assert [c["id"] for c in page2["items"]] == ["c4"]
        assert page2["pagination"]["page"] == 2
        assert decode_offset_cursor(page2["pagination"]["previous_cursor"]) == 0

    def test_page_param(self, client):
        data = client.get("/v1/collections", params={"limit": 2, "page": 2}).json()["data"]
        assert [c["id"] for c in data["items"]] == ["c4"]
        assert data["pagination"]["has_prev"] is True

    def test_validation(self, client):
        assert client.get("/v1/collections", params={"limit": 51}).status_code == 400
        assert client.get("/v1/collections", params={"page": 1, "cursor": "MA"}).status_code == 400

    def test_cached(self, client, backend):
        client.get("/v1/collections")
        assert client.get("/v1/collections").headers["X-Cache"] == "HIT"
        assert len(backend.calls_to("collections")) == 1

    def test_failure(self, client, backend):
        backend.failures.add("collections")
        resp = client.get("/v1/collections")
        assert resp.status_code == 500
        assert resp.json()["error"] == "Failed to fetch collections"


class TestCollectionDetail:
    def test_pois_in_collection_order(self, client):
        resp = client.get("/v1/collections/bistrots-du-marais")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["id"] == "c1"
        # p3 is unpublished and skipped
        assert [p["id"] for p in data["pois"]] == ["p2", "p1"]
        assert data["poi_count"] == 2
        assert data["cover"] is not None

    def test_segment_sort(self, client):
        data = client.get("/v1/collections/bistrots-du-marais", params={"segment": "awarded"}).json()["data"]
        assert [p["id"] for p in data["pois"]] == ["p1", "p2"]
        data = client.get("/v1/collections/bistrots-du-marais", params={"segment": "digital"}).json()["data"]
        assert [p["id"] for p in data["pois"]] == ["p2", "p1"]

    def test_english_slug(self, client):
        data = client.get("/v1/collections/marais-bistros", params={"lang": "en"}).json()["data"]
        assert data["title"] == "Marais bistros"

    def test_unpublished_is_404(self, client):
        resp = client.get("/v1/collections/brouillon")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Collection not found"

    def test_empty_collection(self, client):
        data = client.get("/v1/collections/lyon-bouchons").json()["data"]
        assert data["pois"] == []
        assert data["cover"] is None

    def test_detail_view(self, client):
        data = client.get("/v1/collections/bistrots-du-marais", params={"view": "detail"}).json()["data"]
        assert "coords" in data["pois"][0]

    def test_failure(self, client, backend):
        backend.failures.add("collection_pois")
        resp = client.get("/v1/collections/bistrots-du-marais")
        assert resp.status_code == 500
        assert resp.json()["error"] == "Failed to fetch collection"
