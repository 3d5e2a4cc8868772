"""
Tests for GET /v1/sitemap/pois.
"""
import pytest


class TestSitemap:
    def test_items_newest_first(self, client):
        resp = client.get("/v1/sitemap/pois")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert [i["slug"] for i in data["items"]] == ["bar-des-amis", "le-chat"]
        assert data["items"][0] == {
            "slug": "bar-des-amis", "updated_at": "2026-03-05T10:00:00Z", "score": 3.05,
        }
        # 0-100 scale rescaled to 0-5
        assert data["items"][1]["score"] == pytest.approx(4.12, abs=0.01)
        assert data["pagination"]["total"] == 2
        assert data["pagination"]["limit"] == 500
        assert resp.headers["Cache-Control"] == "public, max-age=300"

    def test_paging(self, client):
        data = client.get("/v1/sitemap/pois", params={"page": 2, "limit": 1}).json()["data"]
        assert [i["slug"] for i in data["items"]] == ["le-chat"]
        assert data["pagination"]["has_prev"] is True

    @pytest.mark.parametrize("limit,expected", [("abc", 500), ("0", 500), ("5000", 1000), ("20", 20)])
    def test_malformed_limit_falls_back(self, client, limit, expected):
        resp = client.get("/v1/sitemap/pois", params={"limit": limit})
        assert resp.status_code == 200
        assert resp.json()["data"]["pagination"]["limit"] == expected

    def test_malformed_page_falls_back(self, client):
        data = client.get("/v1/sitemap/pois", params={"page": "-3"}).json()["data"]
        assert data["pagination"]["page"] == 1

    def test_score_batch_failure_leaves_zero(self, client, backend):
        backend.failures.add("latest_gatto_scores")
        resp = client.get("/v1/sitemap/pois")
        assert resp.status_code == 200
        assert {i["score"] for i in resp.json()["data"]["items"]} == {0}

    def test_scores_fetched_in_batches(self, client, backend):
        backend.tables["poi"] = [
            {"id": f"x{i}", "slug_fr": f"poi-{i}", "publishable_status": "eligible",
             "updated_at": f"2026-01-01T00:{i // 60:02d}:{i % 60:02d}Z"}
            for i in range(250)
        ]
        client.get("/v1/sitemap/pois")
        batches = backend.calls_to("latest_gatto_scores")
        assert [len(b["in_"]["poi_id"]) for b in batches] == [100, 100, 50]

    def test_listing_failure(self, client, backend):
        backend.failures.add("poi")
        resp = client.get("/v1/sitemap/pois")
        assert resp.status_code == 500
        assert resp.json()["error"] == "Failed to build sitemap payload"

    def test_unknown_param(self, client):
        assert client.get("/v1/sitemap/pois", params={"city": "paris"}).status_code == 400
