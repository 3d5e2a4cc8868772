"""
Tests for api/database.py: PostgREST parameter building and the async
SupabaseBackend client, using httpx.MockTransport instead of a network.
"""
import asyncio
import json

import httpx
import pytest

from api.database import (
    BackendError,
    SupabaseBackend,
    build_select_params,
    parse_content_range,
)


def _backend(handler) -> SupabaseBackend:
    return SupabaseBackend(
        "https://db.example.co/", "anon-key", transport=httpx.MockTransport(handler)
    )


def _run(coro_fn):
    async def runner():
        return await coro_fn()
    return asyncio.run(runner())


# ── build_select_params ───────────────────────────────────────────────────────

class TestBuildSelectParams:
    def test_select_only(self):
        assert build_select_params("id,name") == [("select", "id,name")]

    def test_all_filters(self):
        params = build_select_params(
            "*",
            eq={"status": "active", "is_published": True},
            in_={"poi_id": ["p1", "p2"]},
            any_eq={"slug_fr": "le-chat", "slug_en": "le-chat"},
            order=["is_primary.desc", "position.asc"],
            limit=10,
            offset=20,
        )
        assert params == [
            ("select", "*"),
            ("status", "eq.active"),
            ("is_published", "eq.true"),
            ("poi_id", 'in.("p1","p2")'),
            ("or", '(slug_fr.eq."le-chat",slug_en.eq."le-chat")'),
            ("order", "is_primary.desc,position.asc"),
            ("limit", "10"),
            ("offset", "20"),
        ]

    def test_zero_offset_omitted(self):
        assert ("offset", "0") not in build_select_params(offset=0)

    def test_quotes_escaped(self):
        params = dict(build_select_params(in_={"name": ['say "hi"']}))
        assert params["name"] == 'in.("say \\"hi\\"")'


@pytest.mark.parametrize("header,expected", [
    ("0-9/123", 123), ("*/0", 0), ("0-9/*", None), (None, None), ("garbage", None),
])
def test_parse_content_range(header, expected):
    assert parse_content_range(header) == expected


# ── SupabaseBackend ───────────────────────────────────────────────────────────

class TestSupabaseBackend:
    def test_rpc_posts_params_with_auth_headers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["apikey"] = request.headers["apikey"]
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=[{"id": "p1"}])

        backend = _backend(handler)
        result = _run(lambda: backend.rpc("list_pois", {"p_limit": 5}))
        assert result == [{"id": "p1"}]
        assert seen == {
            "method": "POST",
            "path": "/rest/v1/rpc/list_pois",
            "apikey": "anon-key",
            "auth": "Bearer anon-key",
            "body": {"p_limit": 5},
        }

    def test_select_sends_filters(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["params"] = list(request.url.params.multi_items())
            return httpx.Response(200, json=[])

        backend = _backend(handler)
        rows = _run(lambda: backend.select("poi", "id", eq={"slug_fr": "le-chat"}, limit=1))
        assert rows == []
        assert seen["path"] == "/rest/v1/poi"
        assert seen["params"] == [("select", "id"), ("slug_fr", "eq.le-chat"), ("limit", "1")]

    def test_select_with_count_reads_content_range(self):
        def handler(request):
            assert request.headers["Prefer"] == "count=exact"
            return httpx.Response(200, json=[{"id": 1}], headers={"Content-Range": "0-0/42"})

        backend = _backend(handler)
        rows, total = _run(lambda: backend.select_with_count("collections", limit=1))
        assert rows == [{"id": 1}]
        assert total == 42

    def test_http_error_status_raises_backend_error(self):
        backend = _backend(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(BackendError) as excinfo:
            _run(lambda: backend.rpc("list_pois", {}))
        assert excinfo.value.status_code == 500

    def test_transport_error_raises_backend_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        backend = _backend(handler)
        with pytest.raises(BackendError):
            _run(lambda: backend.select("poi"))

    def test_empty_body_is_none(self):
        backend = _backend(lambda request: httpx.Response(204))
        assert _run(lambda: backend.rpc("noop", {})) is None

    def test_aclose(self):
        backend = _backend(lambda request: httpx.Response(200, json=[]))
        _run(backend.aclose)
