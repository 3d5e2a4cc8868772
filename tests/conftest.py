"""
Pytest fixtures for the Gatto API tests.

Builds a TestClient over an app wired to the in-memory FakeBackend from
tests/fakes.py, with isolated caches and metrics per test.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from fastapi.testclient import TestClient  # noqa: E402

from api.app import create_app  # noqa: E402
from fakes import make_backend, make_config  # noqa: E402
from utils.cache import CacheRegistry  # noqa: E402
from utils.metrics import SearchMetrics  # noqa: E402


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture()
def backend():
    return make_backend()


@pytest.fixture()
def app(backend):
    return create_app(
        config=make_config(),
        backend=backend,
        caches=CacheRegistry(),
        metrics=SearchMetrics(),
    )


@pytest.fixture()
def client(app):
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
