from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import app.services.upstream.client as upstream_module
import app.workers.fetcher as fetcher_module
from app.core.config import Settings
from app.core.rate_limit import limiter
from app.main import app


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def client():
    """TestClient with fresh HTTP clients and empty rate-limit counters.

    The shared httpx clients are reset before and after each test so that
    respx can intercept the freshly-created clients for that test.
    """
    fetcher_module._http_client = None
    upstream_module._http_client = None
    limiter.reset()

    with TestClient(app) as c:
        yield c

    # Ensure a stale client never leaks into the next test
    fetcher_module._http_client = None
    upstream_module._http_client = None
