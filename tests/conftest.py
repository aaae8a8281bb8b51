"""
Pytest configuration and shared fixtures.

Nothing here talks to Postgres, Redis or the network: the database session
and Redis client are mocks, and the CRM / relay use httpx.MockTransport.
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import httpx
import pytest

from app.core.config import RoutingConfig
from app.services.crm_client import GoHighLevelClient
from app.services.pipeline_router import PipelineRouter
from app.services.relay import WebhookRelay

CRM_BASE = "https://crm.local/v1"
RELAY_URL = "https://relay.local/hooks/lead"

CONFIGURED = dict(
    agent_pipeline_id="agent-pipe",
    agent_stage_id="agent-stage",
    buyer_pipeline_id="buyer-pipe",
    buyer_stage_id="buyer-stage",
)


def crm_ok(request: httpx.Request) -> httpx.Response:
    """CRM that accepts every contact and opportunity."""
    if request.url.path.endswith("/contacts/"):
        return httpx.Response(200, json={"contact": {"id": "ghl-123"}})
    if request.url.path.endswith("/opportunities/"):
        return httpx.Response(200, json={"opportunity": {"id": "opp-1"}})
    return httpx.Response(404)


@pytest.fixture
def configured_routing():
    return RoutingConfig(**CONFIGURED)


@pytest.fixture
def mock_db():
    db = MagicMock()
    db.add = MagicMock()
    db.commit = AsyncMock()
    db.flush = AsyncMock()
    db.rollback = AsyncMock()
    db.execute = AsyncMock()
    return db


@pytest.fixture
def mock_redis():
    redis = MagicMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def make_crm():
    def _make(handler=crm_ok, api_key="ghl-key", location_id="loc-1"):
        return GoHighLevelClient(CRM_BASE, api_key, location_id, timeout=2.0, transport=httpx.MockTransport(handler))
    return _make


@pytest.fixture
def make_relay():
    def _make(handler=None, url=RELAY_URL, timeout=1.0):
        handler = handler or (lambda request: httpx.Response(200, json={"ok": True}))
        return WebhookRelay(url, webhook_id="wh-1", timeout=timeout, transport=httpx.MockTransport(handler))
    return _make


@pytest.fixture
def make_router(make_crm, make_relay):
    def _make(config=None, crm=None, relay=None):
        return PipelineRouter(config or RoutingConfig(), crm or make_crm(), relay or make_relay())
    return _make


@pytest.fixture
def lead_store():
    """Patch the lead writes used by routing and capture; exposes the mocks."""
    saved = SimpleNamespace(lead_id=uuid4())
    with patch("app.crud.lead.create_lead", new_callable=AsyncMock, return_value=saved) as create_lead, \
            patch("app.crud.lead.set_relay_status", new_callable=AsyncMock) as set_relay_status:
        yield SimpleNamespace(create_lead=create_lead, set_relay_status=set_relay_status, saved=saved)


@pytest.fixture
def client(mock_db, mock_redis, make_router):
    """TestClient for app.main:app with the DB, Redis and router dependencies replaced."""
    from fastapi.testclient import TestClient

    from app.db.redis_client import get_redis
    from app.db.session import get_db
    from app.main import app
    from app.services.pipeline_router import get_pipeline_router

    router = make_router()

    async def _db():
        yield mock_db

    async def _redis():
        yield mock_redis

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_redis] = _redis
    app.dependency_overrides[get_pipeline_router] = lambda: router
    yield TestClient(app)
    app.dependency_overrides.clear()
