import json
import os
from datetime import timedelta

# Settings are read at import time, so configure before importing the app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key"
os.environ["HL_CLIENT_ID"] = "test-client-id"
os.environ["HL_CLIENT_SECRET"] = "test-client-secret"
os.environ["APP_BASE_URL"] = "https://easycal.test"
os.environ["OAUTH_REDIRECT_URL"] = "https://api.easycal.test/auth/callback"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["DELETE_VERIFY_DELAY_SECONDS"] = "0"
os.environ["GHL_MIN_TIME_MS"] = "0"
os.environ["JOB_MIN_TIME_MS"] = "0"
os.environ["JOB_RESERVOIR"] = "1000"
os.environ["REDIS_HOST"] = "redis.invalid"

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from easycal.database import Base, SessionLocal, engine  # noqa: E402
from easycal.encryption import encrypt_token  # noqa: E402
from easycal.kv import kv_store  # noqa: E402
from easycal.main import app  # noqa: E402
from easycal.models import Location, Tenant, Token, utc_now  # noqa: E402
from easycal.services import ghl_client  # noqa: E402


class FakeRedis:
    """Just enough of redis.Redis for the KV store"""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value
        self.ttls.pop(key, None)
        return True

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def ping(self):
        return True

    def info(self):
        return {"redis_version": "7.0-fake", "used_memory_human": "1M", "connected_clients": 1}


class FakeGHL:
    """Routes GHL API calls to canned responses and records every request"""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, path, response=None, status=200):
        """response may be a dict (JSON body) or a callable(request) -> httpx.Response"""
        self.routes.setdefault((method.upper(), path), []).append((response, status))

    def calls(self, method, path):
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handlers = self.routes.get((request.method, request.url.path))
        if not handlers:
            return httpx.Response(500, json={"message": f"Unmocked route {request.method} {request.url.path}"})
        # Last registered handler repeats once earlier ones are used up
        response, status = handlers.pop(0) if len(handlers) > 1 else handlers[0]
        if callable(response):
            return response(request)
        return httpx.Response(status, json=response if response is not None else {})


def request_json(request: httpx.Request):
    return json.loads(request.content or b"{}")


def request_form(request: httpx.Request) -> dict:
    return dict(httpx.QueryParams(request.content.decode()))


@pytest.fixture(autouse=True)
def fake_redis():
    original = kv_store.redis_client
    kv_store.redis_client = FakeRedis()
    yield kv_store.redis_client
    kv_store.redis_client = original


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def ghl():
    fake = FakeGHL()
    ghl_client.http_transport = httpx.MockTransport(fake.handle)
    yield fake
    ghl_client.http_transport = None


@pytest.fixture
def client(ghl):
    with TestClient(app) as test_client:
        yield test_client


def seed_tenant(db, install_context="location", agency_id="company_1", name="Test Tenant"):
    tenant = Tenant(name=name, install_context=install_context, agency_id=agency_id)
    db.add(tenant)
    db.commit()
    return tenant


def seed_location_token(
    db,
    location_id="loc_123",
    access_token="location-access-token",
    refresh_token="location-refresh-token",
    expires_in=timedelta(days=1),
    time_zone="America/Chicago",
    name="Downtown Studio",
):
    """Tenant + location + encrypted location token"""
    tenant = seed_tenant(db)
    db.add(Location(id=location_id, tenant_id=tenant.id, name=name, time_zone=time_zone))
    token = Token(
        tenant_id=tenant.id,
        location_id=location_id,
        access_token=encrypt_token(access_token),
        refresh_token=encrypt_token(refresh_token),
        scope="calendars.write",
        expires_at=utc_now() + expires_in,
        user_type="Location",
        company_id="company_1",
    )
    db.add(token)
    db.commit()
    return tenant, token


def seed_agency_token(
    db, company_id="company_1", access_token="agency-access-token", expires_in=timedelta(days=1)
):
    tenant = seed_tenant(db, install_context="agency", agency_id=company_id, name="Agency Installation")
    token = Token(
        tenant_id=tenant.id,
        location_id=None,
        access_token=encrypt_token(access_token),
        refresh_token=encrypt_token("agency-refresh-token"),
        scope="oauth.write",
        expires_at=utc_now() + expires_in,
        user_type="Company",
        company_id=company_id,
    )
    db.add(token)
    db.commit()
    return tenant, token
