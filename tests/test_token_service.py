from datetime import timedelta

import httpx
import pytest
from conftest import FakeGHL, request_form, seed_agency_token, seed_location_token, seed_tenant

from easycal.encryption import decrypt_token, encrypt_token
from easycal.errors import AppError
from easycal.models import Location, Token, utc_now
from easycal.services.ghl_client import GHLClient
from easycal.services.token_service import (
    cleanup_expired_tokens,
    get_location_access_token,
    is_token_expired,
)


@pytest.fixture
def fake():
    return FakeGHL()


@pytest.fixture
def ghl_client(fake):
    return GHLClient(transport=httpx.MockTransport(fake.handle))


def test_encrypt_round_trip_and_tamper_detection():
    encrypted = encrypt_token("secret-value")
    assert encrypted != "secret-value"
    assert decrypt_token(encrypted) == "secret-value"
    with pytest.raises(AppError) as exc:
        decrypt_token("not-a-fernet-token")
    assert exc.value.message == "Failed to decrypt token"


def test_expiry_uses_five_minute_buffer():
    now = utc_now()
    assert is_token_expired(Token(expires_at=now + timedelta(minutes=4)), now)
    assert not is_token_expired(Token(expires_at=now + timedelta(minutes=6)), now)


async def test_direct_location_token(db, ghl_client, fake):
    seed_location_token(db)
    assert await get_location_access_token(db, "loc_123", ghl_client) == "location-access-token"
    assert fake.requests == []


async def test_unknown_location_without_agency_token(db, ghl_client):
    seed_location_token(db)
    assert await get_location_access_token(db, "loc_other", ghl_client) is None


async def test_expired_token_is_refreshed(db, ghl_client, fake):
    _, token = seed_location_token(db, expires_in=timedelta(minutes=1))
    fake.add("POST", "/oauth/token", {"access_token": "refreshed-token", "expires_in": 3600})

    assert await get_location_access_token(db, "loc_123", ghl_client) == "refreshed-token"

    form = request_form(fake.requests[0])
    assert form["grant_type"] == "refresh_token"
    assert form["refresh_token"] == "location-refresh-token"

    db.refresh(token)
    assert decrypt_token(token.access_token) == "refreshed-token"
    # No new refresh token returned, so the old one is kept
    assert decrypt_token(token.refresh_token) == "location-refresh-token"
    assert not is_token_expired(token)


async def test_failed_refresh_returns_none(db, ghl_client, fake):
    seed_location_token(db, expires_in=timedelta(minutes=-10))
    fake.add("POST", "/oauth/token", {"error": "invalid_grant"}, status=400)

    assert await get_location_access_token(db, "loc_123", ghl_client) is None


async def test_placeholder_uses_agency_token_but_cannot_exchange(db, ghl_client, fake):
    seed_agency_token(db)
    assert await get_location_access_token(db, "temp_location", ghl_client) is None
    assert fake.requests == []


async def test_agency_token_exchanged_for_real_location(db, ghl_client, fake):
    tenant, _ = seed_agency_token(db)
    # Real location row with an agency-level token stored against it
    seed_location_token(db, location_id="loc_real")
    db.query(Token).filter(Token.location_id == "loc_real").update(
        {"user_type": "Company", "company_id": "comp_agency", "tenant_id": tenant.id}
    )
    db.commit()
    fake.add("POST", "/oauth/locationToken", {"access_token": "derived-location-token"})

    assert await get_location_access_token(db, "loc_real", ghl_client) == "derived-location-token"

    exchange = fake.calls("POST", "/oauth/locationToken")[0]
    assert exchange.headers["Authorization"] == "Bearer location-access-token"
    assert request_form(exchange) == {"companyId": "comp_agency", "locationId": "loc_real"}


async def test_failed_agency_exchange_returns_none(db, ghl_client, fake):
    seed_location_token(db, location_id="loc_real")
    db.query(Token).update({"user_type": "Company", "company_id": "comp_agency"})
    db.commit()
    fake.add("POST", "/oauth/locationToken", {"message": "nope"}, status=401)

    assert await get_location_access_token(db, "loc_real", ghl_client) is None


def test_cleanup_only_purges_tokens_past_retention(db):
    seed_location_token(db, location_id="loc_old", expires_in=timedelta(days=-40))
    seed_location_token(db, location_id="loc_recent", expires_in=timedelta(hours=-1))
    seed_location_token(db, location_id="loc_new")

    assert cleanup_expired_tokens(db, retention_days=30) == 1
    assert sorted(t.location_id for t in db.query(Token).all()) == ["loc_new", "loc_recent"]


async def test_token_expired_overnight_survives_cleanup_and_refreshes(db, ghl_client, fake):
    seed_location_token(db, expires_in=timedelta(hours=-1))
    fake.add("POST", "/oauth/token", {"access_token": "refreshed", "expires_in": 86400})

    assert cleanup_expired_tokens(db) == 0
    assert await get_location_access_token(db, "loc_123", ghl_client) == "refreshed"


async def test_agency_install_serves_sub_accounts(db, ghl_client, fake):
    seed_agency_token(db, company_id="comp_agency")
    fake.add("POST", "/oauth/locationToken", {"access_token": "sub-account-token"})

    assert await get_location_access_token(db, "sub_1", ghl_client) == "sub-account-token"
    exchange = fake.calls("POST", "/oauth/locationToken")[0]
    assert exchange.headers["Authorization"] == "Bearer agency-access-token"
    assert request_form(exchange)["locationId"] == "sub_1"


def add_location(db, location_id, tenant):
    db.add(Location(id=location_id, tenant_id=tenant.id, name="Sub-account", time_zone="UTC"))
    db.commit()


async def test_known_location_uses_its_own_agency_token(db, ghl_client, fake):
    agency_a, _ = seed_agency_token(db, company_id="comp_A", access_token="tok-A", expires_in=timedelta(hours=5))
    seed_agency_token(db, company_id="comp_B", access_token="tok-B", expires_in=timedelta(hours=20))
    add_location(db, "loc_of_A", agency_a)
    fake.add("POST", "/oauth/locationToken", {"access_token": "token-for-A"})

    assert await get_location_access_token(db, "loc_of_A", ghl_client) == "token-for-A"

    exchange = fake.calls("POST", "/oauth/locationToken")[0]
    assert exchange.headers["Authorization"] == "Bearer tok-A"
    assert request_form(exchange) == {"companyId": "comp_A", "locationId": "loc_of_A"}


async def test_agency_matched_by_company_of_location_tenant(db, ghl_client, fake):
    seed_agency_token(db, company_id="comp_A", access_token="tok-A", expires_in=timedelta(hours=5))
    seed_agency_token(db, company_id="comp_B", access_token="tok-B", expires_in=timedelta(hours=20))
    add_location(db, "loc_of_A", seed_tenant(db, agency_id="comp_A"))
    fake.add("POST", "/oauth/locationToken", {"access_token": "token-for-A"})

    assert await get_location_access_token(db, "loc_of_A", ghl_client) == "token-for-A"
    assert fake.calls("POST", "/oauth/locationToken")[0].headers["Authorization"] == "Bearer tok-A"


async def test_known_location_ignores_other_agencies(db, ghl_client, fake):
    seed_agency_token(db, company_id="comp_B", access_token="tok-B")
    add_location(db, "loc_of_A", seed_tenant(db, agency_id="comp_A"))

    assert await get_location_access_token(db, "loc_of_A", ghl_client) is None
    assert fake.requests == []
