from conftest import seed_agency_token, seed_location_token, seed_tenant

from easycal.models import Location, Tenant, Token


class TestTenantCrud:
    def test_create_and_fetch(self, client):
        response = client.post(
            "/api/tenants", json={"name": "Downtown", "installContext": "location", "agencyId": "comp_1"}
        )
        assert response.status_code == 201
        created = response.json()
        assert created["installContext"] == "location"
        assert created["agencyId"] == "comp_1"

        fetched = client.get(f"/api/tenants/{created['id']}").json()
        assert fetched == created

    def test_create_rejects_bad_context(self, client):
        response = client.post("/api/tenants", json={"name": "X", "installContext": "global"})
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid installation context"

    def test_location_tenant_needs_agency(self, client):
        response = client.post("/api/tenants", json={"name": "X", "installContext": "location"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_FAILED"

    def test_missing_body_fields(self, client):
        response = client.post("/api/tenants", json={"name": "X"})
        assert response.status_code == 400
        assert response.json()["error"] == "Validation failed"
        assert any("installContext" in e for e in response.json()["errors"])

    def test_unknown_tenant(self, client):
        response = client.get("/api/tenants/missing")
        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"]["message"] == "Tenant not found"

    def test_list_by_agency(self, client, db):
        seed_tenant(db, agency_id="comp_1", name="One")
        seed_tenant(db, agency_id="comp_2", name="Two")
        seed_tenant(db, install_context="agency", agency_id="comp_1", name="Agency")

        body = client.get("/api/tenants", params={"agencyId": "comp_1"}).json()

        assert [t["name"] for t in body] == ["One"]

    def test_list_requires_agency(self, client):
        assert client.get("/api/tenants").status_code == 400

    def test_patch_keeps_unset_fields(self, client, db):
        tenant = seed_tenant(db, name="Before")

        response = client.patch(f"/api/tenants/{tenant.id}", json={"name": "After"})

        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "After"
        assert body["installContext"] == "location"
        assert body["agencyId"] == "company_1"

    def test_patch_validates_context(self, client, db):
        tenant = seed_tenant(db)
        response = client.patch(f"/api/tenants/{tenant.id}", json={"installContext": "planet"})
        assert response.status_code == 400

    def test_stats(self, client, db):
        tenant, _ = seed_location_token(db)
        body = client.get(f"/api/tenants/{tenant.id}/stats").json()
        assert body == {"locations": 1, "activeTokens": 1, "jobs": 0}


class TestUninstall:
    def test_delete_cascades(self, client, db):
        tenant, _ = seed_location_token(db)

        response = client.delete(f"/api/tenants/{tenant.id}")

        assert response.json() == {"success": True, "tenantId": tenant.id}
        db.expire_all()
        assert db.query(Tenant).count() == 0
        assert db.query(Location).count() == 0
        assert db.query(Token).count() == 0

    def test_delete_unknown(self, client):
        response = client.delete("/api/tenants/missing")
        assert response.status_code == 404
        assert response.json() == {"error": "Tenant not found"}

    def test_disconnect_tokens(self, client, db):
        tenant, _ = seed_location_token(db)
        agency, _ = seed_agency_token(db)

        response = client.delete(f"/api/tenants/{tenant.id}/tokens", params={"locationId": "loc_123"})

        assert response.json() == {"success": True, "deleted": 1}
        db.expire_all()
        assert [t.tenant_id for t in db.query(Token).all()] == [agency.id]
        # The location itself stays installed
        assert db.query(Location).count() == 1

    def test_disconnect_unknown_tenant(self, client):
        assert client.delete("/api/tenants/missing/tokens").status_code == 404
