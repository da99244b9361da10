"""
Payment method tests.

Verifies:
- Default manual methods are seeded once
- Codes must be known and unique
- Only active methods are visible through the public basic endpoints
- Admin-only management endpoints
"""

import pytest


def method_body(**overrides):
    body = {
        "name": "Cash",
        "code": "cash",
        "description": "Pay on delivery",
    }
    body.update(overrides)
    return body


class TestInitialize:
    """Seeding the default manual methods."""

    def test_seeds_once(self, client, admin_headers):
        first = client.post("/api/payment-methods/basic/initialize", headers=admin_headers)
        assert first.status_code == 200
        assert len(first.json()["data"]) == 4
        assert first.json()["message"] == "Initialized 4 payment methods"

        second = client.post("/api/payment-methods/basic/initialize", headers=admin_headers)
        assert second.json()["data"] == []

        stats = client.get("/api/payment-methods/basic/stats", headers=admin_headers).json()["data"]
        assert stats == {"total": 4, "active": 4, "inactive": 0}

    def test_skips_existing_codes(self, client, admin_headers):
        client.post("/api/payment-methods", json=method_body(), headers=admin_headers)
        resp = client.post("/api/payment-methods/basic/initialize", headers=admin_headers)
        assert {m["code"] for m in resp.json()["data"]} == {"bank_transfer", "check", "money_order"}

    def test_admin_only(self, client, customer_headers):
        assert client.post("/api/payment-methods/basic/initialize", headers=customer_headers).status_code == 403


class TestValidation:
    """Rules applied on create and update."""

    def test_create(self, client, admin_headers):
        resp = client.post("/api/payment-methods", json=method_body(), headers=admin_headers)
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["paymentType"] == "manual"
        assert data["isActive"] is True

    def test_invalid_code(self, client, admin_headers):
        resp = client.post("/api/payment-methods", json=method_body(code="bitcoin"), headers=admin_headers)
        assert resp.status_code == 400
        assert "Invalid payment method code" in resp.json()["detail"]

    def test_duplicate_code(self, client, admin_headers):
        client.post("/api/payment-methods", json=method_body(), headers=admin_headers)
        resp = client.post("/api/payment-methods", json=method_body(name="Cash again"), headers=admin_headers)
        assert resp.status_code == 400
        assert "Payment method code already exists" in resp.json()["detail"]

    @pytest.mark.parametrize("missing", ["name", "code", "description"])
    def test_required_fields(self, client, admin_headers, missing):
        body = method_body()
        body.pop(missing)
        assert client.post("/api/payment-methods", json=body, headers=admin_headers).status_code == 400

    def test_update_keeps_own_code(self, client, admin_headers):
        method = client.post("/api/payment-methods", json=method_body(), headers=admin_headers).json()["data"]
        resp = client.put(
            f"/api/payment-methods/{method['id']}",
            json={"code": "cash", "name": "Cash on delivery"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["name"] == "Cash on delivery"


class TestBasicEndpoints:
    """Public lookups and activation toggles."""

    def test_lookup_by_code(self, client, admin_headers):
        client.post("/api/payment-methods/basic/initialize", headers=admin_headers)
        resp = client.get("/api/payment-methods/basic/check")
        assert resp.status_code == 200
        assert resp.json()["data"]["name"] == "Check"

    def test_deactivated_hidden(self, client, admin_headers):
        method = client.post("/api/payment-methods", json=method_body(), headers=admin_headers).json()["data"]

        resp = client.post(f"/api/payment-methods/basic/{method['id']}/deactivate", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["isActive"] is False

        assert client.get("/api/payment-methods/basic/cash").status_code == 404
        assert client.get("/api/payment-methods/basic").json()["data"] == []

        client.post(f"/api/payment-methods/basic/{method['id']}/activate", headers=admin_headers)
        assert client.get("/api/payment-methods/basic/cash").status_code == 200

    def test_admin_list_requires_admin(self, client, customer_headers):
        assert client.get("/api/payment-methods", headers=customer_headers).status_code == 403

    def test_delete(self, client, admin_headers):
        method = client.post("/api/payment-methods", json=method_body(), headers=admin_headers).json()["data"]
        assert client.delete(f"/api/payment-methods/{method['id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/payment-methods/{method['id']}", headers=admin_headers).status_code == 404
