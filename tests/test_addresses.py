"""
Address book tests.

Verifies:
- Validation rejects bad postal codes and phone numbers
- The first address of a type becomes the default
- At most one default per owner and overlapping type
- Deleting a default promotes the newest remaining address
- Guests own addresses through their session ID
- Updates rebalance defaults the same way as create, set-default and delete
- Requests carrying both a token and a session ID are rejected
- Reading another owner's address is an authorization error
"""

import pytest

from app.services.address_validation import (
    format_phone,
    validate_address,
    validate_address_for_country,
)


def address_payload(**overrides):
    payload = {
        "type": "shipping",
        "firstName": "Alice",
        "lastName": "Smith",
        "address1": "1 Main Street",
        "city": "Springfield",
        "state": "IL",
        "postalCode": "62701",
        "country": "US",
        "phone": "555-123-4567",
    }
    payload.update(overrides)
    return payload


def valid_fields(**overrides):
    fields = {
        "type": "shipping",
        "first_name": "Alice",
        "last_name": "Smith",
        "address1": "1 Main Street",
        "city": "Springfield",
        "state": "IL",
        "postal_code": "62701",
        "country": "US",
        "phone": "555-123-4567",
    }
    fields.update(overrides)
    return fields


# =============================================================================
# VALIDATION
# =============================================================================


class TestAddressValidation:
    """Field rules applied before anything is stored."""

    def test_valid_address(self):
        result = validate_address(valid_fields())
        assert result["isValid"] is True
        assert result["errors"] == []
        assert result["confidence"] == 1.0

    def test_postal_code_without_digit_rejected(self):
        result = validate_address(valid_fields(postal_code="ABCDE"))
        assert result["isValid"] is False
        assert "Invalid postal code format" in result["errors"]

    def test_zip_plus_four_accepted(self):
        assert validate_address(valid_fields(postal_code="12345-6789"))["isValid"] is True

    def test_short_phone_rejected(self):
        result = validate_address(valid_fields(phone="12345"))
        assert result["isValid"] is False
        assert "Phone number must contain 7 to 15 digits" in result["errors"]

    def test_missing_fields_listed(self):
        result = validate_address({"type": "shipping"})
        assert result["isValid"] is False
        assert "First name is required" in result["errors"]
        assert "Postal code is required" in result["errors"]

    def test_unknown_type_rejected(self):
        result = validate_address(valid_fields(type="warehouse"))
        assert "Address type must be one of: shipping, billing, both" in result["errors"]

    def test_country_rules(self):
        result = validate_address_for_country(valid_fields(postal_code="K1A-0B1"), "Canada")
        assert result["isValid"] is False
        assert validate_address_for_country(valid_fields(postal_code="K1A 0B1"), "CA")["isValid"]

    def test_uk_postcode_rules(self):
        result = validate_address_for_country(valid_fields(postal_code="12345"), "GB")
        assert "UK postcode must be in the form SW1A 1AA" in result["errors"]
        assert validate_address_for_country(valid_fields(postal_code="SW1A 1AA"), "UK")["isValid"]
        assert validate_address_for_country(valid_fields(postal_code="M1 1AE"), "United Kingdom")["isValid"]

    def test_format_phone(self):
        assert format_phone("555 123 4567") == "(555) 123-4567"
        assert format_phone("15551234567") == "+1 (555) 123-4567"


# =============================================================================
# DEFAULT MANAGEMENT
# =============================================================================


class TestDefaultAddresses:
    """One default per owner and overlapping type."""

    def test_first_address_becomes_default(self, client, customer_headers):
        resp = client.post("/api/addresses", json=address_payload(), headers=customer_headers)
        assert resp.status_code == 201
        assert resp.json()["data"]["isDefault"] is True

        second = client.post("/api/addresses", json=address_payload(address1="2 Side Road"), headers=customer_headers)
        assert second.status_code == 201
        assert second.json()["data"]["isDefault"] is False

    def test_invalid_address_rejected(self, client, customer_headers):
        resp = client.post("/api/addresses", json=address_payload(postalCode="ABCDE"), headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"].startswith("Validation failed")

    def test_new_default_clears_previous(self, client, customer_headers):
        first = client.post("/api/addresses", json=address_payload(), headers=customer_headers).json()["data"]
        second = client.post(
            "/api/addresses",
            json=address_payload(address1="2 Side Road", isDefault=True),
            headers=customer_headers,
        ).json()["data"]

        assert second["isDefault"] is True
        assert client.get(f"/api/addresses/{first['id']}", headers=customer_headers).json()["data"]["isDefault"] is False

    def test_both_type_overlaps_shipping_and_billing(self, client, customer_headers):
        shipping = client.post("/api/addresses", json=address_payload(), headers=customer_headers).json()["data"]
        billing = client.post("/api/addresses", json=address_payload(type="billing"), headers=customer_headers).json()["data"]
        assert shipping["isDefault"] and billing["isDefault"]

        both = client.post(
            "/api/addresses",
            json=address_payload(type="both", isDefault=True),
            headers=customer_headers,
        ).json()["data"]
        assert both["isDefault"] is True

        listed = client.get("/api/addresses", headers=customer_headers).json()["data"]
        defaults = [a["id"] for a in listed if a["isDefault"]]
        assert defaults == [both["id"]]

    def test_set_default(self, client, customer_headers):
        first = client.post("/api/addresses", json=address_payload(), headers=customer_headers).json()["data"]
        second = client.post("/api/addresses", json=address_payload(address1="2 Side Road"), headers=customer_headers).json()["data"]

        resp = client.post(f"/api/addresses/{second['id']}/set-default", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["isDefault"] is True

        default = client.get("/api/addresses/default/shipping", headers=customer_headers).json()["data"]
        assert default["id"] == second["id"]
        assert client.get(f"/api/addresses/{first['id']}", headers=customer_headers).json()["data"]["isDefault"] is False

    def test_delete_default_promotes_newest(self, client, customer_headers):
        first = client.post("/api/addresses", json=address_payload(), headers=customer_headers).json()["data"]
        client.post("/api/addresses", json=address_payload(address1="2 Side Road"), headers=customer_headers)
        newest = client.post("/api/addresses", json=address_payload(address1="3 Hill Lane"), headers=customer_headers).json()["data"]

        resp = client.delete(f"/api/addresses/{first['id']}", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["newDefault"]["id"] == newest["id"]

    def test_delete_last_address_leaves_no_default(self, client, customer_headers):
        only = client.post("/api/addresses", json=address_payload(), headers=customer_headers).json()["data"]
        resp = client.delete(f"/api/addresses/{only['id']}", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["newDefault"] is None


def defaults_by_class(client, headers):
    """Default address ids covering shipping and billing."""
    listed = client.get("/api/addresses", headers=headers).json()["data"]
    return {
        kind: [a["id"] for a in listed if a["isDefault"] and a["type"] in (kind, "both")]
        for kind in ("shipping", "billing")
    }


class TestUpdateDefaults:
    """Editing an address keeps one default per type."""

    def test_update_to_default_clears_sibling(self, client, customer_headers):
        first = client.post("/api/addresses", json=address_payload(), headers=customer_headers).json()["data"]
        second = client.post("/api/addresses", json=address_payload(address1="2 Side Road"), headers=customer_headers).json()["data"]
        assert first["isDefault"] and not second["isDefault"]

        resp = client.put(f"/api/addresses/{second['id']}", json={"isDefault": True}, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["isDefault"] is True

        assert defaults_by_class(client, customer_headers)["shipping"] == [second["id"]]

    def test_dropping_default_promotes_next(self, client, customer_headers):
        first = client.post("/api/addresses", json=address_payload(), headers=customer_headers).json()["data"]
        second = client.post("/api/addresses", json=address_payload(address1="2 Side Road"), headers=customer_headers).json()["data"]

        resp = client.put(f"/api/addresses/{first['id']}", json={"isDefault": False}, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["isDefault"] is False

        assert defaults_by_class(client, customer_headers)["shipping"] == [second["id"]]

    def test_type_change_into_class_with_default(self, client, customer_headers):
        shipping = client.post("/api/addresses", json=address_payload(), headers=customer_headers).json()["data"]
        spare = client.post("/api/addresses", json=address_payload(address1="2 Side Road"), headers=customer_headers).json()["data"]
        billing = client.post("/api/addresses", json=address_payload(type="billing"), headers=customer_headers).json()["data"]
        assert shipping["isDefault"] and billing["isDefault"]

        resp = client.put(f"/api/addresses/{shipping['id']}", json={"type": "billing"}, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["isDefault"] is True

        defaults = defaults_by_class(client, customer_headers)
        assert defaults["billing"] == [shipping["id"]]
        assert defaults["shipping"] == [spare["id"]]

    def test_plain_field_update_keeps_default(self, client, customer_headers):
        only = client.post("/api/addresses", json=address_payload(), headers=customer_headers).json()["data"]
        resp = client.put(f"/api/addresses/{only['id']}", json={"city": "Shelbyville"}, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["city"] == "Shelbyville"
        assert resp.json()["data"]["isDefault"] is True

    def test_empty_update_rejected(self, client, customer_headers):
        only = client.post("/api/addresses", json=address_payload(), headers=customer_headers).json()["data"]
        resp = client.put(f"/api/addresses/{only['id']}", json={}, headers=customer_headers)
        assert resp.status_code == 400


# =============================================================================
# OWNERSHIP
# =============================================================================


class TestAddressOwnership:
    """Addresses belong to exactly one user or guest session."""

    def test_guest_session_addresses(self, client):
        resp = client.post("/api/addresses?sessionId=guest-1", json=address_payload())
        assert resp.status_code == 201
        assert resp.json()["data"]["sessionId"] == "guest-1"

        assert len(client.get("/api/addresses?sessionId=guest-1").json()["data"]) == 1
        assert client.get("/api/addresses?sessionId=guest-2").json()["data"] == []

    def test_token_and_session_is_ambiguous(self, client, customer_headers):
        resp = client.get("/api/addresses?sessionId=guest-1", headers=customer_headers)
        assert resp.status_code == 401

    def test_anonymous_rejected(self, client):
        assert client.get("/api/addresses").status_code == 401

    def test_other_user_cannot_read(self, client, customer_headers, other_headers):
        address = client.post("/api/addresses", json=address_payload(), headers=customer_headers).json()["data"]
        resp = client.get(f"/api/addresses/{address['id']}", headers=other_headers)
        assert resp.status_code == 403

    def test_other_session_cannot_read(self, client):
        address = client.post("/api/addresses?sessionId=guest-1", json=address_payload()).json()["data"]
        resp = client.get(f"/api/addresses/{address['id']}?sessionId=guest-2")
        assert resp.status_code == 403

    def test_other_user_cannot_update(self, client, customer_headers, other_headers):
        address = client.post("/api/addresses", json=address_payload(), headers=customer_headers).json()["data"]
        resp = client.put(f"/api/addresses/{address['id']}", json={"city": "Elsewhere"}, headers=other_headers)
        assert resp.status_code == 403

    @pytest.mark.parametrize("fmt", ["json", "csv"])
    def test_export(self, client, customer_headers, fmt):
        client.post("/api/addresses", json=address_payload(), headers=customer_headers)
        resp = client.get(f"/api/addresses/export?format={fmt}", headers=customer_headers)
        assert resp.status_code == 200
        if fmt == "csv":
            assert "Springfield" in resp.text
        else:
            assert len(resp.json()["data"]) == 1

    def test_import_reports_invalid_entries(self, client, customer_headers):
        payload = {
            "addresses": [
                address_payload(),
                address_payload(phone="12"),
            ]
        }
        resp = client.post("/api/addresses/import", json=payload, headers=customer_headers)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert len(data["imported"]) == 1
        assert data["errors"][0]["index"] == 1
