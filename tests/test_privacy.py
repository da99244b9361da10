"""
Privacy settings tests.

Verifies:
- Settings are created with defaults on first access
- Consent-gated fields need gdprConsent in the same request
- Consent changes are stamped with time, source and an anonymized IP
- Consent history, export and the right to be forgotten
"""

import pytest

from app.models import User
from app.services.privacy import anonymize_ip, requires_gdpr_consent, validate_privacy_data


# =============================================================================
# HELPERS
# =============================================================================


class TestAnonymizeIp:
    """Only the network part of an address is kept."""

    def test_ipv4(self):
        assert anonymize_ip("203.0.113.45") == "203.0.113.0"

    def test_ipv6(self):
        assert anonymize_ip("2001:db8:85a3::8a2e:370:7334") == "2001:db8:85a3:0::"

    @pytest.mark.parametrize("value", [None, "", "testclient", "999.1.1.1"])
    def test_unparseable(self, value):
        assert anonymize_ip(value) is None


class TestPrivacyValidation:
    """Field checks applied before any change is stored."""

    def test_gated_fields(self):
        assert requires_gdpr_consent({"marketingConsent": True})
        assert not requires_gdpr_consent({"showEmail": True})

    def test_gated_field_without_gdpr(self):
        errors = validate_privacy_data({"analyticsConsent": True})
        assert "GDPR consent is required for these privacy changes" in errors

    def test_bad_enum_values(self):
        errors = validate_privacy_data({"profileVisibility": "everyone", "cookieConsent": "some"})
        assert len(errors) == 2

    def test_boolean_fields(self):
        assert validate_privacy_data({"showEmail": "yes"}) == ["showEmail must be a boolean"]


# =============================================================================
# SETTINGS
# =============================================================================


class TestPrivacySettings:
    """Reading and updating the caller's settings."""

    def test_requires_login(self, client):
        assert client.get("/api/privacy-settings/me").status_code == 401

    def test_defaults_created(self, client, customer_headers):
        resp = client.get("/api/privacy-settings/me", headers=customer_headers)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["profileVisibility"] == "private"
        assert data["gdprConsent"] is False
        assert data["cookieConsent"] == "necessary"

    def test_consent_change_needs_gdpr(self, client, customer_headers):
        resp = client.put(
            "/api/privacy-settings/me",
            json={"marketingConsent": True},
            headers=customer_headers,
        )
        assert resp.status_code == 400
        assert "GDPR consent" in resp.json()["detail"]

    def test_consent_change_stamped(self, client, customer_headers):
        resp = client.put(
            "/api/privacy-settings/me",
            json={"marketingConsent": True, "gdprConsent": True},
            headers={**customer_headers, "X-Forwarded-For": "203.0.113.45, 10.0.0.1", "User-Agent": "pytest"},
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["marketingConsent"] is True
        assert data["lastConsentUpdate"] is not None
        assert data["consentSource"] == "profile-update"
        assert data["ipAddressAtConsent"] == "203.0.113.0"
        assert data["userAgentAtConsent"] == "pytest"

    def test_non_gated_change(self, client, customer_headers):
        resp = client.put("/api/privacy-settings/me", json={"showEmail": True}, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["showEmail"] is True

    def test_empty_body_rejected(self, client, customer_headers):
        assert client.put("/api/privacy-settings/me", json={}, headers=customer_headers).status_code == 400

    def test_consent_endpoint_needs_consent_field(self, client, customer_headers):
        resp = client.patch("/api/privacy-settings/me/consent", json={"showEmail": True}, headers=customer_headers)
        assert resp.status_code == 400

    def test_consent_history(self, client, customer_headers):
        client.patch(
            "/api/privacy-settings/me/consent",
            json={"analyticsConsent": True, "gdprConsent": True},
            headers=customer_headers,
        )
        resp = client.get("/api/privacy-settings/me/consent-history", headers=customer_headers)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["currentConsents"]["analyticsConsent"] is True
        assert data["consentMetadata"]["consentSource"] == "consent-update"
        assert data["history"][0]["activityType"] == "consent_update"

    def test_reset(self, client, customer_headers):
        client.put("/api/privacy-settings/me", json={"showPhone": True}, headers=customer_headers)
        resp = client.post("/api/privacy-settings/me/reset", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["showPhone"] is False


# =============================================================================
# GDPR RIGHTS
# =============================================================================


class TestGdprRights:
    """Export, deletion request and erasure."""

    def test_export(self, client, customer_headers, customer):
        resp = client.get("/api/privacy-settings/me/export", headers=customer_headers)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["user"]["email"] == customer.email
        assert data["privacySettings"]["dataExportRequested"] is True
        assert "id" not in data["privacySettings"]
        assert data["exportMetadata"]["gdprCompliant"] is True

    def test_request_deletion(self, client, customer_headers):
        resp = client.post("/api/privacy-settings/me/request-deletion", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["rightToBeForgetRequested"] is True

    def test_delete_my_data(self, client, customer_headers, customer, db_session):
        email = customer.email
        client.get("/api/privacy-settings/me", headers=customer_headers)

        resp = client.delete("/api/privacy-settings/me/data", headers=customer_headers)
        assert resp.status_code == 200
        result = resp.json()["data"]
        assert result["failed"] == []
        assert "user" in result["deleted"]

        db_session.expunge_all()
        assert db_session.query(User).filter(User.email == email).first() is None
        assert client.get("/api/privacy-settings/me", headers=customer_headers).status_code == 401
