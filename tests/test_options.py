"""
Option group and option value tests.

Verifies:
- Option groups need a name, a display name and a known type
- Groups that still have values cannot be deleted
- Values must point at an existing group; sort order defaults to 1
- Bulk creation reports per-entry failures and rejects non-array input
- Listing lookups 404 on unknown listings
"""

import uuid


def create_group(client, headers, **fields):
    body = {"name": "material", "displayName": "Material", "type": "select"}
    body.update(fields)
    return client.post("/api/option-groups", json=body, headers=headers)


class TestOptionGroups:
    """Creating, reading and deleting groups."""

    def test_create(self, client, admin_headers):
        resp = create_group(client, admin_headers)
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["name"] == "material"
        assert data["optionValues"] == []

    def test_admin_only(self, client, customer_headers):
        assert create_group(client, customer_headers).status_code == 403

    def test_display_name_required(self, client, admin_headers):
        resp = create_group(client, admin_headers, displayName="")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Name and display name are required"

    def test_unknown_type(self, client, admin_headers):
        assert create_group(client, admin_headers, type="slider").status_code == 400

    def test_with_values(self, client, admin_headers):
        resp = client.post(
            "/api/option-groups/with-values",
            json={
                "name": "fit",
                "displayName": "Fit",
                "defaultValues": [
                    {"value": "slim", "displayName": "Slim"},
                    {"value": "regular", "displayName": "Regular", "sortOrder": 2},
                ],
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert len(data["defaultValues"]) == 2
        assert len(data["optionGroup"]["optionValues"]) == 2

    def test_delete_with_values_rejected(self, client, admin_headers, option_groups):
        group_id = option_groups["size"].id
        resp = client.delete(f"/api/option-groups/{group_id}", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Cannot delete option group with existing option values"

    def test_delete_empty_group(self, client, admin_headers):
        group = create_group(client, admin_headers).json()["data"]
        assert client.delete(f"/api/option-groups/{group['id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/option-groups/{group['id']}").status_code == 404

    def test_groups_for_listing(self, client, variant_listing):
        listing_id = variant_listing["listing"].id
        resp = client.get(f"/api/option-groups/product-listing/{listing_id}")
        assert resp.status_code == 200
        assert {g["name"] for g in resp.json()["data"]} == {"size", "color"}

    def test_paginated_list(self, client, option_groups):
        resp = client.get("/api/option-groups?pageSize=1")
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["data"]) == 1
        assert body["meta"]["pagination"]["total"] == 2
        assert body["meta"]["pagination"]["pageCount"] == 2


class TestOptionValues:
    """Creating values and looking them up."""

    def test_create_defaults_sort_order(self, client, admin_headers, option_groups):
        resp = client.post(
            "/api/option-values",
            json={"value": "L", "displayName": "Large", "optionGroup": str(option_groups["size"].id)},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["sortOrder"] == 1
        assert data["optionGroup"]["name"] == "size"

    def test_unknown_group(self, client, admin_headers):
        resp = client.post(
            "/api/option-values",
            json={"value": "L", "displayName": "Large", "optionGroup": str(uuid.uuid4())},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Option group not found"

    def test_missing_fields(self, client, admin_headers):
        resp = client.post("/api/option-values", json={"value": "L"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_values_for_unknown_listing(self, client):
        resp = client.get(f"/api/option-values/product-listing/{uuid.uuid4()}")
        assert resp.status_code == 404

    def test_values_for_listing(self, client, variant_listing):
        listing_id = variant_listing["listing"].id
        resp = client.get(f"/api/option-values/product-listing/{listing_id}")
        assert resp.status_code == 200
        assert {v["value"] for v in resp.json()["data"]} == {"S", "M", "red", "blue"}

    def test_value_in_use_cannot_be_deleted(self, client, admin_headers, variant_listing):
        value_id = variant_listing["values"]["S"].id
        assert client.delete(f"/api/option-values/{value_id}", headers=admin_headers).status_code == 400

    def test_unused_value_deleted(self, client, admin_headers, variant_listing):
        value_id = variant_listing["values"]["M"].id
        assert client.delete(f"/api/option-values/{value_id}", headers=admin_headers).status_code == 200


class TestBulkCreate:
    """Creating many values in one request."""

    def test_non_array_rejected(self, client, admin_headers):
        resp = client.post("/api/option-values/bulk-create", json={"data": {"value": "x"}}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Option values data must be an array"

    def test_missing_data_rejected(self, client, admin_headers):
        resp = client.post("/api/option-values/bulk-create", json={}, headers=admin_headers)
        assert resp.status_code == 400

    def test_partial_success(self, client, admin_headers, option_groups):
        group_id = str(option_groups["color"].id)
        resp = client.post(
            "/api/option-values/bulk-create",
            json={
                "data": [
                    {"value": "green", "displayName": "Green", "optionGroup": group_id},
                    {"value": "black", "optionGroup": group_id},
                    {"value": "white", "displayName": "White", "optionGroup": str(uuid.uuid4())},
                ]
            },
            headers=admin_headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] == 1
        assert len(body["errors"]) == 2
        assert body["created"][0]["value"] == "green"
