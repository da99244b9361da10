"""
Product listing variant tests.

Verifies:
- SKUs are required and unique
- Option values must belong to the listing's groups, one per group
- Each option combination exists at most once per listing, also after edits and moves
- Variant lookup by selected options and SKU generation
- Availability, bulk price updates and inventory operations
"""

import uuid

from app.models import OptionGroup, OptionValue, ProductListing, ProductListingVariant


def variant_body(variant_listing, *value_keys, **fields):
    body = {
        "sku": "TOTE-M-BLUE",
        "basePrice": 2600,
        "inventory": 5,
        "productListing": str(variant_listing["listing"].id),
        "optionValues": [str(variant_listing["values"][k].id) for k in value_keys],
    }
    body.update(fields)
    return body


class TestCreateVariant:
    """Validation applied when a variant is created."""

    def test_create(self, client, admin_headers, variant_listing):
        resp = client.post(
            "/api/product-listing-variants",
            json=variant_body(variant_listing, "M", "blue"),
            headers=admin_headers,
        )
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["sku"] == "TOTE-M-BLUE"
        assert {v["value"] for v in data["optionValues"]} == {"M", "blue"}

    def test_duplicate_sku(self, client, admin_headers, variant_listing):
        resp = client.post(
            "/api/product-listing-variants",
            json=variant_body(variant_listing, "M", "blue", sku="TOTE-S-RED"),
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "SKU must be unique" in resp.json()["detail"]

    def test_duplicate_combination(self, client, admin_headers, variant_listing):
        resp = client.post(
            "/api/product-listing-variants",
            json=variant_body(variant_listing, "S", "red", sku="ANOTHER"),
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "A variant with this option combination already exists" in resp.json()["detail"]

    def test_two_values_from_one_group(self, client, admin_headers, variant_listing):
        resp = client.post(
            "/api/product-listing-variants",
            json=variant_body(variant_listing, "S", "M"),
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "Cannot have multiple values from the same option group" in resp.json()["detail"]

    def test_value_outside_listing_groups(self, client, admin_headers, db_session, variant_listing):
        other = OptionGroup(name="strap", display_name="Strap", type="select")
        db_session.add(other)
        db_session.flush()
        leather = OptionValue(option_group_id=other.id, value="leather", display_name="Leather")
        db_session.add(leather)
        db_session.commit()

        body = variant_body(variant_listing, "M")
        body["optionValues"].append(str(leather.id))
        resp = client.post("/api/product-listing-variants", json=body, headers=admin_headers)
        assert resp.status_code == 400
        assert "Option value does not belong to product listing option groups" in resp.json()["detail"]

    def test_missing_price_and_listing(self, client, admin_headers):
        resp = client.post("/api/product-listing-variants", json={"sku": "LONE"}, headers=admin_headers)
        assert resp.status_code == 400
        detail = resp.json()["detail"]
        assert "Valid base price is required" in detail
        assert "Product listing is required" in detail

    def test_admin_only(self, client, customer_headers, variant_listing):
        resp = client.post(
            "/api/product-listing-variants",
            json=variant_body(variant_listing, "M", "blue"),
            headers=customer_headers,
        )
        assert resp.status_code == 403


class TestVariantLookup:
    """Finding variants and generating SKUs."""

    def test_find_by_options(self, client, variant_listing):
        resp = client.post(
            "/api/product-listing-variants/find-by-options",
            json={
                "productListingId": str(variant_listing["listing"].id),
                "optionValueIds": [str(variant_listing["values"]["red"].id)],
            },
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["sku"] == "TOTE-S-RED"

    def test_find_by_options_no_match(self, client, variant_listing):
        resp = client.post(
            "/api/product-listing-variants/find-by-options",
            json={
                "productListingId": str(variant_listing["listing"].id),
                "optionValueIds": [str(variant_listing["values"]["blue"].id)],
            },
        )
        assert resp.status_code == 404

    def test_find_by_options_requires_values(self, client, variant_listing):
        resp = client.post(
            "/api/product-listing-variants/find-by-options",
            json={"productListingId": str(variant_listing["listing"].id), "optionValueIds": []},
        )
        assert resp.status_code == 400

    def test_generate_sku(self, client, admin_headers, variant_listing):
        resp = client.post(
            "/api/product-listing-variants/generate-sku",
            json={
                "productListingId": str(variant_listing["listing"].id),
                "optionValueIds": [
                    str(variant_listing["values"]["M"].id),
                    str(variant_listing["values"]["blue"].id),
                ],
            },
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["sku"] == "TOTE-M-blue"

    def test_generate_sku_avoids_collision(self, client, admin_headers, db_session, variant_listing):
        variant = variant_listing["variant"]
        variant.sku = "TOTE-S-red"
        db_session.commit()

        resp = client.post(
            "/api/product-listing-variants/generate-sku",
            json={
                "productListingId": str(variant_listing["listing"].id),
                "optionValueIds": [
                    str(variant_listing["values"]["S"].id),
                    str(variant_listing["values"]["red"].id),
                ],
            },
            headers=admin_headers,
        )
        assert resp.json()["data"]["sku"] == "TOTE-S-red-1"

    def test_generate_sku_unknown_listing(self, client, admin_headers):
        resp = client.post(
            "/api/product-listing-variants/generate-sku",
            json={"productListingId": str(uuid.uuid4())},
            headers=admin_headers,
        )
        assert resp.status_code == 404


class TestStockAndPricing:
    """Availability, price and inventory updates."""

    def test_availability(self, client, variant_listing):
        variant_id = variant_listing["variant"].id
        ok = client.get(f"/api/product-listing-variants/{variant_id}/availability?quantity=3").json()["data"]
        assert ok["available"] is True

        short = client.get(f"/api/product-listing-variants/{variant_id}/availability?quantity=4").json()["data"]
        assert short["available"] is False
        assert short["availableQuantity"] == 3

    def test_bulk_update_prices(self, client, admin_headers, variant_listing):
        variant_id = str(variant_listing["variant"].id)
        resp = client.post(
            "/api/product-listing-variants/bulk-update-prices",
            json={
                "updates": [
                    {"id": variant_id, "basePrice": 2700},
                    {"id": str(uuid.uuid4()), "basePrice": 1000},
                    {"id": variant_id, "basePrice": -5},
                ]
            },
            headers=admin_headers,
        )
        assert resp.status_code == 200
        results = resp.json()["data"]
        assert results["success"] == 1
        assert results["errors"] == 2
        assert results["details"][0] == {"id": variant_id, "oldPrice": 2500, "newPrice": 2700}

    def test_bulk_update_requires_list(self, client, admin_headers):
        resp = client.post("/api/product-listing-variants/bulk-update-prices", json={"updates": []}, headers=admin_headers)
        assert resp.status_code == 400

    def test_pricing_summary(self, client, variant_listing):
        listing_id = variant_listing["listing"].id
        resp = client.get(f"/api/product-listing-variants/product-listing/{listing_id}/pricing-summary")
        assert resp.status_code == 200
        assert resp.json()["data"]["variantCount"] == 1
        assert resp.json()["data"]["minPrice"] == 2500

    def test_inventory_operations(self, client, admin_headers, variant_listing):
        variant_id = variant_listing["variant"].id
        url = f"/api/product-listing-variants/{variant_id}/inventory"

        assert client.put(url, json={"quantity": 4, "operation": "add"}, headers=admin_headers).json()["data"]["inventory"] == 7
        assert client.put(url, json={"quantity": 10, "operation": "subtract"}, headers=admin_headers).json()["data"]["inventory"] == 0
        assert client.put(url, json={"quantity": 2, "operation": "set"}, headers=admin_headers).json()["data"]["inventory"] == 2
        assert client.put(url, json={"quantity": 1, "operation": "double"}, headers=admin_headers).status_code == 400


# =============================================================================
# UPDATE
# =============================================================================


def second_listing(db_session, variant_listing, *value_keys, groups=("size", "color"), sku="DUP"):
    """Another listing of the same product, with one variant carrying ``value_keys``."""
    listing = ProductListing(
        product_id=variant_listing["listing"].product_id,
        title="Canvas Tote (second run)",
        type="variant",
        base_price=2500,
        is_active=True,
    )
    listing.option_groups = [variant_listing[g] for g in groups]
    db_session.add(listing)
    db_session.flush()

    variant = ProductListingVariant(product_listing_id=listing.id, sku=sku, base_price=2500, inventory=1)
    variant.option_values = [variant_listing["values"][k] for k in value_keys]
    db_session.add(variant)
    db_session.commit()
    return listing, variant


class TestUpdateVariant:
    """The option combination stays unique when a variant is edited or moved."""

    def test_move_onto_taken_combination(self, client, admin_headers, db_session, variant_listing):
        _, duplicate = second_listing(db_session, variant_listing, "S", "red")
        home_id = variant_listing["listing"].id

        resp = client.put(
            f"/api/product-listing-variants/{duplicate.id}",
            json={"productListing": str(home_id)},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "A variant with this option combination already exists" in resp.json()["detail"]

        listed = client.get(f"/api/product-listing-variants?productListing={home_id}").json()
        skus = [v["sku"] for v in listed["data"]]
        assert skus == ["TOTE-S-RED"]

    def test_move_with_free_combination(self, client, admin_headers, db_session, variant_listing):
        _, variant = second_listing(db_session, variant_listing, "M", "blue")
        resp = client.put(
            f"/api/product-listing-variants/{variant.id}",
            json={"productListing": str(variant_listing["listing"].id)},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["productListing"] == str(variant_listing["listing"].id)

    def test_move_onto_listing_without_the_groups(self, client, admin_headers, db_session, variant_listing):
        target, _ = second_listing(db_session, variant_listing, "M", groups=("size",))
        resp = client.put(
            f"/api/product-listing-variants/{variant_listing['variant'].id}",
            json={"productListing": str(target.id)},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "Option value does not belong to product listing option groups" in resp.json()["detail"]

    def test_change_values_to_taken_combination(self, client, admin_headers, variant_listing):
        created = client.post(
            "/api/product-listing-variants",
            json=variant_body(variant_listing, "M", "blue"),
            headers=admin_headers,
        ).json()["data"]
        values = variant_listing["values"]
        url = f"/api/product-listing-variants/{created['id']}"

        taken = client.put(url, json={"optionValues": [str(values["S"].id), str(values["red"].id)]}, headers=admin_headers)
        assert taken.status_code == 400

        free = client.put(url, json={"optionValues": [str(values["M"].id), str(values["red"].id)]}, headers=admin_headers)
        assert free.status_code == 200
        assert {v["value"] for v in free.json()["data"]["optionValues"]} == {"M", "red"}

    def test_price_update_leaves_combination_alone(self, client, admin_headers, variant_listing):
        resp = client.put(
            f"/api/product-listing-variants/{variant_listing['variant'].id}",
            json={"basePrice": 2900},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["basePrice"] == 2900

    def test_only_one_variant_without_options(self, client, admin_headers, listing):
        body = {"sku": "PLAIN-1", "basePrice": 2000, "productListing": str(listing.id)}
        first = client.post("/api/product-listing-variants", json=body, headers=admin_headers)
        assert first.status_code == 201

        second = client.post(
            "/api/product-listing-variants",
            json={**body, "sku": "PLAIN-2", "optionValues": []},
            headers=admin_headers,
        )
        assert second.status_code == 400
        assert "A variant with this option combination already exists" in second.json()["detail"]
