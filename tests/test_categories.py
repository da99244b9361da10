"""
Category hierarchy tests.

Verifies:
- Slugs are unique and generated from names when missing
- Names are unique within one parent
- Re-parenting that would create a cycle is rejected and leaves the tree unchanged
- Categories with children or products cannot be deleted
- Tree, breadcrumbs and product assignment
"""

from app.services.categories import slugify


def create_category(client, headers, **fields):
    return client.post("/api/categories", json=fields, headers=headers)


class TestSlugs:
    """Slug generation and uniqueness."""

    def test_slugify(self):
        assert slugify("  Shoes & Boots! ") == "shoes-boots"

    def test_slug_generated_from_name(self, client, admin_headers):
        resp = create_category(client, admin_headers, name="Summer Sale")
        assert resp.status_code == 201
        assert resp.json()["data"]["slug"] == "summer-sale"

    def test_duplicate_slug_rejected(self, client, admin_headers):
        assert create_category(client, admin_headers, name="One", slug="x").status_code == 201
        resp = create_category(client, admin_headers, name="Two", slug="x")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Category with slug 'x' already exists"

    def test_name_required(self, client, admin_headers):
        assert create_category(client, admin_headers, name="  ").status_code == 400

    def test_admin_only(self, client, customer_headers):
        assert create_category(client, customer_headers, name="Nope").status_code == 403


class TestHierarchy:
    """Parents, children and cycles."""

    def test_name_unique_within_parent(self, client, admin_headers):
        parent = create_category(client, admin_headers, name="Clothing").json()["data"]
        assert create_category(client, admin_headers, name="Shirts", parent=parent["id"]).status_code == 201

        resp = create_category(client, admin_headers, name="Shirts", slug="shirts-2", parent=parent["id"])
        assert resp.status_code == 400

        other = create_category(client, admin_headers, name="Kids").json()["data"]
        resp = create_category(client, admin_headers, name="Shirts", slug="kids-shirts", parent=other["id"])
        assert resp.status_code == 201

    def test_cycle_rejected(self, client, admin_headers):
        root = create_category(client, admin_headers, name="Root").json()["data"]
        child = create_category(client, admin_headers, name="Child", parent=root["id"]).json()["data"]
        grandchild = create_category(client, admin_headers, name="Grandchild", parent=child["id"]).json()["data"]

        resp = client.put(f"/api/categories/{root['id']}", json={"parent": grandchild["id"]}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Circular reference detected in category hierarchy"

        unchanged = client.get(f"/api/categories/{root['id']}").json()["data"]
        assert unchanged["parent"] is None

    def test_own_parent_rejected(self, client, admin_headers):
        category = create_category(client, admin_headers, name="Solo").json()["data"]
        resp = client.put(f"/api/categories/{category['id']}", json={"parent": category["id"]}, headers=admin_headers)
        assert resp.status_code == 400

    def test_missing_parent_rejected(self, client, admin_headers):
        resp = create_category(client, admin_headers, name="Orphan", parent="7d3c5bd5-3f52-4a7e-9a56-0d9d7c4b4c11")
        assert resp.status_code == 400

    def test_breadcrumbs_and_tree(self, client, admin_headers):
        root = create_category(client, admin_headers, name="Home").json()["data"]
        child = create_category(client, admin_headers, name="Kitchen", parent=root["id"]).json()["data"]

        crumbs = client.get(f"/api/categories/{child['id']}/breadcrumbs").json()["data"]
        assert [c["name"] for c in crumbs] == ["Home", "Kitchen"]

        tree = client.get("/api/categories/tree").json()["data"]
        assert len(tree) == 1
        assert tree[0]["children"][0]["name"] == "Kitchen"

    def test_delete_with_children_rejected(self, client, admin_headers):
        root = create_category(client, admin_headers, name="Garden").json()["data"]
        create_category(client, admin_headers, name="Tools", parent=root["id"])
        assert client.delete(f"/api/categories/{root['id']}", headers=admin_headers).status_code == 400

    def test_invalid_parent_filter(self, client):
        assert client.get("/api/categories?parent=not-a-uuid").status_code == 400


class TestCategoryProducts:
    """Assigning products to categories."""

    def test_assign_and_block_delete(self, client, admin_headers, product):
        category = create_category(client, admin_headers, name="Bags").json()["data"]

        resp = client.post(
            f"/api/categories/{category['id']}/products/assign",
            json={"productIds": [str(product.id)]},
            headers=admin_headers,
        )
        assert resp.status_code == 200

        products = client.get(f"/api/categories/{category['id']}/products").json()
        assert products["meta"]["pagination"]["total"] == 1

        assert client.delete(f"/api/categories/{category['id']}", headers=admin_headers).status_code == 400

    def test_assign_empty_list_rejected(self, client, admin_headers):
        category = create_category(client, admin_headers, name="Hats").json()["data"]
        resp = client.post(
            f"/api/categories/{category['id']}/products/assign",
            json={"productIds": []},
            headers=admin_headers,
        )
        assert resp.status_code == 400
