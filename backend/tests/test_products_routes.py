"""
Product and category route tests.

Stock is never written through product payloads: creation records an
"Initial stock" Entry and PUT /<id>/stock records the difference.
"""

import pytest

from vitis.extensions import db
from vitis.models import InventoryMovement


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProductCreate:

    def test_create_with_initial_stock(self, client, manager_headers, category):
        resp = client.post(
            "/api/products",
            json={
                "name": "Espresso beans",
                "sku": "ESP-1",
                "price_cents": 1299,
                "min_stock": 3,
                "stock": 12,
                "category_id": category.id,
            },
            headers=manager_headers,
        )
        assert resp.status_code == 201
        body = resp.json
        assert body["stock"] == 12
        assert body["category"] == "Beverages"
        assert body["stock_status"] == "ok"

        movements = db.session.query(InventoryMovement).filter_by(product_id=body["id"]).all()
        assert len(movements) == 1
        assert movements[0].movement_type == "Entry"
        assert movements[0].note == "Initial stock"

    def test_create_without_stock_writes_no_movement(self, client, manager_headers):
        resp = client.post("/api/products", json={"name": "Mug", "price_cents": 500}, headers=manager_headers)
        assert resp.status_code == 201
        assert resp.json["stock"] == 0
        assert db.session.query(InventoryMovement).filter_by(product_id=resp.json["id"]).count() == 0

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "No price"},
            {"price_cents": 100},
            {"name": "Neg", "price_cents": -1},
            {"name": "Float", "price_cents": 9.99},
            {"name": "Neg stock", "price_cents": 100, "stock": -3},
            {"name": "Extra", "price_cents": 100, "owner": "me"},
            {"name": "", "price_cents": 100},
        ],
    )
    def test_invalid_payloads(self, client, manager_headers, payload):
        resp = client.post("/api/products", json=payload, headers=manager_headers)
        assert resp.status_code == 400

    def test_duplicate_sku(self, client, manager_headers, make_product):
        make_product(sku="DUP-1")
        resp = client.post(
            "/api/products",
            json={"name": "Other", "sku": "DUP-1", "price_cents": 100},
            headers=manager_headers,
        )
        assert resp.status_code == 409

    def test_unknown_category(self, client, manager_headers):
        resp = client.post(
            "/api/products",
            json={"name": "Orphan", "price_cents": 100, "category_id": 999999},
            headers=manager_headers,
        )
        assert resp.status_code == 400


class TestProductUpdate:

    def test_update_fields(self, client, manager_headers, make_product):
        product = make_product(name="Old", price_cents=100)
        resp = client.put(
            f"/api/products/{product.id}",
            json={"name": "New", "price_cents": 250},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.json["name"] == "New"
        assert resp.json["price_cents"] == 250

    def test_update_cannot_set_stock(self, client, manager_headers, make_product):
        product = make_product(stock=5)
        resp = client.put(f"/api/products/{product.id}", json={"stock": 500}, headers=manager_headers)
        assert resp.status_code == 400
        db.session.refresh(product)
        assert product.stock == 5

    def test_update_missing_product(self, client, manager_headers, db_session):
        resp = client.put("/api/products/999999", json={"name": "X"}, headers=manager_headers)
        assert resp.status_code == 404

    def test_soft_delete(self, client, manager_headers, make_product):
        product = make_product(name="Retired")
        resp = client.delete(f"/api/products/{product.id}", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["product"]["is_active"] is False

        listed = client.get("/api/products", headers=manager_headers).json
        assert product.id not in {p["id"] for p in listed["items"]}

        listed = client.get("/api/products?include_inactive=true", headers=manager_headers).json
        assert product.id in {p["id"] for p in listed["items"]}


class TestProductStockLevel:

    def test_lower_level_records_exit(self, client, manager_headers, make_product):
        product = make_product(stock=10, min_stock=5)
        resp = client.put(
            f"/api/products/{product.id}/stock",
            json={"stock": 4, "note": "Shelf count"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        movement = resp.json["movement"]
        assert movement["movement_type"] == "Exit"
        assert movement["quantity"] == 6
        assert resp.json["product"]["stock"] == 4
        assert resp.json["product"]["pending_alert"]["priority"] == "High"

    def test_higher_level_records_entry(self, client, manager_headers, make_product):
        product = make_product(stock=2)
        resp = client.put(f"/api/products/{product.id}/stock", json={"stock": 9}, headers=manager_headers)
        assert resp.json["movement"]["movement_type"] == "Entry"
        assert resp.json["movement"]["quantity"] == 7

    def test_same_level_records_nothing(self, client, manager_headers, make_product):
        product = make_product(stock=3)
        resp = client.put(f"/api/products/{product.id}/stock", json={"stock": 3}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["movement"] is None

    @pytest.mark.parametrize("body", [{}, {"stock": -1}, {"stock": "ten"}, {"stock": 1.5}])
    def test_invalid_level(self, client, manager_headers, make_product, body):
        product = make_product(stock=3)
        resp = client.put(f"/api/products/{product.id}/stock", json=body, headers=manager_headers)
        assert resp.status_code == 400


class TestProductQueries:

    def test_stock_filters(self, client, cashier_headers, make_product):
        out = make_product(name="Out", stock=0, min_stock=2)
        low = make_product(name="Low", stock=2, min_stock=2)
        ok = make_product(name="Ok", stock=20, min_stock=2)

        def ids(stock):
            resp = client.get(f"/api/products?stock={stock}", headers=cashier_headers)
            assert resp.status_code == 200
            return {p["id"] for p in resp.json["items"]}

        assert ids("out") == {out.id}
        assert ids("low") == {low.id}
        assert ids("ok") == {ok.id}
        assert ids("all") == {out.id, low.id, ok.id}

    def test_invalid_stock_filter(self, client, cashier_headers):
        resp = client.get("/api/products?stock=plenty", headers=cashier_headers)
        assert resp.status_code == 400

    def test_search_and_pagination(self, client, cashier_headers, make_product):
        for i in range(5):
            make_product(name=f"Tea {i}")
        make_product(name="Coffee")

        resp = client.get("/api/products?search=tea&page=2&per_page=2", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 2
        assert resp.json["pagination"]["total"] == 5
        assert resp.json["pagination"]["total_pages"] == 3
        assert resp.json["pagination"]["has_prev"] is True

    def test_detail_includes_movements(self, client, cashier_headers, make_product):
        product = make_product(stock=4)
        resp = client.get(f"/api/products/{product.id}", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["recent_movements"][0]["note"] == "Initial stock"

    def test_detail_not_found(self, client, cashier_headers):
        resp = client.get("/api/products/999999", headers=cashier_headers)
        assert resp.status_code == 404

    def test_summary(self, client, cashier_headers, make_product):
        make_product(stock=2, price_cents=500, min_stock=5)
        make_product(stock=10, price_cents=100)

        resp = client.get("/api/products/summary", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["total_products"] == 2
        assert resp.json["inventory_value_cents"] == 2000
        assert resp.json["low_stock_count"] == 1
        assert resp.json["movements_this_month"] == 2

    def test_stock_details(self, client, cashier_headers, make_product):
        make_product(stock=0)
        make_product(stock=9)
        resp = client.get("/api/products/stock/details", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 2
        assert resp.json["status_counts"] == {"ok": 1, "low": 0, "out": 1}
        assert resp.json["items"][0]["stock"] == 0


# =============================================================================
# CATEGORIES
# =============================================================================


class TestCategories:

    def test_create_and_duplicate_name(self, client, manager_headers, db_session):
        resp = client.post("/api/categories", json={"name": "Snacks"}, headers=manager_headers)
        assert resp.status_code == 201

        resp = client.post("/api/categories", json={"name": "snacks"}, headers=manager_headers)
        assert resp.status_code == 409

    def test_list_counts_active_products(self, client, cashier_headers, category, make_product):
        make_product(category_id=category.id)
        retired = make_product(category_id=category.id)
        retired.is_active = False
        db.session.commit()

        resp = client.get("/api/categories", headers=cashier_headers)
        assert resp.status_code == 200
        item = next(c for c in resp.json["items"] if c["id"] == category.id)
        assert item["product_count"] == 1

    def test_delete_refused_while_products_active(self, client, manager_headers, category, make_product):
        make_product(category_id=category.id)
        resp = client.delete(f"/api/categories/{category.id}", headers=manager_headers)
        assert resp.status_code == 409

    def test_delete_empty_category(self, client, manager_headers, category):
        resp = client.delete(f"/api/categories/{category.id}", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["category"]["is_active"] is False

        listed = client.get("/api/categories", headers=manager_headers).json
        assert category.id not in {c["id"] for c in listed["items"]}

    def test_update_and_products(self, client, manager_headers, category, make_product):
        product = make_product(category_id=category.id)

        resp = client.put(f"/api/categories/{category.id}", json={"description": "Cold drinks"}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["description"] == "Cold drinks"

        resp = client.get(f"/api/categories/{category.id}/products", headers=manager_headers)
        assert resp.status_code == 200
        assert [p["id"] for p in resp.json["items"]] == [product.id]
        assert resp.json["category"]["name"] == "Beverages"

    def test_missing_category(self, client, manager_headers, db_session):
        assert client.get("/api/categories/999999", headers=manager_headers).status_code == 404
        assert client.delete("/api/categories/999999", headers=manager_headers).status_code == 404
