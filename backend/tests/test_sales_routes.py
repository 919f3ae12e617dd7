"""
Sales route tests: creation, status changes, listing, detail, and stats.
"""

from unittest.mock import patch

import pytest

from vitis.extensions import db
from vitis.models import Sale
from vitis.services import ledger_service


def _post_sale(client, headers, items, **extra):
    return client.post("/api/sales", json={"items": items, **extra}, headers=headers)


class TestCreateSaleRoute:

    def test_create_sale(self, client, cashier_headers, make_product):
        product = make_product(name="Croissant", stock=10, min_stock=5, price_cents=350)

        resp = _post_sale(client, cashier_headers, [{"product_id": product.id, "quantity": 6}], payment_method="Cash")
        assert resp.status_code == 201
        body = resp.json
        assert body["total_cents"] == 2100
        assert body["document_number"].startswith("VT-")
        assert body["sale"]["username"] == "cashier"
        assert body["sale"]["lines"][0]["product_name"] == "Croissant"
        assert body["sale"]["movements"][0]["movement_type"] == "Exit"

        db.session.refresh(product)
        assert product.stock == 4

    def test_insufficient_stock_details(self, client, cashier_headers, make_product):
        product = make_product(stock=4)

        resp = _post_sale(client, cashier_headers, [{"product_id": product.id, "quantity": 5}])
        assert resp.status_code == 400
        assert resp.json["error"] == "Insufficient stock"
        assert resp.json["details"]["available"] == 4
        assert resp.json["details"]["requested"] == 5
        assert db.session.query(Sale).count() == 0

    def test_unknown_product_is_404(self, client, cashier_headers, db_session):
        resp = _post_sale(client, cashier_headers, [{"product_id": 999999, "quantity": 1}])
        assert resp.status_code == 404

    def test_empty_items(self, client, cashier_headers):
        resp = _post_sale(client, cashier_headers, [])
        assert resp.status_code == 400


class TestSaleStatusRoute:

    def test_cancel_by_document_number(self, client, cashier_user, manager_headers, make_product):
        product = make_product(stock=10)
        sale = ledger_service.create_sale(cashier_user.id, [{"product_id": product.id, "quantity": 3}])

        resp = client.patch(
            f"/api/sales/{sale.document_number}/status",
            json={"status": "Cancelled"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.json["previous_status"] == "Completed"

        db.session.refresh(product)
        assert product.stock == 10

        resp = client.patch(f"/api/sales/{sale.sale_id}/status", json={"status": "Completed"}, headers=manager_headers)
        assert resp.status_code == 400

    @pytest.mark.parametrize("body,expected", [({}, 400), ({"status": "Lost"}, 400)])
    def test_bad_status(self, client, cashier_user, manager_headers, make_product, body, expected):
        product = make_product(stock=2)
        sale = ledger_service.create_sale(cashier_user.id, [{"product_id": product.id, "quantity": 1}])
        resp = client.patch(f"/api/sales/{sale.sale_id}/status", json=body, headers=manager_headers)
        assert resp.status_code == expected

    def test_unknown_sale(self, client, manager_headers):
        resp = client.patch("/api/sales/VT-99999/status", json={"status": "Cancelled"}, headers=manager_headers)
        assert resp.status_code == 404


class TestSaleQueries:

    @pytest.fixture
    def sales(self, cashier_user, manager_user, make_product):
        product = make_product(stock=50, price_cents=1000)
        first = ledger_service.create_sale(cashier_user.id, [{"product_id": product.id, "quantity": 1}])
        second = ledger_service.create_sale(manager_user.id, [{"product_id": product.id, "quantity": 2}])
        third = ledger_service.create_sale(cashier_user.id, [{"product_id": product.id, "quantity": 3}])
        ledger_service.set_sale_status(third.sale_id, "Cancelled", manager_user.id)
        return first, second, third

    def test_list_newest_first(self, client, cashier_headers, sales):
        resp = client.get("/api/sales", headers=cashier_headers)
        assert resp.status_code == 200
        ids = [s["id"] for s in resp.json["items"]]
        assert ids == sorted(ids, reverse=True)
        assert resp.json["pagination"]["total"] == 3
        assert all(s["item_count"] == 1 for s in resp.json["items"])

    def test_filter_by_status(self, client, cashier_headers, sales):
        resp = client.get("/api/sales?status=Cancelled", headers=cashier_headers)
        assert [s["id"] for s in resp.json["items"]] == [sales[2].sale_id]

        resp = client.get("/api/sales?status=All", headers=cashier_headers)
        assert resp.json["pagination"]["total"] == 3

        resp = client.get("/api/sales?status=Refunded", headers=cashier_headers)
        assert resp.status_code == 400

    def test_search_by_document_or_username(self, client, cashier_headers, sales):
        resp = client.get(f"/api/sales?search={sales[1].document_number}", headers=cashier_headers)
        assert sales[1].sale_id in [s["id"] for s in resp.json["items"]]

        resp = client.get("/api/sales?search=manager", headers=cashier_headers)
        assert [s["id"] for s in resp.json["items"]] == [sales[1].sale_id]

    def test_date_filters(self, client, cashier_headers, sales):
        resp = client.get("/api/sales?start_date=2000-01-01&end_date=2000-01-31", headers=cashier_headers)
        assert resp.json["items"] == []

        resp = client.get("/api/sales?start_date=yesterday", headers=cashier_headers)
        assert resp.status_code == 400

    def test_detail(self, client, cashier_headers, sales):
        resp = client.get(f"/api/sales/{sales[2].document_number}", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["status"] == "Cancelled"
        assert [m["movement_type"] for m in resp.json["movements"]] == ["Exit", "Entry"]

        assert client.get("/api/sales/VT-99999", headers=cashier_headers).status_code == 404
        assert client.get("/api/sales/abc", headers=cashier_headers).status_code == 404

    def test_stats_exclude_cancelled_revenue(self, client, manager_headers, sales):
        resp = client.get("/api/sales/stats?period=week", headers=manager_headers)
        assert resp.status_code == 200
        body = resp.json
        assert body["period"] == "week"
        assert body["total_cents"] == 3000
        assert body["transactions"] == 3
        assert body["average_ticket_cents"] == 1500
        assert body["units_sold"] == 3
        assert body["by_status"] == {"completed": 2, "pending": 0, "cancelled": 1}

        assert client.get("/api/sales/stats?period=decade", headers=manager_headers).status_code == 400

    def test_products_for_sale(self, client, cashier_headers, make_product):
        make_product(name="Available", stock=1)
        make_product(name="Empty", stock=0)
        resp = client.get("/api/sales/products", headers=cashier_headers)
        assert [p["name"] for p in resp.json["items"]] == ["Available"]


class TestUnexpectedFailures:

    @pytest.mark.parametrize(
        "target,url,message",
        [
            ("products_for_sale", "/api/sales/products", "Failed to list products for sale"),
            ("sales_stats", "/api/sales/stats", "Failed to compute sales stats"),
        ],
    )
    def test_read_routes_log_and_return_500(self, client, manager_headers, caplog, target, url, message):
        with patch(f"vitis.services.sales_service.{target}", side_effect=RuntimeError("database unavailable")):
            resp = client.get(url, headers=manager_headers)

        assert resp.status_code == 500
        assert resp.json == {"error": "Internal server error"}
        assert message in caplog.text
