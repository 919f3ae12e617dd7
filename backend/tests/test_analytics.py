"""
Analytics, CSV export, and home dashboard tests.
"""

import csv
import io
from datetime import date, timedelta

import pytest

from vitis.services import ledger_service
from vitis.services.analytics_service import TimeUnit, EXPORT_COLUMNS, _percent_change
from vitis.time_utils import utcnow


@pytest.fixture
def sold(cashier_user, manager_user, category, make_product):
    """Two sales today plus one cancelled sale."""
    coffee = make_product(name="Coffee", stock=30, min_stock=5, price_cents=400, category_id=category.id)
    scone = make_product(name="Scone", stock=30, price_cents=300)

    ledger_service.create_sale(cashier_user.id, [
        {"product_id": coffee.id, "quantity": 3},
        {"product_id": scone.id, "quantity": 1},
    ])
    ledger_service.create_sale(cashier_user.id, [{"product_id": coffee.id, "quantity": 2}])
    cancelled = ledger_service.create_sale(cashier_user.id, [{"product_id": scone.id, "quantity": 5}])
    ledger_service.set_sale_status(cancelled.sale_id, "Cancelled", manager_user.id)
    return coffee, scone


# =============================================================================
# PERIOD ARITHMETIC
# =============================================================================


class TestTimeUnits:

    @pytest.mark.parametrize(
        "unit,day,expected",
        [
            (TimeUnit.DAY, date(2024, 3, 6), (date(2024, 3, 6), date(2024, 3, 7))),
            (TimeUnit.WEEK, date(2024, 3, 6), (date(2024, 3, 4), date(2024, 3, 11))),
            (TimeUnit.WEEK, date(2024, 3, 4), (date(2024, 3, 4), date(2024, 3, 11))),
            (TimeUnit.MONTH, date(2024, 12, 15), (date(2024, 12, 1), date(2025, 1, 1))),
        ],
    )
    def test_bounds(self, unit, day, expected):
        assert unit.bounds(day) == expected

    def test_previous_month_crosses_year(self):
        assert TimeUnit.MONTH.previous(date(2024, 1, 1)) == (date(2023, 12, 1), date(2024, 1, 1))

    def test_previous_week(self):
        assert TimeUnit.WEEK.previous(date(2024, 3, 4)) == (date(2024, 2, 26), date(2024, 3, 4))

    def test_parse(self):
        assert TimeUnit.parse(None) == TimeUnit.DAY
        assert TimeUnit.parse("Month") == TimeUnit.MONTH

    @pytest.mark.parametrize(
        "current,previous,expected",
        [(0, 0, 0.0), (500, 0, 100.0), (150, 100, 50.0), (50, 100, -50.0), (1, 3, -66.7)],
    )
    def test_percent_change(self, current, previous, expected):
        assert _percent_change(current, previous) == expected


# =============================================================================
# ANALYTICS ROUTES
# =============================================================================


class TestAnalyticsRoutes:

    def test_daily_stats_compare_with_yesterday(self, client, manager_headers, sold):
        resp = client.get("/api/analytics/sales?unit=day", headers=manager_headers)
        assert resp.status_code == 200
        body = resp.json
        assert body["current"]["total_cents"] == 2300
        assert body["current"]["order_count"] == 2
        assert body["current"]["average_ticket_cents"] == 1150
        assert body["previous"]["total_cents"] == 0
        assert body["changes"]["total_cents"] == 100.0
        assert body["period"]["start"] == utcnow().date().isoformat()

    def test_stats_for_past_date_are_empty(self, client, manager_headers, sold):
        resp = client.get("/api/analytics/sales?unit=month&date=2001-06-15", headers=manager_headers)
        assert resp.json["current"]["total_cents"] == 0
        assert resp.json["changes"]["total_cents"] == 0.0
        assert resp.json["period"] == {"unit": "month", "start": "2001-06-01", "end": "2001-07-01"}

    @pytest.mark.parametrize("query", ["unit=year", "date=06/15/2001"])
    def test_bad_stats_params(self, client, manager_headers, query):
        resp = client.get(f"/api/analytics/sales?{query}", headers=manager_headers)
        assert resp.status_code == 400

    def test_top_products_and_categories(self, client, manager_headers, sold):
        resp = client.get("/api/analytics/products?period=week", headers=manager_headers)
        assert resp.status_code == 200

        top = resp.json["top_products"]
        assert [p["name"] for p in top] == ["Coffee", "Scone"]
        assert top[0]["units_sold"] == 5
        assert top[0]["revenue_cents"] == 2000
        assert top[1]["units_sold"] == 1

        categories = {c["category"]: c for c in resp.json["categories"]}
        assert categories["Beverages"]["revenue_cents"] == 2000
        assert categories["Uncategorized"]["revenue_cents"] == 300
        assert categories["Beverages"]["percentage"] == 87.0

    def test_movement_distribution(self, client, manager_headers, sold):
        resp = client.get("/api/analytics/movements", headers=manager_headers)
        items = {m["movement_type"]: m for m in resp.json["items"]}
        assert set(items) == {"Entry", "Exit", "Adjustment"}
        # Two initial stocks plus the cancellation
        assert items["Entry"]["count"] == 3
        assert items["Exit"]["count"] == 4
        assert items["Adjustment"]["count"] == 0
        assert round(sum(m["percentage"] for m in items.values())) == 100

    def test_monthly_series(self, client, manager_headers, sold):
        resp = client.get("/api/analytics/series", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["period"] == "year"
        assert resp.json["items"] == [
            {"month": utcnow().strftime("%Y-%m"), "total_cents": 2300, "order_count": 2},
        ]

    def test_series_for_empty_range(self, client, manager_headers, sold):
        resp = client.get(
            "/api/analytics/series?start_date=2001-01-01&end_date=2001-12-31",
            headers=manager_headers,
        )
        assert resp.json["period"] == "custom"
        assert resp.json["items"] == []

    def test_date_range_overrides_period(self, client, manager_headers, sold):
        today = utcnow().date()
        resp = client.get(
            f"/api/analytics/products?period=week&start_date={today}&end_date={today}",
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.json["period"] == "custom"
        assert resp.json["start_date"] == today.isoformat()
        assert [p["name"] for p in resp.json["top_products"]] == ["Coffee", "Scone"]

        resp = client.get(
            "/api/analytics/products?start_date=2001-01-01&end_date=2001-01-31",
            headers=manager_headers,
        )
        assert resp.json["top_products"] == []
        assert resp.json["categories"] == []

    def test_movements_in_past_range_are_empty(self, client, manager_headers, sold):
        resp = client.get(
            "/api/analytics/movements?start_date=2001-01-01&end_date=2001-01-31",
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert all(m["count"] == 0 for m in resp.json["items"])

    @pytest.mark.parametrize(
        "query",
        [
            "start_date=2024-01-01",
            "end_date=2024-01-01",
            "start_date=2024-02-01&end_date=2024-01-01",
            "start_date=01/02/2024&end_date=2024-03-01",
        ],
    )
    def test_bad_date_range(self, client, manager_headers, query):
        for path in ("series", "products", "movements"):
            resp = client.get(f"/api/analytics/{path}?{query}", headers=manager_headers)
            assert resp.status_code == 400

    def test_history_search(self, client, manager_headers, sold):
        resp = client.get("/api/analytics/history?search=scone", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 2
        assert {row["status"] for row in resp.json["items"]} == {"Completed", "Cancelled"}
        assert all(row["seller"] == "cashier" for row in resp.json["items"])


class TestSalesExport:

    def test_export_csv(self, client, manager_headers, sold):
        today = utcnow().date()
        resp = client.get(
            f"/api/analytics/export?start_date={today - timedelta(days=1)}&end_date={today}",
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert f"sales_{today - timedelta(days=1)}_{today}.csv" in resp.headers["Content-Disposition"]

        rows = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
        assert rows[0] == EXPORT_COLUMNS
        assert len(rows) == 5
        assert {r[4] for r in rows[1:]} == {"Coffee", "Scone"}

    def test_export_range_errors(self, client, manager_headers, sold):
        resp = client.get("/api/analytics/export?start_date=2024-02-01&end_date=2024-01-01", headers=manager_headers)
        assert resp.status_code == 400

        resp = client.get("/api/analytics/export?start_date=2001-01-01&end_date=2001-01-31", headers=manager_headers)
        assert resp.status_code == 404

        resp = client.get("/api/analytics/export?start_date=2001-01-01", headers=manager_headers)
        assert resp.status_code == 400


# =============================================================================
# DASHBOARD
# =============================================================================


class TestDashboard:

    def test_today(self, client, cashier_headers, sold):
        resp = client.get("/api/dashboard", headers=cashier_headers)
        assert resp.status_code == 200
        body = resp.json
        assert body["sales_total_cents"] == 2300
        # Cancelled sales count as transactions but not as revenue
        assert body["transactions"] == 3
        assert body["average_ticket_cents"] == 1150
        assert body["active_products"] == 2
        top = body["top_products"]
        assert [p["name"] for p in top] == ["Coffee", "Scone"]
        assert [p["units_sold"] for p in top] == [5, 1]
        assert top[0]["stock"] == 25
        assert top[0]["category"] == "Beverages"
        assert top[1]["stock"] == 29
        assert len(body["recent_sales"]) == 3
        assert len(body["recent_movements"]) == 5

    def test_alert_counts(self, client, cashier_headers, make_product):
        make_product(stock=2, min_stock=10)
        resp = client.get("/api/dashboard", headers=cashier_headers)
        assert resp.json["pending_alerts"] == 1
        assert resp.json["low_stock_count"] == 1
        assert resp.json["recent_alerts"][0]["priority"] == "High"
        assert resp.json["sales_change_pct"] == 0.0
