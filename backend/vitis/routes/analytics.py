# Overview: Flask API routes for analytics; parses input and returns JSON responses.

"""
Analytics Routes

Provides sales stats with period comparison, a monthly sales series, top
products, category breakdown, movement distribution, history search, and CSV export.
"""

from flask import Blueprint, Response, request, jsonify, current_app

from ..decorators import require_auth, require_permission
from ..errors import ServiceError, InvalidRequest
from ..services import analytics_service
from ..services.analytics_service import TimeUnit
from ..services.sales_service import SalesPeriod
from vitis.time_utils import parse_iso_date, utcnow


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")
dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


def _date_arg(name: str, required: bool = False):
    try:
        value = parse_iso_date(request.args.get(name))
    except ValueError:
        raise InvalidRequest(f"{name} must be a date (YYYY-MM-DD)")
    if required and value is None:
        raise InvalidRequest(f"{name} is required")
    return value


def _window_args() -> dict:
    """Optional ?start_date=&end_date= pair (inclusive days) that overrides ?period=."""
    return {
        "start_date": _date_arg("start_date"),
        "end_date": _date_arg("end_date"),
    }


def _window_payload(period: SalesPeriod, window: dict) -> dict:
    if window["start_date"] is None and window["end_date"] is None:
        return {"period": period.value}
    return {
        "period": "custom",
        "start_date": window["start_date"].isoformat(),
        "end_date": window["end_date"].isoformat(),
    }


@analytics_bp.get("/sales")
@require_auth
@require_permission("VIEW_SALES_REPORTS")
def sales_stats_route():
    """
    Query params:
    - unit: day|week|month (default day)
    - date: YYYY-MM-DD (default today, UTC)
    """
    try:
        time_unit = TimeUnit.parse(request.args.get("unit"))
        day = _date_arg("date") or utcnow().date()
        return jsonify(analytics_service.sales_stats(time_unit, day)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute sales stats")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/series")
@require_auth
@require_permission("VIEW_SALES_REPORTS")
def sales_series_route():
    """
    Monthly revenue and sale count.

    Query params:
    - period: week|month|year (default year)
    - start_date, end_date: YYYY-MM-DD, given together; they override period
    """
    try:
        period = SalesPeriod.parse(request.args.get("period") or SalesPeriod.YEAR.value)
        window = _window_args()
        items = analytics_service.sales_series(period, **window)
        return jsonify({**_window_payload(period, window), "items": items}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute sales series")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/products")
@require_auth
@require_permission("VIEW_SALES_REPORTS")
def products_analysis_route():
    """Top products and sales by category over the period or date range."""
    try:
        period = SalesPeriod.parse(request.args.get("period"))
        window = _window_args()
        limit = max(1, min(request.args.get("limit", default=5, type=int), 50))
        top = analytics_service.top_products(period, limit, **window)
        categories = analytics_service.sales_by_category(period, **window)
        return jsonify({
            **_window_payload(period, window),
            "top_products": top,
            "categories": categories,
        }), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to analyze products")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/movements")
@require_auth
@require_permission("VIEW_SALES_REPORTS")
def movement_distribution_route():
    try:
        period = SalesPeriod.parse(request.args.get("period"))
        window = _window_args()
        items = analytics_service.movement_distribution(period, **window)
        return jsonify({**_window_payload(period, window), "items": items}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute movement distribution")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/history")
@require_auth
@require_permission("VIEW_SALES_REPORTS")
def sales_history_route():
    try:
        rows = analytics_service.search_sales_history(
            search=request.args.get("search"),
            start_date=_date_arg("start_date"),
            end_date=_date_arg("end_date"),
            limit=max(1, min(request.args.get("limit", default=50, type=int), 500)),
        )
        return jsonify({"items": rows, "count": len(rows)}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to search sales history")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/export")
@require_auth
@require_permission("VIEW_SALES_REPORTS")
def export_sales_route():
    """CSV download of sale lines between start_date and end_date (inclusive)."""
    try:
        start_date = _date_arg("start_date", required=True)
        end_date = _date_arg("end_date", required=True)
        csv_text = analytics_service.export_sales_csv(start_date, end_date)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to export sales")
        return jsonify({"error": "Internal server error"}), 500

    filename = f"sales_{start_date.isoformat()}_{end_date.isoformat()}.csv"
    return Response(
        csv_text,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@dashboard_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def home_dashboard_route():
    """Today's numbers (or ?date=YYYY-MM-DD) for the home screen."""
    try:
        return jsonify(analytics_service.home_dashboard(_date_arg("date"))), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load dashboard")
        return jsonify({"error": "Internal server error"}), 500
