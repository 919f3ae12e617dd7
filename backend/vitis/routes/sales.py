# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/vitis/routes/sales.py
"""
Sales routes.

Creating a sale and changing its status go through the ledger service, which
writes the sale, its lines, the Exit (or compensating Entry) movements, and
any stock alerts in one transaction.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..services import ledger_service, sales_service
from ..services.sales_service import SalesPeriod
from ..errors import ServiceError, InvalidRequest
from ..decorators import require_auth, require_permission
from vitis.time_utils import parse_iso_date


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _date_arg(name: str):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise InvalidRequest(f"{name} must be a date (YYYY-MM-DD)")


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    """
    List sales, newest first.

    Query params:
    - search: document number ("VT-007") or cashier username
    - status: Completed|Pending|Cancelled|All
    - start_date, end_date: YYYY-MM-DD (inclusive)
    - page (default 1), per_page (default 10, max 100)
    """
    try:
        result = sales_service.list_sales(
            search=request.args.get("search"),
            status=request.args.get("status"),
            start_date=_date_arg("start_date"),
            end_date=_date_arg("end_date"),
            page=request.args.get("page", default=1, type=int),
            per_page=request.args.get("per_page", default=10, type=int),
        )
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/products")
@require_auth
@require_permission("CREATE_SALE")
def sellable_products_route():
    """Active products with stock available, for the point-of-sale picker."""
    try:
        products = sales_service.products_for_sale(
            search=request.args.get("search"),
            limit=min(request.args.get("limit", default=50, type=int), 100),
        )
    except Exception:
        current_app.logger.exception("Failed to list products for sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"items": products, "count": len(products)}), 200


@sales_bp.get("/stats")
@require_auth
@require_permission("VIEW_SALES_REPORTS")
def sales_stats_route():
    """Totals over the trailing week, month (default), or year."""
    try:
        period = SalesPeriod.parse(request.args.get("period"))
        return jsonify(sales_service.sales_stats(period)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute sales stats")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<sale_ref>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_ref: str):
    """Sale detail by id or document number (e.g. /api/sales/VT-012)."""
    try:
        return jsonify(sales_service.get_sale_detail(sale_ref)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_sale_route():
    """
    Create a completed sale.

    Body:
    {
        "items": [{"product_id": 1, "quantity": 2, "unit_price_cents": 500, "discount_cents": 0}],
        "payment_method": "Cash",   (optional, default "Credit card")
        "notes": "..."              (optional)
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        result = ledger_service.create_sale(
            actor_user_id=g.current_user.id,
            items=payload.get("items"),
            payment_method=payload.get("payment_method"),
            notes=payload.get("notes"),
        )
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        **result.to_dict(),
        "sale": sales_service.get_sale_detail(result.sale_id),
    }), 201


@sales_bp.patch("/<sale_ref>/status")
@require_auth
@require_permission("CHANGE_SALE_STATUS")
def set_sale_status_route(sale_ref: str):
    """
    Change a sale's status.

    Body: {"status": "Completed" | "Pending" | "Cancelled"}
    Cancelling restores stock; a cancelled sale cannot change again.
    """
    payload = request.get_json(silent=True) or {}
    status = payload.get("status")
    if not status:
        return jsonify({"error": "status is required"}), 400

    try:
        sale = sales_service.get_sale(sale_ref)
        result = ledger_service.set_sale_status(sale.id, status, g.current_user.id)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change sale status")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result.to_dict()), 200
