# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/vitis/routes/inventory.py
"""
Inventory management routes.

SECURITY: All routes require authentication.
- View operations require VIEW_INVENTORY permission
- Registering movements requires ADJUST_INVENTORY permission
- Resolving alerts requires MANAGE_ALERTS permission

Movement semantics:
- Entry adds `quantity`, Exit removes it (never below zero)
- Adjustment sets stock to exactly `quantity`
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..services import alerts_service, inventory_service, ledger_service
from ..errors import ServiceError
from ..decorators import require_auth, require_permission


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def inventory_overview_route():
    try:
        return jsonify(inventory_service.get_inventory_overview()), 200
    except Exception:
        current_app.logger.exception("Failed to load inventory overview")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/movements")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_movements_route():
    """
    Query params:
    - type: Entry|Exit|Adjustment|All
    - product_id: int (optional)
    - search: str (optional)
    - limit: int (default 100, max 500)
    """
    try:
        movements = inventory_service.list_movements(
            movement_type=request.args.get("type"),
            product_id=request.args.get("product_id", type=int),
            search=request.args.get("search"),
            limit=request.args.get("limit", default=100, type=int),
        )
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200


@inventory_bp.post("/movements")
@require_auth
@require_permission("ADJUST_INVENTORY")
def register_movement_route():
    """
    Register a stock movement.

    Body:
    {
        "movement_type": "Entry" | "Exit" | "Adjustment",
        "product_id": int,
        "quantity": int,
        "note": str (optional),
        "reference": str (optional)
    }
    """
    payload = request.get_json(silent=True) or {}

    product_id = payload.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        return jsonify({"error": "product_id must be an integer"}), 400

    try:
        result = ledger_service.register_movement(
            movement_type=payload.get("movement_type"),
            product_id=product_id,
            quantity=payload.get("quantity"),
            actor_user_id=g.current_user.id,
            note=(payload.get("note") or "").strip() or None,
            reference=(payload.get("reference") or "").strip() or None,
        )
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register movement")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result.to_dict()), 201


@inventory_bp.get("/alerts")
@require_auth
@require_permission("VIEW_INVENTORY")
def pending_alerts_route():
    try:
        alerts = alerts_service.list_pending_alerts()
    except Exception:
        current_app.logger.exception("Failed to list pending alerts")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"items": [a.to_dict() for a in alerts], "count": len(alerts)}), 200


@inventory_bp.put("/alerts/<int:alert_id>/resolve")
@require_auth
@require_permission("MANAGE_ALERTS")
def resolve_alert_route(alert_id: int):
    try:
        alert = alerts_service.resolve_alert(alert_id, g.current_user.id)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify(alert.to_dict()), 200
