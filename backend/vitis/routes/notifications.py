# Overview: Flask API routes for stock notifications; alert queues, transitions, and the email digest.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import alerts_service, digest_service
from ..errors import ServiceError
from ..decorators import require_auth, require_permission


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


def _alert_list(alerts):
    return jsonify({"items": [a.to_dict() for a in alerts], "count": len(alerts)}), 200


@notifications_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def all_alerts_route():
    """All alerts, Pending first, then by priority and date."""
    return _alert_list(alerts_service.list_alerts())


@notifications_bp.get("/pending")
@require_auth
@require_permission("VIEW_INVENTORY")
def pending_alerts_route():
    return _alert_list(alerts_service.list_pending_alerts())


@notifications_bp.get("/summary")
@require_auth
@require_permission("VIEW_INVENTORY")
def alert_summary_route():
    return jsonify(alerts_service.get_alert_summary()), 200


@notifications_bp.get("/latest")
@require_auth
@require_permission("VIEW_INVENTORY")
def latest_alerts_route():
    limit = request.args.get("limit", default=5, type=int)
    return _alert_list(alerts_service.get_latest_alerts(max(1, min(limit, 50))))


@notifications_bp.put("/<int:alert_id>/resolve")
@require_auth
@require_permission("MANAGE_ALERTS")
def resolve_alert_route(alert_id: int):
    try:
        alert = alerts_service.resolve_alert(alert_id, g.current_user.id)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(alert.to_dict()), 200


@notifications_bp.put("/<int:alert_id>/ignore")
@require_auth
@require_permission("MANAGE_ALERTS")
def ignore_alert_route(alert_id: int):
    try:
        alert = alerts_service.ignore_alert(alert_id, g.current_user.id)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(alert.to_dict()), 200


@notifications_bp.put("/product/<int:product_id>/resolve")
@require_auth
@require_permission("MANAGE_ALERTS")
def resolve_product_alerts_route(product_id: int):
    try:
        resolved = alerts_service.resolve_product_alerts(product_id, g.current_user.id)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"product_id": product_id, "resolved": resolved}), 200


@notifications_bp.post("/send-digest")
@require_auth
@require_permission("MANAGE_ALERTS")
def send_digest_route():
    """
    Send the critical-stock digest now.

    Returns 200 when mailed, 502 when delivery failed (details in "error").
    """
    try:
        result = digest_service.send_stock_digest()
    except Exception:
        current_app.logger.exception("Failed to build stock digest")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result.to_dict()), 200 if result.sent else 502
