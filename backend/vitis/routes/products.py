# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/vitis/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_INVENTORY permission
- Write operations require MANAGE_PRODUCTS permission
- Stock level changes require ADJUST_INVENTORY permission

Stock is never edited through create/update payloads directly: an initial
stock becomes an "Initial stock" Entry movement and PUT /<id>/stock records
the difference as an Entry or Exit.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..services import products_service
from ..services.products_service import StockFilter
from ..models import Product
from ..errors import ServiceError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    coerce_int,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission

PRODUCT_FIELDS = {
    "sku",
    "name",
    "description",
    "category_id",
    "price_cents",
    "purchase_price_cents",
    "min_stock",
    "image_url",
    "is_active",
}

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS | {"stock"},
    required_on_create={"name", "price_cents"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS,
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_products():
    """
    List products with optional filters and pagination.

    Query params:
    - search: str (optional) - matches name, sku, or description
    - category_id: int (optional)
    - stock: all|ok|low|out (optional, default all)
    - include_inactive: true|false (optional, default false)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        result = products_service.list_products(
            search=request.args.get("search"),
            category_id=request.args.get("category_id", type=int),
            stock_filter=StockFilter.parse(request.args.get("stock")),
            include_inactive=request.args.get("include_inactive", "false").lower() == "true",
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/summary")
@require_auth
@require_permission("VIEW_INVENTORY")
def inventory_summary_route():
    """Total products, inventory value, low-stock count, movements this month."""
    return jsonify(products_service.get_inventory_summary()), 200


@products_bp.get("/stock/details")
@require_auth
@require_permission("VIEW_INVENTORY")
def stock_details_route():
    return jsonify(products_service.get_stock_details()), 200


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_product_route(product_id: int):
    try:
        return jsonify(products_service.get_product_detail(product_id)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    """
    Create a new product.

    An optional `stock` is recorded as the product's first Entry movement.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        created = products_service.create_product(patch=patch, actor_user_id=g.current_user.id)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(created), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    """Update product fields. Stock is rejected here; use PUT /<id>/stock."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        updated = products_service.update_product(product_id=product_id, patch=patch)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(updated), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_product_route(product_id: int):
    """Soft delete: the product is deactivated and keeps its history."""
    try:
        product = products_service.deactivate_product(product_id=product_id)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"ok": True, "product": product}), 200


@products_bp.put("/<int:product_id>/stock")
@require_auth
@require_permission("ADJUST_INVENTORY")
def set_stock_route(product_id: int):
    """
    Set a product's stock to a target level.

    Body: {"stock": int, "note": str (optional)}
    """
    payload = request.get_json(silent=True) or {}
    if "stock" not in payload:
        return jsonify({"error": "stock is required"}), 400

    try:
        new_stock = coerce_int("stock", payload["stock"])
        enforce_rules_product({"stock": new_stock})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        result = products_service.set_stock_level(
            product_id=product_id,
            new_stock=new_stock,
            actor_user_id=g.current_user.id,
            note=(payload.get("note") or "").strip() or None,
        )
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set stock level")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "product": products_service.get_product_detail(product_id, movement_limit=1),
        "movement": result.to_dict() if result else None,
    }), 200
