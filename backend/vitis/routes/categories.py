# Overview: Flask API routes for categories operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import categories_service
from ..models import Category
from ..errors import ServiceError
from ..validation import ModelValidationPolicy, validate_payload, ValidationError, ConflictError
from ..decorators import require_auth, require_permission

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "is_active"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_categories_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    return jsonify(categories_service.list_categories(include_inactive=include_inactive)), 200


@categories_bp.get("/<int:category_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_category_route(category_id: int):
    try:
        return jsonify(categories_service.get_category(category_id).to_dict()), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@categories_bp.get("/<int:category_id>/products")
@require_auth
@require_permission("VIEW_INVENTORY")
def category_products_route(category_id: int):
    try:
        result = categories_service.list_category_products(
            category_id=category_id,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@categories_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_category_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        created = categories_service.create_category(patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(created), 201


@categories_bp.put("/<int:category_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        updated = categories_service.update_category(category_id=category_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(updated), 200


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_category_route(category_id: int):
    """Soft delete; refused (409) while active products reference the category."""
    try:
        category = categories_service.deactivate_category(category_id=category_id)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"ok": True, "category": category}), 200
