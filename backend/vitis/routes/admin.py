# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/vitis/routes/admin.py
"""
Admin routes for user management.

All endpoints require MANAGE_USERS (admin role only).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import User
from ..services import auth_service, session_service
from ..services.auth_service import PasswordValidationError
from ..validation import ConflictError
from ..decorators import require_auth, require_permission

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/users")
@require_auth
@require_permission("MANAGE_USERS")
def list_users():
    users = db.session.query(User).order_by(User.username.asc()).all()
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)}), 200


@admin_bp.post("/users")
@require_auth
@require_permission("MANAGE_USERS")
def create_user():
    """
    Create a new user.

    Request body:
    - username: str (required)
    - email: str (required)
    - password: str (required)
    - role: admin|manager|cashier (optional, default cashier)
    - full_name: str (optional)
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        email = data.get("email")
        password = data.get("password")

        if not all([username, email, password]):
            return jsonify({"error": "username, email, and password required"}), 400

        user = auth_service.create_user(
            username,
            email,
            password,
            role=data.get("role") or "cashier",
            full_name=data.get("full_name"),
        )
        current_app.logger.info("User %s created by %s", user.username, g.current_user.username)
        return jsonify({"user": user.to_dict(), "message": "User created successfully"}), 201

    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_permission("MANAGE_USERS")
def deactivate_user(user_id: int):
    """
    Deactivate a user account and revoke all of its sessions.

    Past sales and movements keep pointing at the user.
    """
    user = db.session.get(User, user_id)

    if not user:
        return jsonify({"error": "User not found"}), 404

    if not user.is_active:
        return jsonify({"error": "User is already deactivated"}), 400

    if user.id == g.current_user.id:
        return jsonify({"error": "Cannot deactivate your own account"}), 400

    user.is_active = False
    revoked_count = session_service.revoke_all_user_sessions(
        user_id=user.id,
        reason="Account deactivated by admin"
    )

    return jsonify({
        "message": f"User {user.username} deactivated",
        "sessions_revoked": revoked_count
    }), 200
