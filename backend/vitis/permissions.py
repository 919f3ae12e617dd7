"""
Permission System Constants and Definitions

Centralized permission definitions and the static role -> permission map.
Users carry a single role (User.role); routes guard on permission codes via
@require_permission so role changes never touch route code.

DESIGN PRINCIPLES:
- Permissions are granular (one action per permission)
- Default role mappings follow principle of least privilege
- Admin has all permissions
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    REPORTS = "REPORTS"
    USERS = "USERS"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View products, categories, stock levels, movements, and alerts",
        PermissionCategory.INVENTORY
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create, edit, and deactivate products and categories",
        PermissionCategory.INVENTORY
    ),
    (
        "ADJUST_INVENTORY",
        "Adjust Inventory",
        "Register Entry, Exit, and Adjustment movements",
        PermissionCategory.INVENTORY
    ),
    (
        "MANAGE_ALERTS",
        "Manage Alerts",
        "Resolve or ignore stock alerts and send the stock digest",
        PermissionCategory.INVENTORY
    ),
    (
        "CREATE_SALE",
        "Create Sale",
        "Create point-of-sale transactions",
        PermissionCategory.SALES
    ),
    (
        "VIEW_SALES",
        "View Sales",
        "List sales and view sale details",
        PermissionCategory.SALES
    ),
    (
        "CHANGE_SALE_STATUS",
        "Change Sale Status",
        "Mark sales Pending, Completed, or Cancelled (restores stock)",
        PermissionCategory.SALES
    ),
    (
        "VIEW_SALES_REPORTS",
        "View Sales Reports",
        "Access analytics, dashboards, and CSV exports",
        PermissionCategory.REPORTS
    ),
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create users and assign roles",
        PermissionCategory.USERS
    ),
]

ALL_PERMISSION_CODES = frozenset(code for code, _, _, _ in PERMISSION_DEFINITIONS)


# =============================================================================
# DEFAULT ROLE PERMISSIONS
# =============================================================================

DEFAULT_ROLE_PERMISSIONS = {
    "admin": sorted(ALL_PERMISSION_CODES),

    "manager": sorted(ALL_PERMISSION_CODES - {"MANAGE_USERS"}),

    "cashier": [
        "VIEW_INVENTORY",
        "CREATE_SALE",
        "VIEW_SALES",
    ],
}


def get_role_permissions(role: str | None) -> set[str]:
    """Permission codes granted to a role; unknown roles get nothing."""
    return set(DEFAULT_ROLE_PERMISSIONS.get(role or "", []))


def has_permission(user, permission_code: str) -> bool:
    if user is None or not user.is_active:
        return False
    return permission_code in get_role_permissions(user.role)
