# Overview: Service-layer read operations for the inventory ledger; movement history and the inventory overview.

# backend/vitis/services/inventory_service.py
"""
Inventory ledger queries.

Time semantics:
- All internal datetimes are UTC-naive (tzinfo=None).
- API responses serialize datetimes as ISO-8601 'Z' strings.

Writes live in ledger_service; nothing here changes stock.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import InvalidRequest
from ..models import InventoryMovement, Product
from ..models.inventory import MOVEMENT_TYPES
from . import alerts_service, products_service


def list_movements(
    *,
    movement_type: str | None = None,
    product_id: int | None = None,
    search: str | None = None,
    limit: int = 100,
) -> list[InventoryMovement]:
    """
    Movement history, newest first.

    - movement_type: Entry / Exit / Adjustment ("All" or empty means no filter)
    - search: matches product name, SKU, note, or reference
    """
    query = db.session.query(InventoryMovement).join(
        Product, InventoryMovement.product_id == Product.id
    )

    if movement_type and movement_type.lower() != "all":
        if movement_type not in MOVEMENT_TYPES:
            raise InvalidRequest(
                f"Invalid movement type: {movement_type}",
                details={"allowed": list(MOVEMENT_TYPES)},
            )
        query = query.filter(InventoryMovement.movement_type == movement_type)

    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            InventoryMovement.note.ilike(pattern),
            InventoryMovement.reference.ilike(pattern),
        ))

    limit = max(1, min(limit, 500))
    return (
        query.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )


def get_inventory_overview() -> dict:
    """Inventory page header: summary numbers, alert counts, latest movements."""
    return {
        "summary": products_service.get_inventory_summary(),
        "alerts": alerts_service.get_alert_summary(),
        "recent_movements": [m.to_dict() for m in list_movements(limit=10)],
    }
