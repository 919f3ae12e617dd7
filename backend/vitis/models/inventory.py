from __future__ import annotations

from ..extensions import db
from vitis.time_utils import to_utc_z


MOVEMENT_ENTRY = "Entry"
MOVEMENT_EXIT = "Exit"
MOVEMENT_ADJUSTMENT = "Adjustment"
MOVEMENT_TYPES = (MOVEMENT_ENTRY, MOVEMENT_EXIT, MOVEMENT_ADJUSTMENT)

ALERT_PRIORITY_HIGH = "High"
ALERT_PRIORITY_MEDIUM = "Medium"
ALERT_PRIORITY_LOW = "Low"
ALERT_PRIORITIES = (ALERT_PRIORITY_HIGH, ALERT_PRIORITY_MEDIUM, ALERT_PRIORITY_LOW)

ALERT_STATUS_PENDING = "Pending"
ALERT_STATUS_RESOLVED = "Resolved"
ALERT_STATUS_IGNORED = "Ignored"
ALERT_STATUSES = (ALERT_STATUS_PENDING, ALERT_STATUS_RESOLVED, ALERT_STATUS_IGNORED)


class InventoryMovement(db.Model):
    """
    Append-only stock ledger.

    `quantity` is the requested amount: units added (Entry), units removed
    (Exit) or the absolute level set (Adjustment). `stock_before` and
    `stock_after` bracket the change so the ledger replays exactly for every
    movement type.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_product_created", "product_id", "created_at"),
        db.CheckConstraint(
            "movement_type IN ('Entry', 'Exit', 'Adjustment')", name="movement_type"
        ),
        db.CheckConstraint("quantity >= 0", name="movement_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    reference = db.Column(db.String(128), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product", backref=db.backref("movements", lazy=True))
    user = db.relationship("User")
    sale = db.relationship("Sale", backref=db.backref("movements", lazy=True))

    @property
    def delta(self) -> int:
        return self.stock_after - self.stock_before

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "movement_type": self.movement_type,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "quantity": self.quantity,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "delta": self.delta,
            "sale_id": self.sale_id,
            "reference": self.reference,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


class StockAlert(db.Model):
    """
    Derived low-stock alert.

    At most one Pending alert per product. Status only moves
    Pending -> Resolved or Pending -> Ignored.
    """
    __tablename__ = "stock_alerts"
    __table_args__ = (
        db.Index("ix_stock_alerts_product_status", "product_id", "status"),
        db.CheckConstraint("priority IN ('High', 'Medium', 'Low')", name="alert_priority"),
        db.CheckConstraint(
            "status IN ('Pending', 'Resolved', 'Ignored')", name="alert_status"
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    priority = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ALERT_STATUS_PENDING, index=True)
    message = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    product = db.relationship("Product", backref=db.backref("alerts", lazy=True))

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": product.name if product else None,
            "sku": product.sku if product else None,
            "category": product.category.name if product and product.category else None,
            "stock": product.stock if product else None,
            "min_stock": product.min_stock if product else None,
            "priority": self.priority,
            "status": self.status,
            "message": self.message,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
            "resolved_by_user_id": self.resolved_by_user_id,
        }
