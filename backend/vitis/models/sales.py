from __future__ import annotations

from ..extensions import db
from vitis.time_utils import to_utc_z


SALE_STATUS_COMPLETED = "Completed"
SALE_STATUS_PENDING = "Pending"
SALE_STATUS_CANCELLED = "Cancelled"
SALE_STATUSES = (SALE_STATUS_COMPLETED, SALE_STATUS_PENDING, SALE_STATUS_CANCELLED)

DEFAULT_PAYMENT_METHOD = "Credit card"
DOCUMENT_PREFIX = "VT-"


def format_document_number(sale_id: int) -> str:
    return f"{DOCUMENT_PREFIX}{sale_id:03d}"


def parse_document_number(value: str) -> int | None:
    """Accept "VT-012", "12" or 12; return the sale id or None."""
    raw = str(value).strip().upper()
    if raw.startswith(DOCUMENT_PREFIX):
        raw = raw[len(DOCUMENT_PREFIX):]
    return int(raw) if raw.isdigit() else None


class Sale(db.Model):
    """
    Point-of-sale transaction.

    Created together with its lines and the matching Exit movements in one
    transaction (see ledger_service.create_sale). After creation only the
    status changes.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.CheckConstraint(
            "status IN ('Completed', 'Pending', 'Cancelled')", name="sale_status"
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED, index=True)
    payment_method = db.Column(db.String(64), nullable=False, default=DEFAULT_PAYMENT_METHOD)
    notes = db.Column(db.Text, nullable=True)

    # Sum of line subtotals, in cents
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])
    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        order_by="SaleLine.sequence",
        lazy=True,
    )

    @property
    def document_number(self) -> str:
        return format_document_number(self.id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "status": self.status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "total_cents": self.total_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at) if self.updated_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by_user_id": self.cancelled_by_user_id,
        }


class SaleLine(db.Model):
    """Individual line items on a sale. Immutable once written."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "sequence", name="uq_sale_lines_sale_sequence"),
        db.CheckConstraint("quantity > 0", name="sale_line_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # 1-based, matches request order
    sequence = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="lines")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "sequence": self.sequence,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "subtotal_cents": self.subtotal_cents,
        }
