# Overview: Service-layer operations for the sale ledger and stock reconciliation; encapsulates business logic and database work.

"""
Sale Ledger & Stock Reconciliation

Every stock change goes through record_movement(): one InventoryMovement row,
the Product.stock update, and the low-stock alert check, always together.
The public operations (create_sale, set_sale_status, register_movement) wrap
that in write_transaction(), so a failure anywhere leaves no sale, no lines,
no stock change, no movement, and no alert behind.

INVARIANTS:
- Product.stock == stock_after of the product's latest movement
- Sale.total_cents == sum(SaleLine.subtotal_cents)
- At most one Pending StockAlert per product
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from flask import current_app

from ..extensions import db
from ..errors import InvalidRequest, NotFound, InsufficientStock
from ..models import Product, Sale, SaleLine, InventoryMovement, StockAlert
from ..models.sales import (
    SALE_STATUSES,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_CANCELLED,
    DEFAULT_PAYMENT_METHOD,
)
from ..models.inventory import (
    MOVEMENT_TYPES,
    MOVEMENT_ENTRY,
    MOVEMENT_EXIT,
    MOVEMENT_ADJUSTMENT,
    ALERT_PRIORITY_HIGH,
    ALERT_PRIORITY_MEDIUM,
    ALERT_PRIORITY_LOW,
    ALERT_STATUS_PENDING,
)
from ..validation import ValidationError, coerce_int, parse_quantity, MAX_PRICE_CENTS
from vitis.time_utils import utcnow
from .concurrency import lock_for_update, write_transaction


ALERT_SEVERITY = {
    ALERT_PRIORITY_HIGH: 3,
    ALERT_PRIORITY_MEDIUM: 2,
    ALERT_PRIORITY_LOW: 1,
}

# Products within 20% above their minimum are "approaching" (numerator/denominator of 1.2)
APPROACHING_NUM = 6
APPROACHING_DEN = 5


@dataclass(frozen=True)
class SaleItem:
    product_id: int
    quantity: int
    unit_price_cents: int | None = None
    discount_cents: int = 0


@dataclass(frozen=True)
class SaleResult:
    sale_id: int
    document_number: str
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "document_number": self.document_number,
            "total_cents": self.total_cents,
        }


@dataclass(frozen=True)
class StatusResult:
    sale_id: int
    document_number: str
    status: str
    previous_status: str

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "document_number": self.document_number,
            "status": self.status,
            "previous_status": self.previous_status,
        }


@dataclass(frozen=True)
class MovementResult:
    movement_id: int
    product_id: int
    movement_type: str
    quantity: int
    stock_before: int
    stock_after: int

    def to_dict(self) -> dict:
        return {
            "movement_id": self.movement_id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
        }


# -- Input parsing --

def _parse_int_field(item: dict, key: str, index: int, default: Any = None) -> int | None:
    value = item.get(key, default)
    if value is None:
        return None
    try:
        return coerce_int(key, value)
    except ValidationError as exc:
        raise InvalidRequest(f"Item {index + 1}: {exc}", details={"index": index}) from exc


def parse_sale_items(raw_items: Any) -> list[SaleItem]:
    """
    Normalize request items into SaleItem records.

    Accepts dicts with product_id, quantity, and optional unit_price_cents /
    discount_cents. Raises InvalidRequest on an empty or malformed list.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise InvalidRequest("Sale must contain at least one item")

    items: list[SaleItem] = []
    for index, raw in enumerate(raw_items):
        if isinstance(raw, SaleItem):
            raw = asdict(raw)
        if not isinstance(raw, dict):
            raise InvalidRequest(f"Item {index + 1} must be an object", details={"index": index})

        product_id = _parse_int_field(raw, "product_id", index)
        if product_id is None:
            raise InvalidRequest(f"Item {index + 1}: product_id is required", details={"index": index})

        try:
            quantity = parse_quantity("quantity", raw.get("quantity"))
        except ValidationError as exc:
            raise InvalidRequest(f"Item {index + 1}: {exc}", details={"index": index}) from exc

        unit_price = _parse_int_field(raw, "unit_price_cents", index)
        if unit_price is not None and not 0 <= unit_price <= MAX_PRICE_CENTS:
            raise InvalidRequest(f"Item {index + 1}: unit_price_cents out of range", details={"index": index})

        discount = _parse_int_field(raw, "discount_cents", index, default=0)
        if discount < 0:
            raise InvalidRequest(f"Item {index + 1}: discount_cents must be >= 0", details={"index": index})

        items.append(SaleItem(
            product_id=product_id,
            quantity=quantity,
            unit_price_cents=unit_price,
            discount_cents=discount,
        ))

    return items


def _require_actor(actor_user_id: int | None) -> int:
    if actor_user_id is None:
        raise InvalidRequest("An acting user is required")
    return actor_user_id


def _load_product_for_update(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if not product:
        raise NotFound("Product not found", details={"product_id": product_id})
    return product


# -- Alerts --

def alert_band(stock: int, min_stock: int, high_ratio: float = 0.8) -> tuple[str, str] | None:
    """
    Priority and message for a stock level, or None when no alert is due.

    - stock <= 0                      -> High (out of stock)
    - stock <= min_stock * high_ratio -> High
    - stock <= min_stock              -> Medium
    - stock <= 1.2 * min_stock        -> Low (approaching minimum)
    """
    if stock <= 0:
        return ALERT_PRIORITY_HIGH, "Out of stock"
    if min_stock <= 0:
        return None
    if stock <= min_stock * high_ratio:
        return ALERT_PRIORITY_HIGH, f"Stock {stock} is well below minimum {min_stock}"
    if stock <= min_stock:
        return ALERT_PRIORITY_MEDIUM, f"Stock {stock} is at or below minimum {min_stock}"
    if stock * APPROACHING_DEN <= min_stock * APPROACHING_NUM:
        return ALERT_PRIORITY_LOW, f"Stock {stock} is approaching minimum {min_stock}"
    return None


def evaluate_stock_alert(product: Product) -> StockAlert | None:
    """
    Create or escalate the product's Pending alert for its current stock.

    Idempotent: an unchanged stock level never adds a second Pending alert.
    Returns the alert that was created or escalated, else None.
    Does not commit; runs inside the caller's transaction.
    """
    band = alert_band(
        product.stock,
        product.min_stock,
        current_app.config.get("ALERT_HIGH_RATIO", 0.8),
    )
    if band is None:
        return None
    priority, message = band

    pending = db.session.query(StockAlert).filter_by(
        product_id=product.id,
        status=ALERT_STATUS_PENDING,
    ).first()

    if pending:
        if ALERT_SEVERITY[priority] > ALERT_SEVERITY[pending.priority]:
            pending.priority = priority
            pending.message = f"{product.name}: {message}"
            return pending
        return None

    alert = StockAlert(
        product_id=product.id,
        priority=priority,
        status=ALERT_STATUS_PENDING,
        message=f"{product.name}: {message}",
        created_at=utcnow(),
    )
    db.session.add(alert)
    return alert


# -- Movements --

def record_movement(
    product: Product,
    movement_type: str,
    quantity: int,
    actor_user_id: int,
    *,
    note: str | None = None,
    reference: str | None = None,
    sale_id: int | None = None,
) -> InventoryMovement:
    """
    Append one movement and apply it to product.stock.

    Caller owns the transaction and must hold the product row lock.

    - Entry: stock += quantity
    - Exit: stock -= quantity (InsufficientStock when stock < quantity)
    - Adjustment: stock = quantity
    """
    stock_before = product.stock

    if movement_type == MOVEMENT_ENTRY:
        stock_after = stock_before + quantity
    elif movement_type == MOVEMENT_EXIT:
        if stock_before < quantity:
            raise InsufficientStock(
                product_id=product.id,
                available=stock_before,
                requested=quantity,
                product_name=product.name,
            )
        stock_after = stock_before - quantity
    elif movement_type == MOVEMENT_ADJUSTMENT:
        stock_after = quantity
    else:
        raise InvalidRequest(
            f"Invalid movement type: {movement_type}",
            details={"allowed": list(MOVEMENT_TYPES)},
        )

    now = utcnow()
    product.stock = stock_after
    product.updated_at = now

    movement = InventoryMovement(
        movement_type=movement_type,
        product_id=product.id,
        user_id=actor_user_id,
        quantity=quantity,
        stock_before=stock_before,
        stock_after=stock_after,
        sale_id=sale_id,
        reference=reference,
        note=note,
        created_at=now,
    )
    db.session.add(movement)

    evaluate_stock_alert(product)
    return movement


def register_movement(
    movement_type: str,
    product_id: int,
    quantity: Any,
    actor_user_id: int,
    note: str | None = None,
    reference: str | None = None,
    sale_id: int | None = None,
) -> MovementResult:
    """Register an Entry, Exit, or Adjustment against one product, atomically."""
    if movement_type not in MOVEMENT_TYPES:
        raise InvalidRequest(
            f"Invalid movement type: {movement_type}",
            details={"allowed": list(MOVEMENT_TYPES)},
        )
    actor_user_id = _require_actor(actor_user_id)
    try:
        qty = parse_quantity("quantity", quantity, allow_zero=movement_type == MOVEMENT_ADJUSTMENT)
    except ValidationError as exc:
        raise InvalidRequest(str(exc)) from exc

    with write_transaction():
        product = _load_product_for_update(product_id)

        if sale_id is not None and not db.session.get(Sale, sale_id):
            raise NotFound("Sale not found", details={"sale_id": sale_id})

        movement = record_movement(
            product,
            movement_type,
            qty,
            actor_user_id,
            note=note,
            reference=reference,
            sale_id=sale_id,
        )
        db.session.flush()

        result = MovementResult(
            movement_id=movement.id,
            product_id=product.id,
            movement_type=movement_type,
            quantity=qty,
            stock_before=movement.stock_before,
            stock_after=movement.stock_after,
        )

    return result


# -- Sales --

def create_sale(
    actor_user_id: int,
    items: Any,
    payment_method: str | None = None,
    notes: str | None = None,
) -> SaleResult:
    """
    Create a Completed sale with its lines and Exit movements in one transaction.

    Items are validated in order; the first missing product raises NotFound and
    the first short product raises InsufficientStock. A product repeated across
    lines is checked against what the earlier lines left.
    """
    actor_user_id = _require_actor(actor_user_id)
    parsed = parse_sale_items(items)

    payment_method = (payment_method or "").strip() or DEFAULT_PAYMENT_METHOD
    if len(payment_method) > 64:
        raise InvalidRequest("payment_method exceeds max length 64")

    with write_transaction():
        products: dict[int, Product] = {}
        remaining: dict[int, int] = {}
        priced: list[tuple[SaleItem, Product, int, int]] = []

        for index, item in enumerate(parsed):
            product = products.get(item.product_id)
            if product is None:
                product = _load_product_for_update(item.product_id)
                if not product.is_active:
                    raise NotFound("Product not found", details={"product_id": item.product_id})
                products[product.id] = product

            available = remaining.get(product.id, product.stock)
            if available < item.quantity:
                raise InsufficientStock(
                    product_id=product.id,
                    available=available,
                    requested=item.quantity,
                    product_name=product.name,
                )
            remaining[product.id] = available - item.quantity

            unit_price = item.unit_price_cents if item.unit_price_cents is not None else product.price_cents
            gross = unit_price * item.quantity
            if item.discount_cents > gross:
                raise InvalidRequest(
                    f"Item {index + 1}: discount exceeds line amount",
                    details={"index": index, "line_amount_cents": gross},
                )
            priced.append((item, product, unit_price, gross - item.discount_cents))

        sale = Sale(
            user_id=actor_user_id,
            status=SALE_STATUS_COMPLETED,
            payment_method=payment_method,
            notes=(notes or "").strip() or None,
            total_cents=sum(subtotal for _, _, _, subtotal in priced),
            created_at=utcnow(),
        )
        db.session.add(sale)
        db.session.flush()

        for sequence, (item, product, unit_price, subtotal) in enumerate(priced, start=1):
            db.session.add(SaleLine(
                sale_id=sale.id,
                product_id=product.id,
                sequence=sequence,
                quantity=item.quantity,
                unit_price_cents=unit_price,
                discount_cents=item.discount_cents,
                subtotal_cents=subtotal,
            ))
            record_movement(
                product,
                MOVEMENT_EXIT,
                item.quantity,
                actor_user_id,
                note=f"Sale {sale.document_number}",
                reference=sale.document_number,
                sale_id=sale.id,
            )

        result = SaleResult(
            sale_id=sale.id,
            document_number=sale.document_number,
            total_cents=sale.total_cents,
        )

    return result


def set_sale_status(sale_id: int, status: str, actor_user_id: int) -> StatusResult:
    """
    Move a sale to Completed, Pending, or Cancelled.

    Cancelling restores stock for every line through a compensating Entry
    movement referencing the sale. A Cancelled sale is final: it cannot be
    cancelled twice or reopened.
    """
    if status not in SALE_STATUSES:
        raise InvalidRequest(
            f"Invalid sale status: {status}",
            details={"allowed": list(SALE_STATUSES)},
        )
    actor_user_id = _require_actor(actor_user_id)

    with write_transaction():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFound("Sale not found", details={"sale_id": sale_id})

        previous = sale.status
        if previous == SALE_STATUS_CANCELLED:
            if status == SALE_STATUS_CANCELLED:
                raise InvalidRequest("Sale is already cancelled")
            raise InvalidRequest("Cancelled sales cannot be reopened")

        now = utcnow()
        if status == SALE_STATUS_CANCELLED:
            for line in sale.lines:
                product = _load_product_for_update(line.product_id)
                record_movement(
                    product,
                    MOVEMENT_ENTRY,
                    line.quantity,
                    actor_user_id,
                    note=f"Cancellation of sale {sale.document_number}",
                    reference=sale.document_number,
                    sale_id=sale.id,
                )
            sale.cancelled_at = now
            sale.cancelled_by_user_id = actor_user_id

        sale.status = status
        sale.updated_at = now

        result = StatusResult(
            sale_id=sale.id,
            document_number=sale.document_number,
            status=status,
            previous_status=previous,
        )

    return result
