# Overview: Service-layer operations for products; encapsulates business logic and database work.

"""
Products Service

Stock is never patched directly: initial stock on create and target-level
updates both go through the ledger as Entry/Exit movements.
"""
from __future__ import annotations

from enum import Enum

from sqlalchemy import func

from ..extensions import db
from ..errors import InvalidRequest, NotFound
from ..models import Category, InventoryMovement, Product, StockAlert
from ..models.inventory import MOVEMENT_ENTRY, MOVEMENT_EXIT, ALERT_STATUS_PENDING
from ..validation import ConflictError
from vitis.time_utils import utcnow
from .concurrency import lock_for_update, write_transaction
from .ledger_service import MovementResult, record_movement
from .pagination import paginate

PRODUCT_MUTABLE_FIELDS = {
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


class StockFilter(str, Enum):
    ALL = "all"
    OK = "ok"
    LOW = "low"
    OUT = "out"

    @classmethod
    def parse(cls, value: str | None) -> "StockFilter":
        if not value:
            return cls.ALL
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidRequest(
                f"Invalid stock filter: {value}",
                details={"allowed": [f.value for f in cls]},
            )


def stock_status(product: Product) -> str:
    """Classify stock as out (0), low (<= min_stock), or ok."""
    if product.stock <= 0:
        return StockFilter.OUT.value
    if product.stock <= product.min_stock:
        return StockFilter.LOW.value
    return StockFilter.OK.value


def _stock_filter_clause(stock_filter: StockFilter):
    if stock_filter == StockFilter.OUT:
        return Product.stock <= 0
    if stock_filter == StockFilter.LOW:
        return db.and_(Product.stock > 0, Product.stock <= Product.min_stock)
    if stock_filter == StockFilter.OK:
        return Product.stock > Product.min_stock
    return None


def _serialize(product: Product) -> dict:
    data = product.to_dict()
    data["stock_status"] = stock_status(product)
    return data


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _require_category(category_id: int | None) -> None:
    if category_id is None:
        return
    category = db.session.get(Category, category_id)
    if not category or not category.is_active:
        raise InvalidRequest("Category not found", details={"category_id": category_id})


def _require_unique_sku(sku: str | None, exclude_id: int | None = None) -> None:
    if not sku:
        return
    query = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("SKU already exists.")


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    stock_filter: StockFilter = StockFilter.ALL,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional filters and pagination.

    - search: case-insensitive match on name, sku, or description
    - stock_filter: all / ok / low / out
    """
    query = db.session.query(Product)

    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.description.ilike(pattern),
        ))
    clause = _stock_filter_clause(stock_filter)
    if clause is not None:
        query = query.filter(clause)

    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page, per_page, _serialize)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFound("Product not found", details={"product_id": product_id})
    return product


def get_product_detail(product_id: int, movement_limit: int = 10) -> dict:
    """Product plus its most recent movements and pending alert, if any."""
    product = get_product(product_id)
    movements = (
        db.session.query(InventoryMovement)
        .filter(InventoryMovement.product_id == product.id)
        .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
        .limit(movement_limit)
        .all()
    )
    pending = (
        db.session.query(StockAlert)
        .filter_by(product_id=product.id, status=ALERT_STATUS_PENDING)
        .first()
    )
    data = _serialize(product)
    data["recent_movements"] = [m.to_dict() for m in movements]
    data["pending_alert"] = pending.to_dict() if pending else None
    return data


def create_product(*, patch: dict, actor_user_id: int) -> dict:
    """
    Create product using a validated patch dict.

    A positive `stock` in the patch is recorded as an "Initial stock" Entry
    movement by the acting user, in the same transaction as the insert.

    Raises:
        ConflictError: If SKU already exists
        InvalidRequest: If category_id is unknown
    """
    initial_stock = patch.get("stock") or 0
    _require_unique_sku(patch.get("sku"))
    _require_category(patch.get("category_id"))

    with write_transaction():
        p = Product(stock=0)
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()  # ensure p.id exists before the movement

        if initial_stock > 0:
            record_movement(
                p,
                MOVEMENT_ENTRY,
                initial_stock,
                actor_user_id,
                note="Initial stock",
            )

    return _serialize(p)


def update_product(*, product_id: int, patch: dict) -> dict:
    """
    Update product fields (never stock; see set_stock_level).

    Raises:
        NotFound: If product doesn't exist
        ConflictError: If the new SKU is taken
        InvalidRequest: If category_id is unknown
    """
    p = get_product(product_id)

    if "sku" in patch:
        _require_unique_sku(patch["sku"], exclude_id=p.id)
    if "category_id" in patch:
        _require_category(patch["category_id"])

    apply_product_patch(p, patch)
    p.updated_at = utcnow()
    db.session.commit()
    return _serialize(p)


def deactivate_product(*, product_id: int) -> dict:
    """Soft delete: products are never physically removed."""
    p = get_product(product_id)
    p.is_active = False
    p.updated_at = utcnow()
    db.session.commit()
    return _serialize(p)


def set_stock_level(
    *,
    product_id: int,
    new_stock: int,
    actor_user_id: int,
    note: str | None = None,
) -> MovementResult | None:
    """
    Bring a product to `new_stock` by recording the difference.

    A higher level becomes an Entry, a lower level an Exit. Returns None when
    the level is unchanged (no movement is written).
    """
    if new_stock < 0:
        raise InvalidRequest("stock must be >= 0")

    with write_transaction():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFound("Product not found", details={"product_id": product_id})

        delta = new_stock - product.stock
        if delta == 0:
            return None

        movement_type = MOVEMENT_ENTRY if delta > 0 else MOVEMENT_EXIT
        movement = record_movement(
            product,
            movement_type,
            abs(delta),
            actor_user_id,
            note=note or "Stock level update",
        )
        db.session.flush()
        result = MovementResult(
            movement_id=movement.id,
            product_id=product.id,
            movement_type=movement_type,
            quantity=abs(delta),
            stock_before=movement.stock_before,
            stock_after=movement.stock_after,
        )

    return result


def get_stock_details() -> dict:
    """Active products with their stock status plus per-status counts."""
    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )
    counts = {f.value: 0 for f in StockFilter if f != StockFilter.ALL}
    items = []
    for p in products:
        data = _serialize(p)
        counts[data["stock_status"]] += 1
        items.append(data)
    return {"items": items, "count": len(items), "status_counts": counts}


def get_inventory_summary() -> dict:
    """
    Headline inventory numbers.

    - total_products: active products
    - inventory_value_cents: sum(stock * price_cents) over active products
    - low_stock_count: active products with stock <= min_stock
    - movements_this_month: movements since the first day of the current UTC month
    """
    active = Product.is_active.is_(True)

    total_products = db.session.query(func.count(Product.id)).filter(active).scalar() or 0
    inventory_value = (
        db.session.query(func.coalesce(func.sum(Product.stock * Product.price_cents), 0))
        .filter(active)
        .scalar()
    )
    low_stock = (
        db.session.query(func.count(Product.id))
        .filter(active, Product.stock <= Product.min_stock)
        .scalar()
    ) or 0

    now = utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    movements_this_month = (
        db.session.query(func.count(InventoryMovement.id))
        .filter(InventoryMovement.created_at >= month_start)
        .scalar()
    ) or 0

    return {
        "total_products": int(total_products),
        "inventory_value_cents": int(inventory_value or 0),
        "low_stock_count": int(low_stock),
        "movements_this_month": int(movements_this_month),
    }
