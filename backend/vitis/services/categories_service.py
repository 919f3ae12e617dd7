# Overview: Service-layer operations for categories; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import NotFound
from ..models import Category, Product
from ..validation import ConflictError
from .pagination import paginate

CATEGORY_MUTABLE_FIELDS = {"name", "description", "is_active"}


def _active_product_counts() -> dict[int, int]:
    rows = (
        db.session.query(Product.category_id, func.count(Product.id))
        .filter(Product.is_active.is_(True), Product.category_id.isnot(None))
        .group_by(Product.category_id)
        .all()
    )
    return {category_id: count for category_id, count in rows}


def _require_unique_name(name: str | None, exclude_id: int | None = None) -> None:
    if not name:
        return
    query = db.session.query(Category).filter(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError("Category name already exists.")


def list_categories(*, include_inactive: bool = False) -> dict:
    """Categories ordered by name, each with its active product count."""
    query = db.session.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    categories = query.order_by(Category.name.asc()).all()

    counts = _active_product_counts()
    items = []
    for c in categories:
        data = c.to_dict()
        data["product_count"] = counts.get(c.id, 0)
        items.append(data)
    return {"items": items, "count": len(items)}


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFound("Category not found", details={"category_id": category_id})
    return category


def create_category(*, patch: dict) -> dict:
    _require_unique_name(patch.get("name"))

    category = Category()
    for k, v in patch.items():
        if k in CATEGORY_MUTABLE_FIELDS:
            setattr(category, k, v)

    db.session.add(category)
    db.session.commit()
    return category.to_dict()


def update_category(*, category_id: int, patch: dict) -> dict:
    category = get_category(category_id)

    if "name" in patch:
        _require_unique_name(patch["name"], exclude_id=category.id)
    if patch.get("is_active") is False:
        _require_no_active_products(category)

    for k, v in patch.items():
        if k in CATEGORY_MUTABLE_FIELDS:
            setattr(category, k, v)

    db.session.commit()
    return category.to_dict()


def _require_no_active_products(category: Category) -> None:
    active = (
        db.session.query(func.count(Product.id))
        .filter(Product.category_id == category.id, Product.is_active.is_(True))
        .scalar()
    ) or 0
    if active:
        raise ConflictError(
            f"Category has {active} active product(s); reassign or deactivate them first."
        )


def deactivate_category(*, category_id: int) -> dict:
    """
    Soft delete a category.

    Raises:
        NotFound: If category doesn't exist
        ConflictError: If active products still reference it
    """
    category = get_category(category_id)
    _require_no_active_products(category)
    category.is_active = False
    db.session.commit()
    return category.to_dict()


def list_category_products(
    *,
    category_id: int,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    category = get_category(category_id)
    query = (
        db.session.query(Product)
        .filter(Product.category_id == category.id, Product.is_active.is_(True))
        .order_by(Product.name.asc(), Product.id.asc())
    )
    result = paginate(query, page, per_page, lambda p: p.to_dict())
    result["category"] = category.to_dict()
    return result
