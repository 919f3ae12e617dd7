# Overview: Service-layer read operations for sales; listing, detail, sellable products, and period stats.

from __future__ import annotations

from datetime import date, timedelta
from enum import Enum

from sqlalchemy import func

from ..extensions import db
from ..errors import InvalidRequest, NotFound
from ..models import Product, Sale, SaleLine, User
from ..models.sales import SALE_STATUSES, SALE_STATUS_CANCELLED, parse_document_number
from vitis.time_utils import utcnow, day_bounds
from .pagination import paginate


class SalesPeriod(str, Enum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @property
    def days(self) -> int:
        return {"week": 7, "month": 30, "year": 365}[self.value]

    @classmethod
    def parse(cls, value: str | None) -> "SalesPeriod":
        if not value:
            return cls.MONTH
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidRequest(
                f"Invalid period: {value}",
                details={"allowed": [p.value for p in cls]},
            )


def _serialize_summary(sale: Sale) -> dict:
    data = sale.to_dict()
    data["item_count"] = len(sale.lines)
    return data


def list_sales(
    *,
    search: str | None = None,
    status: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int | None = 1,
    per_page: int | None = 10,
) -> dict:
    """
    Sales newest first.

    - search: matches the document number ("VT-007" or "7") or the cashier's username
    - status: one of Completed / Pending / Cancelled; "All" or empty means no filter
    - start_date / end_date: inclusive calendar days (UTC)
    """
    query = db.session.query(Sale).join(User, Sale.user_id == User.id)

    if search:
        term = search.strip()
        conditions = [User.username.ilike(f"%{term}%")]
        sale_id = parse_document_number(term)
        if sale_id is not None:
            conditions.append(Sale.id == sale_id)
        query = query.filter(db.or_(*conditions))

    if status and status.lower() != "all":
        if status not in SALE_STATUSES:
            raise InvalidRequest(
                f"Invalid sale status: {status}",
                details={"allowed": list(SALE_STATUSES)},
            )
        query = query.filter(Sale.status == status)

    if start_date is not None:
        query = query.filter(Sale.created_at >= day_bounds(start_date)[0])
    if end_date is not None:
        query = query.filter(Sale.created_at < day_bounds(end_date)[1])

    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    return paginate(query, page, per_page, _serialize_summary)


def get_sale(sale_ref) -> Sale:
    """Look up a sale by id or document number ("VT-012")."""
    sale_id = parse_document_number(sale_ref)
    sale = db.session.get(Sale, sale_id) if sale_id is not None else None
    if not sale:
        raise NotFound("Sale not found", details={"sale": str(sale_ref)})
    return sale


def get_sale_detail(sale_ref) -> dict:
    sale = get_sale(sale_ref)
    data = sale.to_dict()
    data["email"] = sale.user.email if sale.user else None
    data["lines"] = [line.to_dict() for line in sale.lines]
    data["item_count"] = len(sale.lines)
    data["movements"] = [m.to_dict() for m in sale.movements]
    return data


def products_for_sale(search: str | None = None, limit: int = 50) -> list[dict]:
    """Active products that can currently be sold (stock > 0)."""
    query = db.session.query(Product).filter(
        Product.is_active.is_(True),
        Product.stock > 0,
    )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))

    products = query.order_by(Product.name.asc()).limit(limit).all()
    return [
        {
            "id": p.id,
            "sku": p.sku,
            "name": p.name,
            "price_cents": p.price_cents,
            "stock": p.stock,
            "category": p.category.name if p.category else None,
        }
        for p in products
    ]


def sales_stats(period: SalesPeriod = SalesPeriod.MONTH) -> dict:
    """
    Totals over the trailing period.

    Cancelled sales count as transactions and in by_status, but not in
    total_cents or average_ticket_cents.
    """
    since = utcnow() - timedelta(days=period.days)
    in_period = Sale.created_at >= since
    not_cancelled = Sale.status != SALE_STATUS_CANCELLED

    transactions = db.session.query(func.count(Sale.id)).filter(in_period).scalar() or 0
    total, counted = db.session.query(
        func.coalesce(func.sum(Sale.total_cents), 0),
        func.count(Sale.id),
    ).filter(in_period, not_cancelled).one()

    by_status = {s.lower(): 0 for s in SALE_STATUSES}
    rows = (
        db.session.query(Sale.status, func.count(Sale.id))
        .filter(in_period)
        .group_by(Sale.status)
        .all()
    )
    for status, count in rows:
        by_status[status.lower()] = count

    units = (
        db.session.query(func.coalesce(func.sum(SaleLine.quantity), 0))
        .join(Sale, SaleLine.sale_id == Sale.id)
        .filter(in_period, not_cancelled)
        .scalar()
    )

    return {
        "period": period.value,
        "since": since.date().isoformat(),
        "total_cents": int(total),
        "transactions": int(transactions),
        "average_ticket_cents": int(total) // counted if counted else 0,
        "units_sold": int(units or 0),
        "by_status": by_status,
    }
