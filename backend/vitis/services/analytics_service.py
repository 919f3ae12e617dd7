# Overview: Service-layer operations for analytics and dashboards; read-only aggregate queries.

"""
Analytics & Dashboard Queries

All money values are integer cents. Cancelled sales are excluded from every
revenue figure. Date ranges are half-open [start, end) in UTC.
"""

from __future__ import annotations

import csv
import io
from datetime import date, datetime, timedelta
from enum import Enum

from sqlalchemy import extract, func

from ..extensions import db
from ..errors import InvalidRequest, NotFound
from ..models import Category, InventoryMovement, Product, Sale, SaleLine, StockAlert, User
from ..models.inventory import MOVEMENT_TYPES, ALERT_STATUS_PENDING
from ..models.sales import SALE_STATUS_CANCELLED, format_document_number, parse_document_number
from vitis.time_utils import utcnow, day_bounds, to_utc_z
from .alerts_service import list_pending_alerts
from .sales_service import SalesPeriod


class TimeUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @classmethod
    def parse(cls, value: str | None) -> "TimeUnit":
        if not value:
            return cls.DAY
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidRequest(
                f"Invalid time unit: {value}",
                details={"allowed": [u.value for u in cls]},
            )

    def bounds(self, day: date) -> tuple[date, date]:
        """Calendar range containing `day`; weeks start on Monday."""
        if self == TimeUnit.DAY:
            return day, day + timedelta(days=1)
        if self == TimeUnit.WEEK:
            start = day - timedelta(days=day.weekday())
            return start, start + timedelta(days=7)
        start = day.replace(day=1)
        return start, _add_months(start, 1)

    def previous(self, start: date) -> tuple[date, date]:
        """The range of the same unit immediately before `start`."""
        if self == TimeUnit.MONTH:
            return _add_months(start, -1), start
        length = 1 if self == TimeUnit.DAY else 7
        return start - timedelta(days=length), start


def _add_months(day: date, months: int) -> date:
    index = day.year * 12 + day.month - 1 + months
    return date(index // 12, index % 12 + 1, 1)


def _as_datetime(day: date) -> datetime:
    return day_bounds(day)[0]


def _revenue_filters(start: datetime, end: datetime | None = None) -> list:
    filters = [Sale.created_at >= start, Sale.status != SALE_STATUS_CANCELLED]
    if end is not None:
        filters.append(Sale.created_at < end)
    return filters


def _percent_change(current: int, previous: int) -> float:
    if previous == 0:
        return 0.0 if current == 0 else 100.0
    return round((current - previous) * 100.0 / previous, 1)


def _totals(start: datetime, end: datetime) -> dict:
    total, count = db.session.query(
        func.coalesce(func.sum(Sale.total_cents), 0),
        func.count(Sale.id),
    ).filter(*_revenue_filters(start, end)).one()
    total = int(total)
    return {
        "total_cents": total,
        "order_count": int(count),
        "average_ticket_cents": total // count if count else 0,
    }


def sales_stats(time_unit: TimeUnit, day: date) -> dict:
    """Totals for the unit containing `day`, compared with the unit before it."""
    start, end = time_unit.bounds(day)
    prev_start, prev_end = time_unit.previous(start)

    current = _totals(_as_datetime(start), _as_datetime(end))
    previous = _totals(_as_datetime(prev_start), _as_datetime(prev_end))

    return {
        "current": current,
        "previous": previous,
        "changes": {key: _percent_change(current[key], previous[key]) for key in current},
        "period": {
            "unit": time_unit.value,
            "start": start.isoformat(),
            "end": end.isoformat(),
        },
    }


def _period_start(period: SalesPeriod) -> datetime:
    return utcnow() - timedelta(days=period.days)


def _window(
    period: SalesPeriod,
    start_date: date | None = None,
    end_date: date | None = None,
) -> tuple[datetime, datetime | None]:
    """
    [since, until) for an aggregate query.

    An explicit start_date/end_date pair (inclusive days) overrides the
    trailing period; until is None for a trailing period.
    """
    if start_date is None and end_date is None:
        return _period_start(period), None
    if start_date is None or end_date is None:
        raise InvalidRequest("start_date and end_date must be given together")
    if start_date > end_date:
        raise InvalidRequest("start_date must be on or before end_date")
    return day_bounds(start_date)[0], day_bounds(end_date)[1]


def sales_series(
    period: SalesPeriod = SalesPeriod.YEAR,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    """Revenue and sale count per calendar month, oldest first."""
    since, until = _window(period, start_date, end_date)
    year = extract("year", Sale.created_at).label("year")
    month = extract("month", Sale.created_at).label("month")
    rows = (
        db.session.query(
            year,
            month,
            func.coalesce(func.sum(Sale.total_cents), 0),
            func.count(Sale.id),
        )
        .filter(*_revenue_filters(since, until))
        .group_by(year, month)
        .order_by(year.asc(), month.asc())
        .all()
    )
    return [
        {
            "month": f"{int(y):04d}-{int(m):02d}",
            "total_cents": int(total),
            "order_count": int(count),
        }
        for y, m, total, count in rows
    ]


def top_products(
    period: SalesPeriod = SalesPeriod.MONTH,
    limit: int = 5,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    """Best sellers by units over the trailing period or an explicit range."""
    since, until = _window(period, start_date, end_date)
    units = func.sum(SaleLine.quantity).label("units")
    revenue = func.sum(SaleLine.subtotal_cents).label("revenue")
    rows = (
        db.session.query(Product.id, Product.name, Product.sku, units, revenue)
        .join(SaleLine, SaleLine.product_id == Product.id)
        .join(Sale, SaleLine.sale_id == Sale.id)
        .filter(*_revenue_filters(since, until))
        .group_by(Product.id, Product.name, Product.sku)
        .order_by(units.desc(), Product.name.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": row.id,
            "name": row.name,
            "sku": row.sku,
            "units_sold": int(row.units or 0),
            "revenue_cents": int(row.revenue or 0),
        }
        for row in rows
    ]


def sales_by_category(
    period: SalesPeriod = SalesPeriod.MONTH,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    """Revenue per category, with percent share."""
    since, until = _window(period, start_date, end_date)
    category_name = func.coalesce(Category.name, "Uncategorized")
    revenue = func.sum(SaleLine.subtotal_cents).label("revenue")
    units = func.sum(SaleLine.quantity).label("units")
    rows = (
        db.session.query(category_name.label("category"), units, revenue)
        .select_from(SaleLine)
        .join(Sale, SaleLine.sale_id == Sale.id)
        .join(Product, SaleLine.product_id == Product.id)
        .outerjoin(Category, Product.category_id == Category.id)
        .filter(*_revenue_filters(since, until))
        .group_by(category_name)
        .order_by(revenue.desc())
        .all()
    )
    grand_total = sum(int(r.revenue or 0) for r in rows)
    return [
        {
            "category": row.category,
            "units_sold": int(row.units or 0),
            "revenue_cents": int(row.revenue or 0),
            "percentage": round(int(row.revenue or 0) * 100.0 / grand_total, 1) if grand_total else 0.0,
        }
        for row in rows
    ]


def movement_distribution(
    period: SalesPeriod = SalesPeriod.MONTH,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    """Movement counts and units per type."""
    since, until = _window(period, start_date, end_date)
    query = (
        db.session.query(
            InventoryMovement.movement_type,
            func.count(InventoryMovement.id),
            func.coalesce(func.sum(InventoryMovement.quantity), 0),
        )
        .filter(InventoryMovement.created_at >= since)
    )
    if until is not None:
        query = query.filter(InventoryMovement.created_at < until)
    rows = query.group_by(InventoryMovement.movement_type).all()
    by_type = {movement_type: (count, qty) for movement_type, count, qty in rows}
    total = sum(count for count, _ in by_type.values())

    result = []
    for movement_type in MOVEMENT_TYPES:
        count, qty = by_type.get(movement_type, (0, 0))
        result.append({
            "movement_type": movement_type,
            "count": int(count),
            "quantity": int(qty),
            "percentage": round(count * 100.0 / total, 1) if total else 0.0,
        })
    return result


def _history_query(start_date: date | None, end_date: date | None):
    query = (
        db.session.query(Sale, SaleLine, Product, User)
        .join(SaleLine, SaleLine.sale_id == Sale.id)
        .join(Product, SaleLine.product_id == Product.id)
        .join(User, Sale.user_id == User.id)
    )
    if start_date is not None:
        query = query.filter(Sale.created_at >= day_bounds(start_date)[0])
    if end_date is not None:
        query = query.filter(Sale.created_at < day_bounds(end_date)[1])
    return query.order_by(Sale.created_at.desc(), Sale.id.desc(), SaleLine.sequence.asc())


def search_sales_history(
    *,
    search: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 50,
) -> list[dict]:
    """Sale lines (one row per product sold), newest first."""
    query = _history_query(start_date, end_date)
    if search:
        term = search.strip()
        conditions = [Product.name.ilike(f"%{term}%")]
        sale_id = parse_document_number(term)
        if sale_id is not None:
            conditions.append(Sale.id == sale_id)
        query = query.filter(db.or_(*conditions))

    return [
        {
            "sale_id": sale.id,
            "document_number": sale.document_number,
            "date": to_utc_z(sale.created_at),
            "status": sale.status,
            "product": product.name,
            "quantity": line.quantity,
            "amount_cents": line.subtotal_cents,
            "seller": user.username,
        }
        for sale, line, product, user in query.limit(limit).all()
    ]


EXPORT_COLUMNS = [
    "Document",
    "Date",
    "Status",
    "Seller",
    "Product",
    "SKU",
    "Category",
    "Quantity",
    "Unit Price (cents)",
    "Discount (cents)",
    "Subtotal (cents)",
]


def export_sales_csv(start_date: date, end_date: date) -> str:
    """
    CSV of every sale line between two days (inclusive).

    Raises:
        InvalidRequest: If start_date is after end_date
        NotFound: If the range holds no sales
    """
    if start_date > end_date:
        raise InvalidRequest("start_date must be on or before end_date")

    rows = _history_query(start_date, end_date).all()
    if not rows:
        raise NotFound(
            "No sales to export in the selected range",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_COLUMNS)
    for sale, line, product, user in rows:
        writer.writerow([
            format_document_number(sale.id),
            sale.created_at.date().isoformat(),
            sale.status,
            user.username,
            product.name,
            product.sku or "",
            product.category.name if product.category else "",
            line.quantity,
            line.unit_price_cents,
            line.discount_cents,
            line.subtotal_cents,
        ])
    return buffer.getvalue()


def _transaction_count(start: datetime, end: datetime) -> int:
    """Every sale in [start, end), Cancelled included."""
    return db.session.query(func.count(Sale.id)).filter(
        Sale.created_at >= start,
        Sale.created_at < end,
    ).scalar() or 0


def _dashboard_top_products(day: date, limit: int = 5) -> list[dict]:
    """Active products ranked by units sold in the 30 days up to `day`."""
    since = day_bounds(day - timedelta(days=30))[0]
    until = day_bounds(day)[1]
    sold = (
        db.session.query(
            SaleLine.product_id.label("product_id"),
            func.sum(SaleLine.quantity).label("units"),
        )
        .join(Sale, SaleLine.sale_id == Sale.id)
        .filter(*_revenue_filters(since, until))
        .group_by(SaleLine.product_id)
        .subquery()
    )
    units = func.coalesce(sold.c.units, 0)
    rows = (
        db.session.query(Product, Category.name, units.label("units"))
        .outerjoin(sold, sold.c.product_id == Product.id)
        .outerjoin(Category, Product.category_id == Category.id)
        .filter(Product.is_active.is_(True))
        .order_by(units.desc(), Product.name.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": product.id,
            "name": product.name,
            "category": category,
            "units_sold": int(sold_units or 0),
            "stock": product.stock,
            "min_stock": product.min_stock,
            "price_cents": product.price_cents,
        }
        for product, category, sold_units in rows
    ]


def home_dashboard(day: date | None = None) -> dict:
    """Headline numbers for `day` (default today, UTC) plus recent activity."""
    day = day or utcnow().date()
    start, end = day_bounds(day)
    prev_start, prev_end = day_bounds(day - timedelta(days=1))

    today = _totals(start, end)
    yesterday = _totals(prev_start, prev_end)

    pending_alerts = (
        db.session.query(func.count(StockAlert.id))
        .filter(StockAlert.status == ALERT_STATUS_PENDING)
        .scalar()
    ) or 0
    active = Product.is_active.is_(True)
    low_stock = (
        db.session.query(func.count(Product.id))
        .filter(active, Product.stock <= Product.min_stock)
        .scalar()
    ) or 0
    active_products = db.session.query(func.count(Product.id)).filter(active).scalar() or 0

    recent_sales = (
        db.session.query(Sale)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(5)
        .all()
    )
    recent_movements = (
        db.session.query(InventoryMovement)
        .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
        .limit(5)
        .all()
    )

    return {
        "date": day.isoformat(),
        "sales_total_cents": today["total_cents"],
        "transactions": int(_transaction_count(start, end)),
        "average_ticket_cents": today["average_ticket_cents"],
        "sales_change_pct": _percent_change(today["total_cents"], yesterday["total_cents"]),
        "pending_alerts": int(pending_alerts),
        "low_stock_count": int(low_stock),
        "active_products": int(active_products),
        "top_products": _dashboard_top_products(day),
        "recent_sales": [s.to_dict() for s in recent_sales],
        "recent_alerts": [a.to_dict() for a in list_pending_alerts(limit=4)],
        "recent_movements": [m.to_dict() for m in recent_movements],
    }
