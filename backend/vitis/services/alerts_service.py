# Overview: Service-layer operations for stock alerts; encapsulates business logic and database work.

"""
Stock Alert Queries and Transitions

Alerts are created by ledger_service.evaluate_stock_alert. This module only
reads them and moves them out of Pending:
- Pending -> Resolved (resolve_alert, resolve_product_alerts)
- Pending -> Ignored (ignore_alert)
"""

from __future__ import annotations

from sqlalchemy import case, func

from ..extensions import db
from ..errors import InvalidRequest, NotFound
from ..models import Product, StockAlert
from ..models.inventory import (
    ALERT_PRIORITY_HIGH,
    ALERT_PRIORITY_MEDIUM,
    ALERT_PRIORITY_LOW,
    ALERT_STATUS_PENDING,
    ALERT_STATUS_RESOLVED,
    ALERT_STATUS_IGNORED,
)
from vitis.time_utils import utcnow

_STATUS_ORDER = case(
    (StockAlert.status == ALERT_STATUS_PENDING, 1),
    (StockAlert.status == ALERT_STATUS_RESOLVED, 2),
    else_=3,
)

_PRIORITY_ORDER = case(
    (StockAlert.priority == ALERT_PRIORITY_HIGH, 1),
    (StockAlert.priority == ALERT_PRIORITY_MEDIUM, 2),
    (StockAlert.priority == ALERT_PRIORITY_LOW, 3),
    else_=4,
)


def list_alerts() -> list[StockAlert]:
    """All alerts: Pending first, then by priority, newest first."""
    return (
        db.session.query(StockAlert)
        .order_by(_STATUS_ORDER, _PRIORITY_ORDER, StockAlert.created_at.desc(), StockAlert.id.desc())
        .all()
    )


def list_pending_alerts(limit: int | None = None) -> list[StockAlert]:
    """Pending alerts by priority, newest first."""
    query = (
        db.session.query(StockAlert)
        .filter(StockAlert.status == ALERT_STATUS_PENDING)
        .order_by(_PRIORITY_ORDER, StockAlert.created_at.desc(), StockAlert.id.desc())
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def get_alert_summary() -> dict:
    """Counts for the notifications badge and dashboard."""
    pending = StockAlert.status == ALERT_STATUS_PENDING

    def _count(condition):
        return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

    row = db.session.query(
        _count(pending),
        _count(db.and_(pending, StockAlert.priority == ALERT_PRIORITY_HIGH)),
        _count(db.and_(pending, StockAlert.priority == ALERT_PRIORITY_MEDIUM)),
        _count(db.and_(pending, StockAlert.priority == ALERT_PRIORITY_LOW)),
        _count(StockAlert.status == ALERT_STATUS_RESOLVED),
        _count(StockAlert.status == ALERT_STATUS_IGNORED),
        func.count(StockAlert.id),
    ).one()

    return {
        "pending": int(row[0]),
        "high_priority": int(row[1]),
        "medium_priority": int(row[2]),
        "low_priority": int(row[3]),
        "resolved": int(row[4]),
        "ignored": int(row[5]),
        "total": int(row[6]),
    }


def get_latest_alerts(limit: int = 5) -> list[StockAlert]:
    """Most recent alerts regardless of status."""
    return (
        db.session.query(StockAlert)
        .order_by(StockAlert.created_at.desc(), StockAlert.id.desc())
        .limit(limit)
        .all()
    )


def _get_pending(alert_id: int) -> StockAlert:
    alert = db.session.get(StockAlert, alert_id)
    if not alert:
        raise NotFound("Alert not found", details={"alert_id": alert_id})
    if alert.status != ALERT_STATUS_PENDING:
        raise InvalidRequest(
            f"Alert is already {alert.status}",
            details={"alert_id": alert_id, "status": alert.status},
        )
    return alert


def _close(alert: StockAlert, status: str, actor_user_id: int) -> None:
    alert.status = status
    alert.resolved_at = utcnow()
    alert.resolved_by_user_id = actor_user_id


def resolve_alert(alert_id: int, actor_user_id: int) -> StockAlert:
    alert = _get_pending(alert_id)
    _close(alert, ALERT_STATUS_RESOLVED, actor_user_id)
    db.session.commit()
    return alert


def ignore_alert(alert_id: int, actor_user_id: int) -> StockAlert:
    alert = _get_pending(alert_id)
    _close(alert, ALERT_STATUS_IGNORED, actor_user_id)
    db.session.commit()
    return alert


def resolve_product_alerts(product_id: int, actor_user_id: int) -> int:
    """Resolve every Pending alert for a product; returns how many changed."""
    if not db.session.get(Product, product_id):
        raise NotFound("Product not found", details={"product_id": product_id})

    alerts = (
        db.session.query(StockAlert)
        .filter_by(product_id=product_id, status=ALERT_STATUS_PENDING)
        .all()
    )
    for alert in alerts:
        _close(alert, ALERT_STATUS_RESOLVED, actor_user_id)
    db.session.commit()
    return len(alerts)
