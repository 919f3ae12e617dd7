# Overview: Service-layer operations for the critical-stock email digest; queries, rendering, and SMTP delivery.

"""
Stock Digest

Summarizes products at or near their minimum stock and mails the summary to
ALERT_EMAIL. The digest only reads the catalog: it never touches the ledger,
and delivery failures are logged and returned in the DigestResult instead of
raised.
"""

from __future__ import annotations

import smtplib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from zoneinfo import ZoneInfo

from flask import current_app, render_template
from sqlalchemy import case, func

from ..extensions import db
from ..models import Category, Product

LABEL_OUT_OF_STOCK = "OUT_OF_STOCK"
LABEL_CRITICAL = "CRITICAL"
LABEL_LOW = "LOW"

# "near critical" means stock <= 1.2 * min_stock, kept in integers as 6/5
NEAR_NUM = 6
NEAR_DEN = 5

SENDER_NAME = "Vitis Store - Inventory"


@dataclass(frozen=True)
class StockSummary:
    critical: int
    out_of_stock: int
    near_critical: int
    total: int

    @property
    def needs_attention(self) -> int:
        return self.critical + self.out_of_stock

    def to_dict(self) -> dict:
        return {
            "critical": self.critical,
            "out_of_stock": self.out_of_stock,
            "near_critical": self.near_critical,
            "total": self.total,
        }


@dataclass(frozen=True)
class CriticalProduct:
    product_id: int
    name: str
    category: str | None
    stock: int
    min_stock: int
    label: str

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "category": self.category,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "label": self.label,
        }


@dataclass
class DigestResult:
    sent: bool
    recipient: str | None
    subject: str
    summary: StockSummary
    products: list[CriticalProduct] = field(default_factory=list)
    message_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "sent": self.sent,
            "recipient": self.recipient,
            "subject": self.subject,
            "summary": self.summary.to_dict(),
            "product_count": len(self.products),
            "message_id": self.message_id,
            "error": self.error,
        }


def _near_limit():
    return Product.stock * NEAR_DEN <= Product.min_stock * NEAR_NUM


def get_stock_summary() -> StockSummary:
    """Counts over active products."""
    def _count(condition):
        return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

    row = (
        db.session.query(
            _count(Product.stock <= Product.min_stock),
            _count(Product.stock == 0),
            _count(db.and_(Product.stock > Product.min_stock, _near_limit())),
            func.count(Product.id),
        )
        .filter(Product.is_active.is_(True))
        .one()
    )
    return StockSummary(
        critical=int(row[0]),
        out_of_stock=int(row[1]),
        near_critical=int(row[2]),
        total=int(row[3]),
    )


def _label(stock: int, min_stock: int) -> str:
    if stock <= 0:
        return LABEL_OUT_OF_STOCK
    if stock <= min_stock:
        return LABEL_CRITICAL
    return LABEL_LOW


def get_critical_products(limit: int = 10) -> list[CriticalProduct]:
    """Products at or near minimum: out of stock first, then critical, then low; lowest stock first."""
    severity = case(
        (Product.stock <= 0, 1),
        (Product.stock <= Product.min_stock, 2),
        else_=3,
    )
    rows = (
        db.session.query(Product, Category.name)
        .outerjoin(Category, Product.category_id == Category.id)
        .filter(Product.is_active.is_(True), _near_limit())
        .order_by(severity, Product.stock.asc(), Product.name.asc())
        .limit(limit)
        .all()
    )
    return [
        CriticalProduct(
            product_id=product.id,
            name=product.name,
            category=category_name,
            stock=product.stock,
            min_stock=product.min_stock,
            label=_label(product.stock, product.min_stock),
        )
        for product, category_name in rows
    ]


def digest_subject(summary: StockSummary) -> str:
    if summary.needs_attention > 0:
        return f"Stock alert - {summary.needs_attention} products need attention"
    return "Stock report - everything in order"


def render_digest(summary: StockSummary, products: list[CriticalProduct]) -> tuple[str, str]:
    """Return (subject, html) for the digest email."""
    tz_name = current_app.config.get("DIGEST_TIMEZONE", "UTC")
    generated_at = datetime.now(timezone.utc).astimezone(ZoneInfo(tz_name))

    html = render_template(
        "stock_digest.html",
        summary=summary,
        products=products,
        generated_at=generated_at.strftime("%Y-%m-%d %H:%M"),
        timezone=tz_name,
    )
    return digest_subject(summary), html


def _plain_text(summary: StockSummary, products: list[CriticalProduct]) -> str:
    lines = [
        f"Out of stock: {summary.out_of_stock}",
        f"Critical: {summary.critical}",
        f"Near critical: {summary.near_critical}",
        f"Total products: {summary.total}",
        "",
    ]
    for p in products:
        lines.append(f"[{p.label}] {p.name} ({p.category or 'No category'}): {p.stock}/{p.min_stock}")
    return "\n".join(lines)


def build_message(sender: str, recipient: str, subject: str, html: str, text: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = formataddr((SENDER_NAME, sender))
    msg["To"] = recipient
    msg["Message-ID"] = make_msgid(domain=sender.split("@")[-1])
    msg.set_content(text)
    msg.add_alternative(html, subtype="html")
    return msg


def send_stock_digest(limit: int | None = None) -> DigestResult:
    """
    Build the digest and send it over SMTP.

    Uses SMTP_HOST / SMTP_PORT (STARTTLS when SMTP_USE_TLS) with
    EMAIL_USER / EMAIL_PASS; the recipient is ALERT_EMAIL, else EMAIL_USER.
    """
    config = current_app.config
    logger = current_app.logger

    limit = limit or config.get("DIGEST_PRODUCT_LIMIT", 10)
    summary = get_stock_summary()
    products = get_critical_products(limit)
    subject, html = render_digest(summary, products)

    sender = config.get("EMAIL_USER")
    password = config.get("EMAIL_PASS")
    recipient = config.get("ALERT_EMAIL") or sender

    result = DigestResult(
        sent=False,
        recipient=recipient,
        subject=subject,
        summary=summary,
        products=products,
    )

    if not sender or not password:
        result.error = "EMAIL_USER and EMAIL_PASS must be configured"
        logger.warning("Stock digest not sent: %s", result.error)
        return result

    msg = build_message(sender, recipient, subject, html, _plain_text(summary, products))

    try:
        with smtplib.SMTP(config["SMTP_HOST"], config["SMTP_PORT"], timeout=30) as smtp:
            if config.get("SMTP_USE_TLS", True):
                smtp.starttls()
            smtp.login(sender, password)
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        logger.exception("Failed to send stock digest to %s", recipient)
        result.error = f"{exc.__class__.__name__}: {exc}"
        return result

    result.sent = True
    result.message_id = msg["Message-ID"]
    logger.info(
        "Stock digest sent to %s (%d need attention, %d listed)",
        recipient, summary.needs_attention, len(products),
    )
    return result
