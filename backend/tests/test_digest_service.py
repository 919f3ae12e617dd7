"""
Critical-stock digest tests.

SMTP is replaced with a mock; no mail leaves the test run.
"""

import smtplib
from unittest.mock import patch

import pytest

from vitis.extensions import db
from vitis.services import digest_service
from vitis.services.digest_service import StockSummary


@pytest.fixture
def stocked(make_product, category):
    out = make_product(name="Oat milk", stock=0, min_stock=3, category_id=category.id)
    critical = make_product(name="Beans", stock=2, min_stock=5)
    near = make_product(name="Filters", stock=6, min_stock=5)
    make_product(name="Cups", stock=20, min_stock=5)
    hidden = make_product(name="Retired", stock=0, min_stock=5)
    hidden.is_active = False
    db.session.commit()
    return out, critical, near


@pytest.fixture
def mail_config(app, monkeypatch):
    monkeypatch.setitem(app.config, "EMAIL_USER", "store@vitis.test")
    monkeypatch.setitem(app.config, "EMAIL_PASS", "app-password")
    monkeypatch.setitem(app.config, "ALERT_EMAIL", "owner@vitis.test")
    monkeypatch.setitem(app.config, "SMTP_HOST", "smtp.vitis.test")
    monkeypatch.setitem(app.config, "SMTP_PORT", 2525)
    monkeypatch.setitem(app.config, "SMTP_USE_TLS", True)


class TestDigestQueries:

    def test_summary_counts_active_products(self, stocked):
        summary = digest_service.get_stock_summary()
        assert summary == StockSummary(critical=2, out_of_stock=1, near_critical=1, total=4)
        assert summary.needs_attention == 3

    def test_critical_products_ranked_by_severity(self, stocked):
        out, critical, near = stocked
        products = digest_service.get_critical_products()
        assert [p.product_id for p in products] == [out.id, critical.id, near.id]
        assert [p.label for p in products] == ["OUT_OF_STOCK", "CRITICAL", "LOW"]
        assert products[0].category == "Beverages"
        assert products[1].category is None

    def test_limit(self, stocked):
        assert len(digest_service.get_critical_products(limit=1)) == 1

    def test_subjects(self):
        assert digest_service.digest_subject(StockSummary(2, 1, 0, 9)) == "Stock alert - 3 products need attention"
        assert digest_service.digest_subject(StockSummary(0, 0, 4, 9)) == "Stock report - everything in order"

    def test_render_lists_products(self, stocked):
        summary = digest_service.get_stock_summary()
        subject, html = digest_service.render_digest(summary, digest_service.get_critical_products())
        assert subject.startswith("Stock alert")
        assert "Oat milk" in html
        assert "OUT_OF_STOCK" in html
        assert "Retired" not in html

    def test_render_with_nothing_to_report(self, db_session):
        _, html = digest_service.render_digest(digest_service.get_stock_summary(), [])
        assert "No products are at or near their minimum stock." in html


class TestSendDigest:

    def test_missing_credentials(self, stocked):
        result = digest_service.send_stock_digest()
        assert result.sent is False
        assert "EMAIL_USER" in result.error
        assert result.to_dict()["product_count"] == 3

    def test_sends_over_smtp(self, stocked, mail_config):
        with patch("smtplib.SMTP") as smtp_cls:
            result = digest_service.send_stock_digest()

        smtp_cls.assert_called_once_with("smtp.vitis.test", 2525, timeout=30)
        smtp = smtp_cls.return_value.__enter__.return_value
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("store@vitis.test", "app-password")
        message = smtp.send_message.call_args[0][0]

        assert result.sent is True
        assert result.recipient == "owner@vitis.test"
        assert result.message_id == message["Message-ID"]
        assert message["To"] == "owner@vitis.test"
        assert message["Subject"] == "Stock alert - 3 products need attention"
        assert "store@vitis.test" in message["From"]

    def test_recipient_defaults_to_sender(self, app, stocked, mail_config, monkeypatch):
        monkeypatch.setitem(app.config, "ALERT_EMAIL", None)
        monkeypatch.setitem(app.config, "SMTP_USE_TLS", False)
        with patch("smtplib.SMTP") as smtp_cls:
            result = digest_service.send_stock_digest()

        assert result.recipient == "store@vitis.test"
        smtp_cls.return_value.__enter__.return_value.starttls.assert_not_called()

    def test_smtp_failure_is_reported_not_raised(self, stocked, mail_config):
        with patch("smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value.login.side_effect = smtplib.SMTPAuthenticationError(
                535, b"bad credentials"
            )
            result = digest_service.send_stock_digest()

        assert result.sent is False
        assert result.error.startswith("SMTPAuthenticationError")

    def test_connection_refused(self, stocked, mail_config):
        with patch("smtplib.SMTP", side_effect=ConnectionRefusedError("refused")):
            result = digest_service.send_stock_digest()
        assert result.sent is False
        assert "ConnectionRefusedError" in result.error

    def test_route_reports_success(self, client, manager_headers, stocked, mail_config):
        with patch("smtplib.SMTP"):
            resp = client.post("/api/notifications/send-digest", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["sent"] is True
        assert resp.json["summary"]["critical"] == 2
