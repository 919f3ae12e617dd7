"""
Pytest fixtures for Vitis backend tests.

Provides test database setup, role-based users, a product factory, and test client.
"""

import pytest
from vitis import create_app
from vitis.extensions import db
from vitis.models import Category
from vitis.services.auth_service import create_user
from vitis.services import products_service


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'EMAIL_USER': None,
        'EMAIL_PASS': None,
        'ALERT_EMAIL': None,
        'DIGEST_TIMEZONE': 'UTC',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return create_user("admin", "admin@vitis.test", PASSWORD, role="admin", full_name="Admin")


@pytest.fixture(scope='function')
def manager_user(db_session):
    return create_user("manager", "manager@vitis.test", PASSWORD, role="manager")


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return create_user("cashier", "cashier@vitis.test", PASSWORD, role="cashier")


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin", PASSWORD))


@pytest.fixture(scope='function')
def manager_headers(client, manager_user):
    return auth_headers(get_auth_token(client, "manager", PASSWORD))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_user):
    return auth_headers(get_auth_token(client, "cashier", PASSWORD))


@pytest.fixture(scope='function')
def category(db_session):
    """Create an active category."""
    cat = Category(name="Beverages", description="Drinks", is_active=True)
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def make_product(db_session, admin_user):
    """
    Factory for products created through the products service, so any
    initial stock is recorded as an "Initial stock" Entry movement.
    """
    counter = {"n": 0}

    def _make(name=None, stock=0, min_stock=0, price_cents=1000, category_id=None, sku=None):
        counter["n"] += 1
        patch = {
            "name": name or f"Product {counter['n']}",
            "sku": sku or f"SKU-{counter['n']:03d}",
            "price_cents": price_cents,
            "min_stock": min_stock,
            "stock": stock,
            "category_id": category_id,
        }
        created = products_service.create_product(patch=patch, actor_user_id=admin_user.id)
        return products_service.get_product(created["id"])

    return _make


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
