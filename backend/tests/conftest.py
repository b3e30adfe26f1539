"""
Pytest fixtures for Bufet backend tests.

Provides test database setup, user/staff/product factories and test client.
"""

from datetime import timedelta

import pytest
from bufet import create_app
from bufet.extensions import db
from bufet.models import User, Product, StockBatch, ROLE_USER, ROLE_OFFICE_ASSISTANT
from bufet.services import session_service
from bufet.time_utils import utcnow


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'LOGIN_CODE_BCRYPT_ROUNDS': 4,
    'MAIL_MODE': 'console',
    'ALLOWED_EMAIL_DOMAINS': [],
    'OFFICE_ASSISTANT_EMAILS': ['@office.example.com'],
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
def make_user(db_session):
    """Factory: make_user(email=..., role=..., created_at=...)."""
    counter = {"n": 0}

    def _make(email=None, role=ROLE_USER, name=None, created_at=None):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            name=name,
            role=role,
            created_at=created_at or (utcnow() - timedelta(days=30)),
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def user(make_user):
    return make_user(email="alice@example.com", name="Alice")


@pytest.fixture(scope='function')
def staff(make_user):
    return make_user(email="boss@office.example.com", name="Boss", role=ROLE_OFFICE_ASSISTANT)


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name, ean, price_cents, batches=[(qty, cost), ...])."""
    counter = {"n": 0}

    def _make(name=None, ean=None, price_cents=100, batches=()):
        counter["n"] += 1
        product = Product(
            name=name or f"Product {counter['n']}",
            ean=ean or f"858000000{counter['n']:04d}",
            price_cents=price_cents,
        )
        db_session.add(product)
        db_session.flush()

        # explicit, strictly increasing timestamps keep FIFO order deterministic
        base = utcnow() - timedelta(hours=1)
        for i, (qty, cost) in enumerate(batches):
            db_session.add(StockBatch(
                product_id=product.id,
                quantity=qty,
                price_cents=cost,
                created_at=base + timedelta(seconds=i),
            ))
        db_session.commit()
        return product

    return _make


def auth_headers(user) -> dict:
    """Open a session for `user` and return Authorization headers."""
    _, token = session_service.create_session(user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def user_headers(user):
    return auth_headers(user)


@pytest.fixture(scope='function')
def staff_headers(staff):
    return auth_headers(staff)


@pytest.fixture(scope='function')
def sent_notifications(monkeypatch):
    """Capture outgoing notifications instead of logging them."""
    from bufet.services import notification_service

    sent = []
    original_render = notification_service.render

    def _fake_send(kind, recipient, data):
        msg = original_render(kind, recipient, data)
        sent.append({"kind": kind, "recipient": recipient, "data": data, "message": msg})
        return msg

    monkeypatch.setattr(notification_service, "send_notification", _fake_send)
    return sent
