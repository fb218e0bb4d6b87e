"""
Pytest fixtures for ScanBizz backend tests.

Provides a fresh application per test (in-memory device database, in-memory
remote store), the test client, and helpers to reach each session state.
"""

from datetime import datetime, timedelta

import pytest
from scanbizz import create_app
from scanbizz.extensions import db
from scanbizz.services import get_services


TEST_EMAIL = "owner@example.com"
TEST_PASSWORD = "secret1"
TEST_PIN = "1234"


class FixedClock:
    """Callable clock for services that take `clock=`; advance() moves it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_BINDS': {'remote': 'sqlite:///:memory:'},
        'REMOTE_STORE_BACKEND': 'memory',
        'RESTORE_SESSION_ON_START': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def services(app):
    return get_services()


@pytest.fixture(scope='function')
def signed_up(services):
    """Fresh account, signed in, no PIN yet (AuthenticatedNoPin)."""
    services.session.sign_up(TEST_EMAIL, TEST_PASSWORD)
    return services.session.identity


@pytest.fixture(scope='function')
def authorized(services, signed_up):
    """Signed in with a PIN created (Authorized)."""
    services.session.setup_pin(TEST_PIN, TEST_PIN)
    return signed_up


def seed_product(services, barcode="111", name="Pencil", price="1.50", quantity=10):
    """Write a product straight into the remote store (the cache follows)."""
    uid = services.session.identity.uid
    services.remote.set(f"users/{uid}/stock/{barcode}", {
        "name": name,
        "price": price,
        "quantity": quantity,
        "updatedAt": "2026-01-01T00:00:00.000Z",
    })


def remote_product(services, barcode):
    uid = services.session.identity.uid
    return services.remote.get(f"users/{uid}/stock/{barcode}")


def sign_in_authorized(client):
    """Drive the HTTP flow to Authorized: signup, then PIN setup."""
    response = client.post('/api/auth/signup', json={'email': TEST_EMAIL, 'password': TEST_PASSWORD})
    assert response.status_code == 201
    response = client.post('/api/auth/pin/setup', json={'pin': TEST_PIN, 'confirm': TEST_PIN})
    assert response.status_code == 200
    return response.json['uid']
