"""
Pytest fixtures for salesboard backend tests.

The app fixture runs every dependent test against both ledger backends
(sql and memory) on an in-memory SQLite database.
"""

import pytest

from salesboard import create_app
from salesboard.extensions import db
from salesboard.models import ROLE_ACCOUNTANT, ROLE_ADMIN
from salesboard.repositories import get_repository
from salesboard.services.auth_service import create_user

from factories import PASSWORD


@pytest.fixture(params=["sql", "memory"])
def app(request):
    """Create application for testing, once per ledger backend."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_BACKEND': request.param,
        'BCRYPT_ROUNDS': 4,
        'MAX_UPLOAD_BYTES': 1024 * 1024,
        'INGEST_MAX_ROWS': 0,
        'INGEST_MAX_SECONDS': 0,
        'DATE_FALLBACK': 'today',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def repository(app):
    return get_repository()


@pytest.fixture
def admin_user(app):
    return create_user("admin", PASSWORD, full_name="Admin User", role=ROLE_ADMIN)


@pytest.fixture
def accountant_user(app):
    return create_user("accountant", PASSWORD, full_name="Accountant User", role=ROLE_ACCOUNTANT)


@pytest.fixture
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin"))


@pytest.fixture
def accountant_headers(client, accountant_user):
    return auth_headers(get_auth_token(client, "accountant"))


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
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
