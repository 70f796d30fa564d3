"""
Shared pytest fixtures for the TraceHub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test app context + DB reset (autouse)
    - client: Flask test client (function-scoped)
    - user / other_user: users with a known password
    - auth_headers / other_auth_headers: Bearer headers carrying a real JWT
"""

import pytest

from tracehub import create_app
from tracehub.models import db as _db
from tracehub.services.auth_service import create_user
from tracehub.services.jwt_service import generate_access_token

PASSWORD = "Correct-Horse-42"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Principals ───────────────────────────────────────────────────────────


@pytest.fixture()
def password():
    """Plain-text password shared by the user fixtures."""
    return PASSWORD


@pytest.fixture()
def user():
    return create_user("qa.lead@example.com", PASSWORD, full_name="QA Lead")


@pytest.fixture()
def other_user():
    return create_user("reviewer@example.com", PASSWORD, full_name="Reviewer")


@pytest.fixture()
def auth_headers(user):
    return {"Authorization": f"Bearer {generate_access_token(user.id)}"}


@pytest.fixture()
def other_auth_headers(other_user):
    return {"Authorization": f"Bearer {generate_access_token(other_user.id)}"}
