"""
Shared pytest fixtures for the migration checklist test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - migration: Pre-created Migration built from the default template
"""

import pytest

from tcm_checklist import create_app
from tcm_checklist.models import db as _db


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


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
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def migration():
    """A committed migration for 'Acme Corp' seeded from the question template."""
    from tcm_checklist.services import migration_service

    m = migration_service.create_migration(
        client_info={"clientName": "Acme Corp", "kickoffDate": "2024-05-01T00:00:00.000Z"},
        actor="owner@acme.test",
    )
    _db.session.commit()
    return m
