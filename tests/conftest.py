"""
Shared pytest fixtures for the Phase Progress Engine test suite.

Provides:
    - app: Flask application (session-scoped, in-memory SQLite)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - supervisor / engineer / other_engineer / admin: User rows
    - sup / eng / other_eng: matching Principal values
    - project / phase: a project with three phases (100h budget on phase 1)
    - auth_header: builds a Bearer header for a user
"""

from datetime import date
from decimal import Decimal

import pytest

from app import create_app
from app.auth import Principal
from app.models import db as _db
from app.models.auth import User
from app.services import project_service
from app.services.jwt_service import generate_access_token


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
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users & principals ───────────────────────────────────────────────────


def _user(email, name, role, job=None):
    u = User(email=email, name=name, role=role, job_description=job)
    _db.session.add(u)
    _db.session.commit()
    return u


@pytest.fixture()
def supervisor():
    return _user("sup@example.com", "Sam Supervisor", "supervisor")


@pytest.fixture()
def admin():
    return _user("admin@example.com", "Ada Admin", "administrator")


@pytest.fixture()
def engineer():
    return _user("eng@example.com", "Eli Engineer", "engineer", "Structural")


@pytest.fixture()
def other_engineer():
    return _user("eng2@example.com", "Noor Engineer", "engineer", "MEP")


@pytest.fixture()
def sup(supervisor):
    return Principal(user_id=supervisor.id, role="supervisor")


@pytest.fixture()
def eng(engineer):
    return Principal(user_id=engineer.id, role="engineer")


@pytest.fixture()
def other_eng(other_engineer):
    return Principal(user_id=other_engineer.id, role="engineer")


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def project(sup):
    """Project with three phases; phase 1 is ``ready`` with a 100h budget."""
    return project_service.create_project(
        "Riverside Clinic",
        sup,
        start_date=date(2025, 1, 6),
        client_name="Riverside Health",
        phases=[
            {"name": "Concept Design", "planned_weeks": 2, "predicted_hours": 100},
            {"name": "Schematic Design", "planned_weeks": 3, "predicted_hours": 150},
            {"name": "Licensing", "planned_weeks": 3, "predicted_hours": 80},
        ],
    )


@pytest.fixture()
def phase(project):
    """First phase of ``project`` (status ``ready``, predicted_hours 100)."""
    p = project.phases[0]
    assert p.predicted_hours == Decimal("100")
    return p


@pytest.fixture()
def second_phase(project):
    return project.phases[1]


# ── HTTP helpers ─────────────────────────────────────────────────────────


@pytest.fixture()
def auth_header():
    """``auth_header(user)`` → Authorization header dict for the test client."""

    def _make(user):
        return {"Authorization": f"Bearer {generate_access_token(user.id, user.role)}"}

    return _make
