"""
Shared pytest fixtures for the Change Request Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - super_user / admin / client_user: approved accounts in the DB
    - auth_headers: builds a Bearer header for one of those accounts
    - make_user / make_task / make_meta: plain domain snapshots for engine tests
"""

from dataclasses import replace
from datetime import date, datetime, timezone

import pytest

from tracker import create_app
from tracker.core.types import (
    ApprovalStatus,
    AppUser,
    ProjectTask,
    TaskAccessMeta,
    TaskHistoryEntry,
    TaskStatus,
    UserRole,
    UserStatus,
    new_id,
)
from tracker.models import db as _db
from tracker.models.auth import UserRecord
from tracker.services.jwt_service import generate_access_token
from tracker.utils.crypto import hash_password

NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
PASSWORD = "secret-pass"


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


# ── Domain snapshot factories (no DB) ────────────────────────────────────


def build_user(role=UserRole.CLIENT, status=UserStatus.APPROVED, email=None, name="Test User"):
    user_id = new_id()
    return AppUser(
        id=user_id,
        name=name,
        email=email or f"{role.value}-{user_id[:8]}@acme.com",
        role=role,
        status=status,
        created_at=NOW,
    )


def build_task(status=TaskStatus.REQUESTED, **overrides):
    task_id = overrides.pop("id", new_id())
    fields = dict(
        id=task_id,
        title="Add export button",
        requested_date=date(2025, 1, 1),
        status=status,
        created_at=NOW,
        updated_at=NOW,
        change_points=("Export CSV",),
        history=(TaskHistoryEntry(id=new_id(), status=status, changed_at=NOW, note="Seed"),),
    )
    fields.update(overrides)
    return ProjectTask(**fields)


def build_meta(task, owner=None, approval=ApprovalStatus.PENDING):
    return TaskAccessMeta(
        task_id=task.id,
        owner_user_id=owner.id if owner else None,
        approval_status=approval,
        updated_at=NOW,
    )


@pytest.fixture()
def make_user():
    return build_user


@pytest.fixture()
def make_task():
    return build_task


@pytest.fixture()
def make_meta():
    return build_meta


# ── Persisted accounts ───────────────────────────────────────────────────


def create_account(role=UserRole.CLIENT, status=UserStatus.APPROVED, email=None, name=None):
    """Insert an account directly (bypassing the registration gate)."""
    user = build_user(role=role, status=status, email=email, name=name or role.value.title())
    user = replace(user, password_hash=hash_password(PASSWORD, rounds=4))
    _db.session.add(UserRecord().apply(user))
    _db.session.commit()
    return user


@pytest.fixture()
def super_user():
    return create_account(UserRole.SUPER_USER, email="chief@acme.com", name="Chief")


@pytest.fixture()
def admin():
    return create_account(UserRole.ADMIN, email="pm@acme.com", name="Project Manager")


@pytest.fixture()
def client_user():
    return create_account(UserRole.CLIENT, email="buyer@acme.com", name="Buyer")


@pytest.fixture()
def other_client():
    return create_account(UserRole.CLIENT, email="rival@acme.com", name="Rival")


@pytest.fixture()
def auth_headers():
    """auth_headers(user) -> {"Authorization": "Bearer ..."}"""
    def _headers(user):
        token = generate_access_token(user)["access_token"]
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture()
def make_account():
    """make_account(role, status=..., email=..., name=...) -> persisted AppUser"""
    return create_account
