"""
Shared fixtures: every test gets its own SQLite file.
"""

import pytest

from cmdgate.core.db import init_db
from cmdgate.core.schema import Identity, Role
from cmdgate.core.users import create_user


@pytest.fixture(autouse=True)
def test_db(tmp_path, monkeypatch):
    """Point the store at a temporary database and create the schema."""
    db_path = tmp_path / "cmdgate_test.db"
    monkeypatch.setenv("DB_PATH", str(db_path))
    monkeypatch.delenv("SMTP_PASSWORD", raising=False)
    init_db()
    yield str(db_path)


@pytest.fixture
def make_user():
    """Factory creating a user; returns (identity, api_key)."""
    counter = {"n": 0}

    def _make(role=Role.MEMBER, credits=100, username=None):
        counter["n"] += 1
        name = username or f"{role}_{counter['n']}"
        user, api_key = create_user(name, f"{name}@example.com", role, credits)
        return Identity(user_id=user.id, username=user.username, role=user.role), api_key

    return _make


@pytest.fixture
def member(make_user):
    return make_user(Role.MEMBER)


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN)


@pytest.fixture
def approvers(make_user):
    """Three distinct approvers."""
    return [make_user(Role.APPROVER) for _ in range(3)]


@pytest.fixture
def no_notify():
    """Schedule function that drops the notification."""
    scheduled = []

    def _schedule(fn, *args):
        scheduled.append((fn, args))

    _schedule.calls = scheduled
    return _schedule
