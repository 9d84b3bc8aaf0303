from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.db.session import build_engine, create_all_tables, get_session  # noqa: E402
from app.dependencies.sync import get_relationship_sync  # noqa: E402
from app.main import app  # noqa: E402
from app.models.task import Task  # noqa: E402
from app.models.user import User  # noqa: E402
from app.services.relationship_sync import RelationshipSync  # noqa: E402

DEADLINE = "2026-12-01T12:00:00"


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'tasks.db'}")
    create_all_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def sync(engine):
    return RelationshipSync(engine)


@pytest.fixture
def client(engine, sync):
    def _session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_relationship_sync] = lambda: sync
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(client):
    def _make(name="Ada", email=None, pending=None):
        body = {"name": name, "email": email or f"{name.lower()}@example.com"}
        if pending is not None:
            body["pendingTasks"] = pending
        res = client.post("/api/users", json=body)
        assert res.status_code == 201, res.text
        return res.json()["data"]

    return _make


@pytest.fixture
def make_task(client):
    def _make(name="write report", **extra):
        body = {"name": name, "deadline": DEADLINE, **extra}
        res = client.post("/api/tasks", json=body)
        assert res.status_code == 201, res.text
        return res.json()["data"]

    return _make


@pytest.fixture
def assert_links_consistent(engine):
    """Every open assigned task is in its user's pendingTasks; no other task is in any list."""

    def _check():
        with Session(engine) as s:
            tasks = s.exec(select(Task)).all()
            users = {str(u.id): set(u.pending_tasks) for u in s.exec(select(User)).all()}
        for t in tasks:
            tid = str(t.id)
            if t.assigned_user and not t.completed:
                assert tid in users.get(t.assigned_user, set()), f"{tid} missing from {t.assigned_user}"
                holders = [uid for uid, pending in users.items() if tid in pending]
                assert holders == [t.assigned_user]
            else:
                assert all(tid not in pending for pending in users.values()), f"{tid} still pending"

    return _check
