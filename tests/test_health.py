import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError

from app.core.errors import violated_keys
from app.db.session import get_session
from app.main import app


def test_health_reports_uptime(client):
    res = client.get("/health")

    assert res.status_code == 200
    assert res.json()["message"] == "OK"
    assert res.json()["data"]["uptime"] >= 0


def test_health_db_ok(client):
    assert client.get("/health/db").json() == {"message": "OK", "data": {"ok": True}}


def test_unknown_route_uses_envelope(client):
    res = client.get("/api/nothing-here")

    assert res.status_code == 404
    assert res.json() == {"message": "Not Found", "data": {}}


def test_unhandled_error_is_server_error(client):
    def broken_session():
        raise RuntimeError("db is on fire")
        yield  # pragma: no cover

    app.dependency_overrides[get_session] = broken_session
    res = TestClient(app, raise_server_exceptions=False).get("/api/tasks")

    assert res.status_code == 500
    assert res.json() == {"message": "Server error", "data": {}}


def test_integrity_error_reports_violated_keys(client):
    def conflicting_session():
        raise IntegrityError("INSERT INTO user ...", {}, Exception("UNIQUE constraint failed: user.email"))
        yield  # pragma: no cover

    app.dependency_overrides[get_session] = conflicting_session
    res = client.get("/api/users")

    assert res.status_code == 400
    assert res.json() == {"message": "Duplicate key", "data": {"keys": ["email"]}}


@pytest.mark.parametrize(
    ("orig", "keys"),
    [
        ("UNIQUE constraint failed: user.email", ["email"]),
        ("UNIQUE constraint failed: task.name, task.deadline", ["name", "deadline"]),
        (
            'duplicate key value violates unique constraint "ix_user_email"\n'
            "DETAIL:  Key (email)=(ada@example.com) already exists.",
            ["email"],
        ),
        ("NOT NULL constraint failed: task.name", []),
    ],
)
def test_violated_keys(orig, keys):
    assert violated_keys(IntegrityError("stmt", {}, Exception(orig))) == keys
