from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

import pytest
from sqlmodel import Session

from app.dependencies.sync import get_relationship_sync
from app.main import app
from app.models.task import Task
from app.models.user import User
from app.services.relationship_sync import RelationshipSync, TaskLink, UserLink
from conftest import DEADLINE


@pytest.fixture
def seed(engine):
    def _seed(*rows):
        with Session(engine) as s:
            for row in rows:
                s.add(row)
            s.commit()
            for row in rows:
                s.refresh(row)
                s.expunge(row)
        return rows

    return _seed


def _reload(engine, model, pk):
    with Session(engine) as s:
        return s.get(model, pk)


def _user(name, pending=()):
    return User(name=name, email=f"{name}@example.com", pending_tasks=list(pending))


def _task(name, assigned="", completed=False):
    return Task(name=name, deadline=datetime(2026, 12, 1, tzinfo=timezone.utc), assigned_user=assigned, completed=completed)


def test_set_add_is_idempotent(engine, sync, seed):
    (ada,) = seed(_user("ada"))
    link = TaskLink(str(uuid.uuid4()), str(ada.id))

    sync.on_task_created(link, UserLink.of(ada))
    sync.on_task_created(link, UserLink.of(ada))

    assert _reload(engine, User, ada.id).pending_tasks == [link.task_id]


def test_completed_task_creation_does_nothing(sync, seed):
    (ada,) = seed(_user("ada"))

    report = sync.on_task_created(TaskLink("t1", str(ada.id), completed=True), UserLink.of(ada))

    assert report.ok
    assert report.applied == []


def test_update_to_same_user_only_adds(sync, seed):
    (ada,) = seed(_user("ada", pending=["t1"]))
    old = TaskLink("t1", str(ada.id))

    report = sync.on_task_updated(old, old)

    assert len(report.applied) == 1
    assert report.applied[0].startswith("add")


def test_failed_pull_does_not_block_add(engine, sync, seed, monkeypatch, caplog):
    ada, bob = seed(_user("ada", pending=["t1"]), _user("bob"))

    def boom(user_id, task_ids):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(sync, "_pull_pending", boom)
    with caplog.at_level(logging.ERROR, logger="app.services.relationship_sync"):
        report = sync.on_task_updated(TaskLink("t1", str(ada.id)), TaskLink("t1", str(bob.id)))

    assert not report.ok
    assert [label for label, _ in report.failed] == [f"pull t1 from {ada.id}"]
    assert isinstance(report.failed[0][1], RuntimeError)
    assert _reload(engine, User, bob.id).pending_tasks == ["t1"]
    assert "compensating write failed" in caplog.text


def test_writes_to_missing_or_malformed_users_are_noops(sync):
    assert sync.on_task_deleted(TaskLink("t1", str(uuid.uuid4()))).ok
    assert sync.on_task_deleted(TaskLink("t1", "not-a-user")).ok


def test_user_update_claims_and_resets_completed(engine, sync, seed):
    ada, bob = seed(_user("ada"), _user("bob"))
    owned, done = seed(_task("owned", assigned=str(bob.id)), _task("done", completed=True))
    with Session(engine) as s:
        b = s.get(User, bob.id)
        b.pending_tasks = [str(owned.id)]
        s.add(b)
        s.commit()

    new = UserLink(str(ada.id), "ada", frozenset({str(owned.id), str(done.id)}))
    report = sync.on_user_updated(UserLink(str(ada.id), "ada"), new)

    assert report.ok
    for pk in (owned.id, done.id):
        task = _reload(engine, Task, pk)
        assert task.assigned_user == str(ada.id)
        assert task.assigned_user_name == "ada"
        assert task.completed is False
    assert _reload(engine, User, bob.id).pending_tasks == []


def test_user_update_unassign_skips_tasks_owned_by_someone_else(engine, sync, seed):
    ada, bob = seed(_user("ada"), _user("bob"))
    mine, theirs = seed(_task("mine", assigned=str(ada.id)), _task("theirs", assigned=str(bob.id)))

    old = UserLink(str(ada.id), "ada", frozenset({str(mine.id), str(theirs.id)}))
    sync.on_user_updated(old, UserLink(str(ada.id), "ada"))

    assert _reload(engine, Task, mine.id).assigned_user == ""
    assert _reload(engine, Task, mine.id).assigned_user_name == "unassigned"
    assert _reload(engine, Task, theirs.id).assigned_user == str(bob.id)


def test_user_deleted_unassigns_everything(engine, sync, seed):
    (ada,) = seed(_user("ada"))
    t1, t2 = seed(_task("a", assigned=str(ada.id)), _task("b", assigned=str(ada.id), completed=True))

    sync.on_user_deleted(UserLink.of(ada))

    for pk in (t1.id, t2.id):
        task = _reload(engine, Task, pk)
        assert (task.assigned_user, task.assigned_user_name) == ("", "unassigned")


def test_tasks_cleared_empties_every_list(engine, sync, seed):
    ada, bob = seed(_user("ada", pending=["x"]), _user("bob", pending=["y", "z"]))

    sync.on_tasks_cleared()

    assert _reload(engine, User, ada.id).pending_tasks == []
    assert _reload(engine, User, bob.id).pending_tasks == []


def test_handler_succeeds_when_compensating_write_fails(client, engine, monkeypatch, make_user):
    ada = make_user("Ada")
    broken = RelationshipSync(engine)

    def boom(user_id, task_ids):
        raise RuntimeError("lost connection")

    monkeypatch.setattr(broken, "_add_pending", boom)
    app.dependency_overrides[get_relationship_sync] = lambda: broken

    res = client.post("/api/tasks", json={"name": "x", "deadline": DEADLINE, "assignedUser": ada["_id"]})

    assert res.status_code == 201
    assert res.json()["data"]["assignedUser"] == ada["_id"]
    assert client.get(f"/api/users/{ada['_id']}").json()["data"]["pendingTasks"] == []
