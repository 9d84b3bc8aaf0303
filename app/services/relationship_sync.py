"""
Keeps Task.assignedUser / Task.assignedUserName and User.pendingTasks coherent.

There is no transaction spanning the primary write and the writes made here.
Every compensating write runs in its own session after the primary write has
committed, is idempotent (set-add, set-remove, bulk set-field), and is
best-effort: failures are logged and reported in a SyncReport, never raised.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional
from uuid import UUID

from sqlmodel import Session, select

from app.db.session import session_scope
from app.models.task import UNASSIGNED_NAME, Task
from app.models.user import User

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskLink:
    """Relationship-relevant fields of a task at one point in time."""

    task_id: str
    assigned_user: str = ""
    completed: bool = False

    @classmethod
    def of(cls, task: Task) -> "TaskLink":
        return cls(str(task.id), task.assigned_user or "", bool(task.completed))


@dataclass(frozen=True)
class UserLink:
    user_id: str
    name: str
    pending_tasks: frozenset = frozenset()

    @classmethod
    def of(cls, user: User) -> "UserLink":
        return cls(str(user.id), user.name, frozenset(user.pending_tasks or ()))


@dataclass
class SyncReport:
    applied: list[str] = field(default_factory=list)
    failed: list[tuple[str, BaseException]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def _as_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _uuids(values: Iterable[str]) -> list[UUID]:
    return [u for u in (_as_uuid(v) for v in values) if u is not None]


def resolve_assignee(db: Session, raw_id: Optional[str]) -> Optional[User]:
    """User for an assignee reference, or None when it is empty, malformed or unknown."""
    if not raw_id:
        return None
    uid = _as_uuid(raw_id)
    if uid is None:
        return None
    return db.get(User, uid)


def assignee_display_name(assignee: Optional[User], supplied: Optional[str]) -> str:
    if assignee is None:
        return UNASSIGNED_NAME
    if supplied and supplied != UNASSIGNED_NAME:
        return supplied
    return assignee.name or UNASSIGNED_NAME


class RelationshipSync:
    def __init__(self, bind=None):
        self._bind = bind

    # ---- task side ----

    def on_task_created(self, task: TaskLink, assignee: Optional[UserLink]) -> SyncReport:
        ops = []
        if assignee is not None and not task.completed:
            ops.append((f"add {task.task_id} to {assignee.user_id}",
                        lambda: self._add_pending(assignee.user_id, [task.task_id])))
        return self._settle("task created", ops)

    def on_task_updated(self, old: TaskLink, new: TaskLink) -> SyncReport:
        prev_user, next_user = old.assigned_user, new.assigned_user
        ops = []
        if prev_user and (prev_user != next_user or (not old.completed and new.completed)):
            ops.append((f"pull {new.task_id} from {prev_user}",
                        lambda: self._pull_pending(prev_user, [new.task_id])))
        if next_user and not new.completed:
            ops.append((f"add {new.task_id} to {next_user}",
                        lambda: self._add_pending(next_user, [new.task_id])))
        return self._settle("task updated", ops)

    def on_task_deleted(self, task: TaskLink) -> SyncReport:
        ops = []
        if task.assigned_user:
            ops.append((f"pull {task.task_id} from {task.assigned_user}",
                        lambda: self._pull_pending(task.assigned_user, [task.task_id])))
        return self._settle("task deleted", ops)

    def on_tasks_cleared(self) -> SyncReport:
        return self._settle("tasks cleared", [("clear all pendingTasks", self._clear_pending)])

    # ---- user side ----

    def on_user_created(self, user: UserLink) -> SyncReport:
        return self.on_user_updated(UserLink(user.user_id, user.name), user)

    def on_user_updated(self, old: UserLink, new: UserLink) -> SyncReport:
        to_assign = new.pending_tasks - old.pending_tasks
        to_unassign = old.pending_tasks - new.pending_tasks
        renamed = bool(old.name) and old.name != new.name

        def claim_and_refresh():
            if to_assign:
                self._claim_tasks(new, to_assign)
            if renamed:
                self._refresh_assignee_name(new, exclude=to_unassign)

        ops = []
        if to_assign or renamed:
            ops.append((f"claim {len(to_assign)} task(s) for {new.user_id}", claim_and_refresh))
        if to_unassign:
            ops.append((f"unassign {len(to_unassign)} task(s) from {new.user_id}",
                        lambda: self._unassign_tasks(new.user_id, to_unassign)))
        return self._settle("user updated", ops)

    def on_user_deleted(self, user: UserLink) -> SyncReport:
        return self._settle("user deleted", [
            (f"unassign all tasks of {user.user_id}", lambda: self._unassign_tasks(user.user_id)),
        ])

    # ---- compensating writes ----

    def _add_pending(self, user_id: str, task_ids: list[str]) -> None:
        self._edit_pending(user_id, lambda pending: pending + [t for t in task_ids if t not in pending])

    def _pull_pending(self, user_id: str, task_ids: list[str]) -> None:
        drop = set(task_ids)
        self._edit_pending(user_id, lambda pending: [t for t in pending if t not in drop])

    def _edit_pending(self, user_id: str, change: Callable[[list[str]], list[str]]) -> None:
        uid = _as_uuid(user_id)
        if uid is None:
            log.warning("skip pendingTasks write: malformed user id %r", user_id)
            return
        with session_scope(self._bind) as s:
            user = s.exec(select(User).where(User.id == uid).with_for_update()).first()
            if user is None:
                log.info("skip pendingTasks write: user %s no longer exists", user_id)
                return
            pending = list(user.pending_tasks or [])
            updated = change(pending)
            if updated == pending:
                return
            user.pending_tasks = updated
            s.add(user)
            s.commit()

    def _claim_tasks(self, user: UserLink, task_ids: Iterable[str]) -> None:
        previous: dict[str, list[str]] = {}
        with session_scope(self._bind) as s:
            tasks = s.exec(select(Task).where(Task.id.in_(_uuids(task_ids))).with_for_update()).all()
            for task in tasks:
                if task.assigned_user and task.assigned_user != user.user_id:
                    previous.setdefault(task.assigned_user, []).append(str(task.id))
                task.assigned_user = user.user_id
                task.assigned_user_name = user.name
                task.completed = False
                s.add(task)
            s.commit()
        # claimed tasks leave the lists of whoever held them before
        for owner, ids in previous.items():
            self._pull_pending(owner, ids)

    def _unassign_tasks(self, user_id: str, task_ids: Optional[Iterable[str]] = None) -> None:
        with session_scope(self._bind) as s:
            stmt = select(Task).where(Task.assigned_user == user_id)
            if task_ids is not None:
                stmt = stmt.where(Task.id.in_(_uuids(task_ids)))
            for task in s.exec(stmt.with_for_update()).all():
                task.assigned_user = ""
                task.assigned_user_name = UNASSIGNED_NAME
                s.add(task)
            s.commit()

    def _refresh_assignee_name(self, user: UserLink, exclude: Iterable[str] = ()) -> None:
        skip = set(_uuids(exclude))
        with session_scope(self._bind) as s:
            stmt = select(Task).where(
                Task.assigned_user == user.user_id,
                Task.assigned_user_name != user.name,
            )
            for task in s.exec(stmt).all():
                if task.id in skip:
                    continue
                task.assigned_user_name = user.name
                s.add(task)
            s.commit()

    def _clear_pending(self) -> None:
        with session_scope(self._bind) as s:
            for user in s.exec(select(User)).all():
                if user.pending_tasks:
                    user.pending_tasks = []
                    s.add(user)
            s.commit()

    # ---- scheduling ----

    def _settle(self, event: str, ops: list[tuple[str, Callable[[], None]]]) -> SyncReport:
        """Run every op, concurrently when there is more than one, and wait for all of them."""
        report = SyncReport()
        if not ops:
            return report

        if len(ops) == 1:
            outcomes = [(ops[0][0], _capture(ops[0][1]))]
        else:
            with ThreadPoolExecutor(max_workers=len(ops), thread_name_prefix="relsync") as pool:
                futures = [(label, pool.submit(_capture, fn)) for label, fn in ops]
                outcomes = [(label, fut.result()) for label, fut in futures]

        for label, exc in outcomes:
            if exc is None:
                report.applied.append(label)
            else:
                report.failed.append((label, exc))
                log.error("compensating write failed after %s: %s", event, label, exc_info=exc)
        if report.failed:
            log.warning("%s: %d/%d compensating write(s) failed; assignment links may be stale",
                        event, len(report.failed), len(ops))
        return report


def _capture(fn: Callable[[], None]) -> Optional[BaseException]:
    try:
        fn()
    except Exception as exc:
        return exc
    return None
