# app/routers/task.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session, select

from app.core.config import Settings, get_settings
from app.core.errors import NotFound, ValidationError
from app.db.session import get_session
from app.dependencies.body import task_payload
from app.dependencies.sync import get_relationship_sync
from app.models.task import Task
from app.schemas.common import Envelope, ok
from app.schemas.task import TaskPayload
from app.services.query_builder import QueryParams, parse_object_id, run_collection_query, run_id_query
from app.services.relationship_sync import (
    RelationshipSync,
    TaskLink,
    UserLink,
    assignee_display_name,
    resolve_assignee,
)

log = logging.getLogger(__name__)

router = APIRouter(tags=["Tasks"])


def _require(payload: TaskPayload) -> TaskPayload:
    missing = payload.missing_required()
    if missing:
        raise ValidationError.required(("name", "deadline"), missing)
    return payload


def _load(db: Session, task_id: str) -> Task:
    task = db.get(Task, parse_object_id(task_id))
    if task is None:
        raise NotFound("Task not found")
    return task


@router.get("", response_model=Envelope)
def list_tasks(
    where: Optional[str] = Query(None),
    sort: Optional[str] = Query(None),
    select_: Optional[str] = Query(None, alias="select"),
    legacy_filter: Optional[str] = Query(None, alias="filter"),
    skip: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    count: Optional[str] = Query(None),
    db: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    params = QueryParams.from_request(where, sort, select_, legacy_filter, skip, limit, count)
    return ok(run_collection_query(db, Task, params, default_limit=settings.task_default_limit))


@router.get("/{task_id}", response_model=Envelope)
def get_task(
    task_id: str,
    select_: Optional[str] = Query(None, alias="select"),
    legacy_filter: Optional[str] = Query(None, alias="filter"),
    db: Session = Depends(get_session),
):
    doc = run_id_query(db, Task, task_id, select_ if select_ is not None else legacy_filter)
    if doc is None:
        raise NotFound("Task not found")
    return ok(doc)


@router.post("", response_model=Envelope, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskPayload = Depends(task_payload),
    db: Session = Depends(get_session),
    sync: RelationshipSync = Depends(get_relationship_sync),
):
    payload = _require(payload)
    completed = bool(payload.completed)
    assignee = resolve_assignee(db, payload.assigned_user)

    task = Task(
        name=payload.name,
        description=payload.description or "",
        deadline=payload.deadline,
        completed=completed,
        assigned_user=str(assignee.id) if assignee else "",
        assigned_user_name=assignee_display_name(assignee, payload.assigned_user_name),
    )
    assignee_link = UserLink.of(assignee) if assignee else None
    db.add(task)
    db.commit()
    db.refresh(task)
    log.info("task created id=%s assignee=%s", task.id, task.assigned_user or "-")

    sync.on_task_created(TaskLink.of(task), assignee_link)
    return ok(task.to_wire(), "Task created")


@router.put("/{task_id}", response_model=Envelope)
def update_task(
    task_id: str,
    payload: TaskPayload = Depends(task_payload),
    db: Session = Depends(get_session),
    sync: RelationshipSync = Depends(get_relationship_sync),
):
    task = _load(db, task_id)
    payload = _require(payload)
    before = TaskLink.of(task)

    assignee = resolve_assignee(db, payload.assigned_user)
    task.name = payload.name
    task.description = payload.description or ""
    task.deadline = payload.deadline
    task.completed = bool(payload.completed)
    task.assigned_user = str(assignee.id) if assignee else ""
    task.assigned_user_name = assignee_display_name(assignee, payload.assigned_user_name)
    db.add(task)
    db.commit()
    db.refresh(task)
    log.info("task updated id=%s assignee=%s completed=%s", task.id, task.assigned_user or "-", task.completed)

    sync.on_task_updated(before, TaskLink.of(task))
    return ok(task.to_wire(), "Task updated")


@router.delete("/{task_id}", response_model=Envelope)
def delete_task(
    task_id: str,
    db: Session = Depends(get_session),
    sync: RelationshipSync = Depends(get_relationship_sync),
):
    task = _load(db, task_id)
    link = TaskLink.of(task)
    db.delete(task)
    db.commit()
    log.info("task deleted id=%s", link.task_id)

    sync.on_task_deleted(link)
    return ok({}, "Task deleted")


@router.delete("", response_model=Envelope)
def delete_all_tasks(
    db: Session = Depends(get_session),
    sync: RelationshipSync = Depends(get_relationship_sync),
):
    tasks = db.exec(select(Task)).all()
    for task in tasks:
        db.delete(task)
    db.commit()
    log.info("tasks cleared count=%d", len(tasks))

    sync.on_tasks_cleared()
    return ok({"deletedCount": len(tasks)}, "Tasks cleared")
