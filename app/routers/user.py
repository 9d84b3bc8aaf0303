# app/routers/user.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from app.core.errors import BadRequest, NotFound, ValidationError, is_unique_violation
from app.db.session import get_session
from app.dependencies.body import user_payload
from app.dependencies.sync import get_relationship_sync
from app.models.user import User
from app.schemas.common import Envelope, ok
from app.schemas.user import UserPayload
from app.services.query_builder import QueryParams, parse_object_id, run_collection_query, run_id_query
from app.services.relationship_sync import RelationshipSync, UserLink

log = logging.getLogger(__name__)

user_router = APIRouter(tags=["Users"])


def _require(payload: UserPayload) -> UserPayload:
    missing = payload.missing_required()
    if missing:
        raise ValidationError.required(("name", "email"), missing)
    return payload


def _commit_user(db: Session, user: User) -> None:
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if is_unique_violation(e, "email"):
            raise BadRequest("email must be unique", {"keys": ["email"]})
        raise
    db.refresh(user)


@user_router.get("", response_model=Envelope)
def list_users(
    where: Optional[str] = Query(None),
    sort: Optional[str] = Query(None),
    select_: Optional[str] = Query(None, alias="select"),
    legacy_filter: Optional[str] = Query(None, alias="filter"),
    skip: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    count: Optional[str] = Query(None),
    db: Session = Depends(get_session),
):
    params = QueryParams.from_request(where, sort, select_, legacy_filter, skip, limit, count)
    return ok(run_collection_query(db, User, params))


@user_router.get("/{user_id}", response_model=Envelope)
def get_user(
    user_id: str,
    select_: Optional[str] = Query(None, alias="select"),
    legacy_filter: Optional[str] = Query(None, alias="filter"),
    db: Session = Depends(get_session),
):
    doc = run_id_query(db, User, user_id, select_ if select_ is not None else legacy_filter)
    if doc is None:
        raise NotFound("User not found")
    return ok(doc)


@user_router.post("", response_model=Envelope, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserPayload = Depends(user_payload),
    db: Session = Depends(get_session),
    sync: RelationshipSync = Depends(get_relationship_sync),
):
    payload = _require(payload)
    user = User(name=payload.name, email=payload.email, pending_tasks=payload.pending_tasks)
    _commit_user(db, user)
    log.info("user created id=%s pending=%d", user.id, len(user.pending_tasks))

    sync.on_user_created(UserLink.of(user))
    return ok(user.to_wire(), "User created")


@user_router.put("/{user_id}", response_model=Envelope)
def update_user(
    user_id: str,
    payload: UserPayload = Depends(user_payload),
    db: Session = Depends(get_session),
    sync: RelationshipSync = Depends(get_relationship_sync),
):
    payload = _require(payload)
    user = db.get(User, parse_object_id(user_id))
    if user is None:
        raise NotFound("User not found")
    before = UserLink.of(user)

    user.name = payload.name
    user.email = payload.email
    user.pending_tasks = payload.pending_tasks
    _commit_user(db, user)
    log.info("user updated id=%s pending=%d", user.id, len(user.pending_tasks))

    sync.on_user_updated(before, UserLink.of(user))
    return ok(user.to_wire(), "User updated")


@user_router.delete("/{user_id}", response_model=Envelope)
def delete_user(
    user_id: str,
    db: Session = Depends(get_session),
    sync: RelationshipSync = Depends(get_relationship_sync),
):
    user = db.get(User, parse_object_id(user_id))
    if user is None:
        raise NotFound("User not found")
    link = UserLink.of(user)
    db.delete(user)
    db.commit()
    log.info("user deleted id=%s", link.user_id)

    sync.on_user_deleted(link)
    return ok({}, "User deleted")
