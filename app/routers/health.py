# app/routers/health.py
import time

from fastapi import APIRouter, Depends
from sqlmodel import Session, text

from app.core.errors import InternalError
from app.db.session import get_session
from app.schemas.common import Envelope, ok

router = APIRouter(tags=["health"])

_STARTED = time.monotonic()


@router.get("/health", response_model=Envelope)
def health_app():
    return ok({"uptime": round(time.monotonic() - _STARTED, 3)})


@router.get("/health/db", response_model=Envelope)
def health_db(db: Session = Depends(get_session)):
    # Migration is a deployment concern. Runtime only verifies DB connectivity.
    try:
        db.exec(text("SELECT 1"))
    except Exception:
        raise InternalError("Database connection failed")
    return ok({"ok": True})


@router.get("/api", response_model=Envelope)
def api_home():
    return ok(None, "Welcome to the task tracker API")
