# app/core/errors.py
from __future__ import annotations

import logging
import re
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import IntegrityError

log = logging.getLogger(__name__)

# Postgres: "DETAIL:  Key (email)=(x) already exists."  SQLite: "UNIQUE constraint failed: user.email"
_PG_KEY = re.compile(r"key \(([^)]+)\)=", re.IGNORECASE)
_SQLITE_UNIQUE = re.compile(r"unique constraint failed: ([\w.]+(?:,\s*[\w.]+)*)", re.IGNORECASE)


class ApiError(HTTPException):
    """HTTPException that renders as the `{message, data}` envelope."""

    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, data: Any = None, status_code: Optional[int] = None):
        super().__init__(status_code=status_code or self.status_code_default, detail=message)
        self.message = message
        self.data = data if data is not None else {}


class ValidationError(ApiError):
    """Missing or empty required field."""

    @classmethod
    def required(cls, fields: tuple[str, ...], missing: list[str]) -> "ValidationError":
        return cls(
            f"{' and '.join(fields)} are required",
            {"fields": [{"field": f, "message": "required"} for f in missing]},
        )


class BadRequest(ApiError):
    """Malformed query parameter or store-level uniqueness conflict."""


class InvalidIdentifier(ApiError):
    def __init__(self, message: str = "Invalid id format", data: Any = None):
        super().__init__(message, data)


class NotFound(ApiError):
    status_code_default = status.HTTP_404_NOT_FOUND


class InternalError(ApiError):
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Server error", data: Any = None):
        super().__init__(message, data)


def envelope(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"message": message, "data": data}),
    )


def is_unique_violation(exc: IntegrityError, column: str) -> bool:
    text = str(exc.orig).lower()
    return ("unique" in text or "duplicate key" in text) and column in text


def violated_keys(exc: IntegrityError) -> list[str]:
    text = str(exc.orig)
    match = _PG_KEY.search(text)
    if match:
        return [c.strip() for c in match.group(1).split(",")]
    match = _SQLITE_UNIQUE.search(text)
    if match:
        return [c.strip().rsplit(".", 1)[-1] for c in match.group(1).split(",")]
    return []


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(_request: Request, exc: ApiError):
        return envelope(exc.message, exc.data, exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request error"
        return envelope(message, {}, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _request_validation(_request: Request, exc: RequestValidationError):
        fields = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
                "message": "required" if err.get("type") == "missing" else err.get("msg", "invalid"),
            }
            for err in exc.errors()
        ]
        return envelope("Validation failed", {"fields": fields}, status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(IntegrityError)
    async def _integrity(_request: Request, exc: IntegrityError):
        log.warning("integrity error: %s", exc.orig)
        keys = violated_keys(exc)
        return envelope("Duplicate key", {"keys": keys} if keys else {}, status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        log.exception("unhandled error on %s %s", request.method, request.url.path)
        return envelope("Server error", {}, status.HTTP_500_INTERNAL_SERVER_ERROR)
