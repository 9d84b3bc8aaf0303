# app/dependencies/body.py
import json
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError

from app.schemas.task import TaskPayload
from app.schemas.user import UserPayload

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def _body_error(kind: str, msg: str, value: Any = None) -> RequestValidationError:
    return RequestValidationError([{"type": kind, "loc": ("body",), "msg": msg, "input": value}])


async def read_body(request: Request) -> dict:
    """JSON 또는 form-encoded 본문을 dict로. 빈 본문은 {}."""
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith(_FORM_TYPES):
        form = await request.form()
        body: dict = {}
        for key in form.keys():
            values = form.getlist(key)
            # pendingTasks[]=a&pendingTasks[]=b
            name = key[:-2] if key.endswith("[]") else key
            body[name] = values if len(values) > 1 or key.endswith("[]") else values[0]
        return body

    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        raise _body_error("json_invalid", "JSON decode error")
    if not isinstance(data, dict):
        raise _body_error("model_attributes_type", "Input should be a valid dictionary", data)
    return data


def _validate(schema, body: dict):
    try:
        return schema.model_validate(body)
    except PydanticValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))


async def task_payload(request: Request) -> TaskPayload:
    return _validate(TaskPayload, await read_body(request))


async def user_payload(request: Request) -> UserPayload:
    return _validate(UserPayload, await read_body(request))
