from __future__ import annotations

import json
from typing import Any, Iterable, List
from uuid import UUID

from pydantic import BaseModel


class Envelope(BaseModel):
    message: str
    data: Any = None


def ok(data: Any = None, message: str = "OK") -> dict:
    return {"message": message, "data": data}


def canonical_id(value: Any) -> str:
    text = str(value).strip()
    try:
        return str(UUID(text))
    except ValueError:
        return text


def _dedupe(values: Iterable[Any]) -> List[str]:
    return list(dict.fromkeys(canonical_id(v) for v in values))


def normalize_pending_tasks(value: Any) -> List[str]:
    """
    pendingTasks 입력 정규화.
    - list            -> 각 원소 str
    - '["a","b"]'     -> JSON 배열 파싱
    - 'a, b'          -> 콤마 분리
    """
    if not value:
        return []
    if isinstance(value, (list, tuple, set)):
        return _dedupe(value)
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            return _dedupe(parsed)
        return _dedupe(s for s in value.split(",") if s.strip())
    return []
