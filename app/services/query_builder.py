"""
Generic collection queries for untrusted callers.

`where`, `sort` and `select` arrive as JSON text in the query string and are
translated into a bounded SQLModel statement. Only a closed set of fields and
operators is accepted; everything else fails with BadRequest naming the
offending parameter.
"""
from __future__ import annotations

import json
import operator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Union
from uuid import UUID

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import false, func, true
from sqlmodel import Session, select

from app.core.clock import as_utc
from app.core.errors import BadRequest, InvalidIdentifier
from app.models.task import Task
from app.models.user import User

ModelType = Union[type[Task], type[User]]


@dataclass(frozen=True)
class FieldSpec:
    attr: str
    kind: str = "text"  # id | ref | text | bool | datetime | list
    filterable: bool = True


_FIELDS: dict[Any, dict[str, FieldSpec]] = {
    Task: {
        "_id": FieldSpec("id", "id"),
        "name": FieldSpec("name"),
        "description": FieldSpec("description"),
        "deadline": FieldSpec("deadline", "datetime"),
        "completed": FieldSpec("completed", "bool"),
        "assignedUser": FieldSpec("assigned_user", "ref"),
        "assignedUserName": FieldSpec("assigned_user_name"),
        "dateCreated": FieldSpec("date_created", "datetime"),
    },
    User: {
        "_id": FieldSpec("id", "id"),
        "name": FieldSpec("name"),
        "email": FieldSpec("email"),
        "pendingTasks": FieldSpec("pending_tasks", "list", filterable=False),
        "dateCreated": FieldSpec("date_created", "datetime"),
    },
}

_COMPARISONS: dict[str, Callable[[Any, Any], Any]] = {
    "$eq": operator.eq,
    "$ne": operator.ne,
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
}
_MEMBERSHIP = {"$in", "$nin"}

_MAX_BOUND = 2**62

_datetime_adapter = TypeAdapter(datetime)
_bool_adapter = TypeAdapter(bool)


class _NoMatch:
    """Marker for an identifier value that can never equal a stored id."""


_NO_MATCH = _NoMatch()


def parse_json_param(raw: Optional[str], name: str) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        raise BadRequest(f'"{name}" is not valid JSON', {"param": name})


def _to_int(raw: Optional[str], fallback: Optional[int]) -> Optional[int]:
    if raw is None:
        return fallback
    try:
        value = int(str(raw).strip())
    except ValueError:
        return fallback
    # 드라이버 INTEGER 범위 밖 값은 잘라냄
    return max(-_MAX_BOUND, min(_MAX_BOUND, value))


def _to_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    return str(raw).strip().lower() == "true"


def parse_object_id(raw: Any) -> UUID:
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw))
    except ValueError:
        raise InvalidIdentifier()


@dataclass
class QueryParams:
    where: dict = field(default_factory=dict)
    sort: Any = None
    select: Any = None
    skip: int = 0
    limit: Optional[int] = None
    count: bool = False

    @classmethod
    def from_request(
        cls,
        where: Optional[str] = None,
        sort: Optional[str] = None,
        select: Optional[str] = None,
        legacy_filter: Optional[str] = None,
        skip: Optional[str] = None,
        limit: Optional[str] = None,
        count: Optional[str] = None,
    ) -> "QueryParams":
        if select is None and legacy_filter is not None:
            select = legacy_filter
        parsed_where = parse_json_param(where, "where")
        if parsed_where is None:
            parsed_where = {}
        if not isinstance(parsed_where, dict):
            raise BadRequest('"where" must be a JSON object', {"param": "where"})
        return cls(
            where=parsed_where,
            sort=parse_json_param(sort, "sort"),
            select=_parse_select(select),
            skip=_to_int(skip, 0),
            limit=_to_int(limit, None),
            count=_to_bool(count),
        )


def _parse_select(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        # mongoose-style "name email -_id"
        if raw.strip() and not raw.strip().startswith(("{", "[")):
            return raw
        raise BadRequest('"select" is not valid JSON', {"param": "select"})


# ---- where ----

def _field(model: ModelType, name: str, param: str) -> FieldSpec:
    spec = _FIELDS[model].get(name)
    if spec is None:
        raise BadRequest(f'"{param}" references unknown field "{name}"', {"param": param, "field": name})
    return spec


def _coerce(spec: FieldSpec, value: Any) -> Any:
    if spec.kind == "id":
        if isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except ValueError:
            return _NO_MATCH
    if spec.kind == "ref":
        if isinstance(value, (dict, list)):
            raise BadRequest('"where" values must be scalars', {"param": "where"})
        if value is None:
            return None
        text = str(value)
        try:
            return str(UUID(text))
        except ValueError:
            return text
    if value is None:
        return None
    try:
        if spec.kind == "datetime":
            return as_utc(_datetime_adapter.validate_python(value))
        if spec.kind == "bool":
            return _bool_adapter.validate_python(value)
    except PydanticValidationError:
        raise BadRequest(
            f'"where" has an invalid value for "{spec.attr}"', {"param": "where", "value": value}
        )
    if isinstance(value, (dict, list)):
        raise BadRequest('"where" values must be scalars', {"param": "where"})
    return str(value) if not isinstance(value, str) else value


def _compare(column, op: str, value: Any):
    if value is _NO_MATCH:
        return true() if op == "$ne" else false()
    return _COMPARISONS[op](column, value)


def _membership(column, spec: FieldSpec, op: str, values: Any):
    if not isinstance(values, list):
        raise BadRequest(f'"where" operator {op} expects an array', {"param": "where", "operator": op})
    coerced = [_coerce(spec, v) for v in values]
    coerced = [v for v in coerced if v is not _NO_MATCH]
    if op == "$in":
        return column.in_(coerced)
    return column.not_in(coerced)


def build_where(model: ModelType, where: dict) -> list:
    clauses = []
    for name, expr in where.items():
        spec = _field(model, name, "where")
        if not spec.filterable:
            raise BadRequest(f'"where" cannot filter on "{name}"', {"param": "where", "field": name})
        column = getattr(model, spec.attr)

        if isinstance(expr, dict):
            if not expr or not all(isinstance(k, str) and k.startswith("$") for k in expr):
                raise BadRequest(
                    f'"where" expression for "{name}" must use operators', {"param": "where", "field": name}
                )
            for op, operand in expr.items():
                if op in _MEMBERSHIP:
                    clauses.append(_membership(column, spec, op, operand))
                elif op in _COMPARISONS:
                    clauses.append(_compare(column, op, _coerce(spec, operand)))
                else:
                    raise BadRequest(
                        f'"where" uses unsupported operator {op}', {"param": "where", "operator": op}
                    )
        else:
            clauses.append(_compare(column, "$eq", _coerce(spec, expr)))
    return clauses


# ---- sort ----

def build_sort(model: ModelType, sort: Any) -> list:
    if sort is None:
        return []
    if not isinstance(sort, dict):
        raise BadRequest('"sort" must be a JSON object', {"param": "sort"})
    order = []
    for name, direction in sort.items():
        spec = _field(model, name, "sort")
        if spec.kind == "list":
            raise BadRequest(f'"sort" cannot order by "{name}"', {"param": "sort", "field": name})
        column = getattr(model, spec.attr)
        if direction in (1, "1", "asc", "ascending"):
            order.append(column.asc())
        elif direction in (-1, "-1", "desc", "descending"):
            order.append(column.desc())
        else:
            raise BadRequest(f'"sort" direction for "{name}" must be 1 or -1', {"param": "sort", "field": name})
    return order


# ---- select ----

@dataclass(frozen=True)
class Projection:
    include: bool
    fields: frozenset
    keep_id: bool = True

    def apply(self, doc: dict) -> dict:
        if self.include:
            out = {k: v for k, v in doc.items() if k in self.fields}
        else:
            out = {k: v for k, v in doc.items() if k not in self.fields}
        if self.keep_id and "_id" in doc:
            out["_id"] = doc["_id"]
        elif not self.keep_id:
            out.pop("_id", None)
        return out


def build_projection(model: ModelType, raw: Any) -> Optional[Projection]:
    if raw is None:
        return None
    if isinstance(raw, str):
        parsed: dict = {}
        for token in raw.split():
            if token.startswith("-"):
                parsed[token[1:]] = 0
            else:
                parsed[token] = 1
        raw = parsed
    elif isinstance(raw, list):
        raw = {name: 1 for name in raw}
    if not isinstance(raw, dict):
        raise BadRequest('"select" must be a JSON object', {"param": "select"})
    if not raw:
        return None

    keep_id = True
    flags: dict[str, bool] = {}
    for name, flag in raw.items():
        if not isinstance(name, str):
            raise BadRequest('"select" field names must be strings', {"param": "select"})
        _field(model, name, "select")
        if flag in (1, True, "1"):
            value = True
        elif flag in (0, False, "0"):
            value = False
        else:
            raise BadRequest(f'"select" value for "{name}" must be 0 or 1', {"param": "select", "field": name})
        if name == "_id":
            keep_id = value
            continue
        flags[name] = value

    if not flags:
        # {"_id": 1} keeps only the id, {"_id": 0} drops only the id
        return Projection(include=keep_id, fields=frozenset(), keep_id=keep_id)
    modes = set(flags.values())
    if len(modes) > 1:
        raise BadRequest('"select" cannot mix inclusion and exclusion', {"param": "select"})
    return Projection(include=modes.pop(), fields=frozenset(flags), keep_id=keep_id)


# ---- execution ----

def run_collection_query(
    db: Session,
    model: ModelType,
    params: QueryParams,
    default_limit: Optional[int] = None,
) -> Union[int, list[dict]]:
    clauses = build_where(model, params.where)

    if params.count:
        stmt = select(func.count()).select_from(model).where(*clauses)
        return int(db.exec(stmt).one())

    order = build_sort(model, params.sort)
    projection = build_projection(model, params.select)
    if params.skip < 0:
        raise BadRequest('"skip" must be non-negative', {"param": "skip"})

    stmt = select(model).where(*clauses)
    if order:
        stmt = stmt.order_by(*order)
    if params.skip:
        stmt = stmt.offset(params.skip)
    limit = params.limit if params.limit is not None else default_limit
    if limit:
        stmt = stmt.limit(abs(limit))

    rows = db.exec(stmt).all()
    docs = [row.to_wire() for row in rows]
    if projection is not None:
        docs = [projection.apply(d) for d in docs]
    return docs


def run_id_query(db: Session, model: ModelType, raw_id: str, select_raw: Optional[str] = None) -> Optional[dict]:
    projection = build_projection(model, _parse_select(select_raw))
    row = db.get(model, parse_object_id(raw_id))
    if row is None:
        return None
    doc = row.to_wire()
    return projection.apply(doc) if projection is not None else doc
