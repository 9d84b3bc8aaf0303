from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.clock import as_utc


class TaskPayload(BaseModel):
    """Body of POST/PUT /tasks. Required fields are checked by the handler."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    name: Optional[str] = None
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    completed: Optional[bool] = None
    assigned_user: Optional[str] = Field(None, alias="assignedUser")
    assigned_user_name: Optional[str] = Field(None, alias="assignedUserName")

    @field_validator("completed", mode="before")
    @classmethod
    def _loose_bool(cls, v: Any) -> Any:
        # "true"만 참으로 취급, 나머지 문자열은 거짓
        if isinstance(v, str):
            return v.strip().lower() == "true"
        return v

    @field_validator("deadline")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    def missing_required(self) -> list[str]:
        missing = []
        if not (self.name or "").strip():
            missing.append("name")
        if self.deadline is None:
            missing.append("deadline")
        return missing
