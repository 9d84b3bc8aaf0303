from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.common import normalize_pending_tasks


class UserPayload(BaseModel):
    """Body of POST/PUT /users."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    name: Optional[str] = None
    email: Optional[str] = None
    pending_tasks: List[str] = Field(default_factory=list, alias="pendingTasks")

    @field_validator("pending_tasks", mode="before")
    @classmethod
    def _normalize(cls, v: Any) -> List[str]:
        return normalize_pending_tasks(v)

    def missing_required(self) -> list[str]:
        return [f for f in ("name", "email") if not (getattr(self, f) or "").strip()]
