from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, JSON
from uuid import UUID, uuid4
from datetime import datetime
from typing import Any, List

from app.core.clock import as_utc, utcnow


class User(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    pending_tasks: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    date_created: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    __tablename__ = "user"

    def to_wire(self) -> dict[str, Any]:
        return {
            "_id": str(self.id),
            "name": self.name,
            "email": self.email,
            "pendingTasks": [str(t) for t in (self.pending_tasks or [])],
            "dateCreated": as_utc(self.date_created),
        }
