from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime
from uuid import UUID, uuid4
from datetime import datetime
from typing import Any

from app.core.clock import as_utc, utcnow

UNASSIGNED_NAME = "unassigned"


class Task(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    description: str = ""
    deadline: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    completed: bool = False
    assigned_user: str = Field(default="", index=True)
    assigned_user_name: str = UNASSIGNED_NAME
    date_created: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    def to_wire(self) -> dict[str, Any]:
        return {
            "_id": str(self.id),
            "name": self.name,
            "description": self.description,
            "deadline": as_utc(self.deadline),
            "completed": self.completed,
            "assignedUser": self.assigned_user,
            "assignedUserName": self.assigned_user_name,
            "dateCreated": as_utc(self.date_created),
        }
