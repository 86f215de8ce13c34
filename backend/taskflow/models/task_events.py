"""Append-only task activity log."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import Index
from sqlmodel import Field

from taskflow.core.time import utcnow
from taskflow.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class TaskEventType(str, Enum):
    CREATED = "task_created"
    CLAIMED = "task_claimed"
    RELEASED = "task_released"
    COMPLETED = "task_completed"


class TaskEvent(QueryModel, table=True):
    """One row per lifecycle transition; ``actor_user_id`` is null for cascades."""

    __tablename__ = "task_events"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        Index("ix_task_events_project_created_at", "project_id", "created_at"),
        Index("ix_task_events_task_created_at", "task_id", "created_at"),
    )

    id: int | None = Field(default=None, primary_key=True)
    org_id: int = Field(foreign_key="organizations.id", index=True)
    project_id: int = Field(foreign_key="projects.id")
    task_id: int = Field(foreign_key="tasks.id")
    actor_user_id: int | None = Field(default=None, foreign_key="users.id", index=True)
    event_type: str = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow)
