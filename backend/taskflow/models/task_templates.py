"""Task template model used to materialize tasks when a rule fires."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint
from sqlmodel import Field

from taskflow.core.time import utcnow
from taskflow.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class TaskTemplate(QueryModel, table=True):
    """Blueprint for a task: name, type, priority and description."""

    __tablename__ = "task_templates"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        CheckConstraint("priority BETWEEN 1 AND 5", name="ck_task_templates_priority_range"),
    )

    id: int | None = Field(default=None, primary_key=True)
    org_id: int = Field(foreign_key="organizations.id", index=True)
    project_id: int | None = Field(default=None, foreign_key="projects.id", index=True)
    name: str
    description: str | None = None
    type_id: int = Field(foreign_key="task_types.id")
    priority: int = Field(default=3)
    created_by: int = Field(foreign_key="users.id")
    created_at: datetime = Field(default_factory=utcnow)
