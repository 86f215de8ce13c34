"""Project-scoped task type catalogue."""

from __future__ import annotations

from sqlmodel import Field

from taskflow.models.base import QueryModel


class TaskType(QueryModel, table=True):
    """Kind of work a task represents (bug, chore, review...)."""

    __tablename__ = "task_types"  # pyright: ignore[reportAssignmentType]

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    name: str
    icon: str = Field(default="task")
