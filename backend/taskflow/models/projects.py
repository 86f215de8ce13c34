"""Project model; row locks on it serialize milestone activation."""

from __future__ import annotations

from datetime import datetime

from sqlmodel import Field

from taskflow.core.time import utcnow
from taskflow.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Project(QueryModel, table=True):
    """Organization-scoped project containing cards, tasks and milestones."""

    __tablename__ = "projects"  # pyright: ignore[reportAssignmentType]

    id: int | None = Field(default=None, primary_key=True)
    org_id: int = Field(foreign_key="organizations.id", index=True)
    name: str
    created_at: datetime = Field(default_factory=utcnow)
