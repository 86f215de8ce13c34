"""Workflow model: a named, scoped container of automation rules."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from taskflow.core.time import utcnow
from taskflow.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Workflow(QueryModel, table=True):
    """Org-scoped when ``project_id`` is null, project-scoped otherwise."""

    __tablename__ = "workflows"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint("org_id", "project_id", "name", name="uq_workflows_scope_name"),
    )

    id: int | None = Field(default=None, primary_key=True)
    org_id: int = Field(foreign_key="organizations.id", index=True)
    project_id: int | None = Field(default=None, foreign_key="projects.id", index=True)
    name: str
    description: str | None = None
    active: bool = Field(default=False)
    created_by: int = Field(foreign_key="users.id")
    created_at: datetime = Field(default_factory=utcnow)
