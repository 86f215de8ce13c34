"""Milestone model with the one-active-per-project guarantee."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, Index, text
from sqlmodel import Field

from taskflow.core.time import utcnow
from taskflow.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)

ONE_ACTIVE_MILESTONE_INDEX = "ix_milestones_one_active_per_project"


class MilestoneState(str, Enum):
    """Forward-only states: ready -> active -> completed."""

    READY = "ready"
    ACTIVE = "active"
    COMPLETED = "completed"


class Milestone(QueryModel, table=True):
    """Ordered project milestone; at most one per project is active."""

    __tablename__ = "milestones"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        CheckConstraint(
            "(state = 'ready' AND activated_at IS NULL AND completed_at IS NULL)"
            " OR (state = 'active' AND activated_at IS NOT NULL AND completed_at IS NULL)"
            " OR (state = 'completed' AND activated_at IS NOT NULL AND completed_at IS NOT NULL)",
            name="ck_milestones_state_timestamps",
        ),
        Index(
            ONE_ACTIVE_MILESTONE_INDEX,
            "project_id",
            unique=True,
            sqlite_where=text("state = 'active'"),
            postgresql_where=text("state = 'active'"),
        ),
        Index("ix_milestones_project_state_position", "project_id", "state", "position"),
    )

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    name: str
    description: str | None = None
    state: str = Field(default=MilestoneState.READY.value)
    position: int = Field(default=0)
    created_by: int = Field(foreign_key="users.id")
    created_at: datetime = Field(default_factory=utcnow)
    activated_at: datetime | None = None
    completed_at: datetime | None = None
