"""Task model: the unit of work members claim and complete."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, Index
from sqlmodel import Field

from taskflow.core.time import utcnow
from taskflow.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)

TASK_TITLE_MAX_LENGTH = 56


class TaskStatus(str, Enum):
    """Lifecycle states; completed is terminal."""

    AVAILABLE = "available"
    CLAIMED = "claimed"
    COMPLETED = "completed"


class Task(QueryModel, table=True):
    """Project task guarded by an optimistic-concurrency ``version``."""

    __tablename__ = "tasks"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        CheckConstraint("priority BETWEEN 1 AND 5", name="ck_tasks_priority_range"),
        CheckConstraint(
            "status IN ('available', 'claimed', 'completed')",
            name="ck_tasks_status",
        ),
        CheckConstraint(
            "card_id IS NULL OR milestone_id IS NULL",
            name="ck_tasks_card_milestone_exclusive",
        ),
        CheckConstraint("pool_lifetime_s >= 0", name="ck_tasks_pool_lifetime_non_negative"),
        CheckConstraint(
            "(status = 'claimed') = (claimed_by IS NOT NULL)",
            name="ck_tasks_claimed_by_matches_status",
        ),
        Index("ix_tasks_project_milestone_status", "project_id", "milestone_id", "status"),
        Index("ix_tasks_card_status", "card_id", "status"),
    )

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    type_id: int = Field(foreign_key="task_types.id", index=True)
    card_id: int | None = Field(default=None, foreign_key="cards.id", index=True)
    milestone_id: int | None = Field(default=None, foreign_key="milestones.id", index=True)

    title: str = Field(max_length=TASK_TITLE_MAX_LENGTH)
    description: str | None = None
    priority: int = Field(default=3)
    status: str = Field(default=TaskStatus.AVAILABLE.value, index=True)

    created_by: int = Field(foreign_key="users.id", index=True)
    claimed_by: int | None = Field(default=None, foreign_key="users.id", index=True)
    claimed_at: datetime | None = None
    completed_at: datetime | None = None

    # Seconds spent claimable, accumulated each time the task leaves the pool.
    pool_lifetime_s: int = Field(default=0)
    last_entered_pool_at: datetime | None = None
    created_from_rule_id: int | None = Field(default=None, foreign_key="rules.id", index=True)

    created_at: datetime = Field(default_factory=utcnow)
    version: int = Field(default=1)
