"""Card model grouping related tasks; ``milestone_id`` null means the pool."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import Index
from sqlmodel import Field

from taskflow.core.time import utcnow
from taskflow.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class CardState(str, Enum):
    """State derived from the card's tasks; never stored."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


class Card(QueryModel, table=True):
    """Container of tasks, optionally planned into a milestone."""

    __tablename__ = "cards"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (Index("ix_cards_project_milestone", "project_id", "milestone_id"),)

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    milestone_id: int | None = Field(default=None, foreign_key="milestones.id", index=True)
    title: str
    description: str | None = None
    created_by: int = Field(foreign_key="users.id")
    created_at: datetime = Field(default_factory=utcnow)
    version: int = Field(default=1)
