"""Schemas for milestone activation responses."""

from __future__ import annotations

from datetime import datetime

from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class MilestoneRead(SQLModel):
    id: int
    project_id: int
    name: str
    description: str | None = None
    state: str
    position: int
    created_by: int
    created_at: datetime
    activated_at: datetime | None = None
    completed_at: datetime | None = None


class ActivationSnapshotRead(SQLModel):
    """Activated milestone plus the amount of content it released."""

    milestone: MilestoneRead
    cards_released: int
    tasks_released: int
