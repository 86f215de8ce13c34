"""Schemas for card planning payloads."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field
from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class CardMove(SQLModel):
    """Move a card into a milestone of the same project."""

    version: int = Field(ge=1, description="Expected current version of the card.")
    milestone_id: int


class CardReturn(SQLModel):
    version: int = Field(ge=1, description="Expected current version of the card.")


class CardRead(SQLModel):
    id: int
    project_id: int
    milestone_id: int | None = None
    title: str
    description: str | None = None
    created_by: int
    created_at: datetime
    version: int
