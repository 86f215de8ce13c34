"""Organization model: the tenant boundary for projects and workflows."""

from __future__ import annotations

from datetime import datetime

from sqlmodel import Field

from taskflow.core.time import utcnow
from taskflow.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Organization(QueryModel, table=True):
    """Top-level tenant."""

    __tablename__ = "organizations"  # pyright: ignore[reportAssignmentType]

    id: int | None = Field(default=None, primary_key=True)
    name: str
    created_at: datetime = Field(default_factory=utcnow)
