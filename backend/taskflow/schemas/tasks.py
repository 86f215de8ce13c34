"""Schemas for task lifecycle API payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import Field, StringConstraints, model_validator
from sqlmodel import SQLModel

from taskflow.models.tasks import TASK_TITLE_MAX_LENGTH

TaskTitle = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=TASK_TITLE_MAX_LENGTH),
]

RUNTIME_ANNOTATION_TYPES = (datetime, TaskTitle)

# Fields a patch may omit but never set to null.
_NON_NULLABLE_PATCH_FIELDS = ("title", "priority", "type_id")


class VersionPayload(SQLModel):
    """Body of claim/release/complete: the version the caller last observed."""

    version: int = Field(
        ge=1,
        description="Expected current version of the task.",
        examples=[1],
    )


class TaskPatch(SQLModel):
    """Partial edit of a claimed task.

    Only fields present in the payload are applied; ``description: null``
    clears the description.
    """

    version: int = Field(ge=1, description="Expected current version of the task.")
    title: TaskTitle | None = None
    description: str | None = None
    priority: int | None = Field(default=None, ge=1, le=5)
    type_id: int | None = None

    @model_validator(mode="after")
    def _reject_null_required_fields(self) -> TaskPatch:
        for name in _NON_NULLABLE_PATCH_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, object]:
        """Field values explicitly provided, excluding ``version``."""
        return self.model_dump(include=self.model_fields_set - {"version"})


class TaskRead(SQLModel):
    """Task payload returned by lifecycle endpoints."""

    id: int
    project_id: int
    type_id: int
    card_id: int | None = None
    milestone_id: int | None = None
    title: str
    description: str | None = None
    priority: int
    status: str
    created_by: int
    claimed_by: int | None = None
    claimed_at: datetime | None = None
    completed_at: datetime | None = None
    pool_lifetime_s: int
    created_from_rule_id: int | None = None
    created_at: datetime
    version: int
