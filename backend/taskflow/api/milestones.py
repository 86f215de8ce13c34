"""Milestone activation endpoint."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from taskflow.api.deps import ACTOR_DEP, SESSION_DEP
from taskflow.schemas.errors import ErrorResponse
from taskflow.schemas.milestones import ActivationSnapshotRead, MilestoneRead
from taskflow.services.milestones import activate_milestone

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

router = APIRouter(prefix="/projects/{project_id}/milestones", tags=["milestones"])


@router.post(
    "/{milestone_id}/activate",
    response_model=ActivationSnapshotRead,
    responses={
        404: {"model": ErrorResponse, "description": "Project or milestone not found"},
        409: {"model": ErrorResponse, "description": "already_active or invalid_transition"},
    },
)
async def activate(
    project_id: int,
    milestone_id: int,
    session: AsyncSession = SESSION_DEP,
    actor_id: int = ACTOR_DEP,
) -> ActivationSnapshotRead:
    """Activate a ready milestone and release its cards and tasks."""
    snapshot = await activate_milestone(
        session,
        milestone_id=milestone_id,
        project_id=project_id,
    )
    return ActivationSnapshotRead(
        milestone=MilestoneRead.model_validate(snapshot.milestone, from_attributes=True),
        cards_released=snapshot.cards_released,
        tasks_released=snapshot.tasks_released,
    )
