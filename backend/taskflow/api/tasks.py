"""Task lifecycle endpoints: claim, release, complete and edit."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from taskflow.api.deps import ACTOR_DEP, SESSION_DEP
from taskflow.schemas.errors import ErrorResponse
from taskflow.schemas.tasks import TaskPatch, TaskRead, VersionPayload
from taskflow.services.task_lifecycle import (
    claim_task,
    complete_task,
    release_task,
    update_task,
)

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from taskflow.models.tasks import Task

router = APIRouter(prefix="/tasks", tags=["tasks"])

_LIFECYCLE_ERRORS: dict[int | str, dict[str, object]] = {
    403: {"model": ErrorResponse, "description": "Task is held by another user"},
    404: {"model": ErrorResponse, "description": "Task not found"},
    409: {
        "model": ErrorResponse,
        "description": "already_claimed, invalid_transition or version_conflict",
    },
}


@router.post("/{task_id}/claim", response_model=TaskRead, responses=_LIFECYCLE_ERRORS)
async def claim(
    task_id: int,
    payload: VersionPayload,
    session: AsyncSession = SESSION_DEP,
    actor_id: int = ACTOR_DEP,
) -> Task:
    """Claim an available task at the version the caller last saw."""
    return await claim_task(
        session,
        task_id=task_id,
        actor_id=actor_id,
        expected_version=payload.version,
    )


@router.post("/{task_id}/release", response_model=TaskRead, responses=_LIFECYCLE_ERRORS)
async def release(
    task_id: int,
    payload: VersionPayload,
    session: AsyncSession = SESSION_DEP,
    actor_id: int = ACTOR_DEP,
) -> Task:
    """Return a claimed task to the pool."""
    return await release_task(
        session,
        task_id=task_id,
        actor_id=actor_id,
        expected_version=payload.version,
    )


@router.post("/{task_id}/complete", response_model=TaskRead, responses=_LIFECYCLE_ERRORS)
async def complete(
    task_id: int,
    payload: VersionPayload,
    session: AsyncSession = SESSION_DEP,
    actor_id: int = ACTOR_DEP,
) -> Task:
    """Complete a claimed task; runs workflow automation in the same transaction."""
    return await complete_task(
        session,
        task_id=task_id,
        actor_id=actor_id,
        expected_version=payload.version,
    )


@router.patch("/{task_id}", response_model=TaskRead, responses=_LIFECYCLE_ERRORS)
async def patch_task(
    task_id: int,
    payload: TaskPatch,
    session: AsyncSession = SESSION_DEP,
    actor_id: int = ACTOR_DEP,
) -> Task:
    """Edit title, description, priority or type of a task the caller holds."""
    return await update_task(
        session,
        task_id=task_id,
        actor_id=actor_id,
        expected_version=payload.version,
        patch=payload,
    )
