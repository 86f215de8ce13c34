"""Diagnose why a versioned write matched no row.

Lifecycle calls are two-phase: validate the guard against a read, attempt the
conditional write, and only when the write misses re-read the row here to
explain the miss. The same ordered guard backs both phases, so the pre-check
and the post-hoc diagnosis can never disagree; whatever the guard accepts
must have been a stale version.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from taskflow.core.logging import get_logger
from taskflow.models.cards import Card
from taskflow.models.tasks import Task, TaskStatus
from taskflow.services.errors import (
    AlreadyClaimedError,
    InvalidTransitionError,
    LifecycleError,
    NotAuthorizedError,
    NotFoundError,
    VersionConflictError,
)

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)


class TaskOperation(str, Enum):
    CLAIM = "claim"
    RELEASE = "release"
    COMPLETE = "complete"
    UPDATE = "update"


def check_task_guard(
    task: Task | None,
    *,
    actor_id: int,
    operation: TaskOperation,
) -> LifecycleError | None:
    """Return the error ``operation`` would hit on ``task``, or ``None`` if it is legal."""
    if task is None:
        return NotFoundError("Task not found")
    if task.status == TaskStatus.COMPLETED:
        return InvalidTransitionError("Task is already completed")
    if operation is TaskOperation.CLAIM:
        if task.status == TaskStatus.CLAIMED:
            return AlreadyClaimedError()
        return None
    if task.status != TaskStatus.CLAIMED:
        return InvalidTransitionError("Task is not claimed")
    if task.claimed_by != actor_id:
        return NotAuthorizedError()
    return None


async def classify_conflict(
    session: AsyncSession,
    *,
    task_id: int,
    actor_id: int,
    operation: TaskOperation,
) -> LifecycleError:
    """Re-read ``task_id`` after a missed write and name the precise failure."""
    task = await Task.objects.by_id(task_id).fresh().first(session)
    error = check_task_guard(task, actor_id=actor_id, operation=operation)
    if error is None:
        error = VersionConflictError("Task was modified concurrently; refetch and retry")
    logger.info(
        "task.conflict.classified",
        extra={
            "task_id": task_id,
            "actor_id": actor_id,
            "operation": operation.value,
            "error_kind": error.kind.value,
        },
    )
    return error


async def classify_card_conflict(session: AsyncSession, *, card_id: int) -> LifecycleError:
    """Cards carry no ownership, so a missed write is either gone or stale."""
    card = await Card.objects.by_id(card_id).fresh().first(session)
    if card is None:
        return NotFoundError("Card not found")
    return VersionConflictError("Card was modified concurrently; refetch and retry")
