"""Task lifecycle: claim, release, complete and claimed-task edits.

Every operation follows the same discipline: read the task and validate the
ordered guard, attempt one versioned write, and hand a missed write to the
conflict classifier. A successful transition writes its task event, runs the
workflow engine for the task (and for the card when its derived state moved)
and, after a completion, re-checks the milestone, all in one unit of work.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlmodel import col

from taskflow.core.logging import get_logger
from taskflow.core.time import seconds_between, utcnow
from taskflow.db.transactions import transaction
from taskflow.models.milestones import MilestoneState
from taskflow.models.rules import ResourceType
from taskflow.models.task_events import TaskEventType
from taskflow.models.task_types import TaskType
from taskflow.models.tasks import Task, TaskStatus
from taskflow.services.cards import card_progress
from taskflow.services.conflicts import TaskOperation, check_task_guard, classify_conflict
from taskflow.services.errors import (
    DomainValidationError,
    InvalidTransitionError,
    VersionConflictError,
)
from taskflow.services.milestones import (
    effective_milestone_for_task,
    recompute_milestone_completion,
)
from taskflow.services.task_events import record_task_event
from taskflow.services.versioned_store import update_if_version
from taskflow.services.workflow_engine import TransitionEvent, on_transition

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    from sqlalchemy.sql.elements import ColumnElement
    from sqlmodel.ext.asyncio.session import AsyncSession

    from taskflow.models.cards import CardState
    from taskflow.schemas.tasks import TaskPatch

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Transition:
    operation: TaskOperation
    to_status: TaskStatus
    event_type: TaskEventType
    values: Callable[[Task, int, datetime], dict[str, Any]]
    guards: Callable[[int], Sequence[ColumnElement[bool]]]


def _claim_values(task: Task, actor_id: int, now: datetime) -> dict[str, Any]:
    return {
        "status": TaskStatus.CLAIMED.value,
        "claimed_by": actor_id,
        "claimed_at": now,
        "pool_lifetime_s": task.pool_lifetime_s
        + seconds_between(task.last_entered_pool_at, now),
        "last_entered_pool_at": None,
    }


def _release_values(task: Task, actor_id: int, now: datetime) -> dict[str, Any]:
    return {
        "status": TaskStatus.AVAILABLE.value,
        "claimed_by": None,
        "claimed_at": None,
        "last_entered_pool_at": now,
    }


def _complete_values(task: Task, actor_id: int, now: datetime) -> dict[str, Any]:
    return {
        "status": TaskStatus.COMPLETED.value,
        "claimed_by": None,
        "completed_at": now,
    }


def _unclaimed_guards(actor_id: int) -> Sequence[ColumnElement[bool]]:
    return (col(Task.status) == TaskStatus.AVAILABLE.value,)


def _held_by_guards(actor_id: int) -> Sequence[ColumnElement[bool]]:
    return (
        col(Task.status) == TaskStatus.CLAIMED.value,
        col(Task.claimed_by) == actor_id,
    )


CLAIM = _Transition(
    operation=TaskOperation.CLAIM,
    to_status=TaskStatus.CLAIMED,
    event_type=TaskEventType.CLAIMED,
    values=_claim_values,
    guards=_unclaimed_guards,
)
RELEASE = _Transition(
    operation=TaskOperation.RELEASE,
    to_status=TaskStatus.AVAILABLE,
    event_type=TaskEventType.RELEASED,
    values=_release_values,
    guards=_held_by_guards,
)
COMPLETE = _Transition(
    operation=TaskOperation.COMPLETE,
    to_status=TaskStatus.COMPLETED,
    event_type=TaskEventType.COMPLETED,
    values=_complete_values,
    guards=_held_by_guards,
)


async def _card_state(session: AsyncSession, card_id: int | None) -> CardState | None:
    if card_id is None:
        return None
    return (await card_progress(session, card_id)).state


async def _ensure_claimable(session: AsyncSession, task: Task) -> None:
    milestone = await effective_milestone_for_task(session, task)
    if milestone is not None and milestone.state == MilestoneState.READY:
        raise InvalidTransitionError("Task belongs to a milestone that has not been activated")


async def _after_transition(
    session: AsyncSession,
    *,
    task: Task,
    transition: _Transition,
    actor_id: int | None,
    card_state_before: CardState | None,
) -> None:
    """Side effects shared by single and bulk transitions."""
    await record_task_event(
        session,
        task=task,
        event_type=transition.event_type,
        actor_user_id=actor_id,
    )
    await on_transition(
        session,
        TransitionEvent(
            resource_type=ResourceType.TASK,
            resource_id=task.id,
            project_id=task.project_id,
            to_state=transition.to_status.value,
            task_type_id=task.type_id,
            card_id=task.card_id,
            triggered_by_user=actor_id,
        ),
    )
    card_state_after = await _card_state(session, task.card_id)
    if task.card_id is not None and card_state_after != card_state_before:
        await on_transition(
            session,
            TransitionEvent(
                resource_type=ResourceType.CARD,
                resource_id=task.card_id,
                project_id=task.project_id,
                to_state=card_state_after.value,
                card_id=task.card_id,
            ),
        )
    if transition.to_status is TaskStatus.COMPLETED:
        milestone = await effective_milestone_for_task(session, task)
        if milestone is not None:
            await recompute_milestone_completion(session, milestone)


async def _run(
    session: AsyncSession,
    transition: _Transition,
    *,
    task_id: int,
    actor_id: int,
    expected_version: int,
) -> Task:
    operation = transition.operation
    async with transaction(session, operation=f"task.{operation.value}"):
        task = await Task.objects.by_id(task_id).fresh().first(session)
        error = check_task_guard(task, actor_id=actor_id, operation=operation)
        if error is not None:
            raise error
        if operation is TaskOperation.CLAIM:
            await _ensure_claimable(session, task)
        if task.version != expected_version:
            raise VersionConflictError(
                f"Task is at version {task.version}, not {expected_version}; refetch and retry",
            )
        card_state_before = await _card_state(session, task.card_id)
        updated = await update_if_version(
            session,
            Task,
            task_id,
            expected_version,
            transition.values(task, actor_id, utcnow()),
            guards=transition.guards(actor_id),
        )
        if updated is None:
            raise await classify_conflict(
                session,
                task_id=task_id,
                actor_id=actor_id,
                operation=operation,
            )
        await _after_transition(
            session,
            task=updated,
            transition=transition,
            actor_id=actor_id,
            card_state_before=card_state_before,
        )

    logger.info(
        f"task.lifecycle.{transition.event_type.value.removeprefix('task_')}",
        extra={
            "task_id": task_id,
            "actor_id": actor_id,
            "project_id": updated.project_id,
            "version": updated.version,
        },
    )
    return updated


async def claim_task(
    session: AsyncSession,
    *,
    task_id: int,
    actor_id: int,
    expected_version: int,
) -> Task:
    """Take an available task out of the pool for ``actor_id``."""
    return await _run(
        session,
        CLAIM,
        task_id=task_id,
        actor_id=actor_id,
        expected_version=expected_version,
    )


async def release_task(
    session: AsyncSession,
    *,
    task_id: int,
    actor_id: int,
    expected_version: int,
) -> Task:
    """Return a task the actor holds to the pool."""
    return await _run(
        session,
        RELEASE,
        task_id=task_id,
        actor_id=actor_id,
        expected_version=expected_version,
    )


async def complete_task(
    session: AsyncSession,
    *,
    task_id: int,
    actor_id: int,
    expected_version: int,
) -> Task:
    """Mark a task the actor holds as completed (terminal)."""
    return await _run(
        session,
        COMPLETE,
        task_id=task_id,
        actor_id=actor_id,
        expected_version=expected_version,
    )


async def update_task(
    session: AsyncSession,
    *,
    task_id: int,
    actor_id: int,
    expected_version: int,
    patch: TaskPatch,
) -> Task:
    """Edit fields of a task the actor has claimed. Not a lifecycle transition."""
    changes = patch.changes()
    async with transaction(session, operation="task.update"):
        task = await Task.objects.by_id(task_id).fresh().first(session)
        error = check_task_guard(task, actor_id=actor_id, operation=TaskOperation.UPDATE)
        if error is not None:
            raise error
        if task.version != expected_version:
            raise VersionConflictError(
                f"Task is at version {task.version}, not {expected_version}; refetch and retry",
            )
        if "type_id" in changes:
            task_type = await TaskType.objects.by_id(changes["type_id"]).first(session)
            if task_type is None or task_type.project_id != task.project_id:
                raise DomainValidationError("Task type does not belong to the task's project")
        if not changes:
            return task
        updated = await update_if_version(
            session,
            Task,
            task_id,
            expected_version,
            changes,
            guards=_held_by_guards(actor_id),
        )
        if updated is None:
            raise await classify_conflict(
                session,
                task_id=task_id,
                actor_id=actor_id,
                operation=TaskOperation.UPDATE,
            )

    logger.info(
        "task.lifecycle.updated",
        extra={
            "task_id": task_id,
            "actor_id": actor_id,
            "fields": sorted(changes),
            "version": updated.version,
        },
    )
    return updated


async def release_all_for_user(
    session: AsyncSession,
    *,
    project_id: int,
    user_id: int,
) -> list[Task]:
    """Release every task ``user_id`` holds in the project (member removal).

    Runs as a cascade: events carry no actor and rules see no triggering user.
    Tasks changed concurrently are left to their new owner.
    """
    released: list[Task] = []
    async with transaction(session, operation="task.release_all"):
        held = await (
            Task.objects.filter_by(
                project_id=project_id,
                claimed_by=user_id,
                status=TaskStatus.CLAIMED.value,
            )
            .order_by(col(Task.id))
            .fresh()
            .all(session)
        )
        for task in held:
            card_state_before = await _card_state(session, task.card_id)
            updated = await update_if_version(
                session,
                Task,
                task.id,
                task.version,
                _release_values(task, user_id, utcnow()),
                guards=_held_by_guards(user_id),
            )
            if updated is None:
                logger.info(
                    "task.lifecycle.release_all.skipped",
                    extra={"task_id": task.id, "user_id": user_id},
                )
                continue
            await _after_transition(
                session,
                task=updated,
                transition=RELEASE,
                actor_id=None,
                card_state_before=card_state_before,
            )
            released.append(updated)

    logger.info(
        "task.lifecycle.released_all",
        extra={"project_id": project_id, "user_id": user_id, "released": len(released)},
    )
    return released

