"""Milestone activation cascade and completion bookkeeping.

A task's effective milestone is its own ``milestone_id`` or, for tasks on a
card, the card's. Content parked in a ``ready`` milestone is not claimable
until the milestone is activated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select

from taskflow.core.logging import get_logger
from taskflow.core.time import utcnow
from taskflow.db.transactions import transaction
from taskflow.models.cards import Card
from taskflow.models.milestones import Milestone, MilestoneState
from taskflow.models.projects import Project
from taskflow.models.tasks import Task, TaskStatus
from taskflow.services.errors import AlreadyActiveError, InvalidTransitionError, NotFoundError

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class ActivationSnapshot:
    """Result of activating a milestone."""

    milestone: Milestone
    cards_released: int
    tasks_released: int


def _planned_into(milestone_id: int):  # noqa: ANN202
    """Tasks planned into the milestone directly or through their card."""
    card_ids = select(col(Card.id)).where(col(Card.milestone_id) == milestone_id)
    return or_(col(Task.milestone_id) == milestone_id, col(Task.card_id).in_(card_ids))


async def resolve_effective_milestone(
    session: AsyncSession,
    *,
    card_id: int | None,
    milestone_id: int | None,
) -> Milestone | None:
    """Milestone a task placed at (``card_id``, ``milestone_id``) belongs to."""
    if milestone_id is None and card_id is not None:
        card = await Card.objects.by_id(card_id).first(session)
        milestone_id = card.milestone_id if card is not None else None
    if milestone_id is None:
        return None
    return await Milestone.objects.by_id(milestone_id).first(session)


async def effective_milestone_for_task(session: AsyncSession, task: Task) -> Milestone | None:
    return await resolve_effective_milestone(
        session,
        card_id=task.card_id,
        milestone_id=task.milestone_id,
    )


async def find_active_sibling(
    session: AsyncSession,
    *,
    project_id: int,
    milestone_id: int,
) -> Milestone | None:
    """Another milestone of the project that is currently active, if any."""
    return await (
        Milestone.objects.filter_by(project_id=project_id, state=MilestoneState.ACTIVE.value)
        .filter(col(Milestone.id) != milestone_id)
        .first(session)
    )


async def _count(session: AsyncSession, statement) -> int:  # noqa: ANN001
    return int((await session.exec(statement)).one())


async def activate_milestone(
    session: AsyncSession,
    *,
    milestone_id: int,
    project_id: int,
) -> ActivationSnapshot:
    """Move a ready milestone to active and release its content into the pool."""
    async with transaction(session, operation="milestone.activate"):
        # Serializes concurrent activations within one project.
        project = await Project.objects.by_id(project_id).for_update().first(session)
        if project is None:
            raise NotFoundError("Project not found")
        milestone = await (
            Milestone.objects.filter_by(id=milestone_id, project_id=project_id)
            .fresh()
            .first(session)
        )
        if milestone is None:
            raise NotFoundError("Milestone not found")
        if milestone.state != MilestoneState.READY:
            raise InvalidTransitionError(f"Milestone is {milestone.state}, not ready")
        sibling = await find_active_sibling(
            session,
            project_id=project_id,
            milestone_id=milestone_id,
        )
        if sibling is not None:
            raise AlreadyActiveError(f"Milestone {sibling.id} is already active in this project")

        now = utcnow()
        milestone.state = MilestoneState.ACTIVE.value
        milestone.activated_at = now
        session.add(milestone)
        try:
            await session.flush()
        except IntegrityError as exc:
            # Lost the race against a concurrent activation.
            raise AlreadyActiveError() from exc

        await session.exec(  # type: ignore[call-overload]
            update(Task)
            .where(_planned_into(milestone_id), col(Task.status) == TaskStatus.AVAILABLE.value)
            .values(last_entered_pool_at=now)
            .execution_options(synchronize_session=False),
        )
        cards_released = await _count(
            session,
            select(func.count(col(Card.id))).where(col(Card.milestone_id) == milestone_id),
        )
        tasks_released = await _count(
            session,
            select(func.count(col(Task.id))).where(_planned_into(milestone_id)),
        )

    logger.info(
        "milestone.activated",
        extra={
            "milestone_id": milestone_id,
            "project_id": project_id,
            "cards_released": cards_released,
            "tasks_released": tasks_released,
        },
    )
    return ActivationSnapshot(
        milestone=milestone,
        cards_released=cards_released,
        tasks_released=tasks_released,
    )


async def recompute_milestone_completion(session: AsyncSession, milestone: Milestone) -> bool:
    """Complete an active milestone once all of its cards and loose tasks are done.

    Runs inside the caller's unit of work. A card counts as done when it has at
    least one task and every task is completed; a milestone with no content
    never completes. Returns whether the milestone transitioned.
    """
    if milestone.state != MilestoneState.ACTIVE:
        return False
    # Serializes concurrent completions within one project.
    await Project.objects.by_id(milestone.project_id).for_update().first(session)
    completed = col(Task.status) == TaskStatus.COMPLETED.value

    card_stats = (
        select(
            col(Card.id).label("card_id"),
            func.count(col(Task.id)).label("task_count"),
            func.count(col(Task.id)).filter(completed).label("completed_count"),
        )
        .outerjoin(Task, col(Task.card_id) == col(Card.id))
        .where(col(Card.milestone_id) == milestone.id)
        .group_by(col(Card.id))
        .subquery()
    )
    cards_total = await _count(session, select(func.count()).select_from(card_stats))
    cards_done = await _count(
        session,
        select(func.count())
        .select_from(card_stats)
        .where(
            card_stats.c.task_count > 0,
            card_stats.c.task_count == card_stats.c.completed_count,
        ),
    )
    loose = select(func.count(col(Task.id))).where(col(Task.milestone_id) == milestone.id)
    tasks_total = await _count(session, loose)
    tasks_done = await _count(session, loose.where(completed))

    if cards_total == 0 and tasks_total == 0:
        return False
    if cards_done != cards_total or tasks_done != tasks_total:
        return False

    result = await session.exec(  # type: ignore[call-overload]
        update(Milestone)
        .where(
            col(Milestone.id) == milestone.id,
            col(Milestone.state) == MilestoneState.ACTIVE.value,
        )
        .values(state=MilestoneState.COMPLETED.value, completed_at=utcnow())
        .returning(col(Milestone.id))
        .execution_options(synchronize_session=False),
    )
    if result.scalar_one_or_none() is None:
        return False
    await session.refresh(milestone)
    logger.info(
        "milestone.completed",
        extra={"milestone_id": milestone.id, "project_id": milestone.project_id},
    )
    return True
