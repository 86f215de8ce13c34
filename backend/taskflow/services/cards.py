"""Card progress and planning moves between the pool and milestones."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func, update
from sqlmodel import col, select

from taskflow.core.logging import get_logger
from taskflow.core.time import utcnow
from taskflow.db.transactions import transaction
from taskflow.models.cards import Card, CardState
from taskflow.models.milestones import Milestone, MilestoneState
from taskflow.models.tasks import Task, TaskStatus
from taskflow.services.conflicts import classify_card_conflict
from taskflow.services.errors import DomainValidationError, InvalidTransitionError, NotFoundError
from taskflow.services.versioned_store import update_if_version

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class CardProgress:
    card_id: int
    task_count: int
    completed_count: int
    started_count: int

    @property
    def state(self) -> CardState:
        return derive_card_state(
            task_count=self.task_count,
            completed_count=self.completed_count,
            started_count=self.started_count,
        )


def derive_card_state(*, task_count: int, completed_count: int, started_count: int) -> CardState:
    """``started_count`` counts tasks that are claimed or completed."""
    if task_count == 0 or started_count == 0:
        return CardState.PENDING
    if completed_count == task_count:
        return CardState.CLOSED
    return CardState.IN_PROGRESS


async def card_progress(session: AsyncSession, card_id: int) -> CardProgress:
    card = await Card.objects.by_id(card_id).first(session)
    if card is None:
        raise NotFoundError("Card not found")
    status = col(Task.status)
    statement = select(
        func.count(col(Task.id)),
        func.count(col(Task.id)).filter(status == TaskStatus.COMPLETED.value),
        func.count(col(Task.id)).filter(status != TaskStatus.AVAILABLE.value),
    ).where(col(Task.card_id) == card_id)
    task_count, completed_count, started_count = (await session.exec(statement)).one()
    return CardProgress(
        card_id=card_id,
        task_count=task_count,
        completed_count=completed_count,
        started_count=started_count,
    )


async def _mark_pool_entry(session: AsyncSession, *, card_id: int) -> None:
    """Stamp pool entry on the card's available tasks that were parked."""
    await session.exec(  # type: ignore[call-overload]
        update(Task)
        .where(
            col(Task.card_id) == card_id,
            col(Task.status) == TaskStatus.AVAILABLE.value,
            col(Task.last_entered_pool_at).is_(None),
        )
        .values(last_entered_pool_at=utcnow())
        .execution_options(synchronize_session=False),
    )


async def move_card(
    session: AsyncSession,
    *,
    card_id: int,
    expected_version: int,
    milestone_id: int,
) -> Card:
    """Plan a card into ``milestone_id`` (from the pool or another milestone)."""
    async with transaction(session, operation="card.move"):
        card = await Card.objects.by_id(card_id).fresh().first(session)
        if card is None:
            raise NotFoundError("Card not found")
        target = await Milestone.objects.by_id(milestone_id).first(session)
        if target is None or target.project_id != card.project_id:
            raise DomainValidationError("Milestone does not belong to the card's project")
        if target.state == MilestoneState.COMPLETED:
            raise InvalidTransitionError("Cannot move a card into a completed milestone")
        if card.milestone_id is None:
            progress = await card_progress(session, card_id)
            if progress.started_count > 0:
                raise InvalidTransitionError("Cards with started tasks cannot leave the pool")
        else:
            current = await Milestone.objects.by_id(card.milestone_id).first(session)
            if current is not None and current.state == MilestoneState.COMPLETED:
                raise InvalidTransitionError("Card belongs to a completed milestone")

        from_milestone_id = card.milestone_id
        moved = await update_if_version(
            session,
            Card,
            card_id,
            expected_version,
            {"milestone_id": milestone_id},
        )
        if moved is None:
            raise await classify_card_conflict(session, card_id=card_id)
        if target.state != MilestoneState.READY:
            await _mark_pool_entry(session, card_id=card_id)

    logger.info(
        "card.moved",
        extra={
            "card_id": card_id,
            "from_milestone_id": from_milestone_id,
            "to_milestone_id": milestone_id,
            "version": moved.version,
        },
    )
    return moved


async def return_card_to_pool(
    session: AsyncSession,
    *,
    card_id: int,
    expected_version: int,
) -> Card:
    """Take a card out of a milestone that has not been activated yet."""
    async with transaction(session, operation="card.return_to_pool"):
        card = await Card.objects.by_id(card_id).fresh().first(session)
        if card is None:
            raise NotFoundError("Card not found")
        if card.milestone_id is None:
            raise InvalidTransitionError("Card is already in the pool")
        milestone = await Milestone.objects.by_id(card.milestone_id).first(session)
        if milestone is not None and milestone.state != MilestoneState.READY:
            raise InvalidTransitionError("Only cards in a ready milestone can return to the pool")

        from_milestone_id = card.milestone_id
        returned = await update_if_version(
            session,
            Card,
            card_id,
            expected_version,
            {"milestone_id": None},
        )
        if returned is None:
            raise await classify_card_conflict(session, card_id=card_id)
        await _mark_pool_entry(session, card_id=card_id)

    logger.info(
        "card.returned_to_pool",
        extra={
            "card_id": card_id,
            "from_milestone_id": from_milestone_id,
            "version": returned.version,
        },
    )
    return returned
