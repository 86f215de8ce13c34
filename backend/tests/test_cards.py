# ruff: noqa: INP001
"""Card state derivation and planning move tests."""

from __future__ import annotations

import pytest
from support import add_card, add_milestone, add_task, make_engine, make_session, seed_world

from taskflow.models.cards import CardState
from taskflow.models.milestones import Milestone, MilestoneState
from taskflow.models.projects import Project
from taskflow.models.tasks import Task, TaskStatus
from taskflow.services.cards import card_progress, derive_card_state, move_card, return_card_to_pool
from taskflow.services.errors import (
    DomainValidationError,
    InvalidTransitionError,
    NotFoundError,
    VersionConflictError,
)


def test_derive_card_state() -> None:
    assert derive_card_state(task_count=0, completed_count=0, started_count=0) == CardState.PENDING
    assert derive_card_state(task_count=3, completed_count=0, started_count=0) == CardState.PENDING
    assert (
        derive_card_state(task_count=3, completed_count=1, started_count=2)
        == CardState.IN_PROGRESS
    )
    assert derive_card_state(task_count=2, completed_count=2, started_count=2) == CardState.CLOSED


@pytest.mark.asyncio
async def test_card_progress_counts_claimed_and_completed_as_started() -> None:
    engine = await make_engine()
    try:
        async with await make_session(engine) as session:
            world = await seed_world(session)
            card = await add_card(session, world)
            await add_task(session, world, card=card)
            await add_task(
                session,
                world,
                card=card,
                status=TaskStatus.CLAIMED,
                claimed_by=world.bob,
            )
            await add_task(session, world, card=card, status=TaskStatus.COMPLETED)

            progress = await card_progress(session, card.id)

            assert (progress.task_count, progress.completed_count, progress.started_count) == (
                3,
                1,
                2,
            )
            assert progress.state == CardState.IN_PROGRESS
            with pytest.raises(NotFoundError):
                await card_progress(session, 404)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_move_card_from_pool_into_ready_milestone_parks_it() -> None:
    engine = await make_engine()
    try:
        async with await make_session(engine) as session:
            world = await seed_world(session)
            milestone = await add_milestone(session, world)
            card = await add_card(session, world)
            await add_task(session, world, card=card)

            moved = await move_card(
                session,
                card_id=card.id,
                expected_version=1,
                milestone_id=milestone.id,
            )

            assert moved.milestone_id == milestone.id
            assert moved.version == 2
            with pytest.raises(VersionConflictError):
                await move_card(
                    session,
                    card_id=card.id,
                    expected_version=1,
                    milestone_id=milestone.id,
                )
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_card_with_started_tasks_cannot_leave_the_pool() -> None:
    engine = await make_engine()
    try:
        async with await make_session(engine) as session:
            world = await seed_world(session)
            milestone = await add_milestone(session, world)
            card = await add_card(session, world)
            await add_task(
                session,
                world,
                card=card,
                status=TaskStatus.CLAIMED,
                claimed_by=world.bob,
            )

            with pytest.raises(InvalidTransitionError):
                await move_card(
                    session,
                    card_id=card.id,
                    expected_version=1,
                    milestone_id=milestone.id,
                )
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_move_card_rejects_completed_or_foreign_milestone() -> None:
    engine = await make_engine()
    try:
        async with await make_session(engine) as session:
            world = await seed_world(session)
            done = await add_milestone(session, world, state=MilestoneState.COMPLETED)
            card = await add_card(session, world)
            other = Project(org_id=world.org.id, name="other")
            session.add(other)
            await session.flush()
            foreign = Milestone(project_id=other.id, name="Elsewhere", created_by=world.alice.id)
            session.add(foreign)
            await session.commit()
            card_id, done_id, foreign_id = card.id, done.id, foreign.id

            with pytest.raises(InvalidTransitionError):
                await move_card(
                    session,
                    card_id=card_id,
                    expected_version=1,
                    milestone_id=done_id,
                )
            with pytest.raises(DomainValidationError):
                await move_card(
                    session,
                    card_id=card_id,
                    expected_version=1,
                    milestone_id=foreign_id,
                )
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_move_into_active_milestone_stamps_pool_entry() -> None:
    engine = await make_engine()
    try:
        async with await make_session(engine) as session:
            world = await seed_world(session)
            ready = await add_milestone(session, world, name="Ready")
            active = await add_milestone(
                session,
                world,
                name="Active",
                state=MilestoneState.ACTIVE,
                position=1,
            )
            card = await add_card(session, world, milestone=ready)
            task = await add_task(session, world, card=card, pool_entered_seconds_ago=None)

            await move_card(session, card_id=card.id, expected_version=1, milestone_id=active.id)

            stored = await Task.objects.by_id(task.id).fresh().first(session)
            assert stored is not None
            assert stored.last_entered_pool_at is not None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_return_to_pool_only_from_ready_milestone() -> None:
    engine = await make_engine()
    try:
        async with await make_session(engine) as session:
            world = await seed_world(session)
            ready = await add_milestone(session, world, name="Ready")
            active = await add_milestone(
                session,
                world,
                name="Active",
                state=MilestoneState.ACTIVE,
                position=1,
            )
            parked = await add_card(session, world, title="Parked", milestone=ready)
            running = await add_card(session, world, title="Running", milestone=active)
            pooled = await add_card(session, world, title="Pooled")
            running_id, pooled_id = running.id, pooled.id

            returned = await return_card_to_pool(session, card_id=parked.id, expected_version=1)
            assert returned.milestone_id is None
            assert returned.version == 2

            with pytest.raises(InvalidTransitionError):
                await return_card_to_pool(session, card_id=running_id, expected_version=1)
            with pytest.raises(InvalidTransitionError):
                await return_card_to_pool(session, card_id=pooled_id, expected_version=1)
            with pytest.raises(NotFoundError):
                await return_card_to_pool(session, card_id=404, expected_version=1)
    finally:
        await engine.dispose()
