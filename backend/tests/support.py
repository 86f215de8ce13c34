# ruff: noqa: INP001
"""Shared in-memory database and seed helpers for service tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow import models as _models  # noqa: F401 - registers every table
from taskflow.core.time import utcnow
from taskflow.models.cards import Card
from taskflow.models.milestones import Milestone, MilestoneState
from taskflow.models.organizations import Organization
from taskflow.models.projects import Project
from taskflow.models.rules import ResourceType, Rule, RuleTemplate
from taskflow.models.task_templates import TaskTemplate
from taskflow.models.task_types import TaskType
from taskflow.models.tasks import Task, TaskStatus
from taskflow.models.users import User
from taskflow.models.workflows import Workflow


async def make_engine() -> AsyncEngine:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")

    # pysqlite defers BEGIN on its own; emit it explicitly so SAVEPOINTs nest.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, _record) -> None:  # noqa: ANN001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn) -> None:  # noqa: ANN001
        conn.exec_driver_sql("BEGIN")

    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)
    return engine


async def make_session(engine: AsyncEngine) -> AsyncSession:
    return AsyncSession(engine, expire_on_commit=False)


@dataclass
class World:
    org: Organization
    project: Project
    alice: User
    bob: User
    chore: TaskType
    review: TaskType


async def seed_world(session: AsyncSession) -> World:
    """One organization with one project, two members and two task types."""
    org = Organization(name="acme")
    session.add(org)
    alice = User(email="alice@example.com")
    bob = User(email="bob@example.com")
    session.add(alice)
    session.add(bob)
    await session.flush()
    project = Project(org_id=org.id, name="launch")
    session.add(project)
    await session.flush()
    chore = TaskType(project_id=project.id, name="chore")
    review = TaskType(project_id=project.id, name="review", icon="eye")
    session.add(chore)
    session.add(review)
    await session.commit()
    return World(org=org, project=project, alice=alice, bob=bob, chore=chore, review=review)


async def add_milestone(
    session: AsyncSession,
    world: World,
    *,
    name: str = "M1",
    state: MilestoneState = MilestoneState.READY,
    position: int = 0,
) -> Milestone:
    now = utcnow()
    milestone = Milestone(
        project_id=world.project.id,
        name=name,
        state=state.value,
        position=position,
        created_by=world.alice.id,
        activated_at=None if state is MilestoneState.READY else now,
        completed_at=now if state is MilestoneState.COMPLETED else None,
    )
    session.add(milestone)
    await session.commit()
    return milestone


async def add_card(
    session: AsyncSession,
    world: World,
    *,
    title: str = "Card",
    milestone: Milestone | None = None,
) -> Card:
    card = Card(
        project_id=world.project.id,
        milestone_id=milestone.id if milestone is not None else None,
        title=title,
        created_by=world.alice.id,
    )
    session.add(card)
    await session.commit()
    return card


async def add_task(
    session: AsyncSession,
    world: World,
    *,
    title: str = "Write release notes",
    task_type: TaskType | None = None,
    card: Card | None = None,
    milestone: Milestone | None = None,
    status: TaskStatus = TaskStatus.AVAILABLE,
    claimed_by: User | None = None,
    pool_entered_seconds_ago: int | None = 0,
) -> Task:
    now = utcnow()
    task = Task(
        project_id=world.project.id,
        type_id=(task_type or world.chore).id,
        card_id=card.id if card is not None else None,
        milestone_id=milestone.id if milestone is not None else None,
        title=title,
        status=status.value,
        created_by=world.alice.id,
        claimed_by=claimed_by.id if claimed_by is not None else None,
        claimed_at=now if claimed_by is not None else None,
        completed_at=now if status is TaskStatus.COMPLETED else None,
        last_entered_pool_at=(
            now - timedelta(seconds=pool_entered_seconds_ago)
            if status is TaskStatus.AVAILABLE and pool_entered_seconds_ago is not None
            else None
        ),
    )
    session.add(task)
    await session.commit()
    return task


async def add_rule(
    session: AsyncSession,
    world: World,
    *,
    name: str = "Follow up",
    resource_type: ResourceType = ResourceType.TASK,
    to_state: str = "completed",
    task_type: TaskType | None = None,
    templates: tuple[tuple[str, int], ...] = (),
    template_type: TaskType | None = None,
    user_triggered_only: bool = False,
    project_scoped: bool = True,
    workflow_active: bool = True,
    workflow: Workflow | None = None,
) -> Rule:
    """Create a rule (and its workflow unless given) with ``(name, execution_order)`` templates."""
    if workflow is None:
        workflow = Workflow(
            org_id=world.org.id,
            project_id=world.project.id if project_scoped else None,
            name=f"{name} workflow",
            active=workflow_active,
            created_by=world.alice.id,
        )
        session.add(workflow)
        await session.flush()
    rule = Rule(
        workflow_id=workflow.id,
        name=name,
        resource_type=resource_type.value,
        task_type_id=task_type.id if task_type is not None else None,
        to_state=to_state,
        user_triggered_only=user_triggered_only,
    )
    session.add(rule)
    await session.flush()
    for template_name, order in templates:
        template = TaskTemplate(
            org_id=world.org.id,
            project_id=world.project.id,
            name=template_name,
            type_id=(template_type or world.review).id,
            priority=2,
            created_by=world.alice.id,
        )
        session.add(template)
        await session.flush()
        session.add(RuleTemplate(rule_id=rule.id, template_id=template.id, execution_order=order))
    await session.commit()
    return rule
