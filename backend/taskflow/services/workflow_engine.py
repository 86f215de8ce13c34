"""Evaluate workflow rules against task and card transitions.

Every candidate rule produces exactly one :class:`RuleExecution`: either
``applied`` (its templates were materialized into tasks) or ``suppressed``
with the first failing check. The engine runs inside the caller's unit of
work and never commits.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import case, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import col, select

from taskflow.core.config import settings
from taskflow.core.logging import get_logger
from taskflow.core.time import utcnow
from taskflow.models.milestones import MilestoneState
from taskflow.models.projects import Project
from taskflow.models.rule_executions import ExecutionOutcome, RuleExecution, SuppressionReason
from taskflow.models.rules import ResourceType, Rule, RuleTemplate
from taskflow.models.task_events import TaskEventType
from taskflow.models.task_templates import TaskTemplate
from taskflow.models.tasks import TASK_TITLE_MAX_LENGTH, Task
from taskflow.models.workflows import Workflow
from taskflow.services.errors import NotFoundError, StorageError
from taskflow.services.milestones import resolve_effective_milestone
from taskflow.services.rule_executions import has_applied_execution, record_execution
from taskflow.services.task_events import record_task_event

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransitionEvent:
    """A task or card entering ``to_state``.

    ``triggered_by_user`` is ``None`` for cascades (a card state derived from a
    task transition, bulk releases and similar system-driven changes).
    """

    resource_type: ResourceType
    resource_id: int
    project_id: int
    to_state: str
    task_type_id: int | None = None
    card_id: int | None = None
    triggered_by_user: int | None = None

    @property
    def origin_type(self) -> str:
        return self.resource_type.value

    def log_context(self) -> dict[str, object]:
        return {
            "origin_type": self.origin_type,
            "origin_id": self.resource_id,
            "project_id": self.project_id,
            "to_state": self.to_state,
        }


def rule_matches(rule: Rule, event: TransitionEvent) -> bool:
    """Full target predicate, including the task-type filter."""
    if rule.resource_type != event.resource_type.value or rule.to_state != event.to_state:
        return False
    if rule.task_type_id is None:
        return True
    if event.resource_type is not ResourceType.TASK:
        return False
    return event.task_type_id == rule.task_type_id


async def _candidate_rules(
    session: AsyncSession,
    event: TransitionEvent,
    *,
    org_id: int,
) -> list[tuple[Rule, Workflow]]:
    """Active rules in scope whose target matches the event.

    Project-scoped workflows come before org-scoped ones, then rule id.
    """
    workflow_project = col(Workflow.project_id)
    rule_task_type = col(Rule.task_type_id)
    statement = (
        select(Rule, Workflow)
        .join(Workflow, col(Workflow.id) == col(Rule.workflow_id))
        .where(
            col(Workflow.active).is_(True),
            col(Rule.active).is_(True),
            col(Workflow.org_id) == org_id,
            or_(workflow_project.is_(None), workflow_project == event.project_id),
            col(Rule.resource_type) == event.resource_type.value,
            col(Rule.to_state) == event.to_state,
            or_(rule_task_type.is_(None), rule_task_type == event.task_type_id),
        )
        .order_by(case((workflow_project.is_(None), 1), else_=0), col(Rule.id))
    )
    return [(rule, workflow) for rule, workflow in await session.exec(statement)]


async def _suppression_reason(
    session: AsyncSession,
    rule: Rule,
    event: TransitionEvent,
) -> SuppressionReason | None:
    current_rule = await Rule.objects.by_id(rule.id).fresh().first(session)
    current_workflow = await Workflow.objects.by_id(rule.workflow_id).fresh().first(session)
    if (
        current_rule is None
        or current_workflow is None
        or not current_rule.active
        or not current_workflow.active
    ):
        return SuppressionReason.INACTIVE
    if event.triggered_by_user is None and rule.user_triggered_only:
        return SuppressionReason.NOT_USER_TRIGGERED
    if not rule_matches(rule, event):
        return SuppressionReason.NOT_MATCHING
    if await has_applied_execution(
        session,
        rule_id=rule.id,
        origin_type=event.origin_type,
        origin_id=event.resource_id,
    ):
        return SuppressionReason.IDEMPOTENT
    return None


async def _templates_for(session: AsyncSession, rule_id: int) -> list[TaskTemplate]:
    statement = (
        select(TaskTemplate)
        .join(RuleTemplate, col(RuleTemplate.template_id) == col(TaskTemplate.id))
        .where(col(RuleTemplate.rule_id) == rule_id)
        .order_by(col(RuleTemplate.execution_order), col(TaskTemplate.id))
    )
    return list(await session.exec(statement))


async def _materialize_templates(
    session: AsyncSession,
    *,
    rule: Rule,
    workflow: Workflow,
    event: TransitionEvent,
    org_id: int,
) -> list[Task]:
    templates = await _templates_for(session, rule.id)
    if not templates:
        return []
    card_id = event.resource_id if event.resource_type is ResourceType.CARD else event.card_id
    created_by = (
        event.triggered_by_user if event.triggered_by_user is not None else workflow.created_by
    )
    milestone = await resolve_effective_milestone(session, card_id=card_id, milestone_id=None)
    now = utcnow()
    parked = milestone is not None and milestone.state == MilestoneState.READY
    created: list[Task] = []
    for template in templates:
        task = Task(
            project_id=event.project_id,
            type_id=template.type_id,
            card_id=card_id,
            # Template names are not length-bound; task titles are.
            title=template.name[:TASK_TITLE_MAX_LENGTH],
            description=template.description,
            priority=template.priority,
            created_by=created_by,
            created_from_rule_id=rule.id,
            last_entered_pool_at=None if parked else now,
            created_at=now,
        )
        session.add(task)
        await session.flush()
        await record_task_event(
            session,
            task=task,
            event_type=TaskEventType.CREATED,
            actor_user_id=event.triggered_by_user,
            org_id=org_id,
        )
        created.append(task)
    return created


async def _apply(
    session: AsyncSession,
    *,
    rule: Rule,
    workflow: Workflow,
    event: TransitionEvent,
    org_id: int,
) -> RuleExecution | None:
    """Record the applied execution and create the rule's tasks.

    Returns ``None`` when another delivery of the same event already applied
    the rule (the partial unique index rejected our row).
    """
    try:
        async with session.begin_nested():
            execution = await record_execution(
                session,
                rule_id=rule.id,
                origin_type=event.origin_type,
                origin_id=event.resource_id,
                outcome=ExecutionOutcome.APPLIED,
                user_id=event.triggered_by_user,
            )
    except IntegrityError:
        logger.info(
            "workflow.rule.applied_concurrently",
            extra={"rule_id": rule.id, **event.log_context()},
        )
        return None
    tasks = await _materialize_templates(
        session,
        rule=rule,
        workflow=workflow,
        event=event,
        org_id=org_id,
    )
    logger.info(
        "workflow.rule.applied",
        extra={
            "rule_id": rule.id,
            "workflow_id": workflow.id,
            "tasks_created": len(tasks),
            **event.log_context(),
        },
    )
    return execution


async def _suppress(
    session: AsyncSession,
    *,
    rule: Rule,
    event: TransitionEvent,
    reason: SuppressionReason,
) -> RuleExecution | None:
    try:
        async with session.begin_nested():
            execution = await record_execution(
                session,
                rule_id=rule.id,
                origin_type=event.origin_type,
                origin_id=event.resource_id,
                outcome=ExecutionOutcome.SUPPRESSED,
                reason=reason,
                user_id=event.triggered_by_user,
            )
    except SQLAlchemyError as exc:
        if settings.workflow_strict_recording:
            raise StorageError("Failed to record rule execution") from exc
        logger.error(
            "workflow.execution.record_failed",
            exc_info=exc,
            extra={"rule_id": rule.id, "reason": reason.value, **event.log_context()},
        )
        return None
    logger.info(
        "workflow.rule.suppressed",
        extra={"rule_id": rule.id, "reason": reason.value, **event.log_context()},
    )
    return execution


async def on_transition(session: AsyncSession, event: TransitionEvent) -> list[RuleExecution]:
    """Evaluate every candidate rule for ``event`` and return the recorded executions.

    Tasks created here do not trigger further evaluation.
    """
    project = await Project.objects.by_id(event.project_id).first(session)
    if project is None:
        raise NotFoundError("Project not found")
    executions: list[RuleExecution] = []
    for rule, workflow in await _candidate_rules(session, event, org_id=project.org_id):
        reason = await _suppression_reason(session, rule, event)
        if reason is None:
            applied = await _apply(
                session,
                rule=rule,
                workflow=workflow,
                event=event,
                org_id=project.org_id,
            )
            if applied is not None:
                executions.append(applied)
                continue
            reason = SuppressionReason.IDEMPOTENT
        suppressed = await _suppress(session, rule=rule, event=event, reason=reason)
        if suppressed is not None:
            executions.append(suppressed)
    return executions
