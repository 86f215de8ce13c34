"""Execution recorder: one append-only row per rule evaluation.

The write side is part of the workflow engine's contract (its idempotency
check reads the ``applied`` rows written here). The metrics helpers below are
reporting reads over an arbitrary time window.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import and_, func
from sqlmodel import col, select

from taskflow.core.time import utcnow
from taskflow.models.rule_executions import ExecutionOutcome, RuleExecution, SuppressionReason
from taskflow.models.rules import Rule
from taskflow.models.users import User
from taskflow.models.workflows import Workflow
from taskflow.services.errors import NotFoundError

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.sql import Select
    from sqlmodel.ext.asyncio.session import AsyncSession


async def record_execution(
    session: AsyncSession,
    *,
    rule_id: int,
    origin_type: str,
    origin_id: int,
    outcome: ExecutionOutcome,
    reason: SuppressionReason | None = None,
    user_id: int | None = None,
) -> RuleExecution:
    """Insert an execution row into the current unit of work and flush it."""
    if (outcome is ExecutionOutcome.SUPPRESSED) != (reason is not None):
        msg = "suppression_reason is required for suppressed outcomes and only for them"
        raise ValueError(msg)
    execution = RuleExecution(
        rule_id=rule_id,
        origin_type=origin_type,
        origin_id=origin_id,
        outcome=outcome.value,
        suppression_reason=reason.value if reason is not None else None,
        user_id=user_id,
        created_at=utcnow(),
    )
    session.add(execution)
    await session.flush()
    return execution


async def has_applied_execution(
    session: AsyncSession,
    *,
    rule_id: int,
    origin_type: str,
    origin_id: int,
) -> bool:
    """Whether ``rule_id`` already fired for this origin."""
    existing = await RuleExecution.objects.filter_by(
        rule_id=rule_id,
        origin_type=origin_type,
        origin_id=origin_id,
        outcome=ExecutionOutcome.APPLIED.value,
    ).first(session)
    return existing is not None


@dataclass(frozen=True)
class RuleMetrics:
    """Evaluation counters for one rule over a time window."""

    rule_id: int
    rule_name: str
    evaluated_count: int
    applied_count: int
    suppressed_count: int
    suppressed_by_reason: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class WorkflowMetrics:
    """Evaluation counters aggregated over every rule of one workflow."""

    workflow_id: int
    workflow_name: str
    project_id: int | None
    rule_count: int
    evaluated_count: int
    applied_count: int
    suppressed_count: int


def _window(since: datetime, until: datetime):  # noqa: ANN202
    created_at = col(RuleExecution.created_at)
    return and_(created_at >= since, created_at <= until)


def _count_where(*criteria: object):  # noqa: ANN202
    return func.count(col(RuleExecution.id)).filter(*criteria)


async def rule_metrics(
    session: AsyncSession,
    *,
    rule_id: int,
    since: datetime,
    until: datetime,
) -> RuleMetrics:
    """Evaluated/applied/suppressed counts plus the suppression-reason breakdown."""
    outcome = col(RuleExecution.outcome)
    reason = col(RuleExecution.suppression_reason)
    reason_columns = [
        _count_where(reason == suppression.value).label(suppression.value)
        for suppression in SuppressionReason
    ]
    statement = (
        select(
            col(Rule.id),
            col(Rule.name),
            func.count(col(RuleExecution.id)).label("evaluated"),
            _count_where(outcome == ExecutionOutcome.APPLIED.value).label("applied"),
            _count_where(outcome == ExecutionOutcome.SUPPRESSED.value).label("suppressed"),
            *reason_columns,
        )
        .select_from(Rule)
        .outerjoin(
            RuleExecution,
            and_(col(RuleExecution.rule_id) == col(Rule.id), _window(since, until)),
        )
        .where(col(Rule.id) == rule_id)
        .group_by(col(Rule.id), col(Rule.name))
    )
    row = (await session.exec(statement)).first()
    if row is None:
        raise NotFoundError("Rule not found")
    mapping = row._mapping
    return RuleMetrics(
        rule_id=row[0],
        rule_name=row[1],
        evaluated_count=mapping["evaluated"],
        applied_count=mapping["applied"],
        suppressed_count=mapping["suppressed"],
        suppressed_by_reason={
            suppression.value: mapping[suppression.value] for suppression in SuppressionReason
        },
    )


async def workflow_metrics(
    session: AsyncSession,
    *,
    org_id: int,
    since: datetime,
    until: datetime,
    project_id: int | None = None,
) -> list[WorkflowMetrics]:
    """Per-workflow summary for an organization, optionally narrowed to one project."""
    outcome = col(RuleExecution.outcome)
    statement = (
        select(
            col(Workflow.id),
            col(Workflow.name),
            col(Workflow.project_id),
            func.count(func.distinct(col(Rule.id))).label("rule_count"),
            func.count(col(RuleExecution.id)).label("evaluated"),
            _count_where(outcome == ExecutionOutcome.APPLIED.value).label("applied"),
            _count_where(outcome == ExecutionOutcome.SUPPRESSED.value).label("suppressed"),
        )
        .select_from(Workflow)
        .outerjoin(Rule, col(Rule.workflow_id) == col(Workflow.id))
        .outerjoin(
            RuleExecution,
            and_(col(RuleExecution.rule_id) == col(Rule.id), _window(since, until)),
        )
        .where(col(Workflow.org_id) == org_id)
        .group_by(col(Workflow.id), col(Workflow.name), col(Workflow.project_id))
        .order_by(col(Workflow.name))
    )
    if project_id is not None:
        statement = statement.where(col(Workflow.project_id) == project_id)
    rows = await session.exec(statement)
    return [
        WorkflowMetrics(
            workflow_id=row[0],
            workflow_name=row[1],
            project_id=row[2],
            rule_count=row._mapping["rule_count"],
            evaluated_count=row._mapping["evaluated"],
            applied_count=row._mapping["applied"],
            suppressed_count=row._mapping["suppressed"],
        )
        for row in rows
    ]


def executions_statement(*, rule_id: int, since: datetime, until: datetime) -> Select:
    """Drill-down query for a rule's executions, newest first, with the user's email."""
    return (
        select(
            col(RuleExecution.id),
            col(RuleExecution.rule_id),
            col(RuleExecution.origin_type),
            col(RuleExecution.origin_id),
            col(RuleExecution.outcome),
            col(RuleExecution.suppression_reason),
            col(RuleExecution.user_id),
            col(User.email).label("user_email"),
            col(RuleExecution.created_at),
        )
        .outerjoin(User, col(User.id) == col(RuleExecution.user_id))
        .where(col(RuleExecution.rule_id) == rule_id, _window(since, until))
        .order_by(col(RuleExecution.created_at).desc(), col(RuleExecution.id).desc())
    )
