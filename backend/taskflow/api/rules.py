"""Rule reporting endpoints: metrics and execution drill-down."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Query

from taskflow.api.deps import ACTOR_DEP, SESSION_DEP
from taskflow.core.time import as_naive_utc, utcnow
from taskflow.db.pagination import paginate
from taskflow.schemas.errors import ErrorResponse
from taskflow.schemas.pagination import DefaultLimitOffsetPage
from taskflow.schemas.rules import RuleExecutionRead, RuleMetricsRead
from taskflow.services.errors import DomainValidationError
from taskflow.services.rule_executions import executions_statement, rule_metrics

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fastapi_pagination.limit_offset import LimitOffsetPage
    from sqlmodel.ext.asyncio.session import AsyncSession

router = APIRouter(prefix="/rules", tags=["rules"])

DEFAULT_WINDOW = timedelta(days=30)
SINCE_QUERY = Query(default=None, description="Window start (UTC); defaults to 30 days ago.")
UNTIL_QUERY = Query(default=None, description="Window end (UTC); defaults to now.")


def _resolve_window(since: datetime | None, until: datetime | None) -> tuple[datetime, datetime]:
    until = as_naive_utc(until) if until is not None else utcnow()
    since = as_naive_utc(since) if since is not None else until - DEFAULT_WINDOW
    if since > until:
        raise DomainValidationError("since must not be after until")
    return since, until


@router.get(
    "/{rule_id}/metrics",
    response_model=RuleMetricsRead,
    responses={404: {"model": ErrorResponse, "description": "Rule not found"}},
)
async def get_rule_metrics(
    rule_id: int,
    since: datetime | None = SINCE_QUERY,
    until: datetime | None = UNTIL_QUERY,
    session: AsyncSession = SESSION_DEP,
    actor_id: int = ACTOR_DEP,
) -> RuleMetricsRead:
    """Evaluated, applied and suppressed counts for a rule."""
    since, until = _resolve_window(since, until)
    metrics = await rule_metrics(session, rule_id=rule_id, since=since, until=until)
    return RuleMetricsRead(
        rule_id=metrics.rule_id,
        rule_name=metrics.rule_name,
        since=since,
        until=until,
        evaluated_count=metrics.evaluated_count,
        applied_count=metrics.applied_count,
        suppressed_count=metrics.suppressed_count,
        suppressed_by_reason=metrics.suppressed_by_reason,
    )


@router.get(
    "/{rule_id}/executions",
    response_model=DefaultLimitOffsetPage[RuleExecutionRead],
)
async def list_rule_executions(
    rule_id: int,
    since: datetime | None = SINCE_QUERY,
    until: datetime | None = UNTIL_QUERY,
    session: AsyncSession = SESSION_DEP,
    actor_id: int = ACTOR_DEP,
) -> LimitOffsetPage[RuleExecutionRead]:
    """Executions of a rule in the window, newest first."""
    since, until = _resolve_window(since, until)
    statement = executions_statement(rule_id=rule_id, since=since, until=until)

    def _transform(items: Sequence[Any]) -> Sequence[Any]:
        return [RuleExecutionRead.model_validate(dict(row._mapping)) for row in items]

    return await paginate(session, statement, transformer=_transform)
