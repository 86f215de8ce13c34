"""Schemas for rule metrics and execution drill-down."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field
from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class RuleMetricsRead(SQLModel):
    """Evaluation counters for one rule over ``[since, until]``."""

    rule_id: int
    rule_name: str
    since: datetime
    until: datetime
    evaluated_count: int
    applied_count: int
    suppressed_count: int
    suppressed_by_reason: dict[str, int] = Field(
        default_factory=dict,
        description="Suppressed executions keyed by suppression reason.",
        examples=[{"inactive": 0, "not_user_triggered": 1, "not_matching": 0, "idempotent": 4}],
    )


class RuleExecutionRead(SQLModel):
    """One rule evaluation as listed by the drill-down endpoint."""

    id: int
    rule_id: int
    origin_type: str
    origin_id: int
    outcome: str
    suppression_reason: str | None = None
    user_id: int | None = None
    user_email: str | None = None
    created_at: datetime
