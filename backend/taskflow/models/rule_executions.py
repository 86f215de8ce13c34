"""Append-only record of every rule evaluation against an origin event."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, Index, text
from sqlmodel import Field

from taskflow.core.time import utcnow
from taskflow.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)

ONE_APPLIED_EXECUTION_INDEX = "ix_rule_executions_one_applied_per_origin"


class ExecutionOutcome(str, Enum):
    APPLIED = "applied"
    SUPPRESSED = "suppressed"


class SuppressionReason(str, Enum):
    """Why a matching rule did not act, in the order the engine checks them."""

    INACTIVE = "inactive"
    NOT_USER_TRIGGERED = "not_user_triggered"
    NOT_MATCHING = "not_matching"
    IDEMPOTENT = "idempotent"


class RuleExecution(QueryModel, table=True):
    """Audit row; never updated after insert."""

    __tablename__ = "rule_executions"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        CheckConstraint("origin_type IN ('task', 'card')", name="ck_rule_executions_origin_type"),
        CheckConstraint(
            "outcome IN ('applied', 'suppressed')",
            name="ck_rule_executions_outcome",
        ),
        CheckConstraint(
            "(outcome = 'applied' AND suppression_reason IS NULL)"
            " OR (outcome = 'suppressed' AND suppression_reason IS NOT NULL)",
            name="ck_rule_executions_reason_matches_outcome",
        ),
        Index(
            ONE_APPLIED_EXECUTION_INDEX,
            "rule_id",
            "origin_type",
            "origin_id",
            unique=True,
            sqlite_where=text("outcome = 'applied'"),
            postgresql_where=text("outcome = 'applied'"),
        ),
        Index("ix_rule_executions_origin", "origin_type", "origin_id"),
        Index("ix_rule_executions_rule_created_at", "rule_id", "created_at"),
    )

    id: int | None = Field(default=None, primary_key=True)
    rule_id: int = Field(foreign_key="rules.id")
    origin_type: str
    origin_id: int
    outcome: str
    suppression_reason: str | None = None
    user_id: int | None = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(default_factory=utcnow)
