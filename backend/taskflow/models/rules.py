"""Rule and rule-template association models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint
from sqlmodel import Field

from taskflow.core.time import utcnow
from taskflow.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class ResourceType(str, Enum):
    """Kinds of resources whose transitions rules can react to."""

    TASK = "task"
    CARD = "card"


class Rule(QueryModel, table=True):
    """Automation rule; its target is (resource_type, task_type_id, to_state)."""

    __tablename__ = "rules"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        CheckConstraint("resource_type IN ('task', 'card')", name="ck_rules_resource_type"),
        CheckConstraint(
            "resource_type = 'task' OR task_type_id IS NULL",
            name="ck_rules_task_type_only_for_tasks",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    workflow_id: int = Field(foreign_key="workflows.id", index=True)
    name: str
    goal: str | None = None
    resource_type: str = Field(index=True)
    task_type_id: int | None = Field(default=None, foreign_key="task_types.id")
    to_state: str
    active: bool = Field(default=True)
    # Cascaded transitions (no triggering user) are suppressed when set.
    user_triggered_only: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)


class RuleTemplate(QueryModel, table=True):
    """Template attached to a rule, applied in ascending ``execution_order``."""

    __tablename__ = "rule_templates"  # pyright: ignore[reportAssignmentType]

    rule_id: int = Field(foreign_key="rules.id", primary_key=True)
    template_id: int = Field(foreign_key="task_templates.id", primary_key=True)
    execution_order: int = Field(default=0)
