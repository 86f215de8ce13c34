"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from taskflow.models.cards import Card
from taskflow.models.milestones import Milestone
from taskflow.models.organizations import Organization
from taskflow.models.projects import Project
from taskflow.models.rule_executions import RuleExecution
from taskflow.models.rules import Rule, RuleTemplate
from taskflow.models.task_events import TaskEvent
from taskflow.models.task_templates import TaskTemplate
from taskflow.models.task_types import TaskType
from taskflow.models.tasks import Task
from taskflow.models.users import User
from taskflow.models.workflows import Workflow

__all__ = [
    "Card",
    "Milestone",
    "Organization",
    "Project",
    "Rule",
    "RuleExecution",
    "RuleTemplate",
    "Task",
    "TaskEvent",
    "TaskTemplate",
    "TaskType",
    "User",
    "Workflow",
]
