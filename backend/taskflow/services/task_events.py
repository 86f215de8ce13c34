"""Append-only task activity log writer."""

from __future__ import annotations

from typing import TYPE_CHECKING

from taskflow.core.time import utcnow
from taskflow.models.projects import Project
from taskflow.models.task_events import TaskEvent, TaskEventType
from taskflow.services.errors import NotFoundError

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from taskflow.models.tasks import Task


async def record_task_event(
    session: AsyncSession,
    *,
    task: Task,
    event_type: TaskEventType,
    actor_user_id: int | None,
    org_id: int | None = None,
) -> TaskEvent:
    """Add a task event to the current unit of work (flushed, not committed)."""
    if org_id is None:
        project = await Project.objects.by_id(task.project_id).first(session)
        if project is None:
            raise NotFoundError("Project not found")
        org_id = project.org_id
    entry = TaskEvent(
        org_id=org_id,
        project_id=task.project_id,
        task_id=task.id,
        actor_user_id=actor_user_id,
        event_type=event_type.value,
        created_at=utcnow(),
    )
    session.add(entry)
    await session.flush()
    return entry
