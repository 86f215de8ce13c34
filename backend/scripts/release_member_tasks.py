"""CLI script to return every task a departing member holds in a project to the pool."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Release all tasks claimed by a user in one project.",
    )
    parser.add_argument("--project-id", type=int, required=True, help="Project id")
    parser.add_argument("--user-id", type=int, required=True, help="Member whose tasks to release")
    return parser.parse_args()


async def _run() -> int:
    from taskflow.db.session import async_session_maker
    from taskflow.models.projects import Project
    from taskflow.services.errors import LifecycleError
    from taskflow.services.task_lifecycle import release_all_for_user

    args = _parse_args()

    async with async_session_maker() as session:
        project = await session.get(Project, args.project_id)
        if project is None:
            message = f"Project not found: {args.project_id}"
            raise SystemExit(message)
        try:
            released = await release_all_for_user(
                session,
                project_id=args.project_id,
                user_id=args.user_id,
            )
        except LifecycleError as exc:
            sys.stdout.write(f"error={exc.kind.value} message={exc.message}\n")
            return 1

    sys.stdout.write(f"project_id={args.project_id} user_id={args.user_id}\n")
    sys.stdout.write(f"tasks_released={len(released)}\n")
    for task in released:
        sys.stdout.write(f"- task_id={task.id} version={task.version}\n")
    return 0


def main() -> None:
    """Run the async CLI workflow and exit with its return code."""
    raise SystemExit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
