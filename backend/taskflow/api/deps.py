"""Shared FastAPI dependencies for the v1 routers."""

from __future__ import annotations

from fastapi import Depends, Header

from taskflow.db.session import get_session

SESSION_DEP = Depends(get_session)


def get_actor_id(
    x_user_id: int = Header(
        alias="X-User-Id",
        ge=1,
        description="Id of the user performing the call; authentication happens upstream.",
    ),
) -> int:
    """Resolve the acting user from the trusted upstream header."""
    return x_user_id


ACTOR_DEP = Depends(get_actor_id)
