"""Limit/offset pagination over SQLAlchemy statements."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any

from fastapi_pagination.ext.sqlalchemy import apaginate

if TYPE_CHECKING:
    from fastapi_pagination.limit_offset import LimitOffsetPage
    from sqlalchemy.sql import Select
    from sqlmodel.ext.asyncio.session import AsyncSession

Transformer = Callable[[Sequence[Any]], Sequence[Any] | Awaitable[Sequence[Any]]]


async def paginate(
    session: AsyncSession,
    statement: Select,
    *,
    transformer: Transformer | None = None,
) -> LimitOffsetPage[Any]:
    """Run ``statement`` for the current page params, optionally mapping the items."""
    return await apaginate(session, statement, transformer=transformer)
