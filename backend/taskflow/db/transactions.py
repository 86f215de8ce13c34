"""Unit-of-work helper shared by the lifecycle, milestone and card services."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from taskflow.core.logging import get_logger
from taskflow.services.errors import StorageError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)


async def _rollback_quietly(session: AsyncSession) -> None:
    try:
        await session.rollback()
    except SQLAlchemyError:
        logger.exception("db.transaction.rollback_failed")


@asynccontextmanager
async def transaction(session: AsyncSession, *, operation: str) -> AsyncIterator[AsyncSession]:
    """Run the block as one unit of work: commit on success, roll back on any error.

    Domain errors propagate unchanged. Database errors are re-raised as
    :class:`StorageError` so callers only ever see the closed error set.
    """
    try:
        yield session
        await session.commit()
    except SQLAlchemyError as exc:
        await _rollback_quietly(session)
        logger.error(
            "db.transaction.failed",
            exc_info=exc,
            extra={"operation": operation},
        )
        raise StorageError(f"{operation} failed: storage unavailable") from exc
    except Exception:
        await _rollback_quietly(session)
        raise
