"""Optimistic-concurrency update primitive shared by every versioned model.

The guard and the mutation are a single ``UPDATE ... WHERE id = :id AND
version = :expected`` statement; there is no read-then-write window. A miss
returns ``None`` and the caller decides (via ``taskflow.services.conflicts``)
what the miss means.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from sqlalchemy import update
from sqlmodel import col, select

from taskflow.core.logging import get_logger

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)


class Versioned(Protocol):
    id: int | None
    version: int


VersionedT = TypeVar("VersionedT", bound=Versioned)


async def update_if_version(
    session: AsyncSession,
    model: type[VersionedT],
    entity_id: int,
    expected_version: int,
    values: Mapping[str, Any],
    *,
    guards: Sequence[ColumnElement[bool]] = (),
) -> VersionedT | None:
    """Apply ``values`` and bump ``version`` iff the row is still at ``expected_version``.

    ``guards`` are extra predicates evaluated in the same statement (for
    example ``status = 'available'``). Returns the refreshed row, or ``None``
    when nothing matched.
    """
    if "version" in values:
        msg = "version is managed by update_if_version"
        raise ValueError(msg)
    id_column = col(model.id)
    version_column = col(model.version)
    statement = (
        update(model)
        .where(id_column == entity_id, version_column == expected_version, *guards)
        .values(**values, version=version_column + 1)
        .returning(id_column)
        .execution_options(synchronize_session=False)
    )
    result = await session.exec(statement)  # type: ignore[call-overload]
    updated_id = result.scalar_one_or_none()
    if updated_id is None:
        logger.debug(
            "store.versioned_update.missed",
            extra={
                "model": model.__name__,
                "entity_id": entity_id,
                "expected_version": expected_version,
            },
        )
        return None
    refreshed = select(model).where(id_column == updated_id).execution_options(
        populate_existing=True,
    )
    return (await session.exec(refreshed)).one()
