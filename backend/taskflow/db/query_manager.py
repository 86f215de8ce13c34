"""Small chainable query helpers exposed as ``Model.objects``."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlmodel import SQLModel, col, select

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession
    from sqlmodel.sql.expression import SelectOfScalar

ModelT = TypeVar("ModelT", bound=SQLModel)


@dataclass(frozen=True)
class QuerySet(Generic[ModelT]):
    """Immutable wrapper around a select statement for one model."""

    statement: SelectOfScalar[ModelT]

    def filter(self, *criteria: Any) -> QuerySet[ModelT]:
        return replace(self, statement=self.statement.where(*criteria))

    def order_by(self, *clauses: Any) -> QuerySet[ModelT]:
        return replace(self, statement=self.statement.order_by(*clauses))

    def for_update(self) -> QuerySet[ModelT]:
        return replace(self, statement=self.statement.with_for_update())

    def fresh(self) -> QuerySet[ModelT]:
        """Overwrite identity-map copies with the row as currently stored."""
        return replace(
            self,
            statement=self.statement.execution_options(populate_existing=True),
        )

    async def first(self, session: AsyncSession) -> ModelT | None:
        return (await session.exec(self.statement)).first()

    async def all(self, session: AsyncSession) -> list[ModelT]:
        return list(await session.exec(self.statement))


class ModelManager(Generic[ModelT]):
    """Entry point for building query sets bound to ``model``."""

    def __init__(self, model: type[ModelT]) -> None:
        self.model = model

    def all(self) -> QuerySet[ModelT]:
        return QuerySet(select(self.model))

    def by_id(self, obj_id: object) -> QuerySet[ModelT]:
        return self.filter_by(id=obj_id)

    def by_ids(self, obj_ids: Iterable[object]) -> QuerySet[ModelT]:
        return self.by_field_in("id", obj_ids)

    def by_field_in(self, field_name: str, values: Iterable[object]) -> QuerySet[ModelT]:
        column = col(getattr(self.model, field_name))
        return self.all().filter(column.in_(list(values)))

    def filter_by(self, **kwargs: object) -> QuerySet[ModelT]:
        return QuerySet(select(self.model).filter_by(**kwargs))


class ManagerDescriptor:
    """Class-level descriptor returning a manager for the owning model."""

    def __get__(self, instance: object, owner: type[ModelT]) -> ModelManager[ModelT]:
        return ModelManager(owner)
