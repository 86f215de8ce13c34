"""Base model class carrying the shared query manager."""

from __future__ import annotations

from typing import ClassVar

from sqlmodel import SQLModel

from taskflow.db.query_manager import ManagerDescriptor


class QueryModel(SQLModel, table=False):
    """SQLModel base exposing ``Model.objects`` query helpers."""

    objects: ClassVar[ManagerDescriptor] = ManagerDescriptor()
