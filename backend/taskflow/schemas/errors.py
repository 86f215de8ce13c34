"""Structured error payload schemas used by API responses."""

from __future__ import annotations

from pydantic import Field
from sqlmodel import SQLModel


class ErrorResponse(SQLModel):
    """Standardized error payload returned by every failing API call."""

    detail: str | dict[str, object] | list[object] = Field(
        description=(
            "Error payload. Clients should rely on `code` when present and default "
            "to `detail` for fallback display."
        ),
        examples=[
            "Task is already claimed",
            [{"loc": ["body", "version"], "msg": "Field required"}],
        ],
    )
    request_id: str | None = Field(
        default=None,
        description="Request correlation identifier injected by middleware.",
    )
    code: str | None = Field(
        default=None,
        description="Machine-readable error kind.",
        examples=["already_claimed", "version_conflict", "already_active"],
    )
    retryable: bool | None = Field(
        default=None,
        description="Whether the call may succeed if retried after refetching state.",
    )
