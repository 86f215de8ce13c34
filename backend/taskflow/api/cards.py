"""Card planning endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from taskflow.api.deps import ACTOR_DEP, SESSION_DEP
from taskflow.schemas.cards import CardMove, CardRead, CardReturn
from taskflow.schemas.errors import ErrorResponse
from taskflow.services.cards import move_card, return_card_to_pool

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from taskflow.models.cards import Card

router = APIRouter(prefix="/cards", tags=["cards"])

_CARD_ERRORS: dict[int | str, dict[str, object]] = {
    404: {"model": ErrorResponse, "description": "Card not found"},
    409: {"model": ErrorResponse, "description": "invalid_transition or version_conflict"},
    422: {"model": ErrorResponse, "description": "Milestone outside the card's project"},
}


@router.post("/{card_id}/move", response_model=CardRead, responses=_CARD_ERRORS)
async def move(
    card_id: int,
    payload: CardMove,
    session: AsyncSession = SESSION_DEP,
    actor_id: int = ACTOR_DEP,
) -> Card:
    """Plan the card into another milestone."""
    return await move_card(
        session,
        card_id=card_id,
        expected_version=payload.version,
        milestone_id=payload.milestone_id,
    )


@router.post("/{card_id}/return-to-pool", response_model=CardRead, responses=_CARD_ERRORS)
async def return_to_pool(
    card_id: int,
    payload: CardReturn,
    session: AsyncSession = SESSION_DEP,
    actor_id: int = ACTOR_DEP,
) -> Card:
    """Move the card out of a milestone that is still ready."""
    return await return_card_to_pool(
        session,
        card_id=card_id,
        expected_version=payload.version,
    )
