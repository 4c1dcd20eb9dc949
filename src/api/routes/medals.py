"""
Medal endpoints.

Lists the medals a player can earn and has earned, and awards medals for
events reported by other parts of the product (joining a team, finishing a
cycle, completing the profile).
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ..dependencies import AuthenticatedUser, MedalServiceDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class AwardEventsRequest(BaseModel):
    """Events that just happened for the player."""
    eventCodes: list[str] = Field(default_factory=list, description="Event codes, matched case-insensitively")
    source: Optional[str] = Field(None, description="What triggered the award, stored with each medal")
    context: Optional[dict[str, Any]] = Field(None, description="Free-form metadata stored with each medal")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/{player_id}/medals",
    summary="List medals for a player",
)
def get_player_medals(
    player_id: str,
    api_key: AuthenticatedUser,
    medal_service: MedalServiceDep,
) -> dict:
    overview = medal_service.get_player_medals(player_id)
    return {
        "medals": [
            medal.to_dict(image_url=medal_service.image_url(medal))
            for medal in overview.medals
        ],
        "earned": [row.to_dict() for row in overview.earned],
        "playerAgeGroup": overview.age_group.value if overview.age_group else None,
        "isSoftball": overview.is_softball,
    }


@router.post(
    "/{player_id}/medals/award-events",
    summary="Award medals for events",
    description="Evaluates every eligible medal and records the ones newly earned.",
)
def award_medals_for_events(
    player_id: str,
    request: AwardEventsRequest,
    api_key: AuthenticatedUser,
    medal_service: MedalServiceDep,
) -> dict:
    awarded = medal_service.award_for_events(
        player_id,
        request.eventCodes,
        source=request.source or "manual_event_award",
        context=request.context,
    )
    return {"newlyAwarded": [item.to_dict() for item in awarded]}
