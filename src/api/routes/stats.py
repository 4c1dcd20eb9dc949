"""
Player statistics endpoint.

Stats are recomputed from the session and metric feeds on every request.
Nothing here is cached or stored.
"""

import logging

from fastapi import APIRouter

from ...core.stats.engine import build_player_stats
from ..dependencies import AuthenticatedUser, SessionRepositoryDep

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/{player_id}/stats",
    summary="Get player stats",
    description="Personal bests, gains, per-bat-configuration bests, fastest drills and session counts.",
)
def get_player_stats(
    player_id: str,
    api_key: AuthenticatedUser,
    repository: SessionRepositoryDep,
) -> dict:
    sessions = repository.list_session_summaries(player_id)
    metrics = repository.list_swing_metrics(player_id)

    logger.info(
        "Computing player stats",
        extra={
            "player_id": player_id,
            "session_rows": len(sessions),
            "metric_rows": len(metrics),
        }
    )

    return build_player_stats(player_id, sessions, metrics).to_dict()
