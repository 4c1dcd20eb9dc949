"""
Medal awarding service.

Loads what evaluation needs (profile, eligible medals, medals already
earned, program state metrics), runs the pure evaluator and records the
medals that were newly earned.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Protocol

from src.core.program.models import ProgramState, utcnow

from .evaluator import evaluate_medals, infer_age_group, medal_image_url
from .models import (
    AgeGroup,
    AwardedMedal,
    Medal,
    PlayerMedal,
    PlayerMedalOverview,
    PlayerProfile,
)

logger = logging.getLogger(__name__)


class MedalStore(Protocol):
    """Persistence for medal definitions, profiles and earned medals."""

    def get_profile(self, player_id: str) -> Optional[PlayerProfile]: ...

    def list_active_medals(self, age_group: Optional[AgeGroup]) -> list[Medal]: ...

    def list_earned_medal_ids(self, player_id: str) -> set[str]: ...

    def list_player_medals(self, player_id: str) -> list[PlayerMedal]: ...

    def insert_player_medals(self, rows: list[PlayerMedal]) -> list[PlayerMedal]: ...


class ProgramStateReader(Protocol):
    def get(self, player_id: str) -> Optional[ProgramState]: ...


def build_metrics(profile: Optional[PlayerProfile], state: Optional[ProgramState]) -> dict[str, Any]:
    """Flat metric map: profile completion plus every non-null program state column."""
    metrics: dict[str, Any] = {}
    if profile is not None:
        metrics["profile_complete"] = bool(profile.profile_complete)
    if state is not None:
        for key, value in state.to_row().items():
            if key == "player_id" or value is None:
                continue
            metrics[key.lower()] = value
    return metrics


class MedalService:
    def __init__(
        self,
        medals: MedalStore,
        states: ProgramStateReader,
        image_base_url: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._medals = medals
        self._states = states
        self._image_base_url = image_base_url
        self._clock = clock or utcnow

    def image_url(self, medal: Medal) -> Optional[str]:
        return medal_image_url(medal, self._image_base_url)

    def get_player_medals(self, player_id: str) -> PlayerMedalOverview:
        profile = self._medals.get_profile(player_id)
        age_group = infer_age_group(profile, self._clock().date())
        return PlayerMedalOverview(
            medals=self._medals.list_active_medals(age_group),
            earned=self._medals.list_player_medals(player_id),
            age_group=age_group,
            is_softball=age_group is AgeGroup.SOFTBALL,
        )

    def award_for_events(
        self,
        player_id: str,
        event_codes: Iterable[str],
        source: str,
        context: Optional[dict[str, Any]] = None,
    ) -> list[AwardedMedal]:
        """
        Award every medal the player now qualifies for and has not earned yet.

        Returns only the medals awarded by this call.
        """
        if not player_id:
            return []

        now = self._clock()
        profile = self._medals.get_profile(player_id)
        age_group = infer_age_group(profile, now.date())

        candidates = self._medals.list_active_medals(age_group)
        if not candidates:
            return []

        earned_ids = self._medals.list_earned_medal_ids(player_id)
        metrics = build_metrics(profile, self._states.get(player_id))
        won = evaluate_medals(candidates, earned_ids, list(event_codes), metrics)
        if not won:
            return []

        rows = [
            PlayerMedal(
                player_id=player_id,
                medal_id=medal.id,
                earned_at=now,
                source=source,
                metadata=context,
            )
            for medal in won
        ]
        inserted = self._medals.insert_player_medals(rows)

        logger.info(
            "Medals awarded",
            extra={
                "player_id": player_id,
                "source": source,
                "medal_ids": [medal.id for medal in won],
            }
        )

        return [
            AwardedMedal(player_medal=row, medal=medal, image_url=self.image_url(medal))
            for row, medal in zip(inserted, won)
        ]
