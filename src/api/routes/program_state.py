"""
Program state API endpoints.

Exposes a player's position in the program and the manual actions on it:
reset, maintenance extension, next ramp-up and settings. Phase changes
caused by training happen through session completion, not here.

Endpoints are plain (sync) functions: they block on the database and on
the player's lock, so FastAPI runs them in its threadpool.
"""

import logging
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from ...core.program.locks import PlayerLockTimeout
from ...core.program.models import ProgramSettingsUpdate, ProgramState
from ...core.program.service import ProgramStateNotFoundError
from ...core.program.state_machine import InvalidTransition
from ..dependencies import AuthenticatedUser, ProgramServiceDep, SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class ProgramSettingsRequest(BaseModel):
    """
    Configuration fields to change. Omitted fields are left as they are.

    Values of the wrong type are ignored rather than rejected, so fields
    accept anything here.
    """
    in_season: Any = None
    training_days: Any = None
    game_days: Any = None
    sessions_per_week: Any = None
    session_minutes: Any = None
    has_space_to_hit_balls: Any = None
    program_start_date: Optional[date] = None

    def to_update(self) -> ProgramSettingsUpdate:
        return ProgramSettingsUpdate(
            in_season=self.in_season,
            training_days=self.training_days,
            game_days=self.game_days,
            sessions_per_week=self.sessions_per_week,
            session_minutes=self.session_minutes,
            has_space_to_hit_balls=self.has_space_to_hit_balls,
            program_start_date=self.program_start_date,
        )


class ResetRequest(ProgramSettingsRequest):
    """Restart the program, optionally keeping some configuration."""
    start_date: Optional[date] = Field(None, description="Day the restarted program begins. Defaults to today.")


class ProgramStateResponse(BaseModel):
    """A player's program state, as stored."""
    player_id: str
    current_phase: str
    phase_start_date: str
    program_start_date: Optional[str]
    in_season: bool
    training_days: list[str]
    game_days: list[str]
    sessions_per_week: int
    session_minutes: int
    has_space_to_hit_balls: bool
    total_overspeed_sessions: int
    overspeed_sessions_in_current_phase: int
    total_counterweight_sessions: int
    ground_force_sessions_by_level: dict[str, int]
    sequencing_sessions_by_level: dict[str, int]
    exit_velo_sessions_by_level: dict[str, int]
    last_full_assessment_date: Optional[str]
    last_quick_assessment_date: Optional[str]
    needs_ground_force: bool
    needs_sequencing: bool
    needs_exit_velo: bool
    needs_bat_delivery: bool
    total_sessions_completed: int
    maintenance_extension_requested: bool
    next_ramp_up_requested: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_state(cls, state: ProgramState) -> "ProgramStateResponse":
        return cls(**state.to_row())


def _not_found(player_id: str) -> HTTPException:
    logger.info("Program state not found", extra={"player_id": player_id})
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Program state not found",
    )


def _lock_timeout() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Program state is being updated. Try again shortly.",
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/{player_id}/program-state",
    response_model=ProgramStateResponse,
    summary="Get program state",
)
def get_program_state(
    player_id: str,
    api_key: AuthenticatedUser,
    program: ProgramServiceDep,
) -> ProgramStateResponse:
    try:
        state = program.get_state(player_id)
    except ProgramStateNotFoundError:
        raise _not_found(player_id)
    return ProgramStateResponse.from_state(state)


@router.post(
    "/{player_id}/program-state/reset",
    response_model=ProgramStateResponse,
    summary="Reset program",
    description="Discards phase and counters and restarts at RAMP1.",
)
def reset_program(
    player_id: str,
    api_key: AuthenticatedUser,
    program: ProgramServiceDep,
    request: Optional[ResetRequest] = None,
) -> ProgramStateResponse:
    start_date = request.start_date if request else None
    preserve = request.to_update() if request else None
    try:
        state = program.reset(player_id, start_date=start_date, preserve=preserve)
    except PlayerLockTimeout:
        raise _lock_timeout()
    return ProgramStateResponse.from_state(state)


@router.post(
    "/{player_id}/program-state/extend-maintenance",
    response_model=ProgramStateResponse,
    summary="Stay in maintenance",
)
def extend_maintenance(
    player_id: str,
    api_key: AuthenticatedUser,
    program: ProgramServiceDep,
) -> ProgramStateResponse:
    try:
        state = program.request_maintenance_extension(player_id)
    except ProgramStateNotFoundError:
        raise _not_found(player_id)
    except PlayerLockTimeout:
        raise _lock_timeout()
    return ProgramStateResponse.from_state(state)


@router.post(
    "/{player_id}/program-state/start-next-ramp-up",
    response_model=ProgramStateResponse,
    summary="Start the next cycle",
    description="Moves MAINT1 to RAMP2 or MAINT2 to RAMP3.",
)
def start_next_ramp_up(
    player_id: str,
    api_key: AuthenticatedUser,
    program: ProgramServiceDep,
) -> ProgramStateResponse:
    try:
        state = program.start_next_ramp_up(player_id)
    except ProgramStateNotFoundError:
        raise _not_found(player_id)
    except InvalidTransition as e:
        logger.info(
            "Rejected ramp-up start",
            extra={"player_id": player_id, "phase": e.current_phase.value}
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": e.message, "current_phase": e.current_phase.value},
        )
    except PlayerLockTimeout:
        raise _lock_timeout()
    return ProgramStateResponse.from_state(state)


@router.post(
    "/{player_id}/program-settings",
    response_model=ProgramStateResponse,
    summary="Update program settings",
    description="Creates the program state if the player has none.",
)
def update_program_settings(
    player_id: str,
    request: ProgramSettingsRequest,
    api_key: AuthenticatedUser,
    program: ProgramServiceDep,
) -> ProgramStateResponse:
    try:
        state = program.update_settings(player_id, request.to_update())
    except PlayerLockTimeout:
        raise _lock_timeout()
    return ProgramStateResponse.from_state(state)


@router.get(
    "/{player_id}/program-schedule",
    summary="Project the training schedule",
    description="Calendar of upcoming training blocks. Recomputed on every call.",
)
def get_program_schedule(
    player_id: str,
    api_key: AuthenticatedUser,
    program: ProgramServiceDep,
    settings: SettingsDep,
    weeks: Optional[int] = Query(None, ge=1, le=12),
    age: Optional[int] = Query(None, ge=5, le=99),
    start_date: Optional[date] = Query(None),
) -> dict:
    try:
        schedule = program.build_schedule(
            player_id,
            weeks=weeks or settings.schedule_horizon_weeks,
            age=age or settings.default_player_age,
            start_date=start_date,
        )
    except ProgramStateNotFoundError:
        raise _not_found(player_id)
    return schedule.to_dict()
