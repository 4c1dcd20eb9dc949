"""
Program phase state machine.

Converts the stream of completed training sessions into program state:
counters per protocol category and level, assessment dates, and the
automatic phase transitions

    RAMPn -> PRIMARYn    after 6 overspeed sessions in the phase
    PRIMARYn -> MAINTn   after 25 overspeed sessions in the phase, or 70 days

MAINTn -> RAMPn+1 is never automatic. The player asks for it explicitly
through start_next_ramp_up, which is only valid from MAINT1 and MAINT2.

Every function here is pure: it takes a state and returns a new one. The
program service is responsible for loading and persisting.
"""

import logging
import math
from datetime import date, datetime
from typing import Iterable, Optional

from .classifier import ProtocolKind, classify_protocol
from .models import (
    DEFAULT_TRAINING_DAYS,
    WEEKDAYS,
    PhaseId,
    ProgramSettingsUpdate,
    ProgramState,
    ProtocolInfo,
    utcnow,
)

logger = logging.getLogger(__name__)


RAMP_TO_PRIMARY_OVERSPEED_SESSIONS = 6
PRIMARY_TO_MAINT_OVERSPEED_SESSIONS = 25
PRIMARY_MAX_DAYS = 70

_RAMP_TO_PRIMARY = {
    PhaseId.RAMP1: PhaseId.PRIMARY1,
    PhaseId.RAMP2: PhaseId.PRIMARY2,
    PhaseId.RAMP3: PhaseId.PRIMARY3,
}

_PRIMARY_TO_MAINT = {
    PhaseId.PRIMARY1: PhaseId.MAINT1,
    PhaseId.PRIMARY2: PhaseId.MAINT2,
    PhaseId.PRIMARY3: PhaseId.MAINT3,
}

# MAINT3 is the end of the three-cycle program.
_MAINT_TO_NEXT_RAMP = {
    PhaseId.MAINT1: PhaseId.RAMP2,
    PhaseId.MAINT2: PhaseId.RAMP3,
}


class InvalidTransition(Exception):
    """Raised when a manual phase transition is not allowed from the current phase."""

    def __init__(self, current_phase: PhaseId, message: str) -> None:
        super().__init__(message)
        self.current_phase = current_phase
        self.message = message


# ---------------------------------------------------------------------------
# State construction
# ---------------------------------------------------------------------------

def build_default_program_state(
    player_id: str,
    start_date: date,
    now: Optional[datetime] = None,
) -> ProgramState:
    """A fresh RAMP1 state with zero counters and default configuration."""
    timestamp = now or utcnow()
    return ProgramState(
        player_id=player_id,
        current_phase=PhaseId.RAMP1,
        phase_start_date=start_date,
        program_start_date=start_date,
        created_at=timestamp,
        updated_at=timestamp,
    )


def _bump_level(counts: dict[str, int], level: int) -> None:
    key = str(level)
    counts[key] = counts.get(key, 0) + 1


def _enter_phase(state: ProgramState, phase: PhaseId, start: date) -> None:
    state.current_phase = phase
    state.phase_start_date = start
    state.overspeed_sessions_in_current_phase = 0


# ---------------------------------------------------------------------------
# Automatic transitions
# ---------------------------------------------------------------------------

def compute_next_program_state(
    prev: ProgramState,
    protocol: ProtocolInfo,
    completion_date: date,
    now: Optional[datetime] = None,
) -> ProgramState:
    """
    Apply one completed session to the program state.

    Not idempotent: every call counts one more completed session. Phase
    transitions are only evaluated when the completed protocol is overspeed.
    The input state is never modified.
    """
    next_state = prev.clone()
    next_state.total_sessions_completed = (prev.total_sessions_completed or 0) + 1
    next_state.updated_at = now or utcnow()

    classification = classify_protocol(protocol.title, protocol.category)
    kind = classification.kind

    if kind is ProtocolKind.OVERSPEED:
        next_state.total_overspeed_sessions += 1
        next_state.overspeed_sessions_in_current_phase += 1
    elif kind is ProtocolKind.COUNTERWEIGHT:
        next_state.total_counterweight_sessions += 1
    elif kind is ProtocolKind.GROUND_FORCE:
        _bump_level(next_state.ground_force_sessions_by_level, classification.level)
    elif kind is ProtocolKind.SEQUENCING:
        _bump_level(next_state.sequencing_sessions_by_level, classification.level)
    elif kind is ProtocolKind.EXIT_VELO:
        _bump_level(next_state.exit_velo_sessions_by_level, classification.level)
    elif kind is ProtocolKind.FULL_ASSESSMENT:
        next_state.last_full_assessment_date = completion_date
    elif kind is ProtocolKind.QUICK_ASSESSMENT:
        next_state.last_quick_assessment_date = completion_date

    if not classification.is_overspeed:
        return next_state

    phase = prev.current_phase
    days_in_phase = (completion_date - prev.phase_start_date).days
    in_phase = next_state.overspeed_sessions_in_current_phase

    if phase.is_ramp and in_phase >= RAMP_TO_PRIMARY_OVERSPEED_SESSIONS:
        _enter_phase(next_state, _RAMP_TO_PRIMARY[phase], completion_date)
    elif phase.is_primary and (
        in_phase >= PRIMARY_TO_MAINT_OVERSPEED_SESSIONS or days_in_phase >= PRIMARY_MAX_DAYS
    ):
        _enter_phase(next_state, _PRIMARY_TO_MAINT[phase], completion_date)

    if next_state.current_phase is not phase:
        logger.info(
            "Program phase advanced",
            extra={
                "player_id": prev.player_id,
                "from_phase": phase.value,
                "to_phase": next_state.current_phase.value,
                "days_in_phase": days_in_phase,
            }
        )

    return next_state


# ---------------------------------------------------------------------------
# Manual operations
# ---------------------------------------------------------------------------

def request_maintenance_extension(
    state: ProgramState,
    now: Optional[datetime] = None,
) -> ProgramState:
    """Flag that the player wants to stay in maintenance. Does not alter the phase."""
    next_state = state.clone()
    next_state.maintenance_extension_requested = True
    next_state.next_ramp_up_requested = False
    next_state.updated_at = now or utcnow()
    return next_state


def start_next_ramp_up(
    state: ProgramState,
    today: date,
    now: Optional[datetime] = None,
) -> ProgramState:
    """
    Move from maintenance into the next cycle's ramp phase.

    Raises InvalidTransition for any phase other than MAINT1 or MAINT2.
    """
    next_phase = _MAINT_TO_NEXT_RAMP.get(state.current_phase)
    if next_phase is None:
        raise InvalidTransition(
            state.current_phase,
            "Cannot start next ramp-up from current phase. "
            "This action is only valid from MAINT1 or MAINT2.",
        )

    next_state = state.clone()
    _enter_phase(next_state, next_phase, today)
    next_state.maintenance_extension_requested = False
    next_state.next_ramp_up_requested = False
    next_state.updated_at = now or utcnow()
    return next_state


def normalize_days(raw: object, fallback: Iterable[str]) -> list[str]:
    """
    Lower-case, validate and de-duplicate weekday codes.

    Returns the fallback when raw is not a list or holds no valid code.
    """
    if not isinstance(raw, (list, tuple)):
        return list(fallback)
    days: list[str] = []
    for value in raw:
        key = str(value).lower()
        if key in WEEKDAYS and key not in days:
            days.append(key)
    return days or list(fallback)


def _as_int(value: object) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


def apply_program_settings(
    existing: Optional[ProgramState],
    update: ProgramSettingsUpdate,
    player_id: str,
    today: date,
    now: Optional[datetime] = None,
) -> ProgramState:
    """
    Upsert the configuration fields of a program state.

    With no existing state a default one is created, starting on the
    supplied program start date (or today). Phase and counters are never
    touched. Values of the wrong type are ignored rather than rejected.
    """
    if existing is None:
        start = update.program_start_date or today
        state = build_default_program_state(player_id, start, now=now)
    else:
        state = existing.clone()
        state.program_start_date = (
            update.program_start_date or existing.program_start_date or today
        )
        state.updated_at = now or utcnow()

    if isinstance(update.in_season, bool):
        state.in_season = update.in_season
    if isinstance(update.has_space_to_hit_balls, bool):
        state.has_space_to_hit_balls = update.has_space_to_hit_balls

    sessions_per_week = _as_int(update.sessions_per_week)
    if sessions_per_week is not None:
        state.sessions_per_week = sessions_per_week
    session_minutes = _as_int(update.session_minutes)
    if session_minutes is not None:
        state.session_minutes = session_minutes

    if update.training_days is not None:
        state.training_days = normalize_days(update.training_days, DEFAULT_TRAINING_DAYS)
    if update.game_days is not None:
        state.game_days = normalize_days(update.game_days, [])

    return state


def reset_program_state(
    player_id: str,
    start_date: date,
    preserve: Optional[ProgramSettingsUpdate] = None,
    now: Optional[datetime] = None,
) -> ProgramState:
    """
    Discard phase and counters.

    Configuration returns to defaults unless the caller supplies fields to
    keep. The program restarts on start_date regardless of any start date in
    preserve.
    """
    state = build_default_program_state(player_id, start_date, now=now)
    if preserve is None:
        return state

    kept = ProgramSettingsUpdate(
        in_season=preserve.in_season,
        training_days=preserve.training_days,
        game_days=preserve.game_days,
        sessions_per_week=preserve.sessions_per_week,
        session_minutes=preserve.session_minutes,
        has_space_to_hit_balls=preserve.has_space_to_hit_balls,
        program_start_date=start_date,
    )
    return apply_program_settings(state, kept, player_id, start_date, now=now)

