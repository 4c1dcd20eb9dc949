"""
Program service.

Orchestrates the pure state machine against a session source and a program
state store. Every read-modify-write of a player's state happens inside that
player's lock, which is what keeps concurrent completions from losing
counter increments.

This module still knows nothing about SQL or HTTP. The stores are Protocols,
satisfied in production by the Snowflake repositories and in tests by the
same repositories over a mock connection.
"""

import logging
from datetime import date, datetime
from typing import Callable, Optional, Protocol

from .locks import PlayerLockRegistry
from .models import (
    ProgramSettingsUpdate,
    ProgramState,
    ProtocolInfo,
    SessionRecord,
    utcnow,
)
from .schedule import ProgramConfig, ProgramSchedule, generate_program_schedule
from .state_machine import (
    apply_program_settings,
    build_default_program_state,
    compute_next_program_state,
    request_maintenance_extension,
    reset_program_state,
    start_next_ramp_up,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class SessionSource(Protocol):
    """Read access to training sessions and the protocols they ran."""

    def get_session(self, session_id: str) -> Optional[SessionRecord]: ...

    def get_protocol(self, protocol_id: str) -> Optional[ProtocolInfo]: ...


class ProgramStateStore(Protocol):
    """Persistence for one ProgramState per player."""

    def get(self, player_id: str) -> Optional[ProgramState]: ...

    def save(self, state: ProgramState) -> ProgramState: ...


class ProgramStateNotFoundError(Exception):
    """Raised when an operation needs a stored program state and there is none."""

    def __init__(self, player_id: str) -> None:
        super().__init__(f"Program state not found for player {player_id}")
        self.player_id = player_id


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ProgramService:
    """
    Entry point for everything that changes a player's program.

    Session completion is handled by update_for_completed_session. The manual
    operations (reset, maintenance extension, next ramp-up, settings) are
    explicit user actions.
    """

    def __init__(
        self,
        sessions: SessionSource,
        states: ProgramStateStore,
        locks: Optional[PlayerLockRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._sessions = sessions
        self._states = states
        self._locks = locks or PlayerLockRegistry()
        self._clock = clock or utcnow

    def _today(self) -> date:
        return self._clock().date()

    def _require_state(self, player_id: str) -> ProgramState:
        state = self._states.get(player_id)
        if state is None:
            raise ProgramStateNotFoundError(player_id)
        return state

    # -----------------------------------------------------------------------
    # Session completion
    # -----------------------------------------------------------------------

    def update_for_completed_session(self, session_id: str) -> Optional[ProgramState]:
        """
        Apply a completed session to its player's program state.

        Returns the new state, or None when there is nothing to apply: the
        session is missing or not completed, it has no player or protocol,
        or its protocol no longer exists. None means nothing was written.

        Not idempotent. Each call for the same session counts it again, so
        callers invoke this exactly once per completion.
        """
        session = self._sessions.get_session(session_id)
        if session is None:
            logger.warning("Session not found for program update", extra={"session_id": session_id})
            return None

        if not session.is_completed:
            logger.info(
                "Session not completed, skipping program update",
                extra={"session_id": session_id, "status": session.status}
            )
            return None

        if not session.player_id or not session.protocol_id:
            logger.warning(
                "Session missing player or protocol, skipping program update",
                extra={"session_id": session_id}
            )
            return None

        protocol = self._sessions.get_protocol(session.protocol_id)
        if protocol is None:
            logger.warning(
                "Protocol not found for program update",
                extra={"session_id": session_id, "protocol_id": session.protocol_id}
            )
            return None

        now = self._clock()
        completed = session.completed_at or session.started_at or now
        completion_date = completed.date()
        player_id = session.player_id

        with self._locks.hold(player_id):
            prev = self._states.get(player_id)
            if prev is None:
                prev = build_default_program_state(player_id, completion_date, now=now)
            next_state = compute_next_program_state(prev, protocol, completion_date, now=now)
            saved = self._states.save(next_state)

        logger.info(
            "Program state updated",
            extra={
                "session_id": session_id,
                "player_id": player_id,
                "phase": saved.current_phase.value,
                "total_sessions_completed": saved.total_sessions_completed,
            }
        )
        return saved

    # -----------------------------------------------------------------------
    # Manual operations
    # -----------------------------------------------------------------------

    def get_state(self, player_id: str) -> ProgramState:
        return self._require_state(player_id)

    def reset(
        self,
        player_id: str,
        start_date: Optional[date] = None,
        preserve: Optional[ProgramSettingsUpdate] = None,
    ) -> ProgramState:
        """Start the program over. Creates the state if the player has none."""
        start = start_date or self._today()
        with self._locks.hold(player_id):
            state = reset_program_state(player_id, start, preserve=preserve, now=self._clock())
            saved = self._states.save(state)

        logger.info("Program state reset", extra={"player_id": player_id, "start_date": start.isoformat()})
        return saved

    def request_maintenance_extension(self, player_id: str) -> ProgramState:
        with self._locks.hold(player_id):
            state = self._require_state(player_id)
            return self._states.save(request_maintenance_extension(state, now=self._clock()))

    def start_next_ramp_up(self, player_id: str) -> ProgramState:
        """Raises InvalidTransition unless the player is in MAINT1 or MAINT2."""
        with self._locks.hold(player_id):
            state = self._require_state(player_id)
            next_state = start_next_ramp_up(state, self._today(), now=self._clock())
            saved = self._states.save(next_state)

        logger.info(
            "Next ramp-up started",
            extra={"player_id": player_id, "phase": saved.current_phase.value}
        )
        return saved

    def update_settings(self, player_id: str, update: ProgramSettingsUpdate) -> ProgramState:
        with self._locks.hold(player_id):
            existing = self._states.get(player_id)
            state = apply_program_settings(
                existing, update, player_id, self._today(), now=self._clock()
            )
            return self._states.save(state)

    def build_schedule(
        self,
        player_id: str,
        weeks: int,
        age: int,
        start_date: Optional[date] = None,
    ) -> ProgramSchedule:
        """Project the stored state forward. Nothing is persisted."""
        state = self._require_state(player_id)
        config = ProgramConfig.from_state(
            state,
            age=age,
            start_date=start_date or self._today(),
            horizon_weeks=weeks,
        )
        return generate_program_schedule(config, state)
