"""
Unit tests for the program service.

The service runs against the real Snowflake repositories over the in-memory
mock, with a fixed clock.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone

import pytest

from src.core.program.locks import PlayerLockRegistry, PlayerLockTimeout
from src.core.program.models import PhaseId, ProgramSettingsUpdate
from src.core.program.service import ProgramService, ProgramStateNotFoundError
from src.core.program.state_machine import InvalidTransition
from src.infrastructure.snowflake.client import MockSnowflakeConnection
from src.infrastructure.snowflake.repositories.program_state import ProgramStateRepository
from src.infrastructure.snowflake.repositories.sessions import SessionRepository


NOW = datetime(2024, 3, 15, 18, 0, tzinfo=timezone.utc)


def session_row(session_id, protocol_id="p-os", status="completed", player_id="player-1", **values):
    row = {
        "id": session_id,
        "player_id": player_id,
        "protocol_id": protocol_id,
        "status": status,
        "started_at": "2024-03-10T17:00:00+00:00",
        "completed_at": "2024-03-10T18:00:00+00:00" if status == "completed" else None,
        "notes": None,
    }
    row.update(values)
    return row


@pytest.fixture
def conn():
    conn = MockSnowflakeConnection()
    conn._seed("protocols", [
        {"id": "p-os", "title": "Overspeed Level 1", "category": "overspeed", "is_assessment": False},
        {"id": "p-fa", "title": "Assessments Speed Full", "category": "assessments", "is_assessment": True},
    ])
    return conn


@pytest.fixture
def states(conn):
    return ProgramStateRepository(conn)


@pytest.fixture
def service(conn, states):
    return ProgramService(
        sessions=SessionRepository(conn),
        states=states,
        locks=PlayerLockRegistry(default_timeout_s=5),
        clock=lambda: NOW,
    )


# ---------------------------------------------------------------------------
# Session completion
# ---------------------------------------------------------------------------

class TestUpdateForCompletedSession:

    def test_first_completion_creates_state(self, service, conn, states):
        conn._seed("sessions", [session_row("s1")])

        state = service.update_for_completed_session("s1")

        assert state.current_phase is PhaseId.RAMP1
        assert state.program_start_date == date(2024, 3, 10)
        assert state.total_sessions_completed == 1
        assert state.total_overspeed_sessions == 1
        assert states.get("player-1").total_overspeed_sessions == 1

    def test_completion_date_from_completed_at(self, service, conn, states):
        conn._seed("sessions", [session_row("s1", protocol_id="p-fa")])
        service.update_for_completed_session("s1")
        assert states.get("player-1").last_full_assessment_date == date(2024, 3, 10)

    def test_completion_date_falls_back_to_started_at(self, service, conn, states):
        conn._seed("sessions", [session_row(
            "s1", protocol_id="p-fa", completed_at=None, started_at="2024-03-08T10:00:00+00:00",
        )])
        service.update_for_completed_session("s1")
        assert states.get("player-1").last_full_assessment_date == date(2024, 3, 8)

    def test_completion_date_falls_back_to_clock(self, service, conn, states):
        conn._seed("sessions", [session_row("s1", protocol_id="p-fa", completed_at=None, started_at=None)])
        service.update_for_completed_session("s1")
        assert states.get("player-1").last_full_assessment_date == NOW.date()

    @pytest.mark.parametrize("row", [
        session_row("s1", status="in_progress"),
        session_row("s1", player_id=None),
        session_row("s1", protocol_id=None),
        session_row("s1", protocol_id="p-deleted"),
    ])
    def test_nothing_to_apply(self, service, conn, states, row):
        conn._seed("sessions", [row])

        assert service.update_for_completed_session("s1") is None
        assert states.get("player-1") is None

    def test_missing_session(self, service):
        assert service.update_for_completed_session("missing") is None

    def test_sixth_overspeed_session_moves_to_primary(self, service, conn, states):
        conn._seed("sessions", [session_row(f"s{i}") for i in range(6)])

        for i in range(6):
            state = service.update_for_completed_session(f"s{i}")

        assert state.current_phase is PhaseId.PRIMARY1
        assert state.overspeed_sessions_in_current_phase == 0
        assert states.get("player-1").current_phase is PhaseId.PRIMARY1

    def test_concurrent_completions_do_not_lose_counts(self, service, conn, states):
        count = 20
        conn._seed("sessions", [session_row(f"s{i}") for i in range(count)])

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(service.update_for_completed_session, [f"s{i}" for i in range(count)]))

        state = states.get("player-1")
        assert state.total_sessions_completed == count
        assert state.total_overspeed_sessions == count

    def test_lock_timeout(self, conn, states):
        locks = PlayerLockRegistry(default_timeout_s=0.05)
        service = ProgramService(
            sessions=SessionRepository(conn),
            states=states,
            locks=locks,
            clock=lambda: NOW,
        )
        conn._seed("sessions", [session_row("s1")])

        held = threading.Event()
        release = threading.Event()

        def hold():
            with locks.hold("player-1"):
                held.set()
                release.wait(5)

        holder = threading.Thread(target=hold)
        holder.start()
        held.wait(5)
        try:
            with pytest.raises(PlayerLockTimeout):
                service.update_for_completed_session("s1")
            with pytest.raises(PlayerLockTimeout):
                service.reset("player-1")
            # Other players are not blocked
            assert service.reset("player-2").player_id == "player-2"
        finally:
            release.set()
            holder.join(5)

        assert states.get("player-1") is None

    def test_released_player_locks_are_dropped(self):
        locks = PlayerLockRegistry()

        with locks.hold("player-1"):
            with locks.hold("player-1"):
                assert "player-1" in locks._locks

        assert "player-1" not in locks._locks
        assert len(locks._locks) == 0


# ---------------------------------------------------------------------------
# Manual operations
# ---------------------------------------------------------------------------

class TestManualOperations:

    def test_get_state_missing(self, service):
        with pytest.raises(ProgramStateNotFoundError):
            service.get_state("player-1")

    def test_reset_defaults_to_today(self, service):
        state = service.reset("player-1")
        assert state.program_start_date == NOW.date()
        assert service.get_state("player-1").current_phase is PhaseId.RAMP1

    def test_reset_discards_progress(self, service, conn):
        conn._seed("sessions", [session_row(f"s{i}") for i in range(6)])
        for i in range(6):
            service.update_for_completed_session(f"s{i}")

        state = service.reset("player-1", start_date=date(2024, 4, 1))

        assert state.current_phase is PhaseId.RAMP1
        assert state.total_sessions_completed == 0
        assert state.program_start_date == date(2024, 4, 1)

    def test_start_next_ramp_up(self, service, states):
        state = service.reset("player-1")
        state.current_phase = PhaseId.MAINT1
        states.save(state)

        next_state = service.start_next_ramp_up("player-1")

        assert next_state.current_phase is PhaseId.RAMP2
        assert next_state.phase_start_date == NOW.date()

    def test_start_next_ramp_up_rejected(self, service):
        service.reset("player-1")

        with pytest.raises(InvalidTransition):
            service.start_next_ramp_up("player-1")

        assert service.get_state("player-1").current_phase is PhaseId.RAMP1

    def test_start_next_ramp_up_without_state(self, service):
        with pytest.raises(ProgramStateNotFoundError):
            service.start_next_ramp_up("player-1")

    def test_maintenance_extension(self, service):
        service.reset("player-1")
        state = service.request_maintenance_extension("player-1")
        assert state.maintenance_extension_requested is True
        assert service.get_state("player-1").maintenance_extension_requested is True

    def test_update_settings_creates_state(self, service):
        state = service.update_settings(
            "player-1", ProgramSettingsUpdate(training_days=["tue", "sat"], in_season=True)
        )

        assert state.training_days == ["tue", "sat"]
        assert state.in_season is True
        assert state.program_start_date == NOW.date()
        assert service.get_state("player-1").training_days == ["tue", "sat"]

    def test_build_schedule_does_not_persist(self, service, states):
        service.reset("player-1")
        before = states.get("player-1").to_row()

        schedule = service.build_schedule("player-1", weeks=3, age=14)

        assert schedule.start_date == NOW.date()
        assert len(schedule.weeks) == 3
        assert states.get("player-1").to_row() == before

    def test_build_schedule_without_state(self, service):
        with pytest.raises(ProgramStateNotFoundError):
            service.build_schedule("player-1", weeks=2, age=14)
