"""
Unit tests for schedule projection.

2024-01-01 is a Monday, so week offsets line up with weekday codes:
offset 0 is "mon" and offset 6 is "sun".
"""

from datetime import date, datetime, timezone

import pytest

from src.core.program.models import PhaseId
from src.core.program.schedule import (
    AgeBracket,
    BlockKind,
    ProgramConfig,
    can_do_bat_delivery,
    generate_program_schedule,
    get_age_bracket,
    get_session_minutes,
    max_training_days_per_week,
    pick_exit_velo_level,
    pick_ground_force_level,
    pick_overspeed_level,
    pick_sequencing_level,
    weekday_key,
)
from src.core.program.state_machine import build_default_program_state


MONDAY = date(2024, 1, 1)
NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_state(**overrides):
    state = build_default_program_state("player-1", MONDAY, now=NOW)
    for key, value in overrides.items():
        setattr(state, key, value)
    return state


def make_config(**overrides):
    values = dict(
        age=14,
        in_season=False,
        game_days=[],
        training_days=["mon", "wed", "fri"],
        desired_sessions_per_week=3,
        desired_session_minutes=45,
        program_start_date=MONDAY,
        horizon_weeks=1,
    )
    values.update(overrides)
    return ProgramConfig(**values)


def kinds(day):
    return [block.kind for block in day.blocks]


# ---------------------------------------------------------------------------
# Age rules and level pickers
# ---------------------------------------------------------------------------

class TestAgeRules:
    """Tests for the per-age caps."""

    @pytest.mark.parametrize("age,bracket", [
        (7, AgeBracket.U9),
        (9, AgeBracket.U9),
        (10, AgeBracket.AGE_10_14),
        (14, AgeBracket.AGE_10_14),
        (15, AgeBracket.AGE_15_PRO),
        (30, AgeBracket.AGE_15_PRO),
    ])
    def test_age_bracket(self, age, bracket):
        assert get_age_bracket(age) is bracket

    @pytest.mark.parametrize("age,desired,expected", [
        (8, 45, 30),
        (14, 90, 60),
        (16, 120, 90),
        (16, 10, 15),
        (12, 45, 45),
    ])
    def test_session_minutes(self, age, desired, expected):
        assert get_session_minutes(age, desired) == expected

    def test_max_training_days(self):
        assert max_training_days_per_week(8, 5) == 3
        assert max_training_days_per_week(14, 7) == 5
        assert max_training_days_per_week(14, 2) == 2

    def test_weekday_key_starts_on_sunday(self):
        assert weekday_key(MONDAY) == "mon"
        assert weekday_key(date(2024, 1, 7)) == "sun"
        assert weekday_key(date(2024, 1, 6)) == "sat"


class TestLevelPickers:
    """Tests for progression through protocol levels."""

    def test_ramp1_is_always_level_one(self):
        assert pick_overspeed_level(PhaseId.RAMP1, 100) == 1

    @pytest.mark.parametrize("total,level", [(0, 1), (9, 1), (10, 2), (19, 2), (20, 3)])
    def test_first_cycle_overspeed(self, total, level):
        assert pick_overspeed_level(PhaseId.PRIMARY1, total) == level
        assert pick_overspeed_level(PhaseId.MAINT1, total) == level

    @pytest.mark.parametrize("total,level", [(0, 2), (15, 3), (30, 4), (44, 4), (45, 5)])
    def test_later_cycle_overspeed(self, total, level):
        assert pick_overspeed_level(PhaseId.RAMP2, total) == level
        assert pick_overspeed_level(PhaseId.PRIMARY3, total) == level

    def test_ground_force_progression(self):
        assert pick_ground_force_level(make_state(needs_ground_force=False, total_overspeed_sessions=50)) is None
        assert pick_ground_force_level(make_state(needs_ground_force=True, total_overspeed_sessions=2)) is None
        assert pick_ground_force_level(make_state(needs_ground_force=True, total_overspeed_sessions=3)) == 1
        assert pick_ground_force_level(make_state(
            needs_ground_force=True,
            total_overspeed_sessions=15,
            ground_force_sessions_by_level={"1": 5},
        )) == 2
        assert pick_ground_force_level(make_state(
            needs_ground_force=True,
            total_overspeed_sessions=30,
            ground_force_sessions_by_level={"1": 5, "2": 5},
        )) == 3

    def test_sequencing_progression(self):
        assert pick_sequencing_level(make_state(needs_sequencing=True, total_overspeed_sessions=3)) == 1
        assert pick_sequencing_level(make_state(
            needs_sequencing=True,
            total_overspeed_sessions=15,
            sequencing_sessions_by_level={"1": 5},
        )) == 2

    def test_bat_delivery_unlock(self):
        assert not can_do_bat_delivery(make_state(needs_bat_delivery=True))
        assert can_do_bat_delivery(make_state(
            needs_bat_delivery=True,
            total_counterweight_sessions=5,
            sequencing_sessions_by_level={"2": 5},
        ))

    def test_exit_velo_progression(self):
        assert pick_exit_velo_level(make_state(needs_exit_velo=False)) is None
        assert pick_exit_velo_level(make_state(needs_exit_velo=True)) == 1
        assert pick_exit_velo_level(make_state(
            needs_exit_velo=True, exit_velo_sessions_by_level={"1": 10},
        )) == 2
        assert pick_exit_velo_level(make_state(
            needs_exit_velo=True, exit_velo_sessions_by_level={"1": 10, "2": 10},
        )) == 3


# ---------------------------------------------------------------------------
# Schedule generation
# ---------------------------------------------------------------------------

class TestGenerateProgramSchedule:
    """Tests for the projected calendar."""

    def test_week_layout(self):
        schedule = generate_program_schedule(make_config(horizon_weeks=2), make_state())

        assert len(schedule.weeks) == 2
        assert schedule.weeks[1].start_date == date(2024, 1, 8)
        week = schedule.weeks[0]
        assert [day.weekday for day in week.days] == ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
        assert [day.is_training_day for day in week.days] == [True, False, True, False, True, False, False]
        assert all(day.blocks == [] for day in week.days if not day.is_training_day)

    def test_first_overspeed_day_gets_baseline_assessment(self):
        week = generate_program_schedule(make_config(), make_state()).weeks[0]
        monday, wednesday = week.days[0], week.days[2]

        assert kinds(monday) == [
            BlockKind.DYNAMIC_WARMUP,
            BlockKind.FULL_ASSESSMENT,
            BlockKind.OVERSPEED,
        ]
        assert monday.blocks[2].protocol_title == "Overspeed Level 1"
        assert monday.blocks[2].meta == {"level": 1}
        # Full assessment was just done, nothing else is due
        assert kinds(wednesday) == [BlockKind.DYNAMIC_WARMUP, BlockKind.OVERSPEED]

    def test_quick_baseline_when_full_does_not_fit(self):
        config = make_config(desired_session_minutes=20)
        monday = generate_program_schedule(config, make_state()).weeks[0].days[0]

        assert kinds(monday)[:3] == [
            BlockKind.DYNAMIC_WARMUP,
            BlockKind.QUICK_ASSESSMENT,
            BlockKind.OVERSPEED,
        ]
        assert monday.total_minutes <= 20

    def test_day_never_exceeds_session_minutes(self):
        state = make_state(
            total_overspeed_sessions=40,
            needs_ground_force=True,
            needs_sequencing=True,
            needs_exit_velo=True,
        )
        schedule = generate_program_schedule(make_config(horizon_weeks=3), state)

        for week in schedule.weeks:
            for day in week.days:
                assert day.total_minutes <= 45

    def test_overspeed_days_avoid_back_to_back(self):
        config = make_config(
            training_days=["mon", "tue", "wed", "thu", "fri"],
            desired_sessions_per_week=5,
        )
        week = generate_program_schedule(config, make_state()).weeks[0]

        assert [day.weekday for day in week.days if day.is_overspeed_day] == ["mon", "wed", "fri"]

    def test_back_to_back_allowed_when_needed(self):
        """U9 players train at most three days, here Mon-Wed, all of them overspeed days."""
        config = make_config(
            age=8,
            training_days=["mon", "tue", "wed", "thu", "fri"],
            desired_sessions_per_week=5,
        )
        week = generate_program_schedule(config, make_state()).weeks[0]

        assert [day.weekday for day in week.days if day.is_training_day] == ["mon", "tue", "wed"]
        assert [day.weekday for day in week.days if day.is_overspeed_day] == ["mon", "tue", "wed"]

    def test_maintenance_has_one_overspeed_day(self):
        state = make_state(current_phase=PhaseId.MAINT1, total_overspeed_sessions=20)
        week = generate_program_schedule(make_config(), state).weeks[0]

        overspeed_days = [day for day in week.days if day.is_overspeed_day]
        assert len(overspeed_days) == 1
        monday = overspeed_days[0]
        assert kinds(monday) == [
            BlockKind.DYNAMIC_WARMUP,
            BlockKind.OVERSPEED,
            BlockKind.COUNTERWEIGHT,
            BlockKind.FULL_ASSESSMENT,
        ]
        assert monday.blocks[1].protocol_title == "Overspeed Level 3"

    def test_game_days_in_season(self):
        config = make_config(in_season=True, game_days=["wed"])
        week = generate_program_schedule(config, make_state()).weeks[0]
        wednesday = week.days[2]

        assert wednesday.is_game_day
        assert not wednesday.is_overspeed_day
        assert kinds(wednesday) == [BlockKind.DYNAMIC_WARMUP, BlockKind.PREGAME_WARMUP]
        assert [day.weekday for day in week.days if day.is_overspeed_day] == ["mon", "fri"]

    def test_game_days_ignored_out_of_season(self):
        config = make_config(in_season=False, game_days=["wed"])
        wednesday = generate_program_schedule(config, make_state()).weeks[0].days[2]

        assert not wednesday.is_game_day
        assert wednesday.is_overspeed_day

    def test_mechanics_and_exit_velo_blocks(self):
        state = make_state(
            current_phase=PhaseId.MAINT1,
            total_overspeed_sessions=3,
            needs_ground_force=True,
            needs_exit_velo=True,
            last_full_assessment_date=MONDAY,
        )
        week = generate_program_schedule(make_config(), state).weeks[0]
        wednesday = week.days[2]

        assert kinds(wednesday) == [
            BlockKind.DYNAMIC_WARMUP,
            BlockKind.PM_GROUND_FORCE,
            BlockKind.EXIT_VELO,
        ]
        assert wednesday.blocks[1].protocol_title == "Power Mechanics Ground Force Level 1"
        assert wednesday.blocks[2].protocol_title == "Exit Velo Application Level 1"
        assert wednesday.blocks[2].meta == {"level": 1}

    def test_input_state_is_not_modified(self):
        state = make_state()
        before = state.to_row()

        schedule = generate_program_schedule(make_config(horizon_weeks=4), state)

        assert state.to_row() == before
        assert len(schedule.weeks) == 4

    def test_phase_is_fixed_over_the_horizon(self):
        """Twelve projected overspeed sessions in RAMP1 still schedule level 1."""
        schedule = generate_program_schedule(make_config(horizon_weeks=4), make_state())
        titles = {
            block.protocol_title
            for week in schedule.weeks
            for day in week.days
            for block in day.blocks
            if block.kind is BlockKind.OVERSPEED
        }
        assert titles == {"Overspeed Level 1"}

    def test_to_dict_shape(self):
        payload = generate_program_schedule(make_config(), make_state()).to_dict()

        assert payload["startDate"] == "2024-01-01"
        assert payload["horizonWeeks"] == 1
        day = payload["weeks"][0]["days"][0]
        assert day["date"] == "2024-01-01"
        assert day["weekday"] == "mon"
        assert day["isOverspeedDay"] is True
        assert day["blocks"][0] == {
            "kind": "DYNAMIC_WARMUP",
            "minutes": 5,
            "protocolTitle": "Warm Up - Dynamic",
            "meta": None,
        }


def test_config_from_state():
    state = make_state(in_season=True, game_days=["sat"], session_minutes=60)
    config = ProgramConfig.from_state(state, age=12, start_date=MONDAY, horizon_weeks=3)

    assert config.age == 12
    assert config.in_season is True
    assert config.game_days == ["sat"]
    assert config.desired_session_minutes == 60
    assert config.horizon_weeks == 3
