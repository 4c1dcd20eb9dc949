"""
Schedule projection.

Projects a player's program state forward into a calendar of training
blocks. This is a deterministic simulation over a copy of the state: the
stored state is never touched and nothing is persisted. The schedule is
regenerated every time it is viewed.

The phase of the input state drives the whole horizon. Counters advance as
blocks are scheduled so that level progressions (overspeed level,
counterweight unlock, mechanics levels) stay consistent across the weeks
being projected.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Callable, Optional

from .models import WEEKDAYS, PhaseId, PhaseType, ProgramState


class AgeBracket(Enum):
    U9 = "U9"
    AGE_10_14 = "10_14"
    AGE_15_PRO = "15_PRO"


class BlockKind(Enum):
    DYNAMIC_WARMUP = "DYNAMIC_WARMUP"
    PREGAME_WARMUP = "PREGAME_WARMUP"
    OVERSPEED = "OVERSPEED"
    COUNTERWEIGHT = "COUNTERWEIGHT"
    PM_GROUND_FORCE = "PM_GROUND_FORCE"
    PM_SEQUENCING = "PM_SEQUENCING"
    PM_BAT_DELIVERY = "PM_BAT_DELIVERY"
    EXIT_VELO = "EXIT_VELO"
    FULL_ASSESSMENT = "FULL_ASSESSMENT"
    QUICK_ASSESSMENT = "QUICK_ASSESSMENT"


# Minutes per block
DURATIONS: dict[BlockKind, float] = {
    BlockKind.DYNAMIC_WARMUP: 5,
    BlockKind.PREGAME_WARMUP: 5,
    BlockKind.OVERSPEED: 10,
    BlockKind.COUNTERWEIGHT: 7.5,
    BlockKind.PM_GROUND_FORCE: 12.5,
    BlockKind.PM_SEQUENCING: 12.5,
    BlockKind.PM_BAT_DELIVERY: 12.5,
    BlockKind.EXIT_VELO: 10,
    BlockKind.FULL_ASSESSMENT: 7.5,
    BlockKind.QUICK_ASSESSMENT: 2.5,
}

# Max overspeed sessions per week, by phase type
OVERSPEED_SESSIONS_PER_WEEK: dict[PhaseType, int] = {
    PhaseType.RAMP: 3,
    PhaseType.PRIMARY: 3,
    PhaseType.MAINTENANCE: 1,
}

MAX_OVERSPEED_SESSIONS_PER_WEEK = 3
COUNTERWEIGHT_UNLOCK_OVERSPEED_SESSIONS = 15
FULL_ASSESSMENT_INTERVAL_DAYS = 14
MIN_SESSION_MINUTES = 15


@dataclass
class ProgramConfig:
    """Weekly configuration the schedule is projected from."""
    age: int
    in_season: bool
    game_days: list[str]
    training_days: list[str]
    desired_sessions_per_week: int
    desired_session_minutes: int
    program_start_date: date
    horizon_weeks: int = 2
    has_space_to_hit_balls: bool = True

    @classmethod
    def from_state(
        cls,
        state: ProgramState,
        age: int,
        start_date: date,
        horizon_weeks: int,
    ) -> "ProgramConfig":
        return cls(
            age=age,
            in_season=state.in_season,
            game_days=list(state.game_days),
            training_days=list(state.training_days),
            desired_sessions_per_week=state.sessions_per_week,
            desired_session_minutes=state.session_minutes,
            program_start_date=start_date,
            horizon_weeks=horizon_weeks,
            has_space_to_hit_balls=state.has_space_to_hit_balls,
        )


@dataclass
class SessionBlock:
    """One protocol slot inside a training day."""
    kind: BlockKind
    minutes: float
    protocol_title: str
    meta: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "minutes": self.minutes,
            "protocolTitle": self.protocol_title,
            "meta": self.meta,
        }


@dataclass
class DayPlan:
    date: date
    weekday: str
    is_game_day: bool
    is_training_day: bool
    is_overspeed_day: bool
    blocks: list[SessionBlock] = field(default_factory=list)

    @property
    def total_minutes(self) -> float:
        return sum(block.minutes for block in self.blocks)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "weekday": self.weekday,
            "isGameDay": self.is_game_day,
            "isTrainingDay": self.is_training_day,
            "isOverspeedDay": self.is_overspeed_day,
            "blocks": [block.to_dict() for block in self.blocks],
        }


@dataclass
class WeekPlan:
    week_index: int
    start_date: date
    days: list[DayPlan] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "weekIndex": self.week_index,
            "startDate": self.start_date.isoformat(),
            "days": [day.to_dict() for day in self.days],
        }


@dataclass
class ProgramSchedule:
    start_date: date
    horizon_weeks: int
    weeks: list[WeekPlan] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "startDate": self.start_date.isoformat(),
            "horizonWeeks": self.horizon_weeks,
            "weeks": [week.to_dict() for week in self.weeks],
        }


# ---------------------------------------------------------------------------
# Age rules
# ---------------------------------------------------------------------------

def get_age_bracket(age: int) -> AgeBracket:
    if age <= 9:
        return AgeBracket.U9
    if age <= 14:
        return AgeBracket.AGE_10_14
    return AgeBracket.AGE_15_PRO


def get_session_minutes(age: int, desired: int) -> int:
    """Clamp the desired session length to the age bracket's cap."""
    bracket = get_age_bracket(age)
    cap = 60
    if bracket is AgeBracket.U9:
        cap = 30
    elif bracket is AgeBracket.AGE_15_PRO:
        cap = 90
    return max(MIN_SESSION_MINUTES, min(desired, cap))


def max_training_days_per_week(age: int, desired_sessions_per_week: int) -> int:
    if get_age_bracket(age) is AgeBracket.U9:
        return min(3, desired_sessions_per_week)
    return min(5, desired_sessions_per_week)


def weekday_key(day: date) -> str:
    # date.weekday() is Monday=0; weekday codes start on Sunday
    return WEEKDAYS[(day.weekday() + 1) % 7]


# ---------------------------------------------------------------------------
# Level pickers
# ---------------------------------------------------------------------------

def _count(mapping: dict[str, int], level: int) -> int:
    return mapping.get(str(level), 0)


def pick_overspeed_level(phase: PhaseId, total_overspeed_sessions: int) -> int:
    if phase is PhaseId.RAMP1:
        return 1

    if phase in (PhaseId.PRIMARY1, PhaseId.MAINT1):
        if total_overspeed_sessions < 10:
            return 1
        if total_overspeed_sessions < 20:
            return 2
        return 3

    if total_overspeed_sessions < 15:
        return 2
    if total_overspeed_sessions < 30:
        return 3
    if total_overspeed_sessions < 45:
        return 4
    return 5


def pick_ground_force_level(state: ProgramState) -> Optional[int]:
    if not state.needs_ground_force:
        return None

    total_os = state.total_overspeed_sessions
    if total_os >= 30 and _count(state.ground_force_sessions_by_level, 2) >= 5:
        return 3
    if total_os >= 15 and _count(state.ground_force_sessions_by_level, 1) >= 5:
        return 2
    if total_os >= 3:
        return 1
    return None


def pick_sequencing_level(state: ProgramState) -> Optional[int]:
    if not state.needs_sequencing:
        return None

    total_os = state.total_overspeed_sessions
    if total_os >= 15 and _count(state.sequencing_sessions_by_level, 1) >= 5:
        return 2
    if total_os >= 3:
        return 1
    return None


def can_do_bat_delivery(state: ProgramState) -> bool:
    if not state.needs_bat_delivery:
        return False
    return (
        state.total_counterweight_sessions >= 5
        and _count(state.sequencing_sessions_by_level, 2) >= 5
    )


def pick_exit_velo_level(state: ProgramState) -> Optional[int]:
    if not state.needs_exit_velo:
        return None

    total_ev = sum(_count(state.exit_velo_sessions_by_level, level) for level in (1, 2, 3))
    if total_ev < 10:
        return 1
    if total_ev < 20:
        return 2
    return 3


# ---------------------------------------------------------------------------
# Day builder
# ---------------------------------------------------------------------------

class _DayBuilder:
    """
    Fills one training day with blocks until its minutes run out.

    Mutates the simulation state as blocks are added, so counts stay
    consistent for the days after it.
    """

    def __init__(self, day: date, session_minutes: float, phase: PhaseId, state: ProgramState) -> None:
        self.day = day
        self.remaining = session_minutes
        self.phase = phase
        self.state = state
        self.blocks: list[SessionBlock] = []

    def fits(self, kind: BlockKind, extra: float = 0) -> bool:
        return self.remaining >= DURATIONS[kind] + extra

    def add(self, kind: BlockKind, title: str, meta: Optional[dict[str, Any]] = None) -> None:
        minutes = DURATIONS[kind]
        self.blocks.append(SessionBlock(kind=kind, minutes=minutes, protocol_title=title, meta=meta))
        self.remaining -= minutes

    def add_full_assessment(self) -> None:
        self.add(BlockKind.FULL_ASSESSMENT, "Assessments Speed Full")
        self.state.last_full_assessment_date = self.day

    def add_quick_assessment(self) -> None:
        self.add(BlockKind.QUICK_ASSESSMENT, "Assessments Bat Speed Quick")
        self.state.last_quick_assessment_date = self.day

    def add_leveled(
        self,
        kind: BlockKind,
        picker: Callable[[ProgramState], Optional[int]],
        title: str,
        counts: dict[str, int],
    ) -> None:
        level = picker(self.state)
        if level and self.fits(kind):
            self.add(kind, f"{title} Level {level}", {"level": level})
            counts[str(level)] = counts.get(str(level), 0) + 1

    def add_mechanics_and_exit_velo(self) -> None:
        s = self.state
        self.add_leveled(
            BlockKind.PM_GROUND_FORCE, pick_ground_force_level,
            "Power Mechanics Ground Force", s.ground_force_sessions_by_level,
        )
        self.add_leveled(
            BlockKind.PM_SEQUENCING, pick_sequencing_level,
            "Power Mechanics Sequencing", s.sequencing_sessions_by_level,
        )
        if can_do_bat_delivery(s) and self.fits(BlockKind.PM_BAT_DELIVERY):
            self.add(BlockKind.PM_BAT_DELIVERY, "Power Mechanics Bat Delivery")
        self.add_leveled(
            BlockKind.EXIT_VELO, pick_exit_velo_level,
            "Exit Velo Application", s.exit_velo_sessions_by_level,
        )

    def maybe_add_closing_assessment(self) -> None:
        last_full = self.state.last_full_assessment_date
        if last_full is not None:
            if (self.day - last_full).days < FULL_ASSESSMENT_INTERVAL_DAYS:
                return
        if self.fits(BlockKind.FULL_ASSESSMENT):
            self.add_full_assessment()
        elif self.fits(BlockKind.QUICK_ASSESSMENT):
            self.add_quick_assessment()

    def build(self, is_game_day: bool, is_overspeed_day: bool) -> list[SessionBlock]:
        if not self.fits(BlockKind.DYNAMIC_WARMUP):
            return self.blocks
        self.add(BlockKind.DYNAMIC_WARMUP, "Warm Up - Dynamic")

        if is_game_day:
            if self.fits(BlockKind.PREGAME_WARMUP):
                self.add(BlockKind.PREGAME_WARMUP, "Warm Up - Pre Game")
            return self.blocks

        s = self.state
        if is_overspeed_day:
            # First ever overspeed session gets a baseline assessment before it
            if s.total_overspeed_sessions == 0:
                if self.fits(BlockKind.FULL_ASSESSMENT, DURATIONS[BlockKind.OVERSPEED]):
                    self.add_full_assessment()
                elif self.fits(BlockKind.QUICK_ASSESSMENT, DURATIONS[BlockKind.OVERSPEED]):
                    self.add_quick_assessment()

            if self.fits(BlockKind.OVERSPEED):
                level = pick_overspeed_level(self.phase, s.total_overspeed_sessions)
                self.add(BlockKind.OVERSPEED, f"Overspeed Level {level}", {"level": level})
                s.total_overspeed_sessions += 1
                s.overspeed_sessions_in_current_phase += 1

            if (
                s.total_overspeed_sessions >= COUNTERWEIGHT_UNLOCK_OVERSPEED_SESSIONS
                and self.fits(BlockKind.COUNTERWEIGHT)
            ):
                self.add(BlockKind.COUNTERWEIGHT, "Counterweight Level 1")
                s.total_counterweight_sessions += 1

        self.add_mechanics_and_exit_velo()
        self.maybe_add_closing_assessment()
        return self.blocks


# ---------------------------------------------------------------------------
# Weekly scheduling
# ---------------------------------------------------------------------------

def _pick_overspeed_offsets(candidates: list[int], target: int) -> list[int]:
    """Earliest days first, avoiding back-to-back days while that still reaches the target."""
    picked: list[int] = []
    for offset in candidates:
        if len(picked) >= target:
            break
        if picked and offset <= picked[-1] + 1:
            continue
        picked.append(offset)

    for offset in candidates:
        if len(picked) >= target:
            break
        if offset not in picked:
            picked.append(offset)

    return picked


def generate_program_schedule(config: ProgramConfig, initial_state: ProgramState) -> ProgramSchedule:
    """
    Project the program forward over config.horizon_weeks weeks.

    - Training days come from config.training_days, capped per week by age.
    - In season, game days only get a dynamic and a pre-game warm-up.
    - Overspeed days: up to 3 per week in Ramp and Primary, 1 in
      Maintenance, placed on the earliest non-game training days.
    """
    session_minutes = get_session_minutes(config.age, config.desired_session_minutes)
    max_training_days = max_training_days_per_week(config.age, config.desired_sessions_per_week)
    phase = initial_state.current_phase
    sim_state = initial_state.clone()

    training_days = set(config.training_days)
    game_days = set(config.game_days) if config.in_season else set()

    schedule = ProgramSchedule(
        start_date=config.program_start_date,
        horizon_weeks=config.horizon_weeks,
    )

    for week_index in range(config.horizon_weeks):
        week_start = config.program_start_date + timedelta(days=week_index * 7)
        dates = [week_start + timedelta(days=offset) for offset in range(7)]

        training_offsets = [
            offset for offset, day in enumerate(dates)
            if weekday_key(day) in training_days
        ][:max(max_training_days, 0)]

        non_game_offsets = [
            offset for offset in training_offsets
            if weekday_key(dates[offset]) not in game_days
        ]

        overspeed_target = min(
            OVERSPEED_SESSIONS_PER_WEEK[phase.phase_type],
            len(non_game_offsets),
            MAX_OVERSPEED_SESSIONS_PER_WEEK,
        )
        overspeed_offsets = _pick_overspeed_offsets(non_game_offsets, overspeed_target)

        week = WeekPlan(week_index=week_index, start_date=week_start)
        for offset, day in enumerate(dates):
            weekday = weekday_key(day)
            is_game_day = weekday in game_days
            is_training_day = offset in training_offsets
            is_overspeed_day = is_training_day and offset in overspeed_offsets

            blocks: list[SessionBlock] = []
            if is_training_day:
                blocks = _DayBuilder(day, session_minutes, phase, sim_state).build(
                    is_game_day=is_game_day,
                    is_overspeed_day=is_overspeed_day,
                )

            week.days.append(DayPlan(
                date=day,
                weekday=weekday,
                is_game_day=is_game_day,
                is_training_day=is_training_day,
                is_overspeed_day=is_overspeed_day,
                blocks=blocks,
            ))

        schedule.weeks.append(week)

    return schedule
