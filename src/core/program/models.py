"""
Domain models for the training program.

These models represent a player's position in the bat-speed program and the
raw records the program reacts to. Like the rest of core, they have no
knowledge of how rows are stored or transmitted.
"""

import copy
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional


WEEKDAYS: tuple[str, ...] = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
DEFAULT_TRAINING_DAYS: tuple[str, ...] = ("mon", "wed", "fri")
DEFAULT_SESSIONS_PER_WEEK = 3
DEFAULT_SESSION_MINUTES = 45


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PhaseType(Enum):
    """The three kinds of phase every cycle moves through."""
    RAMP = "Ramp"
    PRIMARY = "Primary"
    MAINTENANCE = "Maintenance"


class PhaseId(Enum):
    """
    Position within the three-cycle program.

    Order matters: automatic transitions only ever move forward along
    RAMP -> PRIMARY -> MAINT inside a cycle.
    """
    RAMP1 = "RAMP1"
    PRIMARY1 = "PRIMARY1"
    MAINT1 = "MAINT1"
    RAMP2 = "RAMP2"
    PRIMARY2 = "PRIMARY2"
    MAINT2 = "MAINT2"
    RAMP3 = "RAMP3"
    PRIMARY3 = "PRIMARY3"
    MAINT3 = "MAINT3"

    @property
    def cycle(self) -> int:
        return int(self.value[-1])

    @property
    def phase_type(self) -> PhaseType:
        if self.value.startswith("RAMP"):
            return PhaseType.RAMP
        if self.value.startswith("PRIMARY"):
            return PhaseType.PRIMARY
        return PhaseType.MAINTENANCE

    @property
    def is_ramp(self) -> bool:
        return self.phase_type is PhaseType.RAMP

    @property
    def is_primary(self) -> bool:
        return self.phase_type is PhaseType.PRIMARY

    @property
    def ordinal(self) -> int:
        """Index along the full program, 0 for RAMP1 through 8 for MAINT3."""
        return list(PhaseId).index(self)


@dataclass
class ProgramState:
    """
    A player's program state.

    One per player. Mutated only by the phase state machine (one step per
    completed session) and by the manual transition/settings operations.
    Per-level maps are keyed by the level as a string ("1".."5") and never
    hold non-positive counts.
    """
    player_id: str
    current_phase: PhaseId = PhaseId.RAMP1
    phase_start_date: date = field(default_factory=date.today)
    program_start_date: Optional[date] = None

    # Configuration (owned by the settings operation)
    in_season: bool = False
    training_days: list[str] = field(default_factory=lambda: list(DEFAULT_TRAINING_DAYS))
    game_days: list[str] = field(default_factory=list)
    sessions_per_week: int = DEFAULT_SESSIONS_PER_WEEK
    session_minutes: int = DEFAULT_SESSION_MINUTES
    has_space_to_hit_balls: bool = True

    # Session counts
    total_overspeed_sessions: int = 0
    overspeed_sessions_in_current_phase: int = 0
    total_counterweight_sessions: int = 0

    ground_force_sessions_by_level: dict[str, int] = field(default_factory=dict)
    sequencing_sessions_by_level: dict[str, int] = field(default_factory=dict)
    exit_velo_sessions_by_level: dict[str, int] = field(default_factory=dict)

    # Assessment timing
    last_full_assessment_date: Optional[date] = None
    last_quick_assessment_date: Optional[date] = None

    # Flags computed from stats
    needs_ground_force: bool = False
    needs_sequencing: bool = False
    needs_exit_velo: bool = False
    needs_bat_delivery: bool = False

    total_sessions_completed: int = 0
    maintenance_extension_requested: bool = False
    next_ramp_up_requested: bool = False

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def clone(self) -> "ProgramState":
        """Deep copy, so list and dict fields are never shared."""
        return copy.deepcopy(self)

    def to_row(self) -> dict:
        """
        The persisted (and API) shape: snake_case keys, ISO dates.

        This is the payload consumers of the program-state endpoints see.
        """
        return {
            "player_id": self.player_id,
            "current_phase": self.current_phase.value,
            "phase_start_date": self.phase_start_date.isoformat(),
            "program_start_date": (
                self.program_start_date.isoformat() if self.program_start_date else None
            ),
            "in_season": self.in_season,
            "training_days": list(self.training_days),
            "game_days": list(self.game_days),
            "sessions_per_week": self.sessions_per_week,
            "session_minutes": self.session_minutes,
            "has_space_to_hit_balls": self.has_space_to_hit_balls,
            "total_overspeed_sessions": self.total_overspeed_sessions,
            "overspeed_sessions_in_current_phase": self.overspeed_sessions_in_current_phase,
            "total_counterweight_sessions": self.total_counterweight_sessions,
            "ground_force_sessions_by_level": dict(self.ground_force_sessions_by_level),
            "sequencing_sessions_by_level": dict(self.sequencing_sessions_by_level),
            "exit_velo_sessions_by_level": dict(self.exit_velo_sessions_by_level),
            "last_full_assessment_date": (
                self.last_full_assessment_date.isoformat()
                if self.last_full_assessment_date else None
            ),
            "last_quick_assessment_date": (
                self.last_quick_assessment_date.isoformat()
                if self.last_quick_assessment_date else None
            ),
            "needs_ground_force": self.needs_ground_force,
            "needs_sequencing": self.needs_sequencing,
            "needs_exit_velo": self.needs_exit_velo,
            "needs_bat_delivery": self.needs_bat_delivery,
            "total_sessions_completed": self.total_sessions_completed,
            "maintenance_extension_requested": self.maintenance_extension_requested,
            "next_ramp_up_requested": self.next_ramp_up_requested,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class ProtocolInfo:
    """The part of a protocol record the program cares about."""
    id: str
    title: Optional[str] = None
    category: Optional[str] = None
    is_assessment: bool = False


@dataclass(frozen=True)
class SessionRecord:
    """A training session as stored by the session collaborator."""
    id: str
    player_id: Optional[str]
    protocol_id: Optional[str]
    status: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "player_id": self.player_id,
            "protocol_id": self.protocol_id,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "notes": self.notes,
        }


@dataclass
class ProgramSettingsUpdate:
    """
    A partial update of the configuration fields.

    None means "not supplied". Values are validated by the state machine's
    settings operation, not here, because malformed client input must fall
    back to defaults instead of failing.
    """
    in_season: Optional[object] = None
    training_days: Optional[object] = None
    game_days: Optional[object] = None
    sessions_per_week: Optional[object] = None
    session_minutes: Optional[object] = None
    has_space_to_hit_balls: Optional[object] = None
    program_start_date: Optional[date] = None
