"""
Stats domain models.

Input rows come from two read-only feeds: one summary per session, and one
row per recorded swing metric. The output is PlayerStats, recomputed on every
request and never persisted.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional, Union


CATEGORY_ORDER: tuple[str, ...] = (
    "overspeed",
    "counterweight",
    "power_mechanics",
    "warm_up",
    "assessments",
)

VELO_CONFIGS: tuple[str, ...] = ("base_bat", "green_sleeve", "full_loaded")
GAME_BAT = "game_bat"

SWING_SIDES: tuple[str, ...] = ("dominant", "non_dominant")

Timestamp = Union[datetime, date, str, None]


@dataclass(frozen=True)
class SessionSummary:
    """One training session joined with its protocol."""
    session_id: str
    player_id: Optional[str] = None
    protocol_id: Optional[str] = None
    started_at: Timestamp = None
    completed_at: Timestamp = None
    status: Optional[str] = None
    protocol_title: Optional[str] = None
    protocol_category: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SessionSummary":
        return cls(
            session_id=row.get("session_id"),
            player_id=row.get("player_id"),
            protocol_id=row.get("protocol_id"),
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            status=row.get("status"),
            protocol_title=row.get("protocol_title"),
            protocol_category=row.get("protocol_category"),
        )


@dataclass(frozen=True)
class MetricRow:
    """
    One recorded metric value from a protocol step.

    value_number is left as stored (number, numeric string or garbage).
    The engine coerces it and drops what it cannot parse.
    """
    entry_id: Optional[str] = None
    session_id: Optional[str] = None
    player_id: Optional[str] = None
    value_number: Any = None
    recorded_at: Timestamp = None
    session_started_at: Timestamp = None
    session_completed_at: Timestamp = None
    session_status: Optional[str] = None
    protocol_id: Optional[str] = None
    protocol_title: Optional[str] = None
    protocol_category: Optional[str] = None
    protocol_step_id: Optional[str] = None
    step_title: Optional[str] = None
    metric_key: Optional[str] = None
    velo_config: Optional[str] = None
    swing_type: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MetricRow":
        return cls(**{name: row.get(name) for name in cls.__dataclass_fields__})


@dataclass(frozen=True)
class GainStat:
    """Change between the first and the latest assessment session."""
    baseline_mph: float
    current_mph: float
    delta_mph: float
    delta_percent: float

    def to_dict(self) -> dict:
        return {
            "baselineMph": self.baseline_mph,
            "currentMph": self.current_mph,
            "deltaMph": self.delta_mph,
            "deltaPercent": self.delta_percent,
        }


@dataclass
class CategoryCount:
    category: str
    completed_count: int = 0

    def to_dict(self) -> dict:
        return {"category": self.category, "completedCount": self.completed_count}


@dataclass
class ProtocolCount:
    protocol_id: str
    protocol_title: str
    category: str
    completed_count: int = 0

    def to_dict(self) -> dict:
        return {
            "protocolId": self.protocol_id,
            "protocolTitle": self.protocol_title,
            "category": self.category,
            "completedCount": self.completed_count,
        }


@dataclass
class FastestDrill:
    drill_name: Optional[str] = None
    best_bat_speed_mph: Optional[float] = None

    def to_dict(self) -> dict:
        return {"drillName": self.drill_name, "bestBatSpeedMph": self.best_bat_speed_mph}


def _empty_config_by_side() -> dict[str, dict[str, Optional[float]]]:
    return {cfg: {side: None for side in SWING_SIDES} for cfg in VELO_CONFIGS}


def _empty_fastest_drills() -> dict[str, FastestDrill]:
    return {cfg: FastestDrill() for cfg in VELO_CONFIGS}


@dataclass
class PlayerStats:
    """
    Aggregated statistics for one player.

    Personal bests and gains are game-bat assessment values. configBySide
    and fastestDrills are velo-bat values from overspeed and counterweight
    training.
    """
    player_id: str
    best_bat_speed_mph: Optional[float] = None
    best_exit_velo_mph: Optional[float] = None
    bat_speed_gain: Optional[GainStat] = None
    exit_velo_gain: Optional[GainStat] = None
    config_by_side: dict[str, dict[str, Optional[float]]] = field(
        default_factory=_empty_config_by_side
    )
    fastest_drills: dict[str, FastestDrill] = field(default_factory=_empty_fastest_drills)
    total_completed: int = 0
    by_category: list[CategoryCount] = field(default_factory=list)
    by_protocol: list[ProtocolCount] = field(default_factory=list)

    def to_dict(self) -> dict:
        """The JSON payload consumers depend on. Key names are fixed."""
        return {
            "playerId": self.player_id,
            "personalBest": {
                "batSpeedMph": self.best_bat_speed_mph,
                "exitVeloMph": self.best_exit_velo_mph,
            },
            "gains": {
                "batSpeed": self.bat_speed_gain.to_dict() if self.bat_speed_gain else None,
                "exitVelo": self.exit_velo_gain.to_dict() if self.exit_velo_gain else None,
            },
            "configBySide": {
                cfg: {side: {"bestBatSpeedMph": best} for side, best in sides.items()}
                for cfg, sides in self.config_by_side.items()
            },
            "fastestDrills": {
                cfg: drill.to_dict() for cfg, drill in self.fastest_drills.items()
            },
            "sessionCounts": {
                "totalCompleted": self.total_completed,
                "byCategory": [count.to_dict() for count in self.by_category],
                "byProtocol": [count.to_dict() for count in self.by_protocol],
            },
        }
