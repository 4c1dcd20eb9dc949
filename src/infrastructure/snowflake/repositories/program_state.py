"""
Snowflake repository for player program state.

One row per player in player_program_state. Reads are forgiving: rows
written by older clients or edited by hand may hold nulls, strings where
numbers belong or maps with junk values, and all of that is coerced to safe
defaults instead of failing the request. Writes always store the full
payload.
"""

import json
import logging
from typing import Any, Optional

from src.core.program.models import (
    DEFAULT_SESSION_MINUTES,
    DEFAULT_SESSIONS_PER_WEEK,
    DEFAULT_TRAINING_DAYS,
    PhaseId,
    ProgramState,
    utcnow,
)
from src.core.stats.normalize import to_number

from .coercion import as_count, parse_date, parse_datetime, parse_variant_json
from .sessions import SnowflakeConnection


logger = logging.getLogger(__name__)

TABLE = "player_program_state"

_COLUMNS = (
    "player_id",
    "current_phase",
    "phase_start_date",
    "program_start_date",
    "in_season",
    "training_days",
    "game_days",
    "sessions_per_week",
    "session_minutes",
    "has_space_to_hit_balls",
    "total_overspeed_sessions",
    "overspeed_sessions_in_current_phase",
    "total_counterweight_sessions",
    "ground_force_sessions_by_level",
    "sequencing_sessions_by_level",
    "exit_velo_sessions_by_level",
    "last_full_assessment_date",
    "last_quick_assessment_date",
    "needs_ground_force",
    "needs_sequencing",
    "needs_exit_velo",
    "needs_bat_delivery",
    "total_sessions_completed",
    "maintenance_extension_requested",
    "next_ramp_up_requested",
    "created_at",
    "updated_at",
)

# VARIANT columns, written through PARSE_JSON
_JSON_COLUMNS = frozenset({
    "training_days",
    "game_days",
    "ground_force_sessions_by_level",
    "sequencing_sessions_by_level",
    "exit_velo_sessions_by_level",
})


def _placeholder(column: str) -> str:
    return "PARSE_JSON(%s)" if column in _JSON_COLUMNS else "%s"


def _bool_or(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _day_list(value: Any, default: tuple[str, ...]) -> list[str]:
    days = parse_variant_json(value)
    if not isinstance(days, list):
        return list(default)
    return [str(day) for day in days]


def _level_map(value: Any) -> dict[str, int]:
    """Keep positive, finite counts (numeric strings included), keyed by the level as a string."""
    raw = parse_variant_json(value)
    if not isinstance(raw, dict):
        return {}
    levels: dict[str, int] = {}
    for key, count in raw.items():
        number = to_number(count)
        if number is not None and int(number) > 0:
            levels[str(key)] = int(number)
    return levels


def _phase(value: Any) -> PhaseId:
    try:
        return PhaseId(str(value).upper())
    except ValueError:
        logger.warning("Unknown program phase, defaulting to RAMP1", extra={"phase": value})
        return PhaseId.RAMP1


def row_to_state(row: dict[str, Any]) -> ProgramState:
    """Build a ProgramState from a row, coercing malformed values to defaults."""
    now = utcnow()
    program_start = parse_date(row.get("program_start_date"))
    phase_start = parse_date(row.get("phase_start_date")) or program_start or now.date()

    return ProgramState(
        player_id=str(row["player_id"]),
        current_phase=_phase(row.get("current_phase")),
        phase_start_date=phase_start,
        program_start_date=program_start,
        in_season=_bool_or(row.get("in_season"), False),
        training_days=_day_list(row.get("training_days"), DEFAULT_TRAINING_DAYS),
        game_days=_day_list(row.get("game_days"), ()),
        sessions_per_week=as_count(row.get("sessions_per_week"), DEFAULT_SESSIONS_PER_WEEK),
        session_minutes=as_count(row.get("session_minutes"), DEFAULT_SESSION_MINUTES),
        has_space_to_hit_balls=_bool_or(row.get("has_space_to_hit_balls"), True),
        total_overspeed_sessions=as_count(row.get("total_overspeed_sessions")),
        overspeed_sessions_in_current_phase=as_count(row.get("overspeed_sessions_in_current_phase")),
        total_counterweight_sessions=as_count(row.get("total_counterweight_sessions")),
        ground_force_sessions_by_level=_level_map(row.get("ground_force_sessions_by_level")),
        sequencing_sessions_by_level=_level_map(row.get("sequencing_sessions_by_level")),
        exit_velo_sessions_by_level=_level_map(row.get("exit_velo_sessions_by_level")),
        last_full_assessment_date=parse_date(row.get("last_full_assessment_date")),
        last_quick_assessment_date=parse_date(row.get("last_quick_assessment_date")),
        needs_ground_force=_bool_or(row.get("needs_ground_force"), False),
        needs_sequencing=_bool_or(row.get("needs_sequencing"), False),
        needs_exit_velo=_bool_or(row.get("needs_exit_velo"), False),
        needs_bat_delivery=_bool_or(row.get("needs_bat_delivery"), False),
        total_sessions_completed=as_count(row.get("total_sessions_completed")),
        maintenance_extension_requested=_bool_or(row.get("maintenance_extension_requested"), False),
        next_ramp_up_requested=_bool_or(row.get("next_ramp_up_requested"), False),
        created_at=parse_datetime(row.get("created_at")) or now,
        updated_at=parse_datetime(row.get("updated_at")) or now,
    )


def state_to_params(state: ProgramState) -> list[Any]:
    """Column values in _COLUMNS order, JSON columns serialised."""
    row = state.to_row()
    return [
        json.dumps(row[column]) if column in _JSON_COLUMNS else row[column]
        for column in _COLUMNS
    ]


class ProgramStateRepository:
    """
    Repository for the one-row-per-player program state.

    save() is a read-then-write. Callers serialise concurrent writers for
    the same player (the program service holds the player lock around it).
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def get(self, player_id: str) -> Optional[ProgramState]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {", ".join(_COLUMNS)}
                FROM {TABLE}
                WHERE player_id = %s
                LIMIT 1
            """, (player_id,))

            row = cursor.fetchone()
            if not row:
                return None
            return row_to_state(dict(zip(_COLUMNS, row)))

        finally:
            cursor.close()

    def insert(self, state: ProgramState) -> ProgramState:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                INSERT INTO {TABLE} ({", ".join(_COLUMNS)})
                SELECT {", ".join(_placeholder(column) for column in _COLUMNS)}
            """, tuple(state_to_params(state)))
            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to insert program state",
                extra={"player_id": state.player_id, "error": str(e)}
            )
            raise
        finally:
            cursor.close()

        return state

    def update(self, state: ProgramState) -> ProgramState:
        """Overwrite every column of the player's row."""
        columns = [column for column in _COLUMNS if column != "player_id"]
        params = [
            value for column, value in zip(_COLUMNS, state_to_params(state))
            if column != "player_id"
        ]
        assignments = ", ".join(f"{column} = {_placeholder(column)}" for column in columns)

        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                UPDATE {TABLE}
                SET {assignments}
                WHERE player_id = %s
            """, tuple(params) + (state.player_id,))
            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to update program state",
                extra={"player_id": state.player_id, "error": str(e)}
            )
            raise
        finally:
            cursor.close()

        return state

    def save(self, state: ProgramState) -> ProgramState:
        """Insert or update, depending on whether the player already has a row."""
        if self._exists(state.player_id):
            return self.update(state)
        return self.insert(state)

    def delete(self, player_id: str) -> bool:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                DELETE FROM {TABLE}
                WHERE player_id = %s
            """, (player_id,))
            deleted = cursor.rowcount > 0
            self._conn.commit()
            return deleted

        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _exists(self, player_id: str) -> bool:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT player_id
                FROM {TABLE}
                WHERE player_id = %s
                LIMIT 1
            """, (player_id,))
            return cursor.fetchone() is not None

        finally:
            cursor.close()
