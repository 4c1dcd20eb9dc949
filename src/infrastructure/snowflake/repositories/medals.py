"""
Snowflake repository for medals.

Covers three tables: medal definitions (medals), earned medals
(player_medals) and the profile fields eligibility depends on (profiles).
"""

import json
import logging
from typing import Any, Optional
from uuid import uuid4

from src.core.medals.models import AgeGroup, Medal, PlayerMedal, PlayerProfile

from .coercion import parse_date, parse_datetime, parse_variant_json
from .sessions import SnowflakeConnection


logger = logging.getLogger(__name__)

_MEDAL_COLUMNS = (
    "id", "category", "badge_name", "age_group", "badge_tier", "metric_code",
    "threshold_value", "threshold_text", "threshold_type", "file_name",
    "image_path", "is_active", "sort_order", "description",
)

_PLAYER_MEDAL_COLUMNS = ("id", "player_id", "medal_id", "earned_at", "source", "metadata")

_PROFILE_COLUMNS = ("id", "role", "birthdate", "softball", "profile_complete")

_MEDAL_ORDER = "category, sort_order, badge_tier, badge_name"


class MedalRepository:
    """
    Repository for medal definitions and awards.

    Earned medals are append-only: a medal is awarded to a player once and
    never removed here.
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    # -----------------------------------------------------------------------
    # Profiles
    # -----------------------------------------------------------------------

    def get_profile(self, player_id: str) -> Optional[PlayerProfile]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {", ".join(_PROFILE_COLUMNS)}
                FROM profiles
                WHERE id = %s
                LIMIT 1
            """, (player_id,))

            row = cursor.fetchone()
            if not row:
                return None
            values = dict(zip(_PROFILE_COLUMNS, row))
            return PlayerProfile(
                id=str(values["id"]),
                role=values["role"],
                birthdate=parse_date(values["birthdate"]),
                softball=bool(values["softball"]),
                profile_complete=bool(values["profile_complete"]),
            )

        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Medal definitions
    # -----------------------------------------------------------------------

    def list_active_medals(self, age_group: Optional[AgeGroup]) -> list[Medal]:
        """
        Active medals for one age group.

        Without a known age group every non-softball medal is returned.
        """
        if age_group is None:
            condition, params = "age_group <> %s", (AgeGroup.SOFTBALL.value,)
        else:
            condition, params = "age_group = %s", (age_group.value,)

        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {", ".join(_MEDAL_COLUMNS)}
                FROM medals
                WHERE is_active = TRUE AND {condition}
                ORDER BY {_MEDAL_ORDER}
            """, params)

            return [Medal.from_row(dict(zip(_MEDAL_COLUMNS, row))) for row in cursor.fetchall()]

        finally:
            cursor.close()

    def upsert_medal(self, medal: Medal) -> None:
        """Insert a definition, or overwrite the one with the same id."""
        values = [getattr(medal, column) for column in _MEDAL_COLUMNS]
        cursor = self._conn.cursor()

        try:
            cursor.execute("SELECT id FROM medals WHERE id = %s LIMIT 1", (medal.id,))
            if cursor.fetchone():
                assignments = ", ".join(f"{column} = %s" for column in _MEDAL_COLUMNS[1:])
                cursor.execute(f"""
                    UPDATE medals
                    SET {assignments}
                    WHERE id = %s
                """, tuple(values[1:]) + (medal.id,))
            else:
                cursor.execute(f"""
                    INSERT INTO medals ({", ".join(_MEDAL_COLUMNS)})
                    VALUES ({", ".join("%s" for _ in _MEDAL_COLUMNS)})
                """, tuple(values))
            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to upsert medal",
                extra={"medal_id": medal.id, "error": str(e)}
            )
            raise
        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Earned medals
    # -----------------------------------------------------------------------

    def list_earned_medal_ids(self, player_id: str) -> set[str]:
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                SELECT medal_id
                FROM player_medals
                WHERE player_id = %s
            """, (player_id,))
            return {str(row[0]) for row in cursor.fetchall()}

        finally:
            cursor.close()

    def list_player_medals(self, player_id: str) -> list[PlayerMedal]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {", ".join(_PLAYER_MEDAL_COLUMNS)}
                FROM player_medals
                WHERE player_id = %s
                ORDER BY earned_at
            """, (player_id,))

            return [
                self._build_player_medal(dict(zip(_PLAYER_MEDAL_COLUMNS, row)))
                for row in cursor.fetchall()
            ]

        finally:
            cursor.close()

    def insert_player_medals(self, rows: list[PlayerMedal]) -> list[PlayerMedal]:
        """Insert earned medals, assigning ids. Returns the rows as stored."""
        inserted = []
        cursor = self._conn.cursor()

        try:
            for row in rows:
                row_id = row.id or str(uuid4())
                cursor.execute(f"""
                    INSERT INTO player_medals ({", ".join(_PLAYER_MEDAL_COLUMNS)})
                    SELECT %s, %s, %s, %s, %s, PARSE_JSON(%s)
                """, (
                    row_id, row.player_id, row.medal_id,
                    row.earned_at.isoformat(), row.source,
                    json.dumps(row.metadata) if row.metadata is not None else None,
                ))
                inserted.append(PlayerMedal(
                    id=row_id,
                    player_id=row.player_id,
                    medal_id=row.medal_id,
                    earned_at=row.earned_at,
                    source=row.source,
                    metadata=row.metadata,
                ))
            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to insert player medals",
                extra={"count": len(rows), "error": str(e)}
            )
            raise
        finally:
            cursor.close()

        return inserted

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _build_player_medal(self, values: dict[str, Any]) -> PlayerMedal:
        metadata = parse_variant_json(values["metadata"])
        return PlayerMedal(
            id=str(values["id"]) if values["id"] is not None else None,
            player_id=str(values["player_id"]),
            medal_id=str(values["medal_id"]),
            earned_at=parse_datetime(values["earned_at"]),
            source=values["source"],
            metadata=metadata if isinstance(metadata, dict) else None,
        )
