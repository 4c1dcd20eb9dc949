"""
Snowflake repository for training sessions.

This module implements the repository pattern for session data access.
The repository:
1. Translates between domain models and database representations
2. Encapsulates all SQL queries
3. Provides a clean interface for the application layer

Sessions and protocols are owned by the session-logging part of the
product. The program only reads them, apart from marking a session
completed. The two stats feeds are read-only views.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from src.core.program.models import ProtocolInfo, SessionRecord
from src.core.stats.models import MetricRow, SessionSummary

from .coercion import parse_datetime


logger = logging.getLogger(__name__)


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Using a protocol means tests can provide a mock without
    importing the actual snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_base64: Optional[str] = None
    database: str = "VELO"
    schema: str = "PROGRAM"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


class SessionNotFoundError(Exception):
    """Raised when a requested session doesn't exist."""
    pass


_SESSION_COLUMNS = (
    "id", "player_id", "protocol_id", "status", "started_at", "completed_at", "notes",
)

_PROTOCOL_COLUMNS = ("id", "title", "category", "is_assessment")

_SUMMARY_COLUMNS = (
    "session_id", "player_id", "protocol_id", "started_at", "completed_at",
    "status", "protocol_title", "protocol_category",
)

_METRIC_COLUMNS = tuple(MetricRow.__dataclass_fields__)


class SessionRepository:
    """
    Repository for training sessions, their protocols and the stats feeds.

    Each method corresponds to a use case the application needs:
    - get_session / get_protocol: inputs of the program state update
    - mark_completed: the session completion action
    - list_session_summaries / list_swing_metrics: inputs of the stats engine
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {", ".join(_SESSION_COLUMNS)}
                FROM sessions
                WHERE id = %s
                LIMIT 1
            """, (session_id,))

            row = cursor.fetchone()
            if not row:
                return None
            return self._build_session(dict(zip(_SESSION_COLUMNS, row)))

        finally:
            cursor.close()

    def get_protocol(self, protocol_id: str) -> Optional[ProtocolInfo]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {", ".join(_PROTOCOL_COLUMNS)}
                FROM protocols
                WHERE id = %s
                LIMIT 1
            """, (protocol_id,))

            row = cursor.fetchone()
            if not row:
                return None
            values = dict(zip(_PROTOCOL_COLUMNS, row))
            return ProtocolInfo(
                id=str(values["id"]),
                title=values["title"],
                category=values["category"],
                is_assessment=bool(values["is_assessment"]),
            )

        finally:
            cursor.close()

    def mark_completed(
        self,
        session_id: str,
        completed_at: datetime,
        notes: Optional[str] = None,
    ) -> SessionRecord:
        """
        Set status to completed and stamp completed_at.

        Notes are only overwritten when supplied.
        """
        cursor = self._conn.cursor()

        try:
            if notes is not None:
                cursor.execute("""
                    UPDATE sessions
                    SET status = %s, completed_at = %s, notes = %s
                    WHERE id = %s
                """, ("completed", completed_at, notes, session_id))
            else:
                cursor.execute("""
                    UPDATE sessions
                    SET status = %s, completed_at = %s
                    WHERE id = %s
                """, ("completed", completed_at, session_id))

            if cursor.rowcount == 0:
                raise SessionNotFoundError(f"Session {session_id} not found")

            self._conn.commit()

        except SessionNotFoundError:
            raise
        except Exception as e:
            logger.error(
                "Failed to mark session completed",
                extra={"session_id": session_id, "error": str(e)}
            )
            raise
        finally:
            cursor.close()

        session = self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    def list_session_summaries(self, player_id: str) -> list[SessionSummary]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {", ".join(_SUMMARY_COLUMNS)}
                FROM session_protocol_summaries
                WHERE player_id = %s
            """, (player_id,))

            return [
                SessionSummary.from_row(dict(zip(_SUMMARY_COLUMNS, row)))
                for row in cursor.fetchall()
            ]

        finally:
            cursor.close()

    def list_swing_metrics(self, player_id: str) -> list[MetricRow]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {", ".join(_METRIC_COLUMNS)}
                FROM player_swing_metrics
                WHERE player_id = %s
            """, (player_id,))

            return [
                MetricRow.from_row(dict(zip(_METRIC_COLUMNS, row)))
                for row in cursor.fetchall()
            ]

        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _build_session(self, values: dict) -> SessionRecord:
        return SessionRecord(
            id=str(values["id"]),
            player_id=values["player_id"],
            protocol_id=values["protocol_id"],
            status=values["status"],
            started_at=parse_datetime(values["started_at"]),
            completed_at=parse_datetime(values["completed_at"]),
            notes=values["notes"],
        )
