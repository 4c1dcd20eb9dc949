"""
Snowflake database connection management.

Provides connection factory and context manager for Snowflake operations.
Includes mock mode with in-memory storage for local development and tests.

Using the repository pattern means most code never touches this module
directly - it goes through the repositories, which handle the translation
between domain models and database rows.
"""

import base64
import logging
import re
from contextlib import contextmanager
from threading import RLock
from typing import Any, Generator, Optional

from .repositories.sessions import SnowflakeConfig, SnowflakeConnection

logger = logging.getLogger(__name__)


class SnowflakeConnectionError(Exception):
    """Raised when Snowflake connection fails."""
    pass


def _der_private_key(pem_bytes: bytes) -> bytes:
    """
    Convert a PEM private key into the DER bytes snowflake-connector expects.
    """
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    private_key = serialization.load_pem_private_key(
        pem_bytes,
        password=None,  # No password on the key
        backend=default_backend()
    )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


def _load_private_key(config: SnowflakeConfig) -> Optional[bytes]:
    """Key-pair auth key from a file path, else from base64 text, else None."""
    if config.private_key_path:
        with open(config.private_key_path, 'rb') as key_file:
            return _der_private_key(key_file.read())
    if config.private_key_base64:
        return _der_private_key(base64.b64decode(config.private_key_base64))
    return None


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide Snowflake connection with automatic cleanup.

    Supports both password and key-pair authentication:
    - If a private key (path or base64) is set, uses key-pair auth
    - Otherwise, uses password auth

    Usage:
        with get_snowflake_connection(config) as conn:
            repo = ProgramStateRepository(conn)
    """
    import snowflake.connector

    conn = None
    try:
        connect_params = {
            'account': config.account,
            'user': config.user,
            'database': config.database,
            'schema': config.schema,
            'warehouse': config.warehouse,
            'role': config.role,
            'client_session_keep_alive': True,
        }

        private_key = _load_private_key(config)
        if private_key is not None:
            logger.info("Using key-pair authentication for Snowflake")
            connect_params['private_key'] = private_key
        elif config.password:
            logger.info("Using password authentication for Snowflake")
            connect_params['password'] = config.password
        else:
            raise SnowflakeConnectionError(
                "Either password or a private key must be provided"
            )

        conn = snowflake.connector.connect(**connect_params)

        logger.debug(
            "Established Snowflake connection",
            extra={
                "account": config.account,
                "database": config.database,
                "schema": config.schema,
            }
        )

    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account}
        )
        raise SnowflakeConnectionError(f"Database connection failed: {e}")

    try:
        yield conn
    finally:
        try:
            conn.close()
            logger.debug("Closed Snowflake connection")
        except Exception as e:
            logger.warning(
                "Error closing Snowflake connection",
                extra={"error": str(e)}
            )


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

_SELECT = re.compile(
    r"^SELECT\s+(?P<columns>.+?)\s+FROM\s+(?P<table>\w+)"
    r"(?:\s+WHERE\s+(?P<where>.+?))?"
    r"(?:\s+ORDER\s+BY\s+(?P<order>.+?))?"
    r"(?:\s+LIMIT\s+(?P<limit>\d+))?$",
    re.IGNORECASE | re.DOTALL,
)
_INSERT = re.compile(
    r"^INSERT\s+INTO\s+(?P<table>\w+)\s*\((?P<columns>[^)]*)\)\s*"
    r"(?:SELECT\s+(?P<select>.+)|VALUES\s*\((?P<values>.+)\))$",
    re.IGNORECASE | re.DOTALL,
)
_UPDATE = re.compile(
    r"^UPDATE\s+(?P<table>\w+)\s+SET\s+(?P<assignments>.+?)(?:\s+WHERE\s+(?P<where>.+))?$",
    re.IGNORECASE | re.DOTALL,
)
_DELETE = re.compile(
    r"^DELETE\s+FROM\s+(?P<table>\w+)(?:\s+WHERE\s+(?P<where>.+))?$",
    re.IGNORECASE | re.DOTALL,
)
_CONDITION = re.compile(
    r"^(?P<column>\w+)\s*(?:(?P<op>=|<>|!=)\s*(?P<value>%s|TRUE|FALSE|'[^']*')"
    r"|IS\s+(?P<negated>NOT\s+)?NULL)$",
    re.IGNORECASE,
)
_AND = re.compile(r"\s+AND\s+", re.IGNORECASE)


class _Params:
    """Hands out %s parameters in order."""

    def __init__(self, params: Optional[tuple]) -> None:
        self._values = list(params or ())
        self._index = 0

    def next(self) -> Any:
        value = self._values[self._index]
        self._index += 1
        return value


def _literal(token: str, params: _Params) -> Any:
    token = token.strip()
    upper = token.upper()
    if token == "%s":
        return params.next()
    if upper.startswith("PARSE_JSON(") and token.endswith(")"):
        # Stored as written; the real connector also returns VARIANT as JSON text
        return _literal(token[len("PARSE_JSON("):-1], params)
    if upper == "TRUE":
        return True
    if upper == "FALSE":
        return False
    if upper == "NULL":
        return None
    if token.startswith("'") and token.endswith("'"):
        return token[1:-1]
    raise ValueError(f"Mock cursor cannot evaluate expression: {token}")


def _split_top_level(text: str) -> list[str]:
    """Split on commas that are not inside parentheses."""
    parts, depth, current = [], 0, []
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    if current:
        parts.append("".join(current).strip())
    return parts


def _build_predicate(where: Optional[str], params: _Params):
    if not where:
        return lambda row: True

    checks = []
    for clause in _AND.split(where.strip()):
        match = _CONDITION.match(clause.strip())
        if not match:
            raise ValueError(f"Mock cursor cannot evaluate condition: {clause}")
        column = match.group("column").lower()
        if match.group("op"):
            expected = _literal(match.group("value"), params)
            negate = match.group("op") in ("<>", "!=")
            checks.append((column, expected, negate, False))
        else:
            checks.append((column, None, bool(match.group("negated")), True))

    def predicate(row: dict) -> bool:
        for column, expected, negate, is_null_check in checks:
            value = row.get(column)
            if is_null_check:
                matched = value is None
            else:
                # SQL comparisons with NULL are never true
                if value is None:
                    return False
                matched = value == expected
            if matched == negate:
                return False
        return True

    return predicate


class MockSnowflakeCursor:
    """
    Mock Snowflake cursor for testing.

    Implements just enough of the cursor interface, and just enough SQL, for
    the queries the repositories issue: single-table SELECT with equality
    filters, ORDER BY and LIMIT; INSERT ... SELECT/VALUES; UPDATE ... SET;
    DELETE. Rows come back as tuples in the selected column order.
    """

    def __init__(self, connection: "MockSnowflakeConnection") -> None:
        self._conn = connection
        self._results: list[tuple] = []
        self._rowcount: int = 0
        self.description: Optional[list[tuple]] = None

    def execute(self, query: str, params: Optional[tuple] = None) -> 'MockSnowflakeCursor':
        """Execute a query against mock storage."""
        logger.debug(
            "Mock cursor execute",
            extra={"query": query[:100], "params": params}
        )

        sql = " ".join(query.split())
        keyword = sql.split(" ", 1)[0].upper()
        bound = _Params(params)

        with self._conn._lock:
            if keyword == "SELECT":
                self._handle_select(sql, bound)
            elif keyword == "INSERT":
                self._handle_insert(sql, bound)
            elif keyword == "UPDATE":
                self._handle_update(sql, bound)
            elif keyword == "DELETE":
                self._handle_delete(sql, bound)
            else:
                raise ValueError(f"Mock cursor does not support: {keyword}")

        return self

    def _handle_select(self, sql: str, params: _Params) -> None:
        match = _SELECT.match(sql)
        if not match:
            raise ValueError(f"Mock cursor cannot parse SELECT: {sql[:100]}")

        rows = self._conn._table(match.group("table"))
        predicate = _build_predicate(match.group("where"), params)
        selected = [row for row in rows if predicate(row)]

        if match.group("order"):
            # Sort by the last key first so earlier keys take precedence
            for term in reversed(_split_top_level(match.group("order"))):
                parts = term.split()
                column = parts[0].lower()
                descending = len(parts) > 1 and parts[1].upper() == "DESC"
                present = [row for row in selected if row.get(column) is not None]
                missing = [row for row in selected if row.get(column) is None]
                present.sort(key=lambda row: row[column], reverse=descending)
                selected = present + missing

        if match.group("limit"):
            selected = selected[:int(match.group("limit"))]

        columns_text = match.group("columns").strip()
        if columns_text == "*":
            columns = list(selected[0].keys()) if selected else []
        else:
            columns = [column.strip().lower() for column in columns_text.split(",")]

        self.description = [(column.upper(),) for column in columns]
        self._results = [tuple(row.get(column) for column in columns) for row in selected]
        self._rowcount = len(self._results)

    def _handle_insert(self, sql: str, params: _Params) -> None:
        match = _INSERT.match(sql)
        if not match:
            raise ValueError(f"Mock cursor cannot parse INSERT: {sql[:100]}")

        columns = [column.strip().lower() for column in match.group("columns").split(",")]
        expressions = _split_top_level(match.group("select") or match.group("values"))
        if len(columns) != len(expressions):
            raise ValueError("Mock cursor INSERT column/value count mismatch")

        row = {column: _literal(expr, params) for column, expr in zip(columns, expressions)}
        self._conn._table(match.group("table")).append(row)
        self._results = []
        self._rowcount = 1

    def _handle_update(self, sql: str, params: _Params) -> None:
        match = _UPDATE.match(sql)
        if not match:
            raise ValueError(f"Mock cursor cannot parse UPDATE: {sql[:100]}")

        # SET parameters come before WHERE parameters
        changes = {}
        for assignment in _split_top_level(match.group("assignments")):
            column, expr = assignment.split("=", 1)
            changes[column.strip().lower()] = _literal(expr, params)
        predicate = _build_predicate(match.group("where"), params)

        count = 0
        for row in self._conn._table(match.group("table")):
            if predicate(row):
                row.update(changes)
                count += 1
        self._results = []
        self._rowcount = count

    def _handle_delete(self, sql: str, params: _Params) -> None:
        match = _DELETE.match(sql)
        if not match:
            raise ValueError(f"Mock cursor cannot parse DELETE: {sql[:100]}")

        table = self._conn._table(match.group("table"))
        predicate = _build_predicate(match.group("where"), params)
        kept = [row for row in table if not predicate(row)]
        self._rowcount = len(table) - len(kept)
        table[:] = kept
        self._results = []

    def fetchone(self):
        """Fetch one row from results."""
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        """Fetch all rows from results."""
        return list(self._results)

    def close(self) -> None:
        """Close cursor (no-op for mock)."""
        pass

    @property
    def rowcount(self) -> int:
        """Return number of rows affected."""
        return self._rowcount


class MockSnowflakeConnection:
    """
    Mock Snowflake connection for local development.

    Stores rows in memory as {table_name: [row_dict, ...]}. Views the
    repositories read from (session_protocol_summaries, player_swing_metrics)
    are plain tables here, seeded directly by tests.

    Not suitable for production, but perfect for:
    - Local development
    - Unit tests
    - CI/CD environments
    """

    def __init__(self) -> None:
        self._storage: dict[str, list[dict]] = {}
        self._lock = RLock()

        logger.info("Initialized mock Snowflake connection (in-memory)")

    def _table(self, name: str) -> list[dict]:
        return self._storage.setdefault(name.lower(), [])

    def cursor(self) -> MockSnowflakeCursor:
        """Create a mock cursor."""
        return MockSnowflakeCursor(self)

    def commit(self) -> None:
        """Commit transaction (no-op for mock, always auto-commits)."""
        logger.debug("Mock connection commit")

    def rollback(self) -> None:
        """Rollback transaction (no-op for mock)."""
        logger.debug("Mock connection rollback")

    def close(self) -> None:
        """Close connection (no-op for mock)."""
        logger.debug("Mock connection close")

    # Helper methods for testing
    def _seed(self, table: str, rows: list[dict]) -> None:
        """Add rows to mock storage (for test setup)."""
        with self._lock:
            self._table(table).extend(
                {key.lower(): value for key, value in row.items()} for row in rows
            )

    def _rows(self, table: str) -> list[dict]:
        """Copy of a table's rows (for test assertions)."""
        with self._lock:
            return [dict(row) for row in self._table(table)]

    def _clear(self) -> None:
        """Clear all mock storage (for test cleanup)."""
        with self._lock:
            self._storage.clear()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

@contextmanager
def create_snowflake_connection(
    config: Optional[SnowflakeConfig] = None,
    mock_mode: bool = False,
) -> Generator[SnowflakeConnection, None, None]:
    """
    Create Snowflake connection based on configuration.

    Args:
        config: Snowflake configuration (required if not mock_mode)
        mock_mode: If True, return a fresh in-memory connection

    Yields:
        SnowflakeConnection implementation (real or mock)
    """
    if mock_mode:
        conn = MockSnowflakeConnection()
        try:
            yield conn
        finally:
            conn.close()
    else:
        if config is None:
            raise ValueError("config is required when not in mock mode")

        with get_snowflake_connection(config) as conn:
            yield conn
