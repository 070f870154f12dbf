# db.py
"""
Catalog client: owns the single live PostgreSQL session and runs the
introspection queries against it, each bounded by a timeout.
"""

import asyncio
import ipaddress
import logging
from itertools import count
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Sequence

import psycopg
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from pydantic_settings import BaseSettings, SettingsConfigDict

from schemagraph.models.catalog import (
    ColumnRow,
    FieldDescriptor,
    ForeignKeyRow,
    QueryResult,
    SchemaInfo,
    TableInfo,
)
from schemagraph.models.connection import (
    ClientStatus,
    ConnectionDescriptor,
    ConnectionStatus,
    ConnectResult,
    DisconnectResult,
    SessionState,
)
from schemagraph.utils.naming import connection_id, display_name

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    # Applied to every catalog call, including runQuery
    QUERY_TIMEOUT_SECONDS: float = 30.0
    # libpq connect_timeout, seconds
    CONNECT_TIMEOUT_SECONDS: int = 10
    # Reconnects are counted for observability only, never blocked
    MAX_RECONNECT_ATTEMPTS: int = 5
    # Appended for non-loopback hosts when the descriptor has no ssl_mode
    DEFAULT_SSL_MODE: str = "require"
    APPLICATION_NAME: str = "schemagraph"
    EXCLUDED_SCHEMAS: List[str] = ["pg_catalog", "information_schema"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class CatalogError(Exception):
    """Base class for every catalog client failure."""
    kind = "catalog"


class CatalogConnectionError(CatalogError):
    """The session could not be established or was lost."""
    kind = "connection"


class NotConnectedError(CatalogConnectionError):
    kind = "not_connected"

    def __init__(self, message: str = "Database not connected"):
        super().__init__(message)


class QueryTimeoutError(CatalogError, TimeoutError):
    """
    No result arrived within the configured bound.
    The connection may still be processing the request; reconnect before reuse.
    """
    kind = "timeout"

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"{operation} timed out after {timeout_seconds:g}s; reconnect before issuing further queries"
        )


class QueryExecutionError(CatalogError):
    """The engine rejected the query. Diagnostic fields are passed through unmodified."""
    kind = "query"

    def __init__(
        self,
        message: str,
        position: Optional[int] = None,
        detail: Optional[str] = None,
        hint: Optional[str] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.position = position
        self.detail = detail
        self.hint = hint
        self.code = code

    @classmethod
    def from_psycopg(cls, exc: psycopg.Error) -> "QueryExecutionError":
        diag = exc.diag
        position = diag.statement_position
        return cls(
            message=diag.message_primary or str(exc),
            position=int(position) if position else None,
            detail=diag.message_detail,
            hint=diag.message_hint,
            code=exc.sqlstate,
        )


# ─────────────────────────────────────────────────────────────────────────────
# Catalog Queries
# ─────────────────────────────────────────────────────────────────────────────

LIST_SCHEMAS_SQL = """
    SELECT
        table_schema AS schema_name,
        COUNT(table_name) AS table_count
    FROM information_schema.tables
    WHERE table_schema::text <> ALL(%(excluded)s::text[])
      AND table_schema::text !~ '^pg_(toast|temp_)'
    GROUP BY table_schema
    ORDER BY table_schema
"""

LIST_TABLES_SQL = """
    SELECT
        t.table_name,
        t.table_type,
        (SELECT count(*)
           FROM information_schema.columns c
          WHERE c.table_schema = t.table_schema
            AND c.table_name = t.table_name) AS column_count,
        obj_description(
            (quote_ident(t.table_schema) || '.' || quote_ident(t.table_name))::regclass,
            'pg_class'
        ) AS description
    FROM information_schema.tables t
    WHERE t.table_schema = %(schema)s
    ORDER BY t.table_name
"""

# One row per column; key participation comes from this table's own
# pg_constraint rows, never from a constraint name match.
GET_COLUMNS_SQL = """
    SELECT
        c.column_name,
        c.data_type,
        c.is_nullable,
        c.column_default,
        c.character_maximum_length,
        c.ordinal_position,
        col_description(rel.oid, c.ordinal_position) AS column_description,
        EXISTS (
            SELECT 1
            FROM pg_catalog.pg_constraint con
            WHERE con.conrelid = rel.oid
              AND con.contype = 'p'
              AND c.ordinal_position::integer = ANY(con.conkey::integer[])
        ) AS is_primary_key,
        EXISTS (
            SELECT 1
            FROM pg_catalog.pg_constraint con
            WHERE con.conrelid = rel.oid
              AND con.contype = 'f'
              AND c.ordinal_position::integer = ANY(con.conkey::integer[])
        ) AS is_foreign_key
    FROM information_schema.columns c
    JOIN pg_catalog.pg_namespace ns
      ON ns.nspname = c.table_schema
    JOIN pg_catalog.pg_class rel
      ON rel.relnamespace = ns.oid
     AND rel.relname = c.table_name
    WHERE c.table_schema = %(schema)s
      AND c.table_name = %(table)s
    ORDER BY c.ordinal_position
"""

# Composite keys are paired column by column through conkey/confkey.
GET_FOREIGN_KEYS_SQL = """
    SELECT
        con.conname AS constraint_name,
        ns.nspname AS table_schema,
        rel.relname AS table_name,
        att.attname AS column_name,
        fns.nspname AS foreign_table_schema,
        frel.relname AS foreign_table_name,
        fatt.attname AS foreign_column_name
    FROM pg_catalog.pg_constraint con
    JOIN pg_catalog.pg_class rel ON rel.oid = con.conrelid
    JOIN pg_catalog.pg_namespace ns ON ns.oid = rel.relnamespace
    JOIN pg_catalog.pg_class frel ON frel.oid = con.confrelid
    JOIN pg_catalog.pg_namespace fns ON fns.oid = frel.relnamespace
    CROSS JOIN LATERAL unnest(con.conkey, con.confkey) WITH ORDINALITY AS k(attnum, fattnum, ord)
    JOIN pg_catalog.pg_attribute att
      ON att.attrelid = con.conrelid AND att.attnum = k.attnum
    JOIN pg_catalog.pg_attribute fatt
      ON fatt.attrelid = con.confrelid AND fatt.attnum = k.fattnum
    WHERE con.contype = 'f'
      AND ns.nspname = %(schema)s
      AND rel.relname = %(table)s
    ORDER BY con.conname, k.ord
"""

VERSION_SQL = "SELECT version() AS version"


# ─────────────────────────────────────────────────────────────────────────────
# Connection Parameters
# ─────────────────────────────────────────────────────────────────────────────

def is_loopback_host(host: str) -> bool:
    """True for localhost, loopback IP literals and unix socket directories."""
    host = host.strip()
    if host.lower() == "localhost" or host.startswith("/"):
        return True
    try:
        return ipaddress.ip_address(host.strip("[]")).is_loopback
    except ValueError:
        return False


def build_conninfo(descriptor: ConnectionDescriptor, config: Optional[Settings] = None) -> str:
    """
    Build the libpq connection string for a descriptor.

    Unless the descriptor already names an ssl mode, remote hosts get
    DEFAULT_SSL_MODE appended so credentials never travel in clear text.
    """
    config = config or settings
    params: Dict[str, Any] = {
        "host": descriptor.host,
        "port": descriptor.port,
        "user": descriptor.username,
        "dbname": descriptor.database,
        "connect_timeout": config.CONNECT_TIMEOUT_SECONDS,
        "application_name": config.APPLICATION_NAME,
    }
    if descriptor.password:
        params["password"] = descriptor.password

    if descriptor.ssl_mode:
        params["sslmode"] = descriptor.ssl_mode
    elif not is_loopback_host(descriptor.host):
        params["sslmode"] = config.DEFAULT_SSL_MODE

    return make_conninfo(**params)


def parse_server_version(engine_version: str) -> Optional[str]:
    """'PostgreSQL 16.2 on x86_64-pc-linux-gnu, ...' -> '16.2'"""
    parts = engine_version.split(" ")
    return parts[1].rstrip(",") if len(parts) > 1 else None


# ─────────────────────────────────────────────────────────────────────────────
# Session
# ─────────────────────────────────────────────────────────────────────────────

class Session:
    """
    Wraps exactly one live connection.

    A session is never reused: reconnecting builds a new Session and discards
    the old one, so calls still running against the old connection fail
    instead of touching the new one.
    """

    _TRANSITIONS = {
        SessionState.DISCONNECTED: {SessionState.CONNECTING},
        SessionState.CONNECTING: {SessionState.CONNECTED, SessionState.ERROR, SessionState.DISCONNECTED},
        SessionState.CONNECTED: {SessionState.ERROR, SessionState.DISCONNECTED},
        SessionState.ERROR: {SessionState.DISCONNECTED},
    }

    def __init__(self, session_id: int, descriptor: ConnectionDescriptor):
        self.id = session_id
        self.descriptor = descriptor
        self.connection: Optional[psycopg.AsyncConnection] = None
        self.state = SessionState.CONNECTING
        self.engine_version: Optional[str] = None
        self.error: Optional[str] = None

    def transition(self, state: SessionState, error: Optional[str] = None) -> None:
        if state not in self._TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid session transition {self.state.value} -> {state.value}")
        self.state = state
        self.error = error

    @property
    def is_open(self) -> bool:
        return (
            self.state is SessionState.CONNECTED
            and self.connection is not None
            and not self.connection.closed
        )

    async def close(self) -> None:
        connection, self.connection = self.connection, None
        if self.state is not SessionState.DISCONNECTED:
            self.transition(SessionState.DISCONNECTED, self.error)
        if connection is not None:
            await connection.close()


class _Outcome(NamedTuple):
    rows: List[Dict[str, Any]]
    row_count: int
    description: Sequence[Any]


StatusListener = Callable[[ConnectionStatus], None]


# ─────────────────────────────────────────────────────────────────────────────
# Catalog Client
# ─────────────────────────────────────────────────────────────────────────────

class CatalogClient:
    """
    Holds at most one Session and runs introspection queries on it.

    connect() is serialized; read queries on an established session may be
    issued concurrently (psycopg serializes them on the connection).
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        connector: Optional[Callable[..., Any]] = None,
    ):
        self.settings = config or settings
        self._connector = connector or psycopg.AsyncConnection.connect
        self._session: Optional[Session] = None
        self._session_ids = count(1)
        self._connect_lock = asyncio.Lock()
        self._listeners: Dict[int, StatusListener] = {}
        self._listener_ids = count(1)
        self._last_error: Optional[str] = None
        self.reconnect_attempts = 0

    # ── observers ──────────────────────────────────────────────────────────

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a connection-status listener; call the returned function to stop delivery."""
        token = next(self._listener_ids)
        self._listeners[token] = listener

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    def _notify(self, session: Session, status: ConnectionStatus) -> None:
        # Only the active session reports
        if session is not self._session:
            return
        for token, listener in list(self._listeners.items()):
            if token not in self._listeners:
                continue
            try:
                listener(status)
            except Exception:
                logger.exception("Connection status listener failed")

    # ── lifecycle ──────────────────────────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        return self._session is not None and self._session.is_open

    def status(self) -> ClientStatus:
        session = self._session
        return ClientStatus(
            connected=self.is_connected,
            state=session.state if session else SessionState.DISCONNECTED,
            error=(session.error if session and session.error else self._last_error),
            engine_version=session.engine_version if session else None,
            display_name=display_name(session.descriptor) if session else None,
            reconnect_attempts=self.reconnect_attempts,
            max_reconnect_attempts=self.settings.MAX_RECONNECT_ATTEMPTS,
        )

    async def connect(self, descriptor: ConnectionDescriptor) -> ConnectResult:
        """
        Open a fresh session, closing any previous one first.

        Connection failures are returned, not raised, so the caller can show
        the raw driver message.
        """
        async with self._connect_lock:
            previous = self._session
            if previous is not None or self._last_error is not None:
                self._count_reconnect()

            self._session = None
            if previous is not None:
                await self._teardown(previous)

            session = Session(next(self._session_ids), descriptor)
            self._session = session

            try:
                session.connection = await self._connector(
                    build_conninfo(descriptor, self.settings),
                    autocommit=True,
                    row_factory=dict_row,
                )
                outcome = await self._bounded(self._run(session, VERSION_SQL, None))
            except (psycopg.Error, CatalogError, OSError, asyncio.TimeoutError) as e:
                error = str(e) or e.__class__.__name__
                if session.state is SessionState.CONNECTING:
                    session.transition(SessionState.ERROR, error)
                self._last_error = error
                self._notify(session, ConnectionStatus(connected=False, error=error))
                self._session = None
                await self._teardown(session)
                logger.warning(
                    "Connection to %s:%s/%s failed: %s",
                    descriptor.host, descriptor.port, descriptor.database, error,
                )
                return ConnectResult(success=False, error=error)

            engine_version = str(outcome.rows[0]["version"]) if outcome.rows else ""
            session.engine_version = engine_version
            session.transition(SessionState.CONNECTED)
            self._last_error = None

            logger.info(
                "Connected to %s:%s/%s (session %d)",
                descriptor.host, descriptor.port, descriptor.database, session.id,
            )
            self._notify(session, ConnectionStatus(connected=True))

            return ConnectResult(
                success=True,
                engine_version=engine_version,
                server_version=parse_server_version(engine_version),
                connection_id=connection_id(descriptor),
                display_name=display_name(descriptor),
            )

    async def disconnect(self) -> DisconnectResult:
        """Close the active session. Succeeds trivially when there is none."""
        async with self._connect_lock:
            self.reconnect_attempts = 0
            self._last_error = None

            session = self._session
            if session is None:
                return DisconnectResult(success=True)

            self._notify(session, ConnectionStatus(connected=False))
            self._session = None
            await self._teardown(session)
            logger.info("Disconnected session %d", session.id)
            return DisconnectResult(success=True)

    def _count_reconnect(self) -> None:
        self.reconnect_attempts += 1
        if self.reconnect_attempts > self.settings.MAX_RECONNECT_ATTEMPTS:
            logger.warning(
                "Reconnect attempt %d exceeds the configured maximum of %d",
                self.reconnect_attempts, self.settings.MAX_RECONNECT_ATTEMPTS,
            )

    async def _teardown(self, session: Session) -> None:
        # Teardown failures are never surfaced to the caller
        try:
            await session.close()
        except Exception:
            logger.debug("Ignoring error while closing session %d", session.id, exc_info=True)

    def _session_lost(self, session: Session, exc: Exception) -> None:
        error = str(exc) or exc.__class__.__name__
        if session.state is SessionState.CONNECTED:
            session.transition(SessionState.ERROR, error)
        self._last_error = error
        logger.warning("Session %d lost: %s", session.id, error)
        self._notify(session, ConnectionStatus(connected=False, error=error))

    # ── query execution ────────────────────────────────────────────────────

    def _require_session(self) -> Session:
        session = self._session
        if session is None or not session.is_open:
            raise NotConnectedError()
        return session

    async def _run(self, session: Session, sql: str, params: Optional[Any]) -> _Outcome:
        connection = session.connection
        if connection is None:
            raise NotConnectedError("Session was closed while the query was running")
        try:
            async with connection.cursor() as cur:
                await cur.execute(sql, params)
                rows = await cur.fetchall() if cur.description else []
                outcome = _Outcome(rows, cur.rowcount, list(cur.description or []))
        except psycopg.Error as exc:
            if session.state is SessionState.CONNECTING:
                raise
            if session is not self._session:
                raise NotConnectedError("Session was replaced while the query was running") from exc
            if connection.closed or connection.broken:
                self._session_lost(session, exc)
                raise CatalogConnectionError(f"Connection lost: {exc}") from exc
            raise QueryExecutionError.from_psycopg(exc) from exc

        if session is not self._session:
            raise NotConnectedError("Session was replaced while the query was running")
        return outcome

    async def _bounded(self, call: Awaitable[_Outcome]) -> _Outcome:
        # QUERY_TIMEOUT_SECONDS <= 0 disables the bound
        timeout = self.settings.QUERY_TIMEOUT_SECONDS
        if not timeout or timeout <= 0:
            return await call
        return await asyncio.wait_for(call, timeout=timeout)

    async def _execute(self, sql: str, params: Optional[Any], *, operation: str) -> _Outcome:
        session = self._require_session()
        timeout = self.settings.QUERY_TIMEOUT_SECONDS
        try:
            return await self._bounded(self._run(session, sql, params))
        except asyncio.TimeoutError as exc:
            logger.warning(
                "%s timed out after %gs on session %d; the connection should be re-established",
                operation, timeout, session.id,
            )
            raise QueryTimeoutError(operation, timeout) from exc

    # ── introspection ──────────────────────────────────────────────────────

    async def list_schemas(self) -> List[SchemaInfo]:
        outcome = await self._execute(
            LIST_SCHEMAS_SQL,
            {"excluded": list(self.settings.EXCLUDED_SCHEMAS)},
            operation="list_schemas",
        )
        return [SchemaInfo.model_validate(row) for row in outcome.rows]

    async def list_tables(self, schema_name: str) -> List[TableInfo]:
        outcome = await self._execute(
            LIST_TABLES_SQL, {"schema": schema_name}, operation="list_tables"
        )
        return [TableInfo.model_validate(row) for row in outcome.rows]

    async def get_columns(self, schema_name: str, table_name: str) -> List[ColumnRow]:
        outcome = await self._execute(
            GET_COLUMNS_SQL,
            {"schema": schema_name, "table": table_name},
            operation="get_columns",
        )
        return [ColumnRow.model_validate(row) for row in outcome.rows]

    async def get_foreign_keys(self, schema_name: str, table_name: str) -> List[ForeignKeyRow]:
        outcome = await self._execute(
            GET_FOREIGN_KEYS_SQL,
            {"schema": schema_name, "table": table_name},
            operation="get_foreign_keys",
        )
        return [ForeignKeyRow.model_validate(row) for row in outcome.rows]

    async def run_query(self, sql: str) -> QueryResult:
        """Generic passthrough; the text is sent as-is, without parameter interpolation."""
        outcome = await self._execute(sql, None, operation="run_query")
        row_count = outcome.row_count if outcome.row_count >= 0 else len(outcome.rows)
        return QueryResult(
            rows=outcome.rows,
            row_count=row_count,
            fields=[
                FieldDescriptor(name=desc.name, data_type=getattr(desc, "type_code", None))
                for desc in outcome.description
            ],
        )


# ─────────────────────────────────────────────────────────────────────────────
# Process-wide Client
# ─────────────────────────────────────────────────────────────────────────────

catalog = CatalogClient()


def get_catalog() -> CatalogClient:
    """Dependency to get the process-wide catalog client."""
    return catalog


async def close_catalog() -> None:
    """Close the active session (call on app shutdown)."""
    await catalog.disconnect()
