"""
Shared fixtures: an in-memory stand-in for psycopg's AsyncConnection and a
scripted catalog that answers the introspection queries.
"""

import inspect
from typing import Any, Callable, Dict, List, NamedTuple, Optional

import psycopg
import pytest

from schemagraph import db
from schemagraph.db import CatalogClient, Settings

PG_VERSION = "PostgreSQL 16.2 on x86_64-pc-linux-gnu, compiled by gcc (GCC) 12.2.0, 64-bit"


class FakeColumnDescription(NamedTuple):
    name: str
    type_code: int


class FakeCursor:
    def __init__(self, connection: "FakeConnection"):
        self.connection = connection
        self.description: Optional[List[FakeColumnDescription]] = None
        self.rowcount = -1
        self._rows: List[Dict[str, Any]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def execute(self, sql: str, params: Any = None):
        rows = await self.connection.respond(sql, params)
        if rows is None:
            self.description = None
            self.rowcount = 0
            self._rows = []
            return
        self._rows = list(rows)
        self.rowcount = len(self._rows)
        names = list(self._rows[0].keys()) if self._rows else []
        self.description = [FakeColumnDescription(name, 25) for name in names]

    async def fetchall(self):
        return self._rows


class FakeConnection:
    """Answers version() itself and hands every other query to `handler`."""

    def __init__(self, handler: Optional[Callable[..., Any]] = None):
        self.handler = handler
        self.closed = False
        self.broken = False
        self.executed: List[tuple] = []

    def cursor(self):
        return FakeCursor(self)

    async def respond(self, sql: str, params: Any):
        self.executed.append((sql, params))
        if self.closed:
            raise psycopg.OperationalError("the connection is closed")
        if "version()" in sql:
            return [{"version": PG_VERSION}]
        if self.handler is None:
            return []
        result = self.handler(sql, params)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def close(self):
        self.closed = True


class FakeConnector:
    """Replacement for psycopg.AsyncConnection.connect."""

    def __init__(self, handler: Optional[Callable[..., Any]] = None):
        self.handler = handler
        self.connections: List[FakeConnection] = []
        self.conninfos: List[str] = []
        self.kwargs: Dict[str, Any] = {}
        self.fail: Optional[Exception] = None

    async def __call__(self, conninfo: str, **kwargs):
        self.conninfos.append(conninfo)
        self.kwargs = kwargs
        if self.fail is not None:
            raise self.fail
        connection = FakeConnection(self.handler)
        self.connections.append(connection)
        return connection


class ScriptedCatalog:
    """
    Callable query handler serving a fixed catalog.

    `tables` maps schema -> table -> {"columns": [...], "fks": [...]} using the
    row shapes of the catalog queries. `failures` maps (operation, key) to the
    exception to raise, where key is the schema name or "schema.table".
    """

    def __init__(self, tables: Dict[str, Dict[str, Dict[str, list]]]):
        self.tables = tables
        self.failures: Dict[tuple, Exception] = {}

    def __call__(self, sql: str, params: Any):
        if sql == db.LIST_SCHEMAS_SQL:
            return [
                {"schema_name": schema, "table_count": len(tables)}
                for schema, tables in sorted(self.tables.items())
            ]
        if sql == db.LIST_TABLES_SQL:
            schema = params["schema"]
            self._maybe_fail("list_tables", schema)
            return [
                {"table_name": name, "column_count": len(definition["columns"]), "description": None, "table_type": "BASE TABLE"}
                for name, definition in sorted(self.tables.get(schema, {}).items())
            ]
        if sql == db.GET_COLUMNS_SQL:
            key = f"{params['schema']}.{params['table']}"
            self._maybe_fail("get_columns", key)
            return self.tables[params["schema"]][params["table"]]["columns"]
        if sql == db.GET_FOREIGN_KEYS_SQL:
            key = f"{params['schema']}.{params['table']}"
            self._maybe_fail("get_foreign_keys", key)
            return self.tables[params["schema"]][params["table"]].get("fks", [])
        raise AssertionError(f"unexpected query: {sql}")

    def _maybe_fail(self, operation: str, key: str):
        exc = self.failures.get((operation, key))
        if exc is not None:
            raise exc


def column_row(name: str, data_type: str = "integer", pk: bool = False, fk: bool = False, nullable: bool = True) -> dict:
    return {
        "column_name": name,
        "data_type": data_type,
        "is_nullable": "YES" if nullable else "NO",
        "column_default": None,
        "character_maximum_length": None,
        "column_description": None,
        "ordinal_position": None,
        "is_primary_key": pk,
        "is_foreign_key": fk,
    }


def fk_row(column: str, foreign_table: str, foreign_column: str, schema: str = "public", table: str = "", constraint: str = "") -> dict:
    return {
        "constraint_name": constraint or f"{table or 't'}_{column}_fkey",
        "table_schema": schema,
        "table_name": table,
        "column_name": column,
        "foreign_table_schema": schema,
        "foreign_table_name": foreign_table,
        "foreign_column_name": foreign_column,
    }


def shop_catalog() -> ScriptedCatalog:
    """public.customers(id pk, name) and public.orders(id pk, customer_id fk -> customers.id)."""
    return ScriptedCatalog({
        "public": {
            "customers": {
                "columns": [
                    column_row("id", pk=True, nullable=False),
                    column_row("name", "text"),
                ],
            },
            "orders": {
                "columns": [
                    column_row("id", pk=True, nullable=False),
                    column_row("customer_id", fk=True),
                ],
                "fks": [fk_row("customer_id", "customers", "id", table="orders")],
            },
        },
    })


@pytest.fixture
def settings():
    return Settings(QUERY_TIMEOUT_SECONDS=2.0, MAX_RECONNECT_ATTEMPTS=5)


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def client(settings, connector):
    return CatalogClient(config=settings, connector=connector)
