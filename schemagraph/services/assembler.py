# assembler.py
"""
Schema assembly: walks the catalog schema by schema and table by table and
merges the results into one SchemaModel.

Per-unit failures (a schema whose tables cannot be listed, a table whose
columns cannot be read) are skipped and recorded as diagnostics. Only a failed
connect, a failed schema listing or a lost connection abort the pass.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from schemagraph.db import (
    CatalogClient,
    CatalogConnectionError,
    NotConnectedError,
    QueryExecutionError,
    QueryTimeoutError,
)
from schemagraph.models.catalog import ColumnRow, ForeignKeyRow, SchemaInfo
from schemagraph.models.connection import ConnectionDescriptor
from schemagraph.models.schema import (
    AssemblyIssue,
    Column,
    ColumnReference,
    SchemaModel,
    Table,
)

logger = logging.getLogger(__name__)

# Failures recovered per unit; anything else propagates
RECOVERABLE_ERRORS = (QueryExecutionError, QueryTimeoutError)


# ─────────────────────────────────────────────────────────────────────────────
# Row Conversion
# ─────────────────────────────────────────────────────────────────────────────

def column_from_row(row: ColumnRow) -> Column:
    return Column(
        name=row.column_name,
        data_type=row.data_type,
        is_nullable=row.is_nullable.upper() == "YES",
        is_primary_key=row.is_primary_key,
        is_foreign_key=row.is_foreign_key,
        default=row.column_default,
        max_length=row.character_maximum_length,
        description=row.column_description,
    )


def attach_references(
    table: Table,
    foreign_keys: List[ForeignKeyRow],
) -> List[AssemblyIssue]:
    """
    Attach each foreign key to its column in `table`, in row order, so the last
    row for a column wins. Returns an issue for every key whose column is not
    part of the table.
    """
    by_name = {column.name: column for column in table.columns}
    issues: List[AssemblyIssue] = []

    for fk in foreign_keys:
        column = by_name.get(fk.column_name)
        if column is None:
            message = (
                f"Foreign key {fk.constraint_name} names column {fk.column_name} "
                f"which is not a column of {table.key}"
            )
            logger.warning(message)
            issues.append(AssemblyIssue(
                kind="unmatched_foreign_key",
                schema_name=table.schema_name,
                table=table.name,
                column=fk.column_name,
                message=message,
            ))
            continue

        column.references = ColumnReference(
            table=fk.foreign_table_name,
            column=fk.foreign_column_name,
            schema_name=fk.foreign_table_schema,
        )
        column.is_foreign_key = True

    return issues


# ─────────────────────────────────────────────────────────────────────────────
# Assembly
# ─────────────────────────────────────────────────────────────────────────────

async def _assemble_table(
    client: CatalogClient,
    schema_name: str,
    table_name: str,
    description: Optional[str],
) -> Tuple[Optional[Table], List[AssemblyIssue]]:
    columns_result, fks_result = await asyncio.gather(
        client.get_columns(schema_name, table_name),
        client.get_foreign_keys(schema_name, table_name),
        return_exceptions=True,
    )

    # Connection-level failures end the pass
    for result in (columns_result, fks_result):
        if isinstance(result, BaseException) and not isinstance(result, RECOVERABLE_ERRORS):
            raise result

    if isinstance(columns_result, BaseException):
        message = f"Columns of {schema_name}.{table_name} unavailable: {columns_result}"
        logger.warning("Skipping table: %s", message)
        return None, [AssemblyIssue(
            kind="table_skipped",
            schema_name=schema_name,
            table=table_name,
            message=message,
        )]

    table = Table(
        name=table_name,
        schema_name=schema_name,
        columns=[column_from_row(row) for row in columns_result],
        description=description,
    )

    if isinstance(fks_result, BaseException):
        message = f"Foreign keys of {table.key} unavailable: {fks_result}"
        logger.warning("Keeping table without relationships: %s", message)
        return table, [AssemblyIssue(
            kind="foreign_keys_unavailable",
            schema_name=schema_name,
            table=table_name,
            message=message,
        )]

    return table, attach_references(table, fks_result)


async def _assemble_schema(
    client: CatalogClient,
    schema: SchemaInfo,
    model: SchemaModel,
) -> None:
    try:
        tables = await client.list_tables(schema.schema_name)
    except RECOVERABLE_ERRORS as e:
        message = f"Tables of schema {schema.schema_name} unavailable: {e}"
        logger.warning("Skipping schema: %s", message)
        model.diagnostics.append(AssemblyIssue(
            kind="schema_skipped",
            schema_name=schema.schema_name,
            message=message,
        ))
        return

    for info in tables:
        table, issues = await _assemble_table(
            client, schema.schema_name, info.table_name, info.description
        )
        model.diagnostics.extend(issues)
        if table is not None:
            model.tables.append(table)


async def assemble_schema(
    client: CatalogClient,
    descriptor: Optional[ConnectionDescriptor] = None,
) -> SchemaModel:
    """
    Run one introspection pass and return the SchemaModel.

    With a descriptor the client (re)connects first; without one it must
    already hold an open session. Tables appear in catalog order regardless
    of the order in which their fetches complete.
    """
    if descriptor is not None:
        result = await client.connect(descriptor)
        if not result.success:
            raise CatalogConnectionError(result.error or "Connection failed")
    elif not client.is_connected:
        raise NotConnectedError()

    schemas = await client.list_schemas()

    model = SchemaModel()
    for schema in schemas:
        await _assemble_schema(client, schema, model)

    logger.info(
        "Assembled %d tables from %d schemas (%d diagnostics)",
        len(model.tables), len(schemas), len(model.diagnostics),
    )
    return model
