# catalog.py
"""
Catalog browsing endpoints. Each one is a thin wrapper over a single catalog
client call; errors are mapped to HTTP statuses by the app's exception handlers.
"""

from fastapi import APIRouter, Depends

from schemagraph.db import CatalogClient, get_catalog
from schemagraph.endpoints import RESP_ERRORS
from schemagraph.models.catalog import (
    ColumnListResponse,
    RelationListResponse,
    SchemaListResponse,
    TableListResponse,
)
from schemagraph.utils import validate_identifier

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get(
    "/schemas",
    response_model=SchemaListResponse,
    responses=RESP_ERRORS,
    summary="List schemas",
    description="Non-system schemas with their table counts, ordered by name."
)
async def list_schemas(client: CatalogClient = Depends(get_catalog)) -> SchemaListResponse:
    return SchemaListResponse(schemas=await client.list_schemas())


@router.get(
    "/schemas/{schema}/tables",
    response_model=TableListResponse,
    responses=RESP_ERRORS,
    summary="List tables of a schema",
)
async def list_tables(
    schema: str,
    client: CatalogClient = Depends(get_catalog),
) -> TableListResponse:
    validate_identifier(schema, "schema")
    return TableListResponse(tables=await client.list_tables(schema))


@router.get(
    "/schemas/{schema}/tables/{table}/columns",
    response_model=ColumnListResponse,
    responses=RESP_ERRORS,
    summary="Get table structure",
    description="Columns in ordinal order, flagged with primary and foreign key participation."
)
async def get_columns(
    schema: str,
    table: str,
    client: CatalogClient = Depends(get_catalog),
) -> ColumnListResponse:
    validate_identifier(schema, "schema")
    validate_identifier(table, "table")
    return ColumnListResponse(structure=await client.get_columns(schema, table))


@router.get(
    "/schemas/{schema}/tables/{table}/relations",
    response_model=RelationListResponse,
    responses=RESP_ERRORS,
    summary="Get table foreign keys",
)
async def get_relations(
    schema: str,
    table: str,
    client: CatalogClient = Depends(get_catalog),
) -> RelationListResponse:
    validate_identifier(schema, "schema")
    validate_identifier(table, "table")
    return RelationListResponse(relations=await client.get_foreign_keys(schema, table))
