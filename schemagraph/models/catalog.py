# catalog.py
"""
Typed rows returned by the catalog introspection queries.
Field names follow the column aliases of the queries in db.py so rows can be
validated straight from psycopg's dict rows.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SchemaInfo(BaseModel):
    schema_name: str
    table_count: int

    model_config = ConfigDict(extra='ignore')


class TableInfo(BaseModel):
    table_name: str
    column_count: int = 0
    description: Optional[str] = None
    table_type: Optional[str] = Field(None, description="BASE TABLE, VIEW, FOREIGN, ...")

    model_config = ConfigDict(extra='ignore')


class ColumnRow(BaseModel):
    column_name: str
    data_type: str = Field(..., description="Engine-native type name")
    is_nullable: str = Field(..., description="'YES' or 'NO' as reported by information_schema")
    column_default: Optional[str] = None
    character_maximum_length: Optional[int] = None
    column_description: Optional[str] = None
    ordinal_position: Optional[int] = None
    is_primary_key: bool = False
    is_foreign_key: bool = False

    model_config = ConfigDict(extra='ignore')


class ForeignKeyRow(BaseModel):
    constraint_name: str
    table_schema: Optional[str] = None
    table_name: Optional[str] = None
    column_name: str
    foreign_table_schema: Optional[str] = None
    foreign_table_name: str
    foreign_column_name: str

    model_config = ConfigDict(extra='ignore')


class FieldDescriptor(BaseModel):
    name: str
    data_type: Optional[int] = Field(None, description="Type OID of the result column")


class QueryResult(BaseModel):
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    fields: List[FieldDescriptor] = Field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────────────
# Response Envelopes
# ─────────────────────────────────────────────────────────────────────────────

class SchemaListResponse(BaseModel):
    success: bool = True
    schemas: List[SchemaInfo] = Field(default_factory=list)


class TableListResponse(BaseModel):
    success: bool = True
    tables: List[TableInfo] = Field(default_factory=list)


class ColumnListResponse(BaseModel):
    success: bool = True
    structure: List[ColumnRow] = Field(default_factory=list)


class RelationListResponse(BaseModel):
    success: bool = True
    relations: List[ForeignKeyRow] = Field(default_factory=list)
