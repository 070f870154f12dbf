# schema.py
"""
Schema model and graph models for the entity-relationship visualization.
The Schema Model is what the assembler hands to the graph builder; the graph
models are what the layout engine positions and the frontend renders.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from schemagraph.models.connection import ConnectionDescriptor

Side = Literal["top", "right", "bottom", "left"]


# ─────────────────────────────────────────────────────────────────────────────
# Schema Model
# ─────────────────────────────────────────────────────────────────────────────

class ColumnReference(BaseModel):
    """The column a foreign key column points at."""
    table: str = Field(..., description="Referenced table name")
    column: str = Field(..., description="Referenced column name")
    schema_name: Optional[str] = Field(None, description="Referenced table's schema, when known")

    model_config = ConfigDict(frozen=True)


class Column(BaseModel):
    """Represents a column in a database table for schema visualization."""
    name: str = Field(..., description="Name of the column")
    data_type: str = Field(..., description="PostgreSQL data type of the column")
    is_nullable: bool = Field(default=True, description="Whether the column accepts NULL")
    is_primary_key: bool = Field(default=False, description="Whether this column is part of the primary key")
    is_foreign_key: bool = Field(default=False, description="Whether this column takes part in a foreign key")
    references: Optional[ColumnReference] = Field(None, description="Resolved foreign key target")
    default: Optional[str] = Field(None, description="Default value expression for the column")
    max_length: Optional[int] = Field(None, description="Character maximum length, if any")
    description: Optional[str] = Field(None, description="Column comment")


class Table(BaseModel):
    """A table with its columns in ordinal position order."""
    name: str
    schema_name: str = Field(..., description="Namespace the table lives in")
    columns: List[Column] = Field(default_factory=list)
    description: Optional[str] = Field(None, description="Table comment")

    @property
    def key(self) -> str:
        """Graph node id, unique per (schema, name)."""
        return f"{self.schema_name}.{self.name}"


IssueKind = Literal[
    "schema_skipped",
    "table_skipped",
    "foreign_keys_unavailable",
    "unmatched_foreign_key",
]


class AssemblyIssue(BaseModel):
    """A unit the assembler deliberately skipped or degraded."""
    kind: IssueKind
    schema_name: str
    table: Optional[str] = None
    column: Optional[str] = None
    message: str


class SchemaModel(BaseModel):
    """Every introspected table, in catalog order, plus what was skipped."""
    tables: List[Table] = Field(default_factory=list)
    diagnostics: List[AssemblyIssue] = Field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────────────
# Graph Models
# ─────────────────────────────────────────────────────────────────────────────

class Position(BaseModel):
    x: float = 0.0
    y: float = 0.0


class SchemaNode(BaseModel):
    """
    Represents a table node in the schema visualization graph.
    Position is the top-left corner of the node rectangle.
    """
    id: str = Field(..., description="schema.table (used as unique identifier)")
    label: str = Field(..., description="Display label for the table")
    position: Position = Field(default_factory=Position)
    width: float = Field(0.0, description="Rectangle width used by the layout")
    height: float = Field(0.0, description="Rectangle height used by the layout")
    table: Table = Field(..., description="The table this node renders")


class SchemaEdge(BaseModel):
    """
    Represents a foreign key relationship edge in the schema visualization graph.
    Connects a source table's column to a target table's column.
    """
    id: str = Field(..., description="Deterministic id derived from source, column and target")
    source: str = Field(..., description="Source (referencing) node id")
    target: str = Field(..., description="Target (referenced) node id")
    source_column: str = Field(..., description="Source column name (foreign key)")
    target_column: str = Field(..., description="Target column name (referenced key)")
    label: str = Field(..., description="Human readable 'column → referenced column'")
    source_side: Optional[Side] = Field(None, description="Attachment side on the source node")
    target_side: Optional[Side] = Field(None, description="Attachment side on the target node")


class SchemaGraph(BaseModel):
    nodes: List[SchemaNode] = Field(default_factory=list)
    edges: List[SchemaEdge] = Field(default_factory=list)
    width: float = Field(0.0, description="Canvas width including margins")
    height: float = Field(0.0, description="Canvas height including margins")


class SchemaVisualizationResponse(BaseModel):
    """
    Complete schema visualization data response.
    Contains all tables as nodes and all foreign key relationships as edges.
    """
    success: bool = True
    nodes: List[SchemaNode] = Field(default_factory=list, description="List of table nodes")
    edges: List[SchemaEdge] = Field(default_factory=list, description="List of foreign key relationship edges")
    width: float = 0.0
    height: float = 0.0
    diagnostics: List[AssemblyIssue] = Field(default_factory=list, description="Skipped or degraded units")


# ─────────────────────────────────────────────────────────────────────────────
# Layout Options
# ─────────────────────────────────────────────────────────────────────────────

class LayoutOptions(BaseModel):
    """Tunable layout constants. Sizes are in presentation-layer pixels."""
    direction: Literal["TB", "LR"] = Field("TB", description="TB ranks top to bottom, LR left to right")
    node_width: float = Field(280.0, gt=0)
    node_height: float = Field(200.0, gt=0, description="Node height, or the minimum when fit_to_columns is set")
    rank_sep: float = Field(120.0, ge=0, description="Space between layers")
    node_sep: float = Field(70.0, ge=0, description="Space between neighbouring nodes in a layer")
    edge_sep: float = Field(20.0, ge=0, description="Space kept around edges routed through a layer")
    margin: float = Field(40.0, ge=0, description="Empty border around the whole layout")
    sweeps: int = Field(4, ge=0, le=50, description="Crossing-minimization and alignment passes")
    fit_to_columns: bool = Field(False, description="Grow node height with the table's column count")
    header_height: float = Field(40.0, ge=0)
    row_height: float = Field(24.0, ge=0)

    model_config = ConfigDict(extra='ignore')


class VisualizationRequest(BaseModel):
    """
    Optional body of a visualization pass. Without connection details the
    pass runs on the current session.
    """
    descriptor: Optional[ConnectionDescriptor] = None
    url: Optional[str] = Field(None, description="postgresql:// connection string")
    layout: LayoutOptions = Field(default_factory=LayoutOptions)

    model_config = ConfigDict(extra='ignore')

    def resolve(self) -> Optional[ConnectionDescriptor]:
        if self.descriptor is not None:
            return self.descriptor
        if self.url:
            return ConnectionDescriptor.from_url(self.url)
        return None
