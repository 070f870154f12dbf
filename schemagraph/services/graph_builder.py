# graph_builder.py
"""
Maps a SchemaModel onto graph primitives: one node per table and one edge per
resolved foreign key column. Positions are left at the origin for the layout
engine to fill in.
"""

import logging
from typing import Dict, List

from schemagraph.models.schema import (
    Position,
    SchemaEdge,
    SchemaGraph,
    SchemaModel,
    SchemaNode,
    Table,
)

logger = logging.getLogger(__name__)


def _escape_id_part(part: str) -> str:
    return part.replace("\\", "\\\\").replace("-", "\\-")


def edge_id(source: str, column: str, target: str) -> str:
    """
    `source-column-target`. Identifiers may themselves contain '-', so each
    part escapes '-' and '\\' and only a bare '-' separates parts.
    """
    return "-".join(_escape_id_part(part) for part in (source, column, target))


def edge_label(column: str, referenced_column: str) -> str:
    return f"{column} → {referenced_column}"


def build_graph(model: SchemaModel) -> SchemaGraph:
    """
    Build the unpositioned graph for `model`.

    Edges whose target table is not part of the model are dropped. Output
    order follows table and column order, so equal models give equal graphs.
    """
    nodes: List[SchemaNode] = []
    tables: Dict[str, Table] = {}
    for table in model.tables:
        tables[table.key] = table
        nodes.append(SchemaNode(
            id=table.key,
            label=table.name,
            position=Position(),
            table=table,
        ))

    edges: List[SchemaEdge] = []
    dropped = 0
    for table in model.tables:
        for column in table.columns:
            ref = column.references
            if not column.is_foreign_key or ref is None:
                continue

            target = f"{ref.schema_name or table.schema_name}.{ref.table}"
            if target not in tables:
                dropped += 1
                continue

            edges.append(SchemaEdge(
                id=edge_id(table.key, column.name, target),
                source=table.key,
                target=target,
                source_column=column.name,
                target_column=ref.column,
                label=edge_label(column.name, ref.column),
            ))

    if dropped:
        logger.debug("Dropped %d foreign keys pointing outside the model", dropped)

    return SchemaGraph(nodes=nodes, edges=edges)
