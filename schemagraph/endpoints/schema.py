# schema.py
"""
Schema visualization endpoint.
Runs one full pass (optional connect, introspection, graph building, layout)
and returns positioned nodes and edges for the ReactFlow-based visualizer.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from schemagraph.db import CatalogClient, get_catalog
from schemagraph.endpoints import RESP_ERRORS
from schemagraph.models.schema import SchemaVisualizationResponse, VisualizationRequest
from schemagraph.services.assembler import assemble_schema
from schemagraph.services.graph_builder import build_graph
from schemagraph.services.layout import layout_graph

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schema", tags=["schema"])


@router.post(
    "/visualization",
    response_model=SchemaVisualizationResponse,
    responses=RESP_ERRORS,
    summary="Get Schema Visualization Data",
    description="""
    Introspect every non-system schema and return it as a laid-out graph.

    Returns:
    - **nodes**: one per table, with its columns and top-left position
    - **edges**: one per foreign key column whose referenced table was introspected,
      with the side of each node it attaches to
    - **diagnostics**: schemas, tables or relationships that were skipped

    Pass `descriptor` or `url` to connect first; otherwise the current session is used.
    """
)
async def get_schema_visualization(
    request: Optional[VisualizationRequest] = None,
    client: CatalogClient = Depends(get_catalog),
) -> SchemaVisualizationResponse:
    request = request or VisualizationRequest()
    try:
        descriptor = request.resolve()
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    model = await assemble_schema(client, descriptor)
    graph = layout_graph(build_graph(model), request.layout)

    logger.info(
        "Visualization pass: %d tables, %d edges, %d skipped or degraded units",
        len(graph.nodes), len(graph.edges), len(model.diagnostics),
    )

    return SchemaVisualizationResponse(
        nodes=graph.nodes,
        edges=graph.edges,
        width=graph.width,
        height=graph.height,
        diagnostics=model.diagnostics,
    )
