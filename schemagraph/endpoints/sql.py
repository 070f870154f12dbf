# sql.py
"""SQL execution endpoint."""

import time

from fastapi import APIRouter, Depends, HTTPException, status

from schemagraph.db import CatalogClient, get_catalog
from schemagraph.endpoints import RESP_ERRORS
from schemagraph.models.sql import SqlExecutionResult, SqlQueryRequest

router = APIRouter(prefix="/sql", tags=["sql"])


@router.post(
    "/query",
    response_model=SqlExecutionResult,
    responses=RESP_ERRORS,
    summary="Execute SQL Query",
    description="""
    Run raw SQL on the current session and return its rows.

    Errors reported by the database come back as 400 with the engine's
    position, detail, hint and SQLSTATE code. A query that exceeds the
    configured timeout returns 504; reconnect before running more queries.
    """
)
async def execute_query(
    request: SqlQueryRequest,
    client: CatalogClient = Depends(get_catalog),
) -> SqlExecutionResult:
    query = request.query.strip()
    if not query:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Query cannot be empty"
        )

    # Track execution time
    start_time = time.time()
    result = await client.run_query(query)
    execution_time = time.time() - start_time

    return SqlExecutionResult(
        success=True,
        execution_time=execution_time,
        rows=result.rows,
        row_count=result.row_count,
        fields=result.fields,
    )
