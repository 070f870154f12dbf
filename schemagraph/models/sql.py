# sql.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any

from schemagraph.models.catalog import FieldDescriptor

# ─────────────────────────────────────────────────────────────────────────────
# Request Models
# ─────────────────────────────────────────────────────────────────────────────

class SqlQueryRequest(BaseModel):
    """Request model for executing a SQL query."""
    query: str = Field(
        ...,
        min_length=1,
        max_length=100000,
        description="SQL query to execute"
    )

    model_config = ConfigDict(
        extra='ignore',
        json_schema_extra={
            "examples": [{
                "query": "SELECT * FROM customers LIMIT 10"
            }]
        }
    )


# ─────────────────────────────────────────────────────────────────────────────
# Response Models
# ─────────────────────────────────────────────────────────────────────────────

class SqlExecutionResult(BaseModel):
    """Result of a SQL query execution."""
    success: bool = Field(..., description="Whether the query executed successfully")
    execution_time: float = Field(..., description="Query execution time in seconds")
    rows: List[Dict[str, Any]] = Field(default_factory=list, description="Query result data")
    row_count: int = Field(0, description="Number of rows returned or affected")
    fields: List[FieldDescriptor] = Field(default_factory=list, description="Result column descriptors")

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [{
                "success": True,
                "execution_time": 0.025,
                "rows": [{"id": 1, "name": "John"}],
                "row_count": 1,
                "fields": [{"name": "id", "data_type": 23}, {"name": "name", "data_type": 25}]
            }]
        }
    )


class ErrorResponse(BaseModel):
    """Failure envelope shared by every route."""
    success: bool = False
    error: str = Field(..., description="Underlying error message")
    kind: str = Field(..., description="not_connected, connection, timeout or query")
    position: Optional[int] = Field(None, description="Character position of the error in the query")
    detail: Optional[str] = None
    hint: Optional[str] = None
    code: Optional[str] = Field(None, description="SQLSTATE reported by the engine")
