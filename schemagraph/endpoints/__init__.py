"""HTTP and WebSocket routers."""

from schemagraph.models.sql import ErrorResponse

# ─────────────────────────────────────────────────────────────────────────────
# Documentation & Error Helpers
# ─────────────────────────────────────────────────────────────────────────────

RESP_ERRORS = {
    400: {"model": ErrorResponse, "description": "Bad Request / Query rejected by the database"},
    401: {"model": ErrorResponse, "description": "Unauthorized"},
    406: {"model": ErrorResponse, "description": "Not Acceptable"},
    409: {"model": ErrorResponse, "description": "Database not connected"},
    502: {"model": ErrorResponse, "description": "Database connection lost"},
    504: {"model": ErrorResponse, "description": "Query timed out"},
}
