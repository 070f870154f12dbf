#main.py

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from schemagraph import __version__
from schemagraph.db import (
    CatalogError,
    CatalogConnectionError,
    NotConnectedError,
    QueryExecutionError,
    QueryTimeoutError,
    close_catalog,
)
from schemagraph.endpoints.catalog import router as catalog_router
from schemagraph.endpoints.connection import router as connection_router
from schemagraph.endpoints.events import router as events_router
from schemagraph.endpoints.schema import router as schema_router
from schemagraph.endpoints.sql import router as sql_router
from schemagraph.models.sql import ErrorResponse
from schemagraph.security import API_KEY_NAME, api_key_matches, api_key_required

# App metadata from environment variables
APP_NAME = os.environ.get("APP_NAME", "schemagraph")
APP_DESCRIPTION = os.environ.get(
    "APP_DESCRIPTION",
    "Introspect a live PostgreSQL database and serve its schema as a laid-out ER graph",
)
APP_VERSION = os.environ.get("APP_VERSION", __version__)
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Custom Middleware for API Key Validation
# ─────────────────────────────────────────────────────────────────────────────

class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Validate the API key on every HTTP request when one is configured.
    Runs before routing and OpenAPI schema validation.

    WebSocket handshakes do not pass through HTTP middleware; the status
    stream checks the X-API-Key query parameter itself.
    """
    async def dispatch(self, request, call_next):
        if not api_key_required():
            return await call_next(request)

        api_key = request.headers.get(API_KEY_NAME)

        if not api_key:
            return JSONResponse(
                status_code=406,
                content={"detail": f"Missing required header: {API_KEY_NAME}"}
            )

        if not api_key_matches(api_key):
            return JSONResponse(
                status_code=401,
                content={"detail": "Invalid API key"}
            )

        return await call_next(request)


# ─────────────────────────────────────────────────────────────────────────────
# Catalog Error Mapping
# ─────────────────────────────────────────────────────────────────────────────

def error_status(exc: CatalogError) -> int:
    if isinstance(exc, NotConnectedError):
        return 409
    if isinstance(exc, CatalogConnectionError):
        return 502
    if isinstance(exc, QueryTimeoutError):
        return 504
    if isinstance(exc, QueryExecutionError):
        return 400
    return 500


async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    body = ErrorResponse(error=str(exc), kind=exc.kind)
    if isinstance(exc, QueryExecutionError):
        body = ErrorResponse(
            error=exc.message,
            kind=exc.kind,
            position=exc.position,
            detail=exc.detail,
            hint=exc.hint,
            code=exc.code,
        )
    return JSONResponse(status_code=error_status(exc), content=body.model_dump())


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s %s starting", APP_NAME, APP_VERSION)
    yield
    await close_catalog()

app = FastAPI(
    title=APP_NAME,
    description=APP_DESCRIPTION,
    version=APP_VERSION,
    lifespan=lifespan
)


# Add API Key middleware BEFORE CORS
app.add_middleware(APIKeyMiddleware)

CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=CORS_ORIGINS != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(CatalogError, catalog_error_handler)


app.include_router(connection_router)
app.include_router(events_router)
app.include_router(catalog_router)
app.include_router(sql_router)
app.include_router(schema_router)
