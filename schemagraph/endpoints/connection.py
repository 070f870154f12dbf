# connection.py
"""Session lifecycle endpoints: connect, disconnect and status."""

from typing import Union

from fastapi import APIRouter, Depends, HTTPException, status

from schemagraph.db import CatalogClient, get_catalog
from schemagraph.endpoints import RESP_ERRORS
from schemagraph.models.connection import (
    ClientStatus,
    ConnectionDescriptor,
    ConnectRequest,
    ConnectResult,
    DisconnectResult,
)

router = APIRouter(prefix="/connection", tags=["connection"])


@router.post(
    "/connect",
    response_model=ConnectResult,
    responses=RESP_ERRORS,
    summary="Open a database session",
    description="""
    Open a new session, closing the current one first.

    The body is either a connection descriptor or `{"url": "postgresql://..."}`.
    A failed connection is reported with `success: false` and the driver's
    error message rather than an HTTP error.
    """
)
async def connect(
    request: Union[ConnectionDescriptor, ConnectRequest],
    client: CatalogClient = Depends(get_catalog),
) -> ConnectResult:
    if isinstance(request, ConnectRequest):
        try:
            descriptor = request.resolve()
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e)
            )
    else:
        descriptor = request

    return await client.connect(descriptor)


@router.post(
    "/disconnect",
    response_model=DisconnectResult,
    summary="Close the database session",
)
async def disconnect(client: CatalogClient = Depends(get_catalog)) -> DisconnectResult:
    """Close the current session. Succeeds when there is none."""
    return await client.disconnect()


@router.get(
    "/status",
    response_model=ClientStatus,
    summary="Get session status",
)
async def get_status(client: CatalogClient = Depends(get_catalog)) -> ClientStatus:
    return client.status()
