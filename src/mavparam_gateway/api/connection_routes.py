"""API route handlers for the vehicle link."""

from fastapi import APIRouter, Depends, HTTPException

from mavparam_gateway.api.dependencies import get_transport
from mavparam_gateway.core.models import ConnectionSettings, ConnectionStatusResponse, ErrorResponse
from mavparam_gateway.transport.connection import MAVLinkTransport

router = APIRouter(prefix="/api/connection")


def _status(transport: MAVLinkTransport) -> ConnectionStatusResponse:
    settings = transport.settings
    return ConnectionStatusResponse(
        connected=transport.connected,
        endpoint=settings.describe() if settings else None,
        last_heartbeat_age=transport.last_heartbeat_age,
    )


@router.get("", response_model=ConnectionStatusResponse)
async def get_connection(transport: MAVLinkTransport = Depends(get_transport)):
    """Get link state."""
    return _status(transport)


@router.post(
    "",
    response_model=ConnectionStatusResponse,
    responses={503: {"model": ErrorResponse}},
)
async def connect(
    settings: ConnectionSettings,
    transport: MAVLinkTransport = Depends(get_transport),
):
    """Open a link, replacing the current one."""
    if not await transport.connect(settings):
        raise HTTPException(status_code=503, detail=f"Failed to connect to {settings.describe()}")
    return _status(transport)


@router.delete("", response_model=ConnectionStatusResponse)
async def disconnect(transport: MAVLinkTransport = Depends(get_transport)):
    """Close the link."""
    await transport.disconnect()
    return _status(transport)
