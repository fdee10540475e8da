"""API route handlers for parameters and downloads."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from mavparam_gateway.api.dependencies import get_cache, get_handler
from mavparam_gateway.core.cache import ParameterCache
from mavparam_gateway.core.models import (
    DownloadStatus,
    ErrorResponse,
    Parameter,
    ParameterSetRequest,
    ParameterSetResponse,
    ParametersResponse,
)
from mavparam_gateway.protocol.codec import to_float32
from mavparam_gateway.protocol.constants import PARAM_ID_LEN
from mavparam_gateway.protocol.handler import ProtocolHandler

router = APIRouter(prefix="/api")


def _require_connected(handler: ProtocolHandler) -> None:
    if not handler.connected:
        raise HTTPException(status_code=503, detail="Vehicle not connected")


def _check_name(name: str) -> None:
    if len(name) > PARAM_ID_LEN:
        raise HTTPException(status_code=400, detail=f"Parameter name longer than {PARAM_ID_LEN} characters: {name}")


@router.get("/parameters", response_model=ParametersResponse)
async def get_parameters(
    cache: ParameterCache = Depends(get_cache),
    handler: ProtocolHandler = Depends(get_handler),
):
    """Get all cached parameter values."""
    _require_connected(handler)

    params = await cache.get_all()
    return ParametersResponse(
        timestamp=cache.last_update or datetime.now(),
        count=len(params),
        parameters=params,
    )


@router.get(
    "/parameters/{name}",
    response_model=Parameter,
    responses={404: {"model": ErrorResponse}},
)
async def get_parameter(
    name: str,
    handler: ProtocolHandler = Depends(get_handler),
):
    """Get one cached parameter by name (case-insensitive)."""
    param = await handler.get_parameter(name)
    if param is None:
        raise HTTPException(status_code=404, detail=f"Parameter not found: {name}")
    return param


@router.post(
    "/parameters/{name}",
    response_model=ParameterSetResponse,
    responses={
        400: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def set_parameter(
    name: str,
    request: ParameterSetRequest,
    handler: ProtocolHandler = Depends(get_handler),
):
    """Write a parameter and wait for the vehicle to confirm it."""
    _require_connected(handler)
    _check_name(name)

    previous = await handler.get_parameter(name)
    old_value = previous.value if previous else None

    success = await handler.set_parameter(name, request.value)
    if not success:
        raise HTTPException(status_code=503, detail=f"Vehicle did not confirm write of {name}")

    current = await handler.get_parameter(name)
    return ParameterSetResponse(
        success=True,
        name=current.name if current else name,
        old_value=old_value,
        new_value=current.value if current else to_float32(request.value),
    )


@router.post(
    "/parameters/{name}/read",
    response_model=Parameter,
    responses={
        400: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
async def read_parameter(
    name: str,
    handler: ProtocolHandler = Depends(get_handler),
):
    """Re-read one parameter from the vehicle."""
    _require_connected(handler)
    _check_name(name)

    param = await handler.read_parameter(name)
    if param is None:
        raise HTTPException(status_code=504, detail=f"No reply for parameter {name}")
    return param


@router.get("/download", response_model=DownloadStatus)
async def get_download_status(handler: ProtocolHandler = Depends(get_handler)):
    """Get the state of the parameter download."""
    return handler.download_status()


@router.post(
    "/download",
    response_model=DownloadStatus,
    responses={503: {"model": ErrorResponse}},
)
async def start_download(
    wait: bool = Query(False, description="Wait for the download to finish"),
    timeout: float | None = Query(None, gt=0, description="Bound on the wait in seconds"),
    handler: ProtocolHandler = Depends(get_handler),
):
    """Start a full parameter download."""
    _require_connected(handler)

    if not await handler.refresh_parameters():
        raise HTTPException(status_code=503, detail="Parameter list request could not be sent")
    if wait:
        await handler.wait_for_download(timeout)
    return handler.download_status()
