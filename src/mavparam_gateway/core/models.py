"""Data models for the MAVLink parameter gateway."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Parameter(BaseModel):
    """Represents a single parameter from the vehicle."""

    name: str = Field(..., min_length=1, max_length=16, description="Parameter name")
    value: float = Field(..., description="Current parameter value (float32)")
    index: int | None = Field(None, ge=0, le=65535, description="Ordinal index in the vehicle's list")
    count: int | None = Field(None, ge=0, le=65535, description="Total count advertised by the vehicle")
    param_type: int = Field(9, ge=1, description="MAV_PARAM_TYPE code (9 = REAL32)")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Ensure parameter name is not empty after stripping."""
        if not v.strip():
            raise ValueError("Parameter name cannot be empty")
        return v

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "name": "RTL_ALT",
                "value": 1500.0,
                "index": 412,
                "count": 1024,
                "param_type": 9,
            }
        },
    )


class ConnectionType(str, Enum):
    """Byte-stream transport kinds."""

    SERIAL = "serial"
    TCP = "tcp"


class ConnectionSettings(BaseModel):
    """Immutable description of the link to open."""

    kind: ConnectionType = Field(..., description="Transport kind")
    port_name: str | None = Field(None, description="Serial device (serial only)")
    baud_rate: int = Field(115200, gt=0, description="Serial baud rate (serial only)")
    host: str | None = Field(None, description="Host name or address (TCP only)")
    port: int | None = Field(None, ge=1, le=65535, description="TCP port (TCP only)")

    @model_validator(mode="after")
    def validate_kind_fields(self) -> "ConnectionSettings":
        """Ensure the fields for the selected kind are present."""
        if self.kind == ConnectionType.SERIAL and not (self.port_name and self.port_name.strip()):
            raise ValueError("port_name is required for serial connections")
        if self.kind == ConnectionType.TCP:
            if not (self.host and self.host.strip()):
                raise ValueError("host is required for TCP connections")
            if self.port is None:
                raise ValueError("port is required for TCP connections")
        return self

    def describe(self) -> str:
        """Short human-readable endpoint description for logs."""
        if self.kind == ConnectionType.TCP:
            return f"tcp://{self.host}:{self.port}"
        return f"{self.port_name}@{self.baud_rate}"

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={"example": {"kind": "tcp", "host": "127.0.0.1", "port": 5760}},
    )


class DownloadState(str, Enum):
    """Lifecycle of a parameter-list download."""

    IDLE = "idle"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"


class DownloadStatus(BaseModel):
    """Snapshot of the download coordinator."""

    state: DownloadState = Field(..., description="Current download state")
    received: int = Field(..., ge=0, description="Distinct indices received")
    expected: int | None = Field(None, ge=0, description="Advertised total count")
    missing: int = Field(0, ge=0, description="Indices still missing")
    retry_attempts: int = Field(0, ge=0, description="Retry rounds since the last received value")
    in_progress: bool = Field(..., description="Whether a download is running")
    complete: bool = Field(..., description="Whether the last download finished normally")


# ============================================================================
# API Request/Response Models
# ============================================================================


class ParametersResponse(BaseModel):
    """Response model for GET /api/parameters."""

    timestamp: datetime = Field(..., description="Timestamp of parameter snapshot")
    count: int = Field(..., ge=0, description="Number of parameters returned")
    parameters: list[Parameter] = Field(..., description="Parameters sorted by name")


class ParameterSetRequest(BaseModel):
    """Request model for POST /api/parameters/{name}."""

    value: float = Field(..., description="New parameter value")

    model_config = ConfigDict(json_schema_extra={"example": {"value": 2000}})


class ParameterSetResponse(BaseModel):
    """Response model for a verified parameter write."""

    success: bool = Field(True, description="Operation success status")
    name: str = Field(..., description="Parameter name")
    old_value: float | None = Field(None, description="Previously cached value")
    new_value: float = Field(..., description="Verified value")
    timestamp: datetime = Field(default_factory=datetime.now, description="Operation timestamp")


class ConnectionStatusResponse(BaseModel):
    """Response model for GET /api/connection."""

    connected: bool = Field(..., description="Whether the link is up")
    endpoint: str | None = Field(None, description="Current or last endpoint")
    last_heartbeat_age: float | None = Field(None, description="Seconds since the last liveness signal")


class ErrorResponse(BaseModel):
    """Response model for errors."""

    success: bool = Field(False, description="Operation success status")
    error: str = Field(..., description="Error message")
    detail: str | None = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Health status (healthy/degraded/unhealthy)")
    vehicle_connected: bool = Field(..., description="Whether the vehicle link is up")
    parameters_count: int = Field(..., ge=0, description="Number of cached parameters")
    download_state: DownloadState = Field(DownloadState.IDLE, description="Parameter download state")
    last_update: datetime | None = Field(None, description="Last cache update timestamp")
