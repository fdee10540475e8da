"""Payload encoding/decoding for the parameter messages.

Module-level ``build_*`` / ``parse_*`` functions are pure. ``PacketCodec``
wraps them with the sender identity and the per-sender sequence counter.
"""

import math
import struct
from dataclasses import dataclass

from mavparam_gateway.protocol.constants import (
    DEFAULT_TARGET_COMPONENT,
    DEFAULT_TARGET_SYSTEM,
    GCS_COMPONENT_ID,
    GCS_SYSTEM_ID,
    PARAM_ID_LEN,
    PARAM_INDEX_BY_NAME,
    PAYLOAD_LENGTHS,
    MessageId,
    ParamType,
)
from mavparam_gateway.protocol.frames import DecodeError, Frame


@dataclass(frozen=True)
class ParamValue:
    """Decoded PARAM_VALUE message."""

    name: str
    value: float
    index: int
    count: int
    param_type: int = ParamType.REAL32


@dataclass(frozen=True)
class Heartbeat:
    """Decoded HEARTBEAT message."""

    type: int
    autopilot: int
    base_mode: int
    custom_mode: int
    system_status: int
    mavlink_version: int


def to_float32(value: float) -> float:
    """Round a Python float to the nearest float32 value."""
    return struct.unpack("<f", struct.pack("<f", value))[0]


def encode_param_id(name: str) -> bytes:
    """Encode a parameter name as a 16-byte, zero-padded ASCII field.

    Names longer than 16 characters are truncated.

    Raises:
        ValueError: If the name is empty or not ASCII.
    """
    if not name:
        raise ValueError("Parameter name cannot be empty")
    try:
        raw = name.encode("ascii")
    except UnicodeEncodeError:
        raise ValueError(f"Parameter name must be ASCII: {name!r}") from None
    return raw[:PARAM_ID_LEN].ljust(PARAM_ID_LEN, b"\x00")


def decode_param_id(data: bytes) -> str:
    """Decode a 16-byte parameter name field (NUL-terminated unless full length).

    Raises:
        DecodeError: If the name holds non-ASCII bytes.
    """
    null_pos = data.find(b"\x00")
    if null_pos != -1:
        data = data[:null_pos]
    try:
        return data.decode("ascii")
    except UnicodeDecodeError:
        raise DecodeError(f"Parameter name is not ASCII: {data!r}") from None


def _check_length(message_id: MessageId, payload: bytes) -> None:
    expected = PAYLOAD_LENGTHS[message_id]
    if len(payload) != expected:
        raise DecodeError(f"{message_id.name} payload must be {expected} bytes, got {len(payload)}")


def build_request_list_payload(target_system: int, target_component: int) -> bytes:
    """Build PARAM_REQUEST_LIST payload."""
    return struct.pack("<BB", target_system, target_component)


def build_request_read_payload(
    target_system: int,
    target_component: int,
    name: str | None = None,
    index: int = PARAM_INDEX_BY_NAME,
) -> bytes:
    """Build PARAM_REQUEST_READ payload.

    Format: [INDEX int16][TARGET_SYS][TARGET_COMP][PARAM_ID x16]

    A read by name sends index -1; a read by index sends an empty name.

    Args:
        target_system: Vehicle system id.
        target_component: Vehicle component id.
        name: Parameter name, required when ``index`` is -1.
        index: Parameter ordinal, or -1 to look up by ``name``.

    Returns:
        Request payload bytes.
    """
    if index == PARAM_INDEX_BY_NAME:
        if name is None:
            raise ValueError("A name is required when reading by name")
        param_id = encode_param_id(name)
    else:
        if not 0 <= index <= 0x7FFF:
            raise ValueError(f"Parameter index out of range: {index}")
        param_id = encode_param_id(name) if name else bytes(PARAM_ID_LEN)
    return struct.pack("<hBB", index, target_system, target_component) + param_id


def build_param_set_payload(
    target_system: int,
    target_component: int,
    name: str,
    value: float,
    param_type: int = ParamType.REAL32,
) -> bytes:
    """Build PARAM_SET payload.

    Format: [VALUE float32][TARGET_SYS][TARGET_COMP][PARAM_ID x16][TYPE]
    """
    if not math.isfinite(value):
        raise ValueError(f"Parameter value must be finite: {value}")
    try:
        packed_value = struct.pack("<f", value)
    except OverflowError:
        raise ValueError(f"Parameter value out of float32 range: {value}") from None
    return (
        packed_value
        + struct.pack("<BB", target_system, target_component)
        + encode_param_id(name)
        + struct.pack("<B", param_type)
    )


def build_param_value_payload(
    name: str, value: float, index: int, count: int, param_type: int = ParamType.REAL32
) -> bytes:
    """Build PARAM_VALUE payload (what a vehicle sends)."""
    return struct.pack("<fHH", value, count, index) + encode_param_id(name) + struct.pack("<B", param_type)


def build_heartbeat_payload(
    vehicle_type: int = 2,
    autopilot: int = 3,
    base_mode: int = 0,
    custom_mode: int = 0,
    system_status: int = 4,
    mavlink_version: int = 3,
) -> bytes:
    """Build HEARTBEAT payload."""
    return struct.pack("<IBBBBB", custom_mode, vehicle_type, autopilot, base_mode, system_status, mavlink_version)


def parse_param_value(payload: bytes) -> ParamValue:
    """Parse a PARAM_VALUE payload.

    Format: [VALUE float32][COUNT uint16][INDEX uint16][PARAM_ID x16][TYPE]

    Raises:
        DecodeError: If the payload has the wrong length or an empty name.
    """
    _check_length(MessageId.PARAM_VALUE, payload)
    value, count, index = struct.unpack("<fHH", payload[0:8])
    name = decode_param_id(payload[8:24])
    if not name.strip():
        raise DecodeError("PARAM_VALUE with empty parameter name")
    return ParamValue(name=name, value=value, index=index, count=count, param_type=payload[24])


def parse_heartbeat(payload: bytes) -> Heartbeat:
    """Parse a HEARTBEAT payload."""
    _check_length(MessageId.HEARTBEAT, payload)
    custom_mode, type_, autopilot, base_mode, system_status, version = struct.unpack("<IBBBBB", payload)
    return Heartbeat(
        type=type_,
        autopilot=autopilot,
        base_mode=base_mode,
        custom_mode=custom_mode,
        system_status=system_status,
        mavlink_version=version,
    )


def parse_request_read(payload: bytes) -> tuple[int, str]:
    """Parse a PARAM_REQUEST_READ payload into (index, name)."""
    _check_length(MessageId.PARAM_REQUEST_READ, payload)
    index = struct.unpack("<h", payload[0:2])[0]
    return index, decode_param_id(payload[4:20])


def parse_param_set(payload: bytes) -> tuple[str, float, int]:
    """Parse a PARAM_SET payload into (name, value, param_type)."""
    _check_length(MessageId.PARAM_SET, payload)
    value = struct.unpack("<f", payload[0:4])[0]
    return decode_param_id(payload[6:22]), value, payload[22]


class PacketCodec:
    """Encodes outbound requests with our identity and a wrapping sequence counter."""

    def __init__(
        self,
        system_id: int = GCS_SYSTEM_ID,
        component_id: int = GCS_COMPONENT_ID,
        target_system: int = DEFAULT_TARGET_SYSTEM,
        target_component: int = DEFAULT_TARGET_COMPONENT,
    ):
        self.system_id = system_id
        self.component_id = component_id
        self.target_system = target_system
        self.target_component = target_component
        self._sequence = 0

    @property
    def sequence(self) -> int:
        """Sequence number the next packet will carry."""
        return self._sequence

    def encode(self, message_id: int, payload: bytes) -> bytes:
        """Frame a payload and advance the sequence counter."""
        frame = Frame(
            message_id=message_id,
            payload=payload,
            sequence=self._sequence,
            system_id=self.system_id,
            component_id=self.component_id,
        )
        data = frame.to_bytes()
        self._sequence = (self._sequence + 1) & 0xFF
        return data

    def request_list(self) -> bytes:
        """Encode PARAM_REQUEST_LIST for the target vehicle."""
        payload = build_request_list_payload(self.target_system, self.target_component)
        return self.encode(MessageId.PARAM_REQUEST_LIST, payload)

    def request_read(self, name: str | None = None, index: int = PARAM_INDEX_BY_NAME) -> bytes:
        """Encode PARAM_REQUEST_READ by name or by index."""
        payload = build_request_read_payload(self.target_system, self.target_component, name, index)
        return self.encode(MessageId.PARAM_REQUEST_READ, payload)

    def param_set(self, name: str, value: float) -> bytes:
        """Encode PARAM_SET with a REAL32 value."""
        payload = build_param_set_payload(self.target_system, self.target_component, name, value)
        return self.encode(MessageId.PARAM_SET, payload)
