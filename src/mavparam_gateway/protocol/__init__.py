"""MAVLink parameter protocol implementation."""

from mavparam_gateway.protocol.codec import (
    Heartbeat,
    PacketCodec,
    ParamValue,
    parse_heartbeat,
    parse_param_value,
    to_float32,
)
from mavparam_gateway.protocol.constants import CRC_EXTRA, STX, MessageId, ParamType
from mavparam_gateway.protocol.crc import calculate_crc16, crc_accumulate, verify_crc16
from mavparam_gateway.protocol.download import DownloadCoordinator
from mavparam_gateway.protocol.frames import DecodeError, Frame, UnknownMessageError
from mavparam_gateway.protocol.handler import ProtocolHandler
from mavparam_gateway.protocol.write import WriteCoordinator

__all__ = [
    "CRC_EXTRA",
    "STX",
    "DecodeError",
    "DownloadCoordinator",
    "Frame",
    "Heartbeat",
    "MessageId",
    "PacketCodec",
    "ParamType",
    "ParamValue",
    "ProtocolHandler",
    "UnknownMessageError",
    "WriteCoordinator",
    "calculate_crc16",
    "crc_accumulate",
    "parse_heartbeat",
    "parse_param_value",
    "to_float32",
    "verify_crc16",
]
