"""Packet construction and parsing for MAVLink v1 framing."""

import struct

from mavparam_gateway.protocol.constants import (
    CHECKSUM_LEN,
    CRC_EXTRA,
    GCS_COMPONENT_ID,
    GCS_SYSTEM_ID,
    HEADER_LEN,
    PACKET_MIN_LEN,
    STX,
)
from mavparam_gateway.protocol.crc import calculate_crc16


class DecodeError(ValueError):
    """Raised when bytes cannot be turned into a valid packet or message."""


class UnknownMessageError(DecodeError):
    """Raised for a well-framed packet whose message id has no known CRC_EXTRA."""

    def __init__(self, message_id: int):
        super().__init__(f"Unknown message id {message_id}")
        self.message_id = message_id


class Frame:
    """
    Represents a MAVLink v1 packet.

    Packet structure:
    [STX][LEN][SEQ][SYS_ID][COMP_ID][MSG_ID][PAYLOAD...][CRC_L][CRC_H]

    The checksum covers LEN through the end of the payload, followed by the
    message's CRC_EXTRA byte.

    Attributes:
        message_id: Message id (0-255)
        payload: Payload bytes (0-255 bytes)
        sequence: Sender sequence number (0-255)
        system_id: Sender system id
        component_id: Sender component id
    """

    def __init__(
        self,
        message_id: int,
        payload: bytes = b"",
        sequence: int = 0,
        system_id: int = GCS_SYSTEM_ID,
        component_id: int = GCS_COMPONENT_ID,
    ):
        """
        Initialize a frame.

        Args:
            message_id: Message id (0-255)
            payload: Payload bytes
            sequence: Sequence number (0-255)
            system_id: Sender system id (0-255)
            component_id: Sender component id (0-255)
        """
        if len(payload) > 255:
            raise ValueError(f"Payload too long: {len(payload)} bytes")
        self.message_id = message_id
        self.payload = bytes(payload)
        self.sequence = sequence & 0xFF
        self.system_id = system_id
        self.component_id = component_id

    def to_bytes(self) -> bytes:
        """
        Convert frame to bytes for transmission.

        Returns:
            Complete packet as bytes

        Raises:
            KeyError: If the message id has no known CRC_EXTRA

        Example:
            >>> frame = Frame(message_id=21, payload=b"\\x01\\x01")
            >>> frame.to_bytes()[0] == 0xFE
            True
        """
        packet = bytearray()
        packet.append(STX)
        packet.append(len(self.payload))
        packet.append(self.sequence)
        packet.append(self.system_id)
        packet.append(self.component_id)
        packet.append(self.message_id)
        packet.extend(self.payload)

        crc = calculate_crc16(packet[1:], CRC_EXTRA[self.message_id])
        packet.extend(struct.pack("<H", crc))

        return bytes(packet)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Frame":
        """
        Parse a frame from received bytes.

        Args:
            data: Raw packet bytes (exactly one packet)

        Returns:
            Parsed Frame object

        Raises:
            UnknownMessageError: If the message id has no known CRC_EXTRA
            DecodeError: If the packet is truncated, mis-framed, or fails
                its checksum
        """
        if len(data) < PACKET_MIN_LEN:
            raise DecodeError(f"Packet too short: {len(data)} bytes")

        if data[0] != STX:
            raise DecodeError(f"Invalid start marker 0x{data[0]:02X}")

        length = data[1]
        expected_length = length + HEADER_LEN + CHECKSUM_LEN
        if len(data) != expected_length:
            raise DecodeError(f"Length mismatch: header says {expected_length}, got {len(data)}")

        message_id = data[5]
        crc_extra = CRC_EXTRA.get(message_id)
        if crc_extra is None:
            raise UnknownMessageError(message_id)

        expected_crc = struct.unpack("<H", data[-2:])[0]
        calculated_crc = calculate_crc16(data[1:-2], crc_extra)
        if expected_crc != calculated_crc:
            raise DecodeError(
                f"CRC mismatch for message {message_id}: expected 0x{expected_crc:04X}, got 0x{calculated_crc:04X}"
            )

        return cls(
            message_id=message_id,
            payload=data[HEADER_LEN:-2],
            sequence=data[2],
            system_id=data[3],
            component_id=data[4],
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Frame):
            return NotImplemented
        return (
            self.message_id == other.message_id
            and self.payload == other.payload
            and self.sequence == other.sequence
            and self.system_id == other.system_id
            and self.component_id == other.component_id
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Frame(msg={self.message_id}, seq={self.sequence}, sys={self.system_id}, "
            f"comp={self.component_id}, len={len(self.payload)})"
        )
