"""Unit tests for parameter message payloads and PacketCodec."""

import math
import struct

import pytest

from mavparam_gateway.protocol.codec import (
    PacketCodec,
    build_heartbeat_payload,
    build_param_set_payload,
    build_param_value_payload,
    build_request_read_payload,
    decode_param_id,
    encode_param_id,
    parse_heartbeat,
    parse_param_set,
    parse_param_value,
    parse_request_read,
    to_float32,
)
from mavparam_gateway.protocol.constants import MessageId, ParamType
from mavparam_gateway.protocol.frames import DecodeError, Frame


class TestParamId:
    """Tests for the 16-byte parameter name field."""

    def test_short_name_zero_padded(self):
        """Short names are NUL padded to 16 bytes."""
        raw = encode_param_id("RTL_ALT")
        assert raw == b"RTL_ALT" + b"\x00" * 9

    def test_full_length_name_has_no_terminator(self):
        """A 16-character name fills the field without a NUL."""
        raw = encode_param_id("ABCDEFGHIJKLMNOP")
        assert raw == b"ABCDEFGHIJKLMNOP"
        assert decode_param_id(raw) == "ABCDEFGHIJKLMNOP"

    def test_long_name_truncated(self):
        """Names longer than 16 characters are cut to 16."""
        assert encode_param_id("ABCDEFGHIJKLMNOPQRS") == b"ABCDEFGHIJKLMNOP"

    def test_empty_name_rejected(self):
        """An empty name cannot be encoded."""
        with pytest.raises(ValueError):
            encode_param_id("")

    def test_non_ascii_rejected(self):
        """Names must be ASCII."""
        with pytest.raises(ValueError):
            encode_param_id("HÖHE")

    def test_decode_stops_at_nul(self):
        """Bytes after the first NUL are ignored."""
        assert decode_param_id(b"RTL\x00garbage\x00\x00\x00\x00\x00") == "RTL"

    def test_decode_non_ascii_rejected(self):
        """Names with non-ASCII bytes fail to decode instead of being mangled."""
        with pytest.raises(DecodeError, match="not ASCII"):
            decode_param_id(b"AB\xc3\x96" + bytes(12))


class TestRequestRead:
    """Tests for PARAM_REQUEST_READ payloads."""

    def test_by_name(self):
        """A read by name carries index -1."""
        payload = build_request_read_payload(1, 1, name="RTL_ALT")

        assert len(payload) == 20
        assert struct.unpack("<h", payload[:2])[0] == -1
        assert payload[2] == 1
        assert payload[3] == 1
        assert parse_request_read(payload) == (-1, "RTL_ALT")

    def test_by_index(self):
        """A read by index carries the index and an empty name."""
        payload = build_request_read_payload(1, 1, index=42)
        assert parse_request_read(payload) == (42, "")

    def test_by_name_requires_name(self):
        """Index -1 without a name is an error."""
        with pytest.raises(ValueError):
            build_request_read_payload(1, 1)

    def test_index_out_of_range(self):
        """Indices must fit the signed 16-bit field."""
        with pytest.raises(ValueError):
            build_request_read_payload(1, 1, index=40000)


class TestParamSet:
    """Tests for PARAM_SET payloads."""

    def test_layout(self):
        """Value, targets, name and REAL32 type in wire order."""
        payload = build_param_set_payload(1, 1, "RTL_ALT", 2000.0)

        assert len(payload) == 23
        assert struct.unpack("<f", payload[:4])[0] == 2000.0
        assert payload[22] == ParamType.REAL32
        assert parse_param_set(payload) == ("RTL_ALT", 2000.0, ParamType.REAL32)

    def test_nan_rejected(self):
        """NaN cannot be written."""
        with pytest.raises(ValueError):
            build_param_set_payload(1, 1, "RTL_ALT", math.nan)

    def test_infinity_rejected(self):
        """Infinite values cannot be written."""
        with pytest.raises(ValueError):
            build_param_set_payload(1, 1, "RTL_ALT", math.inf)

    def test_float32_overflow_rejected(self):
        """Values beyond float32 range cannot be written."""
        with pytest.raises(ValueError):
            build_param_set_payload(1, 1, "RTL_ALT", 1e40)


class TestParamValue:
    """Tests for PARAM_VALUE parsing."""

    def test_parse(self):
        """All fields are recovered."""
        msg = parse_param_value(build_param_value_payload("WPNAV_SPEED", 500.0, 7, 300))

        assert msg.name == "WPNAV_SPEED"
        assert msg.value == 500.0
        assert msg.index == 7
        assert msg.count == 300
        assert msg.param_type == ParamType.REAL32

    def test_value_is_float32(self):
        """Values are carried with float32 precision."""
        msg = parse_param_value(build_param_value_payload("GAIN", 0.1, 0, 1))

        assert msg.value == to_float32(0.1)
        assert msg.value != 0.1

    def test_wrong_length(self):
        """Payloads of the wrong size are rejected."""
        with pytest.raises(DecodeError):
            parse_param_value(bytes(24))

    def test_empty_name(self):
        """A PARAM_VALUE without a name is rejected."""
        payload = struct.pack("<fHH", 1.0, 1, 0) + bytes(16) + b"\x09"
        with pytest.raises(DecodeError, match="empty"):
            parse_param_value(payload)

    def test_non_ascii_name(self):
        """A PARAM_VALUE whose name is not ASCII is rejected."""
        payload = struct.pack("<fHH", 1.0, 1, 0) + b"AB\xff\xfe" + bytes(12) + b"\x09"
        with pytest.raises(DecodeError):
            parse_param_value(payload)


class TestHeartbeat:
    """Tests for HEARTBEAT payloads."""

    def test_parse(self):
        """Fields follow the custom_mode-first wire order."""
        payload = build_heartbeat_payload(vehicle_type=2, autopilot=3, base_mode=81, custom_mode=4, system_status=4)
        hb = parse_heartbeat(payload)

        assert len(payload) == 9
        assert hb.type == 2
        assert hb.autopilot == 3
        assert hb.base_mode == 81
        assert hb.custom_mode == 4
        assert hb.system_status == 4
        assert hb.mavlink_version == 3

    def test_wrong_length(self):
        """Payloads of the wrong size are rejected."""
        with pytest.raises(DecodeError):
            parse_heartbeat(bytes(8))


class TestPacketCodec:
    """Tests for PacketCodec."""

    def test_identity_on_every_packet(self):
        """Packets carry the configured sender identity."""
        codec = PacketCodec(system_id=250, component_id=191, target_system=3, target_component=4)
        frame = Frame.from_bytes(codec.request_list())

        assert frame.system_id == 250
        assert frame.component_id == 191
        assert frame.message_id == MessageId.PARAM_REQUEST_LIST
        assert frame.payload == b"\x03\x04"

    def test_request_read_by_index(self):
        """request_read(index=...) encodes a read by index."""
        frame = Frame.from_bytes(PacketCodec().request_read(index=12))

        assert frame.message_id == MessageId.PARAM_REQUEST_READ
        assert parse_request_read(frame.payload) == (12, "")

    def test_param_set(self):
        """param_set encodes a REAL32 PARAM_SET."""
        frame = Frame.from_bytes(PacketCodec().param_set("RTL_ALT", 2000))

        assert frame.message_id == MessageId.PARAM_SET
        assert parse_param_set(frame.payload) == ("RTL_ALT", 2000.0, ParamType.REAL32)

    def test_invalid_value_does_not_consume_sequence(self):
        """A rejected PARAM_SET leaves the sequence counter alone."""
        codec = PacketCodec()
        with pytest.raises(ValueError):
            codec.param_set("RTL_ALT", math.nan)

        assert codec.sequence == 0
