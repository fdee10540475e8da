"""Byte-stream transport layer (serial and TCP)."""

from mavparam_gateway.transport.connection import MAVLinkTransport
from mavparam_gateway.transport.protocol import MAVLinkProtocol

__all__ = ["MAVLinkProtocol", "MAVLinkTransport"]
