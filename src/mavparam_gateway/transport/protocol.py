"""asyncio.Protocol implementation for MAVLink v1 stream framing."""

import asyncio
import logging

from mavparam_gateway.protocol.constants import CHECKSUM_LEN, HEADER_LEN, PACKET_MIN_LEN, STX
from mavparam_gateway.protocol.frames import DecodeError, Frame, UnknownMessageError

logger = logging.getLogger(__name__)

_QUEUE_MAXSIZE = 256


class MAVLinkProtocol(asyncio.Protocol):
    """Event-driven MAVLink packet parser and writer.

    Receives raw bytes via ``data_received()``, extracts complete packets,
    and places them on an asyncio.Queue for a single consumer. Works the
    same over serial (pyserial-asyncio) and TCP transports.
    """

    def __init__(self) -> None:
        self._transport: asyncio.BaseTransport | None = None
        self._rx_buffer = bytearray()
        self._frame_queue: asyncio.Queue[Frame | None] = asyncio.Queue(maxsize=_QUEUE_MAXSIZE)
        self._write_lock = asyncio.Lock()
        self._stats = {
            "frames_read": 0,
            "frames_invalid": 0,
            "frames_skipped": 0,
            "bytes_read": 0,
            "frames_written": 0,
        }

    # -- asyncio.Protocol callbacks ------------------------------------------

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport
        logger.debug("MAVLinkProtocol: connection made")

    def connection_lost(self, exc: Exception | None) -> None:
        self._transport = None
        # Push sentinel so any pending receive_frame() unblocks.
        try:
            self._frame_queue.put_nowait(None)
        except asyncio.QueueFull:
            self._frame_queue.get_nowait()
            self._frame_queue.put_nowait(None)
        logger.debug("MAVLinkProtocol: connection lost (exc=%s)", exc)

    def data_received(self, data: bytes) -> None:
        self._rx_buffer.extend(data)
        self._stats["bytes_read"] += len(data)
        while True:
            frame = self._extract_frame()
            if frame is None:
                break
            self._stats["frames_read"] += 1
            if self._frame_queue.full():
                # Drop oldest frame to make room.
                try:
                    self._frame_queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            try:
                self._frame_queue.put_nowait(frame)
            except asyncio.QueueFull:
                pass

    # -- frame extraction ----------------------------------------------------

    def _extract_frame(self) -> Frame | None:
        while len(self._rx_buffer) >= PACKET_MIN_LEN:
            stx_idx = self._rx_buffer.find(STX)
            if stx_idx == -1:
                logger.debug("No STX marker found, discarding %d bytes", len(self._rx_buffer))
                self._rx_buffer.clear()
                return None

            if stx_idx > 0:
                logger.debug("Discarding %d bytes before STX marker", stx_idx)
                del self._rx_buffer[:stx_idx]
                continue

            frame_length = self._rx_buffer[1] + HEADER_LEN + CHECKSUM_LEN
            if len(self._rx_buffer) < frame_length:
                return None

            frame_data = bytes(self._rx_buffer[:frame_length])
            try:
                frame = Frame.from_bytes(frame_data)
            except UnknownMessageError as e:
                # Well framed but not ours: skip the whole packet
                logger.debug("Skipping packet: %s", e)
                del self._rx_buffer[:frame_length]
                self._stats["frames_skipped"] += 1
                continue
            except DecodeError as e:
                logger.warning("Dropping packet: %s (hex: %s)", e, frame_data.hex())
                # Resynchronise on the next STX after this one
                del self._rx_buffer[0]
                self._stats["frames_invalid"] += 1
                continue

            del self._rx_buffer[:frame_length]
            return frame

        return None

    # -- public API ----------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    @property
    def stats(self) -> dict:
        return self._stats.copy()

    async def receive_frame(self) -> Frame | None:
        """Wait for the next parsed frame.

        Returns ``None`` when a disconnect sentinel is received.
        """
        return await self._frame_queue.get()

    async def write_packet(self, data: bytes) -> bool:
        """Write one encoded packet onto the transport.

        Returns True on success, False when the transport is unavailable.
        """
        async with self._write_lock:
            if not self.connected:
                return False

            self._transport.write(data)  # type: ignore[union-attr]
            self._stats["frames_written"] += 1
            logger.debug("Packet written (hex: %s)", data.hex())
            return True
