"""Vehicle link management over serial or TCP.

Serial ports are opened through pyserial-asyncio, TCP sockets through the
event loop directly; both feed the same ``MAVLinkProtocol`` so everything
above this layer is independent of the medium.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

import serial
import serial_asyncio

from mavparam_gateway.core.events import EventChannel
from mavparam_gateway.core.models import ConnectionSettings, ConnectionType
from mavparam_gateway.protocol.constants import CONNECT_TIMEOUT, HEARTBEAT_INTERVAL, HEARTBEAT_TIMEOUT
from mavparam_gateway.protocol.frames import Frame
from mavparam_gateway.transport.protocol import MAVLinkProtocol

logger = logging.getLogger(__name__)

FrameHandler = Callable[[Frame], Awaitable[None]]


async def _cancel_task(task: asyncio.Task | None) -> None:
    """Cancel a background task and wait for it, unless it is the caller."""
    if task is None or task.done() or task is asyncio.current_task():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


class MAVLinkTransport:
    """Owns one live byte-stream connection to the vehicle.

    Inbound packets are handed one at a time to ``frame_handler`` by a
    single dispatch task, so frame processing is serialised per connection.
    A heartbeat monitor disconnects the link when no liveness signal
    (``record_heartbeat()``) has been seen for ``heartbeat_timeout`` seconds.

    ``state_changed`` fires with ``True``/``False`` on every actual
    transition, including forced disconnects.
    """

    def __init__(
        self,
        heartbeat_timeout: float = HEARTBEAT_TIMEOUT,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        connect_timeout: float = CONNECT_TIMEOUT,
    ):
        """
        Initialize the transport.

        Args:
            heartbeat_timeout: Seconds of silence after which the link is dropped
            heartbeat_interval: Seconds between liveness checks
            connect_timeout: Bound on opening the serial port or TCP socket
        """
        self.heartbeat_timeout = heartbeat_timeout
        self.heartbeat_interval = heartbeat_interval
        self.connect_timeout = connect_timeout

        self.state_changed = EventChannel("connection-state-changed")
        self.frame_handler: FrameHandler | None = None

        self._transport: asyncio.BaseTransport | None = None
        self._protocol: MAVLinkProtocol | None = None
        self._settings: ConnectionSettings | None = None
        self._connected = False
        self._last_heartbeat = 0.0
        self._heartbeat_task: asyncio.Task | None = None
        self._dispatch_task: asyncio.Task | None = None
        self._closing_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        """Check if currently connected."""
        return self._connected and self._protocol is not None and self._protocol.connected

    def is_connected(self) -> bool:
        return self.connected

    @property
    def settings(self) -> ConnectionSettings | None:
        """Settings of the current (or most recent) connection."""
        return self._settings

    @property
    def protocol(self) -> MAVLinkProtocol | None:
        return self._protocol

    @property
    def last_heartbeat_age(self) -> float | None:
        """Seconds since the last liveness signal, None when disconnected."""
        if not self._connected:
            return None
        return asyncio.get_running_loop().time() - self._last_heartbeat

    def record_heartbeat(self) -> None:
        """Mark the link as alive now."""
        self._last_heartbeat = asyncio.get_running_loop().time()

    async def connect(self, settings: ConnectionSettings) -> bool:
        """
        Open the link described by ``settings``.

        Any existing connection is closed first.

        Returns:
            True if connection successful, False otherwise
        """
        async with self._lock:
            was_connected = await self._close_locked()
            if was_connected:
                self.state_changed.emit(False)

            self._settings = settings
            logger.info("Connecting via %s to %s", settings.kind.value, settings.describe())

            try:
                if settings.kind == ConnectionType.TCP:
                    transport, protocol = await asyncio.wait_for(self._open_tcp(settings), self.connect_timeout)
                else:
                    transport, protocol = await asyncio.wait_for(self._open_serial(settings), self.connect_timeout)
            except (OSError, serial.SerialException, TimeoutError, ValueError) as e:
                logger.error("Failed to connect to %s: %s", settings.describe(), e)
                self._transport = None
                self._protocol = None
                return False

            self._transport = transport
            self._protocol = protocol
            self._connected = True
            self.record_heartbeat()
            self._dispatch_task = asyncio.create_task(self._dispatch_loop(protocol))
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

        logger.info("Connected to %s", settings.describe())
        self.state_changed.emit(True)
        return True

    async def _open_tcp(self, settings: ConnectionSettings) -> tuple[asyncio.BaseTransport, MAVLinkProtocol]:
        loop = asyncio.get_running_loop()
        return await loop.create_connection(MAVLinkProtocol, settings.host, settings.port)

    async def _open_serial(self, settings: ConnectionSettings) -> tuple[asyncio.BaseTransport, MAVLinkProtocol]:
        loop = asyncio.get_running_loop()
        return await serial_asyncio.create_serial_connection(
            loop,
            MAVLinkProtocol,
            settings.port_name,
            baudrate=settings.baud_rate,
        )

    async def disconnect(self) -> None:
        """Close the link. Calling it while already disconnected is a no-op."""
        async with self._lock:
            was_connected = await self._close_locked()

        if was_connected:
            self.state_changed.emit(False)

    async def _close_locked(self) -> bool:
        """Stop monitors and release the handle. Returns True on an actual transition."""
        if not self._connected:
            return False

        endpoint = self._settings.describe() if self._settings else "vehicle"
        logger.info("Disconnecting from %s", endpoint)
        self._connected = False

        await _cancel_task(self._heartbeat_task)
        await _cancel_task(self._dispatch_task)
        self._heartbeat_task = None
        self._dispatch_task = None

        if self._transport is not None:
            try:
                self._transport.close()
            except Exception as e:
                logger.error("Error closing transport: %s", e)

        self._transport = None
        self._protocol = None
        logger.info("Disconnected from %s", endpoint)
        return True

    async def send(self, data: bytes) -> bool:
        """
        Send one encoded packet.

        Returns:
            True if the packet was handed to the link, False when unavailable
        """
        protocol = self._protocol
        if not self.connected or protocol is None:
            logger.debug("Send skipped, not connected")
            return False

        try:
            return await protocol.write_packet(data)
        except (OSError, serial.SerialException, RuntimeError) as e:
            logger.error("Write error: %s", e)
            return False

    async def _heartbeat_loop(self) -> None:
        """Disconnect when the liveness timestamp goes stale."""
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            silence = loop.time() - self._last_heartbeat
            if silence > self.heartbeat_timeout:
                logger.warning("Heartbeat timeout (%.1fs without a heartbeat), disconnecting", silence)
                await self.disconnect()
                return

    async def _dispatch_loop(self, protocol: MAVLinkProtocol) -> None:
        """Hand inbound frames to the frame handler, one at a time."""
        while True:
            frame = await protocol.receive_frame()
            if frame is None:
                logger.warning("Link closed by peer")
                # Disconnect from a separate task; disconnect() cancels this one.
                self._closing_task = asyncio.create_task(self.disconnect())
                return

            if self.frame_handler is None:
                continue
            try:
                await self.frame_handler(frame)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error handling %s: %s", frame, e)

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
