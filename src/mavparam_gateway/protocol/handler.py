"""Protocol handler tying the vehicle link to the parameter cache."""

import asyncio
import logging

from mavparam_gateway.core.cache import ParameterCache
from mavparam_gateway.core.events import EventChannel
from mavparam_gateway.core.models import DownloadStatus, Parameter
from mavparam_gateway.protocol.codec import Heartbeat, PacketCodec, parse_heartbeat, parse_param_value
from mavparam_gateway.protocol.constants import (
    DOWNLOAD_DEADLINE,
    IDLE_TIMEOUT,
    MAX_RETRIES,
    PERSISTENCE_DELAY,
    VALUE_TOLERANCE,
    VERIFY_TIMEOUT,
    WRITE_TIMEOUT,
    MessageId,
)
from mavparam_gateway.protocol.download import DownloadCoordinator
from mavparam_gateway.protocol.frames import DecodeError, Frame
from mavparam_gateway.protocol.write import WriteCoordinator

logger = logging.getLogger(__name__)


class ProtocolHandler:
    """Routes inbound frames and exposes parameter operations.

    Installs itself as the transport's frame handler, so every frame is
    processed on the transport's dispatch task. HEARTBEATs from the target
    system keep the link alive; PARAM_VALUEs update the cache and resolve
    any download or write waiting on them.

    The handler also reacts to connection changes: a new connection starts
    a download (when ``auto_refresh`` is set) and a lost one cancels all
    outstanding work and clears the cache.
    """

    def __init__(
        self,
        transport,
        cache: ParameterCache,
        codec: PacketCodec | None = None,
        *,
        idle_timeout: float = IDLE_TIMEOUT,
        download_deadline: float = DOWNLOAD_DEADLINE,
        max_retries: int = MAX_RETRIES,
        write_timeout: float = WRITE_TIMEOUT,
        verify_timeout: float = VERIFY_TIMEOUT,
        persistence_delay: float = PERSISTENCE_DELAY,
        tolerance: float = VALUE_TOLERANCE,
        auto_refresh: bool = True,
    ):
        """
        Initialize protocol handler.

        Args:
            transport: Vehicle link (``MAVLinkTransport`` or compatible)
            cache: Parameter cache to populate
            codec: Packet encoder, a default GCS identity when omitted
            auto_refresh: Start a download whenever the link comes up
        """
        self.transport = transport
        self.cache = cache
        self.codec = codec or PacketCodec()
        self.auto_refresh = auto_refresh

        self.download = DownloadCoordinator(
            transport,
            self.codec,
            cache,
            idle_timeout=idle_timeout,
            deadline=download_deadline,
            max_retries=max_retries,
        )
        self.writes = WriteCoordinator(
            transport,
            self.codec,
            cache,
            write_timeout=write_timeout,
            verify_timeout=verify_timeout,
            persistence_delay=persistence_delay,
            tolerance=tolerance,
        )
        self.parameter_updated = EventChannel("parameter-updated")

        self._last_heartbeat: Heartbeat | None = None
        self._stats = {
            "heartbeats": 0,
            "param_values": 0,
            "frames_ignored": 0,
            "frames_rejected": 0,
        }

        transport.frame_handler = self.handle_frame
        self._unsubscribe = transport.state_changed.subscribe(self._on_connection_changed)

    @property
    def connected(self) -> bool:
        return self.transport.connected

    @property
    def last_heartbeat(self) -> Heartbeat | None:
        """Most recent HEARTBEAT from the target system."""
        return self._last_heartbeat

    @property
    def stats(self) -> dict:
        return self._stats.copy()

    # -- inbound -------------------------------------------------------------

    async def handle_frame(self, frame: Frame) -> None:
        """Process one inbound frame."""
        if frame.system_id != self.codec.target_system:
            self._stats["frames_ignored"] += 1
            logger.debug("Ignoring %s from system %d", frame, frame.system_id)
            return

        if frame.message_id == MessageId.HEARTBEAT:
            try:
                self._last_heartbeat = parse_heartbeat(frame.payload)
            except DecodeError as e:
                self._stats["frames_rejected"] += 1
                logger.warning("Bad HEARTBEAT: %s", e)
                return
            self._stats["heartbeats"] += 1
            self.transport.record_heartbeat()

        elif frame.message_id == MessageId.PARAM_VALUE:
            try:
                msg = parse_param_value(frame.payload)
            except DecodeError as e:
                self._stats["frames_rejected"] += 1
                logger.warning("Bad PARAM_VALUE: %s", e)
                return
            self._stats["param_values"] += 1
            logger.debug("PARAM_VALUE %s = %s (%d/%d)", msg.name, msg.value, msg.index, msg.count)

            # Cache first, so waiters resolved below read the new value
            await self.download.handle_value(msg)
            await self.writes.handle_value(msg)
            self.parameter_updated.emit(msg.name)

        else:
            self._stats["frames_ignored"] += 1

    async def _on_connection_changed(self, connected: bool) -> None:
        if connected:
            if self.auto_refresh:
                await self.refresh_parameters()
        else:
            logger.info("Vehicle link lost, clearing parameters")
            await self.reset()

    # -- operations ----------------------------------------------------------

    async def get_parameter(self, name: str) -> Parameter | None:
        """Cached parameter by name (case-insensitive)."""
        return await self.cache.get(name)

    async def get_all_parameters(self) -> list[Parameter]:
        """All cached parameters sorted by name."""
        return await self.cache.get_all()

    async def set_parameter(self, name: str, value: float) -> bool:
        """Write a parameter and verify it. See ``WriteCoordinator.set_parameter``."""
        return await self.writes.set_parameter(name, value)

    async def read_parameter(self, name: str, timeout: float | None = None) -> Parameter | None:
        """Re-read one parameter from the vehicle, bypassing the cache."""
        return await self.writes.read_parameter(name, timeout)

    async def refresh_parameters(self, wait: bool = False, timeout: float | None = None) -> bool:
        """
        Start a full parameter download.

        Args:
            wait: Block until the download resolves
            timeout: Bound on the wait; the download itself keeps running

        Returns:
            Whether the download started, or with ``wait`` its outcome
        """
        if not await self.download.refresh():
            return False
        if not wait:
            return True
        return await self.wait_for_download(timeout)

    async def wait_for_download(self, timeout: float | None = None) -> bool:
        """Wait for the current download to resolve and return its outcome."""
        return await self.download.wait_for_completion(timeout)

    def download_status(self) -> DownloadStatus:
        return self.download.status()

    async def reset(self) -> None:
        """Cancel outstanding writes and downloads and clear the cache."""
        await self.writes.cancel_all()
        await self.download.reset()
        self._last_heartbeat = None

    async def close(self) -> None:
        """Detach from the transport and stop background work."""
        self._unsubscribe()
        if self.transport.frame_handler == self.handle_frame:
            self.transport.frame_handler = None
        await self.writes.cancel_all()
        await self.download.close()
        await asyncio.gather(
            self.transport.state_changed.drain(),
            self.download.completed.drain(),
            return_exceptions=True,
        )
