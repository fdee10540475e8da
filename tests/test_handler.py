"""Unit tests for the protocol handler."""

import asyncio

import pytest
from conftest import FAST_TIMINGS, FakeTransport, FakeVehicle, heartbeat_frame, value_frame

from mavparam_gateway.core.cache import ParameterCache
from mavparam_gateway.core.models import DownloadState
from mavparam_gateway.protocol.constants import MessageId
from mavparam_gateway.protocol.frames import Frame
from mavparam_gateway.protocol.handler import ProtocolHandler


class TestInit:
    """Tests for handler wiring."""

    def test_installs_frame_handler(self, transport, cache):
        """The handler receives the transport's frames and state changes."""
        handler = ProtocolHandler(transport, cache, auto_refresh=False)

        assert transport.frame_handler == handler.handle_frame
        assert transport.state_changed.subscriber_count == 1

    @pytest.mark.asyncio
    async def test_close_detaches(self, transport, cache):
        """close removes the frame handler and subscription."""
        handler = ProtocolHandler(transport, cache, auto_refresh=False)

        await handler.close()

        assert transport.frame_handler is None
        assert transport.state_changed.subscriber_count == 0


class TestHandleFrame:
    """Tests for inbound frame routing."""

    @pytest.mark.asyncio
    async def test_heartbeat_records_liveness(self, handler, transport):
        """A vehicle HEARTBEAT refreshes the link and is kept."""
        await handler.handle_frame(heartbeat_frame())

        assert transport.heartbeats == 1
        assert handler.last_heartbeat.autopilot == 3
        assert handler.stats["heartbeats"] == 1

    @pytest.mark.asyncio
    async def test_heartbeat_from_other_system_ignored(self, handler, transport):
        """HEARTBEATs from other systems do not count as liveness."""
        await handler.handle_frame(heartbeat_frame(system_id=255))

        assert transport.heartbeats == 0
        assert handler.last_heartbeat is None
        assert handler.stats["frames_ignored"] == 1

    @pytest.mark.asyncio
    async def test_param_value_cached(self, handler, cache):
        """A PARAM_VALUE updates the cache and notifies subscribers."""
        updated = []
        handler.parameter_updated.subscribe(updated.append)

        await handler.handle_frame(value_frame("RTL_ALT", 1500.0, 4, 10))

        param = await handler.get_parameter("rtl_alt")
        assert param.value == 1500.0
        assert param.index == 4
        assert param.count == 10
        assert updated == ["RTL_ALT"]
        assert [p.name for p in await handler.get_all_parameters()] == ["RTL_ALT"]

    @pytest.mark.asyncio
    async def test_param_value_from_other_system_ignored(self, handler, cache):
        """PARAM_VALUEs from other systems are dropped."""
        await handler.handle_frame(value_frame("RTL_ALT", 1500.0, 0, 1, system_id=2))

        assert cache.count == 0

    @pytest.mark.asyncio
    async def test_malformed_param_value(self, handler, cache):
        """A PARAM_VALUE with a bad payload is counted and dropped."""
        frame = Frame(message_id=MessageId.PARAM_VALUE, payload=bytes(25), system_id=1, component_id=1)

        await handler.handle_frame(frame)

        assert cache.count == 0
        assert handler.stats["frames_rejected"] == 1

    @pytest.mark.asyncio
    async def test_other_messages_ignored(self, handler, cache):
        """Messages the gateway only sends are ignored when received."""
        frame = Frame(message_id=MessageId.PARAM_REQUEST_LIST, payload=b"\x01\x01", system_id=1, component_id=1)

        await handler.handle_frame(frame)

        assert handler.stats["frames_ignored"] == 1


class TestRefresh:
    """Tests for full downloads through the handler."""

    @pytest.mark.asyncio
    async def test_refresh_and_wait(self, handler, cache, vehicle):
        """A full download fills the cache."""
        assert await handler.refresh_parameters(wait=True, timeout=2.0) is True

        assert cache.count == 5
        assert handler.download_status().state == DownloadState.COMPLETED
        assert (await handler.get_parameter("BATT_CAPACITY")).value == 5200.0

    @pytest.mark.asyncio
    async def test_refresh_recovers_dropped_values(self, handler, cache, transport, vehicle):
        """Values missing from the list reply are fetched by index."""
        vehicle.list_drops = {1, 3}

        assert await handler.refresh_parameters(wait=True, timeout=2.0) is True

        assert cache.count == 5
        assert handler.download.state == DownloadState.COMPLETED
        assert len(transport.sent_of(MessageId.PARAM_REQUEST_READ)) == 2

    @pytest.mark.asyncio
    async def test_refresh_with_lost_values(self, handler, cache, vehicle):
        """Permanently lost values end the download with what arrived."""
        vehicle.lost = {2}

        assert await handler.refresh_parameters(wait=True, timeout=2.0) is True

        assert cache.count == 4
        assert handler.download.state == DownloadState.TIMED_OUT
        assert handler.download.missing_indices == frozenset({2})

    @pytest.mark.asyncio
    async def test_refresh_not_connected(self, handler, transport):
        """refresh fails without a link."""
        transport.connected = False
        assert await handler.refresh_parameters() is False


class TestConnectionChanges:
    """Tests for reactions to link state."""

    @pytest.mark.asyncio
    async def test_auto_refresh_on_connect(self, cache):
        """Connecting starts a download when auto_refresh is set."""
        transport = FakeTransport()
        vehicle = FakeVehicle({"RTL_ALT": 1500.0, "ANGLE_MAX": 4500.0})
        handler = ProtocolHandler(transport, cache, **FAST_TIMINGS)
        vehicle.attach(transport, handler)

        transport.state_changed.emit(True)
        await transport.state_changed.drain()

        assert await handler.wait_for_download(timeout=2.0) is True
        assert cache.count == 2

    @pytest.mark.asyncio
    async def test_no_auto_refresh(self, handler, transport):
        """With auto_refresh off nothing is sent on connect."""
        transport.state_changed.emit(True)
        await transport.state_changed.drain()

        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_disconnect_resets(self, handler, transport, cache, vehicle):
        """Losing the link clears the cache and fails the running download."""
        completed = []
        handler.download.completed.subscribe(completed.append)
        vehicle.silent = True
        await handler.handle_frame(heartbeat_frame())
        await handler.handle_frame(value_frame("RTL_ALT", 1500.0, 0, 5))
        await handler.refresh_parameters()

        transport.connected = False
        transport.state_changed.emit(False)
        await transport.state_changed.drain()

        assert completed == [False]
        assert cache.count == 0
        assert handler.last_heartbeat is None
        assert handler.download.state == DownloadState.IDLE


class TestEndToEnd:
    """Download, write, and re-read against one simulated vehicle."""

    @pytest.mark.asyncio
    async def test_download_then_write(self):
        """A written value is visible in the cache and on the vehicle."""
        transport = FakeTransport()
        cache = ParameterCache()
        vehicle = FakeVehicle({f"PARAM_{i:02d}": float(i) for i in range(40)})
        vehicle.list_drops = {5, 17, 33}
        handler = ProtocolHandler(transport, cache, auto_refresh=False, **FAST_TIMINGS)
        vehicle.attach(transport, handler)

        assert await handler.refresh_parameters(wait=True, timeout=2.0) is True
        assert cache.count == 40

        assert await handler.set_parameter("PARAM_17", 170.5) is True
        assert vehicle.params["PARAM_17"] == 170.5

        param = await handler.read_parameter("PARAM_17")
        assert param.value == 170.5
        assert param.index == 17

        await asyncio.sleep(0)
        await handler.close()
