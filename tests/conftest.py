"""Shared test fixtures."""

import asyncio

import pytest

from mavparam_gateway.core.cache import ParameterCache
from mavparam_gateway.core.events import EventChannel
from mavparam_gateway.protocol.codec import (
    PacketCodec,
    build_heartbeat_payload,
    build_param_value_payload,
    parse_param_set,
    parse_request_read,
    to_float32,
)
from mavparam_gateway.protocol.constants import MessageId
from mavparam_gateway.protocol.frames import Frame
from mavparam_gateway.protocol.handler import ProtocolHandler

VEHICLE_SYSTEM_ID = 1
VEHICLE_COMPONENT_ID = 1

# Short timings so state machines run in tens of milliseconds
FAST_TIMINGS = {
    "idle_timeout": 0.05,
    "download_deadline": 2.0,
    "max_retries": 3,
    "write_timeout": 0.1,
    "verify_timeout": 0.1,
    "persistence_delay": 0.01,
}


def value_frame(name: str, value: float, index: int, count: int, system_id: int = VEHICLE_SYSTEM_ID) -> Frame:
    """PARAM_VALUE frame as a vehicle would send it."""
    return Frame(
        message_id=MessageId.PARAM_VALUE,
        payload=build_param_value_payload(name, value, index, count),
        system_id=system_id,
        component_id=VEHICLE_COMPONENT_ID,
    )


def heartbeat_frame(system_id: int = VEHICLE_SYSTEM_ID) -> Frame:
    """HEARTBEAT frame as a vehicle would send it."""
    return Frame(
        message_id=MessageId.HEARTBEAT,
        payload=build_heartbeat_payload(),
        system_id=system_id,
        component_id=VEHICLE_COMPONENT_ID,
    )


class FakeTransport:
    """In-memory stand-in for MAVLinkTransport that records sent packets."""

    def __init__(self, connected: bool = True):
        self.connected = connected
        self.state_changed = EventChannel("test-connection-state")
        self.frame_handler = None
        self.sent: list[Frame] = []
        self.send_result = True
        self.heartbeats = 0
        self.on_send = None

    async def send(self, data: bytes) -> bool:
        if not self.connected or not self.send_result:
            return False
        frame = Frame.from_bytes(data)
        self.sent.append(frame)
        if self.on_send is not None:
            self.on_send(frame)
        return True

    def record_heartbeat(self) -> None:
        self.heartbeats += 1

    def sent_of(self, message_id: MessageId) -> list[Frame]:
        return [f for f in self.sent if f.message_id == message_id]


class FakeVehicle:
    """Scripted autopilot answering parameter requests.

    Replies are delivered from a separate task, the way a real link hands
    them to the dispatch loop, never from inside ``send()``.
    """

    def __init__(self, params: dict[str, float]):
        self.params = {name: to_float32(value) for name, value in params.items()}
        self.list_drops: set[int] = set()  # missing from the list reply only
        self.lost: set[int] = set()  # never answered at all
        self.silent = False
        self.echo_sets = True
        self.store_sets = True
        self.persist_sets = True
        self.echo_stale_first = False
        self.target = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def names(self) -> list[str]:
        return list(self.params)

    def attach(self, transport: FakeTransport, handler: ProtocolHandler) -> None:
        transport.on_send = self.on_send
        self.target = handler.handle_frame

    def frame_for(self, name: str, value: float | None = None) -> Frame:
        names = self.names
        return value_frame(name, self.params[name] if value is None else value, names.index(name), len(names))

    def on_send(self, frame: Frame) -> None:
        if self.silent:
            return
        replies = self._replies(frame)
        if replies:
            task = asyncio.get_running_loop().create_task(self._deliver(replies))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def _replies(self, frame: Frame) -> list[Frame]:
        names = self.names
        if frame.message_id == MessageId.PARAM_REQUEST_LIST:
            return [self.frame_for(n) for i, n in enumerate(names) if i not in self.list_drops | self.lost]

        if frame.message_id == MessageId.PARAM_REQUEST_READ:
            index, name = parse_request_read(frame.payload)
            if index >= 0:
                if index >= len(names) or index in self.lost:
                    return []
                name = names[index]
            if name not in self.params or names.index(name) in self.lost:
                return []
            return [self.frame_for(name)]

        if frame.message_id == MessageId.PARAM_SET:
            name, value, _ = parse_param_set(frame.payload)
            if name not in self.params:
                return []
            old = self.params[name]
            if self.store_sets and self.persist_sets:
                self.params[name] = value
            replies = []
            if self.echo_stale_first:
                replies.append(self.frame_for(name, old))
            if self.echo_sets:
                replies.append(self.frame_for(name, value if self.store_sets else old))
            return replies

        return []

    async def _deliver(self, frames: list[Frame]) -> None:
        for frame in frames:
            await self.target(frame)


@pytest.fixture
def cache() -> ParameterCache:
    """Empty parameter cache."""
    return ParameterCache()


@pytest.fixture
def codec() -> PacketCodec:
    """Codec with the default ground-station identity."""
    return PacketCodec()


@pytest.fixture
def transport() -> FakeTransport:
    """Connected fake transport."""
    return FakeTransport()


@pytest.fixture
def vehicle() -> FakeVehicle:
    """Vehicle with five parameters."""
    return FakeVehicle(
        {
            "RTL_ALT": 1500.0,
            "WPNAV_SPEED": 500.0,
            "BATT_CAPACITY": 5200.0,
            "FS_THR_ENABLE": 1.0,
            "ANGLE_MAX": 4500.0,
        }
    )


@pytest.fixture
def handler(transport, cache, codec, vehicle) -> ProtocolHandler:
    """Handler wired to the fake transport and vehicle, without auto refresh."""
    h = ProtocolHandler(transport, cache, codec, auto_refresh=False, **FAST_TIMINGS)
    vehicle.attach(transport, h)
    return h
