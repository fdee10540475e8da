"""Parameter write and forced-read coordination.

Writes follow the same recipe every ground station uses with MAVLink v1:
send PARAM_SET, wait for the vehicle to echo the new value as PARAM_VALUE,
fall back to an explicit PARAM_REQUEST_READ when the echo is lost, then
re-read once more after a short delay so the value is known to have
persisted.
"""

import asyncio
import logging
import math

from mavparam_gateway.core.cache import ParameterCache
from mavparam_gateway.core.models import Parameter
from mavparam_gateway.protocol.codec import PacketCodec, ParamValue, to_float32
from mavparam_gateway.protocol.constants import (
    PARAM_ID_LEN,
    PERSISTENCE_DELAY,
    VALUE_TOLERANCE,
    VERIFY_TIMEOUT,
    WRITE_TIMEOUT,
)

logger = logging.getLogger(__name__)


def _key(name: str) -> str:
    return name.strip().upper()


class PendingRequest:
    """A caller waiting for the next PARAM_VALUE carrying ``name``.

    Non-strict waiters ignore values that do not match ``expected`` (the
    vehicle may still be reporting the old value); strict waiters fail on
    them. An ``expected`` of None accepts any value.
    """

    def __init__(self, name: str, expected: float | None, strict: bool):
        self.name = name
        self.expected = expected
        self.strict = strict
        self.cancelled = False
        self.future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()


class WriteCoordinator:
    """Correlates outgoing PARAM_SET / PARAM_REQUEST_READ with PARAM_VALUE replies."""

    def __init__(
        self,
        transport,
        codec: PacketCodec,
        cache: ParameterCache,
        write_timeout: float = WRITE_TIMEOUT,
        verify_timeout: float = VERIFY_TIMEOUT,
        persistence_delay: float = PERSISTENCE_DELAY,
        tolerance: float = VALUE_TOLERANCE,
    ):
        self._transport = transport
        self._codec = codec
        self._cache = cache
        self.write_timeout = write_timeout
        self.verify_timeout = verify_timeout
        self.persistence_delay = persistence_delay
        self.tolerance = tolerance

        self._pending: dict[str, list[PendingRequest]] = {}
        self._lock = asyncio.Lock()
        # Bumped by cancel_all; a write started under an older generation is void
        self._generation = 0

    def matches(self, actual: float, expected: float) -> bool:
        """Float comparison used for confirmation and verification."""
        if math.isnan(actual) or math.isnan(expected):
            return False
        return abs(actual - expected) < self.tolerance

    @property
    def pending_count(self) -> int:
        return sum(len(waiters) for waiters in self._pending.values())

    async def set_parameter(self, name: str, value: float) -> bool:
        """
        Write a parameter and verify the vehicle stored it.

        Args:
            name: Parameter name (at most 16 characters)
            value: New value, sent as float32

        Returns:
            True only if the final read-back matches ``value``
        """
        if not self._transport.connected:
            logger.warning("Cannot set %s, not connected", name)
            return False
        if len(name) > PARAM_ID_LEN:
            logger.warning("Parameter name %r exceeds %d characters", name, PARAM_ID_LEN)
            return False

        try:
            packet = self._codec.param_set(name, value)
        except ValueError as e:
            logger.warning("Cannot set %s to %r: %s", name, value, e)
            return False
        expected = to_float32(value)
        generation = self._generation

        waiter = await self._register(name, expected, strict=False)
        try:
            if not await self._transport.send(packet):
                logger.warning("Failed to send PARAM_SET for %s", name)
                return False
            confirmed = await self._wait(waiter, self.write_timeout)
        finally:
            await self._unregister(waiter)

        if self._cancelled(waiter, generation):
            logger.warning("Write of %s cancelled", name)
            return False

        if confirmed:
            logger.debug("%s confirmed by PARAM_VALUE echo", name)
        else:
            logger.warning("No confirmation for %s within %.1fs, re-reading", name, self.write_timeout)
            if not await self._verify(name, expected, generation):
                return False

        await asyncio.sleep(self.persistence_delay)
        if self._generation != generation:
            logger.warning("Write of %s cancelled", name)
            return False

        if not await self._verify(name, expected, generation):
            logger.warning("Final verification failed for %s", name)
            return False

        logger.info("Parameter %s set to %s", name, expected)
        return True

    async def read_parameter(self, name: str, timeout: float | None = None) -> Parameter | None:
        """Force a PARAM_REQUEST_READ by name and return the fresh value."""
        if not self._transport.connected:
            logger.warning("Cannot read %s, not connected", name)
            return None
        if len(name) > PARAM_ID_LEN:
            logger.warning("Parameter name %r exceeds %d characters", name, PARAM_ID_LEN)
            return None

        generation = self._generation
        await self._cache.remove(name)
        waiter = await self._register(name, None, strict=False)
        try:
            if not await self._transport.send(self._codec.request_read(name=name)):
                return None
            received = await self._wait(waiter, timeout if timeout is not None else self.verify_timeout)
        finally:
            await self._unregister(waiter)

        if self._cancelled(waiter, generation):
            return None
        if not received:
            logger.warning("No reply reading %s", name)
            return None
        return await self._cache.get(name)

    async def _verify(self, name: str, expected: float, generation: int) -> bool:
        """Evict the cached value, re-read it, and compare strictly."""
        if self._generation != generation:
            return False
        await self._cache.remove(name)
        waiter = await self._register(name, expected, strict=True)
        try:
            if not await self._transport.send(self._codec.request_read(name=name)):
                logger.warning("Failed to send read-back request for %s", name)
                return False
            result = await self._wait(waiter, self.verify_timeout)
        finally:
            await self._unregister(waiter)

        if self._cancelled(waiter, generation):
            return False
        if result is None:
            logger.warning("Read-back of %s timed out after %.1fs", name, self.verify_timeout)
            return False
        return result

    def _cancelled(self, waiter: PendingRequest, generation: int) -> bool:
        return waiter.cancelled or self._generation != generation

    async def _register(self, name: str, expected: float | None, strict: bool) -> PendingRequest:
        waiter = PendingRequest(name, expected, strict)
        async with self._lock:
            self._pending.setdefault(_key(name), []).append(waiter)
        return waiter

    async def _unregister(self, waiter: PendingRequest) -> None:
        key = _key(waiter.name)
        async with self._lock:
            waiters = self._pending.get(key)
            if not waiters:
                return
            if waiter in waiters:
                waiters.remove(waiter)
            if not waiters:
                del self._pending[key]

    async def _wait(self, waiter: PendingRequest, timeout: float) -> bool | None:
        """Wait for a waiter's result; None on timeout."""
        try:
            return await asyncio.wait_for(waiter.future, timeout)
        except TimeoutError:
            return None

    async def handle_value(self, msg: ParamValue) -> None:
        """Resolve waiters for the parameter carried by ``msg``."""
        async with self._lock:
            waiters = list(self._pending.get(_key(msg.name), ()))

        for waiter in waiters:
            if waiter.future.done():
                continue
            if waiter.expected is None or self.matches(msg.value, waiter.expected):
                waiter.future.set_result(True)
            elif waiter.strict:
                logger.warning("%s reads back %s, expected %s", msg.name, msg.value, waiter.expected)
                waiter.future.set_result(False)
            else:
                logger.debug("%s still reports %s, waiting for %s", msg.name, msg.value, waiter.expected)

    async def cancel_all(self) -> None:
        """Resolve every outstanding write or read as failed, including writes between waits."""
        async with self._lock:
            self._generation += 1
            waiters = [w for group in self._pending.values() for w in group]

        for waiter in waiters:
            if not waiter.future.done():
                waiter.cancelled = True
                waiter.future.set_result(False)
        if waiters:
            logger.info("Cancelled %d pending parameter requests", len(waiters))
