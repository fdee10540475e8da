"""Full parameter-list download coordination.

A download session sends PARAM_REQUEST_LIST, tracks which ordinal indices
have arrived against the count the vehicle advertises, re-requests missing
indices one by one when the stream goes quiet, and resolves exactly once:

- completed, when every advertised index has arrived;
- timed out, when the stream stays idle after the retry budget is spent
  (still a successful outcome if any value arrived), or when the overall
  deadline passes (a failed outcome);
- failed, when the coordinator is reset while the session is running.
"""

import asyncio
import logging

from pydantic import ValidationError

from mavparam_gateway.core.cache import ParameterCache
from mavparam_gateway.core.events import EventChannel
from mavparam_gateway.core.models import DownloadState, DownloadStatus, Parameter
from mavparam_gateway.protocol.codec import PacketCodec, ParamValue
from mavparam_gateway.protocol.constants import DOWNLOAD_DEADLINE, IDLE_TIMEOUT, MAX_RETRIES

logger = logging.getLogger(__name__)

# Largest index a PARAM_REQUEST_READ can carry (int16 field)
_MAX_READ_INDEX = 0x7FFF


class DownloadSession:
    """Tracking state for one refresh cycle."""

    def __init__(self, session_id: int, started_at: float):
        self.session_id = session_id
        self.started_at = started_at
        self.expected_count: int | None = None
        self.received: set[int] = set()
        self.missing: set[int] = set()
        self.retry_attempts = 0
        self.values_received = 0
        self.last_value_at = started_at
        self.completion_raised = False
        self.outcome: bool | None = None
        self.done = asyncio.Event()
        self.monitor_task: asyncio.Task | None = None
        self.deadline_task: asyncio.Task | None = None

    @property
    def target_met(self) -> bool:
        return self.expected_count is not None and len(self.received) >= self.expected_count

    def cancel_tasks(self) -> None:
        """Cancel the session's background tasks, except the calling one."""
        current = asyncio.current_task()
        for task in (self.monitor_task, self.deadline_task):
            if task is not None and not task.done() and task is not current:
                task.cancel()


class DownloadCoordinator:
    """Drives PARAM_REQUEST_LIST downloads into the parameter cache."""

    def __init__(
        self,
        transport,
        codec: PacketCodec,
        cache: ParameterCache,
        idle_timeout: float = IDLE_TIMEOUT,
        deadline: float = DOWNLOAD_DEADLINE,
        max_retries: int = MAX_RETRIES,
    ):
        """Initialize download coordinator.

        Args:
            transport: Link used to send requests (``send()`` and ``connected``).
            codec: Packet encoder shared with the other coordinators.
            cache: Parameter cache to update.
            idle_timeout: Idle window, also the monitor tick.
            deadline: Overall bound on one session.
            max_retries: Retry rounds for missing indices.
        """
        self._transport = transport
        self._codec = codec
        self._cache = cache
        self._idle_timeout = idle_timeout
        self._deadline = deadline
        self._max_retries = max_retries

        self.started = EventChannel("download-started")
        self.progress = EventChannel("download-progress-changed")
        self.completed = EventChannel("download-completed")

        self._lock = asyncio.Lock()
        self._session: DownloadSession | None = None
        self._state = DownloadState.IDLE
        self._next_session_id = 1

    # -- status --------------------------------------------------------------

    @property
    def state(self) -> DownloadState:
        return self._state

    @property
    def in_progress(self) -> bool:
        return self._state == DownloadState.DOWNLOADING

    @property
    def complete(self) -> bool:
        """Whether the last session finished with a successful outcome."""
        session = self._session
        return session is not None and session.completion_raised and session.outcome is True

    @property
    def expected_count(self) -> int | None:
        return self._session.expected_count if self._session else None

    @property
    def received_count(self) -> int:
        return len(self._session.received) if self._session else 0

    @property
    def received_indices(self) -> frozenset[int]:
        return frozenset(self._session.received) if self._session else frozenset()

    @property
    def missing_indices(self) -> frozenset[int]:
        return frozenset(self._session.missing) if self._session else frozenset()

    @property
    def retry_attempts(self) -> int:
        return self._session.retry_attempts if self._session else 0

    def status(self) -> DownloadStatus:
        """Snapshot for the REST layer."""
        session = self._session
        return DownloadStatus(
            state=self._state,
            received=len(session.received) if session else 0,
            expected=session.expected_count if session else None,
            missing=len(session.missing) if session else 0,
            retry_attempts=session.retry_attempts if session else 0,
            in_progress=self.in_progress,
            complete=self.complete,
        )

    # -- session lifecycle ---------------------------------------------------

    async def refresh(self) -> bool:
        """Start a new download, superseding any running one.

        Returns:
            True if PARAM_REQUEST_LIST was sent and the session is running.
        """
        if not self._transport.connected:
            logger.warning("Cannot refresh parameters, not connected")
            return False

        loop = asyncio.get_running_loop()

        async with self._lock:
            previous = self._session
            if previous is not None and self._state == DownloadState.DOWNLOADING:
                # Superseded sessions resolve their waiters but raise no event
                logger.info("Superseding download session %d", previous.session_id)
                self._finish_locked(previous, DownloadState.IDLE, False)
                previous.done.set()

            session = DownloadSession(self._next_session_id, loop.time())
            self._next_session_id += 1
            self._session = session
            self._state = DownloadState.DOWNLOADING

            if not await self._transport.send(self._codec.request_list()):
                logger.warning("Failed to send parameter list request")
                self._finish_locked(session, DownloadState.IDLE, False)
                session.done.set()
                self._session = None
                return False

            session.monitor_task = asyncio.create_task(self._monitor(session))
            session.deadline_task = asyncio.create_task(self._deadline_timer(session))

        logger.info("Parameter download %d started", session.session_id)
        self.started.emit()
        self.progress.emit(0, None)
        return True

    async def wait_for_completion(self, timeout: float | None = None) -> bool:
        """Wait for the current session to resolve.

        Returns:
            The session outcome; False when there is no session or on timeout.
        """
        session = self._session
        if session is None:
            return False
        try:
            await asyncio.wait_for(session.done.wait(), timeout)
        except TimeoutError:
            return False
        return bool(session.outcome)

    async def reset(self) -> None:
        """Cancel any session, clear the cache, and report an interrupted download."""
        async with self._lock:
            session = self._session
            interrupted = False
            if session is not None:
                if self._state == DownloadState.DOWNLOADING:
                    interrupted = self._finish_locked(session, DownloadState.IDLE, False)
                session.cancel_tasks()
            self._session = None
            self._state = DownloadState.IDLE

        await self._cache.clear()

        if interrupted and session is not None:
            logger.warning("Parameter download %d interrupted by reset", session.session_id)
            self._announce(session)

    async def close(self) -> None:
        """Stop background tasks without touching the cache."""
        session = self._session
        if session is None:
            return
        session.cancel_tasks()
        for task in (session.monitor_task, session.deadline_task):
            if task is not None and task is not asyncio.current_task():
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    def _finish_locked(self, session: DownloadSession, state: DownloadState, success: bool) -> bool:
        """Move a session to a terminal state. Returns False if it already was."""
        if session.completion_raised:
            return False
        session.completion_raised = True
        session.outcome = success
        self._state = state
        session.cancel_tasks()
        return True

    def _announce(self, session: DownloadSession) -> None:
        session.done.set()
        logger.info(
            "Parameter download %d finished (%s): %d/%s received",
            session.session_id,
            "success" if session.outcome else "failure",
            len(session.received),
            session.expected_count if session.expected_count is not None else "?",
        )
        self.completed.emit(bool(session.outcome))

    # -- inbound values ------------------------------------------------------

    async def handle_value(self, msg: ParamValue) -> None:
        """Record a PARAM_VALUE in the cache and, if downloading, in the session."""
        try:
            param = Parameter(
                name=msg.name,
                value=msg.value,
                index=msg.index,
                count=msg.count or None,
                param_type=msg.param_type,
            )
        except ValidationError as e:
            logger.warning("Dropping invalid PARAM_VALUE %r: %s", msg.name, e)
            return

        await self._cache.set(param)

        progress = None
        finished = False
        async with self._lock:
            session = self._session
            if session is None or self._state != DownloadState.DOWNLOADING:
                return

            self._track_locked(session, msg)
            session.last_value_at = asyncio.get_running_loop().time()
            session.retry_attempts = 0
            progress = (len(session.received), session.expected_count)

            if session.target_met:
                finished = self._finish_locked(session, DownloadState.COMPLETED, True)

        self.progress.emit(*progress)
        if finished:
            self._announce(session)

    def _track_locked(self, session: DownloadSession, msg: ParamValue) -> None:
        session.values_received += 1

        if session.expected_count is None:
            if msg.count > 0:
                session.expected_count = msg.count
                stray = {i for i in session.received if i >= msg.count}
                if stray:
                    logger.warning("Discarding %d indices beyond advertised count %d", len(stray), msg.count)
                    session.received -= stray
                session.missing = set(range(msg.count)) - session.received
                logger.debug("Vehicle advertises %d parameters", msg.count)
        elif msg.count != session.expected_count:
            logger.warning(
                "Advertised parameter count changed from %d to %d, keeping %d",
                session.expected_count,
                msg.count,
                session.expected_count,
            )

        expected = session.expected_count
        if expected is None or msg.index < expected:
            session.received.add(msg.index)
            session.missing.discard(msg.index)
        else:
            logger.warning("Parameter %s index %d outside advertised count %d", msg.name, msg.index, expected)

    # -- background tasks ----------------------------------------------------

    async def _monitor(self, session: DownloadSession) -> None:
        """Idle monitor: complete, retry missing indices, or give up."""
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(self._idle_timeout)

            packets: list[bytes] = []
            finished = False
            async with self._lock:
                if session is not self._session or session.completion_raised:
                    return

                if session.target_met:
                    finished = self._finish_locked(session, DownloadState.COMPLETED, True)
                elif loop.time() - session.last_value_at >= self._idle_timeout:
                    if session.retry_attempts < self._max_retries and (session.missing or not session.values_received):
                        session.retry_attempts += 1
                        packets = self._retry_packets_locked(session)
                    else:
                        finished = self._finish_locked(
                            session, DownloadState.TIMED_OUT, session.values_received > 0
                        )

            if finished:
                self._announce(session)
                return

            for packet in packets:
                if not await self._transport.send(packet):
                    logger.warning("Retry request could not be sent")
                    break

    def _retry_packets_locked(self, session: DownloadSession) -> list[bytes]:
        if not session.missing:
            # Nothing has arrived at all, so the list request itself was lost
            logger.warning(
                "No parameters received, re-sending list request (attempt %d/%d)",
                session.retry_attempts,
                self._max_retries,
            )
            return [self._codec.request_list()]

        indices = sorted(i for i in session.missing if i <= _MAX_READ_INDEX)
        logger.warning(
            "Requesting %d missing parameters (attempt %d/%d)",
            len(indices),
            session.retry_attempts,
            self._max_retries,
        )
        return [self._codec.request_read(index=i) for i in indices]

    async def _deadline_timer(self, session: DownloadSession) -> None:
        """Overall deadline, independent of the idle monitor."""
        await asyncio.sleep(self._deadline)
        async with self._lock:
            if session is not self._session:
                return
            finished = self._finish_locked(session, DownloadState.TIMED_OUT, False)
            if finished:
                session.received.clear()
                session.missing.clear()

        if finished:
            logger.warning("Parameter download %d exceeded %.0fs deadline", session.session_id, self._deadline)
            self._announce(session)
