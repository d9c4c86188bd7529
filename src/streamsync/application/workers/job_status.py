"""Push-based job status channels.

Hey future me - this replaces the "live data" idea with plain asyncio queues.

- JobStatusChannel: one per job lineage (periodic) or per adhoc run. Remembers
  the LAST state and replays it to every new subscriber.
- StatusSubscription: async iterator over states. It NEVER ends on its own -
  only close() (or leaving ``async with``) ends it and unregisters it, so
  subscribers can't leak.
- JobHandle: what sync_now() returns. Lets the caller watch or await one run.

Usage:
    async with scheduler.get_sync_status() as states:
        async for state in states:
            render(state)
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from streamsync.domain.entities import JobIdentity, JobState, SyncOutcome
from streamsync.domain.exceptions import InvalidStateException

logger = logging.getLogger(__name__)

_CLOSED = object()


class StatusSubscription:
    """One subscriber's view of a status channel."""

    def __init__(self, channel: "JobStatusChannel") -> None:
        self._channel = channel
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, state: JobState) -> None:
        if not self._closed:
            self._queue.put_nowait(state)

    def pending(self) -> list[JobState]:
        """Drain states already delivered but not yet consumed (non-blocking)."""
        states: list[JobState] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                break
            states.append(item)
        return states

    async def next(self, timeout: float | None = None) -> JobState:
        """Wait for the next state.

        Raises:
            StopAsyncIteration: If the subscription was closed
            TimeoutError: If ``timeout`` elapses first
        """
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await asyncio.wait_for(self._queue.get(), timeout)
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        """Unsubscribe. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._channel._unsubscribe(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[JobState]:
        return self

    async def __anext__(self) -> JobState:
        return await self.next()

    async def __aenter__(self) -> "StatusSubscription":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()


class JobStatusChannel:
    """Fan-out of JobState transitions with last-state replay."""

    def __init__(self, name: str, initial: JobState | None = None) -> None:
        self.name = name
        self._last: JobState | None = initial
        self._subscribers: list[StatusSubscription] = []

    @property
    def last(self) -> JobState | None:
        return self._last

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, state: JobState) -> None:
        self._last = state
        for subscription in list(self._subscribers):
            subscription._push(state)
        logger.debug(f"Job status '{self.name}' → {state.value}")

    def subscribe(self) -> StatusSubscription:
        """Register a subscriber; it immediately receives the last known state."""
        subscription = StatusSubscription(self)
        self._subscribers.append(subscription)
        if self._last is not None:
            subscription._push(self._last)
        return subscription

    def _unsubscribe(self, subscription: StatusSubscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)


class JobHandle:
    """Handle to one job registration returned to the caller.

    Hey future me - the handle is bound to a registration_id. If a periodic
    registration gets replaced, the OLD handle is finished with CANCELLED and
    never sees the new registration's states.
    """

    def __init__(
        self,
        identity: JobIdentity,
        registration_id: str,
        channel: JobStatusChannel,
    ) -> None:
        self.identity = identity
        self.registration_id = registration_id
        self._channel = channel
        self._done = asyncio.Event()
        self._final_state: JobState | None = None
        self.outcome: SyncOutcome | None = None
        self.run_ids: list[str] = []

    @property
    def state(self) -> JobState:
        if self._final_state is not None:
            return self._final_state
        return self._channel.last or JobState.NOT_SCHEDULED

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def subscribe(self) -> StatusSubscription:
        return self._channel.subscribe()

    def _finish(self, state: JobState, outcome: SyncOutcome | None = None) -> None:
        if self._done.is_set():
            return
        self._final_state = state
        if outcome is not None:
            self.outcome = outcome
        self._done.set()

    async def wait(self, timeout: float | None = None) -> JobState:
        """Wait until the registration reaches a terminal state.

        Args:
            timeout: Seconds to wait, None waits forever

        Returns:
            The terminal JobState (SUCCEEDED, FAILED or CANCELLED)

        Raises:
            TimeoutError: If timeout elapses first
            InvalidStateException: If the handle was released without a final state
        """
        await asyncio.wait_for(self._done.wait(), timeout)
        if self._final_state is None:
            raise InvalidStateException(
                f"Handle {self.registration_id} finished without a terminal state"
            )
        return self._final_state

    def __repr__(self) -> str:
        return (
            f"JobHandle(identity={self.identity.value}, "
            f"registration_id={self.registration_id}, state={self.state.value})"
        )
