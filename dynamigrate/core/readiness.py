"""Polling until an external resource is ready.

The waiter knows nothing about tables or stacks. It is given a probe that
returns a :class:`ReadinessState`, a fixed interval, an attempt budget and a
predicate saying which state counts as ready.
"""

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from dynamigrate.core.exceptions import ReadinessTimeoutError, WaitCancelledError
from dynamigrate.core.tables import ReadinessState

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[ReadinessState]]
ReadyPredicate = Callable[[ReadinessState], bool]
Sleep = Callable[[float], Awaitable[None]]


def is_active(state: ReadinessState) -> bool:
    return state.is_active


def is_gone(state: ReadinessState) -> bool:
    return state.is_not_found


class WaitState(str, enum.Enum):
    WAITING = "waiting"
    READY = "ready"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class WaitOutcome:
    """Terminal result of a wait.

    Attributes:
        resource: Description of the polled resource
        state: READY, TIMED_OUT or CANCELLED
        attempts: Number of probes performed
        last_state: The last state returned by the probe
    """

    resource: str
    state: WaitState
    attempts: int
    last_state: ReadinessState | None = None

    @property
    def ready(self) -> bool:
        return self.state is WaitState.READY

    def raise_for_state(self) -> None:
        """Raise if the wait did not end in READY."""
        last = str(self.last_state) if self.last_state else None
        if self.state is WaitState.CANCELLED:
            raise WaitCancelledError(self.resource, self.attempts, last)
        if self.state is not WaitState.READY:
            raise ReadinessTimeoutError(self.resource, self.attempts, last)


class ReadinessWaiter:
    """Poll a probe until it reports ready or the attempt budget runs out.

    On each tick the probe is called once. If the predicate accepts the
    state the wait ends READY. If ``max_attempts`` probes have been made it
    ends TIMED_OUT. Otherwise the waiter sleeps ``interval`` seconds and
    probes again. NotFound and Transitioning states never end the wait on
    their own.

    Example:
        >>> waiter = ReadinessWaiter(lambda: client.describe("box-table"),
        ...                          interval=2, max_attempts=60)
        >>> outcome = await waiter.wait("table box-table")
    """

    def __init__(
        self,
        probe: Probe,
        interval: float,
        max_attempts: int,
        predicate: ReadyPredicate = is_active,
        sleep: Sleep | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        """Initialize the waiter.

        Args:
            probe: Coroutine function returning the current state
            interval: Seconds between probes
            max_attempts: Maximum number of probes
            predicate: Which state counts as ready
            sleep: Sleep coroutine, ``asyncio.sleep`` by default
            cancel_event: Setting this event ends the wait as CANCELLED
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.probe = probe
        self.interval = interval
        self.max_attempts = max_attempts
        self.predicate = predicate
        self.sleep = sleep or asyncio.sleep
        self.cancel_event = cancel_event
        self.state = WaitState.WAITING

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    async def _pause(self) -> None:
        if self.cancel_event is None:
            await self.sleep(self.interval)
            return

        # Wake early if cancellation is requested mid-sleep
        sleeper = asyncio.ensure_future(self.sleep(self.interval))
        canceller = asyncio.ensure_future(self.cancel_event.wait())
        try:
            await asyncio.wait(
                {sleeper, canceller}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (sleeper, canceller):
                if not task.done():
                    task.cancel()

    async def wait(self, resource: str = "resource") -> WaitOutcome:
        """Run the wait to completion.

        Args:
            resource: Description used in logs and errors

        Returns:
            The terminal WaitOutcome
        """
        self.state = WaitState.WAITING
        attempts = 0
        last_state = None

        while True:
            if self._cancelled():
                self.state = WaitState.CANCELLED
                break

            attempts += 1
            last_state = await self.probe()

            if self.predicate(last_state):
                self.state = WaitState.READY
                logger.info(f"{resource} is ready after {attempts} attempt(s)")
                break

            if attempts >= self.max_attempts:
                self.state = WaitState.TIMED_OUT
                logger.error(
                    f"{resource} not ready after {attempts} attempts (last state: {last_state})"
                )
                break

            logger.debug(f"{resource} status: {last_state} ({attempts}/{self.max_attempts})")
            await self._pause()

        return WaitOutcome(
            resource=resource,
            state=self.state,
            attempts=attempts,
            last_state=last_state,
        )

    async def wait_or_raise(self, resource: str = "resource") -> WaitOutcome:
        """Like :meth:`wait` but raise unless the resource became ready.

        Raises:
            ReadinessTimeoutError: If the attempt budget ran out
            WaitCancelledError: If the cancellation token was set
        """
        outcome = await self.wait(resource)
        outcome.raise_for_state()
        return outcome
