"""
Payment confirmation poller.

SePay has no push channel towards the checkout page, so completion is
detected by asking the booking API for the payment status on a fixed
interval until it reports success/failure or the session times out.

States: idle -> polling -> succeeded | failed | timed_out.
Every request is tagged with the epoch active when it was issued; a response
is applied only if that epoch is still current, so a slow response from before
a restart() can never overwrite the new session.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx

from .client import BookingApiError
from .resolver import resolve_status
from .types import PaymentStatus

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 4.0
DEFAULT_POLL_TIMEOUT = 120.0

# Errors that mean "no news this tick", never a failed payment
TRANSPORT_ERRORS = (httpx.HTTPError, BookingApiError)

StatusFetcher = Callable[[str], Awaitable[Any]]


class PollerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (PollerState.SUCCEEDED, PollerState.FAILED, PollerState.TIMED_OUT)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Timer port: run `callback` (a coroutine function) after `delay` seconds."""

    def call_later(self, delay: float, callback: Callable[[], Awaitable[None]]) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._tasks: set[asyncio.Task] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], Awaitable[None]]) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, self._spawn, callback)

    def _spawn(self, callback: Callable[[], Awaitable[None]]) -> None:
        task = self.loop.create_task(callback())
        # Keep a strong reference until the task finishes
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(_log_task_failure)


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"[Poller] Scheduled callback failed: {exc!r}", exc_info=exc)


@dataclass(frozen=True)
class PollerSnapshot:
    """Observable state of a poller at one point in time."""

    booking_id: str
    state: PollerState
    epoch: int
    attempts: int
    elapsed: float
    last_status: Optional[PaymentStatus] = None
    last_payload: Any = None


Listener = Callable[[PollerSnapshot], None]


class ConfirmationPoller:
    """
    Per-booking confirmation state machine.

    The poller never owns a timer directly: ticks are scheduled through the
    injected Scheduler and wall time comes from the injected clock, so tests
    drive it with a manual scheduler and a fake clock.
    """

    def __init__(
        self,
        booking_id: str,
        fetch_status: StatusFetcher,
        scheduler: Scheduler,
        clock: Callable[[], float] = time.monotonic,
        interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_POLL_TIMEOUT,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        self.booking_id = str(booking_id)
        self.interval = interval
        self.timeout = timeout
        self._fetch_status = fetch_status
        self._scheduler = scheduler
        self._clock = clock

        self._state = PollerState.IDLE
        self._epoch = 0
        self._attempts = 0
        self._started_at: Optional[float] = None
        self._timer: Optional[TimerHandle] = None
        self._in_flight: Optional[int] = None
        self._cancelled = False
        self._last_status: Optional[PaymentStatus] = None
        self._last_payload: Any = None
        self._listeners: list[Listener] = []

    # ============== Observation ==============

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def last_payload(self) -> Any:
        return self._last_payload

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return max(0.0, self._clock() - self._started_at)

    def snapshot(self) -> PollerSnapshot:
        return PollerSnapshot(
            booking_id=self.booking_id,
            state=self._state,
            epoch=self._epoch,
            attempts=self._attempts,
            elapsed=self.elapsed,
            last_status=self._last_status,
            last_payload=self._last_payload,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called after every state change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ============== Commands ==============

    def start(self) -> None:
        """Begin polling unless a session is already running."""
        if self._cancelled:
            logger.warning(f"[Poller] start() on cancelled poller for booking {self.booking_id}")
            return
        if self._state == PollerState.POLLING:
            return
        self._begin()

    def restart(self) -> None:
        """Start a new session from any state; in-flight results of older epochs are dropped."""
        if self._cancelled:
            logger.warning(f"[Poller] restart() on cancelled poller for booking {self.booking_id}")
            return
        self._begin()

    def cancel(self) -> None:
        """Stop for good: no timer fires and no response is applied after this."""
        if self._cancelled:
            return
        self._cancelled = True
        self._clear_timer()
        self._listeners.clear()
        logger.info(f"[Poller] Cancelled booking {self.booking_id} at epoch {self._epoch}")

    async def tick(self) -> None:
        """Issue one status request and apply its result."""
        if self._cancelled or self._state != PollerState.POLLING:
            return
        epoch = self._epoch
        if self._in_flight == epoch:
            return

        self._clear_timer()
        self._in_flight = epoch
        self._attempts += 1
        logger.debug(f"[Poller] Booking {self.booking_id} epoch {epoch} attempt {self._attempts}")

        try:
            payload = await self._fetch_status(self.booking_id)
        except TRANSPORT_ERRORS as e:
            logger.warning(f"[Poller] Status request failed for booking {self.booking_id}: {e}")
            payload = None
        except Exception:
            logger.exception(f"[Poller] Unexpected error polling booking {self.booking_id}")
            payload = None
        finally:
            if self._in_flight == epoch:
                self._in_flight = None

        self._apply(epoch, payload)

    # ============== Internals ==============

    def _begin(self) -> None:
        self._clear_timer()
        self._epoch += 1
        self._attempts = 0
        self._started_at = self._clock()
        self._last_status = None
        self._last_payload = None
        self._state = PollerState.POLLING
        logger.info(f"[Poller] Polling booking {self.booking_id} (epoch {self._epoch})")
        self._notify()
        self._schedule(0)

    def _apply(self, epoch: int, payload: Any) -> bool:
        if self._cancelled:
            logger.debug(f"[Poller] Dropping response for cancelled booking {self.booking_id}")
            return False
        if epoch != self._epoch:
            logger.debug(f"[Poller] Dropping stale response (epoch {epoch}, current {self._epoch})")
            return False
        if self._state != PollerState.POLLING:
            return False

        if payload is not None:
            status = resolve_status(payload)
            self._last_payload = payload
            self._last_status = status
            if status == PaymentStatus.SUCCESS:
                self._finish(PollerState.SUCCEEDED)
                return True
            if status == PaymentStatus.FAILED:
                self._finish(PollerState.FAILED)
                return True

        if self.elapsed >= self.timeout:
            self._finish(PollerState.TIMED_OUT)
            return True

        self._notify()
        self._schedule(self.interval)
        return True

    def _finish(self, state: PollerState) -> None:
        self._clear_timer()
        self._state = state
        logger.info(
            f"[Poller] Booking {self.booking_id} {state.value} after {self._attempts} attempts "
            f"({self.elapsed:.1f}s)"
        )
        self._notify()

    def _schedule(self, delay: float) -> None:
        self._clear_timer()
        self._timer = self._scheduler.call_later(delay, self.tick)

    def _clear_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception(f"[Poller] Listener failed for booking {self.booking_id}")
