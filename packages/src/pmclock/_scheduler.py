"""The PM clock scheduler — a single serially-processing asyncio actor.

:class:`ClockScheduler` owns the observer registry and two recurring
absolute-time timers (one per :class:`~pmclock._dispatch.TickClass`).
Every input reaches it as a message on one :class:`asyncio.Queue` and
is handled to completion before the next one is taken, so the registry
and the armed deadlines need no locking.

Messages::

    RegisterObservers(name, binding)   → registry insert/replace
    UnregisterObservers(name)          → registry remove (no-op if absent)
    TimerFired(event, generation)      → dispatch, re-arm at deadline + period
    OffsetChanged(offset_ms)           → resync and re-arm both classes
    anything else                      → logged at DEBUG, ignored

Each arming of a class bumps that class's *generation*.  An offset change
re-arms both classes, so a tick from the previous arming that was
already queued arrives with a stale generation and never re-arms; the
resynchronised deadline stays in force.  Offset changes always win.
The stale tick is still dispatched when its wall-clock boundary lies
before the one now armed.  When the resync landed on the same boundary
or an earlier one (a small backward step), it is dropped, and the new
timer delivers that boundary instead.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from pmclock._alignment import (
    advance,
    next_daily_boundary,
    next_quarter_boundary,
    resync,
)
from pmclock._clock import ClockPort
from pmclock._dispatch import DispatchRouter, TickClass, TickEvent
from pmclock._errors import AlreadyRunningError, NotRunningError
from pmclock._offset import OffsetSource, OffsetSubscription
from pmclock._registry import ObserverBinding, ObserverRegistry
from pmclock._settings import DEFAULT_SCHEDULE, SchedulerSettings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RegisterObservers:
    name: str
    binding: ObserverBinding


@dataclass(frozen=True, slots=True)
class UnregisterObservers:
    name: str


@dataclass(frozen=True, slots=True)
class TimerFired:
    """A timer reached its deadline.  Produced by the timer tasks only."""

    event: TickEvent
    generation: int


@dataclass(frozen=True, slots=True)
class OffsetChanged:
    offset_ms: int


def _utc_from_ms(system_time_ms: int) -> datetime:
    seconds, millis = divmod(system_time_ms, 1000)
    return datetime.fromtimestamp(seconds, tz=UTC).replace(microsecond=millis * 1000)


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class ClockScheduler:
    """Clock-aligned 15-minute / 24-hour tick scheduler.

    Args:
        settings: Tick periods.  Immutable for the scheduler's lifetime.
        clock: Clock providing monotonic time, system time and offset.
        offset_source: Source of clock offset-change notifications.
            Subscribed to once in :meth:`start`.
        router: Dispatch router; a default one is created when omitted.
        name: Well-known name of this scheduler, used in logs and by
            :class:`~pmclock._service.ServiceRegistry`.
    """

    def __init__(
        self,
        settings: SchedulerSettings = DEFAULT_SCHEDULE,
        *,
        clock: ClockPort,
        offset_source: OffsetSource,
        router: DispatchRouter | None = None,
        name: str = "pmclock",
    ) -> None:
        self._settings = settings
        self._clock = clock
        self._offset_source = offset_source
        self._router = router if router is not None else DispatchRouter()
        self._name = name
        self._periods: dict[TickClass, int] = {
            TickClass.MIN15: settings.period_15m,
            TickClass.HOUR24: settings.period_24h,
        }
        self._registry = ObserverRegistry()
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._armed: dict[TickClass, TickEvent] = {}
        self._generations: dict[TickClass, int] = dict.fromkeys(TickClass, 0)
        self._timers: dict[TickClass, asyncio.Task[None]] = {}
        self._subscription: OffsetSubscription | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopped = False

    # -- Read-only properties -----------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def settings(self) -> SchedulerSettings:
        return self._settings

    @property
    def router(self) -> DispatchRouter:
        return self._router

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def deadlines(self) -> dict[TickClass, int]:
        """Currently armed absolute deadline (monotonic ms) per class."""
        return {cls: event.deadline_ms for cls, event in self._armed.items()}

    @property
    def observers(self) -> list[str]:
        """Names of the registered observers."""
        return self._registry.names()

    def binding(self, name: str) -> ObserverBinding | None:
        return self._registry.get(name)

    # -- Lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to offset changes, arm both timers, start the actor.

        Raises:
            AlreadyRunningError: If this scheduler is already running.
            NotRunningError: If this scheduler was stopped; a stopped
                scheduler is not restarted, a new one is created instead.
        """
        if self._stopped:
            msg = f"scheduler '{self._name}' was stopped and cannot be restarted"
            raise NotRunningError(msg)
        if self._task is not None:
            raise AlreadyRunningError(self._name)

        self._subscription = self._offset_source.subscribe(self._on_offset_change)

        offset_ms = self._clock.time_offset_ms()
        system_ms = self._clock.system_time_ms()
        deadline_15m = next_quarter_boundary(
            _utc_from_ms(system_ms),
            self._settings.period_15m,
            system_time_ms=system_ms,
            offset_ms=offset_ms,
        )
        deadline_24h = next_daily_boundary(
            self._settings.daily_hour,
            system_time_ms=system_ms,
            offset_ms=offset_ms,
        )
        self._arm(TickClass.MIN15, deadline_15m, offset_ms)
        self._arm(TickClass.HOUR24, deadline_24h, offset_ms)

        logger.info(
            "Scheduler '%s' started: 15m tick at %d ms, 24h tick at %d ms",
            self._name,
            deadline_15m,
            deadline_24h,
            extra={
                "period_15m": self._settings.period_15m,
                "period_24h": self._settings.period_24h,
                "monotonic_ms": self._clock.monotonic_ms(),
                "system_time_ms": system_ms,
                "offset_ms": offset_ms,
            },
        )
        self._task = asyncio.create_task(self._run(), name=f"pmclock:{self._name}")

    async def stop(self) -> None:
        """Tear down the actor, both timers and the offset subscription."""
        if self._stopped:
            return
        self._stopped = True
        if self._subscription is not None:
            self._subscription.cancel()
        tasks = [*self._timers.values()]
        if self._task is not None:
            tasks.append(self._task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._router.cancel_pending()
        logger.info("Scheduler '%s' stopped", self._name)

    async def wait_closed(self) -> None:
        """Block until the actor task has ended (stop or crash)."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.shield(self._task)

    # -- Messaging ----------------------------------------------------------

    def send(self, message: object) -> None:
        """Enqueue *message* without waiting for it to be handled.

        Raises:
            NotRunningError: If the scheduler is not running.
        """
        if not self.running:
            msg = f"scheduler '{self._name}' is not running"
            raise NotRunningError(msg)
        self._queue.put_nowait(message)

    def register_monitors(self, name: str, binding: ObserverBinding) -> None:
        """Register or replace observer *name*; takes effect asynchronously.

        Raises:
            TypeError: If *binding* is not an :class:`ObserverBinding`.
            NotRunningError: If the scheduler is not running.
        """
        if not isinstance(binding, ObserverBinding):
            msg = (
                f"observer '{name}' must be bound with an ObserverBinding, "
                f"got {type(binding).__name__}"
            )
            raise TypeError(msg)
        self.send(RegisterObservers(name, binding))

    def unregister_monitors(self, name: str) -> None:
        """Remove observer *name*; takes effect asynchronously."""
        self.send(UnregisterObservers(name))

    def _on_offset_change(self, offset_ms: int) -> None:
        if self.running:
            self._queue.put_nowait(OffsetChanged(offset_ms))

    # -- Actor --------------------------------------------------------------

    async def _run(self) -> None:
        try:
            while True:
                message = await self._queue.get()
                self._handle(message)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduler '%s' terminated", self._name)
            raise

    def _handle(self, message: object) -> None:
        match message:
            case RegisterObservers(name=name, binding=binding):
                self._registry.register(name, binding)
                logger.debug("Observer '%s' registered", name)
            case UnregisterObservers(name=name):
                self._registry.unregister(name)
                logger.debug("Observer '%s' unregistered", name)
            case TimerFired(event=event, generation=generation):
                self._on_tick(event, generation)
            case OffsetChanged(offset_ms=offset_ms):
                self._on_offset_changed(offset_ms)
            case _:
                logger.debug(
                    "Scheduler '%s' ignored unexpected message %r",
                    self._name,
                    message,
                )

    def _on_tick(self, event: TickEvent, generation: int) -> None:
        current = generation == self._generations[event.tick_class]
        if not current and event.wall_ms >= self._armed[event.tick_class].wall_ms:
            # The resynchronised timer delivers this boundary itself.
            logger.debug(
                "Superseded %s tick for %d ms dropped, boundary re-armed at %d ms",
                event.tick_class,
                event.deadline_ms,
                self._armed[event.tick_class].deadline_ms,
            )
            return
        invoked = self._router.dispatch(
            event.tick_class,
            event.deadline_ms,
            self._registry.items(),
        )
        if not current:
            logger.debug(
                "Superseded %s tick for %d ms dispatched without re-arming",
                event.tick_class,
                event.deadline_ms,
            )
            return
        next_deadline = advance(event.deadline_ms, event.period_ms)
        logger.debug(
            "%s tick for %d ms delivered to %d endpoints, next at %d ms",
            event.tick_class,
            event.deadline_ms,
            invoked,
            next_deadline,
            extra={
                "tick_class": str(event.tick_class),
                "late_ms": self._clock.monotonic_ms() - event.deadline_ms,
                "delta_period_ms": next_deadline - event.deadline_ms,
            },
        )
        self._arm(event.tick_class, next_deadline, event.offset_ms)

    def _on_offset_changed(self, offset_ms: int) -> None:
        system_ms = self._clock.system_time_ms()
        for tick_class, period_s in self._periods.items():
            self._arm(
                tick_class, resync(system_ms, offset_ms, period_s * 1000), offset_ms
            )
        logger.debug(
            "Time offset changed to %d ms, timers re-armed",
            offset_ms,
            extra={
                "offset_ms": offset_ms,
                "deadline_15m": self._armed[TickClass.MIN15].deadline_ms,
                "deadline_24h": self._armed[TickClass.HOUR24].deadline_ms,
            },
        )

    # -- Timers -------------------------------------------------------------

    def _arm(self, tick_class: TickClass, deadline_ms: int, offset_ms: int) -> None:
        """Arm *tick_class* for *deadline_ms*, replacing any armed timer."""
        event = TickEvent(tick_class, self._periods[tick_class], deadline_ms, offset_ms)
        self._generations[tick_class] += 1
        previous = self._timers.get(tick_class)
        if previous is not None:
            previous.cancel()
        self._armed[tick_class] = event
        self._timers[tick_class] = asyncio.create_task(
            self._timer(event, self._generations[tick_class]),
            name=f"pmclock:{self._name}:{tick_class}",
        )

    async def _timer(self, event: TickEvent, generation: int) -> None:
        await self._clock.sleep_until(event.deadline_ms)
        self._queue.put_nowait(TimerFired(event, generation))
