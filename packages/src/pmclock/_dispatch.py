"""Tick value messages and fan-out to observer endpoints.

The router maps a tick class onto the endpoints of every registered
binding::

    15m  → current_window, historical_window
    24h  → current_day

Invocation is fire-and-forget.  Plain functions are called directly;
awaitables returned by coroutine endpoints are scheduled as background
tasks and never awaited by the scheduler.  Any failure is handed to the
:class:`~pmclock._errors.ErrorReporter` and goes no further.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from pmclock._errors import ErrorReporter
from pmclock._registry import ObserverBinding

logger = logging.getLogger(__name__)


class TickClass(StrEnum):
    """The two boundary classes raised by the PM clock."""

    MIN15 = "15m"
    HOUR24 = "24h"


@dataclass(frozen=True, slots=True)
class TickEvent:
    """One scheduled boundary, carried through the timer untouched.

    ``deadline_ms`` is the *intended* absolute monotonic deadline; the
    next deadline is derived from it, never from the time the timer
    actually fired.  ``offset_ms`` is the clock offset the deadline was
    computed with, so ``wall_ms`` names the wall-clock boundary even
    after the offset has moved on.
    """

    tick_class: TickClass
    period_s: int
    deadline_ms: int
    offset_ms: int = 0

    @property
    def period_ms(self) -> int:
        return self.period_s * 1000

    @property
    def wall_ms(self) -> int:
        """Wall-clock boundary this event stands for (ms since epoch)."""
        return self.deadline_ms + self.offset_ms


_ENDPOINTS: dict[TickClass, tuple[str, ...]] = {
    TickClass.MIN15: ("current_window", "historical_window"),
    TickClass.HOUR24: ("current_day",),
}


class DispatchRouter:
    """Invokes the endpoints relevant to a tick class.

    Args:
        reporter: Receives endpoint failures.  A default
            :class:`ErrorReporter` (log only) is used when omitted.
    """

    def __init__(self, *, reporter: ErrorReporter | None = None) -> None:
        self._reporter = reporter if reporter is not None else ErrorReporter()
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def reporter(self) -> ErrorReporter:
        return self._reporter

    @property
    def pending(self) -> int:
        """Number of asynchronous endpoint calls still running."""
        return len(self._pending)

    def dispatch(
        self,
        tick_class: TickClass,
        start_time: int,
        observers: Iterable[tuple[str, ObserverBinding]],
    ) -> int:
        """Deliver one tick to every binding exposing a matching endpoint.

        Bindings missing an endpoint for *tick_class* are skipped
        silently.

        Args:
            tick_class: Class of the tick being delivered.
            start_time: Nominal boundary instant (monotonic ms).
            observers: ``(name, binding)`` pairs, usually a registry
                snapshot.

        Returns:
            Number of endpoints invoked.
        """
        invoked = 0
        for name, binding in observers:
            for attr in _ENDPOINTS[tick_class]:
                endpoint = getattr(binding, attr)
                if endpoint is None:
                    continue
                invoked += 1
                self._invoke(endpoint, start_time, name, attr, tick_class)
        return invoked

    def _invoke(
        self,
        endpoint: object,
        start_time: int,
        observer: str,
        attr: str,
        tick_class: TickClass,
    ) -> None:
        try:
            result = endpoint(start_time)  # type: ignore[operator]
        except Exception as exc:
            self._reporter.report(
                exc, observer=observer, endpoint=attr, tick_class=tick_class
            )
            return
        if not inspect.isawaitable(result):
            return
        task = asyncio.ensure_future(result)
        self._pending.add(task)
        task.add_done_callback(
            lambda t: self._finished(t, observer, attr, tick_class),
        )

    def _finished(
        self,
        task: asyncio.Task[None],
        observer: str,
        attr: str,
        tick_class: TickClass,
    ) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._reporter.report(
                exc, observer=observer, endpoint=attr, tick_class=tick_class
            )

    async def drain(self) -> None:
        """Wait for outstanding asynchronous endpoint calls.

        Used at shutdown and in tests; the scheduler never calls this
        during normal dispatch.
        """
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()
