"""Clock time-offset change notifications.

The scheduler subscribes once at start-up to an :class:`OffsetSource`
and receives the new offset (ms) every time the correction between
system time and monotonic time changes — an NTP step, a manual clock
change, a leap-second smear reaching the tolerance.

:class:`OffsetWatcher` is the production source.  The interpreter has no
kernel notification for clock steps, so it samples
``system - monotonic`` on a fixed interval and publishes when the value
has moved more than ``tolerance_ms`` away from the last published
offset.  Slow slewing therefore accumulates until it crosses the
tolerance and is then published once.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from pmclock._clock import ClockPort

logger = logging.getLogger(__name__)

type OffsetCallback = Callable[[int], None]


class OffsetSubscription:
    """Handle for one active offset subscription.

    Returned by :meth:`OffsetSource.subscribe`; the subscriber holds it
    for its whole lifetime and calls :meth:`cancel` when it stops.
    """

    def __init__(self, callback: OffsetCallback, on_cancel: Callable[[], None]) -> None:
        self._callback = callback
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, offset_ms: int) -> None:
        if self._active:
            self._callback(offset_ms)

    def cancel(self) -> None:
        """Stop delivery.  Idempotent."""
        if not self._active:
            return
        self._active = False
        self._on_cancel()


@runtime_checkable
class OffsetSource(Protocol):
    """Source of clock time-offset change notifications."""

    def subscribe(self, callback: OffsetCallback) -> OffsetSubscription:
        """Deliver every future offset change to *callback*."""
        ...


class OffsetWatcher:
    """Polls the clock offset and notifies subscribers on change.

    The polling task starts with the first subscription and stops when
    the last subscription is cancelled.  Must be subscribed to from
    inside a running event loop.

    Args:
        clock: Clock whose offset is sampled.
        poll_interval: Seconds between samples.
        tolerance_ms: Minimum movement, in ms, that counts as a change.
    """

    def __init__(
        self,
        clock: ClockPort,
        *,
        poll_interval: float = 1.0,
        tolerance_ms: int = 100,
    ) -> None:
        if poll_interval <= 0:
            msg = f"poll_interval must be positive, got {poll_interval}"
            raise ValueError(msg)
        if tolerance_ms < 0:
            msg = f"tolerance_ms must not be negative, got {tolerance_ms}"
            raise ValueError(msg)
        self._clock = clock
        self._interval_ms = max(1, round(poll_interval * 1000))
        self._tolerance_ms = tolerance_ms
        self._subscriptions: list[OffsetSubscription] = []
        self._task: asyncio.Task[None] | None = None
        self._retired: set[asyncio.Task[None]] = set()
        self._last_offset_ms: int | None = None

    @property
    def last_offset_ms(self) -> int | None:
        """Offset most recently published (or the baseline sample)."""
        return self._last_offset_ms

    def subscribe(self, callback: OffsetCallback) -> OffsetSubscription:
        subscription: OffsetSubscription

        def _remove() -> None:
            self._subscriptions.remove(subscription)
            if not self._subscriptions:
                self._stop()

        subscription = OffsetSubscription(callback, _remove)
        self._subscriptions.append(subscription)
        if self._task is None:
            self._last_offset_ms = self._clock.time_offset_ms()
            self._task = asyncio.get_running_loop().create_task(self._poll())
        return subscription

    def check(self) -> int | None:
        """Sample the offset once and publish it if it moved.

        Returns:
            The published offset, or ``None`` when within tolerance.
        """
        offset = self._clock.time_offset_ms()
        if self._last_offset_ms is None:
            self._last_offset_ms = offset
            return None
        if abs(offset - self._last_offset_ms) <= self._tolerance_ms:
            return None
        logger.info(
            "Clock offset changed from %d ms to %d ms",
            self._last_offset_ms,
            offset,
        )
        self._last_offset_ms = offset
        for subscription in list(self._subscriptions):
            subscription.deliver(offset)
        return offset

    async def _poll(self) -> None:
        while True:
            await self._clock.sleep_until(self._clock.monotonic_ms() + self._interval_ms)
            self.check()

    def _stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._retired.add(self._task)
            self._task.add_done_callback(self._retired.discard)
            self._task = None

    async def aclose(self) -> None:
        """Cancel all subscriptions and wait for every polling task.

        Includes tasks already cancelled when an earlier last
        subscription went away.
        """
        for subscription in list(self._subscriptions):
            subscription.cancel()
        for task in list(self._retired):
            with contextlib.suppress(asyncio.CancelledError):
                await task
