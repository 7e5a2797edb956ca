"""Clock port and system adapter.

Provides ClockPort (Protocol) and SystemClock for reading the two time
scales the scheduler works with:

* **Monotonic time** — never jumps; every deadline the scheduler arms is
  an absolute instant on this scale (milliseconds, arbitrary epoch).
* **System time** — wall-clock milliseconds since the Unix epoch; NTP
  steps and manual corrections move it.

The *time offset* is the correction between them::

    system_time_ms == monotonic_ms + time_offset_ms

When the platform corrects the wall clock, the offset changes while
monotonic time keeps ticking.  That is what the offset watcher
(:mod:`pmclock._offset`) observes.
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class ClockPort(Protocol):
    """Clock used by the scheduler and the offset watcher.

    The default implementation wraps ``time.monotonic_ns()`` and
    ``time.time_ns()``.  Tests inject a deterministic fake clock whose
    time only moves when told to.
    """

    def monotonic_ms(self) -> int:
        """Return monotonic time in milliseconds."""
        ...

    def system_time_ms(self) -> int:
        """Return wall-clock time in milliseconds since the Unix epoch."""
        ...

    def time_offset_ms(self) -> int:
        """Return ``system_time_ms() - monotonic_ms()``."""
        ...

    async def sleep_until(self, deadline_ms: int) -> None:
        """Suspend until monotonic time reaches *deadline_ms*.

        Returns immediately when the deadline is already in the past.
        """
        ...


class SystemClock:
    """Production clock over the interpreter's monotonic and wall clocks.

    Satisfies :class:`ClockPort` via structural subtyping — no
    base-class inheritance required (PEP 544).

    Usage::

        clock = SystemClock()
        deadline = clock.monotonic_ms() + 1000
        await clock.sleep_until(deadline)
    """

    def monotonic_ms(self) -> int:
        return time.monotonic_ns() // 1_000_000

    def system_time_ms(self) -> int:
        return time.time_ns() // 1_000_000

    def time_offset_ms(self) -> int:
        # Two separate reads; sub-millisecond jitter is expected.
        return self.system_time_ms() - self.monotonic_ms()

    async def sleep_until(self, deadline_ms: int) -> None:
        """Sleep until *deadline_ms* on the monotonic scale.

        The event loop's own clock is ``time.monotonic()`` as well, so a
        relative sleep computed here lands on the absolute instant.
        """
        remaining = deadline_ms - self.monotonic_ms()
        if remaining > 0:
            await asyncio.sleep(remaining / 1000)
