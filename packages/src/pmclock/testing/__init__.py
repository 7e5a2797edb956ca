"""Public test-support utilities for pmclock.

Re-exports test doubles and factories so that consumer test suites
can import everything from a single ``pmclock.testing`` namespace
instead of reaching into private modules.

Provided symbols:

- :class:`SchedulerHarness` — scheduler wired to deterministic doubles.
- :class:`RecordingObserver` — observer that records every tick.
- :class:`FakeClock` — manually advanced clock with offset steps.
- :class:`FakeOffsetSource` — manually driven offset notifications.
- :func:`make_settings` — factory for ``Settings`` without ``.env`` files.
- :func:`settle` — yield to the event loop until woken tasks ran.
"""

from pmclock.testing._clock import FakeClock, settle
from pmclock.testing._harness import RecordingObserver, SchedulerHarness
from pmclock.testing._offset import FakeOffsetSource
from pmclock.testing._settings import make_settings

__all__ = [
    "FakeClock",
    "FakeOffsetSource",
    "RecordingObserver",
    "SchedulerHarness",
    "make_settings",
    "settle",
]
