"""Absolute-time boundary arithmetic for the PM clock.

Pure functions — every input, including the current system time and
the clock offset, is passed in explicitly, so results are
reproducible and trivially testable.

All results are **absolute monotonic deadlines in milliseconds**: a
wall-clock instant ``w`` maps to the monotonic instant
``w - offset_ms`` (see :mod:`pmclock._clock`).

Three strategies coexist:

* **First arming** aligns to human-meaningful boundaries — the next
  quarter hour (:func:`next_quarter_boundary`) or the next occurrence
  of an hour of day (:func:`next_daily_boundary`).
* **Steady state** adds one period to the previous intended deadline
  (:func:`advance`), so dispatch latency never accumulates.
* **After an offset change** the next deadline is computed from
  epoch-aligned buckets of the period length (:func:`resync`), which
  stays correct after an arbitrarily large jump of the wall clock.
"""

from __future__ import annotations

from datetime import datetime

SECOND_MS = 1000
HOUR_MS = 60 * 60 * SECOND_MS
DAY_MS = 24 * HOUR_MS


def _check_period(period_ms: int) -> None:
    if period_ms <= 0:
        msg = f"period must be positive, got {period_ms} ms"
        raise ValueError(msg)


def next_quarter_boundary(
    local: datetime,
    period_s: int,
    *,
    system_time_ms: int,
    offset_ms: int,
) -> int:
    """Return the deadline of the next period boundary within the hour.

    The position of *local* inside its hour (minutes, seconds and
    milliseconds) is rounded **up** to the next multiple of
    *period_s*.  When *local* already sits exactly on a boundary the
    boundary itself is returned (ceiling, not "strictly after").

    Args:
        local: Wall-clock reading the boundary is computed from.  Must
            describe the same instant as *system_time_ms*.
        period_s: Period length in seconds (900 for a quarter hour).
        system_time_ms: Wall-clock time in ms matching *local*.
        offset_ms: Current clock offset in ms.

    Returns:
        Absolute monotonic deadline in milliseconds.

    Raises:
        ValueError: If *period_s* is not positive.
    """
    period_ms = period_s * SECOND_MS
    _check_period(period_ms)
    into_hour_ms = (
        (local.minute * 60 + local.second) * SECOND_MS + local.microsecond // 1000
    )
    # Integer ceiling division.
    boundary_ms = -(-into_hour_ms // period_ms) * period_ms
    return system_time_ms + (boundary_ms - into_hour_ms) - offset_ms


def next_daily_boundary(hour: int, *, system_time_ms: int, offset_ms: int) -> int:
    """Return the deadline of the next occurrence of *hour* o'clock.

    ``hour=24`` is the next midnight.  Day-granularity modular
    arithmetic on the wall clock (UTC days).

    Raises:
        ValueError: If *hour* is outside ``1..24``.
    """
    if not 1 <= hour <= 24:
        msg = f"hour must be within 1..24, got {hour}"
        raise ValueError(msg)
    hour_ms = hour * HOUR_MS
    days = (system_time_ms + DAY_MS - hour_ms) // DAY_MS
    return days * DAY_MS + hour_ms - offset_ms


def resync(system_time_ms: int, offset_ms: int, period_ms: int) -> int:
    """Return the next epoch-bucket deadline after an offset change.

    The result is the end of the *period_ms*-sized bucket containing
    *system_time_ms*, translated to monotonic time.  It does not depend
    on any previous schedule.
    """
    _check_period(period_ms)
    return (system_time_ms // period_ms + 1) * period_ms - offset_ms


def advance(deadline_ms: int, period_ms: int) -> int:
    """Return the deadline one period after *deadline_ms*."""
    _check_period(period_ms)
    return deadline_ms + period_ms
