"""Unit tests for pmclock._alignment — boundary arithmetic.

Test Techniques Used:
    - Specification-based Testing: Each formula against worked examples
    - Property-based Checks: Alignment, no-drift and resync properties
      over parametrized grids of times, offsets and periods
    - Boundary Value Analysis: Exactly-on-boundary instants, hour 1/24
    - Error Condition Testing: Non-positive periods, out-of-range hours
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from pmclock._alignment import (
    DAY_MS,
    HOUR_MS,
    advance,
    next_daily_boundary,
    next_quarter_boundary,
    resync,
)

# 2026-02-14T00:00:00Z
MIDNIGHT = datetime(2026, 2, 14, tzinfo=UTC)
MIDNIGHT_MS = 1_771_027_200_000


def _ms(dt: datetime) -> int:
    return MIDNIGHT_MS + (dt - MIDNIGHT) // timedelta(milliseconds=1)


def _quarter(dt: datetime, period_s: int, offset_ms: int = 0) -> int:
    return next_quarter_boundary(
        dt, period_s, system_time_ms=_ms(dt), offset_ms=offset_ms
    )


class TestNextQuarterBoundary:
    """Rounding the position inside the hour up to a period multiple.

    Technique: Specification-based Testing.
    """

    def test_rounds_up_to_next_quarter(self) -> None:
        """00:07:30 rounds up to 00:15:00."""
        dt = MIDNIGHT + timedelta(minutes=7, seconds=30)
        assert _quarter(dt, 900) == _ms(MIDNIGHT + timedelta(minutes=15))

    def test_on_boundary_returns_same_instant(self) -> None:
        """Ceiling, not strictly-after: 00:30:00 stays 00:30:00."""
        dt = MIDNIGHT + timedelta(minutes=30)
        assert _quarter(dt, 900) == _ms(dt)

    def test_last_quarter_wraps_to_next_hour(self) -> None:
        """00:52:10 rounds up to 01:00:00."""
        dt = MIDNIGHT + timedelta(minutes=52, seconds=10)
        assert _quarter(dt, 900) == _ms(MIDNIGHT + timedelta(hours=1))

    def test_sub_second_part_is_honoured(self) -> None:
        """00:14:59.999 still lands exactly on 00:15:00."""
        dt = MIDNIGHT + timedelta(minutes=14, seconds=59, milliseconds=999)
        assert _quarter(dt, 900) == _ms(MIDNIGHT + timedelta(minutes=15))

    def test_just_after_boundary_moves_to_next(self) -> None:
        """One millisecond past 00:15:00 rounds to 00:30:00."""
        dt = MIDNIGHT + timedelta(minutes=15, milliseconds=1)
        assert _quarter(dt, 900) == _ms(MIDNIGHT + timedelta(minutes=30))

    def test_offset_is_subtracted(self) -> None:
        """The result is on the monotonic scale: wall instant minus offset."""
        dt = MIDNIGHT + timedelta(minutes=7, seconds=30)
        offset = 1_771_000_000_000
        expected = _ms(MIDNIGHT + timedelta(minutes=15)) - offset
        assert _quarter(dt, 900, offset) == expected

    @pytest.mark.parametrize("period_s", [60, 300, 600, 900, 1200, 1800, 3600])
    @pytest.mark.parametrize(
        ("minute", "second"),
        [(0, 0), (0, 1), (7, 30), (14, 59), (15, 0), (44, 44), (59, 59)],
    )
    def test_alignment_property(self, period_s: int, minute: int, second: int) -> None:
        """Seconds-into-hour of the result equal ceil((m*60+s)/P)*P mod 3600."""
        offset = 123_456
        dt = MIDNIGHT + timedelta(hours=5, minutes=minute, seconds=second)
        deadline = _quarter(dt, period_s, offset)

        wall_ms = deadline + offset
        into_hour_s = (wall_ms // 1000) % 3600
        t = minute * 60 + second
        assert into_hour_s == (-(-t // period_s) * period_s) % 3600
        assert wall_ms % 1000 == 0

    def test_non_positive_period_rejected(self) -> None:
        with pytest.raises(ValueError, match="period must be positive"):
            _quarter(MIDNIGHT, 0)


class TestNextDailyBoundary:
    """Next occurrence of an hour of day.

    Technique: Specification-based Testing + Boundary Value Analysis.
    """

    def test_hour_24_is_next_midnight(self) -> None:
        """From 00:07:30 the 24h boundary is the following midnight."""
        now = _ms(MIDNIGHT + timedelta(minutes=7, seconds=30))
        result = next_daily_boundary(24, system_time_ms=now, offset_ms=0)
        assert result == MIDNIGHT_MS + DAY_MS

    def test_exact_midnight_moves_to_next_day(self) -> None:
        """At midnight itself the next occurrence is one day later."""
        result = next_daily_boundary(24, system_time_ms=MIDNIGHT_MS, offset_ms=0)
        assert result == MIDNIGHT_MS + DAY_MS

    def test_hour_later_today(self) -> None:
        """At 03:00 the next 06:00 is today."""
        now = MIDNIGHT_MS + 3 * HOUR_MS
        result = next_daily_boundary(6, system_time_ms=now, offset_ms=0)
        assert result == MIDNIGHT_MS + 6 * HOUR_MS

    def test_hour_already_passed_is_tomorrow(self) -> None:
        """At 07:00 the next 06:00 is tomorrow."""
        now = MIDNIGHT_MS + 7 * HOUR_MS
        result = next_daily_boundary(6, system_time_ms=now, offset_ms=0)
        assert result == MIDNIGHT_MS + DAY_MS + 6 * HOUR_MS

    def test_hour_1(self) -> None:
        now = MIDNIGHT_MS + 30 * 60_000
        result = next_daily_boundary(1, system_time_ms=now, offset_ms=0)
        assert result == MIDNIGHT_MS + HOUR_MS

    def test_offset_is_subtracted(self) -> None:
        result = next_daily_boundary(24, system_time_ms=MIDNIGHT_MS + 1, offset_ms=500)
        assert result == MIDNIGHT_MS + DAY_MS - 500

    @pytest.mark.parametrize("hour", [0, 25, -1])
    def test_out_of_range_hour_rejected(self, hour: int) -> None:
        with pytest.raises(ValueError, match="1..24"):
            next_daily_boundary(hour, system_time_ms=MIDNIGHT_MS, offset_ms=0)


class TestResync:
    """Epoch-bucket deadlines after an offset change.

    Technique: Property-based Checks over arbitrary jumps.
    """

    def test_worked_example(self) -> None:
        """(sys // P + 1) * P - offset."""
        assert resync(1_000, 100, 900) == 1_800 - 100

    def test_is_pure(self) -> None:
        """Same inputs give the same deadline."""
        args = (MIDNIGHT_MS + 123_456, 42_000, 900_000)
        assert resync(*args) == resync(*args)

    def test_on_bucket_edge_moves_to_next_bucket(self) -> None:
        """Strictly after: a system time on the edge yields the next edge."""
        assert resync(1_800, 0, 900) == 2_700

    @pytest.mark.parametrize("period_ms", [900_000, 86_400_000])
    @pytest.mark.parametrize(
        "jump_ms",
        [3_600_000, -3_600_000, 1, -1, 37_000, 5 * 86_400_000, -10 * 86_400_000],
    )
    def test_within_one_period_of_now_and_bucket_aligned(
        self, period_ms: int, jump_ms: int
    ) -> None:
        """After any jump the deadline lies in (now, now + P] and on a bucket."""
        monotonic_now = 5_000_000
        offset = MIDNIGHT_MS + 7 * 60_000 + jump_ms
        system_now = monotonic_now + offset

        deadline = resync(system_now, offset, period_ms)

        assert monotonic_now < deadline <= monotonic_now + period_ms
        assert (deadline + offset) % period_ms == 0

    def test_non_positive_period_rejected(self) -> None:
        with pytest.raises(ValueError):
            resync(0, 0, 0)


class TestAdvance:
    """Steady-state re-arming.

    Technique: Property-based Check — no drift over many re-arms.
    """

    def test_adds_one_period(self) -> None:
        assert advance(455_000, 900_000) == 1_355_000

    def test_no_drift_over_many_rearms(self) -> None:
        """deadline(k+1) - deadline(k) == period for every k."""
        deadlines = [455_000]
        for _ in range(500):
            deadlines.append(advance(deadlines[-1], 900_000))
        assert {b - a for a, b in zip(deadlines, deadlines[1:], strict=False)} == {
            900_000
        }
        assert deadlines[-1] == 455_000 + 500 * 900_000

    def test_negative_period_rejected(self) -> None:
        with pytest.raises(ValueError):
            advance(0, -1)
