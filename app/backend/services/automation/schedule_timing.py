"""Schedule timing helpers for backup jobs.

Jobs are interval based: the next run is the last snapshot time plus the job's
interval in minutes. Optionally, backups may only start inside a daily window
`[start, end)` given as local time-of-day. A window whose end is before its
start wraps past midnight, e.g. 22:00-02:00.

Window arithmetic works on wall-clock time-of-day and ignores DST shifts.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone


DAY = timedelta(days=1)


def _since_midnight(value: time) -> timedelta:
    return timedelta(hours=value.hour, minutes=value.minute, seconds=value.second, microseconds=value.microsecond)


def is_within_window(moment: time, start: time, end: time) -> bool:
    """Return True when a time-of-day lies inside the window `[start, end)`.

    Args:
        moment: Time-of-day to check.
        start: Window start.
        end: Window end (exclusive). `end < start` means the window wraps midnight.

    Returns:
        bool: Whether `moment` is inside the window.
    """

    if start < end:
        return start <= moment < end
    return moment >= start or moment < end


def compute_window_wait(*, now: datetime, start: time, end: time) -> timedelta:
    """Compute how long to wait until the daily window is open.

    Examples:
        - window 05:00-07:00, now 06:00 -> 0
        - window 05:00-07:00, now 04:00 -> 1h
        - window 05:00-07:00, now 07:00 -> 22h (next day's start)
        - window 22:00-02:00, now 01:00 -> 0

    Args:
        now: Current time.
        start: Window start.
        end: Window end (exclusive).

    Returns:
        timedelta: Zero when inside the window, else the time until its next start.
    """

    moment = now.timetz().replace(tzinfo=None)
    if is_within_window(moment, start, end):
        return timedelta(0)

    wait = _since_midnight(start) - _since_midnight(moment)
    if wait < timedelta(0):
        wait += DAY
    return wait


def compute_next_run_at(*, reference: datetime, interval_minutes: int) -> datetime:
    """Compute the next run time for an interval-based job.

    Args:
        reference: Time of the last run.
        interval_minutes: Interval in minutes.

    Returns:
        datetime: `reference + interval`.

    Raises:
        ValueError: If the interval is negative.
    """

    if interval_minutes < 0:
        raise ValueError(f"Invalid interval_minutes: {interval_minutes}")

    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)

    return reference + timedelta(minutes=int(interval_minutes))
