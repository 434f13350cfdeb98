"""Dose clock: turns a daily "HH:MM" schedule into an instant for today."""

from datetime import datetime, time as dtime, timedelta
import math


def parse_time(value: str) -> dtime:
    """Parse an "HH:MM" time-of-day. Raises ValueError on anything else."""
    if not isinstance(value, str):
        raise ValueError(f"Expected an HH:MM string, got {value!r}")
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Expected an HH:MM string, got {value!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    return dtime(hour=hours, minute=minutes)


def dose_instant(time_of_day, now: datetime) -> datetime:
    """The instant of ``time_of_day`` on the calendar day of ``now``."""
    if isinstance(time_of_day, str):
        time_of_day = parse_time(time_of_day)
    return now.replace(hour=time_of_day.hour, minute=time_of_day.minute, second=0, microsecond=0)


def elapsed_minutes(time_of_day, now: datetime) -> float:
    """Minutes since the dose time today; negative before it."""
    return (now - dose_instant(time_of_day, now)) / timedelta(minutes=1)


def describe_timing(dose, now: datetime) -> str:
    if dose.snooze_until is not None:
        remaining = (dose.snooze_until - now) / timedelta(minutes=1)
        return f"Snooze: {math.ceil(remaining)}m remaining"

    diff = elapsed_minutes(dose.time, now)
    if diff < 0:
        return f"In {math.ceil(-diff)} minutes"
    return f"{math.floor(diff)} minutes ago"
