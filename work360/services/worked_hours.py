from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

LUNCH_BREAK_THRESHOLD_HOURS = 6.0
LUNCH_BREAK_HOURS = 1.0
SECONDS_PER_HOUR = 3600.0


@dataclass(frozen=True, slots=True)
class WorkedHours:
    presence_hours: float
    worked_hours: float
    lunch_break_applied: bool


_ZERO = WorkedHours(presence_hours=0.0, worked_hours=0.0, lunch_break_applied=False)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _apply_lunch_break(presence_hours: float) -> WorkedHours:
    if presence_hours <= 0:
        return _ZERO

    lunch_break_applied = presence_hours >= LUNCH_BREAK_THRESHOLD_HOURS
    worked_hours = presence_hours - LUNCH_BREAK_HOURS if lunch_break_applied else presence_hours
    return WorkedHours(
        presence_hours=round(presence_hours, 2),
        worked_hours=round(max(0.0, worked_hours), 2),
        lunch_break_applied=lunch_break_applied,
    )


def calculate_worked_hours(clock_in: datetime | None, clock_out: datetime | None) -> WorkedHours:
    if clock_in is None or clock_out is None:
        return _ZERO

    presence_seconds = (as_utc(clock_out) - as_utc(clock_in)).total_seconds()
    return _apply_lunch_break(presence_seconds / SECONDS_PER_HOUR)


def recalculate_worked_hours_from_total(total_hours: float | Decimal | None) -> WorkedHours:
    try:
        presence_hours = float(total_hours or 0)
    except (TypeError, ValueError):
        presence_hours = 0.0
    return _apply_lunch_break(presence_hours)


def live_hours(clock_in: datetime, now_utc: datetime) -> float:
    # No lunch deduction while the shift is still open; it applies at clock-out.
    elapsed_seconds = (as_utc(now_utc) - as_utc(clock_in)).total_seconds()
    return max(0.0, elapsed_seconds / SECONDS_PER_HOUR)
