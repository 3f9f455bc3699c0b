"""Bookable slot generation.

Turns a professional's recurring weekly rules and dated time-off into the
start times a patient may book on one calendar date. Everything here is pure:
callers load rules, exceptions and reservations and pass them in.

Wall-clock times (rules, exceptions) live in the professional's zone. Stored
appointment instants are naive UTC. Candidates are compared as naive UTC.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Protocol
from zoneinfo import ZoneInfo


class RuleLike(Protocol):
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration_minutes: int
    buffer_minutes: int


class TimeOffLike(Protocol):
    blocked_date: date
    start_time: time | None
    end_time: time | None


@dataclass(frozen=True)
class Reservation:
    starts_at: datetime  # naive UTC
    duration_minutes: int

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration_minutes)


@dataclass(frozen=True)
class Slot:
    local_start: datetime  # aware, professional's zone
    starts_at: datetime  # naive UTC
    duration_minutes: int

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration_minutes)


def day_of_week(value: date) -> int:
    """Day number with Sunday as 0, the numbering rules are stored in."""
    return (value.weekday() + 1) % 7


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def _overlaps(start_a, end_a, start_b, end_b) -> bool:
    return start_a < end_b and end_a > start_b


def _to_utc_naive(target_date: date, minute_of_day: int, zone: ZoneInfo) -> tuple[datetime, datetime]:
    wall_clock = datetime.combine(target_date, time(minute_of_day // 60, minute_of_day % 60), tzinfo=zone)
    instant = wall_clock.astimezone(timezone.utc)
    # Times skipped by a DST jump get the label of the instant they resolve to.
    return instant.astimezone(zone), instant.replace(tzinfo=None)


def walk_rule(rule: RuleLike) -> list[int]:
    """Minute-of-day starts a rule produces, before any filtering."""
    start = _minutes(rule.start_time)
    end = _minutes(rule.end_time)
    duration = rule.slot_duration_minutes
    step = duration + rule.buffer_minutes

    starts: list[int] = []
    cursor = start
    while cursor + duration <= end:
        starts.append(cursor)
        cursor += step
    return starts


def generate_slots(
    rules: Iterable[RuleLike],
    exceptions: Iterable[TimeOffLike],
    reservations: Iterable[Reservation],
    target_date: date,
    now: datetime,
    zone: ZoneInfo,
) -> list[Slot]:
    """Ordered, de-duplicated bookable slots for ``target_date``.

    ``now`` is naive UTC. ``reservations`` must already be restricted to
    appointments that occupy the calendar (pending, payment pending,
    confirmed).
    """
    today = now.replace(tzinfo=timezone.utc).astimezone(zone).date()
    if target_date < today:
        return []

    weekday = day_of_week(target_date)
    day_rules = [rule for rule in rules if rule.day_of_week == weekday]
    if not day_rules:
        return []

    day_exceptions = [exception for exception in exceptions if exception.blocked_date == target_date]
    if any(exception.start_time is None for exception in day_exceptions):
        return []

    partial_blocks = [
        (_minutes(exception.start_time), _minutes(exception.end_time))
        for exception in day_exceptions
    ]
    reserved = list(reservations)

    slots: dict[datetime, Slot] = {}
    for rule in day_rules:
        duration = rule.slot_duration_minutes
        for cursor in walk_rule(rule):
            if any(_overlaps(cursor, cursor + duration, off_start, off_end) for off_start, off_end in partial_blocks):
                continue

            local_start, starts_at = _to_utc_naive(target_date, cursor, zone)
            ends_at = starts_at + timedelta(minutes=duration)
            if any(_overlaps(starts_at, ends_at, item.starts_at, item.ends_at) for item in reserved):
                continue

            if starts_at <= now:
                continue

            slots.setdefault(starts_at, Slot(local_start=local_start, starts_at=starts_at, duration_minutes=duration))

    return [slots[key] for key in sorted(slots)]
