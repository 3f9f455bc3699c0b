from datetime import date, datetime, time
from types import SimpleNamespace
from zoneinfo import ZoneInfo

from backend.services.slot_generator import Reservation, day_of_week, generate_slots, walk_rule

UTC = ZoneInfo('UTC')
LAGOS = ZoneInfo('Africa/Lagos')

MONDAY = date(2030, 1, 7)
SUNDAY_NOON = datetime(2030, 1, 6, 12, 0)


def _rule(start: time, end: time, duration: int = 30, buffer: int = 0, day: int = 1):
    return SimpleNamespace(
        day_of_week=day,
        start_time=start,
        end_time=end,
        slot_duration_minutes=duration,
        buffer_minutes=buffer,
    )


def _time_off(blocked_date: date, start: time | None = None, end: time | None = None):
    return SimpleNamespace(blocked_date=blocked_date, start_time=start, end_time=end)


def _starts(slots) -> list[time]:
    return [slot.local_start.time() for slot in slots]


def test_day_of_week_counts_from_sunday() -> None:
    assert day_of_week(date(2030, 1, 6)) == 0
    assert day_of_week(MONDAY) == 1
    assert day_of_week(date(2030, 1, 12)) == 6


def test_monday_hour_yields_two_half_hour_slots() -> None:
    slots = generate_slots([_rule(time(9, 0), time(10, 0))], [], [], MONDAY, SUNDAY_NOON, UTC)

    assert _starts(slots) == [time(9, 0), time(9, 30)]
    assert slots[0].starts_at == datetime(2030, 1, 7, 9, 0)
    assert slots[0].ends_at == datetime(2030, 1, 7, 9, 30)


def test_window_exactly_one_slot_long_yields_one_slot() -> None:
    slots = generate_slots([_rule(time(9, 0), time(9, 45), duration=45)], [], [], MONDAY, SUNDAY_NOON, UTC)

    assert _starts(slots) == [time(9, 0)]


def test_buffer_spaces_slots_apart() -> None:
    assert walk_rule(_rule(time(9, 0), time(11, 0), duration=30, buffer=10)) == [540, 580, 620]


def test_final_slot_may_skip_its_trailing_buffer() -> None:
    # 09:40 + 30 ends exactly at 10:10; the buffer after it is not needed.
    assert walk_rule(_rule(time(9, 0), time(10, 10), duration=30, buffer=10)) == [540, 580]


def test_no_rule_for_the_weekday_yields_nothing() -> None:
    slots = generate_slots([_rule(time(9, 0), time(10, 0), day=2)], [], [], MONDAY, SUNDAY_NOON, UTC)

    assert slots == []


def test_full_day_time_off_blocks_every_slot() -> None:
    rules = [_rule(time(9, 0), time(17, 0))]
    slots = generate_slots(rules, [_time_off(MONDAY)], [], MONDAY, SUNDAY_NOON, UTC)

    assert slots == []


def test_partial_time_off_removes_only_overlapping_slots() -> None:
    rules = [_rule(time(9, 0), time(11, 0))]
    exceptions = [_time_off(MONDAY, time(9, 45), time(10, 15))]

    slots = generate_slots(rules, exceptions, [], MONDAY, SUNDAY_NOON, UTC)

    assert _starts(slots) == [time(9, 0), time(10, 30)]


def test_time_off_on_another_date_is_ignored() -> None:
    rules = [_rule(time(9, 0), time(10, 0))]
    slots = generate_slots(rules, [_time_off(date(2030, 1, 14))], [], MONDAY, SUNDAY_NOON, UTC)

    assert len(slots) == 2


def test_reserved_slot_is_not_offered() -> None:
    rules = [_rule(time(9, 0), time(10, 0))]
    reservations = [Reservation(starts_at=datetime(2030, 1, 7, 9, 0), duration_minutes=30)]

    slots = generate_slots(rules, [], reservations, MONDAY, SUNDAY_NOON, UTC)

    assert _starts(slots) == [time(9, 30)]


def test_reservation_from_a_longer_rule_blocks_every_overlapped_slot() -> None:
    rules = [_rule(time(9, 0), time(11, 0))]
    reservations = [Reservation(starts_at=datetime(2030, 1, 7, 9, 15), duration_minutes=60)]

    slots = generate_slots(rules, [], reservations, MONDAY, SUNDAY_NOON, UTC)

    assert _starts(slots) == [time(10, 30)]


def test_past_date_yields_nothing() -> None:
    rules = [_rule(time(9, 0), time(10, 0))]
    slots = generate_slots(rules, [], [], MONDAY, datetime(2030, 1, 8, 8, 0), UTC)

    assert slots == []


def test_slots_starting_at_or_before_now_are_dropped() -> None:
    rules = [_rule(time(9, 0), time(11, 0))]
    slots = generate_slots(rules, [], [], MONDAY, datetime(2030, 1, 7, 9, 30), UTC)

    assert _starts(slots) == [time(10, 0), time(10, 30)]


def test_overlapping_rules_do_not_duplicate_start_times() -> None:
    rules = [
        _rule(time(9, 0), time(10, 0), duration=30),
        _rule(time(9, 30), time(11, 0), duration=30),
    ]

    slots = generate_slots(rules, [], [], MONDAY, SUNDAY_NOON, UTC)

    assert _starts(slots) == [time(9, 0), time(9, 30), time(10, 0), time(10, 30)]


def test_first_rule_decides_duration_of_a_shared_start() -> None:
    rules = [
        _rule(time(9, 0), time(10, 0), duration=30),
        _rule(time(9, 0), time(10, 0), duration=60),
    ]

    slots = generate_slots(rules, [], [], MONDAY, SUNDAY_NOON, UTC)

    assert [slot.duration_minutes for slot in slots] == [30, 30]


def test_wall_clock_rules_convert_to_utc_in_the_professionals_zone() -> None:
    rules = [_rule(time(9, 0), time(10, 0))]

    slots = generate_slots(rules, [], [], MONDAY, SUNDAY_NOON, LAGOS)

    assert _starts(slots) == [time(9, 0), time(9, 30)]
    assert slots[0].starts_at == datetime(2030, 1, 7, 8, 0)
    assert slots[0].local_start.utcoffset().total_seconds() == 3600


def test_reservations_are_compared_in_utc() -> None:
    rules = [_rule(time(9, 0), time(10, 0))]
    reservations = [Reservation(starts_at=datetime(2030, 1, 7, 8, 0), duration_minutes=30)]

    slots = generate_slots(rules, [], reservations, MONDAY, SUNDAY_NOON, LAGOS)

    assert _starts(slots) == [time(9, 30)]


def test_spring_forward_gap_is_labelled_with_the_real_wall_clock() -> None:
    new_york = ZoneInfo('America/New_York')
    rules = [_rule(time(1, 0), time(4, 0), duration=60, day=0)]

    slots = generate_slots(rules, [], [], date(2030, 3, 10), datetime(2030, 3, 9, 12, 0), new_york)

    labelled = [(slot.local_start.isoformat(), slot.starts_at) for slot in slots]
    assert labelled == [
        ('2030-03-10T01:00:00-05:00', datetime(2030, 3, 10, 6, 0)),
        ('2030-03-10T03:00:00-04:00', datetime(2030, 3, 10, 7, 0)),
    ]


def test_slots_come_back_in_ascending_order() -> None:
    rules = [
        _rule(time(14, 0), time(15, 0)),
        _rule(time(9, 0), time(10, 0)),
    ]

    slots = generate_slots(rules, [], [], MONDAY, SUNDAY_NOON, UTC)

    assert [slot.starts_at for slot in slots] == sorted(slot.starts_at for slot in slots)
