import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from timelapse_capture.calendar_policy import CalendarPolicy, exponential_backoff  # noqa: E402
from timelapse_capture.config import CalendarSettings, CaptureSettings  # noqa: E402
from timelapse_capture.models import ScheduleReason  # noqa: E402

KHARKIV = timezone(timedelta(hours=3))
HOUR_MS = 3_600_000
MINUTE_MS = 60_000

# 2024-06-03 is a Monday (the default rest day); 2024-06-04 a Tuesday.
MONDAY = datetime(2024, 6, 3, tzinfo=KHARKIV)
TUESDAY = datetime(2024, 6, 4, tzinfo=KHARKIV)

BACKOFF_REASONS = {
    ScheduleReason.STEADY,
    ScheduleReason.BACKOFF,
    ScheduleReason.PRE_BUSINESS,
    ScheduleReason.REST_DAY,
}


def at(day: datetime, hour: int, minute: int = 0, second: int = 0) -> datetime:
    return day.replace(hour=hour, minute=minute, second=second)


@pytest.fixture
def policy() -> CalendarPolicy:
    return CalendarPolicy()


def test_business_hours_steady_interval(policy):
    decision = policy.decide(at(TUESDAY, 14), 0)
    assert decision.delay_ms == 60_000
    assert decision.reason is ScheduleReason.STEADY


def test_after_hours_waits_for_next_morning_check(policy):
    decision = policy.decide(at(TUESDAY, 20), 0)
    assert decision.delay_ms == 14 * HOUR_MS
    assert decision.reason is ScheduleReason.AFTER_HOURS


def test_after_hours_ignores_failure_count(policy):
    assert policy.next_delay(at(TUESDAY, 20), 7) == policy.next_delay(at(TUESDAY, 20), 0)


def test_rest_day_checks_hourly(policy):
    decision = policy.decide(at(MONDAY, 9), 0)
    assert decision.delay_ms == HOUR_MS
    assert decision.reason is ScheduleReason.REST_DAY


def test_rest_day_poll_shrinks_near_end_of_day(policy):
    assert policy.next_delay(at(MONDAY, 18, 30), 0) == 30 * MINUTE_MS


def test_rest_day_evening_waits_for_next_morning(policy):
    decision = policy.decide(at(MONDAY, 19, 30), 0)
    assert decision.reason is ScheduleReason.AFTER_HOURS
    assert decision.delay_ms == 14 * HOUR_MS + 30 * MINUTE_MS


def test_before_morning_check_waits_until_morning(policy):
    decision = policy.decide(at(TUESDAY, 7, 15), 0)
    assert decision.reason is ScheduleReason.WAIT_FOR_MORNING
    assert decision.delay_ms == 2 * HOUR_MS + 45 * MINUTE_MS


def test_pre_business_polls_with_backoff(policy):
    assert policy.next_delay(at(TUESDAY, 10), 0) == 10 * MINUTE_MS
    assert policy.next_delay(at(TUESDAY, 10), 2) == 40 * MINUTE_MS
    decision = policy.decide(at(TUESDAY, 10), 1)
    assert decision.reason is ScheduleReason.PRE_BUSINESS


def test_pre_business_never_overshoots_business_start(policy):
    assert policy.next_delay(at(TUESDAY, 11, 55), 0) == 5 * MINUTE_MS
    assert policy.next_delay(at(TUESDAY, 11, 30), 4) == 30 * MINUTE_MS


def test_business_hours_backoff_is_capped(policy):
    assert policy.next_delay(at(TUESDAY, 13), 1) == 2 * MINUTE_MS
    assert policy.decide(at(TUESDAY, 13), 1).reason is ScheduleReason.BACKOFF
    assert policy.next_delay(at(TUESDAY, 13), 6) == HOUR_MS
    assert policy.next_delay(at(TUESDAY, 13), 500) == HOUR_MS


def test_midnight_and_month_boundaries_use_calendar_arithmetic(policy):
    # Wednesday 31 January -> Thursday 1 February 10:00.
    end_of_month = datetime(2024, 1, 31, 21, 0, tzinfo=KHARKIV)
    assert policy.next_delay(end_of_month, 0) == 13 * HOUR_MS

    end_of_year = datetime(2024, 12, 31, 23, 59, 30, tzinfo=KHARKIV)
    assert policy.next_delay(end_of_year, 0) == 10 * HOUR_MS + 30_000


def test_input_is_converted_to_target_zone(policy):
    utc_moment = datetime(2024, 6, 4, 11, 0, tzinfo=timezone.utc)
    assert policy.to_target_zone(utc_moment).hour == 14
    assert policy.is_business_hours(utc_moment)
    assert policy.next_delay(utc_moment, 0) == 60_000

    # 22:30 UTC Monday is already 01:30 Tuesday in the target zone.
    late_monday_utc = datetime(2024, 6, 3, 22, 30, tzinfo=timezone.utc)
    assert policy.is_business_day(late_monday_utc)
    assert policy.decide(late_monday_utc, 0).reason is ScheduleReason.WAIT_FOR_MORNING


def test_naive_datetimes_are_read_as_target_zone_wall_time(policy):
    naive = datetime(2024, 6, 4, 14, 0)
    assert policy.next_delay(naive, 0) == policy.next_delay(at(TUESDAY, 14), 0)


def test_delays_are_bounded_for_every_input(policy):
    for day_offset in range(7):
        day = MONDAY + timedelta(days=day_offset)
        for hour in range(24):
            for minute in (0, 30, 59):
                for failures in range(10):
                    decision = policy.decide(at(day, hour, minute), failures)
                    assert decision.delay_ms >= 0
                    if decision.reason in BACKOFF_REASONS:
                        assert decision.delay_ms <= policy.max_backoff_ms
                    else:
                        assert decision.delay_ms <= 24 * HOUR_MS


def test_backoff_is_monotonic_until_cap(policy):
    for day in (MONDAY, TUESDAY):
        for hour in range(24):
            moment = at(day, hour, 10)
            delays = [policy.next_delay(moment, failures) for failures in range(40)]
            assert delays == sorted(delays)
            assert delays[-1] == delays[-2]


def test_rest_day_only_polls_on_hourly_cadence(policy):
    for hour in range(policy.business_end_hour):
        for minute in (0, 15, 45):
            moment = at(MONDAY, hour, minute)
            until_end = (at(MONDAY, policy.business_end_hour) - moment) // timedelta(milliseconds=1)
            for failures in (0, 3):
                decision = policy.decide(moment, failures)
                assert decision.reason is ScheduleReason.REST_DAY
                assert decision.delay_ms == min(HOUR_MS, until_end)


def test_policy_is_pure(policy):
    moment = at(TUESDAY, 11, 20)
    first = policy.decide(moment, 2)
    for _ in range(5):
        assert policy.decide(moment, 2) == first


def test_from_settings_uses_capture_interval_and_cap():
    policy = CalendarPolicy.from_settings(
        CalendarSettings(utc_offset_minutes=0, rest_day=6, morning_check_hour=6),
        CaptureSettings(interval_seconds=30, max_backoff_seconds=600),
    )
    sunday_noon = datetime(2024, 6, 9, 12, 0, tzinfo=timezone.utc)
    saturday_noon = datetime(2024, 6, 8, 12, 0, tzinfo=timezone.utc)
    assert policy.decide(sunday_noon, 0).reason is ScheduleReason.REST_DAY
    assert policy.next_delay(saturday_noon, 0) == 30_000
    assert policy.next_delay(saturday_noon, 10) == 600_000


def test_invalid_hours_are_rejected():
    with pytest.raises(ValueError):
        CalendarPolicy(business_start_hour=20, business_end_hour=19)
    with pytest.raises(ValueError):
        CalendarPolicy(morning_check_hour=13, business_start_hour=12)


def test_exponential_backoff_helper():
    assert exponential_backoff(1000, 0, 10_000) == 1000
    assert exponential_backoff(1000, 3, 10_000) == 8000
    assert exponential_backoff(1000, 4, 10_000) == 10_000
    assert exponential_backoff(1000, -2, 10_000) == 1000


@pytest.mark.parametrize("offset", [1440, -1440, 1500])
def test_offsets_outside_one_day_are_rejected(offset):
    with pytest.raises(ValueError):
        CalendarPolicy(utc_offset_minutes=offset)


def test_extreme_valid_offsets_still_tell_time():
    for offset in (1439, -1439):
        policy = CalendarPolicy(utc_offset_minutes=offset)
        assert policy.now().utcoffset() == timedelta(minutes=offset)


def test_cap_must_exceed_steady_and_pre_business_cadence():
    with pytest.raises(ValueError):
        CalendarPolicy(steady_interval_ms=7_200_000, max_backoff_ms=3_600_000)
    with pytest.raises(ValueError):
        CalendarPolicy(steady_interval_ms=3_600_000, max_backoff_ms=3_600_000)
    with pytest.raises(ValueError):
        CalendarPolicy(pre_business_poll_ms=2 * HOUR_MS, max_backoff_ms=HOUR_MS)


def test_from_settings_lifts_cap_above_long_capture_interval():
    policy = CalendarPolicy.from_settings(
        CalendarSettings(),
        CaptureSettings(interval_seconds=7200, max_backoff_seconds=3600),
    )
    afternoon = at(TUESDAY, 14)

    steady = policy.decide(afternoon, 0)
    first_backoff = policy.decide(afternoon, 1)

    assert policy.max_backoff_ms == 4 * HOUR_MS
    assert steady.delay_ms == 2 * HOUR_MS
    assert steady.delay_ms <= policy.max_backoff_ms
    assert first_backoff.reason is ScheduleReason.BACKOFF
    assert first_backoff.delay_ms > steady.delay_ms


def test_from_settings_lifts_cap_to_pre_business_poll():
    policy = CalendarPolicy.from_settings(
        CalendarSettings(pre_business_poll_minutes=90),
        CaptureSettings(max_backoff_seconds=600),
    )
    assert policy.max_backoff_ms == 90 * MINUTE_MS
