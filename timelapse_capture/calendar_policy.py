"""Business-hours calendar deciding how long each stream waits between captures.

Every rule is evaluated on wall-clock time in a fixed UTC offset rather than the
host's local zone, so the same inputs always give the same delay regardless of
where the recorder runs. The policy is pure: no I/O and no state beyond its
configuration.

Rules, in order of precedence:

* rest day before the business end hour: poll every ``rest_day_poll_ms``
* any day at or after the business end hour: wait until the next morning check
* before the morning check hour: wait until the morning check
* between the morning check and business start: poll every
  ``pre_business_poll_ms`` doubled per failure, never past business start
* business hours: ``steady_interval_ms`` doubled per failure, capped at
  ``max_backoff_ms``
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone

from timelapse_capture.config import MAX_UTC_OFFSET_MINUTES, CalendarSettings, CaptureSettings
from timelapse_capture.models import ScheduleDecision, ScheduleReason

_ONE_MS = timedelta(milliseconds=1)
# 2**32 times any base interval is far beyond any sensible cap.
_MAX_EXPONENT = 32


def exponential_backoff(base_ms: int, failure_count: int, cap_ms: int) -> int:
    """Return ``base_ms * 2**failure_count`` clamped to ``[0, cap_ms]``."""
    exponent = min(max(0, failure_count), _MAX_EXPONENT)
    return max(0, min(base_ms * (1 << exponent), cap_ms))


@dataclass(frozen=True)
class CalendarPolicy:
    utc_offset_minutes: int = 180
    rest_day: int = 0
    morning_check_hour: int = 10
    business_start_hour: int = 12
    business_end_hour: int = 19
    steady_interval_ms: int = 60_000
    pre_business_poll_ms: int = 600_000
    rest_day_poll_ms: int = 3_600_000
    max_backoff_ms: int = 3_600_000

    def __post_init__(self) -> None:
        if not (
            0 <= self.morning_check_hour
            <= self.business_start_hour
            < self.business_end_hour
            <= 23
        ):
            raise ValueError(
                "Calendar hours must satisfy 0 <= morning_check <= business_start "
                f"< business_end <= 23 (got {self.morning_check_hour}, "
                f"{self.business_start_hour}, {self.business_end_hour})"
            )
        if not 0 <= self.rest_day <= 6:
            raise ValueError(f"rest_day must be a weekday number 0-6 (got {self.rest_day})")
        if abs(self.utc_offset_minutes) > MAX_UTC_OFFSET_MINUTES:
            raise ValueError(
                f"utc_offset_minutes must be within +/-{MAX_UTC_OFFSET_MINUTES} "
                f"(got {self.utc_offset_minutes})"
            )
        for name in ("steady_interval_ms", "pre_business_poll_ms", "rest_day_poll_ms", "max_backoff_ms"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        # The first backoff step must wait longer than a healthy stream does.
        if self.steady_interval_ms >= self.max_backoff_ms:
            raise ValueError(
                f"max_backoff_ms ({self.max_backoff_ms}) must exceed "
                f"steady_interval_ms ({self.steady_interval_ms})"
            )
        if self.pre_business_poll_ms > self.max_backoff_ms:
            raise ValueError(
                f"pre_business_poll_ms ({self.pre_business_poll_ms}) must not exceed "
                f"max_backoff_ms ({self.max_backoff_ms})"
            )

    @classmethod
    def from_settings(cls, calendar: CalendarSettings, capture: CaptureSettings) -> "CalendarPolicy":
        """Build a policy from loaded settings.

        A configured backoff cap below the capture cadence is raised to twice the
        steady interval (and at least the pre-business poll) instead of failing.
        """
        steady_interval_ms = capture.interval_seconds * 1000
        pre_business_poll_ms = calendar.pre_business_poll_minutes * 60_000
        max_backoff_ms = max(
            capture.max_backoff_seconds * 1000,
            2 * steady_interval_ms,
            pre_business_poll_ms,
        )
        return cls(
            utc_offset_minutes=calendar.utc_offset_minutes,
            rest_day=calendar.rest_day,
            morning_check_hour=calendar.morning_check_hour,
            business_start_hour=calendar.business_start_hour,
            business_end_hour=calendar.business_end_hour,
            steady_interval_ms=steady_interval_ms,
            pre_business_poll_ms=pre_business_poll_ms,
            rest_day_poll_ms=calendar.rest_day_poll_minutes * 60_000,
            max_backoff_ms=max_backoff_ms,
        )

    # ------------------------------------------------------------------
    # Time helpers
    # ------------------------------------------------------------------

    @property
    def tzinfo(self) -> timezone:
        return timezone(timedelta(minutes=self.utc_offset_minutes))

    def now(self) -> datetime:
        """Current wall-clock time in the target zone."""
        return datetime.now(timezone.utc).astimezone(self.tzinfo)

    def to_target_zone(self, moment: datetime) -> datetime:
        """Convert ``moment`` into the target zone.

        Naive datetimes are taken to already be wall-clock time in the target zone.
        """
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.tzinfo)
        return moment.astimezone(self.tzinfo)

    def is_business_day(self, moment: datetime) -> bool:
        return self.to_target_zone(moment).weekday() != self.rest_day

    def is_business_hours(self, moment: datetime) -> bool:
        hour = self.to_target_zone(moment).hour
        return self.business_start_hour <= hour < self.business_end_hour

    def _at_hour(self, local: datetime, hour: int, *, days_ahead: int = 0) -> datetime:
        day = local.date() + timedelta(days=days_ahead)
        return datetime.combine(day, time(hour=hour), tzinfo=local.tzinfo)

    @staticmethod
    def _millis_between(start: datetime, end: datetime) -> int:
        return max(0, (end - start) // _ONE_MS)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(self, now: datetime, failure_count: int = 0) -> ScheduleDecision:
        """Return the delay until the next attempt and the rule that produced it."""
        local = self.to_target_zone(now)
        hour = local.hour

        if hour >= self.business_end_hour:
            next_morning = self._at_hour(local, self.morning_check_hour, days_ahead=1)
            return ScheduleDecision(
                self._millis_between(local, next_morning),
                ScheduleReason.AFTER_HOURS,
            )

        if local.weekday() == self.rest_day:
            until_end = self._millis_between(local, self._at_hour(local, self.business_end_hour))
            return ScheduleDecision(
                min(self.rest_day_poll_ms, until_end, self.max_backoff_ms),
                ScheduleReason.REST_DAY,
            )

        if hour < self.morning_check_hour:
            morning = self._at_hour(local, self.morning_check_hour)
            return ScheduleDecision(
                self._millis_between(local, morning),
                ScheduleReason.WAIT_FOR_MORNING,
            )

        if hour < self.business_start_hour:
            until_start = self._millis_between(local, self._at_hour(local, self.business_start_hour))
            delay = exponential_backoff(self.pre_business_poll_ms, failure_count, self.max_backoff_ms)
            return ScheduleDecision(min(delay, until_start), ScheduleReason.PRE_BUSINESS)

        delay = exponential_backoff(self.steady_interval_ms, failure_count, self.max_backoff_ms)
        reason = ScheduleReason.BACKOFF if failure_count > 0 else ScheduleReason.STEADY
        return ScheduleDecision(delay, reason)

    def next_delay(self, now: datetime, failure_count: int = 0) -> int:
        """Milliseconds until the next attempt for ``failure_count`` escalation steps."""
        return self.decide(now, failure_count).delay_ms


__all__ = ["CalendarPolicy", "exponential_backoff"]
