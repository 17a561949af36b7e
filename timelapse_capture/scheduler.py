"""Scheduling for the capture system: per-stream capture loops and the daily assembly job."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from timelapse_capture.calendar_policy import CalendarPolicy
from timelapse_capture.models import FailureCounter, ScheduleDecision, ScheduleReason, Stream
from timelapse_capture.progress import format_delay_ms
from timelapse_capture.retry import RetryController


class StreamScheduler:
    """Long-running capture loop for a single stream.

    Each cycle runs the retry controller, measures how long it took, picks the
    next delay and waits on the stop token. The stop token is checked at the
    top of every cycle; an attempt that has already started always finishes.
    """

    def __init__(
        self,
        stream: Stream,
        retry_controller: RetryController,
        policy: CalendarPolicy,
        counter: FailureCounter,
        stop_event: threading.Event,
        *,
        logger: logging.Logger,
        clock: Optional[Callable[[], datetime]] = None,
        monotonic: Callable[[], float] = time.monotonic,
        wait: Optional[Callable[[float], Any]] = None,
    ) -> None:
        if counter.stream != stream:
            raise ValueError(f"Failure counter for {counter.stream.name} given to {stream.name}")
        self.stream = stream
        self.retry_controller = retry_controller
        self.policy = policy
        self.counter = counter
        self.stop_event = stop_event
        self.logger = logger
        self.clock = clock or policy.now
        self.monotonic = monotonic
        self.wait = wait or stop_event.wait

    def next_decision(self, now: datetime, elapsed_ms: int) -> ScheduleDecision:
        failures = self.counter.value
        if self.retry_controller.is_exhausted(failures):
            # Escalation restarts at one step once the immediate retries are spent.
            return self.policy.decide(now, failures - self.retry_controller.max_retries)
        if self.policy.is_business_day(now) and self.policy.is_business_hours(now):
            return ScheduleDecision(
                max(0, self.policy.steady_interval_ms - elapsed_ms),
                ScheduleReason.STEADY,
            )
        return self.policy.decide(now, 0)

    def run_cycle(self) -> Optional[ScheduleDecision]:
        """Run one capture cycle and return the delay before the next one.

        Returns ``None`` once the stop token is set; nothing is attempted then.
        """
        if self.stop_event.is_set():
            return None

        started = self.monotonic()
        try:
            self.counter.value = self.retry_controller.run(self.stream, self.counter.value)
        except Exception:
            self.logger.exception("%s: capture cycle raised unexpectedly", self.stream.name)
            self.counter.value += 1
        elapsed_ms = max(0, int((self.monotonic() - started) * 1000))

        decision = self.next_decision(self.clock(), elapsed_ms)
        self.logger.info(
            "%s: next attempt in %s (%s, failures=%s, cycle took %s)",
            self.stream.name,
            format_delay_ms(decision.delay_ms),
            decision.reason.value,
            self.counter.value,
            format_delay_ms(elapsed_ms),
        )
        return decision

    def run(self) -> None:
        self.logger.info("%s: capture loop started for %s", self.stream.name, self.stream.url)
        while True:
            decision = self.run_cycle()
            if decision is None:
                break
            self.wait(decision.delay_seconds)
        self.logger.info("%s: capture loop stopped", self.stream.name)


def run_assembly_schedule(
    assemble: Callable[[], Any],
    *,
    hour: int,
    minute: int,
    logger: logging.Logger,
) -> None:
    """Run ``assemble`` every day at ``hour:minute`` (host local time) until interrupted."""
    scheduler = BlockingScheduler()
    scheduler.add_job(
        assemble,
        trigger=CronTrigger(hour=hour, minute=minute),
        id="assemble_videos",
        name="Assemble Timelapse Videos",
        max_instances=1,
    )

    logger.info("Video assembly scheduled daily at %02d:%02d", hour, minute)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Video assembly scheduler stopped")
        scheduler.shutdown()


__all__ = ["StreamScheduler", "run_assembly_schedule"]
