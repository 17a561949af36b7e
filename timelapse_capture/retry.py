"""Immediate-retry wrapper around a capture attempt."""

from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

from timelapse_capture.models import CaptureOutcome, ScheduleDecision, ScheduleReason, Stream


class Attempter(Protocol):
    def attempt(self, stream: Stream) -> CaptureOutcome:
        ...


class RetryController:
    """Retry a failed capture a fixed number of times before handing back to the scheduler.

    ``run`` starts from the caller's current failure count. A stream that already
    exhausted its budget on an earlier cycle therefore makes a single attempt and
    returns a count one higher, which the scheduler turns into a longer backoff.
    """

    def __init__(
        self,
        attempter: Attempter,
        *,
        logger: logging.Logger,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        self.attempter = attempter
        self.logger = logger
        self.max_retries = max_retries
        self.retry_delay = max(0.0, retry_delay)
        self.sleep = sleep

    def is_exhausted(self, failure_count: int) -> bool:
        return failure_count > self.max_retries

    def retry_decision(self) -> ScheduleDecision:
        """Fixed pause before an immediate retry; never calendar-aware."""
        return ScheduleDecision(int(round(self.retry_delay * 1000)), ScheduleReason.IMMEDIATE_RETRY)

    def run(self, stream: Stream, failure_count: int = 0) -> int:
        """Attempt a capture, retrying immediately while within budget.

        Returns ``0`` after a success, otherwise the accumulated failure count
        (greater than ``max_retries``).
        """
        failures = max(0, failure_count)
        while True:
            outcome = self.attempter.attempt(stream)
            if outcome.success:
                if failures:
                    self.logger.info(
                        "%s: recovered after %s failed attempt(s)",
                        stream.name,
                        failures,
                    )
                return 0

            failures += 1
            if self.is_exhausted(failures):
                self.logger.warning(
                    "%s: retry budget exhausted (%s consecutive failures)",
                    stream.name,
                    failures,
                )
                return failures

            decision = self.retry_decision()
            self.logger.info(
                "%s: immediate retry %s of %s in %s ms",
                stream.name,
                failures,
                self.max_retries,
                decision.delay_ms,
            )
            if decision.delay_ms:
                self.sleep(decision.delay_seconds)


__all__ = ["Attempter", "RetryController"]
