"""Fleet coordination: one capture loop per stream plus the operator stop command."""

from __future__ import annotations

import logging
import sys
import threading
from typing import Callable, Dict, Iterable, Optional, TextIO

from timelapse_capture.models import FailureCounter, Stream
from timelapse_capture.scheduler import StreamScheduler

SchedulerFactory = Callable[[Stream, FailureCounter, threading.Event], StreamScheduler]


class FleetCoordinator:
    """Start every stream's capture loop and broadcast the stop token to all of them."""

    def __init__(
        self,
        streams: Iterable[Stream],
        scheduler_factory: SchedulerFactory,
        *,
        logger: logging.Logger,
    ) -> None:
        self.streams = tuple(streams)
        if not self.streams:
            raise ValueError("No streams configured")
        self.logger = logger
        self.stop_event = threading.Event()

        self.counters: Dict[int, FailureCounter] = {}
        self.loops: Dict[int, StreamScheduler] = {}
        for stream in self.streams:
            if stream.index in self.counters:
                raise ValueError(f"Duplicate stream index {stream.index} ({stream.url})")
            counter = FailureCounter(stream)
            self.counters[stream.index] = counter
            self.loops[stream.index] = scheduler_factory(stream, counter, self.stop_event)

        self._threads: Dict[int, threading.Thread] = {}

    @property
    def is_capturing(self) -> bool:
        return not self.stop_event.is_set()

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("Fleet already started")
        for index, loop in self.loops.items():
            thread = threading.Thread(
                target=loop.run,
                name=f"capture-{loop.stream.name}",
                daemon=True,
            )
            self._threads[index] = thread
            thread.start()
        self.logger.info(
            "Time-lapse recording started for %s streams. Type \"stop\" to end the capture process.",
            len(self._threads),
        )

    def stop(self) -> None:
        """Signal every loop to finish after its current cycle."""
        if self.stop_event.is_set():
            return
        self.stop_event.set()
        self.logger.info("Time-lapse recording stopped.")

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the loops to exit; ``True`` when all of them have."""
        for thread in self._threads.values():
            thread.join(timeout)
        return not any(thread.is_alive() for thread in self._threads.values())

    def failure_counts(self) -> Dict[int, int]:
        return {index: counter.value for index, counter in self.counters.items()}


class OperatorConsole:
    """Read operator commands line by line; ``stop`` is the only one recognised."""

    STOP_COMMAND = "stop"

    def __init__(
        self,
        coordinator: FleetCoordinator,
        *,
        logger: logging.Logger,
        input_stream: Optional[TextIO] = None,
    ) -> None:
        self.coordinator = coordinator
        self.logger = logger
        self.input_stream = input_stream

    def handle(self, line: str) -> bool:
        command = line.strip().lower()
        if not command:
            return False
        if command == self.STOP_COMMAND:
            self.coordinator.stop()
            return True
        self.logger.warning("Unknown command %r; type \"stop\" to end the capture process", command)
        return False

    def run(self) -> bool:
        """Consume input until ``stop`` (returns ``True``) or end of input (``False``)."""
        stream = self.input_stream if self.input_stream is not None else sys.stdin
        for line in stream:
            if self.handle(line):
                return True
        self.logger.info("Operator input closed; capture continues until interrupted")
        return False


__all__ = ["FleetCoordinator", "OperatorConsole", "SchedulerFactory"]
