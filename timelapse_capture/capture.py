"""Single capture attempt: grab one frame and classify the outcome."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from time import perf_counter
from typing import Callable, Iterable, Optional

from timelapse_capture.grabber import FrameGrabber, GrabResult
from timelapse_capture.models import CaptureOutcome, FailureReason, Stream
from timelapse_capture.paths import build_frame_path

NOT_FOUND_PATTERNS = (
    "404",
    "not found",
    "no such file",
    "does not exist",
    "name or service not known",
    "could not resolve",
    "nodename nor servname",
)

TRANSPORT_PATTERNS = (
    "connection refused",
    "connection reset",
    "connection timed out",
    "timed out",
    "network is unreachable",
    "no route to host",
    "end of file",
    "broken pipe",
    "invalid data found",
)

PathBuilder = Callable[[Stream, datetime], Path]


def _matches(text: str, patterns: Iterable[str]) -> bool:
    return any(pattern in text for pattern in patterns)


def classify_failure(stderr: str) -> FailureReason:
    """Map grabber diagnostics onto a failure reason."""
    lowered = (stderr or "").lower()
    if _matches(lowered, NOT_FOUND_PATTERNS):
        return FailureReason.NOT_FOUND
    if _matches(lowered, TRANSPORT_PATTERNS):
        return FailureReason.TRANSPORT
    return FailureReason.OTHER


def _last_line(text: str) -> str:
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    return lines[-1] if lines else ""


class CaptureAttempt:
    """Grab one frame for a stream and decide whether it counts as a success."""

    def __init__(
        self,
        grabber: FrameGrabber,
        path_builder: PathBuilder,
        *,
        logger: logging.Logger,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.grabber = grabber
        self.path_builder = path_builder
        self.logger = logger
        self.clock = clock

    @classmethod
    def for_directory(
        cls,
        grabber: FrameGrabber,
        frames_dir: Path,
        *,
        logger: logging.Logger,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "CaptureAttempt":
        def path_builder(stream: Stream, timestamp: datetime) -> Path:
            return build_frame_path(frames_dir, stream, timestamp)

        return cls(grabber, path_builder, logger=logger, clock=clock)

    def attempt(self, stream: Stream) -> CaptureOutcome:
        started = perf_counter()
        try:
            output_path = self.path_builder(stream, self.clock())
        except OSError as exc:
            outcome = CaptureOutcome.failed(
                stream,
                FailureReason.OTHER,
                detail=f"cannot prepare output path: {exc}",
            )
            self._log_outcome(outcome)
            return outcome

        self.logger.debug("%s: attempting to capture", stream.name)
        result = self.grabber.grab(stream.url, output_path)
        outcome = self._finalize(stream, output_path, result, perf_counter() - started)
        self._log_outcome(outcome)
        return outcome

    def _finalize(
        self,
        stream: Stream,
        output_path: Path,
        result: GrabResult,
        duration: float,
    ) -> CaptureOutcome:
        if result.returncode == 0 and output_path.exists():
            return CaptureOutcome.succeeded(stream, output_path, duration=duration)

        self._remove_partial(output_path)

        if result.timed_out:
            return CaptureOutcome.failed(
                stream,
                FailureReason.TIMEOUT,
                detail=f"no frame after {self.grabber.timeout:g}s",
                duration=duration,
            )
        if result.spawn_error is not None:
            return CaptureOutcome.failed(
                stream,
                FailureReason.OTHER,
                detail=result.spawn_error,
                duration=duration,
            )
        if result.returncode == 0:
            return CaptureOutcome.failed(
                stream,
                FailureReason.OTHER,
                detail="grabber exited cleanly but wrote no frame",
                returncode=0,
                duration=duration,
            )
        return CaptureOutcome.failed(
            stream,
            classify_failure(result.stderr),
            detail=_last_line(result.stderr),
            returncode=result.returncode,
            duration=duration,
        )

    def _remove_partial(self, output_path: Path) -> None:
        try:
            if output_path.exists():
                output_path.unlink()
                self.logger.debug("Removed partial frame %s", output_path)
        except OSError as exc:
            self.logger.warning("Failed to remove partial frame %s: %s", output_path, exc)

    def _log_outcome(self, outcome: CaptureOutcome) -> None:
        if outcome.success:
            self.logger.info(
                "%s: captured %s (%.1fs)",
                outcome.stream.name,
                outcome.path,
                outcome.duration,
            )
            return
        reason: Optional[str] = outcome.reason.value if outcome.reason else None
        self.logger.warning(
            "%s: failed to capture (%s, exit code %s, %.1fs) %s",
            outcome.stream.name,
            reason,
            outcome.returncode,
            outcome.duration,
            outcome.detail,
        )


__all__ = ["CaptureAttempt", "PathBuilder", "classify_failure"]
