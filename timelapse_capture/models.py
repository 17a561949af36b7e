"""Data models used across the stream timelapse capture system."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

_STREAM_NUMBER_PATTERN = re.compile(r"/stream(\d+)$")


def extract_stream_number(url: str) -> Optional[int]:
    """Return the trailing ``/stream<N>`` number encoded in a stream URL."""
    match = _STREAM_NUMBER_PATTERN.search(url.rstrip("/"))
    if match is None:
        return None
    return int(match.group(1))


@dataclass(frozen=True)
class Stream:
    """A configured network video stream."""

    url: str
    index: int

    @property
    def name(self) -> str:
        """Short label used in log lines (last URL path segment)."""
        tail = self.url.rstrip("/").rsplit("/", 1)[-1]
        return tail or f"stream{self.index}"


class FailureReason(str, Enum):
    """Classification of a failed capture attempt."""

    NOT_FOUND = "not_found"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    OTHER = "other"


@dataclass(frozen=True)
class CaptureOutcome:
    """Result of a single frame grab."""

    stream: Stream
    success: bool
    path: Optional[Path] = None
    reason: Optional[FailureReason] = None
    detail: str = ""
    returncode: Optional[int] = None
    duration: float = 0.0

    @classmethod
    def succeeded(cls, stream: Stream, path: Path, *, duration: float = 0.0) -> "CaptureOutcome":
        return cls(stream=stream, success=True, path=path, returncode=0, duration=duration)

    @classmethod
    def failed(
        cls,
        stream: Stream,
        reason: FailureReason,
        *,
        detail: str = "",
        returncode: Optional[int] = None,
        duration: float = 0.0,
    ) -> "CaptureOutcome":
        return cls(
            stream=stream,
            success=False,
            reason=reason,
            detail=detail,
            returncode=returncode,
            duration=duration,
        )


@dataclass
class FailureCounter:
    """Consecutive failed attempts for one stream; owned by that stream's loop."""

    stream: Stream
    value: int = 0


class ScheduleReason(str, Enum):
    """Why a schedule decision produced its delay."""

    STEADY = "steady"
    IMMEDIATE_RETRY = "immediate_retry"
    BACKOFF = "backoff"
    PRE_BUSINESS = "pre_business"
    WAIT_FOR_MORNING = "wait_for_morning"
    REST_DAY = "rest_day"
    AFTER_HOURS = "after_hours"


@dataclass(frozen=True)
class ScheduleDecision:
    """Delay until the next capture cycle and where it came from."""

    delay_ms: int
    reason: ScheduleReason

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0


__all__ = [
    "CaptureOutcome",
    "FailureCounter",
    "FailureReason",
    "ScheduleDecision",
    "ScheduleReason",
    "Stream",
    "extract_stream_number",
]
