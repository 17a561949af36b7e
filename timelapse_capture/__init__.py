"""
Periodic still-frame capture from network video streams, scheduled on a
business-hours calendar, with batch assembly of the frames into timelapses.
"""

from .app import TimelapseRecorder
from .calendar_policy import CalendarPolicy
from .fleet import FleetCoordinator, OperatorConsole
from .models import CaptureOutcome, FailureReason, ScheduleDecision, ScheduleReason, Stream
from .retry import RetryController
from .scheduler import StreamScheduler

__all__ = [
    "CalendarPolicy",
    "CaptureOutcome",
    "FailureReason",
    "FleetCoordinator",
    "OperatorConsole",
    "RetryController",
    "ScheduleDecision",
    "ScheduleReason",
    "Stream",
    "StreamScheduler",
    "TimelapseRecorder",
]
