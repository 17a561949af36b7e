"""
Stream Timelapse Recorder
Captures a still frame from each configured RTSP stream on a business-hours
calendar and assembles the captured frames into timelapse videos.
"""

from __future__ import annotations

import logging
import shutil
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Mapping, Optional, TextIO

from dotenv import load_dotenv

from timelapse_capture.assembler import AssemblyResult, VideoAssembler
from timelapse_capture.calendar_policy import CalendarPolicy
from timelapse_capture.capture import CaptureAttempt
from timelapse_capture.config import Config, load_config, resolve_streams
from timelapse_capture.fleet import FleetCoordinator, OperatorConsole
from timelapse_capture.grabber import FrameGrabber
from timelapse_capture.logging_setup import configure_logging
from timelapse_capture.models import FailureCounter, ScheduleDecision, Stream
from timelapse_capture.paths import resolve_frames_dir
from timelapse_capture.retry import RetryController
from timelapse_capture.scheduler import StreamScheduler, run_assembly_schedule

# Load environment variables
load_dotenv()


class TimelapseRecorder:
    """Wire configuration, logging and the capture components together."""

    def __init__(
        self,
        config_file: str = "config.json",
        *,
        env: Optional[Mapping[str, str]] = None,
        logger: Optional[logging.Logger] = None,
        log_level: Optional[str] = None,
    ) -> None:
        self.config_path = Path(config_file)
        self.config: Config = load_config(self.config_path, env)

        if logger is None:
            logger = configure_logging(self.config.logging, level=log_level)
        self.logger = logger

        self.streams = resolve_streams(self.config.streams)
        self.policy = CalendarPolicy.from_settings(self.config.calendar, self.config.capture)
        self._frames_dir: Optional[Path] = None

    @property
    def frames_dir(self) -> Path:
        if self._frames_dir is None:
            capture = self.config.capture
            self._frames_dir = resolve_frames_dir(
                capture.frames_dir,
                capture.fallback_frames_dir,
                self.logger,
            )
        return self._frames_dir

    # ------------------------------------------------------------------
    # Component factories
    # ------------------------------------------------------------------

    def build_grabber(self) -> FrameGrabber:
        capture = self.config.capture
        return FrameGrabber(
            self.logger,
            jpeg_quality=capture.jpeg_quality,
            output_width=capture.output_width,
            output_height=capture.output_height,
            rtsp_transport=capture.rtsp_transport,
            timeout=capture.timeout_seconds,
        )

    def build_scheduler(
        self,
        stream: Stream,
        counter: FailureCounter,
        stop_event: threading.Event,
    ) -> StreamScheduler:
        attempt = CaptureAttempt.for_directory(
            self.build_grabber(),
            self.frames_dir,
            logger=self.logger,
            clock=self.policy.now,
        )
        retry_controller = RetryController(
            attempt,
            logger=self.logger,
            max_retries=self.config.capture.max_retries,
            retry_delay=self.config.capture.retry_delay_seconds,
        )
        return StreamScheduler(
            stream,
            retry_controller,
            self.policy,
            counter,
            stop_event,
            logger=self.logger,
        )

    def build_coordinator(self) -> FleetCoordinator:
        return FleetCoordinator(self.streams, self.build_scheduler, logger=self.logger)

    def build_assembler(self) -> VideoAssembler:
        settings = self.config.assembler
        return VideoAssembler(
            settings.frames_dir or self.frames_dir,
            settings.output_dir,
            logger=self.logger,
            frame_rate=settings.frame_rate,
            crf=settings.crf,
            frame_step=settings.frame_step,
        )

    def shutdown_grace_seconds(self) -> float:
        """Upper bound on how long an in-flight retry cycle can still run after stop."""
        capture = self.config.capture
        attempts = capture.max_retries + 1
        return attempts * capture.timeout_seconds + capture.max_retries * capture.retry_delay_seconds + 5.0

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def decide(self, now: datetime, failure_count: int = 0) -> ScheduleDecision:
        return self.policy.decide(now, failure_count)

    def run(self, input_stream: Optional[TextIO] = None) -> int:
        """Record until the operator types ``stop`` or the process is interrupted."""
        if shutil.which("ffmpeg") is None:
            raise RuntimeError("ffmpeg not found on PATH. Install ffmpeg to capture frames.")

        coordinator = self.build_coordinator()
        self.logger.info("Saving frames under %s", self.frames_dir)
        for stream in self.streams:
            self.logger.info("  - stream %s: %s", stream.index, stream.url)

        coordinator.start()
        try:
            OperatorConsole(coordinator, logger=self.logger, input_stream=input_stream).run()
            while coordinator.is_capturing and not coordinator.join(timeout=1.0):
                pass
        except (KeyboardInterrupt, SystemExit):
            coordinator.stop()

        if not coordinator.join(timeout=self.shutdown_grace_seconds()):
            self.logger.warning("Some capture loops were still busy at exit")
        return 0

    def assemble(self) -> List[AssemblyResult]:
        return self.build_assembler().assemble_all()

    def run_assembly_schedule(self) -> None:
        settings = self.config.assembler
        assembler = self.build_assembler()
        run_assembly_schedule(
            assembler.assemble_all,
            hour=settings.schedule_hour,
            minute=settings.schedule_minute,
            logger=self.logger,
        )


__all__ = ["TimelapseRecorder"]
