"""
Command line interface for recording streams and assembling timelapse videos.
"""

from __future__ import annotations

import argparse
from datetime import datetime
from typing import Optional, Sequence

from timelapse_capture.app import TimelapseRecorder
from timelapse_capture.progress import format_delay_ms


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="timelapse-capture",
        description="Capture periodic frames from RTSP streams and build timelapse videos.",
    )
    parser.add_argument("--config", default="config.json", help="Path to the JSON configuration file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("record", help="Start capturing every configured stream (default)")

    assemble = subparsers.add_parser("assemble", help="Assemble captured frames into videos")
    assemble.add_argument(
        "--schedule",
        action="store_true",
        help="Keep running and assemble videos daily at the configured time",
    )

    next_delay = subparsers.add_parser(
        "next-delay",
        help="Show the calendar decision for a moment and failure count",
    )
    next_delay.add_argument(
        "--at",
        type=datetime.fromisoformat,
        default=None,
        help="ISO timestamp; naive values are read in the configured UTC offset (default: now)",
    )
    next_delay.add_argument(
        "--failures",
        type=int,
        default=0,
        help="Backoff steps beyond the immediate-retry budget",
    )
    return parser


def show_next_delay(recorder: TimelapseRecorder, at: Optional[datetime], failures: int) -> int:
    moment = recorder.policy.to_target_zone(at) if at is not None else recorder.policy.now()
    decision = recorder.decide(moment, max(0, failures))
    recorder.logger.info(
        "At %s with %s failure step(s): next attempt in %s (%s ms, %s)",
        moment.isoformat(),
        failures,
        format_delay_ms(decision.delay_ms),
        decision.delay_ms,
        decision.reason.value,
    )
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    recorder = TimelapseRecorder(
        config_file=args.config,
        log_level="DEBUG" if args.verbose else None,
    )

    command = args.command or "record"
    if command == "assemble":
        if args.schedule:
            recorder.run_assembly_schedule()
            return 0
        results = recorder.assemble()
        recorder.logger.info("Assembled %s video(s)", len(results))
        return 0
    if command == "next-delay":
        return show_next_delay(recorder, args.at, args.failures)
    return recorder.run()


__all__ = ["build_parser", "main", "show_next_delay"]
