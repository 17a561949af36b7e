"""Configuration dataclasses and loading helpers for the stream capture system."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Tuple

from timelapse_capture.models import Stream, extract_stream_number

WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

DEFAULT_PRIMARY_FRAMES_DIR = Path("/media/pi/4A/timelapse_frames")
DEFAULT_FALLBACK_FRAMES_DIR = Path("timelapse_frames")
# timezone() accepts offsets strictly inside one day.
MAX_UTC_OFFSET_MINUTES = 24 * 60 - 1


def _parse_bool(value: Any, default: bool) -> bool:
    """Parse truthy/falsy values from multiple input types."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(value, (int, float)):
        return value != 0
    return default


def _parse_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_positive_int(value: Any, default: int) -> int:
    """Parse a positive integer with fallback to default."""
    parsed = _parse_int(value, default)
    return parsed if parsed > 0 else default


def _parse_non_negative_int(value: Any, default: int) -> int:
    parsed = _parse_int(value, default)
    return parsed if parsed >= 0 else default


def _parse_float(value: Any, default: float) -> float:
    """Parse a floating point number with fallback to default."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_positive_float(value: Any, default: float) -> float:
    parsed = _parse_float(value, default)
    return parsed if parsed > 0 else default


def _parse_hour(value: Any, default: int) -> int:
    parsed = _parse_int(value, default)
    return parsed if 0 <= parsed <= 23 else default


def _parse_utc_offset(value: Any, default: int) -> int:
    """Offsets must stay strictly inside one day for a fixed timezone."""
    parsed = _parse_int(value, default)
    return parsed if -MAX_UTC_OFFSET_MINUTES <= parsed <= MAX_UTC_OFFSET_MINUTES else default


def _parse_weekday(value: Any, default: int) -> int:
    """Parse a weekday as a name (``"monday"``) or Python weekday number (Monday=0)."""
    if isinstance(value, str):
        key = value.strip().lower()
        for number, name in enumerate(WEEKDAY_NAMES):
            if name.startswith(key) and len(key) >= 3:
                return number
        value = key
    parsed = _parse_int(value, default)
    return parsed if 0 <= parsed <= 6 else default


def _parse_path(value: Any, default: Optional[Path]) -> Optional[Path]:
    if value is None or value == "":
        return default
    return Path(str(value))


@dataclass(frozen=True)
class StreamConfig:
    """A configured stream URL with an optional explicit index."""

    url: str
    index: Optional[int] = None


@dataclass(frozen=True)
class CaptureSettings:
    """Frame grabbing and retry behaviour shared by every stream."""

    interval_seconds: int = 60
    jpeg_quality: int = 80
    output_width: int = 1920
    output_height: int = 1080
    rtsp_transport: str = "tcp"
    timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_delay_seconds: float = 2.0
    max_backoff_seconds: int = 3600
    frames_dir: Path = DEFAULT_PRIMARY_FRAMES_DIR
    fallback_frames_dir: Path = DEFAULT_FALLBACK_FRAMES_DIR


@dataclass(frozen=True)
class CalendarSettings:
    """Business-hours calendar evaluated in a fixed UTC offset."""

    utc_offset_minutes: int = 180
    rest_day: int = 0
    morning_check_hour: int = 10
    business_start_hour: int = 12
    business_end_hour: int = 19
    pre_business_poll_minutes: int = 10
    rest_day_poll_minutes: int = 60


@dataclass(frozen=True)
class AssemblerSettings:
    """Settings for the batch job that turns captured frames into videos."""

    frames_dir: Optional[Path] = None
    output_dir: Path = Path("timelapse_videos")
    frame_rate: int = 30
    crf: int = 23
    frame_step: int = 1
    schedule_hour: int = 0
    schedule_minute: int = 5


@dataclass(frozen=True)
class LoggingSettings:
    log_file: Optional[Path] = Path("logs") / "timelapse_capture.log"
    level: str = "INFO"


@dataclass(frozen=True)
class Config:
    """Root configuration object for the capture system."""

    streams: Tuple[StreamConfig, ...]
    capture: CaptureSettings = field(default_factory=CaptureSettings)
    calendar: CalendarSettings = field(default_factory=CalendarSettings)
    assembler: AssemblerSettings = field(default_factory=AssemblerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def resolve_streams(stream_configs: Iterable[StreamConfig]) -> Tuple[Stream, ...]:
    """Build immutable streams, deriving each index from its URL when not explicit.

    Streams whose URL carries no ``/stream<N>`` suffix fall back to their 1-based
    position in the configured list. Duplicate indices raise ``ValueError`` since
    every stream must own a distinct frame directory.
    """
    streams: list[Stream] = []
    seen: dict[int, str] = {}
    for position, entry in enumerate(stream_configs, start=1):
        index = entry.index
        if index is None:
            index = extract_stream_number(entry.url)
        if index is None:
            index = position
        if index in seen:
            raise ValueError(
                f"Stream index {index} is used by both '{seen[index]}' and '{entry.url}'"
            )
        seen[index] = entry.url
        streams.append(Stream(url=entry.url, index=index))
    return tuple(streams)


def _parse_streams(raw_list: Any) -> Tuple[StreamConfig, ...]:
    if isinstance(raw_list, str):
        raw_list = raw_list.split(",")
    streams: list[StreamConfig] = []
    for entry in raw_list or []:
        if isinstance(entry, str):
            url = entry.strip()
            if url:
                streams.append(StreamConfig(url=url))
            continue
        if not isinstance(entry, Mapping):
            continue
        if not _parse_bool(entry.get("enabled"), True):
            continue
        url = str(entry.get("url", "")).strip()
        if not url:
            continue
        raw_index = entry.get("index")
        index = _parse_non_negative_int(raw_index, -1) if raw_index is not None else -1
        streams.append(StreamConfig(url=url, index=index if index >= 0 else None))
    return tuple(streams)


def _parse_capture_settings(raw: Mapping[str, Any]) -> CaptureSettings:
    default = CaptureSettings()
    if not isinstance(raw, Mapping):
        return default
    quality = _parse_int(raw.get("jpeg_quality"), default.jpeg_quality)
    return CaptureSettings(
        interval_seconds=_parse_positive_int(raw.get("interval_seconds"), default.interval_seconds),
        jpeg_quality=max(0, min(100, quality)),
        output_width=_parse_int(raw.get("output_width"), default.output_width),
        output_height=_parse_int(raw.get("output_height"), default.output_height),
        rtsp_transport=str(raw.get("rtsp_transport") or default.rtsp_transport),
        timeout_seconds=_parse_positive_float(raw.get("timeout_seconds"), default.timeout_seconds),
        max_retries=_parse_non_negative_int(raw.get("max_retries"), default.max_retries),
        retry_delay_seconds=max(
            0.0,
            _parse_float(raw.get("retry_delay_seconds"), default.retry_delay_seconds),
        ),
        max_backoff_seconds=_parse_positive_int(
            raw.get("max_backoff_seconds"),
            default.max_backoff_seconds,
        ),
        frames_dir=_parse_path(raw.get("frames_dir"), default.frames_dir),
        fallback_frames_dir=_parse_path(
            raw.get("fallback_frames_dir"),
            default.fallback_frames_dir,
        ),
    )


def _parse_calendar_settings(raw: Mapping[str, Any]) -> CalendarSettings:
    default = CalendarSettings()
    if not isinstance(raw, Mapping):
        return default
    return CalendarSettings(
        utc_offset_minutes=_parse_utc_offset(raw.get("utc_offset_minutes"), default.utc_offset_minutes),
        rest_day=_parse_weekday(raw.get("rest_day"), default.rest_day),
        morning_check_hour=_parse_hour(raw.get("morning_check_hour"), default.morning_check_hour),
        business_start_hour=_parse_hour(
            raw.get("business_start_hour"),
            default.business_start_hour,
        ),
        business_end_hour=_parse_hour(raw.get("business_end_hour"), default.business_end_hour),
        pre_business_poll_minutes=_parse_positive_int(
            raw.get("pre_business_poll_minutes"),
            default.pre_business_poll_minutes,
        ),
        rest_day_poll_minutes=_parse_positive_int(
            raw.get("rest_day_poll_minutes"),
            default.rest_day_poll_minutes,
        ),
    )


def _parse_assembler_settings(raw: Mapping[str, Any]) -> AssemblerSettings:
    default = AssemblerSettings()
    if not isinstance(raw, Mapping):
        return default
    return AssemblerSettings(
        frames_dir=_parse_path(raw.get("frames_dir"), default.frames_dir),
        output_dir=_parse_path(raw.get("output_dir"), default.output_dir),
        frame_rate=_parse_positive_int(raw.get("frame_rate"), default.frame_rate),
        crf=_parse_non_negative_int(raw.get("crf"), default.crf),
        frame_step=_parse_positive_int(raw.get("frame_step"), default.frame_step),
        schedule_hour=_parse_hour(raw.get("schedule_hour"), default.schedule_hour),
        schedule_minute=max(
            0,
            min(59, _parse_int(raw.get("schedule_minute"), default.schedule_minute)),
        ),
    )


def _parse_logging_settings(raw: Mapping[str, Any]) -> LoggingSettings:
    default = LoggingSettings()
    if not isinstance(raw, Mapping):
        return default
    log_file: Optional[Path] = default.log_file
    if "log_file" in raw:
        log_file = _parse_path(raw.get("log_file"), None)
    return LoggingSettings(
        log_file=log_file,
        level=str(raw.get("level") or default.level).upper(),
    )


def _load_env_config(env: Mapping[str, str]) -> Config:
    """Fallback configuration derived from environment variables."""
    capture = _parse_capture_settings({
        "interval_seconds": env.get("CAPTURE_INTERVAL_SECONDS"),
        "jpeg_quality": env.get("JPEG_QUALITY"),
        "output_width": env.get("OUTPUT_WIDTH"),
        "output_height": env.get("OUTPUT_HEIGHT"),
        "rtsp_transport": env.get("RTSP_TRANSPORT"),
        "timeout_seconds": env.get("CAPTURE_TIMEOUT_SECONDS"),
        "max_retries": env.get("MAX_RETRIES"),
        "retry_delay_seconds": env.get("RETRY_DELAY_SECONDS"),
        "max_backoff_seconds": env.get("MAX_BACKOFF_SECONDS"),
        "frames_dir": env.get("FRAMES_DIR"),
        "fallback_frames_dir": env.get("FALLBACK_FRAMES_DIR"),
    })

    calendar = _parse_calendar_settings({
        "utc_offset_minutes": env.get("UTC_OFFSET_MINUTES"),
        "rest_day": env.get("REST_DAY"),
        "morning_check_hour": env.get("MORNING_CHECK_HOUR"),
        "business_start_hour": env.get("BUSINESS_START_HOUR"),
        "business_end_hour": env.get("BUSINESS_END_HOUR"),
        "pre_business_poll_minutes": env.get("PRE_BUSINESS_POLL_MINUTES"),
        "rest_day_poll_minutes": env.get("REST_DAY_POLL_MINUTES"),
    })

    assembler = _parse_assembler_settings({
        "frames_dir": env.get("ASSEMBLER_FRAMES_DIR"),
        "output_dir": env.get("VIDEO_DIR"),
        "frame_rate": env.get("VIDEO_FRAME_RATE"),
        "crf": env.get("VIDEO_CRF"),
        "frame_step": env.get("VIDEO_FRAME_STEP"),
        "schedule_hour": env.get("ASSEMBLE_HOUR"),
        "schedule_minute": env.get("ASSEMBLE_MINUTE"),
    })

    logging_raw: dict[str, Any] = {"level": env.get("LOG_LEVEL")}
    if "LOG_FILE" in env:
        logging_raw["log_file"] = env.get("LOG_FILE")

    return Config(
        streams=_parse_streams(env.get("STREAM_URLS", "")),
        capture=capture,
        calendar=calendar,
        assembler=assembler,
        logging=_parse_logging_settings(logging_raw),
    )


def load_config(config_path: Path | str, env: Mapping[str, str] | None = None) -> Config:
    """Load configuration from JSON file or environment defaults."""
    source_env = env if env is not None else os.environ
    path = Path(config_path)

    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        return Config(
            streams=_parse_streams(data.get("streams", [])),
            capture=_parse_capture_settings(data.get("capture", {})),
            calendar=_parse_calendar_settings(data.get("calendar", {})),
            assembler=_parse_assembler_settings(data.get("assembler", {})),
            logging=_parse_logging_settings(data.get("logging", {})),
        )

    return _load_env_config(source_env)


__all__ = [
    "AssemblerSettings",
    "CalendarSettings",
    "CaptureSettings",
    "Config",
    "LoggingSettings",
    "MAX_UTC_OFFSET_MINUTES",
    "StreamConfig",
    "load_config",
    "resolve_streams",
    "_parse_bool",
    "_parse_positive_int",
    "_parse_weekday",
]
