"""Logging for the recorder: one format, a log file that degrades gracefully, console output."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from timelapse_capture.config import LoggingSettings

DEFAULT_LOGGER_NAME = "timelapse_capture"
# Capture loops run in named threads, so every line says which stream wrote it.
LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(threadName)s] %(message)s"


def parse_level(value: Union[str, int, None], default: int = logging.INFO) -> int:
    """Translate ``"DEBUG"``-style names or numeric levels into a logging level."""
    if isinstance(value, int):
        return value
    if not value:
        return default
    level = logging.getLevelName(str(value).strip().upper())
    return level if isinstance(level, int) else default


def log_file_candidates(log_file: Path) -> List[Path]:
    """Configured location first, then the bare filename in the working directory."""
    configured = log_file if log_file.is_absolute() else Path.cwd() / log_file
    fallback = Path.cwd() / configured.name
    return [configured] if fallback == configured else [configured, fallback]


def open_log_file(log_file: Path) -> Tuple[Optional[logging.FileHandler], List[str]]:
    """Open the first writable candidate; report every location that failed."""
    problems: List[str] = []
    for candidate in log_file_candidates(log_file):
        try:
            candidate.parent.mkdir(parents=True, exist_ok=True)
            return logging.FileHandler(candidate, encoding="utf-8"), problems
        except OSError as exc:
            problems.append(f"Cannot write log file '{candidate}': {exc}")
    return None, problems


def configure_logging(
    settings: Optional[LoggingSettings] = None,
    *,
    level: Union[str, int, None] = None,
    logger_name: Optional[str] = None,
    include_stream: bool = True,
) -> logging.Logger:
    """Install root handlers described by ``settings`` and return the app logger.

    ``level`` overrides ``settings.level`` (the CLI's ``--verbose``). A log file
    that cannot be opened anywhere leaves console logging in place and is
    reported as a warning once the handlers exist.
    """
    settings = settings or LoggingSettings()
    numeric_level = parse_level(level if level is not None else settings.level)
    formatter = logging.Formatter(LOG_FORMAT)

    handlers: List[logging.Handler] = []
    problems: List[str] = []
    if settings.log_file is not None:
        file_handler, problems = open_log_file(settings.log_file)
        if file_handler is not None:
            handlers.append(file_handler)
    if include_stream:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)

    logger = logging.getLogger(logger_name or DEFAULT_LOGGER_NAME)
    logger.setLevel(numeric_level)
    for problem in problems:
        logger.warning(problem)
    return logger


__all__ = ["LOG_FORMAT", "configure_logging", "log_file_candidates", "open_log_file", "parse_level"]
