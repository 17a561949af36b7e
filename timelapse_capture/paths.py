"""Filesystem layout helpers for captured frames."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from timelapse_capture.models import Stream

FRAME_TIMESTAMP_FORMAT = "%Y-%m-%d-%H-%M-%S"
_STREAM_DIR_PATTERN = re.compile(r"^stream_(\d+)$")


def resolve_frames_dir(
    primary: Path,
    fallback: Path,
    logger: Optional[logging.Logger] = None,
) -> Path:
    """Return the primary frames directory when it exists, otherwise the fallback."""
    if primary.is_dir():
        return primary
    if logger is not None:
        logger.info("Frames directory %s not available; using %s", primary, fallback)
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


def stream_dir(base_dir: Path, stream: Stream) -> Path:
    return base_dir / f"stream_{stream.index}"


def frame_filename(stream: Stream, timestamp: datetime) -> str:
    return f"s{stream.index}-{timestamp.strftime(FRAME_TIMESTAMP_FORMAT)}.jpg"


def frame_glob(stream_index: int) -> str:
    """Glob matching every frame captured for a stream, in capture order."""
    return f"s{stream_index}-*.jpg"


def build_frame_path(base_dir: Path, stream: Stream, timestamp: datetime) -> Path:
    """Return the destination for a frame captured at ``timestamp``, creating its directory."""
    directory = stream_dir(base_dir, stream)
    directory.mkdir(parents=True, exist_ok=True)
    return directory / frame_filename(stream, timestamp)


def parse_frame_timestamp(frame_path: Path) -> Optional[datetime]:
    """Parse the capture time encoded in a frame filename."""
    _, _, encoded = frame_path.stem.partition("-")
    try:
        return datetime.strptime(encoded, FRAME_TIMESTAMP_FORMAT)
    except ValueError:
        return None


def discover_stream_dirs(frames_dir: Path) -> List[Tuple[int, Path]]:
    """Return ``(stream index, directory)`` pairs ordered by stream index."""
    if not frames_dir.exists():
        return []

    found: List[Tuple[int, Path]] = []
    for candidate in frames_dir.iterdir():
        if not candidate.is_dir():
            continue
        match = _STREAM_DIR_PATTERN.match(candidate.name)
        if match is None:
            continue
        found.append((int(match.group(1)), candidate))

    found.sort(key=lambda item: item[0])
    return found


def list_frames(directory: Path, stream_index: int) -> List[Path]:
    """Collect a stream's frames ordered chronologically by filename."""
    return sorted(directory.glob(frame_glob(stream_index)))


__all__ = [
    "FRAME_TIMESTAMP_FORMAT",
    "build_frame_path",
    "discover_stream_dirs",
    "frame_filename",
    "frame_glob",
    "list_frames",
    "parse_frame_timestamp",
    "resolve_frames_dir",
    "stream_dir",
]
