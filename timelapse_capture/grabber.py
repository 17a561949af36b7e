"""ffmpeg invocation for grabbing a single still frame from a network stream."""

from __future__ import annotations

import logging
import math
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

# ffmpeg's MJPEG ``-q:v`` scale: 2 is best, 31 is worst.
NATIVE_QUALITY_MIN = 2
NATIVE_QUALITY_MAX = 31


def convert_jpeg_quality(
    quality: int,
    *,
    native_min: int = NATIVE_QUALITY_MIN,
    native_max: int = NATIVE_QUALITY_MAX,
) -> int:
    """Map a 0-100 quality (higher is better) onto the encoder's inverted native scale."""
    clamped = max(0, min(100, quality))
    value = ((100 - clamped) / 100) * (native_max - native_min) + native_min
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class GrabResult:
    """Raw exit information from one frame grabber run."""

    returncode: Optional[int]
    stderr: str = ""
    timed_out: bool = False
    spawn_error: Optional[str] = None


class FrameGrabber:
    """Build and run the ffmpeg command that writes one frame to disk."""

    def __init__(
        self,
        logger: logging.Logger,
        *,
        jpeg_quality: int = 80,
        output_width: int = 1920,
        output_height: int = 1080,
        rtsp_transport: Optional[str] = "tcp",
        timeout: float = 30.0,
        executable: str = "ffmpeg",
    ) -> None:
        self.logger = logger
        self.jpeg_quality = jpeg_quality
        self.output_width = output_width
        self.output_height = output_height
        self.rtsp_transport = rtsp_transport
        self.timeout = timeout
        self.executable = executable

    def scale_filter(self) -> Optional[str]:
        """Return the ``scale`` filter, or ``None`` when the source size is kept."""
        if self.output_width <= 0 and self.output_height <= 0:
            return None
        width = self.output_width if self.output_width > 0 else -1
        height = self.output_height if self.output_height > 0 else -1
        return f"scale={width}:{height}"

    def build_command(self, stream_url: str, output_path: Path) -> List[str]:
        cmd = [
            self.executable,
            "-hide_banner",
            "-loglevel",
            "error",
            "-y",
        ]
        if self.rtsp_transport:
            cmd.extend(["-rtsp_transport", self.rtsp_transport])
        cmd.extend([
            "-i",
            stream_url,
            "-frames:v",
            "1",
            "-c:v",
            "mjpeg",
            "-q:v",
            str(convert_jpeg_quality(self.jpeg_quality)),
            "-f",
            "image2",
            "-update",
            "1",
        ])

        scale = self.scale_filter()
        if scale:
            cmd.extend(["-vf", scale])

        cmd.append(str(output_path))
        return cmd

    def grab(self, stream_url: str, output_path: Path) -> GrabResult:
        """Run the grabber, killing it once ``timeout`` seconds have elapsed."""
        cmd = self.build_command(stream_url, output_path)
        self.logger.debug("Running frame grabber: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            stderr = exc.stderr.decode("utf-8", errors="ignore") if exc.stderr else ""
            return GrabResult(returncode=None, stderr=stderr, timed_out=True)
        except OSError as exc:
            return GrabResult(returncode=None, spawn_error=f"{cmd[0]}: {exc}")

        stderr_text = result.stderr.decode("utf-8", errors="ignore") if result.stderr else ""
        return GrabResult(returncode=result.returncode, stderr=stderr_text)


__all__ = [
    "FrameGrabber",
    "GrabResult",
    "NATIVE_QUALITY_MAX",
    "NATIVE_QUALITY_MIN",
    "convert_jpeg_quality",
]
