"""Batch job gluing each stream's captured frames into a timelapse video."""

from __future__ import annotations

import logging
import shutil
import subprocess
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from time import perf_counter
from typing import Callable, List, Optional, Tuple

import cv2

from timelapse_capture.paths import discover_stream_dirs, frame_glob, list_frames, parse_frame_timestamp
from timelapse_capture.progress import eta_string


@dataclass
class AssemblyResult:
    """Summary of one assembled stream video."""

    stream_index: int
    output_path: Path
    frame_count: int
    first_frame_at: Optional[datetime]
    last_frame_at: Optional[datetime]
    width: Optional[int]
    height: Optional[int]


class VideoAssembler:
    """Encode ``stream_<N>`` frame directories into H.264 videos with ffmpeg."""

    def __init__(
        self,
        frames_dir: Path,
        output_dir: Path,
        *,
        logger: logging.Logger,
        frame_rate: int = 30,
        crf: int = 23,
        frame_step: int = 1,
        executable: str = "ffmpeg",
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.frames_dir = frames_dir
        self.output_dir = output_dir
        self.logger = logger
        self.frame_rate = max(1, frame_rate)
        self.crf = crf
        self.frame_step = max(1, frame_step)
        self.executable = executable
        self.clock = clock

    # ------------------------------------------------------------------
    # Command construction
    # ------------------------------------------------------------------

    @staticmethod
    def probe_frame_dimensions(frame_path: Path) -> Optional[Tuple[int, int]]:
        """Return ``(width, height)`` of an image, or ``None`` when it cannot be read."""
        image = cv2.imread(str(frame_path), cv2.IMREAD_UNCHANGED)
        if image is None:
            return None
        height, width = image.shape[:2]
        if width <= 0 or height <= 0:
            return None
        return width, height

    @staticmethod
    def even_crop_filter(width: int, height: int) -> Optional[str]:
        """libx264 with yuv420p needs even dimensions; trim the odd row/column if any."""
        even_width = width - (width % 2)
        even_height = height - (height % 2)
        if (even_width, even_height) == (width, height) or even_width <= 0 or even_height <= 0:
            return None
        return f"crop={even_width}:{even_height}:0:0"

    def build_filter_chain(self, dimensions: Optional[Tuple[int, int]]) -> Optional[str]:
        filters: List[str] = []
        if self.frame_step > 1:
            filters.append(f"select='not(mod(n,{self.frame_step}))'")
            filters.append(f"setpts=N/{self.frame_rate}/TB")
        if dimensions is not None:
            crop = self.even_crop_filter(*dimensions)
            if crop:
                filters.append(crop)
        return ",".join(filters) if filters else None

    def video_filename(self, stream_index: int) -> str:
        return f"timelapse_s{stream_index}_{self.clock().strftime('%Y-%m-%d_%H-%M-%S')}.mp4"

    def build_command(
        self,
        input_pattern: str,
        output_path: Path,
        filter_chain: Optional[str],
    ) -> List[str]:
        cmd = [
            self.executable,
            "-hide_banner",
            "-loglevel",
            "error",
            "-y",
            "-framerate",
            str(self.frame_rate),
            "-pattern_type",
            "glob",
            "-i",
            input_pattern,
        ]
        if filter_chain:
            cmd.extend(["-vf", filter_chain])
        cmd.extend([
            "-c:v",
            "libx264",
            "-pix_fmt",
            "yuv420p",
            "-crf",
            str(self.crf),
            "-movflags",
            "+faststart",
            str(output_path),
        ])
        return cmd

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def assemble_stream(self, stream_index: int, directory: Path) -> Optional[AssemblyResult]:
        frames = list_frames(directory, stream_index)
        if not frames:
            self.logger.info("No frames found for stream %s in %s", stream_index, directory)
            return None

        dimensions = self.probe_frame_dimensions(frames[0])
        if dimensions is None:
            self.logger.warning("Could not read first frame %s; encoding without crop", frames[0])

        output_path = self.output_dir / self.video_filename(stream_index)
        temp_output = output_path.with_name(f".tmp_{uuid.uuid4().hex}_{output_path.name}")

        cmd = self.build_command(
            str(directory / frame_glob(stream_index)),
            temp_output,
            self.build_filter_chain(dimensions),
        )
        self.logger.info(
            "Creating video for stream %s from %s frames: %s",
            stream_index,
            len(frames),
            output_path,
        )

        result = subprocess.run(cmd, capture_output=True, check=False)
        if result.returncode != 0 or not temp_output.exists():
            temp_output.unlink(missing_ok=True)
            raise subprocess.CalledProcessError(
                result.returncode,
                cmd,
                output=result.stdout,
                stderr=result.stderr,
            )

        temp_output.replace(output_path)

        width, height = dimensions if dimensions is not None else (None, None)
        return AssemblyResult(
            stream_index=stream_index,
            output_path=output_path,
            frame_count=len(frames),
            first_frame_at=parse_frame_timestamp(frames[0]),
            last_frame_at=parse_frame_timestamp(frames[-1]),
            width=width,
            height=height,
        )

    def assemble_all(self) -> List[AssemblyResult]:
        """Assemble a video for every stream directory; failures are logged per stream."""
        if shutil.which(self.executable) is None:
            raise RuntimeError(f"{self.executable} not found on PATH. Install ffmpeg with libx264.")

        stream_dirs = discover_stream_dirs(self.frames_dir)
        if not stream_dirs:
            self.logger.info(
                "No stream directories found in %s. Make sure frames have been captured.",
                self.frames_dir,
            )
            return []

        self.output_dir.mkdir(parents=True, exist_ok=True)

        results: List[AssemblyResult] = []
        total = len(stream_dirs)
        progress_start = perf_counter()
        for completed, (stream_index, directory) in enumerate(stream_dirs, start=1):
            try:
                assembled = self.assemble_stream(stream_index, directory)
            except subprocess.CalledProcessError as exc:
                stderr = exc.stderr.decode("utf-8", errors="ignore").strip() if exc.stderr else ""
                self.logger.error(
                    "ffmpeg failed for stream %s (exit code %s): %s",
                    stream_index,
                    exc.returncode,
                    stderr,
                )
                assembled = None

            if assembled is not None:
                results.append(assembled)
                self.logger.info(
                    "Video created successfully: %s (%s frames, %s to %s)",
                    assembled.output_path,
                    assembled.frame_count,
                    assembled.first_frame_at,
                    assembled.last_frame_at,
                )

            self.logger.info(
                "Assembly progress: %s/%s streams (%s)",
                completed,
                total,
                eta_string(perf_counter() - progress_start, completed, total),
            )

        return results


__all__ = ["AssemblyResult", "VideoAssembler"]
