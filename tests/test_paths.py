import logging
import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from timelapse_capture.models import Stream, extract_stream_number  # noqa: E402
from timelapse_capture.paths import (  # noqa: E402
    build_frame_path,
    discover_stream_dirs,
    list_frames,
    parse_frame_timestamp,
    resolve_frames_dir,
)


def test_extract_stream_number():
    assert extract_stream_number("rtsp://167.235.64.79:8554/stream12") == 12
    assert extract_stream_number("rtsp://cam/stream3/") == 3
    assert extract_stream_number("rtsp://cam/live") is None


def test_build_frame_path_encodes_stream_and_second(tmp_path):
    stream = Stream(url="rtsp://cam/stream7", index=7)
    path = build_frame_path(tmp_path, stream, datetime(2024, 2, 29, 9, 3, 1))

    assert path == tmp_path / "stream_7" / "s7-2024-02-29-09-03-01.jpg"
    assert path.parent.is_dir()
    assert parse_frame_timestamp(path) == datetime(2024, 2, 29, 9, 3, 1)


def test_resolve_frames_dir_prefers_primary(tmp_path):
    primary = tmp_path / "mounted"
    fallback = tmp_path / "local"
    logger = logging.getLogger("paths-tests")

    assert resolve_frames_dir(primary, fallback, logger) == fallback
    assert fallback.is_dir()

    primary.mkdir()
    assert resolve_frames_dir(primary, fallback, logger) == primary


def test_discover_stream_dirs_and_frames(tmp_path):
    for name in ("stream_10", "stream_2", "notes", "stream_x"):
        (tmp_path / name).mkdir()
    (tmp_path / "stream_3").write_text("not a directory")
    for stamp in ("2024-01-02-10-00-00", "2024-01-01-23-59-59"):
        (tmp_path / "stream_2" / f"s2-{stamp}.jpg").write_bytes(b"jpeg")
    (tmp_path / "stream_2" / "s10-2024-01-01-00-00-00.jpg").write_bytes(b"jpeg")

    discovered = discover_stream_dirs(tmp_path)
    assert discovered == [(2, tmp_path / "stream_2"), (10, tmp_path / "stream_10")]

    frames = list_frames(tmp_path / "stream_2", 2)
    assert [frame.name for frame in frames] == [
        "s2-2024-01-01-23-59-59.jpg",
        "s2-2024-01-02-10-00-00.jpg",
    ]
    assert discover_stream_dirs(tmp_path / "missing") == []
