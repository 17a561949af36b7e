import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from timelapse_capture.progress import eta_string, format_delay_ms, format_duration  # noqa: E402


def test_format_duration():
    assert format_duration(0) == "0s"
    assert format_duration(-5) == "0s"
    assert format_duration(42) == "42s"
    assert format_duration(125) == "2m05s"
    assert format_duration(7500) == "2h05m00s"
    assert format_duration(93780) == "1d02h03m"


def test_format_delay_ms():
    assert format_delay_ms(59_500) == "1m00s"
    assert format_delay_ms(50_400_000) == "14h00m00s"


def test_eta_string():
    now = datetime(2024, 6, 5, 0, 5, 0)
    assert eta_string(0.0, 0, 4) == "ETA estimating"
    assert eta_string(30.0, 1, 4, now=now) == "ETA 1m30s (finish 00:06:30)"
