from datetime import UTC, datetime, timedelta

from src.adapters.clock import SystemClock


def test_system_clock_is_utc_aware():
    now = SystemClock().now_utc()
    assert now.tzinfo is not None
    assert now.utcoffset() == timedelta(0)


def test_system_clock_tracks_wall_time():
    diff = abs((datetime.now(UTC) - SystemClock().now_utc()).total_seconds())
    assert diff < 1.0
