"""Tests for timestamp helpers."""

from datetime import UTC, datetime, timedelta, timezone

from operator_plane.core.timestamps import from_unix_ms, now_unix_ms, to_rfc3339, utc_now


class TestRfc3339:
    """RFC3339 formatting."""

    def test_z_suffix_and_millis(self):
        dt = datetime(2024, 5, 1, 12, 30, 0, 123456, tzinfo=UTC)
        assert to_rfc3339(dt) == "2024-05-01T12:30:00.123Z"

    def test_converts_offsets_to_utc(self):
        dt = datetime(2024, 5, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_rfc3339(dt) == "2024-05-01T12:00:00.000Z"

    def test_default_is_now(self):
        assert to_rfc3339().endswith("Z")


class TestUnixMs:
    """Unix millisecond conversions."""

    def test_round_trip_precision(self):
        dt = from_unix_ms(1_700_000_000_123)
        assert dt.tzinfo is UTC
        assert int(dt.timestamp() * 1000) == 1_700_000_000_123

    def test_now_is_close_to_utc_now(self):
        assert abs(now_unix_ms() - utc_now().timestamp() * 1000) < 5_000
