"""Tests for time helpers."""

from datetime import datetime, timezone

from utils.helpers import LOCAL_TZ, ensure_utc


def test_ensure_utc_keeps_aware_instant():
    moment = datetime(2026, 5, 1, 13, 0, tzinfo=LOCAL_TZ)

    result = ensure_utc(moment)

    assert result.tzinfo == timezone.utc
    assert result == moment


def test_ensure_utc_reads_naive_time_as_local():
    """Naive 13:00 in Europe/Moscow is 10:00 UTC."""
    result = ensure_utc(datetime(2026, 5, 1, 13, 0))

    assert result == datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert result.tzinfo == timezone.utc
