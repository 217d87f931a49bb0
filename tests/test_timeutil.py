"""Tests for duration parsing and formatting."""

from datetime import timedelta

import pytest

from doccrawl.timeutil import EPOCH, format_duration, parse_duration, utcnow


class TestParseDuration:
    """Test parse_duration."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("90s", timedelta(seconds=90)),
            ("10m", timedelta(minutes=10)),
            ("1h30m", timedelta(hours=1, minutes=30)),
            ("1h30m15s", timedelta(hours=1, minutes=30, seconds=15)),
            ("250ms", timedelta(milliseconds=250)),
            ("1.5h", timedelta(minutes=90)),
            ("0", timedelta(0)),
            ("45", timedelta(seconds=45)),
            (30, timedelta(seconds=30)),
            (2.5, timedelta(seconds=2.5)),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_duration(value) == expected

    def test_timedelta_passthrough(self):
        assert parse_duration(timedelta(minutes=3)) == timedelta(minutes=3)

    @pytest.mark.parametrize("value", ["", "abc", "10x", "m10", "10m garbage", True])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            parse_duration(-5)


class TestFormatDuration:
    """Test format_duration."""

    def test_zero(self):
        assert format_duration(timedelta(0)) == "0s"

    def test_minutes(self):
        assert format_duration(timedelta(minutes=5)) == "5m0s"

    def test_hours(self):
        assert format_duration(timedelta(hours=1, minutes=30)) == "1h30m0s"

    def test_formatted_value_parses_back(self):
        assert parse_duration(format_duration(timedelta(hours=8))) == timedelta(hours=8)


def test_utcnow_is_naive_and_after_epoch():
    now = utcnow()
    assert now.tzinfo is None
    assert now > EPOCH
