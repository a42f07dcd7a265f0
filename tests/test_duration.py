"""Tests for parsing durations."""

import datetime

import pytest

from tfout.duration import parse_duration


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("5m", datetime.timedelta(minutes=5)),
        ("30s", datetime.timedelta(seconds=30)),
        ("1h30m", datetime.timedelta(hours=1, minutes=30)),
        ("2h45m10s", datetime.timedelta(hours=2, minutes=45, seconds=10)),
        ("1.5h", datetime.timedelta(minutes=90)),
        ("300ms", datetime.timedelta(milliseconds=300)),
        ("10us", datetime.timedelta(microseconds=10)),
        ("10µs", datetime.timedelta(microseconds=10)),
        (".5s", datetime.timedelta(milliseconds=500)),
        ("+1m", datetime.timedelta(minutes=1)),
        ("0", datetime.timedelta(0)),
        ("0s", datetime.timedelta(0)),
    ],
)
def test_parse_duration(value: str, expected: datetime.timedelta) -> None:
    """Test parsing valid durations."""
    assert parse_duration(value) == expected


@pytest.mark.parametrize(
    "value",
    ["", "5", "m", "5 m", "-5m", "5d", "1h-30m", "soon", "5m30"],
)
def test_invalid_duration(value: str) -> None:
    """Test invalid durations are rejected."""
    with pytest.raises(ValueError):
        parse_duration(value)
