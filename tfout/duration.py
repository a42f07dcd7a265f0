"""Parsing of Go style duration strings such as `5m` or `1h30m`."""

import datetime
import re

__all__ = ["parse_duration"]

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> datetime.timedelta:
    """Parse a duration like `300ms`, `1.5h` or `2h45m`.

    A bare `0` is accepted. Anything else without a unit, an empty string,
    or a negative duration raises a ValueError.
    """
    if not text:
        raise ValueError("empty duration")
    value = text.strip()
    if value.startswith("-"):
        raise ValueError(f"negative duration not allowed: {text!r}")
    if value.startswith("+"):
        value = value[1:]
    if value == "0":
        return datetime.timedelta(0)

    seconds = 0.0
    pos = 0
    while pos < len(value):
        if not (match := _COMPONENT.match(value, pos)):
            raise ValueError(f"invalid duration: {text!r}")
        seconds += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    if pos == 0:
        raise ValueError(f"invalid duration: {text!r}")
    return datetime.timedelta(seconds=seconds)
