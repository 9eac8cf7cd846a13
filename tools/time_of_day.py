"""
Time of Day Utilities
Minute-of-day arithmetic, "HH:MM" parsing and daily windows
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Union


MINUTES_PER_DAY = 24 * 60

_TIME_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


class ParseError(ValueError):
    """Raised when a time-of-day string is malformed"""


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """A wall-clock time as minutes since midnight (0-1439)"""
    minutes: int

    def __post_init__(self):
        if not isinstance(self.minutes, int) or isinstance(self.minutes, bool):
            raise ParseError(f"Minute of day must be an integer, got {self.minutes!r}")
        if not 0 <= self.minutes < MINUTES_PER_DAY:
            raise ParseError(f"Minute of day out of range: {self.minutes}")

    @classmethod
    def parse(cls, value: str) -> "TimeOfDay":
        """
        Parse an "HH:MM" string (hours 0-23, minutes 0-59)

        Single-digit hours ("8:05") are accepted and normalized. Anything else,
        including out-of-range components, raises ParseError rather than
        being clamped.
        """
        if not isinstance(value, str):
            raise ParseError(f"Expected an 'HH:MM' string, got {type(value).__name__}")

        match = _TIME_PATTERN.match(value)
        if not match:
            raise ParseError(f"Invalid time string: {value!r}")

        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            raise ParseError(f"Time out of range: {value!r}")

        return cls(hour * 60 + minute)

    @classmethod
    def from_time(cls, t: time) -> "TimeOfDay":
        return cls(t.hour * 60 + t.minute)

    @classmethod
    def from_datetime(cls, dt: datetime) -> "TimeOfDay":
        return cls(dt.hour * 60 + dt.minute)

    @property
    def hour(self) -> int:
        return self.minutes // 60

    @property
    def minute(self) -> int:
        return self.minutes % 60

    def format(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def to_time(self) -> time:
        return time(self.hour, self.minute)

    def on(self, day: date) -> datetime:
        """Combine with a calendar date into a naive datetime"""
        return datetime.combine(day, self.to_time())

    def __str__(self) -> str:
        return self.format()


TimeLike = Union[TimeOfDay, str, time]


def parse_time(value: TimeLike) -> TimeOfDay:
    """Coerce a TimeOfDay, "HH:MM" string or datetime.time into a TimeOfDay"""
    if isinstance(value, TimeOfDay):
        return value
    if isinstance(value, time):
        return TimeOfDay.from_time(value)
    return TimeOfDay.parse(value)


def format_time(value: TimeOfDay) -> str:
    return value.format()


def minute_gap(a: TimeOfDay, b: TimeOfDay) -> int:
    """
    Absolute minute-of-day difference.

    No wraparound: 23:55 vs 00:05 is a 1430 minute gap.
    """
    return abs(a.minutes - b.minutes)


def to_local_naive(value: datetime) -> datetime:
    """
    Convert an aware datetime to naive local time; naive values pass through.

    The engine clock and every stored timestamp are naive local time, and
    aware values cannot be compared with them.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


@dataclass(frozen=True)
class Window:
    """Daily active range, start <= end (no overnight windows)"""
    start: TimeOfDay
    end: TimeOfDay

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(
                f"Window start {self.start} is after end {self.end}; overnight windows are not supported"
            )

    @classmethod
    def parse(cls, start: TimeLike, end: TimeLike) -> "Window":
        return cls(parse_time(start), parse_time(end))

    def contains(self, t: TimeOfDay) -> bool:
        return self.start <= t <= self.end

    def contains_datetime(self, dt: datetime) -> bool:
        return self.contains(TimeOfDay.from_datetime(dt))

    @property
    def length_minutes(self) -> int:
        return self.end.minutes - self.start.minutes

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"
