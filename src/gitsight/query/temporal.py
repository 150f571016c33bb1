"""Temporal SQL functions over RFC3339 timestamps and epoch seconds.

Every calendar component is taken in the timestamp's own UTC offset, never
converted to the local zone of the machine running the query. A commit made
at 23:30+09:00 counts as 23h in the evening, whatever the reader's zone.

Malformed input raises ``FunctionArgumentError``. SQL NULL (``None``) passes
through as NULL.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from functools import wraps
from typing import Any, Optional

from ..errors import FunctionArgumentError

Clock = Callable[[], datetime]

DEFAULT_PATTERN = "%Y-%m-%d %H:%M:%S"

# Fixed English abbreviations so results do not depend on the process locale.
WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

# Half-open hour ranges [start, end) mapped to day periods.
PERIODS = ((0, 8, "Midnight"), (8, 12, "Morning"), (12, 18, "Afternoon"), (18, 24, "Evening"))

_RFC3339_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[Tt ](?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?(?P<offset>[Zz]|[+-]\d{2}:\d{2})$"
)

# Unit lengths follow the humantime convention: a year is 365.25 days and a
# month is a twelfth of that.
_DURATION_UNITS = (
    ("year", 31_557_600),
    ("month", 2_630_016),
    ("day", 86_400),
    ("h", 3_600),
    ("m", 60),
    ("s", 1),
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_rfc3339(value: Any, function: str = "parse_rfc3339") -> datetime:
    """Parse an RFC3339 timestamp, keeping its offset.

    Raises:
        FunctionArgumentError: If ``value`` is not a string in RFC3339 form
    """
    if not isinstance(value, str):
        raise FunctionArgumentError(function, value, "expected an RFC3339 string")

    match = _RFC3339_RE.match(value.strip())
    if match is None:
        raise FunctionArgumentError(function, value, "not an RFC3339 timestamp")

    fraction = (match.group("fraction") or "")[:6].ljust(6, "0")
    offset = match.group("offset")
    if offset in ("Z", "z"):
        offset = "+00:00"

    try:
        return datetime.fromisoformat(
            f"{match.group('date')}T{match.group('time')}.{fraction}{offset}"
        )
    except ValueError as e:
        raise FunctionArgumentError(function, value, str(e)) from e


def _parse_epoch(value: Any, function: str) -> int:
    if isinstance(value, bool):
        raise FunctionArgumentError(function, value, "expected epoch seconds")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as e:
            raise FunctionArgumentError(function, value, "expected epoch seconds") from e
    raise FunctionArgumentError(function, value, "expected epoch seconds")


def _null_passthrough(func):
    """Return NULL when the first argument is NULL."""

    @wraps(func)
    def wrapper(self, value, *args):
        if value is None:
            return None
        return func(self, value, *args)

    return wrapper


def format_duration(seconds: int) -> str:
    """Render elapsed seconds humantime style: ``2years 1month 3h 5s``.

    Only non-zero units are shown, largest first. Zero renders as ``0s``.
    """
    if seconds == 0:
        return "0s"

    parts = []
    remaining = seconds
    for unit, length in _DURATION_UNITS:
        amount, remaining = divmod(remaining, length)
        if not amount:
            continue
        if len(unit) > 1:
            parts.append(f"{amount}{unit}{'s' if amount > 1 else ''}")
        else:
            parts.append(f"{amount}{unit}")
    return " ".join(parts)


@dataclass(frozen=True)
class FunctionSpec:
    """How a function is exposed to SQL."""

    name: str
    num_args: int
    func: Callable
    deterministic: bool = True
    description: str = ""


class TemporalFunctions:
    """Scalar functions over RFC3339 timestamps and epoch seconds.

    Args:
        clock: Returns the current aware datetime. ``duration`` is the only
            function that depends on it.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or _utc_now

    @_null_passthrough
    def year(self, value: str) -> int:
        return parse_rfc3339(value, "year").year

    @_null_passthrough
    def month(self, value: str) -> int:
        return parse_rfc3339(value, "month").month

    @_null_passthrough
    def hour(self, value: str) -> int:
        return parse_rfc3339(value, "hour").hour

    @_null_passthrough
    def weekday(self, value: str) -> str:
        return WEEKDAYS[parse_rfc3339(value, "weekday").weekday()]

    @_null_passthrough
    def weeknum(self, value: str) -> int:
        """Monday = 0 through Sunday = 6."""
        return parse_rfc3339(value, "weeknum").weekday()

    @_null_passthrough
    def period(self, value: str) -> str:
        hour = parse_rfc3339(value, "period").hour
        for start, end, label in PERIODS:
            if start <= hour < end:
                return label
        raise FunctionArgumentError("period", value, f"hour {hour} out of range")

    @_null_passthrough
    def dateday(self, value: str) -> str:
        """Calendar date in the timestamp's own offset, ``YYYY-MM-DD``."""
        return parse_rfc3339(value, "dateday").date().isoformat()

    @_null_passthrough
    def timestamp(self, value: str) -> int:
        """UTC epoch seconds, sub-second part truncated."""
        return int(parse_rfc3339(value, "timestamp").replace(microsecond=0).timestamp())

    @_null_passthrough
    def timezone(self, value: str) -> str:
        """UTC offset as ``+HH:MM`` / ``-HH:MM``."""
        offset = parse_rfc3339(value, "timezone").utcoffset()
        total_minutes = int(offset.total_seconds()) // 60
        sign = "-" if total_minutes < 0 else "+"
        hours, minutes = divmod(abs(total_minutes), 60)
        return f"{sign}{hours:02d}:{minutes:02d}"

    @_null_passthrough
    def duration(self, value: Any) -> str:
        """Humanized time elapsed between epoch ``value`` and now."""
        then = _parse_epoch(value, "duration")
        now = int(self.clock().timestamp())
        if then > now:
            raise FunctionArgumentError("duration", value, "instant is in the future")
        return format_duration(now - then)

    @_null_passthrough
    def timestamp_rfc3339(self, value: Any) -> str:
        epoch = _parse_epoch(value, "timestamp_rfc3339")
        try:
            return datetime.fromtimestamp(epoch, timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError) as e:
            raise FunctionArgumentError("timestamp_rfc3339", value, str(e)) from e

    @_null_passthrough
    def datetime_format(self, value: str, pattern: Optional[str] = DEFAULT_PATTERN) -> str:
        """strftime in the timestamp's own offset."""
        return _strftime(parse_rfc3339(value, "datetime_format"), pattern, "datetime_format")

    @_null_passthrough
    def timestamp_format(self, value: Any, pattern: Optional[str] = DEFAULT_PATTERN) -> str:
        """strftime of epoch seconds in UTC."""
        epoch = _parse_epoch(value, "timestamp_format")
        try:
            moment = datetime.fromtimestamp(epoch, timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise FunctionArgumentError("timestamp_format", value, str(e)) from e
        return _strftime(moment, pattern, "timestamp_format")

    def specs(self) -> list[FunctionSpec]:
        """Return the SQL registrations for every function, both arities where optional."""
        return [
            FunctionSpec("year", 1, self.year, description="Year in the timestamp's own offset"),
            FunctionSpec("month", 1, self.month, description="Month (1-12), own offset"),
            FunctionSpec("weekday", 1, self.weekday, description="Mon..Sun, own offset"),
            FunctionSpec("weeknum", 1, self.weeknum, description="Mon=0..Sun=6, own offset"),
            FunctionSpec("hour", 1, self.hour, description="Hour (0-23), own offset"),
            FunctionSpec(
                "period", 1, self.period, description="Midnight/Morning/Afternoon/Evening"
            ),
            FunctionSpec("dateday", 1, self.dateday, description="YYYY-MM-DD, own offset"),
            FunctionSpec("timestamp", 1, self.timestamp, description="UTC epoch seconds"),
            FunctionSpec("timezone", 1, self.timezone, description="UTC offset as +HH:MM"),
            FunctionSpec(
                "duration",
                1,
                self.duration,
                deterministic=False,
                description="Humanized time since epoch seconds",
            ),
            FunctionSpec(
                "timestamp_rfc3339", 1, self.timestamp_rfc3339, description="Epoch to RFC3339 UTC"
            ),
            FunctionSpec(
                "datetime_format", 1, self.datetime_format, description="strftime, own offset"
            ),
            FunctionSpec("datetime_format", 2, self.datetime_format),
            FunctionSpec(
                "timestamp_format", 1, self.timestamp_format, description="strftime of epoch, UTC"
            ),
            FunctionSpec("timestamp_format", 2, self.timestamp_format),
        ]


def _strftime(moment: datetime, pattern: Optional[str], function: str) -> str:
    if pattern is None:
        pattern = DEFAULT_PATTERN
    if not isinstance(pattern, str):
        raise FunctionArgumentError(function, pattern, "pattern must be a string")
    try:
        return moment.strftime(pattern)
    except ValueError as e:
        raise FunctionArgumentError(function, pattern, str(e)) from e


def calendar_date(value: str, function: str = "dateday") -> date:
    """Own-offset calendar date of an RFC3339 timestamp."""
    return parse_rfc3339(value, function).date()
