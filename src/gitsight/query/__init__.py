"""SQL query layer: temporal and streak functions plus the SQLite adapter."""

from .engine import QueryEngine, QueryError
from .streak import Streak, longest_run, longest_streak
from .temporal import TemporalFunctions, format_duration, parse_rfc3339

__all__ = [
    "QueryEngine",
    "QueryError",
    "Streak",
    "TemporalFunctions",
    "format_duration",
    "longest_run",
    "longest_streak",
    "parse_rfc3339",
]
