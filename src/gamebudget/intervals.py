"""
Wall-clock accounting over possibly overlapping sessions.

Concurrent games share the same minutes: two sessions covering 10:00-10:30
and 10:15-10:45 count as 45 minutes of play, not 60.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Union


@dataclass(frozen=True)
class Interval:
    """Closed-open span [start, end). The concurrent hint is informational."""
    start: datetime
    end: datetime
    concurrent: bool = False

    @property
    def seconds(self) -> int:
        return _seconds(self.start, self.end)


def _seconds(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds()))


def _as_interval(item: Union[Interval, tuple]) -> Interval:
    if isinstance(item, Interval):
        return item
    return Interval(*item)


def merged_seconds(intervals: Iterable[Union[Interval, tuple]]) -> int:
    """Total seconds covered by the union of intervals.

    Sorts by start and sweeps once, tracking the furthest end seen so far.
    Overlapping time is counted once and fully nested intervals add nothing.
    Intervals that end at or before their start (clock stepped back) add 0.
    """
    ordered = sorted((i for i in map(_as_interval, intervals) if i.end > i.start),
                     key=lambda i: i.start)
    if not ordered:
        return 0

    total = 0
    current_end = None

    for interval in ordered:
        if current_end is None:
            total += interval.seconds
            current_end = interval.end
        elif interval.start >= current_end:
            # Disjoint
            total += interval.seconds
            current_end = interval.end
        elif interval.end > current_end:
            # Partial overlap: only the tail past current_end is new
            total += _seconds(current_end, interval.end)
            current_end = interval.end

    return total


def summed_seconds(intervals: Iterable[Union[Interval, tuple]]) -> int:
    """Plain sum of interval durations, overlaps counted twice."""
    return sum(_as_interval(i).seconds for i in intervals)
