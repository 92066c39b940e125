"""
Budget accounting.

The daily budget is the configured allowance, plus unexpired rollover from
previous days, plus minutes earned through learning activities. Usage is the
wall-clock time covered by today's completed sessions, with overlapping
sessions counted once.

Reads that fail fall back to empty/default values so a status request always
gets a best-effort snapshot.
"""

import logging
import sqlite3
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional

from .db import GameTimeDB
from .intervals import merged_seconds
from .models import BudgetStatus, LearningActivity, Settings, utcnow
from .tracker import SessionTracker

log = logging.getLogger("gamebudget.budget")

# Learning minutes needed per earned gaming minute
EARN_RATES = {
    "coding": 4,    # 15 min gaming per hour
    "reading": 6,   # 10 min per hour
    "course": 4,
    "exercise": 3,  # 20 min per hour
}
DEFAULT_EARN_RATE = 5


def earned_gaming_minutes(activity_type: str, duration_minutes: int) -> int:
    """Gaming minutes earned by a learning activity."""
    rate = EARN_RATES.get(activity_type, DEFAULT_EARN_RATE)
    return duration_minutes // rate


def day_start(day: date) -> datetime:
    """Local midnight at the start of `day`, as UTC."""
    return datetime.combine(day, time.min).astimezone().astimezone(timezone.utc)


def local_midnight(now: Optional[datetime] = None) -> datetime:
    """Start of the current local day, as UTC."""
    now = now or utcnow()
    return day_start(now.astimezone().date())


class BudgetEngine:
    """Computes budget snapshots from stored usage, rollover and earnings."""

    def __init__(self, db: GameTimeDB, tracker: Optional[SessionTracker] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.tracker = tracker
        self.clock = clock

    def _read_or_default(self, what: str, read, default):
        try:
            return read()
        except (sqlite3.Error, OSError) as e:
            log.warning(f"Could not read {what}, using {default!r}: {e}")
            return default

    def get_settings(self) -> Settings:
        return self._read_or_default("settings", self.db.get_settings, Settings())

    def used_seconds_since(self, since: datetime, until: Optional[datetime] = None) -> int:
        """Merged wall-clock seconds of completed sessions starting in [since, until)."""
        intervals = self._read_or_default(
            "sessions", lambda: self.db.get_sessions_since(since), [])
        if until is not None:
            intervals = [i for i in intervals if i.start < until]
        return merged_seconds(intervals)

    def compute_status(self, now: Optional[datetime] = None) -> BudgetStatus:
        """Budget snapshot from persisted data only."""
        now = now or self.clock()
        midnight = local_midnight(now)
        settings = self.get_settings()

        used_minutes = self.used_seconds_since(midnight) // 60
        rollover = self._read_or_default(
            "rollover", lambda: self.db.sum_active_rollover(now), 0)
        earned = self._read_or_default(
            "earned minutes", lambda: self.db.get_earned_minutes_since(midnight), 0)

        return BudgetStatus(
            daily_allowance_minutes=settings.daily_allowance_minutes,
            used_today_minutes=used_minutes,
            rollover_minutes=rollover,
            earned_minutes=earned,
        )

    def compute_realtime_status(self, now: Optional[datetime] = None) -> BudgetStatus:
        """Budget snapshot including time of sessions still running.

        Live time is added on top of persisted usage; it only enters the
        interval accounting once the session has ended and been saved.
        """
        now = now or self.clock()
        status = self.compute_status(now)
        if self.tracker is not None:
            active_minutes = self.tracker.get_total_active_seconds(now) // 60
            status.update_usage(status.used_today_minutes + active_minutes)
        return status

    def log_learning_activity(self, activity_type: str, description: str,
                              duration_minutes: int,
                              now: Optional[datetime] = None) -> LearningActivity:
        """Record a learning activity and return it with its earned minutes."""
        if duration_minutes < 0:
            raise ValueError(f"Invalid duration: {duration_minutes}. Must not be negative.")
        activity = LearningActivity.new(activity_type, description, duration_minutes,
                                        now or self.clock())
        self.db.add_learning_activity(activity)
        return activity

    def close_out_day(self, day: date, now: Optional[datetime] = None) -> int:
        """Carry a finished day's unused allowance forward.

        The entry expires rollover_days after the end of that day. Returns
        the minutes carried.
        """
        now = now or self.clock()
        start = day_start(day)
        end = day_start(day + timedelta(days=1))
        if end > now:
            raise ValueError(f"Cannot close out {day.isoformat()}: the day has not ended.")

        settings = self.get_settings()
        used_minutes = self.used_seconds_since(start, until=end) // 60
        unused = max(0, settings.daily_allowance_minutes - used_minutes)
        expires_at = end + timedelta(days=settings.rollover_days)

        self.db.upsert_rollover_entry(day.isoformat(), unused, expires_at)
        log.info(f"Closed out {day.isoformat()}: {unused} minutes roll over "
                 f"until {expires_at.isoformat()}")
        return unused
