"""
Data model for gamebudget.

Sessions, learning activities, rollover entries, settings and the derived
budget snapshot. All timestamps are timezone-aware UTC datetimes; they are
stored as ISO 8601 strings with a fixed microsecond precision so that string
comparison in SQLite matches chronological order.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

log = logging.getLogger("gamebudget.models")

# Defaults applied when a setting is missing or malformed
DEFAULT_DAILY_ALLOWANCE = 120
DEFAULT_ROLLOVER_DAYS = 3
DEFAULT_NOTIFICATIONS_ENABLED = True
DEFAULT_WARNING_THRESHOLD = 15


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_ts(ts: datetime) -> str:
    """Format a datetime for storage."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_ts(value: str) -> datetime:
    """Parse a stored timestamp. Naive values are taken as UTC.

    Raises ValueError on malformed input.
    """
    if not isinstance(value, str):
        raise ValueError(f"Not a timestamp: {value!r}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass
class Session:
    """One continuous run of a monitored process."""
    game_name: str
    process_name: str
    start_time: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    end_time: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    is_social_session: bool = False
    is_concurrent: bool = False
    concurrent_session_ids: list = field(default_factory=list)

    @classmethod
    def new(cls, game_name: str, process_name: str,
            now: Optional[datetime] = None) -> "Session":
        return cls(game_name=game_name, process_name=process_name,
                   start_time=now or utcnow())

    def end(self, now: Optional[datetime] = None):
        """Stamp the end time and compute the duration."""
        self.end_time = now or utcnow()
        self.duration_seconds = max(0, int((self.end_time - self.start_time).total_seconds()))

    def current_duration(self, now: Optional[datetime] = None) -> int:
        """Elapsed seconds, up to the end time or up to now if still running."""
        end = self.end_time or now or utcnow()
        return max(0, int((end - self.start_time).total_seconds()))

    def link(self, session_id: str):
        """Record another session as concurrent with this one."""
        self.is_concurrent = True
        if session_id not in self.concurrent_session_ids:
            self.concurrent_session_ids.append(session_id)

    def copy(self) -> "Session":
        return Session(
            game_name=self.game_name,
            process_name=self.process_name,
            start_time=self.start_time,
            id=self.id,
            end_time=self.end_time,
            duration_seconds=self.duration_seconds,
            is_social_session=self.is_social_session,
            is_concurrent=self.is_concurrent,
            concurrent_session_ids=list(self.concurrent_session_ids),
        )


@dataclass
class LearningActivity:
    """A logged non-gaming activity that earns gaming minutes."""
    activity_type: str
    description: str
    duration_minutes: int
    earned_gaming_minutes: int
    timestamp: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def new(cls, activity_type: str, description: str, duration_minutes: int,
            now: Optional[datetime] = None) -> "LearningActivity":
        """Create an activity with its earned minutes derived from the type."""
        from .budget import earned_gaming_minutes

        return cls(
            activity_type=activity_type,
            description=description,
            duration_minutes=duration_minutes,
            earned_gaming_minutes=earned_gaming_minutes(activity_type, duration_minutes),
            timestamp=now or utcnow(),
        )


@dataclass
class RolloverEntry:
    """Unused allowance from one day, valid until expires_at."""
    date: str
    unused_minutes: int
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


@dataclass
class Settings:
    """Budget configuration stored in the settings table."""
    daily_allowance_minutes: int = DEFAULT_DAILY_ALLOWANCE
    rollover_days: int = DEFAULT_ROLLOVER_DAYS
    notifications_enabled: bool = DEFAULT_NOTIFICATIONS_ENABLED
    warning_threshold_minutes: int = DEFAULT_WARNING_THRESHOLD

    KEYS = ('daily_allowance_minutes', 'rollover_days',
            'notifications_enabled', 'warning_threshold_minutes')

    @classmethod
    def from_rows(cls, rows: dict) -> "Settings":
        """Build settings from raw key/value strings.

        Each key falls back to its default on its own when absent or
        unparseable.
        """
        settings = cls()
        for key in ('daily_allowance_minutes', 'rollover_days', 'warning_threshold_minutes'):
            if key not in rows:
                continue
            try:
                setattr(settings, key, int(rows[key]))
            except (TypeError, ValueError):
                log.warning(f"Malformed setting {key}={rows[key]!r}, "
                            f"using default {getattr(settings, key)}")

        if 'notifications_enabled' in rows:
            settings.notifications_enabled = str(rows['notifications_enabled']).lower() == 'true'

        return settings


@dataclass
class BudgetStatus:
    """Budget snapshot at a point in time. Never persisted."""
    daily_allowance_minutes: int
    used_today_minutes: int = 0
    remaining_today_minutes: int = 0
    rollover_minutes: int = 0
    earned_minutes: int = 0
    total_available_minutes: int = 0

    def __post_init__(self):
        self.update_usage(self.used_today_minutes)

    def update_usage(self, used_minutes: int):
        """Set usage and recompute totals."""
        self.used_today_minutes = used_minutes
        self.total_available_minutes = (self.daily_allowance_minutes
                                        + self.rollover_minutes
                                        + self.earned_minutes)
        self.remaining_today_minutes = max(0, self.total_available_minutes - used_minutes)

    def to_dict(self) -> dict:
        return {
            'daily_allowance_minutes': self.daily_allowance_minutes,
            'used_today_minutes': self.used_today_minutes,
            'remaining_today_minutes': self.remaining_today_minutes,
            'rollover_minutes': self.rollover_minutes,
            'earned_minutes': self.earned_minutes,
            'total_available_minutes': self.total_available_minutes,
        }
