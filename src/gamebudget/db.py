"""
SQLite storage for gamebudget.

Record-oriented: one table per entity (sessions, learning activities,
rollover entries, settings). Sessions and activities are append-only.
"""

import json
import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from .intervals import Interval
from .models import (
    LearningActivity,
    RolloverEntry,
    Session,
    Settings,
    format_ts,
    parse_ts,
    utcnow,
)

DEFAULT_DB_PATH = str(Path.home() / ".local/share/gamebudget/gamebudget.db")

log = logging.getLogger("gamebudget.db")


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize database schema."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    with get_connection(db_path) as conn:
        conn.executescript("""
            -- Completed game sessions (append-only)
            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                game_name TEXT NOT NULL,
                process_name TEXT NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT,
                duration_seconds INTEGER,
                is_social_session INTEGER NOT NULL DEFAULT 0,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            );

            -- Learning activities that earn gaming minutes (append-only)
            CREATE TABLE IF NOT EXISTS learning_activities (
                id TEXT PRIMARY KEY,
                activity_type TEXT NOT NULL,
                description TEXT NOT NULL,
                duration_minutes INTEGER NOT NULL,
                earned_gaming_minutes INTEGER NOT NULL,
                timestamp TEXT NOT NULL,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            );

            -- Budget settings (key/value, parsed with per-key defaults)
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            );

            -- Unused allowance carried forward, one row per closed-out day
            CREATE TABLE IF NOT EXISTS budget_rollover (
                date TEXT PRIMARY KEY,
                unused_minutes INTEGER NOT NULL,
                expires_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_sessions_start
                ON sessions(start_time);
            CREATE INDEX IF NOT EXISTS idx_activities_timestamp
                ON learning_activities(timestamp);
        """)

        conn.executescript("""
            INSERT OR IGNORE INTO settings (key, value) VALUES
                ('daily_allowance_minutes', '120'),
                ('rollover_days', '3'),
                ('notifications_enabled', 'true'),
                ('warning_threshold_minutes', '15');
        """)


def migrate_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Run database migrations for schema updates."""
    with get_connection(db_path) as conn:
        cursor = conn.execute("PRAGMA table_info(sessions)")
        columns = {row[1] for row in cursor.fetchall()}

        # Concurrency tracking was added after the first schema
        if 'is_concurrent' not in columns:
            conn.execute("ALTER TABLE sessions ADD COLUMN is_concurrent INTEGER DEFAULT 0")
        if 'concurrent_session_ids' not in columns:
            conn.execute("ALTER TABLE sessions ADD COLUMN concurrent_session_ids TEXT DEFAULT '[]'")


@contextmanager
def get_connection(db_path: str = DEFAULT_DB_PATH):
    """Context manager for database connections."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _parse_ids(value: Optional[str]) -> list:
    try:
        ids = json.loads(value or '[]')
    except (TypeError, ValueError):
        return []
    return [str(i) for i in ids] if isinstance(ids, list) else []


def _row_to_session(row) -> Optional[Session]:
    """Build a Session from a row, or None if its start time is unreadable."""
    try:
        start_time = parse_ts(row['start_time'])
    except ValueError:
        log.warning(f"Skipping session {row['id']}: malformed start_time {row['start_time']!r}")
        return None

    end_time = None
    duration = row['duration_seconds']
    if row['end_time']:
        try:
            end_time = parse_ts(row['end_time'])
        except ValueError:
            log.warning(f"Session {row['id']}: malformed end_time {row['end_time']!r}")
            duration = None
    if end_time is None:
        duration = None

    return Session(
        id=row['id'],
        game_name=row['game_name'],
        process_name=row['process_name'],
        start_time=start_time,
        end_time=end_time,
        duration_seconds=duration,
        is_social_session=bool(row['is_social_session']),
        is_concurrent=bool(row['is_concurrent']),
        concurrent_session_ids=_parse_ids(row['concurrent_session_ids']),
    )


class GameTimeDB:
    """Database interface for sessions, activities, rollover and settings."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path
        init_db(db_path)
        migrate_db(db_path)

    # --- Sessions ---

    def save_session(self, session: Session):
        """Insert a completed session. The id must be new."""
        with get_connection(self.db_path) as conn:
            conn.execute("""
                INSERT INTO sessions (id, game_name, process_name, start_time, end_time,
                                      duration_seconds, is_social_session, is_concurrent,
                                      concurrent_session_ids)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                session.id,
                session.game_name,
                session.process_name,
                format_ts(session.start_time),
                format_ts(session.end_time) if session.end_time else None,
                session.duration_seconds,
                int(session.is_social_session),
                int(session.is_concurrent),
                json.dumps(session.concurrent_session_ids),
            ))

        log.info(f"Session saved: {session.game_name}"
                 f"{' [CONCURRENT]' if session.is_concurrent else ''}")

    def get_recent_sessions(self, limit: int = 20) -> list[Session]:
        """Most recent sessions first."""
        with get_connection(self.db_path) as conn:
            rows = conn.execute("""
                SELECT * FROM sessions
                ORDER BY start_time DESC
                LIMIT ?
            """, (limit,)).fetchall()

        sessions = [_row_to_session(row) for row in rows]
        return [s for s in sessions if s is not None]

    def get_sessions_since(self, since: datetime) -> list[Interval]:
        """Completed sessions starting at or after `since`, as intervals."""
        with get_connection(self.db_path) as conn:
            rows = conn.execute("""
                SELECT id, start_time, end_time, is_concurrent
                FROM sessions
                WHERE start_time >= ? AND end_time IS NOT NULL
                      AND duration_seconds IS NOT NULL
                ORDER BY start_time
            """, (format_ts(since),)).fetchall()

        intervals = []
        for row in rows:
            try:
                start = parse_ts(row['start_time'])
                end = parse_ts(row['end_time'])
            except ValueError:
                log.warning(f"Skipping session {row['id']} in usage: malformed timestamp")
                continue
            intervals.append(Interval(start, end, bool(row['is_concurrent'])))
        return intervals

    def reset_sessions_since(self, since: datetime) -> int:
        """Delete sessions that started at or after `since`."""
        with get_connection(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE start_time >= ?",
                                  (format_ts(since),))
            deleted = cursor.rowcount

        log.info(f"Reset {deleted} sessions since {format_ts(since)}")
        return deleted

    def add_fake_session(self, minutes: int, now: Optional[datetime] = None) -> Session:
        """Record a completed session of `minutes` ending now."""
        now = now or utcnow()
        session = Session(
            game_name="Debug Fake Game",
            process_name="debug.exe",
            start_time=now - timedelta(minutes=minutes),
        )
        session.end(now)
        self.save_session(session)
        log.info(f"Added {minutes} minutes of fake gaming session")
        return session

    # --- Learning Activities ---

    def add_learning_activity(self, activity: LearningActivity):
        """Insert a learning activity."""
        with get_connection(self.db_path) as conn:
            conn.execute("""
                INSERT INTO learning_activities (id, activity_type, description,
                                                 duration_minutes, earned_gaming_minutes, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                activity.id,
                activity.activity_type,
                activity.description,
                activity.duration_minutes,
                activity.earned_gaming_minutes,
                format_ts(activity.timestamp),
            ))

        log.info(f"Learning activity added: {activity.duration_minutes} minutes "
                 f"of {activity.activity_type}")

    def get_earned_minutes_since(self, since: datetime) -> int:
        """Sum of earned gaming minutes for activities at or after `since`."""
        with get_connection(self.db_path) as conn:
            row = conn.execute("""
                SELECT COALESCE(SUM(earned_gaming_minutes), 0) FROM learning_activities
                WHERE timestamp >= ?
            """, (format_ts(since),)).fetchone()
            return int(row[0])

    def add_debug_earned_minutes(self, minutes: int,
                                 now: Optional[datetime] = None) -> LearningActivity:
        """Credit (or, if negative, debit) budget minutes via a debug activity."""
        if minutes > 0:
            description = f"Debug: Added {minutes} minutes to budget"
        else:
            description = f"Debug: Removed {abs(minutes)} minutes from budget"

        activity = LearningActivity(
            id=str(uuid.uuid4()),
            activity_type="debug",
            description=description,
            duration_minutes=abs(minutes) * 4,
            earned_gaming_minutes=minutes,
            timestamp=now or utcnow(),
        )
        self.add_learning_activity(activity)
        log.info(f"Added {minutes} debug minutes to budget")
        return activity

    # --- Rollover ---

    def upsert_rollover_entry(self, day: str, unused_minutes: int, expires_at: datetime):
        """Create or replace the rollover entry for a day."""
        with get_connection(self.db_path) as conn:
            conn.execute("""
                INSERT INTO budget_rollover (date, unused_minutes, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT(date) DO UPDATE SET
                    unused_minutes = excluded.unused_minutes,
                    expires_at = excluded.expires_at
            """, (day, unused_minutes, format_ts(expires_at)))

    def sum_active_rollover(self, now: Optional[datetime] = None) -> int:
        """Delete expired entries, then sum what is left."""
        now_str = format_ts(now or utcnow())

        with get_connection(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM budget_rollover WHERE expires_at < ?",
                                  (now_str,))
            if cursor.rowcount:
                log.debug(f"Pruned {cursor.rowcount} expired rollover entries")

            row = conn.execute("""
                SELECT COALESCE(SUM(unused_minutes), 0) FROM budget_rollover
                WHERE expires_at >= ?
            """, (now_str,)).fetchone()
            return int(row[0])

    def get_rollover_entries(self) -> list[RolloverEntry]:
        """All stored rollover entries, expired or not, oldest day first."""
        with get_connection(self.db_path) as conn:
            rows = conn.execute("SELECT * FROM budget_rollover ORDER BY date").fetchall()

        entries = []
        for row in rows:
            try:
                expires_at = parse_ts(row['expires_at'])
            except ValueError:
                log.warning(f"Rollover {row['date']}: malformed expires_at {row['expires_at']!r}")
                continue
            entries.append(RolloverEntry(row['date'], row['unused_minutes'], expires_at))
        return entries

    # --- Settings ---

    def get_settings(self) -> Settings:
        """Settings with per-key defaults for missing or malformed values."""
        with get_connection(self.db_path) as conn:
            rows = conn.execute("SELECT key, value FROM settings").fetchall()
        return Settings.from_rows({row['key']: row['value'] for row in rows})

    def update_setting(self, key: str, value):
        """Set a setting. Unknown keys are rejected."""
        if key not in Settings.KEYS:
            raise ValueError(f"Unknown setting: {key}. Must be one of {', '.join(Settings.KEYS)}.")
        if isinstance(value, bool):
            value = 'true' if value else 'false'

        with get_connection(self.db_path) as conn:
            conn.execute("""
                INSERT INTO settings (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
            """, (key, str(value)))

    # --- Maintenance & Retention ---

    def cleanup_old_data(self, sessions_days: int = 90, activities_days: int = 90) -> dict:
        """Delete sessions and activities older than the retention periods."""
        now = utcnow()
        sessions_cutoff = format_ts(now - timedelta(days=sessions_days))
        activities_cutoff = format_ts(now - timedelta(days=activities_days))

        deleted = {}
        with get_connection(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE start_time < ?",
                                  (sessions_cutoff,))
            deleted['sessions'] = cursor.rowcount

            cursor = conn.execute("DELETE FROM learning_activities WHERE timestamp < ?",
                                  (activities_cutoff,))
            deleted['learning_activities'] = cursor.rowcount

        return deleted

    def vacuum(self):
        """Compact the database file after deletions."""
        # VACUUM can't run inside a transaction
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("VACUUM")
        finally:
            conn.close()

    def get_db_stats(self) -> dict:
        """Get database statistics for monitoring."""
        stats = {
            'file_size_mb': os.path.getsize(self.db_path) / (1024 * 1024)
        }

        with get_connection(self.db_path) as conn:
            for table in ('sessions', 'learning_activities', 'budget_rollover'):
                stats[f'{table}_count'] = conn.execute(
                    f"SELECT COUNT(*) FROM {table}"
                ).fetchone()[0]

        return stats

    def maintenance(self, sessions_days: int = 90, activities_days: int = 90) -> dict:
        """Run full maintenance cycle: cleanup + vacuum."""
        result = {
            'before': self.get_db_stats(),
            'deleted': self.cleanup_old_data(sessions_days, activities_days),
        }
        self.vacuum()
        result['after'] = self.get_db_stats()
        return result
