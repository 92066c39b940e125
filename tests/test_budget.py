"""Tests for budget accounting."""

import sqlite3
from datetime import date, datetime, timedelta, timezone

import pytest

from gamebudget.budget import (
    BudgetEngine,
    day_start,
    earned_gaming_minutes,
    local_midnight,
)
from gamebudget.models import BudgetStatus, LearningActivity, Session, Settings
from gamebudget.processes import ProcessInfo
from gamebudget.tracker import SessionTracker


def completed_session(start: datetime, end: datetime, name: str = "dota2.exe") -> Session:
    session = Session.new("Game", name, start)
    session.end(end)
    return session


@pytest.fixture
def engine(db):
    return BudgetEngine(db)


class TestEarnedMinutes:
    """Tests for the earned-minutes conversion."""

    @pytest.mark.parametrize("activity_type,duration,expected", [
        ("coding", 60, 15),
        ("reading", 60, 10),
        ("course", 60, 15),
        ("exercise", 60, 20),
        ("unknown", 100, 20),
        ("coding", 7, 1),
        ("reading", 5, 0),
        ("exercise", 0, 0),
    ])
    def test_rates(self, activity_type, duration, expected):
        assert earned_gaming_minutes(activity_type, duration) == expected

    def test_learning_activity_derives_earned(self):
        activity = LearningActivity.new("exercise", "Run", 45)
        assert activity.earned_gaming_minutes == 15
        assert activity.id


class TestLocalMidnight:
    """Tests for day boundaries."""

    def test_midnight_is_start_of_local_day(self):
        now = datetime(2024, 3, 1, 15, 30, tzinfo=timezone.utc)
        midnight = local_midnight(now)
        local = midnight.astimezone()
        assert (local.hour, local.minute, local.second) == (0, 0, 0)
        assert local.date() == now.astimezone().date()
        assert midnight.tzinfo == timezone.utc
        assert midnight <= now

    def test_day_start(self):
        start = day_start(date(2024, 3, 1))
        assert start.astimezone().date() == date(2024, 3, 1)
        assert day_start(date(2024, 3, 2)) - start >= timedelta(hours=23)


class TestBudgetStatus:
    """Tests for the BudgetStatus arithmetic."""

    def test_composition(self):
        """Allowance 120 + rollover 10 + earned 20, used 100 -> 150 total, 50 left."""
        status = BudgetStatus(daily_allowance_minutes=120, rollover_minutes=10,
                              earned_minutes=20, used_today_minutes=100)
        assert status.total_available_minutes == 150
        assert status.remaining_today_minutes == 50

    @pytest.mark.parametrize("allowance,rollover,earned,used", [
        (120, 0, 0, 500),
        (0, 0, -30, 0),
        (10, 5, -100, 3),
        (0, 0, 0, 0),
    ])
    def test_remaining_never_negative(self, allowance, rollover, earned, used):
        status = BudgetStatus(daily_allowance_minutes=allowance, rollover_minutes=rollover,
                              earned_minutes=earned, used_today_minutes=used)
        assert status.remaining_today_minutes >= 0

    def test_update_usage(self):
        status = BudgetStatus(daily_allowance_minutes=60)
        status.update_usage(45)
        assert status.used_today_minutes == 45
        assert status.remaining_today_minutes == 15


class TestComputeStatus:
    """Tests for BudgetEngine.compute_status against a real database."""

    def test_empty_day(self, engine, noon):
        status = engine.compute_status(noon)
        assert status.daily_allowance_minutes == 120
        assert status.used_today_minutes == 0
        assert status.remaining_today_minutes == 120

    def test_overlapping_sessions_counted_once(self, engine, db, midnight, noon):
        ten = midnight + timedelta(hours=10)
        db.save_session(completed_session(ten, ten + timedelta(minutes=30), "a.exe"))
        db.save_session(completed_session(ten + timedelta(minutes=15),
                                          ten + timedelta(minutes=45), "b.exe"))

        assert engine.compute_status(noon).used_today_minutes == 45

    def test_nested_session_adds_nothing(self, engine, db, midnight, noon):
        ten = midnight + timedelta(hours=10)
        db.save_session(completed_session(ten, ten + timedelta(minutes=30), "a.exe"))
        db.save_session(completed_session(ten + timedelta(minutes=5),
                                          ten + timedelta(minutes=10), "c.exe"))

        assert engine.compute_status(noon).used_today_minutes == 30

    def test_backward_session_counts_nothing(self, engine, db, midnight, noon):
        """A session whose clock stepped back never adds negative usage."""
        ten = midnight + timedelta(hours=10)
        db.save_session(completed_session(ten, ten - timedelta(minutes=30), "a.exe"))
        db.save_session(completed_session(ten, ten + timedelta(minutes=20), "b.exe"))

        status = engine.compute_status(noon)
        assert status.used_today_minutes == 20
        assert status.remaining_today_minutes == 100
        assert status.remaining_today_minutes <= status.total_available_minutes

    def test_yesterday_not_counted(self, engine, db, midnight, noon):
        start = midnight - timedelta(hours=2)
        db.save_session(completed_session(start, start + timedelta(minutes=50)))
        assert engine.compute_status(noon).used_today_minutes == 0

    def test_used_minutes_floor(self, engine, db, midnight, noon):
        ten = midnight + timedelta(hours=10)
        db.save_session(completed_session(ten, ten + timedelta(seconds=119)))
        assert engine.compute_status(noon).used_today_minutes == 1

    def test_full_scenario(self, engine, db, midnight, noon):
        """Allowance 120, rollover 10, earned 20, used 100."""
        db.update_setting("daily_allowance_minutes", 120)
        db.upsert_rollover_entry("yesterday", 10, noon + timedelta(days=2))
        db.add_learning_activity(LearningActivity.new("coding", "Project", 80,
                                                      now=midnight + timedelta(hours=8)))
        nine = midnight + timedelta(hours=9)
        db.save_session(completed_session(nine, nine + timedelta(minutes=100)))

        status = engine.compute_status(noon)
        assert status.rollover_minutes == 10
        assert status.earned_minutes == 20
        assert status.used_today_minutes == 100
        assert status.total_available_minutes == 150
        assert status.remaining_today_minutes == 50

    def test_expired_rollover_excluded(self, engine, db, noon):
        db.upsert_rollover_entry("d1", 10, noon + timedelta(hours=1))
        db.upsert_rollover_entry("d2", 25, noon - timedelta(seconds=1))

        status = engine.compute_status(noon)
        assert status.rollover_minutes == 10
        assert [e.date for e in db.get_rollover_entries()] == ["d1"]

    def test_rollover_expiring_exactly_now_counts(self, engine, db, noon):
        db.upsert_rollover_entry("d1", 10, noon)
        assert engine.compute_status(noon).rollover_minutes == 10

    def test_earned_before_midnight_excluded(self, engine, db, midnight, noon):
        db.add_learning_activity(LearningActivity.new("coding", "late night", 60,
                                                      now=midnight - timedelta(minutes=1)))
        db.add_learning_activity(LearningActivity.new("reading", "morning", 60,
                                                      now=midnight + timedelta(hours=7)))
        assert engine.compute_status(noon).earned_minutes == 10

    def test_negative_earned_keeps_remaining_non_negative(self, engine, db, noon):
        db.add_debug_earned_minutes(-500, now=noon - timedelta(hours=1))
        status = engine.compute_status(noon)
        assert status.earned_minutes == -500
        assert status.remaining_today_minutes == 0


class TestRealtimeStatus:
    """Tests for the live-usage variant."""

    def test_adds_active_time(self, db, midnight, noon):
        tracker = SessionTracker()
        engine = BudgetEngine(db, tracker)
        ten = midnight + timedelta(hours=10)
        db.save_session(completed_session(ten, ten + timedelta(minutes=30)))

        tracker.reconcile([ProcessInfo("minecraft.exe")], now=noon - timedelta(minutes=20))

        assert engine.compute_status(noon).used_today_minutes == 30
        live = engine.compute_realtime_status(noon)
        assert live.used_today_minutes == 50
        assert live.remaining_today_minutes == 70

    def test_concurrent_live_sessions_share_window(self, db, noon):
        tracker = SessionTracker()
        engine = BudgetEngine(db, tracker)
        tracker.reconcile([ProcessInfo("minecraft.exe")], now=noon - timedelta(minutes=20))
        tracker.reconcile([ProcessInfo("minecraft.exe"), ProcessInfo("dota2.exe")],
                          now=noon - timedelta(minutes=10))

        assert engine.compute_realtime_status(noon).used_today_minutes == 20

    def test_without_tracker_matches_persisted(self, engine, noon):
        assert engine.compute_realtime_status(noon) == engine.compute_status(noon)


class TestReadFallbacks:
    """Storage failures degrade to a best-effort snapshot."""

    class BrokenDB:
        def __getattr__(self, name):
            def fail(*args, **kwargs):
                raise sqlite3.OperationalError("disk I/O error")
            return fail

    def test_status_with_failing_storage(self, noon):
        engine = BudgetEngine(self.BrokenDB())
        status = engine.compute_status(noon)
        assert status.daily_allowance_minutes == Settings().daily_allowance_minutes
        assert status.used_today_minutes == 0
        assert status.rollover_minutes == 0
        assert status.earned_minutes == 0
        assert status.remaining_today_minutes == 120

    def test_partial_failure(self, db, noon, monkeypatch):
        def fail(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        db.update_setting("daily_allowance_minutes", 90)
        monkeypatch.setattr(db, "sum_active_rollover", fail)

        status = BudgetEngine(db).compute_status(noon)
        assert status.daily_allowance_minutes == 90
        assert status.rollover_minutes == 0


class TestLogLearningActivity:
    """Tests for logging activities through the engine."""

    def test_log_and_count(self, engine, noon):
        activity = engine.log_learning_activity("course", "Algorithms", 60, now=noon)
        assert activity.earned_gaming_minutes == 15
        assert engine.compute_status(noon + timedelta(minutes=1)).earned_minutes == 15

    def test_negative_duration_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.log_learning_activity("coding", "oops", -10)


class TestCloseOutDay:
    """Tests for carrying unused allowance forward."""

    def test_close_out_yesterday(self, engine, db, midnight):
        yesterday = (midnight.astimezone() - timedelta(hours=12)).date()
        start = day_start(yesterday) + timedelta(hours=15)
        db.save_session(completed_session(start, start + timedelta(minutes=50)))

        carried = engine.close_out_day(yesterday, now=midnight + timedelta(hours=1))
        assert carried == 70

        entries = db.get_rollover_entries()
        assert len(entries) == 1
        assert entries[0].date == yesterday.isoformat()
        assert entries[0].unused_minutes == 70
        assert entries[0].expires_at == midnight + timedelta(days=3)

    def test_close_out_ignores_other_days(self, engine, db, midnight):
        yesterday = (midnight.astimezone() - timedelta(hours=12)).date()
        db.save_session(completed_session(midnight + timedelta(hours=1),
                                          midnight + timedelta(hours=2)))

        assert engine.close_out_day(yesterday, now=midnight + timedelta(hours=3)) == 120

    def test_overspent_day_carries_nothing(self, engine, db, midnight):
        yesterday = (midnight.astimezone() - timedelta(hours=12)).date()
        start = day_start(yesterday) + timedelta(hours=8)
        db.save_session(completed_session(start, start + timedelta(hours=4)))

        assert engine.close_out_day(yesterday, now=midnight + timedelta(hours=1)) == 0

    def test_cannot_close_current_day(self, engine, midnight):
        today = midnight.astimezone().date()
        with pytest.raises(ValueError):
            engine.close_out_day(today, now=midnight + timedelta(hours=5))


def test_status_to_dict():
    status = BudgetStatus(daily_allowance_minutes=120, used_today_minutes=30,
                          rollover_minutes=10, earned_minutes=5)
    assert status.to_dict() == {
        'daily_allowance_minutes': 120,
        'used_today_minutes': 30,
        'remaining_today_minutes': 105,
        'rollover_minutes': 10,
        'earned_minutes': 5,
        'total_available_minutes': 135,
    }
