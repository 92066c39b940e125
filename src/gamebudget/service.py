"""
Driving loop and query handlers.

GameTimeService is the single owner of the session tracker and the database
handle. A background thread ticks once per second: reconcile, drain, save.
Foreground callers go through the query methods, which share two locks with
the loop.

Lock discipline: the loop only ever tries the locks without blocking and
skips the tick if either is held, so it can never stall an interactive
query. Query handlers block, always taking the tracker lock before the db
lock.
"""

import logging
import sqlite3
import threading
from typing import Optional

from .alerts import BudgetAlert, BudgetAlertWatcher
from .budget import BudgetEngine
from .config import DEFAULT_TICK_SECONDS
from .db import GameTimeDB
from .models import BudgetStatus, LearningActivity, Session
from .processes import close_monitored_processes
from .tracker import SessionTracker

log = logging.getLogger("gamebudget.service")


class GameTimeService:
    """Owns tracker + database and runs the periodic reconciliation."""

    def __init__(self, db: GameTimeDB, tracker: Optional[SessionTracker] = None,
                 tick_seconds: float = DEFAULT_TICK_SECONDS,
                 alerts: Optional[BudgetAlertWatcher] = None):
        self.db = db
        self.tracker = tracker or SessionTracker()
        self.engine = BudgetEngine(db, self.tracker)
        self.tick_seconds = tick_seconds
        self.alerts = alerts

        self.tracker_lock = threading.Lock()
        self.db_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.last_alert: Optional[BudgetAlert] = None

    # --- Driving loop ---

    def tick(self) -> bool:
        """Run one reconcile/drain/save cycle.

        Returns False if the tick was skipped because a lock was busy.
        """
        if not self.tracker_lock.acquire(blocking=False):
            log.debug("Tracker busy, skipping tick")
            return False
        try:
            if not self.db_lock.acquire(blocking=False):
                log.debug("Database busy, skipping tick")
                return False
            try:
                self.tracker.update()
                for session in self.tracker.drain_completed():
                    self._save(session)
                self._check_alerts()
            finally:
                self.db_lock.release()
        finally:
            self.tracker_lock.release()
        return True

    def _save(self, session: Session):
        """Persist a completed session. Failures drop the record."""
        try:
            self.db.save_session(session)
        except (sqlite3.Error, OSError) as e:
            log.error(f"Failed to save session {session.game_name} ({session.id}): {e}")

    def _check_alerts(self):
        if self.alerts is None or not self.tracker.get_active_sessions():
            return
        if not self.engine.get_settings().notifications_enabled:
            return
        alert = self.alerts.check(self.engine.compute_realtime_status())
        if alert:
            self.last_alert = alert

    def _run(self):
        log.info(f"Monitoring loop started (tick every {self.tick_seconds}s)")
        while not self._stop.wait(self.tick_seconds):
            try:
                self.tick()
            except Exception as e:
                log.error(f"Error during tick: {e}", exc_info=True)
        log.info("Monitoring loop stopped")

    def start(self):
        """Start the background loop."""
        if self._thread and self._thread.is_alive():
            return
        if self.alerts is None:
            settings = self.engine.get_settings()
            self.alerts = BudgetAlertWatcher(settings.warning_threshold_minutes)
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="gamebudget-loop", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        """Stop the loop. Sessions not yet drained are not saved."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # --- Query handlers ---

    def get_budget_status(self) -> BudgetStatus:
        with self.db_lock:
            return self.engine.compute_status()

    def get_realtime_budget_status(self) -> BudgetStatus:
        with self.tracker_lock, self.db_lock:
            return self.engine.compute_realtime_status()

    def get_current_sessions(self) -> list[Session]:
        with self.tracker_lock:
            return self.tracker.get_active_sessions()

    def get_total_active_time(self) -> int:
        with self.tracker_lock:
            return self.tracker.get_total_active_seconds()

    def get_recent_sessions(self, limit: int = 20) -> list[Session]:
        with self.db_lock:
            try:
                return self.db.get_recent_sessions(limit)
            except (sqlite3.Error, OSError) as e:
                log.warning(f"Could not read recent sessions: {e}")
                return []

    def get_detected_games(self) -> list[str]:
        with self.tracker_lock:
            return self.tracker.classifier.known_games()

    def add_learning_activity(self, activity_type: str, description: str,
                              duration_minutes: int) -> LearningActivity:
        with self.db_lock:
            return self.engine.log_learning_activity(activity_type, description,
                                                     duration_minutes)

    def pause_monitoring(self):
        with self.tracker_lock:
            self.tracker.pause()

    def resume_monitoring(self):
        with self.tracker_lock:
            self.tracker.resume()

    def close_all_games(self) -> list[str]:
        with self.tracker_lock:
            return close_monitored_processes(self.tracker.classifier)
