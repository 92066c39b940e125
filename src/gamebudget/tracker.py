"""
Session tracking state machine.

Each monitored process name moves Inactive -> Active -> Ended. At most one
session is active per process name. Ended sessions wait in a completed queue
until the driving loop drains them into the database.

Concurrency links are point-in-time: when a game starts while others are
running, every running session is linked to the new one and that link is
never re-checked later.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from .classifier import ProcessClassifier
from .models import Session, utcnow
from .processes import ProcessInfo, ProcessSnapshotSource, PsutilSnapshotSource

log = logging.getLogger("gamebudget.tracker")


def _duration_str(seconds: Optional[int]) -> str:
    seconds = seconds or 0
    return f"{seconds // 60}m {seconds % 60}s"


class SessionTracker:
    """Owns the active sessions and turns process snapshots into sessions."""

    def __init__(self, classifier: Optional[ProcessClassifier] = None,
                 source: Optional[ProcessSnapshotSource] = None):
        self.classifier = classifier or ProcessClassifier()
        self.source = source or PsutilSnapshotSource()
        self._active: list[Session] = []
        self._completed: list[Session] = []
        self._paused = False

    @property
    def is_paused(self) -> bool:
        return self._paused

    def pause(self):
        """Stop reconciling. Active sessions stay open."""
        self._paused = True
        log.info("Game monitoring paused")

    def resume(self):
        self._paused = False
        log.info("Game monitoring resumed")

    def update(self, now: Optional[datetime] = None):
        """Take a fresh snapshot from the source and reconcile against it."""
        if self._paused:
            return
        self.reconcile(self.source.list_processes(), now=now)

    def detect_games(self, snapshot: Iterable[ProcessInfo]) -> dict[str, str]:
        """Monitored process names in a snapshot -> display names."""
        games = {}
        for proc in snapshot:
            if proc.name in games:
                continue
            display_name = self.classifier.classify(proc.name, proc.exe_path)
            if display_name:
                games[proc.name] = display_name
        return games

    def reconcile(self, snapshot: Iterable[ProcessInfo], now: Optional[datetime] = None):
        """Open and close sessions to match a process snapshot."""
        if self._paused:
            return

        now = now or utcnow()
        games = self.detect_games(snapshot)
        log.debug(f"Update cycle - found {len(games)} games: {sorted(games.values())}")

        # Concurrency of ending sessions is judged against the set as it was
        # before this pass removed anything.
        before = list(self._active)
        ending = [s for s in before if s.process_name not in games]

        for session in ending:
            session.end(now)
            self._active.remove(session)

            if len(before) > 1:
                session.is_concurrent = True
                session.concurrent_session_ids = [s.id for s in before if s.id != session.id]

            log.info(f"Game session ended: {session.game_name} "
                     f"({_duration_str(session.duration_seconds)})"
                     f"{' [CONCURRENT]' if session.is_concurrent else ''}")
            self._completed.append(session)

        active_names = {s.process_name for s in self._active}
        for process_name, display_name in games.items():
            if process_name in active_names:
                continue

            session = Session.new(display_name, process_name, now)
            if self._active:
                for other in self._active:
                    session.link(other.id)
                    other.link(session.id)

            log.info(f"New game detected and started: {display_name}"
                     f"{' [CONCURRENT]' if session.is_concurrent else ''}")
            self._active.append(session)
            active_names.add(process_name)

    def get_active_sessions(self) -> list[Session]:
        """Copies of the active sessions."""
        return [s.copy() for s in self._active]

    def drain_completed(self) -> list[Session]:
        """Hand off ended sessions. Each one is returned exactly once."""
        completed, self._completed = self._completed, []
        return completed

    def get_total_active_seconds(self, now: Optional[datetime] = None) -> int:
        """Seconds since the earliest active session started.

        Concurrent sessions share one wall-clock window, so this is not a
        sum over sessions.
        """
        if not self._active:
            return 0
        now = now or utcnow()
        # The earliest-started session has the longest running time
        return max(s.current_duration(now) for s in self._active)
