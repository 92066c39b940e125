#!/usr/bin/env python3
"""
gamebudget - gaming time tracker with a rolling budget

Watches for running games, records play sessions, and keeps a daily gaming
budget made of a fixed allowance, rollover from previous days, and minutes
earned by logging learning activities.
"""

import argparse
import logging
import signal
import sys
import time
from datetime import date, timedelta

from .budget import BudgetEngine, EARN_RATES, DEFAULT_EARN_RATE, local_midnight
from .config import DEFAULT_CONFIG, build_classifier, load_config
from .db import GameTimeDB
from .models import BudgetStatus, utcnow
from .processes import close_monitored_processes
from .service import GameTimeService
from .tracker import SessionTracker

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s'
)
log = logging.getLogger("gamebudget")


def format_duration(seconds: int) -> str:
    """Format seconds as human-readable duration."""
    if seconds < 60:
        return f"{seconds} seconds"

    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"

    hours = minutes // 60
    mins = minutes % 60
    if mins == 0:
        return f"{hours} hour{'s' if hours != 1 else ''}"
    return f"{hours}h {mins}m"


def format_minutes(minutes: int) -> str:
    return format_duration(minutes * 60) if minutes > 0 else "0 minutes"


class GameBudgetDaemon:
    """Main daemon class."""

    def __init__(self, config_path: str, db_path: str = None):
        self.config = load_config(config_path)
        self.running = True

        db_path = db_path or self.config["daemon"]["db_path"]
        self.db = GameTimeDB(db_path)
        log.info(f"Database initialized at {db_path}")

        tracker = SessionTracker(build_classifier(self.config))
        self.service = GameTimeService(self.db, tracker,
                                       tick_seconds=self.config["daemon"]["tick_seconds"])

        signal.signal(signal.SIGTERM, self._handle_signal)
        signal.signal(signal.SIGINT, self._handle_signal)

    def _handle_signal(self, signum, frame):
        """Handle shutdown signals."""
        log.info(f"Received signal {signum}, shutting down...")
        self.running = False

    def run(self):
        """Main daemon loop."""
        log.info("gamebudget starting up")

        maint = self.db.maintenance()
        log.info(f"Maintenance complete: deleted {maint['deleted']}, "
                 f"DB size: {maint['after']['file_size_mb']:.2f} MB")

        status = self.service.get_budget_status()
        log.info(f"Budget today: {status.remaining_today_minutes} of "
                 f"{status.total_available_minutes} minutes remaining")

        self.service.start()
        while self.running:
            time.sleep(0.5)
        self.service.stop(timeout=5)

        log.info("gamebudget shutdown complete")


def _open_db(args) -> GameTimeDB:
    config = load_config(args.config)
    db_path = args.db or config["daemon"]["db_path"]
    try:
        return GameTimeDB(db_path)
    except Exception:
        print(f"Error: Cannot access database at {db_path}", file=sys.stderr)
        sys.exit(1)


def print_status(status: BudgetStatus):
    print(f"Gaming Budget for {date.today().isoformat()}")
    print()
    print(f"   Allowance: {format_minutes(status.daily_allowance_minutes)}")
    print(f"   Rollover:  {format_minutes(status.rollover_minutes)}")
    print(f"   Earned:    {format_minutes(status.earned_minutes)}")
    print(f"   Total:     {format_minutes(status.total_available_minutes)}")
    print()
    print(f"   Used:      {format_minutes(status.used_today_minutes)}")
    print(f"   Remaining: {format_minutes(status.remaining_today_minutes)}")


def cmd_status(args):
    """Show today's budget from recorded sessions."""
    db = _open_db(args)
    print_status(BudgetEngine(db).compute_status())


def cmd_sessions(args):
    """List recent sessions."""
    db = _open_db(args)
    sessions = db.get_recent_sessions(args.limit)
    if not sessions:
        print("No sessions recorded.")
        return

    print(f"{'Started':<17} {'Game':<30} {'Duration':<12} {'Concurrent'}")
    print("-" * 72)
    for s in sessions:
        started = s.start_time.astimezone().strftime("%Y-%m-%d %H:%M")
        duration = format_duration(s.duration_seconds) if s.duration_seconds is not None else "-"
        concurrent = f"yes ({len(s.concurrent_session_ids)})" if s.is_concurrent else ""
        print(f"{started:<17} {s.game_name[:29]:<30} {duration:<12} {concurrent}")


def cmd_learn(args):
    """Log a learning activity."""
    db = _open_db(args)
    engine = BudgetEngine(db)
    try:
        activity = engine.log_learning_activity(args.type, args.description or args.type,
                                                args.minutes)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"Logged {args.minutes} minutes of {args.type}: "
          f"earned {activity.earned_gaming_minutes} gaming minutes")


def cmd_settings(args):
    """Show or update budget settings."""
    db = _open_db(args)

    if args.key:
        if args.value is None:
            print(f"Error: no value given for {args.key}", file=sys.stderr)
            sys.exit(1)
        try:
            db.update_setting(args.key, args.value)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"Set {args.key} = {args.value}")
        return

    settings = db.get_settings()
    print("Budget settings:")
    print(f"  daily_allowance_minutes:   {settings.daily_allowance_minutes}")
    print(f"  rollover_days:             {settings.rollover_days}")
    print(f"  notifications_enabled:     {str(settings.notifications_enabled).lower()}")
    print(f"  warning_threshold_minutes: {settings.warning_threshold_minutes}")


def cmd_rollover(args):
    """List or create rollover entries."""
    db = _open_db(args)

    if args.action == "list":
        now = utcnow()
        entries = db.get_rollover_entries()
        if not entries:
            print("No rollover entries.")
            return
        print(f"{'Date':<12} {'Minutes':<8} {'Expires':<17}")
        print("-" * 45)
        for e in entries:
            expires = e.expires_at.astimezone().strftime("%Y-%m-%d %H:%M")
            flag = " (expired)" if e.is_expired(now) else ""
            print(f"{e.date:<12} {e.unused_minutes:<8} {expires:<17}{flag}")

    elif args.action == "close":
        try:
            day = date.fromisoformat(args.date) if args.date else date.today() - timedelta(days=1)
            carried = BudgetEngine(db).close_out_day(day)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"Closed out {day.isoformat()}: {carried} minutes roll over")


def cmd_games(args):
    """List known games."""
    classifier = build_classifier(load_config(args.config))
    for name in sorted(classifier.known_games()):
        print(name)


def cmd_close_games(args):
    """Close running games."""
    classifier = build_classifier(load_config(args.config))
    closed = close_monitored_processes(classifier)
    if closed:
        print(f"Closed: {', '.join(closed)}")
    else:
        print("No running games found.")


def cmd_debug(args):
    """Debug utilities for injecting synthetic data."""
    db = _open_db(args)

    if args.action == "add-minutes":
        db.add_debug_earned_minutes(args.minutes)
        print(f"Added {args.minutes} minutes to today's budget")
    elif args.action == "remove-minutes":
        db.add_debug_earned_minutes(-args.minutes)
        print(f"Removed {args.minutes} minutes from today's budget")
    elif args.action == "fake-session":
        db.add_fake_session(args.minutes)
        print(f"Recorded a fake {args.minutes} minute session")
    elif args.action == "reset-today":
        deleted = db.reset_sessions_since(local_midnight())
        print(f"Deleted {deleted} sessions from today")


def cmd_maintenance(args):
    """Run database maintenance."""
    db = _open_db(args)

    print("Running maintenance...")
    result = db.maintenance(sessions_days=args.sessions_days,
                            activities_days=args.activities_days)

    print(f"\nBefore:")
    print(f"  Size: {result['before']['file_size_mb']:.2f} MB")
    print(f"  Sessions: {result['before']['sessions_count']}")

    print(f"\nDeleted:")
    for table, count in result['deleted'].items():
        print(f"  {table}: {count} rows")

    print(f"\nAfter:")
    print(f"  Size: {result['after']['file_size_mb']:.2f} MB")
    print(f"  Sessions: {result['after']['sessions_count']}")


def main(argv=None):
    rates = ", ".join(f"{k} 1:{v}" for k, v in EARN_RATES.items())
    examples = f"""
Examples:
  # Check today's budget
  gamebudget status

  # Log an hour of coding (earns gaming minutes: {rates}, other 1:{DEFAULT_EARN_RATE})
  gamebudget learn coding 60 "Advent of Code"

  # Raise the daily allowance to 90 minutes
  gamebudget settings daily_allowance_minutes 90

  # Carry yesterday's unused allowance forward
  gamebudget rollover close

  # Run the tracker (usually via a user systemd unit)
  gamebudget run
"""
    parser = argparse.ArgumentParser(
        description="Gaming time tracker with a rolling budget",
        epilog=examples,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--db", help="Path to database (default: from config)")
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG, help="Path to config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Run the tracker daemon")
    subparsers.add_parser("status", help="Show today's budget")

    sessions_parser = subparsers.add_parser("sessions", help="List recent sessions")
    sessions_parser.add_argument("--limit", type=int, default=20, help="Number of sessions")

    learn_parser = subparsers.add_parser("learn", help="Log a learning activity")
    learn_parser.add_argument("type", help="Activity type (coding, reading, course, exercise, ...)")
    learn_parser.add_argument("minutes", type=int, help="Duration in minutes")
    learn_parser.add_argument("description", nargs="?", help="What you did")

    settings_parser = subparsers.add_parser("settings", help="View/set budget settings")
    settings_parser.add_argument("key", nargs="?", help="Setting to change")
    settings_parser.add_argument("value", nargs="?", help="New value")

    rollover_parser = subparsers.add_parser("rollover", help="Manage rollover minutes")
    rollover_sub = rollover_parser.add_subparsers(dest="action")
    rollover_sub.add_parser("list", help="List rollover entries")
    close_roll = rollover_sub.add_parser("close", help="Carry a day's unused allowance forward")
    close_roll.add_argument("date", nargs="?", help="Day to close out (YYYY-MM-DD, default: yesterday)")

    subparsers.add_parser("games", help="List known games")
    subparsers.add_parser("close-games", help="Close running games")

    debug_parser = subparsers.add_parser("debug", help="Debug utilities")
    debug_sub = debug_parser.add_subparsers(dest="action")
    for action, help_text in (("add-minutes", "Add minutes to today's budget"),
                              ("remove-minutes", "Remove minutes from today's budget"),
                              ("fake-session", "Record a fake completed session")):
        p = debug_sub.add_parser(action, help=help_text)
        p.add_argument("minutes", type=int, help="Minutes")
    debug_sub.add_parser("reset-today", help="Delete today's sessions")

    maint_parser = subparsers.add_parser("maintenance", help="Run database maintenance")
    maint_parser.add_argument("--sessions-days", type=int, default=90,
                              help="Keep sessions for this many days")
    maint_parser.add_argument("--activities-days", type=int, default=90,
                              help="Keep learning activities for this many days")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.command == "run":
        daemon = GameBudgetDaemon(args.config, args.db)
        daemon.run()
    elif args.command == "status":
        cmd_status(args)
    elif args.command == "sessions":
        cmd_sessions(args)
    elif args.command == "learn":
        cmd_learn(args)
    elif args.command == "settings":
        cmd_settings(args)
    elif args.command == "rollover":
        if args.action:
            cmd_rollover(args)
        else:
            rollover_parser.print_help()
    elif args.command == "games":
        cmd_games(args)
    elif args.command == "close-games":
        cmd_close_games(args)
    elif args.command == "debug":
        if args.action:
            cmd_debug(args)
        else:
            debug_parser.print_help()
    elif args.command == "maintenance":
        cmd_maintenance(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
