"""
gamebudget - gaming time tracker with a rolling budget.

Core pieces:
    ProcessClassifier  - which processes are games (classifier)
    SessionTracker     - process snapshots -> sessions (tracker)
    merged_seconds     - usage without double counting (intervals)
    BudgetEngine       - allowance + rollover + earned - used (budget)
    GameTimeDB         - SQLite storage (db)
    GameTimeService    - driving loop and query handlers (service)
"""

__version__ = "0.1.0"
