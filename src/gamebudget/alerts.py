"""
Budget alerts.

Raises a warning, a final warning and an exceeded alert as remaining time
runs out. Each level fires once and re-arms when the budget climbs back
above it (e.g. after a learning activity earns more minutes).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .models import BudgetStatus

log = logging.getLogger("gamebudget.alerts")

ALERT_WARNING = "warning"
ALERT_CRITICAL = "critical"
ALERT_EXCEEDED = "exceeded"

WARNING_MINUTES = 5
CRITICAL_MINUTES = 1


@dataclass
class BudgetAlert:
    """An alert for the presentation layer to show."""
    level: str
    title: str
    message: str
    remaining_minutes: int


def alert_level(remaining: int, warning_minutes: int = WARNING_MINUTES) -> Optional[str]:
    """Alert level for a number of remaining minutes, or None."""
    if remaining <= 0:
        return ALERT_EXCEEDED
    if remaining <= CRITICAL_MINUTES:
        return ALERT_CRITICAL
    if remaining <= warning_minutes:
        return ALERT_WARNING
    return None


def _plural(n: int) -> str:
    return "" if n == 1 else "s"


class BudgetAlertWatcher:
    """Turns a stream of budget snapshots into one-shot alerts."""

    def __init__(self, warning_minutes: int = WARNING_MINUTES):
        self.warning_minutes = max(WARNING_MINUTES, warning_minutes)
        self._shown: set = set()

    def _thresholds(self) -> dict:
        return {
            ALERT_WARNING: self.warning_minutes,
            ALERT_CRITICAL: CRITICAL_MINUTES,
            ALERT_EXCEEDED: 0,
        }

    def check(self, status: BudgetStatus) -> Optional[BudgetAlert]:
        """Return a newly raised alert for this snapshot, if any."""
        remaining = status.remaining_today_minutes

        # Budget went back up: re-arm the levels we are now above
        for level, threshold in self._thresholds().items():
            if remaining > threshold:
                self._shown.discard(level)

        level = alert_level(remaining, self.warning_minutes)
        if level is None or level in self._shown:
            return None

        self._shown.add(level)
        alert = self._build(level, remaining)
        log.info(f"Budget alert [{level}]: {alert.message}")
        return alert

    def _build(self, level: str, remaining: int) -> BudgetAlert:
        if level == ALERT_EXCEEDED:
            return BudgetAlert(level, "Gaming Time Exceeded",
                               "Your gaming time budget has been exceeded.", remaining)
        if level == ALERT_CRITICAL:
            return BudgetAlert(level, "Final Warning",
                               f"Only {remaining} minute{_plural(remaining)} of gaming time left. "
                               f"Save your game now.", remaining)
        return BudgetAlert(level, "Gaming Time Warning",
                           f"{remaining} minute{_plural(remaining)} of gaming time left.",
                           remaining)
