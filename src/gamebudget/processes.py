"""
Process enumeration for gamebudget.

The tracker only needs a point-in-time list of (name, executable path).
PsutilSnapshotSource provides it for the running system; tests and tools
can hand the tracker any other ProcessSnapshotSource.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

import psutil

from .classifier import ProcessClassifier

log = logging.getLogger("gamebudget.processes")


@dataclass(frozen=True)
class ProcessInfo:
    """A running process as seen in one snapshot."""
    name: str
    exe_path: Optional[str] = None


class ProcessSnapshotSource(ABC):
    """Supplies snapshots of the running processes. No ordering guarantee."""

    @abstractmethod
    def list_processes(self) -> list[ProcessInfo]:
        ...


class PsutilSnapshotSource(ProcessSnapshotSource):
    """Snapshot of the local process table via psutil."""

    def list_processes(self) -> list[ProcessInfo]:
        processes = []
        for proc in psutil.process_iter(['name', 'exe']):
            try:
                name = proc.info.get('name') or ''
                if not name:
                    continue
                processes.append(ProcessInfo(name=name, exe_path=proc.info.get('exe')))
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return processes


class StaticSnapshotSource(ProcessSnapshotSource):
    """Replays a fixed list of processes. Swap the list with set()."""

    def __init__(self, processes: Iterable[ProcessInfo] = ()):
        self.processes = list(processes)

    def set(self, processes: Iterable[ProcessInfo]):
        self.processes = list(processes)

    def list_processes(self) -> list[ProcessInfo]:
        return list(self.processes)


def close_monitored_processes(classifier: ProcessClassifier,
                              timeout: float = 5.0) -> list[str]:
    """Terminate every running monitored game, killing any that linger.

    Returns the display names of the games that were closed.
    """
    closed = []

    for proc in psutil.process_iter(['pid', 'name', 'exe']):
        try:
            name = proc.info.get('name') or ''
            display_name = classifier.classify(name, proc.info.get('exe'))
            if not display_name:
                continue

            log.info(f"Sending SIGTERM to {display_name} (PID {proc.info['pid']})")
            proc.terminate()
            try:
                proc.wait(timeout=timeout)
            except psutil.TimeoutExpired:
                log.info(f"Sending SIGKILL to {display_name} (PID {proc.info['pid']})")
                proc.kill()

            log.info(f"Closed game: {display_name}")
            closed.append(display_name)

        except psutil.NoSuchProcess:
            log.debug(f"Process {proc.pid} already gone")
        except psutil.AccessDenied:
            log.error(f"Access denied closing PID {proc.pid}")

    return closed
