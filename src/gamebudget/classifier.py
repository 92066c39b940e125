"""
Decides which running processes are games.

Three sources, checked in order:
1. Exclusion list - companion processes (launchers, helpers, overlays) that
   never count, even when they also appear in the known-games table
2. Known-games table - exact process name -> display name
3. Vendor library paths - executables installed under a game library
   (e.g. .../steamapps/common/...) count as games under a synthesized name
"""

import logging
from typing import Iterable, Optional

log = logging.getLogger("gamebudget.classifier")

DEFAULT_KNOWN_GAMES = {
    "steam.exe": "Steam",
    "League of Legends.exe": "League of Legends",
    "RiotClientServices.exe": "Riot Games",
    "Valorant.exe": "Valorant",
    "csgo.exe": "Counter-Strike: Global Offensive",
    "dota2.exe": "Dota 2",
    "RocketLeague.exe": "Rocket League",
    "destiny2.exe": "Destiny 2",
    "overwatch.exe": "Overwatch",
    "wow.exe": "World of Warcraft",
    "minecraft.exe": "Minecraft",
    "epicgameslauncher.exe": "Epic Games Launcher",
    "battle.net.exe": "Battle.net",
    "origin.exe": "EA Origin",
    "uplay.exe": "Ubisoft Connect",
}

# Steam tools that live next to games but aren't games
DEFAULT_EXCLUDED = (
    "wallpaper32.exe",
    "wallpaper64.exe",
    "steamwebhelper.exe",
    "steamerrorreporter.exe",
    "crashhandler.exe",
    "steam.exe",  # the client itself
)

# Covers "Steam\steamapps" and "Steam/steamapps" as well
DEFAULT_LIBRARY_MARKERS = ("steamapps",)

EXECUTABLE_SUFFIXES = (".exe", ".x86_64", ".x86")


def display_name_from_process(process_name: str) -> str:
    """Make a readable name from an executable name.

    'hollow_knight.exe' -> 'Hollow Knight', 'dead-cells.exe' -> 'Dead Cells'
    """
    name = process_name
    for suffix in EXECUTABLE_SUFFIXES:
        if name.endswith(suffix):
            name = name[:-len(suffix)]
            break

    name = name.replace("_", " ").replace("-", " ")
    return " ".join(word[:1].upper() + word[1:] for word in name.split())


class ProcessClassifier:
    """Maps (process name, executable path) to a game display name or None.

    The tables are process-lifetime configuration; callers may register
    more games and exclusions at runtime.
    """

    def __init__(self, known_games: Optional[dict] = None,
                 excluded: Optional[Iterable[str]] = None,
                 library_markers: Optional[Iterable[str]] = None):
        self._known_games = dict(DEFAULT_KNOWN_GAMES)
        self._excluded = set(DEFAULT_EXCLUDED)
        self._library_markers = list(DEFAULT_LIBRARY_MARKERS)

        for process_name, display_name in (known_games or {}).items():
            self.add_game(process_name, display_name)
        for process_name in excluded or ():
            self.add_exclusion(process_name)
        for marker in library_markers or ():
            if marker not in self._library_markers:
                self._library_markers.append(marker)

    def classify(self, process_name: str, exe_path: Optional[str] = None) -> Optional[str]:
        """Return the display name if this process is a monitored game."""
        if not process_name or process_name in self._excluded:
            return None

        display_name = self._known_games.get(process_name)
        if display_name:
            return display_name

        if self.is_library_game(exe_path):
            return display_name_from_process(process_name)

        return None

    def is_monitored(self, process_name: str, exe_path: Optional[str] = None) -> bool:
        return self.classify(process_name, exe_path) is not None

    def is_library_game(self, exe_path: Optional[str]) -> bool:
        """True if the executable lives in a vendor game library."""
        if not exe_path:
            return False
        return any(marker in exe_path for marker in self._library_markers)

    def add_game(self, process_name: str, display_name: str):
        """Register a game, or rename an existing one."""
        self._known_games[process_name] = display_name
        log.debug(f"Registered game: {process_name} -> {display_name}")

    def add_exclusion(self, process_name: str):
        self._excluded.add(process_name)

    def is_excluded(self, process_name: str) -> bool:
        return process_name in self._excluded

    def known_games(self) -> list[str]:
        """Display names from the known-games table."""
        return list(self._known_games.values())
