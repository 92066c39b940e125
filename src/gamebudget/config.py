"""
YAML configuration for the gamebudget daemon.

Budget settings (allowance, rollover days, ...) live in the database; this
file only configures the daemon itself and extends the game tables.
"""

import logging
from pathlib import Path
from typing import Optional

import yaml

from .classifier import ProcessClassifier
from .db import DEFAULT_DB_PATH

DEFAULT_CONFIG = str(Path.home() / ".config/gamebudget/config.yaml")
DEFAULT_TICK_SECONDS = 1

log = logging.getLogger("gamebudget.config")


def default_config() -> dict:
    """Return default configuration."""
    return {
        "daemon": {
            "tick_seconds": DEFAULT_TICK_SECONDS,
            "db_path": DEFAULT_DB_PATH,
        },
        "games": {},
        "excluded": [],
        "library_markers": [],
    }


def load_config(path: Optional[str] = None) -> dict:
    """Load configuration from a YAML file, filling gaps with defaults."""
    config = default_config()
    config_path = Path(path or DEFAULT_CONFIG).expanduser()

    if not config_path.exists():
        log.warning(f"Config not found at {config_path}, using defaults")
        return config

    try:
        with open(config_path) as f:
            loaded = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        log.error(f"Invalid config at {config_path}, using defaults: {e}")
        return config

    if not isinstance(loaded, dict):
        log.error(f"Config at {config_path} is not a mapping, using defaults")
        return config

    config["daemon"].update(loaded.get("daemon") or {})
    config["games"].update(loaded.get("games") or {})
    config["excluded"].extend(loaded.get("excluded") or [])
    config["library_markers"].extend(loaded.get("library_markers") or [])

    try:
        config["daemon"]["tick_seconds"] = float(config["daemon"]["tick_seconds"])
    except (TypeError, ValueError):
        log.warning(f"Invalid tick_seconds {config['daemon']['tick_seconds']!r}, "
                    f"using {DEFAULT_TICK_SECONDS}")
        config["daemon"]["tick_seconds"] = DEFAULT_TICK_SECONDS
    config["daemon"]["db_path"] = str(Path(config["daemon"]["db_path"]).expanduser())

    return config


def build_classifier(config: dict) -> ProcessClassifier:
    """Classifier with the default tables plus whatever the config adds."""
    return ProcessClassifier(
        known_games={str(k): str(v) for k, v in config.get("games", {}).items()},
        excluded=[str(p) for p in config.get("excluded", [])],
        library_markers=[str(m) for m in config.get("library_markers", [])],
    )
