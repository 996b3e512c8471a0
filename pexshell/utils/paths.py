"""Per-user directory resolution using platformdirs.

  Linux: ~/.config/pexshell, ~/.cache/pexshell, ~/.local/state/pexshell/log
  macOS: ~/Library/Application Support/pexshell, ~/Library/Caches/pexshell,
         ~/Library/Logs/pexshell

``PEXSHELL_CONFIG_DIR``, ``PEXSHELL_CACHE_DIR`` and ``PEXSHELL_LOG_DIR``
override the defaults.
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "pexshell"


def _override(env_var: str) -> Path | None:
    value = os.environ.get(env_var, "").strip()
    return Path(value).expanduser() if value else None


def get_config_dir() -> Path:
    """Return the directory holding config.yaml."""
    return _override("PEXSHELL_CONFIG_DIR") or Path(
        platformdirs.user_config_dir(APP_NAME, appauthor=False)
    )


def get_cache_dir() -> Path:
    """Return the directory holding cached schemas."""
    return _override("PEXSHELL_CACHE_DIR") or Path(
        platformdirs.user_cache_dir(APP_NAME, appauthor=False)
    )


def get_log_dir() -> Path:
    """Return the directory for the default log file."""
    return _override("PEXSHELL_LOG_DIR") or Path(
        platformdirs.user_log_dir(APP_NAME, appauthor=False)
    )


def get_default_config_path() -> Path:
    return get_config_dir() / "config.yaml"


def get_default_log_path() -> Path:
    return get_log_dir() / "pexshell.log"


def ensure_dirs_exist() -> None:
    """Create all per-user directories if they don't exist."""
    for d in [get_config_dir(), get_cache_dir(), get_log_dir()]:
        d.mkdir(parents=True, exist_ok=True)
