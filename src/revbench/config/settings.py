import logging
import os
import platform
from pathlib import Path

from platformdirs import user_data_dir

from .compat import env_bool, getenv_with_fallback

logger = logging.getLogger(__name__)

__all__ = [
    "BENCH_DATA_DIR",
    "CONFIG_PATH",
    "DB_NAME",
    "DEFAULT_BRANCH",
    "EVENT_LOG",
    "FETCH_BEFORE_RUN",
    "LOG_LEVEL",
    "TIME_BINARY",
    "reload_settings",
]

# Results database and event logs live here:
# - Linux: ~/.local/share/revbench
# - macOS: ~/Library/Application Support/revbench
# BENCH_BITCOIN_DIR is accepted for configs written for the original bench tool.
_DEFAULT_DATA_DIR = user_data_dir("revbench", appauthor=False)

# GNU time; macOS ships BSD time, so Homebrew's gtime is used there
_DEFAULT_TIME_BINARY = "/usr/local/bin/gtime" if platform.system() == "Darwin" else "/usr/bin/time"

# Events file is rotated past this size; five rotated files are kept
MAX_EVENT_LOG_BYTES = 10 * 1024 * 1024

# Seconds between SIGTERM and SIGKILL when tearing down an interrupted job
TERMINATE_GRACE_SECONDS = 10.0


def _load() -> dict[str, object]:
    data_dir = getenv_with_fallback("REVBENCH_DATA_DIR", "BENCH_BITCOIN_DIR") or _DEFAULT_DATA_DIR
    return {
        "BENCH_DATA_DIR": Path(data_dir).expanduser(),
        "DB_NAME": os.getenv("REVBENCH_DB_NAME", "").strip() or "db.sqlite",
        "CONFIG_PATH": Path(os.getenv("REVBENCH_CONFIG", "").strip() or "config.yaml"),
        "LOG_LEVEL": (os.getenv("REVBENCH_LOG_LEVEL", "").strip() or "INFO").upper(),
        "EVENT_LOG": env_bool("REVBENCH_EVENT_LOG", default=True),
        "FETCH_BEFORE_RUN": env_bool("REVBENCH_FETCH", default=True),
        "DEFAULT_BRANCH": os.getenv("REVBENCH_BRANCH", "").strip() or "master",
        "TIME_BINARY": os.getenv("REVBENCH_TIME_BINARY", "").strip() or _DEFAULT_TIME_BINARY,
    }


_initial = _load()
BENCH_DATA_DIR: Path = _initial["BENCH_DATA_DIR"]  # type: ignore[assignment]
DB_NAME: str = _initial["DB_NAME"]  # type: ignore[assignment]
CONFIG_PATH: Path = _initial["CONFIG_PATH"]  # type: ignore[assignment]
LOG_LEVEL: str = _initial["LOG_LEVEL"]  # type: ignore[assignment]
EVENT_LOG: bool = _initial["EVENT_LOG"]  # type: ignore[assignment]
FETCH_BEFORE_RUN: bool = _initial["FETCH_BEFORE_RUN"]  # type: ignore[assignment]
DEFAULT_BRANCH: str = _initial["DEFAULT_BRANCH"]  # type: ignore[assignment]
TIME_BINARY: str = _initial["TIME_BINARY"]  # type: ignore[assignment]
del _initial


def reload_settings() -> None:
    """Re-read settings from the environment (after load_dotenv or in tests)."""
    g = globals()
    for key, value in _load().items():
        g[key] = value
    logger.debug("Settings reloaded: data_dir=%s db=%s", g["BENCH_DATA_DIR"], g["DB_NAME"])
