import logging
import os
from datetime import datetime
from pathlib import Path

LOG_DIR = Path(os.getenv("STREAMFEED_LOG_DIR", "logs"))

_LOGGERS = {}
_LOGFILES = {}


def _logfile_for(runtime: str) -> Path:
    # One file per runtime per process run
    if runtime not in _LOGFILES:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        _LOGFILES[runtime] = LOG_DIR / f"{runtime}-{timestamp}.log"
    return _LOGFILES[runtime]


def get_logger(
    name: str,
    *,
    runtime: str = "streamfeed",
) -> logging.Logger:
    """
    Create or retrieve a named logger.

    Parameters:
    - name: logger namespace (e.g. core.session, feed.window)
    - runtime: log file prefix (streamfeed | poc)

    Console level follows STREAMFEED_CONSOLE_LEVEL (default INFO); the
    per-run log file always receives DEBUG.
    """
    cache_key = f"{runtime}:{name}"
    if cache_key in _LOGGERS:
        return _LOGGERS[cache_key]

    logger = logging.getLogger(cache_key)
    logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    # ------------------------------
    # Console handler
    # ------------------------------
    console_level_name = (os.getenv("STREAMFEED_CONSOLE_LEVEL") or "INFO").upper()
    console = logging.StreamHandler()
    console.setLevel(getattr(logging, console_level_name, logging.INFO))
    console.setFormatter(formatter)
    logger.addHandler(console)

    # ------------------------------
    # File handler (one per run)
    # ------------------------------
    file_handler = logging.FileHandler(_logfile_for(runtime), encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    logger.propagate = False
    _LOGGERS[cache_key] = logger

    return logger
