# price_aggregator/config/logging_config.py

"""Logging for the price aggregator.

One log file per process under ``logs/`` (``run_YYYYMMDD_HHMMSS.log``)
receives every ``price_aggregator.*`` record at DEBUG.  The console only
shows WARNING and above unless a lower level is requested, which is what
``--verbose`` does.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from price_aggregator.config.settings import Settings

ROOT_LOGGER = "price_aggregator"

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _handler(
    handler: logging.Handler, level: int, fmt: str,
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=_DATE_FORMAT))
    return handler


def _existing_setup(
    root: logging.Logger, console_level: int,
) -> Path | None:
    """Reuse handlers from an earlier call, updating the console level."""
    log_file = None
    for h in root.handlers:
        if isinstance(h, logging.FileHandler):
            log_file = Path(h.baseFilename)
        elif isinstance(h, logging.StreamHandler):
            h.setLevel(console_level)
    return log_file


def setup_logging(console_level: int = logging.WARNING) -> Path:
    """Attach the per-run file and console handlers.

    Calling it again keeps the existing handlers (no duplicates) and
    only applies the new *console_level*.

    Returns:
        The path of this process's log file.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG)

    existing = _existing_setup(root, console_level)
    if existing is not None:
        return existing

    Settings.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = Settings.LOGS_DIR / f"run_{stamp}.log"

    root.addHandler(_handler(
        logging.FileHandler(log_file, encoding="utf-8"),
        logging.DEBUG,
        _FILE_FORMAT,
    ))
    root.addHandler(_handler(
        logging.StreamHandler(sys.stderr), console_level, _CONSOLE_FORMAT,
    ))
    root.info(
        "Logging to %s (console level %s)",
        log_file,
        logging.getLevelName(console_level),
    )
    return log_file
