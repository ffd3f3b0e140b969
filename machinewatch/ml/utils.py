"""
utils.py — Logging Setup and Saved-Directory Helpers
=====================================================

Used by the training CLI and the HTTP service entry points.
"""

import os
import logging

from . import config

# Library loggers that flood the console during fit() at INFO.
_NOISY_LOGGERS = ("tensorflow", "absl", "h5py", "werkzeug")


def setup_logging(level: str = None) -> None:
    """
    Attach one console handler to the "ml" logger tree.

    Every module logs through logging.getLogger("ml.<module>"), so a
    single handler here covers the whole pipeline.  Library loggers are
    held at WARNING unless DEBUG is requested.

    Args:
        level: DEBUG/INFO/WARNING/ERROR/CRITICAL.  Defaults to
               config.LOG_LEVEL (ML_LOG_LEVEL env var).
    """
    level = (level or config.LOG_LEVEL).upper()
    numeric_level = getattr(logging, level, logging.INFO)

    ml_logger = logging.getLogger("ml")
    ml_logger.setLevel(numeric_level)

    if not ml_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        ml_logger.addHandler(handler)

    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def ensure_saved_dir(path: str = None) -> str:
    """
    Create the directory holding the model artifact, training status and
    anomaly log.

    Args:
        path: Directory to create.  Defaults to config.SAVED_DIR
              (ML_SAVED_DIR env var).

    Returns:
        Absolute path of the directory.
    """
    path = path or config.SAVED_DIR
    os.makedirs(path, exist_ok=True)
    return os.path.abspath(path)
