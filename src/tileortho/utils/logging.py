"""Logging helpers.

Thin wrapper around Python's standard logging module so every stage
logs with the same format.  A run additionally mirrors its messages to
a log file next to the exported orthoimages; the end-of-run summary
refers the user to that file.
"""

import logging
from pathlib import Path
from typing import Union

_FORMAT = '[%(asctime)s] [%(levelname)s] %(name)s: %(message)s'
_DATEFMT = '%Y-%m-%d %H:%M:%S'

ROOT_LOGGER = 'tileortho'


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger with a preset format."""
    logger = logging.getLogger(name)
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    return logger


def configure_run_log(path: Union[str, Path], level: int = logging.INFO) -> Path:
    """Attach a file handler writing every package message to ``path``.

    Calling this twice with the same path does not duplicate output.

    Parameters
    ----------
    path : str or Path
        Log file location.  Parent directories are created.
    level : int, optional
        Minimum level written to the file.

    Returns
    -------
    Path
        The resolved log file path.
    """
    log_path = Path(path).expanduser().resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    root = logging.getLogger(ROOT_LOGGER)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == log_path:
            return log_path
    handler = logging.FileHandler(log_path, encoding='utf-8')
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    handler.setLevel(level)
    root.addHandler(handler)
    return log_path
