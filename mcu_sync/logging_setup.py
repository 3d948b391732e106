"""Logging setup for the device sync tool.

Everything goes to a (rotating) log file. The console only gets warnings
unless verbose output was asked for, because the session reports its
progress through plain ``print()`` lines.
"""

import getpass
import logging
import logging.handlers
from pathlib import Path

LOGGER_NAME = "mcu_sync"


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name}")
    return level


def _file_handler(
    log_path: Path, max_bytes: int, backup_count: int, rotation_enabled: bool
) -> logging.Handler:
    if rotation_enabled:
        return logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    return logging.FileHandler(log_path, encoding="utf-8")


def setup_logging(
    log_file: str,
    log_level: str = "INFO",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    rotation_enabled: bool = True,
    verbose: bool = False,
) -> logging.Logger:
    """Configure the shared sync logger.

    Args:
        log_file: Path to log file; its directory is created if needed
        log_level: Level for the log file (DEBUG, INFO, WARNING, ERROR)
        max_bytes: Max size of log file before rotation (in bytes)
        backup_count: Number of rotated files to keep
        rotation_enabled: Whether to rotate the log file
        verbose: Also show ``log_level`` messages on the console

    Returns:
        Configured logger instance

    Raises:
        ValueError: If ``log_level`` is not a logging level name
    """
    level = _level(log_level)
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(
        f"%(asctime)s - %(name)s - %(levelname)s - [{_current_user()}] - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = _file_handler(log_path, max_bytes, backup_count, rotation_enabled)
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level if verbose else max(level, logging.WARNING))
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def get_logger() -> logging.Logger:
    """Get the shared sync logger."""
    return logging.getLogger(LOGGER_NAME)
