"""
Logging setup for Battery Widget.

All components log through children of the "BatteryWidget" logger. The
service writes a rotating daily file and echoes warnings to the console.
"""

import logging
import time
from datetime import date
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOGGER_NAME = "BatteryWidget"

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def log_file_for(log_dir: Path, day: Optional[date] = None) -> Path:
    """Path of the log file for a day, today by default."""
    day = day or date.today()
    return log_dir / f"battery_widget_{day.isoformat()}.log"


def _file_handler(log_file: Path, level: int) -> logging.Handler:
    handler = RotatingFileHandler(
        log_file, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    return handler


def setup_logging(config, log_dir: str = "data/logs") -> logging.Logger:
    """
    Point the application logger at a rotating file and the console.

    Calling it again replaces the handlers from the previous call, so a
    changed log level or directory takes effect.

    Args:
        config: ConfigManager instance, read for "log_level"
        log_dir: Directory for log files

    Returns:
        The application logger
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    level_name = config.get("log_level", "INFO")
    level = getattr(logging, level_name, logging.INFO)

    app_logger = logging.getLogger(LOGGER_NAME)
    app_logger.setLevel(level)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()

    log_file = log_file_for(log_path)
    app_logger.addHandler(_file_handler(log_file, level))
    app_logger.addHandler(_console_handler())

    app_logger.info(f"Logging to {log_file} at {level_name}")
    return app_logger


def cleanup_old_logs(log_dir: str = "data/logs", retention_days: float = 30) -> int:
    """
    Delete log files, rotated backups included, older than the retention period.

    Args:
        log_dir: Directory containing log files
        retention_days: Age threshold in days

    Returns:
        Number of files deleted
    """
    log_path = Path(log_dir)
    if not log_path.is_dir():
        return 0

    log = logging.getLogger(f"{LOGGER_NAME}.Logs")
    cutoff = time.time() - retention_days * 24 * 3600

    expired = [path for path in log_path.glob("*.log*") if path.stat().st_mtime < cutoff]
    deleted = 0
    for path in expired:
        try:
            path.unlink()
            deleted += 1
        except OSError as e:
            log.warning(f"Could not delete {path.name}: {e}")

    if deleted:
        log.info(f"Deleted {deleted} log files older than {retention_days} days")
    return deleted
