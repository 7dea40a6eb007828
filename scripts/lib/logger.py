"""
Logging for Studio Ops Hub.

Every module gets its logger from ``setup_logger``. Output goes to stdout and,
unless disabled, to a midnight-rotated file under logs/ that keeps two weeks
of history.

    logger = setup_logger(__name__)
    logger.info("Reconciled week %s", week)

Environment:
    LOG_LEVEL         Level for new loggers (INFO)
    LOG_TO_FILE       "false" disables the file handler (tests, containers)
    LOG_DIR           Directory for the rotated file (project_root/logs)
    LOG_BACKUP_DAYS   Rotated files kept (14)
"""
import logging
import os
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "ops_hub.log"

_formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
_file_handler: Optional[logging.Handler] = None


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes")


def _shared_file_handler(log_dir: Path) -> logging.Handler:
    """One rotating handler for the whole process, so every module writes to the same file."""
    global _file_handler
    if _file_handler is None:
        log_dir.mkdir(parents=True, exist_ok=True)
        _file_handler = TimedRotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            when="midnight",
            backupCount=int(os.getenv("LOG_BACKUP_DAYS", "14")),
            encoding="utf-8",
        )
        _file_handler.setFormatter(_formatter)
    return _file_handler


def setup_logger(name: str, level: str = None, log_to_file: bool = None) -> logging.Logger:
    """
    Return the logger for ``name``, attaching handlers on first use.

    Args:
        name: Usually ``__name__``; integrations and routers use short fixed names.
        level: Overrides LOG_LEVEL.
        log_to_file: Overrides LOG_TO_FILE.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logger.setLevel(getattr(logging, level, logging.INFO))
    logger.propagate = False

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_formatter)
    logger.addHandler(console)

    if log_to_file is None:
        log_to_file = _env_flag("LOG_TO_FILE", True)
    if log_to_file:
        log_dir = Path(os.getenv("LOG_DIR") or PROJECT_ROOT / "logs")
        logger.addHandler(_shared_file_handler(log_dir))

    return logger
