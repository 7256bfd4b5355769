"""
Structured logging configuration for the residency compliance model.

One place to configure logging for the engine and the command line, with a
separate log file per concern.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import List, Optional

# Logger names per concern
COMPLIANCE_LOGGER = "compliance_model.compliance"
PERFORMANCE_LOGGER = "compliance_model.performance"
ERROR_LOGGER = "compliance_model.errors"
DEBUG_LOGGER = "compliance_model.debug"

DEFAULT_LOG_DIR = Path("output/compliance_logs")

LOG_FORMAT = "%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_FILES = [
    "compliance_events.log",
    "performance_metrics.log",
    "warnings_errors.log",
    "debug_detail.log",
    "combined.log",
]

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

_LOGGING_CONFIGURED = False
_installed_handlers: List[logging.Handler] = []


def clear_logs(log_dir: Path) -> None:
    """
    Delete the log files written by ``setup_logging`` in ``log_dir``.

    Args:
        log_dir: Directory containing log files to clear
    """
    for name in LOG_FILES:
        log_file = log_dir / name
        if log_file.exists():
            try:
                log_file.unlink()
            except OSError as e:
                print(f"Warning: Could not delete {log_file}: {e}")


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
        mode="a",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _attach(logger_name: str, handler: logging.Handler, level: int) -> None:
    named = logging.getLogger(logger_name)
    for h in named.handlers[:]:
        named.removeHandler(h)
    named.setLevel(level)
    named.addHandler(handler)
    named.propagate = True
    _installed_handlers.append(handler)


def setup_logging(log_dir: Path, debug: bool = False, clear_existing: bool = True) -> None:
    """
    Configure structured logging for the application.

    Log files:
    - compliance_events.log: compliance calculations, grace periods (INFO+)
    - performance_metrics.log: timings and volumes (INFO+)
    - warnings_errors.log: warnings and errors from every logger (WARNING+)
    - debug_detail.log: detailed debug information (only if debug=True)
    - combined.log: all messages (INFO+)

    Calling it again is a no-op until ``reset_logging`` is called.

    Args:
        log_dir: Directory where log files will be stored
        debug: If True, enables debug logging and creates debug_detail.log
        clear_existing: If True, clears existing log files before starting
    """
    global _LOGGING_CONFIGURED

    if _LOGGING_CONFIGURED:
        return

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    if clear_existing:
        clear_logs(log_dir)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)

    file_formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    # Console only shows warnings and above; reports go to stdout
    console = logging.StreamHandler()
    console.setLevel(logging.WARNING)
    console.setFormatter(logging.Formatter("%(levelname)-8s %(message)s"))

    combined = _rotating_handler(log_dir / "combined.log", logging.INFO, file_formatter)
    warnings_errors = _rotating_handler(
        log_dir / "warnings_errors.log", logging.WARNING, file_formatter
    )
    for handler in (console, combined, warnings_errors):
        root_logger.addHandler(handler)
        _installed_handlers.append(handler)

    # Engine modules log under compliance_model.*, so the compliance file sees them all
    _attach(
        "compliance_model",
        _rotating_handler(log_dir / "compliance_events.log", logging.INFO, file_formatter),
        logging.DEBUG if debug else logging.INFO,
    )
    _attach(
        PERFORMANCE_LOGGER,
        _rotating_handler(log_dir / "performance_metrics.log", logging.INFO, file_formatter),
        logging.INFO,
    )
    if debug:
        _attach(
            DEBUG_LOGGER,
            _rotating_handler(log_dir / "debug_detail.log", logging.DEBUG, file_formatter),
            logging.DEBUG,
        )

    _LOGGING_CONFIGURED = True


def reset_logging() -> None:
    """Remove and close the handlers installed by ``setup_logging``."""
    global _LOGGING_CONFIGURED

    for handler in _installed_handlers:
        for name in (None, "compliance_model", PERFORMANCE_LOGGER, DEBUG_LOGGER):
            logging.getLogger(name).removeHandler(handler)
        handler.close()
    _installed_handlers.clear()
    _LOGGING_CONFIGURED = False


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a properly configured logger instance.

    Args:
        name: Logger name (e.g., __name__). If None, returns root logger.

    Returns:
        Configured logger instance
    """
    if not _LOGGING_CONFIGURED:
        setup_logging(DEFAULT_LOG_DIR, debug=False)
    return logging.getLogger(name)
