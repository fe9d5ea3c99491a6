"""
Logging module for the Kubernetes workload migration tool
"""

import json
import logging
import os
from typing import Any, Optional

LOGGER_NAME = "kube_migrator"

LOG_FORMATS = ("text", "json")

# Attributes every LogRecord carries; anything else came in through ``extra``
_STANDARD_RECORD_ATTRS = frozenset(
    (
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "id",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    )
)


class JsonFormatter(logging.Formatter):
    def format(self, record):
        data = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        # Include any additional attributes from the record
        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS:
                data[key] = value
        if record.exc_info:
            data["error"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


class EnhancedFormatter(logging.Formatter):
    """
    Text formatter that supports a verbose mode and appends the phase and
    resource context carried by a record.
    """

    def __init__(self, fmt=None, datefmt=None, style="%", verbose=False):
        # Use more detailed format for verbose mode
        if verbose:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s"
        elif not fmt:
            fmt = "%(asctime)s - %(levelname)s - %(message)s"

        super().__init__(fmt, datefmt, style)

    def format(self, record):
        result = super().format(record)

        context = []
        for key in ("phase", "cluster", "namespace", "resource"):
            value = getattr(record, key, None)
            if value:
                context.append(f"{key}={value}")
        if context:
            result += f" ({', '.join(context)})"

        return result


def _build_formatter(log_format: str, verbose: bool = False) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter()
    return EnhancedFormatter(verbose=verbose)


def setup_main_log_file(
    output_dir: str, log_format: str = "text"
) -> logging.FileHandler:
    """
    Set up a file handler for the run log.

    Args:
        output_dir: The run output directory path
        log_format: Either "text" or "json"

    Returns:
        The file handler for the run log file
    """
    os.makedirs(output_dir, exist_ok=True)

    log_file = os.path.join(output_dir, "migration.log")

    file_handler = logging.FileHandler(log_file, mode="w")
    file_handler.setLevel(logging.DEBUG)  # Always use DEBUG level for file handlers
    file_handler.setFormatter(_build_formatter(log_format, verbose=True))

    logger = logging.getLogger(LOGGER_NAME)
    logger.addHandler(file_handler)

    logger.info(f"Run log file created at: {log_file}")
    return file_handler


def setup_logger(
    verbose: bool = False,
    log_format: str = "text",
    output_dir: Optional[str] = None,
) -> logging.Logger:
    """
    Set up and return the logger with appropriate formatting.

    Args:
        verbose: If True, set console handler to DEBUG level; otherwise INFO level
        log_format: Either "text" or "json"
        output_dir: Optional output directory for the run log file

    Returns:
        Configured logger instance
    """
    if log_format not in LOG_FORMATS:
        raise ValueError(f"Unsupported log format: {log_format}")

    logger = logging.getLogger(LOGGER_NAME)

    # Clear any existing handlers to prevent duplicate messages
    if logger.handlers:
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    logger.setLevel(logging.DEBUG)  # Always set logger to DEBUG to capture all logs

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(_build_formatter(log_format, verbose=verbose))
    logger.addHandler(console_handler)

    if output_dir:
        setup_main_log_file(output_dir, log_format)

    return logger


def log_with_context(level: int, message: str, **kwargs: Any) -> None:
    """
    Log a message with additional context information.

    Args:
        level: The logging level (e.g., logging.INFO)
        message: The log message
        **kwargs: Additional context to include in the log record
    """
    # Filter out None values from kwargs
    filtered_kwargs = {k: v for k, v in kwargs.items() if v is not None}

    # exc_info is a logging keyword, not record context
    exc_info = filtered_kwargs.pop("exc_info", None)

    logger = logging.getLogger(LOGGER_NAME)
    logger.log(level, message, extra=filtered_kwargs, exc_info=exc_info)


def get_logger():
    """Get the kube_migrator logger, creating it with defaults if needed."""
    migrator_logger = logging.getLogger(LOGGER_NAME)
    if not migrator_logger.handlers:
        # If no handlers, set up a basic logger
        migrator_logger.setLevel(logging.INFO)
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)
        handler.setFormatter(EnhancedFormatter())
        migrator_logger.addHandler(handler)
    return migrator_logger


# Module logger - will be properly initialized when setup_logger is called
logger = get_logger()
