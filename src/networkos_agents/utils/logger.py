#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Logging Configuration Module

Provides the configurable logging setup used across the agent core.
Supports console and rotating file handlers, log levels from the environment,
and an optional JSON formatter for log aggregation.
"""

import os
import sys
import json
import logging
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from typing import Optional, Dict, Any, Union

# Default log levels
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# Environment variable names
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_LOG_FILE_PATH = "LOG_FILE_PATH"
ENV_LOG_JSON = "LOG_JSON"

# Log level mapping
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Registry to avoid attaching duplicate handlers
_loggers: Dict[str, logging.Logger] = {}


def _resolve_level(value: Optional[Union[int, str]], default: int) -> int:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    if value.upper() in LOG_LEVELS:
        return LOG_LEVELS[value.upper()]
    try:
        return int(value)
    except ValueError:
        return default


class LoggerConfig:
    """Configuration class for logger settings."""

    def __init__(
        self,
        name: str = "networkos_agents",
        console_level: Optional[Union[int, str]] = None,
        file_level: Optional[Union[int, str]] = None,
        log_file: Optional[str] = None,
        rotating: bool = True,
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        daily_rotation: bool = False,
        format_string: Optional[str] = None,
        json_logs: Optional[bool] = None,
        propagate: bool = False,
    ):
        """
        Initialize logger configuration.

        Args:
            name: Logger name
            console_level: Console logging level (int or string)
            file_level: File logging level (int or string)
            log_file: Path to log file (falls back to LOG_FILE_PATH, None for no file logging)
            rotating: Whether to use rotating file handler
            max_bytes: Maximum file size for rotating handler
            backup_count: Number of backup files to keep
            daily_rotation: Whether to rotate logs daily instead of by size
            format_string: Custom log format string
            json_logs: Whether to format logs as JSON (falls back to LOG_JSON)
            propagate: Whether to propagate to parent loggers
        """
        self.name = name

        env_level = os.environ.get(ENV_LOG_LEVEL)
        self.console_level = _resolve_level(
            console_level if console_level is not None else env_level,
            DEFAULT_CONSOLE_LEVEL,
        )
        self.file_level = _resolve_level(
            file_level if file_level is not None else env_level,
            DEFAULT_FILE_LEVEL,
        )

        # File logging is opt-in: the package may live in a read-only site-packages
        self.log_file = log_file or os.environ.get(ENV_LOG_FILE_PATH) or None

        self.rotating = rotating
        self.max_bytes = max_bytes
        self.backup_count = backup_count
        self.daily_rotation = daily_rotation

        if format_string:
            self.format_string = format_string
        else:
            self.format_string = "%(asctime)s | %(levelname)s | %(name)s | %(filename)s:%(lineno)d | %(message)s"

        if json_logs is None:
            json_logs = os.environ.get(ENV_LOG_JSON, "false").lower() == "true"
        self.json_logs = json_logs
        self.propagate = propagate


class JsonFormatter(logging.Formatter):
    """
    Formatter that outputs JSON strings after parsing the log record.

    Keeps every record in one consistent, machine-readable shape.
    """

    def __init__(
        self,
        fmt_dict: Optional[Dict[str, Any]] = None,
        time_format: str = "%Y-%m-%d %H:%M:%S",
    ):
        """
        Initialize JSON formatter.

        Args:
            fmt_dict: Mapping of output keys to LogRecord attribute names
            time_format: Format string for timestamps
        """
        super().__init__()
        self.fmt_dict = fmt_dict or {
            "timestamp": "asctime",
            "level": "levelname",
            "name": "name",
            "module": "module",
            "function": "funcName",
            "line": "lineno",
            "message": "message",
        }
        self.time_format = time_format

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the specified record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON string representation of the log record
        """
        record.asctime = self.formatTime(record, self.time_format)
        record.message = record.getMessage()

        log_record = {}
        for key, value in self.fmt_dict.items():
            if hasattr(record, value):
                log_record[key] = getattr(record, value)

        # Structured extras attached via log_agent_event
        for extra_key in ("agent", "event_type", "run_id", "step"):
            if hasattr(record, extra_key):
                log_record[extra_key] = getattr(record, extra_key)

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record, default=str)


def configure_logger(config: Optional[LoggerConfig] = None) -> logging.Logger:
    """
    Configure a logger with the specified settings.

    Args:
        config: Logger configuration (or None for default)

    Returns:
        Configured logger
    """
    if config is None:
        config = LoggerConfig()

    if config.name in _loggers:
        return _loggers[config.name]

    logger = logging.getLogger(config.name)
    logger.setLevel(min(config.console_level, config.file_level))
    logger.propagate = config.propagate

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if config.json_logs:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(config.format_string)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(config.console_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if config.log_file:
        os.makedirs(os.path.dirname(os.path.abspath(config.log_file)), exist_ok=True)

        if config.daily_rotation:
            file_handler: logging.Handler = TimedRotatingFileHandler(
                config.log_file,
                when="midnight",
                backupCount=config.backup_count,
                encoding="utf-8"
            )
        elif config.rotating:
            file_handler = RotatingFileHandler(
                config.log_file,
                maxBytes=config.max_bytes,
                backupCount=config.backup_count,
                encoding="utf-8"
            )
        else:
            file_handler = logging.FileHandler(config.log_file, encoding="utf-8")

        file_handler.setLevel(config.file_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    _loggers[config.name] = logger

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger by name.

    Loggers inside the package are children of the ``networkos_agents`` logger,
    which owns the handlers; they propagate to it instead of getting their own.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    if name in _loggers:
        return _loggers[name]

    root_name = LoggerConfig().name
    if name != root_name and name.startswith(root_name + "."):
        configure_logger(LoggerConfig(name=root_name))
        logger = logging.getLogger(name)
        logger.propagate = True
        _loggers[name] = logger
        return logger

    return configure_logger(LoggerConfig(name=name))


def set_log_level(level: Union[int, str], name: str = "networkos_agents") -> None:
    """Change the level of a configured logger and its handlers."""
    resolved = _resolve_level(level, DEFAULT_CONSOLE_LEVEL)
    logger = get_logger(name)
    logger.setLevel(resolved)
    for handler in logger.handlers:
        handler.setLevel(resolved)


def log_agent_event(
    agent: str,
    event_type: str,
    message: str,
    level: int = logging.INFO,
    **extra: Any,
) -> None:
    """
    Log an agent lifecycle event (step start, step failure, termination, ...).

    Args:
        agent: Agent or capability name
        event_type: Type of event (start, error, complete, etc.)
        message: Event description
        level: Logging level
        **extra: Structured fields (run_id, step) attached to the record
    """
    logger = get_logger("networkos_agents.agents")
    logger.log(
        level,
        f"[{agent}] [{event_type}] {message}",
        extra={"agent": agent, "event_type": event_type, **extra},
    )


def mask_value(value: str) -> str:
    """Mask all but the first and last character of a secret."""
    if len(value) > 6:
        return value[0] + "*" * (len(value) - 2) + value[-1]
    return "*" * len(value)


def log_sensitive(logger: logging.Logger, level: int, message: str, **sensitive_data: Any) -> None:
    """
    Log a message while masking sensitive data.

    Args:
        logger: Logger to use
        level: Logging level
        message: Message to log
        sensitive_data: Keys and values to mask in the message
    """
    masked_message = message
    for value in sensitive_data.values():
        if value and isinstance(value, str):
            masked_message = masked_message.replace(value, mask_value(value))

    logger.log(level, masked_message)
