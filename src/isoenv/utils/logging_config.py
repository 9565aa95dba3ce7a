"""Logging configuration for isoenv.

Every isoenv module logs through ``logging.getLogger(__name__)``. Handlers are
attached to the ``isoenv`` logger only: a colored stderr handler and, when
configured, a rotating log file. Access key IDs and secrets are redacted
before a record reaches either handler.
"""

import logging
import logging.handlers
import os
import re
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

ROOT_LOGGER_NAME = "isoenv"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "[%(asctime)s] %(levelname)-8s - %(name)s - %(message)s"
FILE_FORMAT = "[%(asctime)s] %(levelname)-8s - %(name)s - %(funcName)s:%(lineno)d - %(message)s"
REDACTED = "[REDACTED]"
THIRD_PARTY_LOGGERS = ("boto3", "botocore", "urllib3")


class LogLevel(str, Enum):
    """Log levels accepted in the ``logging.level`` config key."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class LoggingConfig:
    """Handlers and levels of one isoenv run."""

    level: LogLevel = LogLevel.WARNING
    enable_console_logging: bool = True
    enable_file_logging: bool = False
    log_file: Optional[str] = None
    max_file_size_mb: int = 10
    backup_count: int = 5
    console_colors: bool = True
    log_aws_requests: bool = False
    sensitive_data_patterns: List[str] = field(
        default_factory=lambda: [
            r"AKIA[0-9A-Z]{16}",
            r"ASIA[0-9A-Z]{16}",
            r"(?i)(secret_?access_?key|session_?token)\s*[:=]\s*\S+",
        ]
    )


class SensitiveDataFilter(logging.Filter):
    """Redact credentials in the message and arguments of every record."""

    def __init__(self, patterns: List[str]) -> None:
        super().__init__()
        self.patterns = [re.compile(pattern) for pattern in patterns]

    def redact(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        for pattern in self.patterns:
            value = pattern.sub(REDACTED, value)
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self.redact(record.msg)
        if isinstance(record.args, dict):
            record.args = {key: self.redact(value) for key, value in record.args.items()}
        elif record.args:
            record.args = tuple(self.redact(arg) for arg in record.args)
        return True


class ColoredConsoleFormatter(logging.Formatter):
    """Console formatter that colors the level name on a capable terminal."""

    LEVEL_COLORS = {
        "DEBUG": "36",
        "INFO": "34",
        "WARNING": "33",
        "ERROR": "31",
        "CRITICAL": "35",
    }

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__(CONSOLE_FORMAT, datefmt=DATE_FORMAT)
        self.use_colors = use_colors and self._supports_color()

    @staticmethod
    def _supports_color() -> bool:
        isatty = getattr(sys.stderr, "isatty", None)
        return bool(isatty and isatty()) and os.environ.get("TERM") != "dumb"

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        code = self.LEVEL_COLORS.get(record.levelname)
        if not (self.use_colors and code):
            return text
        label = f"{record.levelname:<8}"
        return text.replace(label, f"\033[{code}m{label}\033[0m", 1)


class LoggingManager:
    """
    Attach the configured handlers to the ``isoenv`` logger.

    The root logger is left alone, so programs embedding isoenv keep control
    of their own logging.
    """

    def __init__(self, config: Optional[LoggingConfig] = None):
        self.config = config or LoggingConfig()
        self._configured = False

    def setup_logging(self) -> logging.Logger:
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        if self._configured:
            return logger

        level = logging.getLevelName(LogLevel(self.config.level).value)
        logger.setLevel(level)
        logger.propagate = False
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

        handlers: List[logging.Handler] = []
        if self.config.enable_console_logging:
            handlers.append(self._console_handler())
        if self.config.enable_file_logging and self.config.log_file:
            handlers.append(self._file_handler())

        redaction = SensitiveDataFilter(self.config.sensitive_data_patterns)
        for handler in handlers:
            handler.setLevel(level)
            if self.config.sensitive_data_patterns:
                handler.addFilter(redaction)
            logger.addHandler(handler)

        third_party_level = logging.DEBUG if self.config.log_aws_requests else logging.WARNING
        for name in THIRD_PARTY_LOGGERS:
            logging.getLogger(name).setLevel(third_party_level)

        self._configured = True
        return logger

    def _console_handler(self) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        if self.config.console_colors:
            handler.setFormatter(ColoredConsoleFormatter())
        else:
            handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
        return handler

    def _file_handler(self) -> logging.Handler:
        path = Path(str(self.config.log_file)).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            filename=str(path),
            maxBytes=self.config.max_file_size_mb * 1024 * 1024,
            backupCount=self.config.backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        return handler


def setup_logging(
    verbose: bool = False,
    log_file: Optional[str] = None,
    level: Optional[str] = None,
) -> logging.Logger:
    """
    Configure isoenv logging for a command line run.

    Args:
        verbose: Lower the level to DEBUG
        log_file: Optional path of a rotating log file
        level: Level name from the config file, used when not verbose

    Returns:
        The configured ``isoenv`` logger
    """
    log_level = LogLevel.DEBUG if verbose else LogLevel((level or "WARNING").upper())
    config = LoggingConfig(
        level=log_level,
        enable_file_logging=bool(log_file),
        log_file=log_file,
    )
    return LoggingManager(config).setup_logging()
