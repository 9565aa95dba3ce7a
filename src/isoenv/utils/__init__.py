"""Core utility modules for isoenv."""

# Configuration utilities
from .config import CONFIG_DIR, CONFIG_FILE_YAML, Config, Settings, load_settings

# Error handling utilities
from .error_handler import (
    IsoEnvError,
    OperationFailedError,
    OperationTimeoutError,
    PreconditionError,
    ProviderError,
    ValidationError,
)
from .logging_config import LoggingConfig, LoggingManager, setup_logging

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE_YAML",
    "Config",
    "Settings",
    "load_settings",
    "IsoEnvError",
    "OperationFailedError",
    "OperationTimeoutError",
    "PreconditionError",
    "ProviderError",
    "ValidationError",
    "LoggingConfig",
    "LoggingManager",
    "setup_logging",
]
