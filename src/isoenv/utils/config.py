"""Configuration utilities for isoenv."""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from rich.console import Console

console = Console(stderr=True)

CONFIG_DIR = Path.home() / ".isoenv"
CONFIG_FILE_YAML = CONFIG_DIR / "config.yaml"

# Default settings, overridable from the "settings" section of the config file
DEFAULT_SETTINGS = {
    "poll_interval_seconds": 5,
    "poll_max_attempts": 24,  # 24 x 5s = 2 minutes per operation
    "management_permission_set": "admin",
    "default_permission_sets": ["terraform-deployer"],
    "permission_set_dir": "permission-sets",
    "default_budget": 100,
    "budget_thresholds": [80, 90, 100],
    "throttle_retry_delay_seconds": 5,
    "sso_instance_arn": None,
    "identity_store_id": None,
}

DEFAULT_LOGGING_CONFIG = {
    "level": "WARNING",
    "file": None,
}


@dataclass(frozen=True)
class Settings:
    """Immutable run configuration passed explicitly to every ensurer and poller."""

    poll_interval_seconds: float = 5
    poll_max_attempts: int = 24
    management_permission_set: str = "admin"
    default_permission_sets: Tuple[str, ...] = ("terraform-deployer",)
    permission_set_dir: str = "permission-sets"
    default_budget: int = 100
    budget_thresholds: Tuple[int, ...] = (80, 90, 100)
    throttle_retry_delay_seconds: float = 5
    sso_instance_arn: Optional[str] = None
    identity_store_id: Optional[str] = None
    profile: Optional[str] = None
    region: Optional[str] = None

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with the non-None overrides applied."""
        values = {key: value for key, value in overrides.items() if value is not None}
        if not values:
            return self
        return replace(self, **values)


class Config:
    """Manages the isoenv YAML configuration file."""

    def __init__(self, config_file: Optional[Path] = None):
        """
        Initialize the configuration manager.

        Args:
            config_file: Path of the YAML file, defaults to ~/.isoenv/config.yaml
        """
        self.config_file = Path(config_file) if config_file else CONFIG_FILE_YAML
        self.config_data: Dict[str, Any] = {}
        self._config_loaded = False

    def _ensure_config_loaded(self):
        if not self._config_loaded:
            self._load_config()
            self._config_loaded = True

    def _load_config(self):
        """Load the configuration from the YAML file."""
        if not self.config_file.exists():
            self.config_data = {}
            return

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                self.config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            console.print(
                f"[red]Error: Configuration file {self.config_file} is not valid YAML: {e}[/red]"
            )
            self.config_data = {}
        except (OSError, UnicodeDecodeError) as e:
            console.print(f"[red]Error reading configuration file {self.config_file}: {e}[/red]")
            self.config_data = {}

        if not isinstance(self.config_data, dict):
            console.print(
                f"[yellow]Warning: Ignoring {self.config_file}, top level must be a mapping[/yellow]"
            )
            self.config_data = {}

    def save_config(self):
        """Save the configuration to the YAML file."""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            yaml.dump(self.config_data, f, default_flow_style=False, indent=2, sort_keys=False)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value with dot notation support.

        Args:
            key: Configuration key (supports dot notation like "settings.poll_interval_seconds")
            default: Default value if key is not found

        Returns:
            Configuration value or default
        """
        self._ensure_config_loaded()

        value: Any = self.config_data
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value

    def set(self, key: str, value: Any):
        """
        Set a configuration value with dot notation support and persist it.

        Args:
            key: Configuration key (supports dot notation)
            value: Value to set
        """
        self._ensure_config_loaded()

        parts = key.split(".")
        target = self.config_data
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        target[parts[-1]] = value
        self.save_config()

    def get_settings_config(self) -> Dict[str, Any]:
        """
        Get the settings section merged over the defaults, with environment overrides.

        Environment variables take precedence over the file:
            ISOENV_POLL_INTERVAL, ISOENV_POLL_MAX_ATTEMPTS, ISOENV_PERMISSION_SET_DIR,
            ISOENV_MANAGEMENT_PERMISSION_SET, ISOENV_DEFAULT_BUDGET

        Returns:
            Dictionary with the effective settings values
        """
        settings = DEFAULT_SETTINGS.copy()
        file_settings = self.get("settings", {}) or {}
        if isinstance(file_settings, dict):
            settings.update({k: v for k, v in file_settings.items() if k in DEFAULT_SETTINGS})

        settings["poll_interval_seconds"] = self._get_env_int(
            "ISOENV_POLL_INTERVAL", settings["poll_interval_seconds"]
        )
        settings["poll_max_attempts"] = self._get_env_int(
            "ISOENV_POLL_MAX_ATTEMPTS", settings["poll_max_attempts"]
        )
        settings["default_budget"] = self._get_env_int(
            "ISOENV_DEFAULT_BUDGET", settings["default_budget"]
        )
        settings["permission_set_dir"] = os.environ.get(
            "ISOENV_PERMISSION_SET_DIR", settings["permission_set_dir"]
        )
        settings["management_permission_set"] = os.environ.get(
            "ISOENV_MANAGEMENT_PERMISSION_SET", settings["management_permission_set"]
        )
        return settings

    def get_logging_config(self) -> Dict[str, Any]:
        logging_config = DEFAULT_LOGGING_CONFIG.copy()
        file_logging = self.get("logging", {}) or {}
        if isinstance(file_logging, dict):
            logging_config.update(file_logging)
        return logging_config

    def _get_env_int(self, env_var: str, default: int) -> int:
        """
        Get integer value from environment variable.

        Args:
            env_var: Environment variable name
            default: Default value if not set or invalid

        Returns:
            Integer value
        """
        value = os.environ.get(env_var)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            console.print(
                f"[yellow]Warning: Invalid integer value for {env_var}: {value}. Using default: {default}[/yellow]"
            )
            return default


def load_settings(
    config: Optional[Config] = None,
    profile: Optional[str] = None,
    region: Optional[str] = None,
) -> Settings:
    """
    Build the immutable Settings for one command invocation.

    Precedence, lowest first: built-in defaults, the config file, environment
    variables, then the command's --profile and --region options.

    Args:
        config: Config instance, a default one is created when omitted
        profile: AWS profile override
        region: AWS region override

    Returns:
        Settings instance
    """
    config = config or Config()
    values = config.get_settings_config()

    return Settings(
        poll_interval_seconds=values["poll_interval_seconds"],
        poll_max_attempts=values["poll_max_attempts"],
        management_permission_set=values["management_permission_set"],
        default_permission_sets=tuple(values["default_permission_sets"] or ()),
        permission_set_dir=values["permission_set_dir"],
        default_budget=values["default_budget"],
        budget_thresholds=tuple(values["budget_thresholds"]),
        throttle_retry_delay_seconds=values["throttle_retry_delay_seconds"],
        sso_instance_arn=values["sso_instance_arn"],
        identity_store_id=values["identity_store_id"],
        profile=profile or config.get("default_profile"),
        region=region or config.get("default_region"),
    )
