"""Loading and validation of local permission set definitions.

A permission set definition is a JSON file::

    {
        "name": "terraform-deployer",
        "description": "Deploy infrastructure with Terraform",
        "session_duration": "PT4H",
        "inline_policy_file": "terraform-deployer-policy.json",
        "managed_policies": ["ReadOnlyAccess"]
    }

Everything is validated before any AWS call is made.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..utils.error_handler import ValidationError
from ..utils.models import PermissionSetConfig
from ..utils.validators import validate_session_duration

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "description", "session_duration", "inline_policy_file")


def _read_json(path: Path, kind: str) -> Any:
    if not path.is_file():
        raise ValidationError(f"{kind} not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {kind.lower()}: {path} ({e})") from e
    except UnicodeDecodeError as e:
        raise ValidationError(f"{kind} is not valid UTF-8: {path}") from e


def _resolve_policy_path(config_path: Path, policy_file: str) -> Path:
    policy_path = Path(policy_file).expanduser()
    if policy_path.is_absolute():
        return policy_path
    beside_config = config_path.parent / policy_path
    if beside_config.exists():
        return beside_config
    return Path.cwd() / policy_path


def load_permission_set_config(config_file: Union[str, Path]) -> PermissionSetConfig:
    """
    Read and validate a permission set definition.

    The inline policy path is taken as-is when absolute, otherwise it is
    looked up next to the config file first and then in the working directory.

    Args:
        config_file: Path of the JSON definition

    Returns:
        PermissionSetConfig with the inline policy document loaded

    Raises:
        ValidationError: If either file is missing, not JSON, or a required key is absent
    """
    config_path = Path(config_file).expanduser()
    data = _read_json(config_path, "Config file")
    if not isinstance(data, dict):
        raise ValidationError(f"Config file must contain a JSON object: {config_path}")

    for field_name in REQUIRED_FIELDS:
        value = data.get(field_name)
        if value is None or value == "":
            raise ValidationError(f"Missing required field in config: {field_name}")

    validate_session_duration(data["session_duration"])

    managed_policies = data.get("managed_policies") or []
    if not isinstance(managed_policies, list) or not all(
        isinstance(item, str) for item in managed_policies
    ):
        raise ValidationError("managed_policies must be a list of policy names or ARNs")

    policy_path = _resolve_policy_path(config_path, data["inline_policy_file"])
    inline_policy = _read_json(policy_path, "Inline policy file")
    if not isinstance(inline_policy, dict):
        raise ValidationError(f"Inline policy file must contain a JSON object: {policy_path}")

    return PermissionSetConfig(
        name=data["name"],
        description=data["description"],
        session_duration=data["session_duration"],
        inline_policy=inline_policy,
        inline_policy_file=str(policy_path),
        managed_policies=list(managed_policies),
        source_file=str(config_path),
    )


class PermissionSetCatalog:
    """
    The permission set definitions found in one directory, keyed by file stem and by name.

    A broken definition is only an error when that permission set is asked for.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory).expanduser()
        self._configs: Optional[Dict[str, PermissionSetConfig]] = None
        self._errors: Dict[str, ValidationError] = {}

    def _load(self) -> Dict[str, PermissionSetConfig]:
        if self._configs is not None:
            return self._configs

        configs: Dict[str, PermissionSetConfig] = {}
        if self.directory.is_dir():
            for path in sorted(self.directory.glob("*.json")):
                data = None
                try:
                    data = _read_json(path, "Config file")
                    # Inline policy documents live in the same directory; skip them
                    if not isinstance(data, dict) or "inline_policy_file" not in data:
                        continue
                    config = load_permission_set_config(path)
                except ValidationError as e:
                    logger.warning(f"Skipping invalid permission set definition {path}: {e}")
                    self._errors[path.stem] = e
                    if isinstance(data, dict) and isinstance(data.get("name"), str):
                        self._errors.setdefault(data["name"], e)
                    continue
                configs[path.stem] = config
                configs.setdefault(config.name, config)
        else:
            logger.debug(f"Permission set directory {self.directory} does not exist")

        self._configs = configs
        return configs

    def get(self, name: str) -> Optional[PermissionSetConfig]:
        """
        Look up a definition by file stem or name.

        Raises:
            ValidationError: When the matching definition file is invalid
        """
        config = self._load().get(name)
        if config is None and name in self._errors:
            raise self._errors[name]
        return config

    def names(self) -> List[str]:
        return sorted({config.name for config in self._load().values()})
