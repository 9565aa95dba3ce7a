"""Permission set definitions for isoenv tests."""

import json
from pathlib import Path

TERRAFORM_POLICY = {
    "Version": "2012-10-17",
    "Statement": [{"Effect": "Allow", "Action": ["s3:*", "dynamodb:*"], "Resource": "*"}],
}
ADMIN_POLICY = {
    "Version": "2012-10-17",
    "Statement": [{"Effect": "Allow", "Action": "*", "Resource": "*"}],
}


def write_permission_set(directory: Path, name: str, policy: dict, **overrides) -> Path:
    """Write a permission set definition and its inline policy into ``directory``."""
    policy_file = directory / f"{name}-policy.json"
    policy_file.write_text(json.dumps(policy))
    definition = {
        "name": name,
        "description": f"{name} access",
        "session_duration": "PT4H",
        "inline_policy_file": policy_file.name,
        "managed_policies": [],
    }
    definition.update(overrides)
    config_file = directory / f"{name}.json"
    config_file.write_text(json.dumps(definition))
    return config_file
