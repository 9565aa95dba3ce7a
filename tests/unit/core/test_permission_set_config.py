"""Tests for loading local permission set definitions."""

import json

import pytest

from src.isoenv.core.permission_set_config import PermissionSetCatalog, load_permission_set_config
from src.isoenv.utils.error_handler import ValidationError
from tests.fixtures.permission_sets import TERRAFORM_POLICY, write_permission_set


def test_load_definition_with_policy_beside_config(tmp_path):
    config_file = write_permission_set(
        tmp_path, "terraform-deployer", TERRAFORM_POLICY, managed_policies=["ReadOnlyAccess"]
    )

    config = load_permission_set_config(config_file)

    assert config.name == "terraform-deployer"
    assert config.session_duration == "PT4H"
    assert config.inline_policy == TERRAFORM_POLICY
    assert config.managed_policy_arns == ["arn:aws:iam::aws:policy/ReadOnlyAccess"]
    assert config.source_file == str(config_file)


def test_full_arns_are_kept(tmp_path):
    arn = "arn:aws:iam::123456789012:policy/Custom"
    config = load_permission_set_config(
        write_permission_set(tmp_path, "custom", TERRAFORM_POLICY, managed_policies=[arn])
    )
    assert config.managed_policy_arns == [arn]


def test_absolute_policy_path(tmp_path):
    policy_dir = tmp_path / "policies"
    policy_dir.mkdir()
    policy_file = policy_dir / "p.json"
    policy_file.write_text(json.dumps(TERRAFORM_POLICY))
    config_file = write_permission_set(
        tmp_path, "abs", TERRAFORM_POLICY, inline_policy_file=str(policy_file)
    )

    assert load_permission_set_config(config_file).inline_policy_file == str(policy_file)


def test_policy_path_falls_back_to_working_directory(tmp_path, monkeypatch):
    config_dir = tmp_path / "defs"
    config_dir.mkdir()
    (tmp_path / "shared-policy.json").write_text(json.dumps(TERRAFORM_POLICY))
    config_file = config_dir / "ops.json"
    config_file.write_text(
        json.dumps(
            {
                "name": "ops",
                "description": "Ops",
                "session_duration": "PT2H",
                "inline_policy_file": "shared-policy.json",
            }
        )
    )
    monkeypatch.chdir(tmp_path)

    assert load_permission_set_config(config_file).inline_policy == TERRAFORM_POLICY


def test_missing_config_file(tmp_path):
    with pytest.raises(ValidationError, match="Config file not found"):
        load_permission_set_config(tmp_path / "missing.json")


def test_missing_policy_file(tmp_path):
    config_file = write_permission_set(
        tmp_path, "broken", TERRAFORM_POLICY, inline_policy_file="nowhere.json"
    )
    with pytest.raises(ValidationError, match="Inline policy file not found"):
        load_permission_set_config(config_file)


@pytest.mark.parametrize("missing", ["name", "description", "session_duration", "inline_policy_file"])
def test_required_fields(tmp_path, missing):
    config_file = write_permission_set(tmp_path, "dev", TERRAFORM_POLICY)
    data = json.loads(config_file.read_text())
    del data[missing]
    config_file.write_text(json.dumps(data))

    with pytest.raises(ValidationError, match=missing):
        load_permission_set_config(config_file)


def test_invalid_session_duration(tmp_path):
    config_file = write_permission_set(tmp_path, "dev", TERRAFORM_POLICY, session_duration="4 hours")
    with pytest.raises(ValidationError, match="session duration"):
        load_permission_set_config(config_file)


def test_invalid_json(tmp_path):
    config_file = tmp_path / "dev.json"
    config_file.write_text("{")
    with pytest.raises(ValidationError, match="Invalid JSON"):
        load_permission_set_config(config_file)


def test_catalog_indexes_by_stem_and_name(tmp_path):
    write_permission_set(tmp_path, "dev", TERRAFORM_POLICY)
    renamed = tmp_path / "renamed.json"
    data = json.loads((tmp_path / "dev.json").read_text())
    data["name"] = "developers"
    renamed.write_text(json.dumps(data))

    catalog = PermissionSetCatalog(tmp_path)

    assert catalog.get("dev").name == "dev"
    assert catalog.get("renamed").name == "developers"
    assert catalog.get("developers").name == "developers"
    assert catalog.get("unknown") is None
    assert catalog.names() == ["dev", "developers"]


def test_catalog_for_missing_directory(tmp_path):
    catalog = PermissionSetCatalog(tmp_path / "nope")
    assert catalog.get("dev") is None
    assert catalog.names() == []


def test_file_that_is_not_utf8(tmp_path):
    config_file = tmp_path / "dev.json"
    config_file.write_bytes(b"\xff\xfe{}")
    with pytest.raises(ValidationError, match="not valid UTF-8"):
        load_permission_set_config(config_file)


def test_catalog_skips_broken_definitions_until_requested(tmp_path):
    write_permission_set(tmp_path, "dev", TERRAFORM_POLICY)
    (tmp_path / "broken.json").write_text(
        json.dumps({"name": "broken", "description": "x", "inline_policy_file": "nope.json"})
    )
    (tmp_path / "garbled.json").write_bytes(b"\xff\xfe")

    catalog = PermissionSetCatalog(tmp_path)

    assert catalog.get("dev").name == "dev"
    assert catalog.names() == ["dev"]
    with pytest.raises(ValidationError, match="session_duration"):
        catalog.get("broken")
    with pytest.raises(ValidationError, match="not valid UTF-8"):
        catalog.get("garbled")
