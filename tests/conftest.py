"""Shared fixtures for isoenv tests."""

import pytest

from src.isoenv.core.permission_set_config import PermissionSetCatalog
from src.isoenv.utils.config import Settings
from tests.fixtures.fake_provider import FakeProvider
from tests.fixtures.permission_sets import ADMIN_POLICY, TERRAFORM_POLICY, write_permission_set


@pytest.fixture
def permission_set_dir(tmp_path):
    """A catalog directory with admin, dev and terraform-deployer definitions."""
    directory = tmp_path / "permission-sets"
    directory.mkdir()
    write_permission_set(directory, "admin", ADMIN_POLICY, session_duration="PT1H")
    write_permission_set(directory, "dev", TERRAFORM_POLICY, managed_policies=["ReadOnlyAccess"])
    write_permission_set(directory, "terraform-deployer", TERRAFORM_POLICY)
    return directory


@pytest.fixture
def catalog(permission_set_dir):
    return PermissionSetCatalog(permission_set_dir)


@pytest.fixture
def settings(permission_set_dir):
    return Settings(
        poll_interval_seconds=5,
        poll_max_attempts=24,
        permission_set_dir=str(permission_set_dir),
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def sleeps():
    """A recording sleep function; ``sleeps.calls`` holds every requested delay."""

    class Recorder:
        def __init__(self):
            self.calls = []

        def __call__(self, seconds):
            self.calls.append(seconds)

    return Recorder()
