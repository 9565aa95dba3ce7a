"""Tests for the user commands."""

from unittest.mock import patch

import pytest

from src.isoenv.commands.user import app
from tests.fixtures.fake_provider import MANAGEMENT_ACCOUNT_ID

BUILD_CONTEXT = "src.isoenv.commands.user.build_context"


@pytest.fixture
def invoke(runner, build_context):
    def run(*args):
        with patch(BUILD_CONTEXT, side_effect=build_context):
            return runner.invoke(app, list(args))

    return run


def test_create_user_derives_names(invoke, provider):
    result = invoke("create", "--username", "alice-dev", "--email", "alice@company.com")

    assert result.exit_code == 0, result.output
    assert "created" in result.output
    [(_, username, display_name, given, family, email)] = provider.calls_to("create_user")
    assert (username, display_name, given, family, email) == (
        "alice-dev",
        "alice dev",
        "alice",
        "dev",
        "alice@company.com",
    )


def test_create_existing_user(invoke, provider):
    provider.add_user("alice", "alice@company.com")

    result = invoke("create", "-u", "alice", "-e", "alice@company.com")

    assert result.exit_code == 0, result.output
    assert "already exists" in result.output
    assert provider.calls_to("create_user") == []


def test_create_user_with_permission_set(invoke, provider):
    ps_arn = provider.add_permission_set("dev")

    result = invoke("create", "-u", "alice", "-e", "alice@company.com", "--permission-set-name", "dev")

    assert result.exit_code == 0, result.output
    assert "assigned" in result.output
    [assignment] = provider.assignments
    assert assignment["AccountId"] == MANAGEMENT_ACCOUNT_ID
    assert assignment["PermissionSetArn"] == ps_arn


def test_create_user_with_unknown_permission_set(invoke, provider):
    result = invoke("create", "-u", "alice", "-e", "alice@company.com", "--permission-set-name", "nope")

    assert result.exit_code == 1
    assert provider.calls_to("create_user") == []


def test_get_id(invoke, provider):
    provider.add_user("alice", user_id="user-42")

    result = invoke("get-id", "--username", "alice")

    assert result.exit_code == 0, result.output
    assert result.output.strip() == "user-42"


def test_list_users(invoke, provider):
    provider.add_user("alice", "alice@company.com")
    provider.add_user("bob", "bob@company.com")

    result = invoke("list")

    assert result.exit_code == 0, result.output
    assert "Total: 2" in result.output
    assert "bob" in result.output


def test_show_user(invoke, provider):
    provider.add_user("alice", "alice@company.com")

    result = invoke("show", "-u", "alice")

    assert result.exit_code == 0, result.output
    assert "alice@company.com" in result.output


def test_check_missing_user_exits_one(invoke):
    result = invoke("check", "--username", "ghost")

    assert result.exit_code == 1
    assert "not found" in result.output


def test_delete_without_yes_is_cancelled(invoke, provider):
    provider.add_user("alice")

    result = invoke("delete", "--username", "alice")

    assert result.exit_code == 0
    assert "Cancelled" in result.output
    assert len(provider.users) == 1


def test_delete_with_yes(invoke, provider):
    provider.add_user("alice")
    ps_arn = provider.add_permission_set("dev")
    assignment = {
        "AccountId": "222222222222",
        "PermissionSetArn": ps_arn,
        "PrincipalId": "user-0001",
        "PrincipalType": "USER",
    }
    provider.assignments.append(assignment)

    result = invoke("delete", "--username", "alice", "--yes")

    assert result.exit_code == 0, result.output
    assert "deleted" in result.output
    assert provider.users == {}
    assert provider.assignments == [assignment]
