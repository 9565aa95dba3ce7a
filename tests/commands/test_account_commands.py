"""Tests for the account commands."""

from unittest.mock import patch

import pytest

from src.isoenv.commands.account import app

BUILD_CONTEXT = "src.isoenv.commands.account.build_context"


@pytest.fixture
def invoke(runner, build_context):
    def run(*args):
        with patch(BUILD_CONTEXT, side_effect=build_context):
            return runner.invoke(app, list(args))

    return run


def test_create_account(invoke, provider):
    result = invoke("create", "--name", "alice", "--email", "alice+alice-aws@company.com")

    assert result.exit_code == 0, result.output
    assert "Account created successfully" in result.output
    assert "222222222222" in result.output
    assert provider.calls_to("create_account") == [("alice", "alice+alice-aws@company.com")]


def test_create_existing_account_is_reported(invoke, provider):
    provider.add_account("alice", "333333333333")

    result = invoke("create", "-n", "alice", "-e", "alice@company.com")

    assert result.exit_code == 0, result.output
    assert "already exists" in result.output
    assert "333333333333" in result.output
    assert provider.calls_to("create_account") == []


def test_create_account_rejects_bad_email(invoke, provider):
    result = invoke("create", "-n", "alice", "-e", "not-an-email")

    assert result.exit_code == 1
    assert provider.calls == []


def test_create_account_failure_exits_two(invoke, provider):
    provider.statuses["account"] = ["FAILED"]
    provider.failure_reasons["account"] = "ACCOUNT_LIMIT_EXCEEDED"

    result = invoke("create", "-n", "alice", "-e", "alice@company.com")

    assert result.exit_code == 2
    assert "ACCOUNT_LIMIT_EXCEEDED" in result.output


def test_get_id(invoke, provider):
    provider.add_account("alice", "333333333333")

    result = invoke("get-id", "--name", "alice")

    assert result.exit_code == 0, result.output
    assert result.output.strip() == "333333333333"


def test_get_id_ignores_suspended_accounts(invoke, provider):
    provider.add_account("alice", "333333333333", status="SUSPENDED")

    result = invoke("get-id", "--name", "alice")

    assert result.exit_code == 1
    assert "not found" in result.output


def test_list_accounts(invoke, provider):
    provider.add_account("alice", "333333333333")
    provider.add_account("bob", "444444444444", status="SUSPENDED")

    result = invoke("list")

    assert result.exit_code == 0, result.output
    assert "Active Accounts" in result.output
    assert "333333333333" in result.output
    assert "444444444444" not in result.output


def test_list_without_accounts(invoke):
    result = invoke("list")

    assert result.exit_code == 0
    assert "No active member accounts" in result.output


def test_check_active_account(invoke, provider):
    provider.add_account("alice", "333333333333")

    result = invoke("check", "--account-id", "333333333333")

    assert result.exit_code == 0, result.output
    assert "exists and is active" in result.output


def test_check_missing_account(invoke):
    result = invoke("check", "--account-id", "999999999999")

    assert result.exit_code == 1
    assert "not found or not active" in result.output


def test_check_invalid_account_id(invoke, provider):
    result = invoke("check", "--account-id", "12345")

    assert result.exit_code == 1
    assert provider.calls == []
