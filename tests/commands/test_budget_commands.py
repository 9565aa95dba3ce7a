"""Tests for the budget commands."""

from unittest.mock import patch

import pytest

from src.isoenv.commands.budget import app
from tests.fixtures.fake_provider import MANAGEMENT_ACCOUNT_ID

BUILD_CONTEXT = "src.isoenv.commands.budget.build_context"


@pytest.fixture
def invoke(runner, build_context):
    def run(*args):
        with patch(BUILD_CONTEXT, side_effect=build_context):
            return runner.invoke(app, list(args))

    return run


def test_create_organization_budget(invoke, provider):
    result = invoke("create", "--name", "org-budget", "--amount", "500", "--email", "finance@company.com")

    assert result.exit_code == 0, result.output
    assert "Budget created successfully" in result.output
    budget = provider.budgets["org-budget"]
    assert budget["BudgetLimit"] == {"Amount": "500", "Unit": "USD"}
    assert not budget.get("CostFilters")
    assert [n["Notification"]["Threshold"] for n in budget["Notifications"]] == [80, 90, 100]
    assert provider.calls_to("create_budget")[0][0] == MANAGEMENT_ACCOUNT_ID


def test_create_user_budget_activates_tag(invoke, provider):
    result = invoke("create", "--username", "alice", "--amount", "100", "--email", "alice@company.com,lead@company.com")

    assert result.exit_code == 0, result.output
    budget = provider.budgets["alice-monthly-budget"]
    assert budget["CostFilters"] == {"TagKeyValue": ["user$alice"]}
    assert provider.calls_to("activate_cost_allocation_tag") == [("user",)]
    assert "tag activated" in result.output


def test_tag_activation_failure_is_a_warning(invoke, provider):
    provider.tag_activation_errors = [{"TagKey": "user", "Message": "Tag not found"}]

    result = invoke("create", "-u", "alice", "-a", "100", "-e", "alice@company.com")

    assert result.exit_code == 0, result.output
    assert "Warning" in result.output
    assert "alice-monthly-budget" in provider.budgets


def test_create_requires_exactly_one_of_name_and_username(invoke, provider):
    both = invoke("create", "-n", "org", "-u", "alice", "-a", "100", "-e", "a@b.co")
    neither = invoke("create", "-a", "100", "-e", "a@b.co")

    assert both.exit_code == 1
    assert neither.exit_code == 1
    assert provider.calls == []


def test_create_rejects_non_positive_amount(invoke, provider):
    result = invoke("create", "-n", "org", "-a", "0", "-e", "a@b.co")

    assert result.exit_code == 1
    assert provider.budgets == {}


def test_create_existing_budget(invoke, provider):
    invoke("create", "-n", "org", "-a", "100", "-e", "a@b.co")
    result = invoke("create", "-n", "org", "-a", "200", "-e", "a@b.co")

    assert result.exit_code == 0, result.output
    assert "already exists" in result.output
    assert provider.budgets["org"]["BudgetLimit"]["Amount"] == "100"


def test_create_linked_budget(invoke, provider):
    result = invoke(
        "create-linked", "--account-id", "222222222222", "--name", "alice-budget",
        "--amount", "150", "--notification-emails", "alice@company.com",
    )

    assert result.exit_code == 0, result.output
    assert provider.budgets["alice-budget"]["CostFilters"] == {"LinkedAccount": ["222222222222"]}


def test_check_and_show(invoke, provider):
    invoke("create", "-n", "org", "-a", "100", "-e", "a@b.co")

    check = invoke("check", "--name", "org")
    show = invoke("show", "--name", "org")
    missing = invoke("check", "--name", "nope")

    assert check.exit_code == 0, check.output
    assert show.exit_code == 0, show.output
    assert "100 USD" in show.output
    assert missing.exit_code == 1


def test_list_budgets(invoke, provider):
    invoke("create", "-n", "org", "-a", "100", "-e", "a@b.co")
    invoke("create", "-u", "alice", "-a", "50", "-e", "a@b.co")

    result = invoke("list")

    assert result.exit_code == 0, result.output
    assert "Total: 2" in result.output


def test_delete_without_yes_is_cancelled(invoke, provider):
    invoke("create", "-n", "org", "-a", "100", "-e", "a@b.co")

    result = invoke("delete", "--name", "org")

    assert result.exit_code == 0
    assert "Cancelled" in result.output
    assert "org" in provider.budgets


def test_delete_with_yes(invoke, provider):
    invoke("create", "-n", "org", "-a", "100", "-e", "a@b.co")

    result = invoke("delete", "--name", "org", "--yes")

    assert result.exit_code == 0, result.output
    assert provider.budgets == {}


def test_delete_missing_budget_exits_one(invoke):
    result = invoke("delete", "--name", "nope", "--yes")

    assert result.exit_code == 1
    assert "not found" in result.output
