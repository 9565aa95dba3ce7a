"""Tests for the environment pipeline against the in-memory provider."""

import pytest

from src.isoenv.core.confirm import always_no, always_yes
from src.isoenv.core.orchestrator import (
    EnvironmentOrchestrator,
    budget_name_for,
    classify_permission_sets,
    derive_account_email,
    notification_recipients,
)
from src.isoenv.utils.config import Settings
from src.isoenv.utils.error_handler import (
    EXIT_OPERATION_FAILURE,
    OperationFailedError,
    OperationTimeoutError,
    PreconditionError,
    ProviderError,
    ValidationError,
)
from tests.fixtures.fake_provider import (
    MANAGEMENT_ACCOUNT_ID,
    MANAGEMENT_EMAIL,
    MUTATING_CALLS,
    FakeProvider,
    client_error,
)


@pytest.fixture
def orchestrator(provider, settings, catalog, sleeps):
    return EnvironmentOrchestrator(provider, settings, catalog=catalog, sleep=sleeps)


def test_derive_account_email():
    """Test plus addressing of the account email."""
    assert derive_account_email("alice@company.com", "alice") == "alice+alice-aws@company.com"
    assert derive_account_email("bob.smith@corp.io", "dev-bob") == "bob.smith+dev-bob-aws@corp.io"


def test_derive_account_email_rejects_missing_at():
    with pytest.raises(ValidationError):
        derive_account_email("alice.company.com", "alice")


def test_classify_permission_sets():
    management, member = classify_permission_sets(["admin", "dev", "ops"], "admin")
    assert management == ["admin"]
    assert member == ["dev", "ops"]


def test_notification_recipients_keep_order_and_duplicates():
    recipients = notification_recipients(
        "alice@company.com", MANAGEMENT_EMAIL, ["finance@company.com", "alice@company.com"]
    )
    assert recipients == [
        "alice@company.com",
        MANAGEMENT_EMAIL,
        "finance@company.com",
        "alice@company.com",
    ]


def test_notification_recipients_without_management_email():
    assert notification_recipients("a@b.co", None, []) == ["a@b.co"]


def test_create_environment_creates_every_resource(orchestrator, provider):
    """Test a first run creates account, user, assignment and budget."""
    summary = orchestrator.create_environment(
        "alice", "alice@company.com", 150, ["terraform-deployer"]
    )

    assert summary.account_created is True
    assert summary.user_created is True
    assert summary.budget_created is True
    assert summary.account_email == "alice+alice-aws@company.com"
    assert summary.budget_name == "alice-budget"
    assert summary.budget_amount == 150
    assert summary.notification_emails == ["alice@company.com", MANAGEMENT_EMAIL]

    assert len(provider.calls_to("create_account")) == 1
    assert provider.calls_to("create_account")[0] == ("alice", "alice+alice-aws@company.com")
    assert len(provider.calls_to("create_user")) == 1
    assert len(provider.calls_to("create_permission_set")) == 1
    assert len(provider.calls_to("create_account_assignment")) == 1
    assert len(provider.calls_to("create_budget")) == 1

    budget = provider.budgets["alice-budget"]
    assert budget["CostFilters"] == {"LinkedAccount": [summary.account_id]}
    assert budget["BudgetLimit"] == {"Amount": "150", "Unit": "USD"}
    thresholds = [n["Notification"]["Threshold"] for n in budget["Notifications"]]
    assert thresholds == [80.0, 90.0, 100.0]


def test_create_environment_runs_in_pipeline_order(orchestrator, provider):
    orchestrator.create_environment("alice", "alice@company.com", 100, ["terraform-deployer"])

    mutations = provider.mutating_calls()
    order = [
        mutations.index("create_permission_set"),
        mutations.index("create_account"),
        mutations.index("create_user"),
        mutations.index("create_account_assignment"),
        mutations.index("create_budget"),
    ]
    assert order == sorted(order)


def test_create_environment_is_idempotent(provider, settings, catalog, sleeps):
    """Test a second run finds everything and makes no create calls."""
    EnvironmentOrchestrator(provider, settings, catalog=catalog, sleep=sleeps).create_environment(
        "alice", "alice@company.com", 100, ["terraform-deployer"]
    )
    first_run_calls = len(provider.calls)

    summary = EnvironmentOrchestrator(
        provider, settings, catalog=catalog, confirm=always_yes, sleep=sleeps
    ).create_environment("alice", "alice@company.com", 100, ["terraform-deployer"])

    second_run = provider.calls[first_run_calls:]
    assert [name for name, _ in second_run if name in MUTATING_CALLS] == []
    assert summary.account_created is False
    assert summary.user_created is False
    assert summary.budget_created is False
    assert len(provider.accounts) == 1
    assert len(provider.users) == 1
    assert len(provider.assignments) == 1
    assert len(provider.budgets) == 1


def test_admin_and_dev_split_between_accounts(orchestrator, provider):
    """Test admin goes to the management account and dev to one member account."""
    summary = orchestrator.create_environment("alice", "alice@company.com", 100, ["admin", "dev"])

    assert len(provider.calls_to("create_account")) == 1
    assert len(provider.assignments) == 2
    by_account = {a["AccountId"]: a["PermissionSetArn"] for a in provider.assignments}
    assert by_account[MANAGEMENT_ACCOUNT_ID].endswith("/ps-admin")
    assert by_account[summary.account_id].endswith("/ps-dev")
    assert summary.management_permission_sets == ["admin"]
    assert summary.member_permission_sets == ["dev"]


def test_management_only_request_creates_no_account_or_budget(orchestrator, provider):
    summary = orchestrator.create_environment("alice", "alice@company.com", 100, ["admin"])

    assert provider.calls_to("create_account") == []
    assert provider.calls_to("create_budget") == []
    assert summary.account_id is None
    assert len(provider.assignments) == 1


def test_member_managed_policies_are_attached(orchestrator, provider):
    orchestrator.create_environment("alice", "alice@company.com", 100, ["dev"])

    attached = [args[2] for args in provider.calls_to("attach_managed_policy")]
    assert attached == ["arn:aws:iam::aws:policy/ReadOnlyAccess"]


def test_extra_notification_emails_are_appended(orchestrator, provider):
    summary = orchestrator.create_environment(
        "alice", "alice@company.com", 100, ["dev"], notification_emails=["cto@company.com"]
    )
    assert summary.notification_emails == ["alice@company.com", MANAGEMENT_EMAIL, "cto@company.com"]
    subscribers = provider.budgets["alice-budget"]["Notifications"][0]["Subscribers"]
    assert [s["Address"] for s in subscribers] == summary.notification_emails


@pytest.mark.parametrize(
    "username,email,budget,names",
    [
        ("alice", "alice.company.com", 100, ["dev"]),
        ("alice", "alice@company.com", 0, ["dev"]),
        ("alice", "alice@company.com", "abc", ["dev"]),
        ("alice smith", "alice@company.com", 100, ["dev"]),
        ("alice", "alice@company.com", 100, []),
    ],
)
def test_invalid_input_is_rejected_before_any_provider_call(
    orchestrator, provider, username, email, budget, names
):
    with pytest.raises(ValidationError):
        orchestrator.create_environment(username, email, budget, names)
    assert provider.calls == []


def test_unknown_permission_set_is_rejected(orchestrator, provider):
    with pytest.raises(ValidationError, match="Unknown permission set"):
        orchestrator.create_environment("alice", "alice@company.com", 100, ["unknown"])
    assert provider.mutating_calls() == []


def test_unknown_permission_set_blocks_creation_of_known_ones(orchestrator, provider):
    with pytest.raises(ValidationError, match="ghost"):
        orchestrator.create_environment(
            "alice", "alice@company.com", 100, ["terraform-deployer", "ghost"]
        )
    assert provider.calls_to("create_permission_set") == []
    assert provider.mutating_calls() == []


def test_broken_unrequested_definition_does_not_block_creation(
    orchestrator, provider, permission_set_dir
):
    (permission_set_dir / "broken.json").write_text('{"name": "broken", "inline_policy_file": "x"}')

    summary = orchestrator.create_environment(
        "alice", "alice@company.com", 100, ["terraform-deployer"]
    )

    assert summary.account_id
    assert len(provider.calls_to("create_permission_set")) == 1


def test_broken_requested_definition_is_rejected(orchestrator, provider, permission_set_dir):
    (permission_set_dir / "broken.json").write_text('{"name": "broken", "inline_policy_file": "x"}')

    with pytest.raises(ValidationError, match="Missing required field"):
        orchestrator.create_environment("alice", "alice@company.com", 100, ["broken"])
    assert provider.calls == []


def test_remote_only_permission_set_is_used_as_is(orchestrator, provider):
    arn = provider.add_permission_set("ops")
    orchestrator.create_environment("alice", "alice@company.com", 100, ["ops"])

    assert provider.calls_to("create_permission_set") == []
    assert provider.assignments[0]["PermissionSetArn"] == arn


def test_failed_account_creation_aborts_pipeline(orchestrator, provider):
    """Test FAILED with a reason surfaces it and nothing runs afterwards."""
    provider.statuses["account"] = ["IN_PROGRESS", "FAILED"]
    provider.failure_reasons["account"] = "CONCURRENT_ACCOUNT_MODIFICATION"

    with pytest.raises(OperationFailedError) as exc_info:
        orchestrator.create_environment("alice", "alice@company.com", 100, ["dev"])

    assert "CONCURRENT_ACCOUNT_MODIFICATION" in exc_info.value.message
    assert exc_info.value.exit_code == EXIT_OPERATION_FAILURE
    assert provider.call_names()[-1] == "describe_create_account_status"
    assert provider.calls_to("create_user") == []
    assert provider.calls_to("create_budget") == []


def test_account_creation_timeout(provider, catalog, sleeps):
    settings = Settings(poll_interval_seconds=2, poll_max_attempts=3)
    provider.statuses["account"] = ["IN_PROGRESS"]
    orchestrator = EnvironmentOrchestrator(provider, settings, catalog=catalog, sleep=sleeps)

    with pytest.raises(OperationTimeoutError):
        orchestrator.create_environment("alice", "alice@company.com", 100, ["dev"])

    assert len(provider.calls_to("describe_create_account_status")) == 3
    assert sleeps.calls == [2, 2]


def test_email_already_exists_reresolves_account(orchestrator, provider):
    provider.statuses["account"] = ["FAILED"]
    provider.failure_reasons["account"] = "EMAIL_ALREADY_EXISTS"
    original_list_accounts = provider.list_accounts
    seen = {"count": 0}

    def list_accounts():
        # The account shows up once the provider reports the duplicate email
        seen["count"] += 1
        if seen["count"] > 1 and not provider.accounts:
            provider.add_account("alice", "333333333333")
        return original_list_accounts()

    provider.list_accounts = list_accounts
    summary = orchestrator.create_environment("alice", "alice@company.com", 100, ["dev"])
    assert summary.account_id == "333333333333"
    assert summary.account_created is False


def test_create_requires_management_account(settings, catalog, sleeps):
    provider = FakeProvider(account_id="999999999999")
    orchestrator = EnvironmentOrchestrator(provider, settings, catalog=catalog, sleep=sleeps)

    with pytest.raises(PreconditionError, match="management account"):
        orchestrator.create_environment("alice", "alice@company.com", 100, ["dev"])
    assert provider.mutating_calls() == []


def test_create_without_organization_exits_two(orchestrator, provider):
    provider.fail_on["describe_organization"] = client_error(
        "AWSOrganizationsNotInUseException", "Your account is not a member of an organization."
    )
    with pytest.raises(ProviderError) as exc_info:
        orchestrator.create_environment("alice", "alice@company.com", 100, ["dev"])
    assert exc_info.value.exit_code == EXIT_OPERATION_FAILURE


def test_existing_permission_set_is_not_updated_when_declined(provider, settings, catalog, sleeps):
    arn = provider.add_permission_set("dev", description="old", session_duration="PT1H")
    orchestrator = EnvironmentOrchestrator(
        provider, settings, catalog=catalog, confirm=always_no, sleep=sleeps
    )
    orchestrator.create_environment("alice", "alice@company.com", 100, ["dev"])

    assert provider.calls_to("update_permission_set") == []
    assert provider.permission_sets[arn]["Description"] == "old"


def test_existing_permission_set_is_updated_and_reprovisioned(provider, settings, catalog, sleeps):
    arn = provider.add_permission_set("dev", description="old", session_duration="PT1H")
    provider.provisioned[arn] = ["444444444444"]
    orchestrator = EnvironmentOrchestrator(
        provider, settings, catalog=catalog, confirm=always_yes, sleep=sleeps
    )
    orchestrator.create_environment("alice", "alice@company.com", 100, ["dev"])

    assert provider.permission_sets[arn]["Description"] == "dev access"
    assert provider.permission_sets[arn]["SessionDuration"] == "PT4H"
    provisioned_to = [args[2] for args in provider.calls_to("provision_permission_set")]
    assert provisioned_to == ["444444444444"]


def test_delete_environment_cancelled(orchestrator, provider):
    report = orchestrator.delete_environment("alice")
    assert report.confirmed is False
    assert provider.calls == []


def test_delete_environment_removes_budget_assignments_and_user(provider, settings, catalog, sleeps):
    EnvironmentOrchestrator(provider, settings, catalog=catalog, sleep=sleeps).create_environment(
        "alice", "alice@company.com", 100, ["dev"]
    )

    report = EnvironmentOrchestrator(
        provider, settings, catalog=catalog, confirm=always_yes, sleep=sleeps
    ).delete_environment("alice")

    assert report.confirmed is True
    assert report.budget_deleted is True
    assert len(report.revoked) == 1
    assert report.user_deleted is True
    assert report.account_closure_requested is True
    assert provider.budgets == {}
    assert provider.assignments == []
    assert provider.users == {}
    # The account itself is never closed
    assert len(provider.accounts) == 1


def test_delete_environment_missing_pieces_are_warnings(provider, settings, catalog, sleeps):
    report = EnvironmentOrchestrator(
        provider, settings, catalog=catalog, confirm=always_yes, sleep=sleeps
    ).delete_environment("ghost")

    assert report.confirmed is True
    assert report.user_deleted is False
    assert any("not found" in warning for warning in report.warnings)


def test_show_environment(provider, settings, catalog, sleeps):
    EnvironmentOrchestrator(provider, settings, catalog=catalog, sleep=sleeps).create_environment(
        "alice", "alice@company.com", 100, ["dev"]
    )
    view = EnvironmentOrchestrator(provider, settings, catalog=catalog).show_environment("alice")

    assert view.user.username == "alice"
    assert view.account.name == "alice"
    assert view.budget.name == budget_name_for("alice")
    assert [name for _, name in view.assignments] == ["dev"]


def test_list_environments_pairs_users_with_accounts(orchestrator, provider):
    provider.add_user("alice")
    provider.add_user("bob")
    provider.add_account("alice", "555555555555")

    environments = orchestrator.list_environments()
    pairs = {user.username: account.id if account else None for user, account in environments}
    assert pairs == {"alice": "555555555555", "bob": None}
