"""Idempotent resource ensurers.

Each ``ensure_*`` function looks the resource up by its natural key first and
only creates it when it is missing. An "already exists" error on create is a
race with another actor and resolves by looking the resource up again.
Accounts, users and budgets are never modified once they exist; permission
sets are updated in place after confirmation and re-provisioned.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from ..utils.error_handler import (
    OperationFailedError,
    handle_aws_error,
    is_already_exists,
)
from ..utils.models import (
    BudgetSpec,
    EnsureResult,
    PermissionSetConfig,
    PermissionSetInfo,
    PollOutcome,
)
from .confirm import Confirm
from .lookups import find_account, find_permission_set, find_user
from .poller import (
    OperationPoller,
    extract_assignment_status,
    extract_create_account_status,
    extract_provisioning_status,
    poll_operation,
)

logger = logging.getLogger(__name__)

# CreateAccountStatus failure reasons meaning the account is already there
ACCOUNT_EXISTS_REASONS = ("EMAIL_ALREADY_EXISTS", "ACCOUNT_ALREADY_EXISTS")

# IAM allows at most five versions per managed policy
MAX_POLICY_VERSIONS = 5


def derive_user_names(username: str) -> Tuple[str, str]:
    """
    Derive given and family names from a username.

    ``alice-dev`` becomes ("alice", "dev"); a username without a hyphen
    becomes (username, "User").
    """
    if "-" in username:
        given_name, family_name = username.split("-", 1)
        if given_name and family_name:
            return given_name, family_name
    return username, "User"


def ensure_account(provider, poller: OperationPoller, name: str, email: str) -> EnsureResult:
    """
    Ensure an ACTIVE organization account with this name exists.

    Args:
        provider: AWS provider
        poller: Poller bound to the run settings
        name: Account name, the natural key
        email: Root email for a new account

    Returns:
        EnsureResult with the account ID
    """
    existing = find_account(provider, name)
    if existing:
        logger.warning(f"Account '{name}' already exists: {existing.id}")
        return EnsureResult(existing.id, created=False)

    logger.info(f"Creating member account '{name}' ({email})")
    try:
        request_id = provider.create_account(name, email)
    except ClientError as e:
        if is_already_exists(e):
            return _reresolve_account(provider, name, "DuplicateAccountException")
        handle_aws_error(e, "CreateAccount")

    result = poll_operation(
        provider.describe_create_account_status,
        request_id,
        extract_create_account_status,
        interval=poller.interval,
        max_attempts=poller.max_attempts,
        sleep=poller.sleep,
        operation="Account creation",
    )
    if result.outcome == PollOutcome.FAILED and result.reason in ACCOUNT_EXISTS_REASONS:
        return _reresolve_account(provider, name, result.reason)

    result.raise_for_status()
    logger.info(f"Account '{name}' created: {result.resource_id}")
    return EnsureResult(str(result.resource_id), created=True)


def _reresolve_account(provider, name: str, reason: str) -> EnsureResult:
    existing = find_account(provider, name)
    if existing is None:
        raise OperationFailedError("Account creation", reason)
    logger.warning(f"Account '{name}' already exists: {existing.id}")
    return EnsureResult(existing.id, created=False)


def ensure_user(provider, identity_store_id: str, username: str, email: str) -> EnsureResult:
    """Ensure an identity store user with this username exists."""
    existing = find_user(provider, identity_store_id, username)
    if existing:
        logger.warning(f"User '{username}' already exists: {existing.user_id}")
        return EnsureResult(existing.user_id, created=False)

    given_name, family_name = derive_user_names(username)
    display_name = f"{given_name} {family_name}"
    logger.info(f"Creating Identity Center user '{username}'")
    try:
        user_id = provider.create_user(
            identity_store_id, username, display_name, given_name, family_name, email
        )
    except ClientError as e:
        if not is_already_exists(e):
            handle_aws_error(e, "CreateUser")
        existing = find_user(provider, identity_store_id, username)
        if existing is None:
            handle_aws_error(e, "CreateUser")
        logger.warning(f"User '{username}' already exists: {existing.user_id}")
        return EnsureResult(existing.user_id, created=False)

    return EnsureResult(user_id, created=True)


def ensure_permission_set(
    provider,
    poller: OperationPoller,
    instance_arn: str,
    config: PermissionSetConfig,
    confirm: Confirm,
) -> EnsureResult:
    """
    Ensure a permission set matching the local definition exists.

    A missing set is created with its managed policies and inline policy. An
    existing set is updated only when ``confirm`` agrees; any change is then
    re-provisioned to every account the set is provisioned to.

    Returns:
        EnsureResult with the permission set ARN
    """
    existing = find_permission_set(provider, instance_arn, config.name)
    if existing is None:
        try:
            arn = provider.create_permission_set(
                instance_arn, config.name, config.description, config.session_duration
            )
        except ClientError as e:
            if not is_already_exists(e):
                handle_aws_error(e, "CreatePermissionSet")
            existing = find_permission_set(provider, instance_arn, config.name)
            if existing is None:
                handle_aws_error(e, "CreatePermissionSet")
        else:
            logger.info(f"Permission set '{config.name}' created: {arn}")
            _apply_policies(provider, instance_arn, arn, config)
            return EnsureResult(arn, created=True)

    logger.warning(f"Permission set '{config.name}' already exists: {existing.arn}")
    if not confirm(f"Update existing permission set '{config.name}'?", True):
        logger.info(f"Skipping update of permission set '{config.name}'")
        return EnsureResult(existing.arn, created=False)

    changed = update_permission_set(provider, instance_arn, existing, config)
    if changed:
        reprovision_permission_set(provider, poller, instance_arn, existing.arn)
    return EnsureResult(existing.arn, created=False, updated=changed)


def _apply_policies(provider, instance_arn: str, arn: str, config: PermissionSetConfig) -> None:
    try:
        for policy_arn in config.managed_policy_arns:
            provider.attach_managed_policy(instance_arn, arn, policy_arn)
            logger.info(f"Managed policy attached: {policy_arn}")
        provider.put_inline_policy(instance_arn, arn, config.inline_policy)
    except ClientError as e:
        handle_aws_error(e, "AttachPolicy")


def update_permission_set(
    provider, instance_arn: str, existing: PermissionSetInfo, config: PermissionSetConfig
) -> bool:
    """
    Bring an existing permission set in line with its definition.

    Returns:
        True when at least one change was applied
    """
    changed = False
    arn = existing.arn
    try:
        if (
            existing.session_duration != config.session_duration
            or existing.description != config.description
        ):
            provider.update_permission_set(
                instance_arn, arn, config.description, config.session_duration
            )
            logger.info(f"Updated session duration/description of '{config.name}'")
            changed = True

        current_inline = provider.get_inline_policy(instance_arn, arn)
        if _normalize_policy(current_inline) != _normalize_policy(config.inline_policy):
            provider.put_inline_policy(instance_arn, arn, config.inline_policy)
            logger.info(f"Replaced inline policy of '{config.name}'")
            changed = True

        attached = set(provider.list_managed_policies(instance_arn, arn))
        desired = config.managed_policy_arns
        for policy_arn in desired:
            if policy_arn not in attached:
                provider.attach_managed_policy(instance_arn, arn, policy_arn)
                logger.info(f"Managed policy attached: {policy_arn}")
                changed = True
        for policy_arn in sorted(attached - set(desired)):
            provider.detach_managed_policy(instance_arn, arn, policy_arn)
            logger.info(f"Managed policy detached: {policy_arn}")
            changed = True
    except ClientError as e:
        handle_aws_error(e, "UpdatePermissionSet")

    return changed


def _normalize_policy(policy: Any) -> Optional[str]:
    if policy is None or policy == "":
        return None
    if isinstance(policy, str):
        policy = json.loads(policy)
    return json.dumps(policy, sort_keys=True)


def reprovision_permission_set(
    provider, poller: OperationPoller, instance_arn: str, permission_set_arn: str
) -> List[str]:
    """
    Push a permission set change to every account it is provisioned to.

    Returns:
        The account IDs that were re-provisioned
    """
    try:
        account_ids = provider.list_accounts_for_provisioned_permission_set(
            instance_arn, permission_set_arn
        )
    except ClientError as e:
        handle_aws_error(e, "ListAccountsForProvisionedPermissionSet")

    for account_id in account_ids:
        logger.info(f"Re-provisioning {permission_set_arn} to account {account_id}")
        try:
            request_id = provider.provision_permission_set(
                instance_arn, permission_set_arn, account_id
            )
        except ClientError as e:
            handle_aws_error(e, "ProvisionPermissionSet")
        poller.wait(
            lambda rid: provider.describe_permission_set_provisioning_status(instance_arn, rid),
            request_id,
            extract_provisioning_status,
            operation=f"Provisioning to account {account_id}",
        )
    return list(account_ids)


def assignment_exists(
    provider, instance_arn: str, account_id: str, permission_set_arn: str, principal_id: str
) -> bool:
    try:
        assignments = provider.list_account_assignments(
            instance_arn, account_id, permission_set_arn
        )
    except ClientError as e:
        handle_aws_error(e, "ListAccountAssignments")
    return any(item.get("PrincipalId") == principal_id for item in assignments)


def ensure_assignment(
    provider,
    poller: OperationPoller,
    instance_arn: str,
    account_id: str,
    permission_set_arn: str,
    principal_id: str,
) -> EnsureResult:
    """Ensure the user holds the permission set on the account."""
    key = f"{principal_id}:{account_id}:{permission_set_arn}"
    if assignment_exists(provider, instance_arn, account_id, permission_set_arn, principal_id):
        logger.warning(f"Assignment already exists for user {principal_id} on {account_id}")
        return EnsureResult(key, created=False)

    try:
        request_id = provider.create_account_assignment(
            instance_arn, account_id, permission_set_arn, principal_id
        )
    except ClientError as e:
        if is_already_exists(e):
            return EnsureResult(key, created=False)
        handle_aws_error(e, "CreateAccountAssignment")

    poller.wait(
        lambda rid: provider.describe_account_assignment_creation_status(instance_arn, rid),
        request_id,
        extract_assignment_status,
        operation=f"Assignment on account {account_id}",
    )
    return EnsureResult(key, created=True)


def revoke_assignment(
    provider,
    poller: OperationPoller,
    instance_arn: str,
    account_id: str,
    permission_set_arn: str,
    principal_id: str,
) -> bool:
    """
    Remove the user's assignment of the permission set on the account.

    Returns:
        False when there was nothing to revoke
    """
    if not assignment_exists(provider, instance_arn, account_id, permission_set_arn, principal_id):
        logger.warning(f"No assignment found for user {principal_id} on {account_id}")
        return False

    try:
        request_id = provider.delete_account_assignment(
            instance_arn, account_id, permission_set_arn, principal_id
        )
    except ClientError as e:
        handle_aws_error(e, "DeleteAccountAssignment")

    poller.wait(
        lambda rid: provider.describe_account_assignment_deletion_status(instance_arn, rid),
        request_id,
        extract_assignment_status,
        operation=f"Assignment removal on account {account_id}",
    )
    return True


def build_budget_request(spec: BudgetSpec) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """
    Build the CreateBudget payload: a monthly USD cost budget and one ACTUAL
    notification per threshold, all with the same email subscribers.
    """
    budget: Dict[str, Any] = {
        "BudgetName": spec.name,
        "BudgetLimit": {"Amount": str(spec.amount), "Unit": "USD"},
        "TimeUnit": "MONTHLY",
        "BudgetType": "COST",
    }
    if spec.cost_filters:
        budget["CostFilters"] = spec.cost_filters

    subscribers = [{"SubscriptionType": "EMAIL", "Address": email} for email in spec.emails]
    notifications = [
        {
            "Notification": {
                "NotificationType": "ACTUAL",
                "ComparisonOperator": "GREATER_THAN",
                "Threshold": float(threshold),
                "ThresholdType": "PERCENTAGE",
            },
            "Subscribers": list(subscribers),
        }
        for threshold in spec.thresholds
    ]
    return budget, notifications


def ensure_budget(provider, account_id: str, spec: BudgetSpec) -> EnsureResult:
    """Ensure a budget with this name exists in the paying account."""
    try:
        existing = provider.describe_budget(account_id, spec.name)
    except ClientError as e:
        handle_aws_error(e, "DescribeBudget")

    if existing:
        logger.warning(f"Budget '{spec.name}' already exists")
        return EnsureResult(spec.name, created=False)

    budget, notifications = build_budget_request(spec)
    try:
        provider.create_budget(account_id, budget, notifications)
    except ClientError as e:
        if is_already_exists(e):
            logger.warning(f"Budget '{spec.name}' already exists")
            return EnsureResult(spec.name, created=False)
        handle_aws_error(e, "CreateBudget")

    logger.info(f"Budget '{spec.name}' created: ${spec.amount}/month ({spec.tracking})")
    return EnsureResult(spec.name, created=True)


def ensure_managed_policy(
    provider, account_id: str, name: str, document: Dict[str, Any]
) -> EnsureResult:
    """
    Ensure a customer managed IAM policy with this document exists.

    An existing policy gets a new default version; when it already holds the
    maximum number of versions, the non-default versions are deleted first.
    """
    policy_arn = f"arn:aws:iam::{account_id}:policy/{name}"
    try:
        existing = provider.get_policy(policy_arn)
        if existing is None:
            created_arn = provider.create_policy(name, document)
            logger.info(f"Policy created: {created_arn}")
            return EnsureResult(created_arn, created=True)

        versions = provider.list_policy_versions(policy_arn)
        if len(versions) >= MAX_POLICY_VERSIONS:
            for version in versions:
                if not version.get("IsDefaultVersion"):
                    provider.delete_policy_version(policy_arn, version["VersionId"])
                    logger.info(f"Deleted old policy version {version['VersionId']}")
        provider.create_policy_version(policy_arn, document)
    except ClientError as e:
        handle_aws_error(e, "EnsurePolicy")

    logger.info(f"Policy updated: {policy_arn}")
    return EnsureResult(policy_arn, created=False, updated=True)


__all__ = [
    "assignment_exists",
    "build_budget_request",
    "derive_user_names",
    "ensure_account",
    "ensure_assignment",
    "ensure_budget",
    "ensure_managed_policy",
    "ensure_permission_set",
    "ensure_user",
    "reprovision_permission_set",
    "revoke_assignment",
    "update_permission_set",
]
