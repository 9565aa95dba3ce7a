"""Read-only lookups of AWS resources by their natural key.

Every lookup is a list-then-filter scan; no provider-side unique index is
assumed. Results are racy under concurrent runs of the tool.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from botocore.exceptions import ClientError

from ..utils.config import Settings
from ..utils.error_handler import (
    EXIT_OPERATION_FAILURE,
    PreconditionError,
    ProviderError,
    error_details,
    handle_aws_error,
)
from ..utils.models import Account, IdentityUser, ManagementContext, PermissionSetInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityCenter:
    """The IAM Identity Center instance all identity operations target."""

    instance_arn: str
    identity_store_id: str


def resolve_identity_center(provider, settings: Settings) -> IdentityCenter:
    """
    Find the Identity Center instance, from settings or the first listed instance.

    Raises:
        ProviderError: With exit code 2 when no instance exists
    """
    if settings.sso_instance_arn and settings.identity_store_id:
        return IdentityCenter(settings.sso_instance_arn, settings.identity_store_id)

    try:
        instances = provider.list_instances()
    except ClientError as e:
        handle_aws_error(e, "ListInstances", exit_code=EXIT_OPERATION_FAILURE)

    if not instances:
        raise ProviderError(
            "ListInstances",
            "NoInstance",
            "No IAM Identity Center instance found",
            exit_code=EXIT_OPERATION_FAILURE,
        )

    instance = instances[0]
    logger.debug(f"Using Identity Center instance {instance['InstanceArn']}")
    return IdentityCenter(instance["InstanceArn"], instance["IdentityStoreId"])


def get_management_context(provider, require_management: bool = False) -> ManagementContext:
    """
    Resolve the caller and, when possible, the organization management account.

    Args:
        provider: AWS provider
        require_management: Fail unless the caller is the management account

    Returns:
        ManagementContext

    Raises:
        PreconditionError: Missing credentials, or not the management account when required
    """
    identity = provider.get_caller_identity()
    context = ManagementContext(account_id=identity["Account"], arn=identity.get("Arn", ""))

    try:
        organization = provider.describe_organization()
    except ClientError as e:
        if require_management:
            code, message = error_details(e)
            if code == "AWSOrganizationsNotInUseException":
                raise ProviderError(
                    "DescribeOrganization", code, message, exit_code=EXIT_OPERATION_FAILURE
                ) from e
            raise PreconditionError(
                "Not running from AWS Organizations management account "
                f"({code}: {message}). This command requires Organizations management account access."
            ) from e
        logger.debug(f"Could not describe organization: {e}")
        return context

    context.management_account_id = organization.get("MasterAccountId")
    context.management_email = organization.get("MasterAccountEmail") or None

    if require_management and context.account_id != context.management_account_id:
        raise PreconditionError(
            f"Must run from management account {context.management_account_id}, "
            f"currently using account {context.account_id}"
        )
    return context


def find_account(provider, name: str) -> Optional[Account]:
    """Find an ACTIVE organization account by name."""
    try:
        accounts = provider.list_accounts()
    except ClientError as e:
        handle_aws_error(e, "ListAccounts")

    for data in accounts:
        if data.get("Name") == name and data.get("Status") == "ACTIVE":
            return Account.from_api(data)
    return None


def list_active_accounts(provider) -> List[Account]:
    try:
        accounts = provider.list_accounts()
    except ClientError as e:
        handle_aws_error(e, "ListAccounts")
    return [Account.from_api(data) for data in accounts if data.get("Status") == "ACTIVE"]


def find_user(provider, identity_store_id: str, username: str) -> Optional[IdentityUser]:
    try:
        data = provider.find_user(identity_store_id, username)
    except ClientError as e:
        handle_aws_error(e, "ListUsers")
    return IdentityUser.from_api(data) if data else None


def find_permission_set(provider, instance_arn: str, name: str) -> Optional[PermissionSetInfo]:
    """Scan every permission set of the instance for one with this name."""
    try:
        for arn in provider.list_permission_sets(instance_arn):
            data = provider.describe_permission_set(instance_arn, arn)
            if data.get("Name") == name:
                return PermissionSetInfo.from_api(data)
    except ClientError as e:
        handle_aws_error(e, "DescribePermissionSet")
    return None


def list_permission_sets(provider, instance_arn: str) -> List[PermissionSetInfo]:
    try:
        return [
            PermissionSetInfo.from_api(provider.describe_permission_set(instance_arn, arn))
            for arn in provider.list_permission_sets(instance_arn)
        ]
    except ClientError as e:
        handle_aws_error(e, "ListPermissionSets")
