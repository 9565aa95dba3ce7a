"""The environment pipeline: permission sets, account, user, assignments, budget.

``create_environment`` runs the ensurers in a fixed order and stops at the
first failure. Nothing already created is rolled back; re-running the
command picks up where it stopped because every step is idempotent.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from botocore.exceptions import ClientError

from ..utils.config import Settings
from ..utils.error_handler import IsoEnvError, ValidationError, handle_aws_error
from ..utils.models import (
    Account,
    Assignment,
    BudgetInfo,
    BudgetSpec,
    EnvironmentSummary,
    EnvironmentView,
    IdentityUser,
)
from ..utils.validators import (
    validate_budget_amount,
    validate_email,
    validate_username,
)
from .confirm import Confirm, use_default
from .ensurer import (
    ensure_account,
    ensure_assignment,
    ensure_budget,
    ensure_permission_set,
    ensure_user,
    revoke_assignment,
)
from .lookups import (
    IdentityCenter,
    find_account,
    find_permission_set,
    find_user,
    get_management_context,
    list_active_accounts,
    resolve_identity_center,
)
from .permission_set_config import PermissionSetCatalog
from .poller import OperationPoller

logger = logging.getLogger(__name__)

Progress = Callable[[str], None]


def derive_account_email(email: str, username: str) -> str:
    """
    Derive a unique account root email using plus addressing.

    ``alice@company.com`` for user ``alice`` becomes ``alice+alice-aws@company.com``,
    so every account email still lands in the user's inbox.

    Raises:
        ValidationError: If the email has no ``@``
    """
    local_part, sep, domain = email.partition("@")
    if not sep or not local_part or not domain:
        raise ValidationError(f"Invalid email format: {email}")
    return f"{local_part}+{username}-aws@{domain}"


def budget_name_for(username: str) -> str:
    return f"{username}-budget"


def classify_permission_sets(
    names: Sequence[str], management_permission_set: str
) -> Tuple[List[str], List[str]]:
    """
    Split requested permission set names by target account.

    Returns:
        (management-account names, member-account names), in request order
    """
    management = [name for name in names if name == management_permission_set]
    member = [name for name in names if name != management_permission_set]
    return management, member


def notification_recipients(
    user_email: str, management_email: Optional[str], extra_emails: Sequence[str]
) -> List[str]:
    """User email, then the management account email, then operator extras; not deduplicated."""
    recipients = [user_email]
    if management_email:
        recipients.append(management_email)
    recipients.extend(extra_emails)
    return recipients


@dataclass
class DeletionReport:
    """What ``delete_environment`` did; missing pieces are recorded as warnings."""

    username: str
    confirmed: bool
    user_id: Optional[str] = None
    account_id: Optional[str] = None
    budget_deleted: bool = False
    revoked: List[str] = field(default_factory=list)
    user_deleted: bool = False
    account_closure_requested: bool = False
    warnings: List[str] = field(default_factory=list)


class EnvironmentOrchestrator:
    """Composes the ensurers and the poller into the env create, show, list and delete flows."""

    def __init__(
        self,
        provider,
        settings: Settings,
        catalog: Optional[PermissionSetCatalog] = None,
        confirm: Confirm = use_default,
        sleep: Callable[[float], None] = time.sleep,
        progress: Optional[Progress] = None,
    ):
        self.provider = provider
        self.settings = settings
        self.catalog = catalog or PermissionSetCatalog(settings.permission_set_dir)
        self.confirm = confirm
        self.poller = OperationPoller(settings, sleep=sleep)
        self.progress = progress or (lambda message: logger.info(message))
        self._identity_center: Optional[IdentityCenter] = None

    @property
    def identity_center(self) -> IdentityCenter:
        if self._identity_center is None:
            self._identity_center = resolve_identity_center(self.provider, self.settings)
        return self._identity_center

    def create_environment(
        self,
        username: str,
        email: str,
        budget_amount,
        permission_set_names: Sequence[str],
        notification_emails: Sequence[str] = (),
    ) -> EnvironmentSummary:
        """
        Create or complete a user environment.

        Args:
            username: Identity Center username, also the member account name
            email: User email; the account email is derived from it
            budget_amount: Monthly budget in USD
            permission_set_names: Names to assign; the management set goes to the management account
            notification_emails: Extra budget alert recipients

        Returns:
            EnvironmentSummary
        """
        # Input validation happens before any provider call
        validate_username(username)
        validate_email(email)
        amount = validate_budget_amount(budget_amount)
        extras = [validate_email(item, "notification email") for item in notification_emails]
        names = [name for name in permission_set_names if name]
        if not names:
            raise ValidationError("At least one permission set is required.")
        configs = {name: self.catalog.get(name) for name in names}
        management_names, member_names = classify_permission_sets(
            names, self.settings.management_permission_set
        )
        account_email = derive_account_email(email, username) if member_names else None

        context = get_management_context(self.provider, require_management=True)
        instance_arn = self.identity_center.instance_arn

        self.progress("Checking permission sets...")
        permission_set_arns: Dict[str, str] = {}
        missing = []
        for name in names:
            if configs[name] is not None:
                continue
            existing = find_permission_set(self.provider, instance_arn, name)
            if existing is None:
                missing.append(name)
            else:
                permission_set_arns[name] = existing.arn
        if missing:
            raise ValidationError(
                f"Unknown permission set(s): {', '.join(missing)}. Each name needs a definition "
                f"in {self.catalog.directory} or must already exist in Identity Center"
            )

        for name in names:
            config = configs[name]
            if config is not None:
                result = ensure_permission_set(
                    self.provider, self.poller, instance_arn, config, self.confirm
                )
                permission_set_arns[name] = result.id

        summary = EnvironmentSummary(
            username=username,
            email=email,
            user_id="",
            user_created=False,
            management_account_id=context.account_id,
            management_permission_sets=management_names,
            member_permission_sets=member_names,
        )

        if member_names:
            self.progress(f"Ensuring member account '{username}'...")
            account = ensure_account(self.provider, self.poller, username, str(account_email))
            summary.account_name = username
            summary.account_id = account.id
            summary.account_email = account_email
            summary.account_created = account.created

        self.progress(f"Ensuring Identity Center user '{username}'...")
        user = ensure_user(
            self.provider, self.identity_center.identity_store_id, username, email
        )
        summary.user_id = user.id
        summary.user_created = user.created

        for name in management_names:
            self.progress(f"Assigning '{name}' on management account {context.account_id}...")
            ensure_assignment(
                self.provider,
                self.poller,
                instance_arn,
                context.account_id,
                permission_set_arns[name],
                user.id,
            )
            summary.assignments.append(
                Assignment(context.account_id, permission_set_arns[name], user.id)
            )

        if summary.account_id:
            for name in member_names:
                self.progress(f"Assigning '{name}' on account {summary.account_id}...")
                ensure_assignment(
                    self.provider,
                    self.poller,
                    instance_arn,
                    summary.account_id,
                    permission_set_arns[name],
                    user.id,
                )
                summary.assignments.append(
                    Assignment(summary.account_id, permission_set_arns[name], user.id)
                )

            recipients = notification_recipients(email, context.management_email, extras)
            spec = BudgetSpec(
                name=budget_name_for(username),
                amount=amount,
                emails=recipients,
                linked_account_id=summary.account_id,
                thresholds=self.settings.budget_thresholds,
            )
            self.progress(f"Ensuring budget '{spec.name}'...")
            budget = ensure_budget(self.provider, context.account_id, spec)
            summary.budget_name = spec.name
            summary.budget_amount = amount
            summary.budget_created = budget.created
            summary.notification_emails = recipients

        return summary

    def delete_environment(self, username: str) -> DeletionReport:
        """
        Remove a user environment, best effort.

        The budget goes first, then the user's assignments on the member
        account, then the identity. Closing the account itself is never
        automated; the report only records whether the operator asked for it.
        """
        validate_username(username)
        report = DeletionReport(username=username, confirmed=False)
        if not self.confirm(f"Delete the environment of '{username}'?", False):
            return report
        report.confirmed = True

        context = get_management_context(self.provider, require_management=True)
        store_id = self.identity_center.identity_store_id
        instance_arn = self.identity_center.instance_arn

        user = find_user(self.provider, store_id, username)
        account = find_account(self.provider, username)
        report.user_id = user.user_id if user else None
        report.account_id = account.id if account else None

        if account:
            self.progress(f"Deleting budget '{budget_name_for(username)}'...")
            try:
                self.provider.delete_budget(context.account_id, budget_name_for(username))
                report.budget_deleted = True
            except ClientError as e:
                report.warnings.append(f"Budget not found or already deleted ({e})")
        else:
            report.warnings.append(f"Account '{username}' not found")

        if user and account:
            self.progress("Revoking permissions...")
            try:
                ps_arns = self.provider.list_permission_sets_provisioned_to_account(
                    instance_arn, account.id
                )
            except ClientError as e:
                ps_arns = []
                report.warnings.append(f"Could not list permission sets on {account.id} ({e})")
            for ps_arn in ps_arns:
                try:
                    if revoke_assignment(
                        self.provider, self.poller, instance_arn, account.id, ps_arn, user.user_id
                    ):
                        report.revoked.append(ps_arn)
                except IsoEnvError as e:
                    report.warnings.append(f"Permissions not revoked: {e}")

        if user:
            self.progress(f"Deleting Identity Center user '{username}'...")
            try:
                self.provider.delete_user(store_id, user.user_id)
                report.user_deleted = True
            except ClientError as e:
                report.warnings.append(f"User not found or already deleted ({e})")
        else:
            report.warnings.append(f"User '{username}' not found")

        if account:
            report.account_closure_requested = self.confirm(
                f"Delete AWS account '{username}' ({account.id})?", False
            )

        for warning in report.warnings:
            logger.warning(warning)
        return report

    def show_environment(self, username: str) -> EnvironmentView:
        """Collect the user, account, budget and assignments of one environment."""
        context = get_management_context(self.provider)
        view = EnvironmentView(username=username)
        view.user = find_user(self.provider, self.identity_center.identity_store_id, username)
        view.account = find_account(self.provider, username)
        if view.account is None:
            return view

        try:
            budget = self.provider.describe_budget(context.account_id, budget_name_for(username))
        except ClientError as e:
            handle_aws_error(e, "DescribeBudget")
        view.budget = BudgetInfo.from_api(budget) if budget else None
        view.assignments = list_account_assignments(
            self.provider, self.identity_center.instance_arn, view.account.id
        )
        return view

    def list_environments(self) -> List[Tuple[IdentityUser, Optional[Account]]]:
        """Pair every Identity Center user with the account of the same name, if any."""
        get_management_context(self.provider)
        try:
            users = self.provider.list_users(self.identity_center.identity_store_id)
        except ClientError as e:
            handle_aws_error(e, "ListUsers")
        accounts = {account.name: account for account in list_active_accounts(self.provider)}
        return [
            (IdentityUser.from_api(data), accounts.get(data.get("UserName", "")))
            for data in users
        ]


def list_account_assignments(
    provider, instance_arn: str, account_id: str
) -> List[Tuple[Assignment, str]]:
    """
    Every assignment on an account, paired with its permission set name.

    Returns:
        List of (Assignment, permission set name)
    """
    results: List[Tuple[Assignment, str]] = []
    try:
        for ps_arn in provider.list_permission_sets_provisioned_to_account(
            instance_arn, account_id
        ):
            name = provider.describe_permission_set(instance_arn, ps_arn).get("Name", ps_arn)
            for item in provider.list_account_assignments(instance_arn, account_id, ps_arn):
                results.append((Assignment.from_api(item), name))
    except ClientError as e:
        handle_aws_error(e, "ListAccountAssignments")
    return results


__all__ = [
    "DeletionReport",
    "EnvironmentOrchestrator",
    "budget_name_for",
    "classify_permission_sets",
    "derive_account_email",
    "list_account_assignments",
    "notification_recipients",
]
