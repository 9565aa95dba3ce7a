"""Data models for the AWS resources isoenv manages.

isoenv keeps no state between runs. These models describe what was found in
or sent to AWS during a single invocation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .error_handler import OperationFailedError, OperationTimeoutError


class OperationStatus(str, Enum):
    """Normalized state of an asynchronous AWS operation."""

    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_provider(cls, value: Optional[str]) -> "OperationStatus":
        """Map a raw AWS state string to a status, unrecognized values become UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class PollOutcome(str, Enum):
    """Terminal outcome of a poll loop."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


@dataclass
class StatusSnapshot:
    """One describe-status response, reduced to the fields the poller needs."""

    state: OperationStatus
    raw_state: Optional[str] = None
    resource_id: Optional[str] = None
    failure_reason: Optional[str] = None


@dataclass
class OperationResult:
    """Result of polling one asynchronous operation."""

    operation: str
    outcome: PollOutcome
    attempts: int
    resource_id: Optional[str] = None
    reason: Optional[str] = None
    interval: float = 0

    @property
    def succeeded(self) -> bool:
        return self.outcome == PollOutcome.SUCCEEDED

    def raise_for_status(self) -> "OperationResult":
        """
        Raise when the operation did not succeed.

        Returns:
            self, so successful results can be chained

        Raises:
            OperationFailedError: The operation reached FAILED
            OperationTimeoutError: The poll budget ran out
        """
        if self.outcome == PollOutcome.FAILED:
            raise OperationFailedError(self.operation, self.reason or "Unknown")
        if self.outcome == PollOutcome.TIMED_OUT:
            raise OperationTimeoutError(self.operation, self.attempts, self.interval)
        return self


@dataclass
class EnsureResult:
    """Outcome of an idempotent ensure call."""

    id: str
    created: bool
    updated: bool = False


@dataclass
class Account:
    """An AWS Organizations member account."""

    id: str
    name: str
    email: str
    status: str

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Account":
        return cls(
            id=data.get("Id", ""),
            name=data.get("Name", ""),
            email=data.get("Email", ""),
            status=data.get("Status", ""),
        )


@dataclass
class IdentityUser:
    """A user in the IAM Identity Center identity store."""

    user_id: str
    username: str
    display_name: str = ""
    given_name: str = ""
    family_name: str = ""
    email: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "IdentityUser":
        name = data.get("Name", {}) or {}
        emails = data.get("Emails", []) or []
        primary = next((e for e in emails if e.get("Primary")), emails[0] if emails else {})
        return cls(
            user_id=data.get("UserId", ""),
            username=data.get("UserName", ""),
            display_name=data.get("DisplayName", ""),
            given_name=name.get("GivenName", ""),
            family_name=name.get("FamilyName", ""),
            email=primary.get("Value", ""),
        )


@dataclass
class PermissionSetConfig:
    """A permission set definition read from a local JSON file."""

    name: str
    description: str
    session_duration: str
    inline_policy: Dict[str, Any]
    inline_policy_file: str
    managed_policies: List[str] = field(default_factory=list)
    source_file: Optional[str] = None

    @property
    def managed_policy_arns(self) -> List[str]:
        """Managed policy ARNs, bare names are expanded to AWS managed policies."""
        return [managed_policy_arn(policy) for policy in self.managed_policies]


def managed_policy_arn(policy: str) -> str:
    if policy.startswith("arn:"):
        return policy
    return f"arn:aws:iam::aws:policy/{policy}"


@dataclass
class PermissionSetInfo:
    """A permission set as described by sso-admin."""

    arn: str
    name: str
    description: str = ""
    session_duration: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "PermissionSetInfo":
        return cls(
            arn=data.get("PermissionSetArn", ""),
            name=data.get("Name", ""),
            description=data.get("Description", ""),
            session_duration=data.get("SessionDuration", ""),
        )


@dataclass
class Assignment:
    """A (principal, account, permission set) relation."""

    account_id: str
    permission_set_arn: str
    principal_id: str
    principal_type: str = "USER"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Assignment":
        return cls(
            account_id=data.get("AccountId", ""),
            permission_set_arn=data.get("PermissionSetArn", ""),
            principal_id=data.get("PrincipalId", ""),
            principal_type=data.get("PrincipalType", "USER"),
        )


@dataclass
class BudgetSpec:
    """Desired state of a monthly cost budget with 80/90/100% alerts."""

    name: str
    amount: int
    emails: List[str]
    linked_account_id: Optional[str] = None
    tag_filter: Optional[str] = None
    thresholds: Tuple[int, ...] = (80, 90, 100)

    @property
    def cost_filters(self) -> Dict[str, List[str]]:
        if self.linked_account_id:
            return {"LinkedAccount": [self.linked_account_id]}
        if self.tag_filter:
            return {"TagKeyValue": [self.tag_filter]}
        return {}

    @property
    def tracking(self) -> str:
        if self.linked_account_id:
            return f"LinkedAccount {self.linked_account_id}"
        if self.tag_filter:
            return f"Tag {self.tag_filter}"
        return "Organization-wide"


@dataclass
class BudgetInfo:
    """A budget as described by the Budgets API."""

    name: str
    limit_amount: str
    unit: str
    time_unit: str
    actual_spend: Optional[str] = None
    forecasted_spend: Optional[str] = None
    cost_filters: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "BudgetInfo":
        limit = data.get("BudgetLimit", {}) or {}
        spend = data.get("CalculatedSpend", {}) or {}
        return cls(
            name=data.get("BudgetName", ""),
            limit_amount=limit.get("Amount", ""),
            unit=limit.get("Unit", "USD"),
            time_unit=data.get("TimeUnit", ""),
            actual_spend=(spend.get("ActualSpend") or {}).get("Amount"),
            forecasted_spend=(spend.get("ForecastedSpend") or {}).get("Amount"),
            cost_filters=data.get("CostFilters", {}) or {},
        )


@dataclass
class ManagementContext:
    """Who is calling: account, ARN and, for env commands, the organization management account."""

    account_id: str
    arn: str
    management_account_id: Optional[str] = None
    management_email: Optional[str] = None


@dataclass
class EnvironmentSummary:
    """Outcome of ``env create``."""

    username: str
    email: str
    user_id: str
    user_created: bool
    management_account_id: str
    account_name: Optional[str] = None
    account_id: Optional[str] = None
    account_email: Optional[str] = None
    account_created: bool = False
    management_permission_sets: List[str] = field(default_factory=list)
    member_permission_sets: List[str] = field(default_factory=list)
    assignments: List[Assignment] = field(default_factory=list)
    budget_name: Optional[str] = None
    budget_amount: Optional[int] = None
    budget_created: bool = False
    notification_emails: List[str] = field(default_factory=list)


@dataclass
class EnvironmentView:
    """Read-only view of one user environment, for ``env show``."""

    username: str
    user: Optional[IdentityUser] = None
    account: Optional[Account] = None
    budget: Optional[BudgetInfo] = None
    assignments: List[Tuple[Assignment, str]] = field(default_factory=list)


@dataclass
class AccessKeyInfo:
    """IAM access key metadata; the secret is only ever available at creation."""

    access_key_id: str
    status: str
    create_date: Optional[datetime] = None
    secret_access_key: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "AccessKeyInfo":
        return cls(
            access_key_id=data.get("AccessKeyId", ""),
            status=data.get("Status", ""),
            create_date=data.get("CreateDate"),
            secret_access_key=data.get("SecretAccessKey"),
        )
