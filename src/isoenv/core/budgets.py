"""Budget operations for the management (paying) account."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from botocore.exceptions import ClientError

from ..utils.error_handler import error_details, handle_aws_error, is_not_found
from ..utils.models import BudgetInfo, BudgetSpec, EnsureResult
from .ensurer import ensure_budget

logger = logging.getLogger(__name__)

USER_TAG_KEY = "user"


def user_budget_name(username: str) -> str:
    return f"{username}-monthly-budget"


def user_tag_filter(username: str) -> str:
    """Cost Explorer TagKeyValue filter for resources tagged ``user=<username>``."""
    return f"{USER_TAG_KEY}${username}"


@dataclass
class TagActivation:
    """Result of activating the cost allocation tag."""

    activated: bool
    already_active: bool = False
    error: Optional[str] = None


def activate_user_cost_tag(provider) -> TagActivation:
    """
    Activate the ``user`` cost allocation tag.

    An already active tag counts as success. Any other failure is returned
    rather than raised; tag activation needs billing permissions the
    operator may not have, and the budget itself is already in place.
    """
    try:
        errors = provider.activate_cost_allocation_tag(USER_TAG_KEY)
    except ClientError as e:
        code, message = error_details(e)
        text = f"{code}: {message}"
        if "already active" in message.lower() or "already activated" in message.lower():
            return TagActivation(activated=True, already_active=True)
        logger.warning(f"Could not activate cost allocation tag '{USER_TAG_KEY}': {text}")
        return TagActivation(activated=False, error=text)

    if errors:
        message = "; ".join(str(item.get("Message", item)) for item in errors)
        if "already active" in message.lower():
            return TagActivation(activated=True, already_active=True)
        return TagActivation(activated=False, error=message)
    return TagActivation(activated=True)


def create_budget(
    provider,
    account_id: str,
    name: str,
    amount: int,
    emails: Sequence[str],
    linked_account_id: Optional[str] = None,
    tag_filter: Optional[str] = None,
    thresholds: Sequence[int] = (80, 90, 100),
) -> EnsureResult:
    spec = BudgetSpec(
        name=name,
        amount=amount,
        emails=list(emails),
        linked_account_id=linked_account_id,
        tag_filter=tag_filter,
        thresholds=tuple(thresholds),
    )
    return ensure_budget(provider, account_id, spec)


def get_budget(provider, account_id: str, name: str) -> Optional[BudgetInfo]:
    try:
        data = provider.describe_budget(account_id, name)
    except ClientError as e:
        handle_aws_error(e, "DescribeBudget")
    return BudgetInfo.from_api(data) if data else None


def list_budgets(provider, account_id: str) -> List[BudgetInfo]:
    try:
        return [BudgetInfo.from_api(data) for data in provider.describe_budgets(account_id)]
    except ClientError as e:
        handle_aws_error(e, "DescribeBudgets")


def delete_budget(provider, account_id: str, name: str) -> bool:
    """
    Delete a budget by name.

    Returns:
        False when the budget did not exist
    """
    try:
        provider.delete_budget(account_id, name)
    except ClientError as e:
        if is_not_found(e):
            logger.warning(f"Budget '{name}' not found")
            return False
        handle_aws_error(e, "DeleteBudget")
    return True
