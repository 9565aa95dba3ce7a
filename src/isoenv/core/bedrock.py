"""Bedrock model access setup and IAM users restricted to inference profiles.

``setup`` is run once per account: it submits the model access use case,
accepts the model agreements and triggers a first invocation. The user
operations create IAM users whose only permission is invoking the configured
models through the configured inference profiles.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from botocore.exceptions import ClientError

from ..utils.error_handler import (
    ProviderError,
    ValidationError,
    error_details,
    handle_aws_error,
    is_already_exists,
    is_throttling,
    with_throttling_retry,
)
from ..utils.models import AccessKeyInfo
from ..utils.validators import (
    validate_iam_username,
    validate_inference_profile_id,
    validate_model_id,
    validate_region,
)
from .confirm import Confirm, use_default
from .ensurer import ensure_managed_policy
from .policy import build_invoke_policy

logger = logging.getLogger(__name__)

DEFAULT_POLICY_NAME_PREFIX = "CursorBedrockInvokePolicy"
MAX_ACCESS_KEYS = 2
BEDROCK_POLICY_MARKERS = re.compile(r"bedrock|cursor", re.IGNORECASE)

DEFAULT_USE_CASE = {
    "company_name": "YOUR_COMPANY_NAME",
    "company_website": "https://example.com",
    "intended_users": "internal developers",
    "industry_option": "Software",
    "other_industry_option": "",
    "use_cases": "Coding assistant in Cursor via Amazon Bedrock",
}


@dataclass
class BedrockConfig:
    """Bedrock configuration read from JSON."""

    region: str
    model_ids: List[str]
    inference_profile_ids: List[str]
    target_regions: List[str]
    policy_name_prefix: str = DEFAULT_POLICY_NAME_PREFIX
    admin_profile: Optional[str] = None
    use_case: Dict[str, str] = field(default_factory=dict)

    @property
    def policy_name(self) -> str:
        """The policy name prefix stripped of characters IAM does not allow."""
        return re.sub(r"[^a-zA-Z0-9+=,.@_-]", "", self.policy_name_prefix)

    def use_case_form(self) -> Dict[str, str]:
        values = {**DEFAULT_USE_CASE, **{k: v for k, v in self.use_case.items() if v is not None}}
        return {
            "companyName": values["company_name"],
            "companyWebsite": values["company_website"],
            "intendedUsers": values["intended_users"],
            "industryOption": values["industry_option"],
            "otherIndustryOption": values["other_industry_option"],
            "useCases": values["use_cases"],
        }


def _as_list(data: Dict[str, Any], plural: str, singular: str) -> List[str]:
    values = data.get(plural)
    if values:
        if not isinstance(values, list):
            raise ValidationError(f"{plural} must be a list")
        return [str(value) for value in values if value]
    single = data.get(singular)
    return [str(single)] if single else []


def load_bedrock_config(config_file: Union[str, Path]) -> BedrockConfig:
    """
    Read and validate a Bedrock configuration file.

    Raises:
        ValidationError: On a missing file, invalid JSON, missing fields or bad formats
    """
    path = Path(config_file).expanduser()
    if not path.is_file():
        raise ValidationError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in config file: {path} ({e})") from e
    except UnicodeDecodeError as e:
        raise ValidationError(f"Config file is not valid UTF-8: {path}") from e
    if not isinstance(data, dict):
        raise ValidationError(f"Config file must contain a JSON object: {path}")

    region = data.get("region")
    if not region:
        raise ValidationError("Missing required field: region")
    model_ids = _as_list(data, "model_ids", "model_id")
    if not model_ids:
        raise ValidationError("Missing required field: model_id or model_ids")
    profile_ids = _as_list(data, "inference_profile_ids", "inference_profile_id")
    if not profile_ids:
        raise ValidationError(
            "Missing required field: inference_profile_id or inference_profile_ids"
        )
    if len(model_ids) != len(profile_ids):
        raise ValidationError("model_ids and inference_profile_ids must have the same length")

    validate_region(region)
    for model_id in model_ids:
        validate_model_id(model_id)
    for profile_id in profile_ids:
        validate_inference_profile_id(profile_id)

    target_regions = [str(item) for item in data.get("target_regions") or []]
    for target in target_regions:
        validate_region(target)
    if not target_regions:
        logger.warning(f"No target_regions specified, using source region: {region}")
        target_regions = [region]

    use_case = data.get("use_case") or {}
    if not isinstance(use_case, dict):
        raise ValidationError("use_case must be an object")

    return BedrockConfig(
        region=region,
        model_ids=model_ids,
        inference_profile_ids=profile_ids,
        target_regions=target_regions,
        policy_name_prefix=data.get("policy_name_prefix") or DEFAULT_POLICY_NAME_PREFIX,
        admin_profile=data.get("admin_profile") or None,
        use_case=use_case,
    )


@dataclass
class SetupStep:
    """One step of the one-time setup and how it went."""

    step: str
    target: str
    status: str
    detail: str = ""


@dataclass
class BedrockUserResult:
    """Outcome of create-user."""

    username: str
    aborted: bool = False
    user_created: bool = False
    policy_arn: Optional[str] = None
    policy_created: bool = False
    access_key: Optional[AccessKeyInfo] = None
    deleted_key_id: Optional[str] = None


@dataclass
class BedrockUserDeletion:
    username: str
    deleted_keys: List[str] = field(default_factory=list)
    detached_policies: List[str] = field(default_factory=list)
    deleted_inline_policies: List[str] = field(default_factory=list)


class BedrockManager:
    """Runs the Bedrock setup and IAM user operations for one configuration."""

    def __init__(
        self,
        provider,
        config: BedrockConfig,
        confirm: Confirm = use_default,
        retry_delay: float = 5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.config = config
        self.confirm = confirm
        self.retry_delay = retry_delay
        self.sleep = sleep

    def check_access(self) -> None:
        """Fail early when the profile cannot use Bedrock in the configured region."""
        try:
            self.provider.list_foundation_models()
        except ClientError as e:
            handle_aws_error(e, f"ListFoundationModels in {self.config.region}")

    # One-time setup

    def setup(self) -> List[SetupStep]:
        """Submit the use case, accept agreements and trigger a first invocation."""
        steps = [self.submit_use_case()]
        for model_id in self.config.model_ids:
            steps.append(self.accept_agreement(model_id))
        for profile_id in self.config.inference_profile_ids:
            steps.append(self.trigger_first_invocation(profile_id))
        return steps

    def submit_use_case(self) -> SetupStep:
        try:
            self.provider.put_use_case_for_model_access(self.config.use_case_form())
        except ClientError as e:
            if is_already_exists(e):
                return SetupStep("use case", "account", "ok", "Use case already submitted")
            code, message = error_details(e)
            logger.warning(f"Failed to submit use case: {code}: {message}")
            if not self.confirm(
                "Use case submission failed. Submit it in the Bedrock console "
                "(Model access > Request model access). Continue anyway?",
                False,
            ):
                raise ProviderError("PutUseCaseForModelAccess", code, message) from e
            return SetupStep("use case", "account", "skipped", f"{code}: {message}")
        return SetupStep("use case", "account", "ok", "Use case submitted")

    def accept_agreement(self, model_id: str) -> SetupStep:
        try:
            offers = self.provider.list_agreement_offers(model_id)
        except ClientError as e:
            code, message = error_details(e)
            logger.warning(f"Could not fetch agreement offers for {model_id}: {message}")
            return SetupStep(
                "agreement", model_id, "skipped", "Model may not require an agreement"
            )

        offer_token = offers[0].get("offerToken") if offers else None
        if not offer_token:
            return SetupStep("agreement", model_id, "skipped", "No agreement offers found")

        try:
            self.provider.create_model_agreement(model_id, offer_token)
        except ClientError as e:
            if is_already_exists(e):
                return SetupStep("agreement", model_id, "ok", "Agreement already exists")
            code, message = error_details(e)
            logger.warning(f"Failed to create agreement for {model_id}: {code}: {message}")
            return SetupStep("agreement", model_id, "warning", f"{code}: {message}")
        return SetupStep("agreement", model_id, "ok", "Agreement accepted")

    def trigger_first_invocation(self, profile_id: str) -> SetupStep:
        invoke = with_throttling_retry(delay=self.retry_delay, sleep=self.sleep)(
            self.provider.converse
        )
        try:
            invoke(profile_id, "ping")
        except ClientError as e:
            code, message = error_details(e)
            if code in ("AccessDeniedException", "AccessDenied", "UnauthorizedOperation"):
                raise ProviderError("Converse", code, message) from e
            detail = "Failed after retry" if is_throttling(e) else f"{code}: {message}"
            logger.warning(f"First invocation of {profile_id} failed: {detail}")
            return SetupStep(
                "first invocation",
                profile_id,
                "warning",
                f"{detail} (OK if the subscription was already active)",
            )
        return SetupStep("first invocation", profile_id, "ok", "Subscription triggered")

    # IAM users

    def create_user(
        self,
        username: str,
        skip_access_key: bool = False,
        replace_key: Optional[str] = None,
    ) -> BedrockUserResult:
        """
        Create or update an IAM user that may only invoke the configured profiles.

        Args:
            username: IAM username
            skip_access_key: Only ensure the user and its policy
            replace_key: Access key ID to delete when the user already has two keys
        """
        validate_iam_username(username)
        result = BedrockUserResult(username=username)

        try:
            existing = self.provider.get_iam_user(username)
        except ClientError as e:
            handle_aws_error(e, "GetUser")

        if existing:
            logger.warning(f"User '{username}' already exists")
            if not self.confirm(
                f"User '{username}' already exists. Update its policy and access key?", True
            ):
                result.aborted = True
                return result
        else:
            try:
                self.provider.create_iam_user(username)
            except ClientError as e:
                handle_aws_error(e, "CreateUser")
            result.user_created = True

        account_id = self.provider.get_caller_identity()["Account"]
        document = build_invoke_policy(
            self.config.inference_profile_ids,
            self.config.model_ids,
            self.config.target_regions,
            account_id,
            self.config.region,
        )
        policy = ensure_managed_policy(self.provider, account_id, self.config.policy_name, document)
        result.policy_arn = policy.id
        result.policy_created = policy.created

        try:
            self.provider.attach_user_policy(username, policy.id)
        except ClientError as e:
            handle_aws_error(e, "AttachUserPolicy")

        if skip_access_key:
            return result

        result.deleted_key_id = self._make_room_for_key(username, replace_key)
        try:
            result.access_key = AccessKeyInfo.from_api(self.provider.create_access_key(username))
        except ClientError as e:
            handle_aws_error(e, "CreateAccessKey")
        return result

    def _make_room_for_key(self, username: str, replace_key: Optional[str]) -> Optional[str]:
        keys = self.list_access_keys(username)
        if len(keys) < MAX_ACCESS_KEYS:
            return None

        key_ids = [key.access_key_id for key in keys]
        if not replace_key:
            raise ValidationError(
                f"User already has {MAX_ACCESS_KEYS} access keys (maximum allowed): "
                f"{', '.join(key_ids)}. Pass --replace-key with the key to delete."
            )
        if replace_key not in key_ids:
            raise ValidationError(f"Access key {replace_key} does not belong to '{username}'")

        try:
            self.provider.delete_access_key(username, replace_key)
        except ClientError as e:
            handle_aws_error(e, "DeleteAccessKey")
        logger.info(f"Access key deleted: {replace_key}")
        return replace_key

    def _require_user(self, username: str) -> None:
        try:
            user = self.provider.get_iam_user(username)
        except ClientError as e:
            handle_aws_error(e, "GetUser")
        if user is None:
            raise ValidationError(f"User '{username}' not found")

    def list_access_keys(self, username: str) -> List[AccessKeyInfo]:
        try:
            return [AccessKeyInfo.from_api(key) for key in self.provider.list_access_keys(username)]
        except ClientError as e:
            handle_aws_error(e, "ListAccessKeys")

    def show_credentials(self, username: str) -> List[AccessKeyInfo]:
        """Access key metadata of a user; secrets cannot be retrieved after creation."""
        validate_iam_username(username)
        self._require_user(username)
        return self.list_access_keys(username)

    def list_users(self) -> List[Tuple[str, List[str]]]:
        """IAM users carrying a policy whose name mentions bedrock or cursor."""
        matches: List[Tuple[str, List[str]]] = []
        try:
            for user in self.provider.list_iam_users():
                username = user["UserName"]
                names = [
                    policy["PolicyName"]
                    for policy in self.provider.list_attached_user_policies(username)
                ]
                names.extend(self.provider.list_user_policies(username))
                relevant = [name for name in names if BEDROCK_POLICY_MARKERS.search(name)]
                if relevant:
                    matches.append((username, relevant))
        except ClientError as e:
            handle_aws_error(e, "ListUsers")
        return matches

    def delete_user(self, username: str) -> BedrockUserDeletion:
        """Delete access keys, detach and delete policies, then delete the user. The managed policy is kept."""
        validate_iam_username(username)
        self._require_user(username)
        report = BedrockUserDeletion(username=username)
        try:
            for key in self.provider.list_access_keys(username):
                self.provider.delete_access_key(username, key["AccessKeyId"])
                report.deleted_keys.append(key["AccessKeyId"])
            for policy in self.provider.list_attached_user_policies(username):
                self.provider.detach_user_policy(username, policy["PolicyArn"])
                report.detached_policies.append(policy["PolicyArn"])
            for policy_name in self.provider.list_user_policies(username):
                self.provider.delete_user_policy(username, policy_name)
                report.deleted_inline_policies.append(policy_name)
            self.provider.delete_iam_user(username)
        except ClientError as e:
            handle_aws_error(e, "DeleteUser")
        return report
