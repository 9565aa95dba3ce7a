"""Narrow AWS provider interface used by the ensurers and the orchestrator.

Every AWS operation isoenv performs goes through exactly one method of
:class:`AwsProvider`. The methods return plain response data and let
``botocore.exceptions.ClientError`` propagate unchanged; interpreting error
codes ("already exists", "not found") is the caller's job. Tests substitute
an in-memory fake with the same method names.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from ..utils.error_handler import is_not_found
from .manager import AWSClientManager

logger = logging.getLogger(__name__)


class AwsProvider:
    """One method per AWS control-plane operation, backed by an AWSClientManager."""

    def __init__(self, client_manager: AWSClientManager):
        self.client_manager = client_manager

    @property
    def region(self) -> Optional[str]:
        return self.client_manager.region

    def _paginate(self, client: Any, operation: str, result_key: str, **kwargs: Any) -> List[Any]:
        items: List[Any] = []
        paginator = client.get_paginator(operation)
        for page in paginator.paginate(**kwargs):
            items.extend(page.get(result_key, []))
        return items

    # STS / Organizations

    def get_caller_identity(self) -> Dict[str, Any]:
        return self.client_manager.get_caller_identity()

    def describe_organization(self) -> Dict[str, Any]:
        response = self.client_manager.get_organizations_client().describe_organization()
        return response.get("Organization", {})

    def list_accounts(self) -> List[Dict[str, Any]]:
        client = self.client_manager.get_organizations_client()
        return self._paginate(client, "list_accounts", "Accounts")

    def describe_account(self, account_id: str) -> Dict[str, Any]:
        response = self.client_manager.get_organizations_client().describe_account(
            AccountId=account_id
        )
        return response.get("Account", {})

    def create_account(self, name: str, email: str) -> str:
        """Start account creation and return the CreateAccountStatus request ID."""
        response = self.client_manager.get_organizations_client().create_account(
            Email=email, AccountName=name
        )
        return response["CreateAccountStatus"]["Id"]

    def describe_create_account_status(self, request_id: str) -> Dict[str, Any]:
        response = self.client_manager.get_organizations_client().describe_create_account_status(
            CreateAccountRequestId=request_id
        )
        return response.get("CreateAccountStatus", {})

    # Identity Center instance and identity store

    def list_instances(self) -> List[Dict[str, Any]]:
        client = self.client_manager.get_identity_center_client()
        return self._paginate(client, "list_instances", "Instances")

    def find_user(self, identity_store_id: str, username: str) -> Optional[Dict[str, Any]]:
        users = self.client_manager.get_identity_store_client().list_users(
            IdentityStoreId=identity_store_id,
            Filters=[{"AttributePath": "UserName", "AttributeValue": username}],
        )
        matches = users.get("Users", [])
        return matches[0] if matches else None

    def list_users(self, identity_store_id: str) -> List[Dict[str, Any]]:
        client = self.client_manager.get_identity_store_client()
        return self._paginate(client, "list_users", "Users", IdentityStoreId=identity_store_id)

    def create_user(
        self,
        identity_store_id: str,
        username: str,
        display_name: str,
        given_name: str,
        family_name: str,
        email: str,
    ) -> str:
        response = self.client_manager.get_identity_store_client().create_user(
            IdentityStoreId=identity_store_id,
            UserName=username,
            DisplayName=display_name,
            Name={"GivenName": given_name, "FamilyName": family_name},
            Emails=[{"Value": email, "Type": "Work", "Primary": True}],
        )
        return response["UserId"]

    def describe_user(self, identity_store_id: str, user_id: str) -> Dict[str, Any]:
        return self.client_manager.get_identity_store_client().describe_user(
            IdentityStoreId=identity_store_id, UserId=user_id
        )

    def delete_user(self, identity_store_id: str, user_id: str) -> None:
        self.client_manager.get_identity_store_client().delete_user(
            IdentityStoreId=identity_store_id, UserId=user_id
        )

    # Permission sets

    def list_permission_sets(self, instance_arn: str) -> List[str]:
        client = self.client_manager.get_identity_center_client()
        return self._paginate(
            client, "list_permission_sets", "PermissionSets", InstanceArn=instance_arn
        )

    def describe_permission_set(self, instance_arn: str, permission_set_arn: str) -> Dict[str, Any]:
        response = self.client_manager.get_identity_center_client().describe_permission_set(
            InstanceArn=instance_arn, PermissionSetArn=permission_set_arn
        )
        return response.get("PermissionSet", {})

    def create_permission_set(
        self, instance_arn: str, name: str, description: str, session_duration: str
    ) -> str:
        response = self.client_manager.get_identity_center_client().create_permission_set(
            InstanceArn=instance_arn,
            Name=name,
            Description=description,
            SessionDuration=session_duration,
        )
        return response["PermissionSet"]["PermissionSetArn"]

    def update_permission_set(
        self,
        instance_arn: str,
        permission_set_arn: str,
        description: str,
        session_duration: str,
    ) -> None:
        self.client_manager.get_identity_center_client().update_permission_set(
            InstanceArn=instance_arn,
            PermissionSetArn=permission_set_arn,
            Description=description,
            SessionDuration=session_duration,
        )

    def get_inline_policy(self, instance_arn: str, permission_set_arn: str) -> Optional[str]:
        response = (
            self.client_manager.get_identity_center_client().get_inline_policy_for_permission_set(
                InstanceArn=instance_arn, PermissionSetArn=permission_set_arn
            )
        )
        return response.get("InlinePolicy") or None

    def put_inline_policy(
        self, instance_arn: str, permission_set_arn: str, policy: Dict[str, Any]
    ) -> None:
        self.client_manager.get_identity_center_client().put_inline_policy_to_permission_set(
            InstanceArn=instance_arn,
            PermissionSetArn=permission_set_arn,
            InlinePolicy=json.dumps(policy),
        )

    def list_managed_policies(self, instance_arn: str, permission_set_arn: str) -> List[str]:
        client = self.client_manager.get_identity_center_client()
        policies = self._paginate(
            client,
            "list_managed_policies_in_permission_set",
            "AttachedManagedPolicies",
            InstanceArn=instance_arn,
            PermissionSetArn=permission_set_arn,
        )
        return [policy["Arn"] for policy in policies]

    def attach_managed_policy(
        self, instance_arn: str, permission_set_arn: str, policy_arn: str
    ) -> None:
        self.client_manager.get_identity_center_client().attach_managed_policy_to_permission_set(
            InstanceArn=instance_arn,
            PermissionSetArn=permission_set_arn,
            ManagedPolicyArn=policy_arn,
        )

    def detach_managed_policy(
        self, instance_arn: str, permission_set_arn: str, policy_arn: str
    ) -> None:
        self.client_manager.get_identity_center_client().detach_managed_policy_from_permission_set(
            InstanceArn=instance_arn,
            PermissionSetArn=permission_set_arn,
            ManagedPolicyArn=policy_arn,
        )

    def list_accounts_for_provisioned_permission_set(
        self, instance_arn: str, permission_set_arn: str
    ) -> List[str]:
        client = self.client_manager.get_identity_center_client()
        return self._paginate(
            client,
            "list_accounts_for_provisioned_permission_set",
            "AccountIds",
            InstanceArn=instance_arn,
            PermissionSetArn=permission_set_arn,
        )

    def provision_permission_set(
        self, instance_arn: str, permission_set_arn: str, account_id: str
    ) -> str:
        response = self.client_manager.get_identity_center_client().provision_permission_set(
            InstanceArn=instance_arn,
            PermissionSetArn=permission_set_arn,
            TargetId=account_id,
            TargetType="AWS_ACCOUNT",
        )
        return response["PermissionSetProvisioningStatus"]["RequestId"]

    def describe_permission_set_provisioning_status(
        self, instance_arn: str, request_id: str
    ) -> Dict[str, Any]:
        client = self.client_manager.get_identity_center_client()
        response = client.describe_permission_set_provisioning_status(
            InstanceArn=instance_arn, ProvisionPermissionSetRequestId=request_id
        )
        return response.get("PermissionSetProvisioningStatus", {})

    # Account assignments

    def list_account_assignments(
        self, instance_arn: str, account_id: str, permission_set_arn: str
    ) -> List[Dict[str, Any]]:
        client = self.client_manager.get_identity_center_client()
        return self._paginate(
            client,
            "list_account_assignments",
            "AccountAssignments",
            InstanceArn=instance_arn,
            AccountId=account_id,
            PermissionSetArn=permission_set_arn,
        )

    def list_permission_sets_provisioned_to_account(
        self, instance_arn: str, account_id: str
    ) -> List[str]:
        client = self.client_manager.get_identity_center_client()
        return self._paginate(
            client,
            "list_permission_sets_provisioned_to_account",
            "PermissionSets",
            InstanceArn=instance_arn,
            AccountId=account_id,
        )

    def create_account_assignment(
        self, instance_arn: str, account_id: str, permission_set_arn: str, principal_id: str
    ) -> str:
        response = self.client_manager.get_identity_center_client().create_account_assignment(
            InstanceArn=instance_arn,
            TargetId=account_id,
            TargetType="AWS_ACCOUNT",
            PermissionSetArn=permission_set_arn,
            PrincipalType="USER",
            PrincipalId=principal_id,
        )
        return response["AccountAssignmentCreationStatus"]["RequestId"]

    def describe_account_assignment_creation_status(
        self, instance_arn: str, request_id: str
    ) -> Dict[str, Any]:
        client = self.client_manager.get_identity_center_client()
        response = client.describe_account_assignment_creation_status(
            InstanceArn=instance_arn, AccountAssignmentCreationRequestId=request_id
        )
        return response.get("AccountAssignmentCreationStatus", {})

    def delete_account_assignment(
        self, instance_arn: str, account_id: str, permission_set_arn: str, principal_id: str
    ) -> str:
        response = self.client_manager.get_identity_center_client().delete_account_assignment(
            InstanceArn=instance_arn,
            TargetId=account_id,
            TargetType="AWS_ACCOUNT",
            PermissionSetArn=permission_set_arn,
            PrincipalType="USER",
            PrincipalId=principal_id,
        )
        return response["AccountAssignmentDeletionStatus"]["RequestId"]

    def describe_account_assignment_deletion_status(
        self, instance_arn: str, request_id: str
    ) -> Dict[str, Any]:
        client = self.client_manager.get_identity_center_client()
        response = client.describe_account_assignment_deletion_status(
            InstanceArn=instance_arn, AccountAssignmentDeletionRequestId=request_id
        )
        return response.get("AccountAssignmentDeletionStatus", {})

    # Budgets and Cost Explorer

    def describe_budget(self, account_id: str, name: str) -> Optional[Dict[str, Any]]:
        """Return the budget, or None when it does not exist."""
        try:
            response = self.client_manager.get_budgets_client().describe_budget(
                AccountId=account_id, BudgetName=name
            )
        except ClientError as e:
            if is_not_found(e):
                return None
            raise
        return response.get("Budget")

    def describe_budgets(self, account_id: str) -> List[Dict[str, Any]]:
        client = self.client_manager.get_budgets_client()
        return self._paginate(client, "describe_budgets", "Budgets", AccountId=account_id)

    def create_budget(
        self,
        account_id: str,
        budget: Dict[str, Any],
        notifications: List[Dict[str, Any]],
    ) -> None:
        self.client_manager.get_budgets_client().create_budget(
            AccountId=account_id,
            Budget=budget,
            NotificationsWithSubscribers=notifications,
        )

    def delete_budget(self, account_id: str, name: str) -> None:
        self.client_manager.get_budgets_client().delete_budget(
            AccountId=account_id, BudgetName=name
        )

    def activate_cost_allocation_tag(self, tag_key: str) -> List[Dict[str, Any]]:
        """Activate a user-defined cost allocation tag, returning any per-tag errors."""
        response = self.client_manager.get_cost_explorer_client().update_cost_allocation_tags_status(
            CostAllocationTagsStatus=[{"TagKey": tag_key, "Status": "Active"}]
        )
        return response.get("Errors", [])

    # IAM

    def get_iam_user(self, username: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.client_manager.get_iam_client().get_user(UserName=username)
        except ClientError as e:
            if is_not_found(e):
                return None
            raise
        return response.get("User")

    def create_iam_user(self, username: str) -> Dict[str, Any]:
        response = self.client_manager.get_iam_client().create_user(UserName=username)
        return response.get("User", {})

    def list_iam_users(self) -> List[Dict[str, Any]]:
        return self._paginate(self.client_manager.get_iam_client(), "list_users", "Users")

    def delete_iam_user(self, username: str) -> None:
        self.client_manager.get_iam_client().delete_user(UserName=username)

    def get_policy(self, policy_arn: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.client_manager.get_iam_client().get_policy(PolicyArn=policy_arn)
        except ClientError as e:
            if is_not_found(e):
                return None
            raise
        return response.get("Policy")

    def create_policy(self, name: str, document: Dict[str, Any], description: str = "") -> str:
        response = self.client_manager.get_iam_client().create_policy(
            PolicyName=name,
            PolicyDocument=json.dumps(document),
            Description=description,
        )
        return response["Policy"]["Arn"]

    def list_policy_versions(self, policy_arn: str) -> List[Dict[str, Any]]:
        client = self.client_manager.get_iam_client()
        return self._paginate(client, "list_policy_versions", "Versions", PolicyArn=policy_arn)

    def delete_policy_version(self, policy_arn: str, version_id: str) -> None:
        self.client_manager.get_iam_client().delete_policy_version(
            PolicyArn=policy_arn, VersionId=version_id
        )

    def create_policy_version(self, policy_arn: str, document: Dict[str, Any]) -> str:
        response = self.client_manager.get_iam_client().create_policy_version(
            PolicyArn=policy_arn,
            PolicyDocument=json.dumps(document),
            SetAsDefault=True,
        )
        return response["PolicyVersion"]["VersionId"]

    def attach_user_policy(self, username: str, policy_arn: str) -> None:
        self.client_manager.get_iam_client().attach_user_policy(
            UserName=username, PolicyArn=policy_arn
        )

    def list_attached_user_policies(self, username: str) -> List[Dict[str, Any]]:
        client = self.client_manager.get_iam_client()
        return self._paginate(
            client, "list_attached_user_policies", "AttachedPolicies", UserName=username
        )

    def detach_user_policy(self, username: str, policy_arn: str) -> None:
        self.client_manager.get_iam_client().detach_user_policy(
            UserName=username, PolicyArn=policy_arn
        )

    def list_user_policies(self, username: str) -> List[str]:
        client = self.client_manager.get_iam_client()
        return self._paginate(client, "list_user_policies", "PolicyNames", UserName=username)

    def delete_user_policy(self, username: str, policy_name: str) -> None:
        self.client_manager.get_iam_client().delete_user_policy(
            UserName=username, PolicyName=policy_name
        )

    def list_access_keys(self, username: str) -> List[Dict[str, Any]]:
        client = self.client_manager.get_iam_client()
        return self._paginate(client, "list_access_keys", "AccessKeyMetadata", UserName=username)

    def create_access_key(self, username: str) -> Dict[str, Any]:
        response = self.client_manager.get_iam_client().create_access_key(UserName=username)
        return response["AccessKey"]

    def delete_access_key(self, username: str, access_key_id: str) -> None:
        self.client_manager.get_iam_client().delete_access_key(
            UserName=username, AccessKeyId=access_key_id
        )

    # Bedrock

    def list_foundation_models(self) -> List[Dict[str, Any]]:
        response = self.client_manager.get_bedrock_client().list_foundation_models()
        return response.get("modelSummaries", [])

    def put_use_case_for_model_access(self, form_data: Dict[str, Any]) -> None:
        self.client_manager.get_bedrock_client().put_use_case_for_model_access(
            formData=json.dumps(form_data).encode("utf-8")
        )

    def list_agreement_offers(self, model_id: str) -> List[Dict[str, Any]]:
        response = self.client_manager.get_bedrock_client().list_foundation_model_agreement_offers(
            modelId=model_id, offerType="PUBLIC"
        )
        return response.get("offers", [])

    def create_model_agreement(self, model_id: str, offer_token: str) -> None:
        self.client_manager.get_bedrock_client().create_foundation_model_agreement(
            modelId=model_id, offerToken=offer_token
        )

    def converse(self, model_id: str, text: str) -> Dict[str, Any]:
        return self.client_manager.get_bedrock_runtime_client().converse(
            modelId=model_id,
            messages=[{"role": "user", "content": [{"text": text}]}],
        )
