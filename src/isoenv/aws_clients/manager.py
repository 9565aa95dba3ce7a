"""AWS client utilities for isoenv."""

import logging
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..utils.error_handler import PreconditionError

logger = logging.getLogger(__name__)


class AWSClientManager:
    """Manages the boto3 session and the service clients built from it."""

    def __init__(self, profile: Optional[str] = None, region: Optional[str] = None):
        """
        Initialize the AWS client manager.

        Args:
            profile: AWS profile name to use
            region: AWS region to use
        """
        self.profile = profile
        self.region = region
        self.session: Optional[boto3.Session] = None
        self._clients: Dict[str, Any] = {}
        self._init_session()

    def _init_session(self) -> None:
        """Initialize the AWS session."""
        session_kwargs = {}
        if self.profile:
            session_kwargs["profile_name"] = self.profile
        # An explicit region overrides both the profile and AWS_DEFAULT_REGION
        if self.region:
            session_kwargs["region_name"] = self.region

        try:
            self.session = boto3.Session(**session_kwargs)
        except BotoCoreError as e:
            raise PreconditionError(f"Could not create AWS session: {e}") from e

        if not self.region:
            self.region = self.session.region_name

    def get_client(self, service_name: str) -> Any:
        """
        Get an AWS service client, creating it on first use.

        Args:
            service_name: Name of the AWS service

        Returns:
            AWS service client
        """
        if self.session is None:
            raise RuntimeError("Session not initialized")
        if service_name not in self._clients:
            self._clients[service_name] = self.session.client(service_name)
        return self._clients[service_name]

    def get_caller_identity(self) -> Dict[str, Any]:
        """
        Resolve the caller identity, the first check of every command.

        Returns:
            The sts:GetCallerIdentity response (Account, Arn, UserId)

        Raises:
            PreconditionError: If no valid credentials are available
        """
        try:
            return self.get_client("sts").get_caller_identity()
        except ClientError as e:
            raise PreconditionError(
                f"Failed to get AWS identity. Please configure AWS credentials. ({e})"
            ) from e
        except BotoCoreError as e:
            raise PreconditionError(
                f"Failed to get AWS identity. Please configure AWS credentials. ({e})"
            ) from e

    def validate_session(self) -> bool:
        """Return True when the session has usable credentials."""
        try:
            self.get_caller_identity()
            return True
        except PreconditionError as e:
            logger.debug(f"Session validation failed: {e}")
            return False

    def get_identity_center_client(self) -> Any:
        return self.get_client("sso-admin")

    def get_identity_store_client(self) -> Any:
        return self.get_client("identitystore")

    def get_organizations_client(self) -> Any:
        return self.get_client("organizations")

    def get_budgets_client(self) -> Any:
        return self.get_client("budgets")

    def get_cost_explorer_client(self) -> Any:
        return self.get_client("ce")

    def get_iam_client(self) -> Any:
        return self.get_client("iam")

    def get_bedrock_client(self) -> Any:
        return self.get_client("bedrock")

    def get_bedrock_runtime_client(self) -> Any:
        return self.get_client("bedrock-runtime")
