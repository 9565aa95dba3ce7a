"""IAM policy document for invoking Bedrock models through inference profiles."""

from typing import Any, Dict, List, Optional, Sequence

from ..utils.error_handler import ValidationError

POLICY_VERSION = "2012-10-17"
INVOKE_ACTIONS = ["bedrock:InvokeModel", "bedrock:InvokeModelWithResponseStream"]


def inference_profile_arn(region: str, account_id: str, profile_id: str) -> str:
    return f"arn:aws:bedrock:{region}:{account_id}:inference-profile/{profile_id}"


def foundation_model_arn(region: str, model_id: str) -> str:
    return f"arn:aws:bedrock:{region}::foundation-model/{model_id}"


def build_invoke_policy(
    inference_profile_ids: Sequence[str],
    model_ids: Sequence[str],
    target_regions: Optional[Sequence[str]],
    account_id: str,
    region: str,
) -> Dict[str, Any]:
    """
    Build a least-privilege policy that only allows invoking models through profiles.

    The Nth inference profile is paired with the Nth model. Each pair yields
    two statements: one allowing invocation of the profile itself, and one
    allowing invocation of the underlying foundation model in every target
    region, but only when the call goes through that profile.

    Args:
        inference_profile_ids: Inference profile IDs, e.g. us.anthropic.claude-3-5-sonnet-20240620-v1:0
        model_ids: Foundation model IDs, same length as inference_profile_ids
        target_regions: Regions the profile may route to, defaults to [region]
        account_id: Account owning the inference profiles
        region: Region the profiles are invoked from

    Returns:
        Policy document as a dictionary

    Raises:
        ValidationError: If the ID lists are empty or of different lengths
    """
    if not inference_profile_ids or not model_ids:
        raise ValidationError("At least one inference profile ID and one model ID are required")
    if len(inference_profile_ids) != len(model_ids):
        raise ValidationError("model_ids and inference_profile_ids must have the same length")

    regions: List[str] = list(target_regions) if target_regions else [region]
    profile_arns = [
        inference_profile_arn(region, account_id, profile_id)
        for profile_id in inference_profile_ids
    ]

    statements: List[Dict[str, Any]] = []
    for index, profile_arn in enumerate(profile_arns):
        statements.append(
            {
                "Sid": f"InvokeInferenceProfile{index}",
                "Effect": "Allow",
                "Action": list(INVOKE_ACTIONS),
                "Resource": [profile_arn],
            }
        )

    for index, model_id in enumerate(model_ids):
        statements.append(
            {
                "Sid": f"InvokeUnderlyingFoundationModelOnlyViaThatProfile{index}",
                "Effect": "Allow",
                "Action": list(INVOKE_ACTIONS),
                "Resource": [foundation_model_arn(target, model_id) for target in regions],
                "Condition": {
                    "StringLike": {"bedrock:InferenceProfileArn": profile_arns[index]}
                },
            }
        )

    return {"Version": POLICY_VERSION, "Statement": statements}
