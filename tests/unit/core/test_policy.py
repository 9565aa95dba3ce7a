"""Tests for the Bedrock invoke policy builder."""

import pytest

from src.isoenv.core.policy import (
    INVOKE_ACTIONS,
    build_invoke_policy,
    foundation_model_arn,
    inference_profile_arn,
)
from src.isoenv.utils.error_handler import ValidationError

ACCOUNT_ID = "123456789012"
PROFILES = [
    "us.anthropic.claude-3-5-sonnet-20240620-v1:0",
    "us.anthropic.claude-3-haiku-20240307-v1:0",
]
MODELS = [
    "anthropic.claude-3-5-sonnet-20240620-v1:0",
    "anthropic.claude-3-haiku-20240307-v1:0",
]
REGIONS = ["us-east-1", "us-east-2", "us-west-2"]


def test_arn_helpers():
    assert (
        inference_profile_arn("us-east-1", ACCOUNT_ID, PROFILES[0])
        == f"arn:aws:bedrock:us-east-1:{ACCOUNT_ID}:inference-profile/{PROFILES[0]}"
    )
    assert (
        foundation_model_arn("us-west-2", MODELS[1])
        == f"arn:aws:bedrock:us-west-2::foundation-model/{MODELS[1]}"
    )


def test_policy_pairs_profiles_with_models_across_regions():
    """Test two profiles, two models and three regions give 4 statements and 6 model ARNs."""
    policy = build_invoke_policy(PROFILES, MODELS, REGIONS, ACCOUNT_ID, "us-east-1")

    assert policy["Version"] == "2012-10-17"
    statements = policy["Statement"]
    assert len(statements) == 4

    profile_statements = statements[:2]
    for index, statement in enumerate(profile_statements):
        assert statement["Effect"] == "Allow"
        assert statement["Action"] == INVOKE_ACTIONS
        assert statement["Resource"] == [
            inference_profile_arn("us-east-1", ACCOUNT_ID, PROFILES[index])
        ]
        assert "Condition" not in statement

    model_statements = statements[2:]
    model_arns = []
    for index, statement in enumerate(model_statements):
        expected = [foundation_model_arn(region, MODELS[index]) for region in REGIONS]
        assert statement["Resource"] == expected
        assert statement["Condition"] == {
            "StringLike": {
                "bedrock:InferenceProfileArn": inference_profile_arn(
                    "us-east-1", ACCOUNT_ID, PROFILES[index]
                )
            }
        }
        model_arns.extend(statement["Resource"])
    assert len(model_arns) == 6


def test_policy_statement_ids_are_unique():
    policy = build_invoke_policy(PROFILES, MODELS, REGIONS, ACCOUNT_ID, "us-east-1")
    sids = [statement["Sid"] for statement in policy["Statement"]]
    assert len(sids) == len(set(sids))


def test_target_regions_default_to_home_region():
    policy = build_invoke_policy(PROFILES[:1], MODELS[:1], None, ACCOUNT_ID, "eu-west-1")
    model_statement = policy["Statement"][1]
    assert model_statement["Resource"] == [foundation_model_arn("eu-west-1", MODELS[0])]


def test_mismatched_lengths_are_rejected():
    with pytest.raises(ValidationError, match="same length"):
        build_invoke_policy(PROFILES, MODELS[:1], REGIONS, ACCOUNT_ID, "us-east-1")


def test_empty_lists_are_rejected():
    with pytest.raises(ValidationError):
        build_invoke_policy([], [], REGIONS, ACCOUNT_ID, "us-east-1")
