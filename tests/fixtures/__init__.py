"""Test fixtures package for isoenv.

- fake_provider: in-memory FakeProvider with the AwsProvider method names
- permission_sets: local permission set definitions written to a directory

Usage:
    from tests.fixtures.fake_provider import FakeProvider, client_error
"""

from .fake_provider import (
    IDENTITY_STORE_ID,
    INSTANCE_ARN,
    MANAGEMENT_ACCOUNT_ID,
    MANAGEMENT_EMAIL,
    FakeProvider,
    client_error,
)

__all__ = [
    "IDENTITY_STORE_ID",
    "INSTANCE_ARN",
    "MANAGEMENT_ACCOUNT_ID",
    "MANAGEMENT_EMAIL",
    "FakeProvider",
    "client_error",
]
