"""AWS service client management.

This package provides:
- Session and client lifecycle management (AWSClientManager)
- The narrow provider interface used by the core orchestration (AwsProvider)
"""

from .manager import AWSClientManager
from .provider import AwsProvider

__all__ = [
    "AWSClientManager",
    "AwsProvider",
]
