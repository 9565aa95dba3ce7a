"""Environment orchestration: idempotent ensurers, the operation poller and the pipelines built on them."""

from .confirm import Confirm, make_confirmer
from .orchestrator import DeletionReport, EnvironmentOrchestrator
from .permission_set_config import PermissionSetCatalog, load_permission_set_config
from .poller import OperationPoller, poll_operation

__all__ = [
    "Confirm",
    "make_confirmer",
    "DeletionReport",
    "EnvironmentOrchestrator",
    "PermissionSetCatalog",
    "load_permission_set_config",
    "OperationPoller",
    "poll_operation",
]
