"""Fixed-interval poller for asynchronous AWS operations.

Account creation, account assignment creation and deletion, and permission
set provisioning all return a request ID and finish later. They share one
poll loop that is parameterized by a describe function and an extractor
that turns the describe response into a :class:`StatusSnapshot`.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from ..utils.config import Settings
from ..utils.models import OperationResult, OperationStatus, PollOutcome, StatusSnapshot

logger = logging.getLogger(__name__)

DescribeFn = Callable[[str], Dict[str, Any]]
ExtractFn = Callable[[Dict[str, Any]], StatusSnapshot]


def _snapshot(payload: Dict[str, Any], state_key: str, id_key: Optional[str]) -> StatusSnapshot:
    raw_state = payload.get(state_key)
    return StatusSnapshot(
        state=OperationStatus.from_provider(raw_state),
        raw_state=raw_state,
        resource_id=payload.get(id_key) if id_key else None,
        failure_reason=payload.get("FailureReason"),
    )


def extract_create_account_status(payload: Dict[str, Any]) -> StatusSnapshot:
    """CreateAccountStatus: State plus the new AccountId."""
    return _snapshot(payload, "State", "AccountId")


def extract_assignment_status(payload: Dict[str, Any]) -> StatusSnapshot:
    """AccountAssignmentCreationStatus or AccountAssignmentDeletionStatus."""
    return _snapshot(payload, "Status", "TargetId")


def extract_provisioning_status(payload: Dict[str, Any]) -> StatusSnapshot:
    """PermissionSetProvisioningStatus."""
    return _snapshot(payload, "Status", "AccountId")


def poll_operation(
    describe: DescribeFn,
    request_id: str,
    extract: ExtractFn,
    interval: float = 5,
    max_attempts: int = 24,
    sleep: Callable[[float], None] = time.sleep,
    operation: str = "operation",
) -> OperationResult:
    """
    Poll an asynchronous operation until it succeeds, fails or runs out of attempts.

    ``describe`` is called at most ``max_attempts`` times. IN_PROGRESS and
    unrecognized states keep the loop going; the caller sleeps ``interval``
    seconds between attempts but never after the last one.

    Args:
        describe: Returns the raw status payload for a request ID
        request_id: ID returned by the create call
        extract: Normalizes the payload into a StatusSnapshot
        interval: Seconds to wait between attempts
        max_attempts: Upper bound on describe calls
        sleep: Sleep function, injectable for tests
        operation: Human readable name used in logs and errors

    Returns:
        OperationResult with outcome SUCCEEDED, FAILED or TIMED_OUT
    """
    for attempt in range(1, max_attempts + 1):
        snapshot = extract(describe(request_id))

        if snapshot.state == OperationStatus.SUCCEEDED:
            logger.debug(f"{operation} {request_id} succeeded after {attempt} attempt(s)")
            return OperationResult(
                operation=operation,
                outcome=PollOutcome.SUCCEEDED,
                attempts=attempt,
                resource_id=snapshot.resource_id,
                interval=interval,
            )

        if snapshot.state == OperationStatus.FAILED:
            reason = snapshot.failure_reason or "Unknown"
            logger.error(f"{operation} {request_id} failed: {reason}")
            return OperationResult(
                operation=operation,
                outcome=PollOutcome.FAILED,
                attempts=attempt,
                reason=reason,
                interval=interval,
            )

        if snapshot.state == OperationStatus.UNKNOWN:
            logger.warning(
                f"{operation} {request_id} returned unexpected status {snapshot.raw_state!r}, "
                f"continuing ({attempt}/{max_attempts})"
            )
        else:
            logger.info(f"{operation} in progress ({attempt}/{max_attempts})")

        if attempt < max_attempts:
            sleep(interval)

    logger.error(f"{operation} {request_id} timed out after {max_attempts} attempts")
    return OperationResult(
        operation=operation,
        outcome=PollOutcome.TIMED_OUT,
        attempts=max_attempts,
        interval=interval,
    )


class OperationPoller:
    """Binds poll_operation to the interval and attempt budget of a Settings instance."""

    def __init__(self, settings: Settings, sleep: Callable[[float], None] = time.sleep):
        self.interval = settings.poll_interval_seconds
        self.max_attempts = settings.poll_max_attempts
        self.sleep = sleep

    def wait(
        self,
        describe: DescribeFn,
        request_id: str,
        extract: ExtractFn,
        operation: str,
    ) -> OperationResult:
        """Poll and raise OperationFailedError or OperationTimeoutError unless it succeeded."""
        result = poll_operation(
            describe,
            request_id,
            extract,
            interval=self.interval,
            max_attempts=self.max_attempts,
            sleep=self.sleep,
            operation=operation,
        )
        return result.raise_for_status()
