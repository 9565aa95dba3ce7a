"""Error types and error handling helpers for isoenv.

Every failure a command can report maps onto one of the exception classes
below. Each carries the process exit code the CLI should use:

* ``1`` - validation or precondition failures and provider rejections
* ``2`` - asynchronous operation failures and poll timeouts
"""

import functools
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar, cast

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

EXIT_FAILURE = 1
EXIT_OPERATION_FAILURE = 2

ALREADY_EXISTS_CODES = frozenset(
    {
        "ConflictException",
        "DuplicateAccountException",
        "DuplicateRecordException",
        "EntityAlreadyExists",
        "ResourceInUseException",
    }
)

THROTTLING_MARKERS = ("Throttling", "Rate exceeded", "TooManyRequests")


class IsoEnvError(Exception):
    """Base exception for isoenv operations."""

    exit_code = EXIT_FAILURE

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        exit_code: Optional[int] = None,
    ):
        """Initialize the error.

        Args:
            message: Error message shown to the operator
            context: Additional context information
            exit_code: Overrides the class exit code
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}
        if exit_code is not None:
            self.exit_code = exit_code


class PreconditionError(IsoEnvError):
    """Raised when the environment is not usable: missing credentials, wrong account."""


class ValidationError(IsoEnvError):
    """Raised when operator input or a local config file is invalid."""


class ProviderError(IsoEnvError):
    """Raised when AWS rejects a call."""

    def __init__(
        self,
        operation: str,
        error_code: str,
        error_message: str,
        exit_code: Optional[int] = None,
    ):
        super().__init__(
            f"{operation} failed ({error_code}): {error_message}",
            context={"operation": operation, "error_code": error_code},
            exit_code=exit_code,
        )
        self.operation = operation
        self.error_code = error_code
        self.error_message = error_message

    @classmethod
    def from_client_error(
        cls, error: ClientError, operation: str, exit_code: Optional[int] = None
    ) -> "ProviderError":
        """Build a ProviderError that keeps the raw AWS error code and message."""
        code, message = error_details(error)
        return cls(operation, code, message, exit_code=exit_code)


class OperationFailedError(IsoEnvError):
    """Raised when an asynchronous AWS operation reaches the FAILED state."""

    exit_code = EXIT_OPERATION_FAILURE

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"{operation} failed: {reason}",
            context={"operation": operation, "reason": reason},
        )
        self.operation = operation
        self.reason = reason


class OperationTimeoutError(IsoEnvError):
    """Raised when an asynchronous AWS operation does not finish within the poll budget."""

    exit_code = EXIT_OPERATION_FAILURE

    def __init__(self, operation: str, attempts: int, interval: float):
        super().__init__(
            f"{operation} timed out after {attempts} attempts ({int(attempts * interval)}s)",
            context={"operation": operation, "attempts": attempts},
        )
        self.operation = operation
        self.attempts = attempts


def error_details(error: ClientError) -> Tuple[str, str]:
    """Return the ``(code, message)`` pair of a botocore ClientError."""
    error_info = error.response.get("Error", {})
    return error_info.get("Code", "Unknown"), error_info.get("Message", str(error))


def error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "Unknown")


def is_already_exists(error: ClientError) -> bool:
    """Whether AWS reported that the resource being created already exists."""
    code, message = error_details(error)
    if code in ALREADY_EXISTS_CODES:
        return True
    return "already exists" in message.lower()


def is_not_found(error: ClientError) -> bool:
    code = error_code(error)
    return code in (
        "NotFoundException",
        "ResourceNotFoundException",
        "NoSuchEntity",
        "AccountNotFoundException",
    )


def is_throttling(error: Exception) -> bool:
    if isinstance(error, ClientError):
        code, message = error_details(error)
        text = f"{code} {message}"
    else:
        text = str(error)
    return any(marker.lower() in text.lower() for marker in THROTTLING_MARKERS)


def handle_aws_error(error: ClientError, operation: str, exit_code: Optional[int] = None):
    """Log a botocore ClientError and re-raise it as a ProviderError.

    Args:
        error: The AWS exception that occurred
        operation: Name of the operation that failed
        exit_code: Exit code override for the resulting ProviderError

    Raises:
        ProviderError: Always
    """
    provider_error = ProviderError.from_client_error(error, operation, exit_code=exit_code)
    logger.error(f"AWS Error in {operation}: {provider_error.error_code}")
    raise provider_error from error


def with_throttling_retry(delay: float = 5.0, sleep: Callable[[float], None] = time.sleep):
    """
    Decorator that retries a call exactly once after a fixed delay on throttling.

    Only throttling errors are retried. Every other error propagates on the
    first attempt, and a second throttling error propagates as well.

    Args:
        delay: Seconds to wait before the single retry
        sleep: Sleep function, injectable for tests

    Returns:
        Decorator function
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except ClientError as e:
                if not is_throttling(e):
                    raise
                name = getattr(func, "__name__", "call")
                logger.warning(f"Rate limit exceeded in {name}, retrying in {delay}s")
                sleep(delay)
            return func(*args, **kwargs)

        return cast(F, wrapper)

    return decorator
