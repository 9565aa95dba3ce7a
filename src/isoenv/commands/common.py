"""Common command infrastructure for isoenv CLI commands.

This module provides shared functionality for all CLI commands including:
- Standard --profile, --region, --verbose and --yes options
- Building the settings, AWS provider and confirmation callback of a run
- Mapping isoenv errors to the console and to exit codes
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

import typer
from botocore.exceptions import ClientError
from rich.console import Console

from ..aws_clients.manager import AWSClientManager
from ..aws_clients.provider import AwsProvider
from ..core.confirm import Confirm, make_confirmer
from ..utils.config import Config, Settings, load_settings
from ..utils.error_handler import IsoEnvError, ProviderError
from ..utils.logging_config import setup_logging

# Shared instances
console = Console()
logger = logging.getLogger(__name__)


def profile_option() -> Any:
    """
    Create a standardized --profile option for commands.

    Returns:
        Typer option for AWS profile selection
    """
    return typer.Option(
        None, "--profile", "-p", help="AWS profile to use (uses default profile if not specified)"
    )


def region_option() -> Any:
    """
    Create a standardized --region option for commands.

    Returns:
        Typer option for AWS region selection
    """
    return typer.Option(
        None, "--region", "-r", help="AWS region to use (uses profile default if not specified)"
    )


def verbose_option() -> Any:
    """Create a verbose option for CLI commands."""
    return typer.Option(False, "--verbose", "-v", help="Show detailed output")


def yes_option() -> Any:
    """Create a --yes option that answers every confirmation with yes."""
    return typer.Option(False, "--yes", "-y", help="Answer yes to all confirmation prompts")


@dataclass
class CommandContext:
    """Everything a command needs from the environment for one run."""

    settings: Settings
    provider: Any
    confirm: Confirm
    sleep: Callable[[float], None] = time.sleep


def create_provider(profile: Optional[str] = None, region: Optional[str] = None) -> AwsProvider:
    return AwsProvider(AWSClientManager(profile=profile, region=region))


def build_context(
    profile: Optional[str] = None,
    region: Optional[str] = None,
    verbose: bool = False,
    assume_yes: bool = False,
) -> CommandContext:
    """
    Set up logging and build the settings, provider and confirmer for a command.

    Args:
        profile: AWS profile override
        region: AWS region override
        verbose: Enable debug logging
        assume_yes: The --yes flag

    Returns:
        CommandContext
    """
    config = Config()
    logging_config = config.get_logging_config()
    setup_logging(
        verbose=verbose,
        log_file=logging_config.get("file"),
        level=logging_config.get("level"),
    )

    settings = load_settings(config, profile=profile, region=region)
    provider = create_provider(settings.profile, settings.region)
    logger.debug(f"Using AWS profile={settings.profile or 'default'} region={provider.region}")
    return CommandContext(
        settings=settings,
        provider=provider,
        confirm=make_confirmer(assume_yes=assume_yes),
    )


def print_error(error: IsoEnvError) -> None:
    console.print(f"[red]Error: {error.message}[/red]")


@contextmanager
def handle_command_errors(operation: str, verbose: bool = False) -> Iterator[None]:
    """
    Turn isoenv and AWS errors raised inside a command into a message and exit code.

    Exit code 1 covers validation, precondition and provider rejections; 2
    covers failed or timed out asynchronous operations.

    Args:
        operation: Description of the operation, used in log messages
        verbose: Whether to show the traceback
    """
    try:
        yield
    except IsoEnvError as e:
        logger.debug(f"{operation} failed: {e.message}", exc_info=verbose)
        print_error(e)
        if verbose:
            console.print_exception()
        raise typer.Exit(e.exit_code)
    except ClientError as e:
        error = ProviderError.from_client_error(e, operation)
        logger.debug(f"{operation} failed: {error.message}", exc_info=verbose)
        print_error(error)
        raise typer.Exit(error.exit_code)
