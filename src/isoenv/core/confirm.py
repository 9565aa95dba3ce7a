"""Confirmation callbacks injected into the core operations.

Core code never reads stdin. It asks a ``Confirm`` callback, which the
command layer builds from the ``--yes`` flag and whether stdin is a terminal.
"""

import logging
import sys
from typing import Callable, Optional

import typer

logger = logging.getLogger(__name__)

Confirm = Callable[[str, bool], bool]


def always_yes(message: str, default: bool = True) -> bool:
    return True


def always_no(message: str, default: bool = False) -> bool:
    return False


def use_default(message: str, default: bool = False) -> bool:
    """Answer every question with its default, for non-interactive runs."""
    logger.info(f"Non-interactive run, answering {'yes' if default else 'no'}: {message}")
    return default


def make_confirmer(assume_yes: bool = False, interactive: Optional[bool] = None) -> Confirm:
    """
    Build the confirmation callback for one command invocation.

    Args:
        assume_yes: The --yes flag, answers yes to everything
        interactive: Whether a terminal is attached, detected from stdin when None

    Returns:
        Confirm callback
    """
    if assume_yes:
        return always_yes

    if interactive is None:
        interactive = sys.stdin.isatty()
    if not interactive:
        return use_default

    def prompt(message: str, default: bool = False) -> bool:
        return typer.confirm(message, default=default)

    return prompt
