"""Fixtures for command tests: a CliRunner and a build_context backed by FakeProvider."""

import pytest
from typer.testing import CliRunner

from src.isoenv.commands.common import CommandContext
from src.isoenv.core.confirm import make_confirmer


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def build_context(provider, settings):
    """
    Stand-in for commands.common.build_context.

    Patch it in with ``patch("src.isoenv.commands.<module>.build_context", side_effect=build_context)``.
    Runs are non-interactive, so confirmations take their default unless --yes is given.
    """

    def build(profile=None, region=None, verbose=False, assume_yes=False):
        return CommandContext(
            settings=settings,
            provider=provider,
            confirm=make_confirmer(assume_yes=assume_yes, interactive=False),
            sleep=lambda seconds: None,
        )

    return build
