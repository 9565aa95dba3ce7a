"""Tests for the top-level isoenv CLI."""

from typer.testing import CliRunner

from src.isoenv import __version__
from src.isoenv.cli import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_lists_command_groups():
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for group in ("env", "account", "user", "permission-set", "budget", "bedrock", "session"):
        assert group in result.output


def test_env_help_lists_operations():
    result = runner.invoke(app, ["env", "--help"])

    assert result.exit_code == 0
    for command in ("create", "show", "list", "delete"):
        assert command in result.output
