#!/usr/bin/env python3
"""
isoenv - isolated AWS environments

A CLI tool that gives each developer an isolated AWS member account, an
Identity Center user, permission set assignments and a linked budget.
"""
import typer
from rich.console import Console

from . import __version__
from .commands import account, bedrock, budget, env, permission_set, session, user

app = typer.Typer(
    help="isoenv - Create isolated AWS environments: member account, Identity Center user, permissions and budget in one command.",
    add_completion=True,
    no_args_is_help=True,
)
console = Console()

# Add subcommands
app.add_typer(env.app, name="env")
app.add_typer(account.app, name="account")
app.add_typer(user.app, name="user")
app.add_typer(permission_set.app, name="permission-set")
app.add_typer(budget.app, name="budget")
app.add_typer(bedrock.app, name="bedrock")
app.add_typer(session.app, name="session")


@app.command()
def version():
    """Show the application version and exit."""
    console.print(f"isoenv version: {__version__}")
    raise typer.Exit()


if __name__ == "__main__":
    app()
