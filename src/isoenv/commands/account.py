"""Member account commands for isoenv."""

from typing import Optional

import typer
from botocore.exceptions import ClientError
from rich.table import Table

from ..core.ensurer import ensure_account
from ..core.lookups import find_account, get_management_context, list_active_accounts
from ..core.poller import OperationPoller
from ..utils.error_handler import IsoEnvError, ValidationError, handle_aws_error, is_not_found
from ..utils.models import Account
from ..utils.validators import validate_account_id, validate_email
from .common import (
    build_context,
    console,
    handle_command_errors,
    profile_option,
    region_option,
    verbose_option,
)

app = typer.Typer(help="Manage AWS Organizations member accounts. Create, look up and list accounts.")


@app.command("create")
def create_account(
    name: str = typer.Option(..., "--name", "-n", help="Account name"),
    email: str = typer.Option(..., "--email", "-e", help="Root email of the new account"),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Create a member account, or report the existing one with the same name.

    Account creation typically takes 2-5 minutes.
    """
    with handle_command_errors("creating account", verbose):
        if not name.strip():
            raise ValidationError("Account name is required.")
        validate_email(email)
        context = build_context(profile, region, verbose)
        management = get_management_context(context.provider, require_management=True)
        console.print(
            f"[blue]Organizations enabled. Management account: {management.management_account_id}[/blue]"
        )

        console.print(f"[blue]Creating member account '{name}' ({email})...[/blue]")
        poller = OperationPoller(context.settings, sleep=context.sleep)
        result = ensure_account(context.provider, poller, name, email)

        if result.created:
            console.print("[green]Account created successfully![/green]")
        else:
            console.print(f"[yellow]Account '{name}' already exists[/yellow]")
        console.print(f"Account ID: {result.id}")


@app.command("get-id")
def get_account_id(
    name: str = typer.Option(..., "--name", "-n", help="Account name"),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Print the ID of the ACTIVE account with this name."""
    with handle_command_errors("looking up account", verbose):
        context = build_context(profile, region, verbose)
        get_management_context(context.provider)
        account = find_account(context.provider, name)
        if account is None:
            raise IsoEnvError(f"Account '{name}' not found")
        typer.echo(account.id)


@app.command("list")
def list_accounts(
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """List all ACTIVE accounts of the organization."""
    with handle_command_errors("listing accounts", verbose):
        context = build_context(profile, region, verbose)
        get_management_context(context.provider)
        accounts = list_active_accounts(context.provider)

        if not accounts:
            console.print("[yellow]No active member accounts found.[/yellow]")
            return

        table = Table(title=f"Active Accounts (Total: {len(accounts)})")
        table.add_column("Name", style="cyan")
        table.add_column("ID", style="green")
        table.add_column("Email")
        for account in accounts:
            table.add_row(account.name, account.id, account.email)
        console.print(table)


@app.command("check")
def check_account(
    account_id: str = typer.Option(..., "--account-id", "-a", help="12-digit account ID"),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Check that an account exists and is ACTIVE."""
    with handle_command_errors("checking account", verbose):
        validate_account_id(account_id)
        context = build_context(profile, region, verbose)
        get_management_context(context.provider)

        try:
            data = context.provider.describe_account(account_id)
        except ClientError as e:
            if not is_not_found(e):
                handle_aws_error(e, "DescribeAccount")
            data = {}

        account = Account.from_api(data)
        if account.status != "ACTIVE":
            raise IsoEnvError(f"Account {account_id} not found or not active")

        console.print("[green]Account exists and is active[/green]")
        console.print(f"  Name:   {account.name}")
        console.print(f"  ID:     {account.id}")
        console.print(f"  Email:  {account.email}")
        console.print(f"  Status: {account.status}")
