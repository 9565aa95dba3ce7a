"""Identity Center user commands for isoenv."""

from typing import Optional

import typer
from botocore.exceptions import ClientError
from rich.table import Table

from ..core.ensurer import ensure_assignment, ensure_user
from ..core.lookups import (
    find_permission_set,
    find_user,
    get_management_context,
    resolve_identity_center,
)
from ..core.poller import OperationPoller
from ..utils.error_handler import IsoEnvError, ValidationError, handle_aws_error
from ..utils.models import IdentityUser
from ..utils.validators import validate_email, validate_username
from .common import (
    build_context,
    console,
    handle_command_errors,
    profile_option,
    region_option,
    verbose_option,
    yes_option,
)

app = typer.Typer(
    help="Manage users in AWS Identity Center. Create, look up, list and delete users in the Identity Store."
)


def _require_user(context, username: str) -> IdentityUser:
    identity_center = resolve_identity_center(context.provider, context.settings)
    user = find_user(context.provider, identity_center.identity_store_id, username)
    if user is None:
        raise IsoEnvError(f"User '{username}' not found")
    return user


@app.command("create")
def create_user(
    username: str = typer.Option(..., "--username", "-u", help="Username (e.g., alice or alice-dev)"),
    email: str = typer.Option(..., "--email", "-e", help="Email address for activation"),
    permission_set_name: Optional[str] = typer.Option(
        None,
        "--permission-set-name",
        help="Existing permission set to assign to the user on the current account",
    ),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Create an Identity Center user, or report the existing one.

    The given and family names are derived from the username: 'alice-dev'
    becomes alice / dev, a name without a dash gets the family name 'User'.
    """
    with handle_command_errors("creating user", verbose):
        validate_username(username)
        validate_email(email)
        context = build_context(profile, region, verbose)
        caller = get_management_context(context.provider)
        identity_center = resolve_identity_center(context.provider, context.settings)

        ps_arn = None
        if permission_set_name:
            permission_set = find_permission_set(
                context.provider, identity_center.instance_arn, permission_set_name
            )
            if permission_set is None:
                raise ValidationError(f"Permission set '{permission_set_name}' not found")
            ps_arn = permission_set.arn

        result = ensure_user(context.provider, identity_center.identity_store_id, username, email)
        if result.created:
            console.print(f"[green]User '{username}' created[/green]")
        else:
            console.print(f"[yellow]User '{username}' already exists[/yellow]")
        console.print(f"User ID: {result.id}")

        if ps_arn:
            poller = OperationPoller(context.settings, sleep=context.sleep)
            assignment = ensure_assignment(
                context.provider,
                poller,
                identity_center.instance_arn,
                caller.account_id,
                ps_arn,
                result.id,
            )
            state = "assigned" if assignment.created else "already assigned"
            console.print(
                f"[green]Permission set '{permission_set_name}' {state} on account {caller.account_id}[/green]"
            )


@app.command("get-id")
def get_user_id(
    username: str = typer.Option(..., "--username", "-u", help="Username"),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Print the user ID for a username."""
    with handle_command_errors("looking up user", verbose):
        context = build_context(profile, region, verbose)
        get_management_context(context.provider)
        typer.echo(_require_user(context, username).user_id)


@app.command("list")
def list_users(
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """List all users in the Identity Store."""
    with handle_command_errors("listing users", verbose):
        context = build_context(profile, region, verbose)
        get_management_context(context.provider)
        identity_center = resolve_identity_center(context.provider, context.settings)
        try:
            users = [
                IdentityUser.from_api(data)
                for data in context.provider.list_users(identity_center.identity_store_id)
            ]
        except ClientError as e:
            handle_aws_error(e, "ListUsers")

        if not users:
            console.print("[yellow]No users found.[/yellow]")
            return

        table = Table(title=f"Identity Center Users (Total: {len(users)})")
        table.add_column("Username", style="cyan")
        table.add_column("User ID", style="green")
        table.add_column("Display Name")
        table.add_column("Email")
        for user in users:
            table.add_row(user.username, user.user_id, user.display_name, user.email)
        console.print(table)


@app.command("show")
def show_user(
    username: str = typer.Option(..., "--username", "-u", help="Username"),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Show the details of a user."""
    with handle_command_errors("showing user", verbose):
        context = build_context(profile, region, verbose)
        get_management_context(context.provider)
        user = _require_user(context, username)

        console.print("\n[bold]User Details:[/bold]")
        console.print(f"  Username:      {user.username}")
        console.print(f"  User ID:       {user.user_id}")
        console.print(f"  Display Name:  {user.display_name}")
        console.print(f"  Given Name:    {user.given_name}")
        console.print(f"  Family Name:   {user.family_name}")
        console.print(f"  Email:         {user.email}")


@app.command("check")
def check_user(
    username: str = typer.Option(..., "--username", "-u", help="Username"),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Check whether a user exists; exits 1 when it does not."""
    with handle_command_errors("checking user", verbose):
        context = build_context(profile, region, verbose)
        get_management_context(context.provider)
        user = _require_user(context, username)
        console.print(f"[green]User '{username}' exists[/green]")
        console.print(f"User ID: {user.user_id}")


@app.command("delete")
def delete_user(
    username: str = typer.Option(..., "--username", "-u", help="Username"),
    yes: bool = yes_option(),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Delete a user from the Identity Store.

    Account assignments of the user are not revoked; use 'env delete' for that.
    """
    with handle_command_errors("deleting user", verbose):
        context = build_context(profile, region, verbose, assume_yes=yes)
        get_management_context(context.provider)
        user = _require_user(context, username)

        if not context.confirm(f"Delete user '{username}' ({user.user_id})?", False):
            console.print("Cancelled")
            return

        identity_center = resolve_identity_center(context.provider, context.settings)
        try:
            context.provider.delete_user(identity_center.identity_store_id, user.user_id)
        except ClientError as e:
            handle_aws_error(e, "DeleteUser")
        console.print(f"[green]User '{username}' deleted[/green]")
