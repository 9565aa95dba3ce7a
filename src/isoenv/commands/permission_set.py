"""Permission set commands for isoenv.

Permission sets are defined locally as JSON (see ``permission-sets/``) and
synchronized to Identity Center. Assignments bind a user, an account and a
permission set together.
"""

from pathlib import Path
from typing import Optional

import typer
from botocore.exceptions import ClientError
from rich.table import Table

from ..core.ensurer import ensure_assignment, ensure_permission_set, revoke_assignment
from ..core.lookups import (
    find_permission_set,
    find_user,
    get_management_context,
    list_permission_sets,
    resolve_identity_center,
)
from ..core.orchestrator import list_account_assignments
from ..core.permission_set_config import load_permission_set_config
from ..core.poller import OperationPoller
from ..utils.error_handler import IsoEnvError, ValidationError, handle_aws_error
from ..utils.models import PermissionSetInfo
from ..utils.validators import validate_account_id, validate_user_id
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
    help="Manage permission sets in AWS Identity Center. Create from local definitions, inspect, assign and revoke."
)


def _require_permission_set(context, instance_arn: str, name: str) -> PermissionSetInfo:
    permission_set = find_permission_set(context.provider, instance_arn, name)
    if permission_set is None:
        raise IsoEnvError(f"Permission set '{name}' not found")
    return permission_set


def _resolve_principal(context, identity_store_id: str, user_id: Optional[str], username: Optional[str]) -> str:
    if user_id:
        return validate_user_id(user_id)
    if username:
        user = find_user(context.provider, identity_store_id, username)
        if user is None:
            raise IsoEnvError(f"User '{username}' not found")
        return user.user_id
    raise ValidationError("Either --user-id or --username is required.")


@app.command("create")
def create_permission_set(
    config_file: Path = typer.Option(..., "--config", "-c", help="Permission set definition (JSON)"),
    yes: bool = yes_option(),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Create a permission set from its definition, or update the existing one.

    Updating asks for confirmation and re-provisions the set to every account
    it is provisioned to.
    """
    with handle_command_errors("creating permission set", verbose):
        config = load_permission_set_config(config_file)
        context = build_context(profile, region, verbose, assume_yes=yes)
        get_management_context(context.provider)
        identity_center = resolve_identity_center(context.provider, context.settings)

        console.print(f"[blue]Ensuring permission set '{config.name}'...[/blue]")
        poller = OperationPoller(context.settings, sleep=context.sleep)
        result = ensure_permission_set(
            context.provider, poller, identity_center.instance_arn, config, context.confirm
        )

        if result.created:
            console.print("[green]Permission set created successfully![/green]")
        elif result.updated:
            console.print("[green]Permission set updated and re-provisioned[/green]")
        else:
            console.print("[yellow]Permission set already exists, no changes applied[/yellow]")
        console.print(f"  Name: {config.name}")
        console.print(f"  ARN:  {result.id}")


@app.command("check")
def check_permission_set(
    name: str = typer.Option(..., "--name", "-n", help="Permission set name"),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Check whether a permission set exists; exits 1 when it does not."""
    with handle_command_errors("checking permission set", verbose):
        context = build_context(profile, region, verbose)
        get_management_context(context.provider)
        identity_center = resolve_identity_center(context.provider, context.settings)
        permission_set = _require_permission_set(context, identity_center.instance_arn, name)
        console.print("[green]Permission set exists[/green]")
        console.print(f"  Name: {permission_set.name}")
        console.print(f"  ARN:  {permission_set.arn}")


@app.command("show")
def show_permission_set(
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Permission set name"),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Permission set definition to take the name from"
    ),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Show a permission set with its managed and inline policies."""
    with handle_command_errors("showing permission set", verbose):
        if config_file:
            name = load_permission_set_config(config_file).name
        if not name:
            raise ValidationError("Either --name or --config is required.")

        context = build_context(profile, region, verbose)
        get_management_context(context.provider)
        instance_arn = resolve_identity_center(context.provider, context.settings).instance_arn
        permission_set = _require_permission_set(context, instance_arn, name)

        try:
            managed = context.provider.list_managed_policies(instance_arn, permission_set.arn)
            inline = context.provider.get_inline_policy(instance_arn, permission_set.arn)
        except ClientError as e:
            handle_aws_error(e, "DescribePermissionSet")

        console.print("\n[bold]Permission Set Details:[/bold]")
        console.print(f"  Name:             {permission_set.name}")
        console.print(f"  ARN:              {permission_set.arn}")
        console.print(f"  Description:      {permission_set.description}")
        console.print(f"  Session Duration: {permission_set.session_duration}")
        console.print("\n[bold]Attached Managed Policies:[/bold]")
        if managed:
            for policy_arn in managed:
                console.print(f"  - {policy_arn}")
        else:
            console.print("  (none)")
        console.print(f"\n[bold]Inline Policy:[/bold] {'Attached' if inline else 'None'}")


@app.command("list")
def list_permission_sets_command(
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """List all permission sets of the Identity Center instance."""
    with handle_command_errors("listing permission sets", verbose):
        context = build_context(profile, region, verbose)
        get_management_context(context.provider)
        instance_arn = resolve_identity_center(context.provider, context.settings).instance_arn
        permission_sets = list_permission_sets(context.provider, instance_arn)

        if not permission_sets:
            console.print("[yellow]No permission sets found.[/yellow]")
            return

        table = Table(title=f"Permission Sets (Total: {len(permission_sets)})")
        table.add_column("Name", style="cyan")
        table.add_column("Session Duration")
        table.add_column("Description")
        table.add_column("ARN", style="dim")
        for permission_set in permission_sets:
            table.add_row(
                permission_set.name,
                permission_set.session_duration,
                permission_set.description,
                permission_set.arn,
            )
        console.print(table)


@app.command("assign")
def assign_permission_set(
    permission_set: str = typer.Option(..., "--permission-set", "-s", help="Permission set name"),
    account_id: str = typer.Option(..., "--account-id", "-a", help="Target account ID"),
    user_id: Optional[str] = typer.Option(None, "--user-id", help="Identity Center user ID"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Identity Center username"),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Assign a permission set to a user on an account and wait for it to complete."""
    with handle_command_errors("assigning permission set", verbose):
        validate_account_id(account_id)
        context = build_context(profile, region, verbose)
        get_management_context(context.provider)
        identity_center = resolve_identity_center(context.provider, context.settings)
        principal_id = _resolve_principal(
            context, identity_center.identity_store_id, user_id, username
        )
        ps = _require_permission_set(context, identity_center.instance_arn, permission_set)

        console.print(f"[blue]Assigning '{ps.name}' on account {account_id}...[/blue]")
        poller = OperationPoller(context.settings, sleep=context.sleep)
        result = ensure_assignment(
            context.provider, poller, identity_center.instance_arn, account_id, ps.arn, principal_id
        )
        if result.created:
            console.print("[green]Permission set assigned successfully![/green]")
        else:
            console.print("[yellow]Assignment already exists[/yellow]")


@app.command("revoke")
def revoke_permission_set(
    permission_set: str = typer.Option(..., "--permission-set", "-s", help="Permission set name"),
    account_id: str = typer.Option(..., "--account-id", "-a", help="Target account ID"),
    user_id: Optional[str] = typer.Option(None, "--user-id", help="Identity Center user ID"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Identity Center username"),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Revoke a user's permission set on an account; a missing assignment is not an error."""
    with handle_command_errors("revoking permission set", verbose):
        validate_account_id(account_id)
        context = build_context(profile, region, verbose)
        get_management_context(context.provider)
        identity_center = resolve_identity_center(context.provider, context.settings)
        principal_id = _resolve_principal(
            context, identity_center.identity_store_id, user_id, username
        )
        ps = _require_permission_set(context, identity_center.instance_arn, permission_set)

        poller = OperationPoller(context.settings, sleep=context.sleep)
        if revoke_assignment(
            context.provider, poller, identity_center.instance_arn, account_id, ps.arn, principal_id
        ):
            console.print("[green]Permission set revoked[/green]")
        else:
            console.print("[yellow]No assignment found, nothing to revoke[/yellow]")


@app.command("list-assignments")
def list_assignments(
    account_id: str = typer.Option(..., "--account-id", "-a", help="Account ID"),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """List every permission set assignment on an account."""
    with handle_command_errors("listing assignments", verbose):
        validate_account_id(account_id)
        context = build_context(profile, region, verbose)
        get_management_context(context.provider)
        instance_arn = resolve_identity_center(context.provider, context.settings).instance_arn
        assignments = list_account_assignments(context.provider, instance_arn, account_id)

        if not assignments:
            console.print(f"[yellow]No assignments found on account {account_id}.[/yellow]")
            return

        table = Table(title=f"Assignments on {account_id}")
        table.add_column("Permission Set", style="cyan")
        table.add_column("Principal ID", style="green")
        table.add_column("Type")
        for assignment, name in assignments:
            table.add_row(name, assignment.principal_id, assignment.principal_type)
        console.print(table)
