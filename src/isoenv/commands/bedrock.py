"""Bedrock commands for isoenv.

``setup`` prepares an account for Bedrock model access once; the user
commands manage IAM users that may only invoke the configured models through
their inference profiles, e.g. for use from an IDE.
"""

from pathlib import Path
from typing import Optional

import typer
from rich.panel import Panel
from rich.table import Table

from ..core.bedrock import BedrockConfig, BedrockManager, load_bedrock_config
from .common import (
    build_context,
    console,
    handle_command_errors,
    profile_option,
    verbose_option,
    yes_option,
)

app = typer.Typer(
    help="Manage Amazon Bedrock access. Set up model access and manage IAM users restricted to inference profiles."
)

DEFAULT_CONFIG_FILE = "bedrock-config.json"

STATUS_STYLES = {"ok": "green", "skipped": "yellow", "warning": "yellow"}


def config_option():
    return typer.Option(
        Path(DEFAULT_CONFIG_FILE), "--config", "-c", help="Bedrock configuration file (JSON)"
    )


def _manager(config: BedrockConfig, profile: Optional[str], verbose: bool, yes: bool = False) -> BedrockManager:
    context = build_context(profile or config.admin_profile, config.region, verbose, assume_yes=yes)
    identity = context.provider.get_caller_identity()
    console.print(f"[blue]Using account {identity['Account']} ({identity.get('Arn', '')})[/blue]")
    return BedrockManager(
        context.provider,
        config,
        confirm=context.confirm,
        retry_delay=context.settings.throttle_retry_delay_seconds,
        sleep=context.sleep,
    )


@app.command("setup")
def setup(
    config_file: Path = config_option(),
    yes: bool = yes_option(),
    profile: Optional[str] = profile_option(),
    verbose: bool = verbose_option(),
):
    """One-time Bedrock setup: use case, model agreements and first invocation."""
    with handle_command_errors("setting up Bedrock", verbose):
        config = load_bedrock_config(config_file)
        manager = _manager(config, profile, verbose, yes)
        manager.check_access()

        console.print(f"[bold blue]Bedrock setup in {config.region}[/bold blue]")
        steps = manager.setup()

        table = Table(title="Setup Steps")
        table.add_column("Step", style="cyan")
        table.add_column("Target")
        table.add_column("Status")
        table.add_column("Detail")
        for step in steps:
            style = STATUS_STYLES.get(step.status, "white")
            table.add_row(step.step, step.target, f"[{style}]{step.status}[/{style}]", step.detail)
        console.print(table)
        console.print("[green]Setup completed[/green]")
        console.print("Next: isoenv bedrock create-user --username <name>")


@app.command("create-user")
def create_user(
    username: str = typer.Option(..., "--username", "-u", help="IAM username"),
    config_file: Path = config_option(),
    skip_access_key: bool = typer.Option(
        False, "--skip-access-key", help="Only ensure the user and its policy"
    ),
    replace_key: Optional[str] = typer.Option(
        None, "--replace-key", help="Access key ID to delete when the user already has two keys"
    ),
    yes: bool = yes_option(),
    profile: Optional[str] = profile_option(),
    verbose: bool = verbose_option(),
):
    """Create an IAM user that may only invoke the configured inference profiles."""
    with handle_command_errors("creating Bedrock user", verbose):
        config = load_bedrock_config(config_file)
        manager = _manager(config, profile, verbose, yes)
        result = manager.create_user(
            username, skip_access_key=skip_access_key, replace_key=replace_key
        )

        if result.aborted:
            console.print("Cancelled")
            return
        console.print(
            f"[green]User '{username}' {'created' if result.user_created else 'already existed'}[/green]"
        )
        console.print(
            f"[green]Policy {'created' if result.policy_created else 'updated'}: {result.policy_arn}[/green]"
        )
        if result.deleted_key_id:
            console.print(f"[yellow]Access key deleted: {result.deleted_key_id}[/yellow]")

        if result.access_key is None:
            console.print("Access key creation skipped")
            return

        key = result.access_key
        console.print(
            Panel(
                f"AWS Access Key ID:     {key.access_key_id}\n"
                f"AWS Secret Access Key: {key.secret_access_key}\n"
                f"AWS Region:            {config.region}\n"
                f"Model IDs:             {', '.join(config.inference_profile_ids)}",
                title="Credentials",
                border_style="green",
            )
        )
        console.print(
            "[red]Save the secret access key now. It cannot be retrieved again.[/red]"
        )


@app.command("show-credentials")
def show_credentials(
    username: str = typer.Option(..., "--username", "-u", help="IAM username"),
    config_file: Path = config_option(),
    profile: Optional[str] = profile_option(),
    verbose: bool = verbose_option(),
):
    """Show a user's access key IDs; secrets are never retrievable."""
    with handle_command_errors("showing credentials", verbose):
        config = load_bedrock_config(config_file)
        keys = _manager(config, profile, verbose).show_credentials(username)

        if not keys:
            console.print(f"[yellow]No access keys found for '{username}'[/yellow]")
            return

        table = Table(title=f"Access Keys of {username}")
        table.add_column("Access Key ID", style="cyan")
        table.add_column("Status")
        table.add_column("Created")
        for key in keys:
            created = key.create_date.strftime("%Y-%m-%d %H:%M:%S") if key.create_date else ""
            table.add_row(key.access_key_id, key.status, created)
        console.print(table)
        console.print("Secret access keys cannot be retrieved after creation.")
        console.print(f"Region: {config.region}")
        console.print(f"Model IDs: {', '.join(config.inference_profile_ids)}")


@app.command("list-users")
def list_users(
    config_file: Path = config_option(),
    profile: Optional[str] = profile_option(),
    verbose: bool = verbose_option(),
):
    """List IAM users with a Bedrock or Cursor policy."""
    with handle_command_errors("listing Bedrock users", verbose):
        config = load_bedrock_config(config_file)
        users = _manager(config, profile, verbose).list_users()

        if not users:
            console.print("[yellow]No Bedrock users found.[/yellow]")
            return

        table = Table(title="Bedrock Users")
        table.add_column("Username", style="cyan")
        table.add_column("Policies")
        for username, policies in users:
            table.add_row(username, ", ".join(policies))
        console.print(table)


@app.command("delete-user")
def delete_user(
    username: str = typer.Option(..., "--username", "-u", help="IAM username"),
    config_file: Path = config_option(),
    yes: bool = yes_option(),
    profile: Optional[str] = profile_option(),
    verbose: bool = verbose_option(),
):
    """Delete an IAM user with its access keys and policy attachments."""
    with handle_command_errors("deleting Bedrock user", verbose):
        config = load_bedrock_config(config_file)
        manager = _manager(config, profile, verbose, yes)
        if not manager.confirm(f"Delete IAM user '{username}' and all its access keys?", False):
            console.print("Cancelled")
            return

        report = manager.delete_user(username)
        for key_id in report.deleted_keys:
            console.print(f"  Deleted access key: {key_id}")
        for policy_arn in report.detached_policies:
            console.print(f"  Detached policy: {policy_arn}")
        for policy_name in report.deleted_inline_policies:
            console.print(f"  Deleted inline policy: {policy_name}")
        console.print(f"[green]User '{username}' deleted[/green]")
