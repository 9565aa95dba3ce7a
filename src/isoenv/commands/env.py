"""Environment commands for isoenv.

One command creates an isolated environment for a developer: a member
account, an Identity Center user, permission set assignments and a linked
budget.
"""

from typing import Optional

import typer
from rich.panel import Panel
from rich.table import Table

from ..core.orchestrator import DeletionReport, EnvironmentOrchestrator
from ..utils.models import EnvironmentSummary, EnvironmentView
from ..utils.validators import split_names
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
    help="Manage user environments. Create, show, list and delete a user's account, identity, permissions and budget."
)


def _orchestrator(context) -> EnvironmentOrchestrator:
    return EnvironmentOrchestrator(
        context.provider,
        context.settings,
        confirm=context.confirm,
        sleep=context.sleep,
        progress=lambda message: console.print(f"[blue]{message}[/blue]"),
    )


@app.command("create")
def create_environment(
    username: str = typer.Option(..., "--username", "-u", help="Identity Center username (e.g., alice)"),
    email: str = typer.Option(
        ..., "--email", "-e", help="User email, also used to derive the account email"
    ),
    budget: Optional[int] = typer.Option(
        None, "--budget", "-b", help="Monthly budget in USD (default from settings)"
    ),
    permission_sets: Optional[str] = typer.Option(
        None,
        "--permission-sets",
        "-s",
        help="Comma-separated permission set names (default from settings)",
    ),
    notification_emails: Optional[str] = typer.Option(
        None, "--notification-emails", help="Additional emails for budget alerts (comma-separated)"
    ),
    yes: bool = yes_option(),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Create or complete a user environment.

    Every step is idempotent, so re-running the command after a failure picks
    up where it stopped.
    """
    with handle_command_errors("creating environment", verbose):
        context = build_context(profile, region, verbose, assume_yes=yes)
        settings = context.settings
        names = split_names(permission_sets) if permission_sets else list(
            settings.default_permission_sets
        )
        extras = split_names(notification_emails) if notification_emails else []
        amount = budget if budget is not None else settings.default_budget

        console.print(f"[bold blue]Creating environment for '{username}'[/bold blue]")
        summary = _orchestrator(context).create_environment(
            username, email, amount, names, notification_emails=extras
        )
        _print_summary(summary)


def _print_summary(summary: EnvironmentSummary) -> None:
    lines = [
        f"[bold]User:[/bold] {summary.username} ({summary.email})",
        f"[bold]User ID:[/bold] {summary.user_id}"
        + ("" if summary.user_created else " [yellow](already existed)[/yellow]"),
        f"[bold]Management account:[/bold] {summary.management_account_id}",
    ]
    if summary.account_id:
        lines.append(
            f"[bold]Account:[/bold] {summary.account_name} ({summary.account_id})"
            + ("" if summary.account_created else " [yellow](already existed)[/yellow]")
        )
        lines.append(f"[bold]Account email:[/bold] {summary.account_email}")
    if summary.management_permission_sets:
        lines.append(
            "[bold]Management account permissions:[/bold] "
            + ", ".join(summary.management_permission_sets)
        )
    if summary.member_permission_sets:
        lines.append(
            "[bold]Member account permissions:[/bold] " + ", ".join(summary.member_permission_sets)
        )
    if summary.budget_name:
        lines.append(
            f"[bold]Budget:[/bold] {summary.budget_name} (${summary.budget_amount}/month)"
            + ("" if summary.budget_created else " [yellow](already existed)[/yellow]")
        )
        lines.append("[bold]Alerts to:[/bold] " + ", ".join(summary.notification_emails))

    console.print(Panel("\n".join(lines), title="Environment ready", border_style="green"))
    console.print("\nNext steps:")
    console.print(f"  1. {summary.username} receives an Identity Center invitation email")
    console.print("  2. They sign in through the AWS access portal and pick their account")


@app.command("show")
def show_environment(
    username: str = typer.Option(..., "--username", "-u", help="Identity Center username"),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Show the user, account, budget and assignments of an environment."""
    with handle_command_errors("showing environment", verbose):
        context = build_context(profile, region, verbose)
        view = _orchestrator(context).show_environment(username)
        _print_view(view)


def _print_view(view: EnvironmentView) -> None:
    console.print(f"[bold blue]Environment: {view.username}[/bold blue]\n")

    if view.user:
        console.print(
            f"[bold]User:[/bold] {view.user.username} ({view.user.email}) ID {view.user.user_id}"
        )
    else:
        console.print("[yellow]User not found[/yellow]")

    if view.account is None:
        console.print("[yellow]Account not found[/yellow]")
        return
    console.print(
        f"[bold]Account:[/bold] {view.account.name} ({view.account.id}) {view.account.email}"
    )

    if view.budget:
        spend = view.budget.actual_spend or "0"
        console.print(
            f"[bold]Budget:[/bold] {view.budget.name} "
            f"{spend}/{view.budget.limit_amount} {view.budget.unit} {view.budget.time_unit}"
        )
    else:
        console.print("[yellow]Budget not found[/yellow]")

    if not view.assignments:
        console.print("[yellow]No assignments found[/yellow]")
        return
    table = Table(title="Assignments")
    table.add_column("Permission Set", style="green")
    table.add_column("Principal ID", style="cyan")
    table.add_column("Type")
    for assignment, name in view.assignments:
        table.add_row(name, assignment.principal_id, assignment.principal_type)
    console.print(table)


@app.command("list")
def list_environments(
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """List Identity Center users and the account of the same name."""
    with handle_command_errors("listing environments", verbose):
        context = build_context(profile, region, verbose)
        environments = _orchestrator(context).list_environments()

        if not environments:
            console.print("[yellow]No users found.[/yellow]")
            return

        table = Table(title="Environments")
        table.add_column("Username", style="cyan")
        table.add_column("Email")
        table.add_column("Account ID", style="green")
        table.add_column("Account Status")
        for user, account in environments:
            table.add_row(
                user.username,
                user.email,
                account.id if account else "-",
                account.status if account else "-",
            )
        console.print(table)


@app.command("delete")
def delete_environment(
    username: str = typer.Option(..., "--username", "-u", help="Identity Center username"),
    yes: bool = yes_option(),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Delete an environment's budget, assignments and user.

    The member account is never closed automatically; the manual steps are
    printed instead.
    """
    with handle_command_errors("deleting environment", verbose):
        context = build_context(profile, region, verbose, assume_yes=yes)
        console.print(
            f"[yellow]This removes the budget, permissions and user of '{username}'.[/yellow]"
        )
        report = _orchestrator(context).delete_environment(username)
        _print_deletion(report)


def _print_deletion(report: DeletionReport) -> None:
    if not report.confirmed:
        console.print("Cancelled")
        return

    for warning in report.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")
    if report.budget_deleted:
        console.print("[green]Budget deleted[/green]")
    if report.revoked:
        console.print(f"[green]Revoked {len(report.revoked)} permission set assignment(s)[/green]")
    if report.user_deleted:
        console.print("[green]User deleted[/green]")

    if report.account_closure_requested:
        console.print("\n[yellow]Account closure must be done manually:[/yellow]")
        console.print("  1. Sign in to the AWS Organizations console")
        console.print(f"  2. Select account {report.account_id}")
        console.print("  3. Choose 'Close account' and confirm")
        console.print("  The account is suspended for 90 days before permanent closure.")
    elif report.account_id:
        console.print(f"Account {report.account_id} kept")

    console.print(f"[green]Environment of '{report.username}' deleted[/green]")
