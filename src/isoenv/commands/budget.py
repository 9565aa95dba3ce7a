"""Budget commands for isoenv.

Budgets live in the management (paying) account. A budget is either
organization-wide, linked to one member account, or filtered on the ``user``
cost allocation tag.
"""

from typing import Optional

import typer
from rich.table import Table

from ..core import budgets
from ..core.lookups import get_management_context
from ..utils.error_handler import IsoEnvError, ValidationError
from ..utils.models import BudgetInfo
from ..utils.validators import (
    validate_account_id,
    validate_budget_amount,
    validate_email_list,
    validate_username,
)
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
    help="Manage AWS Budgets with 80/90/100% email alerts. Create, check, show, list and delete budgets."
)


def _caller_account(context) -> str:
    return get_management_context(context.provider).account_id


def _print_created(result, name: str, amount: int, tracking: str, emails) -> None:
    if result.created:
        console.print("[green]Budget created successfully![/green]")
    else:
        console.print(f"[yellow]Budget '{name}' already exists[/yellow]")
    console.print(f"  Name:     {name}")
    console.print(f"  Amount:   ${amount}/month")
    console.print(f"  Tracking: {tracking}")
    console.print("  Alerts:   80%, 90%, 100% to " + ", ".join(emails))


@app.command("create")
def create_budget(
    amount: int = typer.Option(..., "--amount", "-a", help="Monthly budget amount in USD"),
    email: str = typer.Option(
        ..., "--email", "-e", help="Email address(es) for budget alerts (comma-separated)"
    ),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Budget name (organization-wide budget)"),
    username: Optional[str] = typer.Option(
        None, "--username", "-u", help="Username for a user-specific budget filtered on the 'user' tag"
    ),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Create an organization-wide budget, or a per-user budget on the 'user' tag.

    A per-user budget is named '<username>-monthly-budget' and only tracks
    resources tagged user=<username>; the 'user' cost allocation tag is
    activated as part of the command.
    """
    with handle_command_errors("creating budget", verbose):
        if bool(name) == bool(username):
            raise ValidationError("Exactly one of --name or --username is required.")
        amount = validate_budget_amount(amount)
        emails = validate_email_list(email, "email")
        tag_filter = None
        if username:
            validate_username(username)
            name = budgets.user_budget_name(username)
            tag_filter = budgets.user_tag_filter(username)

        context = build_context(profile, region, verbose)
        account_id = _caller_account(context)
        result = budgets.create_budget(
            context.provider,
            account_id,
            name,
            amount,
            emails,
            tag_filter=tag_filter,
            thresholds=context.settings.budget_thresholds,
        )
        tracking = f"Tag user={username}" if username else "Organization-wide"
        _print_created(result, name, amount, tracking, emails)

        if username:
            _activate_user_tag(context)


def _activate_user_tag(context) -> None:
    console.print(f"[blue]Activating cost allocation tag '{budgets.USER_TAG_KEY}'...[/blue]")
    activation = budgets.activate_user_cost_tag(context.provider)
    if activation.already_active:
        console.print("[green]Cost allocation tag already active[/green]")
    elif activation.activated:
        console.print("[green]Cost allocation tag activated[/green]")
    else:
        console.print(f"[yellow]Warning: could not activate the tag ({activation.error})[/yellow]")
        console.print("Activate it manually:")
        console.print("  1. Open Billing and Cost Management > Cost allocation tags")
        console.print(f"  2. Select the '{budgets.USER_TAG_KEY}' tag and choose Activate")
    console.print("Tagged costs can take up to 24 hours to appear in the budget.")


@app.command("create-linked")
def create_linked_budget(
    account_id: str = typer.Option(..., "--account-id", help="Member account to track"),
    name: str = typer.Option(..., "--name", "-n", help="Budget name"),
    amount: int = typer.Option(..., "--amount", "-a", help="Monthly budget amount in USD"),
    notification_emails: str = typer.Option(
        ..., "--notification-emails", help="Alert recipients (comma-separated)"
    ),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Create a budget in the management account that tracks one member account."""
    with handle_command_errors("creating linked budget", verbose):
        validate_account_id(account_id)
        amount = validate_budget_amount(amount)
        emails = validate_email_list(notification_emails)
        context = build_context(profile, region, verbose)
        payer_account = _caller_account(context)
        result = budgets.create_budget(
            context.provider,
            payer_account,
            name,
            amount,
            emails,
            linked_account_id=account_id,
            thresholds=context.settings.budget_thresholds,
        )
        _print_created(result, name, amount, f"LinkedAccount {account_id}", emails)


@app.command("check")
def check_budget(
    name: str = typer.Option(..., "--name", "-n", help="Budget name"),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Check whether a budget exists; exits 1 when it does not."""
    with handle_command_errors("checking budget", verbose):
        context = build_context(profile, region, verbose)
        budget = budgets.get_budget(context.provider, _caller_account(context), name)
        if budget is None:
            raise IsoEnvError(f"Budget '{name}' not found")
        console.print(f"[green]Budget '{name}' exists[/green]")


@app.command("show")
def show_budget(
    name: str = typer.Option(..., "--name", "-n", help="Budget name"),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Show a budget's limit, spend and cost filters."""
    with handle_command_errors("showing budget", verbose):
        context = build_context(profile, region, verbose)
        budget = budgets.get_budget(context.provider, _caller_account(context), name)
        if budget is None:
            raise IsoEnvError(f"Budget '{name}' not found")
        _print_budget(budget)


def _print_budget(budget: BudgetInfo) -> None:
    console.print("\n[bold]Budget Details:[/bold]")
    console.print(f"  Name:      {budget.name}")
    console.print(f"  Limit:     {budget.limit_amount} {budget.unit}")
    console.print(f"  Period:    {budget.time_unit}")
    console.print(f"  Actual:    {budget.actual_spend or '0'} {budget.unit}")
    if budget.forecasted_spend:
        console.print(f"  Forecast:  {budget.forecasted_spend} {budget.unit}")
    for key, values in budget.cost_filters.items():
        console.print(f"  Filter:    {key} = {', '.join(values)}")


@app.command("list")
def list_budgets(
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """List all budgets of the current account."""
    with handle_command_errors("listing budgets", verbose):
        context = build_context(profile, region, verbose)
        items = budgets.list_budgets(context.provider, _caller_account(context))

        if not items:
            console.print("[yellow]No budgets found.[/yellow]")
            return

        table = Table(title=f"Budgets (Total: {len(items)})")
        table.add_column("Name", style="cyan")
        table.add_column("Limit", justify="right")
        table.add_column("Actual", justify="right")
        table.add_column("Period")
        table.add_column("Filter")
        for budget in items:
            filters = "; ".join(
                f"{key}={','.join(values)}" for key, values in budget.cost_filters.items()
            )
            table.add_row(
                budget.name,
                f"{budget.limit_amount} {budget.unit}",
                budget.actual_spend or "0",
                budget.time_unit,
                filters or "-",
            )
        console.print(table)


@app.command("delete")
def delete_budget(
    name: str = typer.Option(..., "--name", "-n", help="Budget name"),
    yes: bool = yes_option(),
    profile: Optional[str] = profile_option(),
    region: Optional[str] = region_option(),
    verbose: bool = verbose_option(),
):
    """Delete a budget and its notifications."""
    with handle_command_errors("deleting budget", verbose):
        context = build_context(profile, region, verbose, assume_yes=yes)
        account_id = _caller_account(context)
        if not context.confirm(f"Delete budget '{name}'?", False):
            console.print("Cancelled")
            return
        if budgets.delete_budget(context.provider, account_id, name):
            console.print(f"[green]Budget '{name}' deleted[/green]")
        else:
            raise IsoEnvError(f"Budget '{name}' not found")
