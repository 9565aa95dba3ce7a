"""Session commands for isoenv."""

from typing import Optional

import typer

from ..core.session import check_session
from ..utils.error_handler import IsoEnvError, PreconditionError
from .common import build_context, console, handle_command_errors, profile_option, verbose_option

app = typer.Typer(help="Inspect the cached AWS SSO session.")


@app.command("check")
def check(
    profile: Optional[str] = profile_option(),
    verbose: bool = verbose_option(),
):
    """Show when the cached SSO session expires and how much of it is used."""
    with handle_command_errors("checking session", verbose):
        context = build_context(profile, None, verbose)
        console.print("[bold blue]AWS SSO Session Expiry Check[/bold blue]\n")
        console.print(f"Profile: {context.settings.profile or 'default'}\n")

        status = check_session()
        console.print(f"Expiration time (UTC): {status.expires_at.isoformat()}\n")
        expiry = status.local_expiry.strftime("%Y-%m-%d %H:%M:%S %Z")

        if status.expired:
            console.print("[yellow]Session has expired[/yellow]")
            console.print(f"Expired at: {expiry}")
            console.print(f"Expired {abs(status.remaining_hours):.1f} hours ago")
            raise PreconditionError(
                f"Session expired. Please login again: aws sso login --profile {context.settings.profile or 'default'}"
            )

        console.print("[green]Session is active[/green]")
        console.print(f"Expires at: {expiry}")
        console.print(
            f"Time remaining: {status.remaining_hours:.1f} hours ({status.remaining_minutes} minutes)\n"
        )
        console.print(f"Session usage: {status.usage_percentage:.0f}%")
        console.print(f"[{status.usage_bar()}]", markup=False)

        console.print("\nCurrent role:")
        try:
            identity = context.provider.get_caller_identity()
            console.print(f"  {identity.get('Arn', '')}")
        except IsoEnvError:
            console.print("  (unable to get role info)")
