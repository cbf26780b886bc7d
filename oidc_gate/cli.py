"""
oidc-gate command line interface.
"""

import json
import sys
from typing import Optional
import typer
import yaml
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from oidc_gate.authentication.errors import ConfigurationError
from oidc_gate.authentication.handler import AuthenticationHandler
from oidc_gate.authentication.options import AuthenticationOptions
from oidc_gate.core.config import create_app_config, load_merged_config
from oidc_gate.openidconnect.events import LIFECYCLE_DESCRIPTIONS, LifecyclePoint

app = typer.Typer(
    name="oidc-gate",
    help="oidc-gate OpenID Connect relying party",
    add_completion=False
)

console = Console()


class _SchemeMatcher(AuthenticationHandler[AuthenticationOptions]):
    """Handler used only to evaluate the scheme-match predicate."""

    async def handle_authenticate(self):
        return None


def evaluate_scheme_match(
    requested: Optional[str],
    configured: Optional[str],
    automatic: bool
) -> bool:
    """Evaluate whether a handler bound to ``configured`` would process ``requested``."""
    matcher = _SchemeMatcher()
    matcher.initialize(
        AuthenticationOptions(authentication_scheme=configured, automatic_authentication=automatic),
        request=None,
        logger=None,
        url_encoder=None
    )
    return matcher.should_handle_scheme(requested)


@app.command()
def serve(
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="Config file path"),
    host: Optional[str] = typer.Option(None, "--host", help="Host to bind to"),
    port: Optional[int] = typer.Option(None, "--port", help="Port to bind to"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload")
):
    """Run the oidc-gate server."""
    from oidc_gate.main import run_server

    try:
        run_server(config_file, host, port, log_level, reload)
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)


@app.command()
def config(
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="Config file path"),
    output: str = typer.Option("panel", "-o", help="Output format: panel, json, yaml")
):
    """Show the effective configuration (secrets omitted)."""
    try:
        settings = load_merged_config(config_file)
        app_config = create_app_config(settings)
    except Exception as e:
        console.print(f"[red]✗[/red] Invalid configuration: {e}")
        sys.exit(1)

    data = app_config.model_dump()
    if output == "json":
        print(json.dumps(data, indent=2))
    elif output == "yaml":
        print(yaml.dump(data, default_flow_style=False))
    else:
        oidc = app_config.oidc
        panel = Panel.fit(
            f"[cyan]Scheme:[/cyan] {oidc.authentication_scheme}\n"
            f"[cyan]Automatic:[/cyan] {'Yes' if oidc.automatic_authentication else 'No'}\n"
            f"[cyan]Authority:[/cyan] {oidc.authority or '-'}\n"
            f"[cyan]Client ID:[/cyan] {oidc.client_id or '-'}\n"
            f"[cyan]Callback Path:[/cyan] {oidc.callback_path}\n"
            f"[cyan]Config File:[/cyan] {settings.config_file or '-'}",
            title="oidc-gate Configuration"
        )
        console.print(panel)


@app.command()
def events():
    """List the lifecycle points applications can hook into."""
    table = Table(title="Lifecycle Points")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Slot", style="green")
    table.add_column("Description")

    for point in LifecyclePoint:
        table.add_row(point.value, point.slot, LIFECYCLE_DESCRIPTIONS[point])

    console.print(table)


@app.command("check-scheme")
def check_scheme(
    requested: Optional[str] = typer.Argument(None, help="Requested scheme; omit for none"),
    scheme: Optional[str] = typer.Option(None, "--scheme", help="Configured scheme (defaults to the config)"),
    automatic: Optional[bool] = typer.Option(None, "--automatic/--no-automatic", help="Automatic participation"),
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="Config file path")
):
    """Check whether the handler would process a request for a scheme."""
    if scheme is None or automatic is None:
        settings = load_merged_config(config_file)
        if scheme is None:
            scheme = settings.authentication_scheme
        if automatic is None:
            automatic = settings.automatic_authentication

    matches = evaluate_scheme_match(requested, scheme, automatic)
    shown = "<none>" if requested is None else repr(requested)
    if matches:
        console.print(f"[green]✓[/green] Handler '{scheme}' handles {shown}")
    else:
        console.print(f"[yellow]✗[/yellow] Handler '{scheme}' ignores {shown}")
        raise typer.Exit(code=1)


def main():
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
