"""CLI interface for unichat.

Requires the 'cli' extra: pip install unichat[cli]
"""

from __future__ import annotations

import logging
import sys

try:
    import typer
    from rich.console import Console
    from rich.table import Table
except ImportError:
    print(
        "CLI dependencies not installed. Install with: pip install unichat[cli]",
        file=sys.stderr,
    )
    sys.exit(1)

from unichat import __version__
from unichat.config import Settings, get_settings
from unichat.exceptions import ConfigurationError
from unichat.pipeline.pipeline import DEFAULT_STAGE_TIMEOUTS

app = typer.Typer(
    name="unichat",
    help="Unified chat request pipeline.",
    add_completion=False,
)
console = Console()


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ConfigurationError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(code=1) from exc


@app.callback()
def main(
    version: bool = typer.Option(False, "--version", "-v", help="Show version"),
) -> None:
    if version:
        console.print(f"unichat {__version__}")
        raise typer.Exit()


@app.command()
def info() -> None:
    """Show information about the unichat installation."""
    table = Table(title="unichat info")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Version", __version__)
    table.add_row("Python", sys.version.split()[0])

    for dep_name in ["pydantic", "fastapi", "httpx", "anthropic", "tiktoken", "pypdf"]:
        try:
            mod = __import__(dep_name)
            ver = getattr(mod, "__version__", "installed")
            table.add_row(dep_name, str(ver))
        except ImportError:
            table.add_row(dep_name, "[red]not installed[/red]")

    console.print(table)


@app.command()
def stages() -> None:
    """List the default pipeline stages with their effective timeouts."""
    from unichat.server.app import build_pipeline
    from unichat.services import ServiceContext

    settings = _load_settings()
    pipeline = build_pipeline(settings, ServiceContext(settings=settings))

    table = Table(title=f"Pipeline stages (request timeout {settings.request_timeout:g}s)")
    table.add_column("#", style="dim")
    table.add_column("Stage", style="cyan")
    table.add_column("Timeout", style="green")
    table.add_column("Source", style="dim")
    for position, name in enumerate(pipeline.get_stage_names(), start=1):
        if name in settings.stage_timeouts:
            source = "settings"
        elif name in DEFAULT_STAGE_TIMEOUTS:
            source = "built-in"
        else:
            source = "default"
        table.add_row(str(position), name, f"{pipeline.timeout_for(name):g}s", source)
    console.print(table)


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default from settings)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port (default from settings)"),
    user_header: str = typer.Option(
        "X-User-Id", "--user-header", help="Header carrying the authenticated user id",
    ),
) -> None:
    """Run the chat service with uvicorn behind an identity-aware proxy."""
    import uvicorn

    from unichat.server import TrustedHeaderAuthenticator, create_app

    settings = _load_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    api = create_app(settings, authenticator=TrustedHeaderAuthenticator(user_header=user_header))
    console.print(
        f"[green]Serving unichat on {host or settings.host}:{port or settings.port}[/green]",
    )
    uvicorn.run(
        api,
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    app()
