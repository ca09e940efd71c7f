"""Sample DevOps App command line interface."""

from __future__ import annotations

import dataclasses
import os
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

# Load environment variables from .env file
load_dotenv()

from core.config import AppConfig, describe, load_config
from core.log_setup import configure_logging
from web.app import create_app
from web.lifecycle import ServerLifecycle

console = Console()


def _resolve_config(host: Optional[str] = None, port: Optional[int] = None) -> AppConfig:
    config = load_config(os.environ)
    overrides = {}
    if host:
        overrides["host"] = host
    if port is not None:
        overrides["port"] = port
    if overrides:
        config = dataclasses.replace(config, **overrides)
    return config


def _serve(config: AppConfig, *, detailed_log: bool = False) -> None:
    configure_logging(config.log_level, config.environment)
    app = create_app(config)
    lifecycle = ServerLifecycle(app, config)

    try:
        exit_code = lifecycle.run()
    except OSError as exc:  # the only fatal startup failure
        console.print(f"[red]Could not listen on {config.host}:{config.port}: {exc}[/red]")
        raise typer.Exit(1)
    except Exception as exc:  # pragma: no cover - unexpected failure
        if detailed_log:
            console.print_exception()
        else:
            console.print(f"[red]Unexpected error: {exc}[/red]")
            console.print(
                "[red]Re-run with --detailed-log to view the full traceback.[/red]"
            )
        raise typer.Exit(1)

    raise typer.Exit(exit_code)


main = typer.Typer(no_args_is_help=True)


@main.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind (default: $HOST or 0.0.0.0)"),
    port: Optional[int] = typer.Option(
        None,
        "--port",
        min=0,
        max=65535,
        help="Port to listen on (default: $PORT or 3000)",
    ),
    detailed_log: bool = typer.Option(
        False,
        "--detailed-log",
        help="Print full tracebacks for unexpected failures",
    ),
) -> None:
    """Start the HTTP server and block until it is told to stop."""

    _serve(_resolve_config(host, port), detailed_log=detailed_log)


@main.command("show-config")
def show_config() -> None:
    """Print the configuration resolved from the environment."""

    table = Table(title="Resolved configuration")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    for key, value in describe(_resolve_config()).items():
        table.add_row(key, value)
    console.print(table)


if __name__ == "__main__":
    main()
