"""GridStream main entry point and command registration."""

from __future__ import annotations

import atexit
from pathlib import Path  # noqa: TC003
from typing import Annotated

import sentry_sdk
import typer

from gridstream.__about__ import __version__
from gridstream.cli.commands.aggregate import aggregate_command
from gridstream.cli.commands.cache import cache_app
from gridstream.cli.commands.config import config_app
from gridstream.cli.commands.count import count_command
from gridstream.cli.commands.export import export_command
from gridstream.cli.commands.page import page_command
from gridstream.cli.output import OutputFormat  # noqa: TC001
from gridstream.core.config import load_config
from gridstream.core.exceptions import GridStreamError
from gridstream.core.exit_codes import ExitCode
from gridstream.core.logging import setup_logging
from gridstream.core.monitoring import setup_sentry

app = typer.Typer(
    help="GridStream - page, sort and export PostgreSQL results like a data grid",
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")
app.add_typer(cache_app, name="cache")
app.command("page")(page_command)
app.command("export")(export_command)
app.command("count")(count_command)
app.command("aggregate")(aggregate_command)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"gridstream {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable verbose logging"),
    ] = False,
    profile: Annotated[
        str | None,
        typer.Option("--profile", "-P", help="Named connection profile"),
    ] = None,
    host: Annotated[
        str | None,
        typer.Option("--host", "-H", help="PostgreSQL host"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="PostgreSQL port"),
    ] = None,
    database: Annotated[
        str | None,
        typer.Option("--database", "-d", help="Database name"),
    ] = None,
    user: Annotated[
        str | None,
        typer.Option("--user", "-U", help="User name"),
    ] = None,
    password: Annotated[
        str | None,
        typer.Option("--password", "-W", help="Password"),
    ] = None,
    sslmode: Annotated[
        str | None,
        typer.Option("--sslmode", help="SSL mode (disable, prefer, require, ...)"),
    ] = None,
    dsn: Annotated[
        str | None,
        typer.Option("--dsn", help="Connection DSN"),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config file"),
    ] = None,
    tab: Annotated[
        str | None,
        typer.Option("--tab", help="Tab id; persists the last rows read between runs"),
    ] = None,
    format: Annotated[
        OutputFormat | None,
        typer.Option("--format", "-f", help="Output format: table|json|csv"),
    ] = None,
    compact: Annotated[
        bool,
        typer.Option("--compact", help="Compact JSON output (no indentation)"),
    ] = False,
    width: Annotated[
        int,
        typer.Option("--width", help="Column width for table format"),
    ] = 40,
    no_header: Annotated[
        bool,
        typer.Option("--no-header", help="Suppress header row in CSV output"),
    ] = False,
) -> None:
    """GridStream - page, sort and export PostgreSQL results like a data grid."""
    setup_logging(verbose)

    try:
        app_config = load_config(config_file)
    except GridStreamError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(exc.exit_code) from exc
    setup_sentry(app_config.sentry_dsn)

    transaction = sentry_sdk.start_transaction(
        op="cli", name=ctx.invoked_subcommand or "gridstream"
    )
    transaction.__enter__()

    def cleanup() -> None:
        transaction.__exit__(None, None, None)
        sentry_sdk.flush(timeout=2)

    atexit.register(cleanup)

    ctx.ensure_object(dict)
    ctx.obj["app_config"] = app_config
    ctx.obj["verbose"] = verbose
    ctx.obj["profile"] = profile
    ctx.obj["host"] = host
    ctx.obj["port"] = port
    ctx.obj["database"] = database
    ctx.obj["user"] = user
    ctx.obj["password"] = password
    ctx.obj["sslmode"] = sslmode
    ctx.obj["dsn"] = dsn
    ctx.obj["config_file"] = config_file
    ctx.obj["tab"] = tab

    ctx.obj["format"] = format.value if format else None
    ctx.obj["compact"] = compact
    ctx.obj["width"] = width
    ctx.obj["no_header"] = no_header


def run() -> None:
    """Entry point with global error handling."""
    try:
        app()
    except GridStreamError as e:
        sentry_sdk.capture_exception(e)
        typer.echo(f"Error: {e.message}", err=True)
        raise SystemExit(e.exit_code) from None
    except SystemExit:
        raise
    except KeyboardInterrupt:
        raise SystemExit(ExitCode.CANCELLED) from None
    except Exception as e:
        sentry_sdk.capture_exception(e)
        typer.echo(f"Error: {e}", err=True)
        raise SystemExit(ExitCode.GENERAL_ERROR) from None
