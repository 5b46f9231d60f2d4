"""Configuration CLI commands."""

from __future__ import annotations

import typer

from gridstream.cli.commands._shared import get_app_config, get_resolved_config
from gridstream.core.config import DEFAULT_CONFIG_PATH
from gridstream.core.exceptions import GridStreamError

config_app = typer.Typer(help="Configuration commands")


@config_app.callback(invoke_without_command=True)
def config_callback(ctx: typer.Context) -> None:
    if not ctx.invoked_subcommand:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _mask(value: str | None) -> str:
    return "not set" if value is None else "***"


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Display resolved configuration and where each value came from."""
    try:
        resolved = get_resolved_config(ctx)
    except GridStreamError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(exc.exit_code) from exc
    sources = resolved.sources

    typer.echo("Connection Settings (resolved):")
    for label, key, value in [
        ("host", "host", resolved.host),
        ("port", "port", str(resolved.port)),
        ("database", "dbname", resolved.dbname),
        ("user", "user", resolved.user or "not set"),
        ("password", "password", _mask(resolved.password)),
        ("sslmode", "sslmode", resolved.sslmode),
    ]:
        typer.echo(f"  {label}: {value} ({sources.get(key, 'default')})")

    typer.echo("")
    typer.echo("Adapter:")
    for key, value in resolved.adapter.model_dump().items():
        typer.echo(f"  {key}: {value} ({sources.get(f'adapter.{key}', 'default')})")

    typer.echo("")
    typer.echo(f"Format: {resolved.default_format} ({sources.get('default_format', 'default')})")
    typer.echo(f"Active Profile: {resolved.active_profile or 'none'}")
    config_path = ctx.obj.get("config_file") if ctx.obj else None
    typer.echo(f"Config File: {config_path or DEFAULT_CONFIG_PATH}")


@config_app.command("profiles")
def config_profiles(ctx: typer.Context) -> None:
    """List connection profiles."""
    try:
        app_config = get_app_config(ctx)
    except GridStreamError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(exc.exit_code) from exc

    if not app_config.profiles:
        typer.echo("No profiles configured.")
        return

    active = (ctx.obj or {}).get("profile") or app_config.default_profile
    for name, profile in sorted(app_config.profiles.items()):
        marker = "* " if name == active else "  "
        typer.echo(f"{marker}{name}: {profile.user or ''}@{profile.host}:{profile.port}/{profile.dbname}")
