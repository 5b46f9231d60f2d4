"""Commands for the persisted per-tab data."""

from __future__ import annotations

from typing import Annotated

import typer

from gridstream.cli.commands._shared import get_resolved_config
from gridstream.core.cache import JsonStaleDataStore
from gridstream.core.exceptions import GridStreamError

cache_app = typer.Typer(help="Inspect or clear persisted tab data")

TabArg = Annotated[str, typer.Argument(help="Tab id used with --tab")]


@cache_app.callback(invoke_without_command=True)
def cache_callback(ctx: typer.Context) -> None:
    if not ctx.invoked_subcommand:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _store(ctx: typer.Context) -> JsonStaleDataStore:
    return JsonStaleDataStore(get_resolved_config(ctx).adapter.cache_dir)


@cache_app.command("show")
def cache_show(ctx: typer.Context, tab: TabArg) -> None:
    """Summarize what a tab would display before its first batch."""
    try:
        store = _store(ctx)
        data = store.load(tab)
        path = store.path_for(tab)
    except GridStreamError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(exc.exit_code) from exc

    if data is None:
        typer.echo(f"No cached data for tab '{tab}'.")
        return

    typer.echo(f"Tab: {tab}")
    typer.echo(f"File: {path}")
    typer.echo(f"Columns: {', '.join(c.name for c in data.schema_) or 'none'}")
    typer.echo(f"Rows cached: {len(data.rows)} (offset {data.row_offset})")
    if data.real_row_count is not None:
        typer.echo(f"Row count: {data.real_row_count}")
    elif data.estimated_row_count is not None:
        typer.echo(f"Row count: ~{data.estimated_row_count}")
    else:
        typer.echo(f"Row count: {data.available_row_count}+")
    if data.sort:
        typer.echo("Sort: " + ", ".join(f"{s.column} {s.order}" for s in data.sort))


@cache_app.command("clear")
def cache_clear(ctx: typer.Context, tab: TabArg) -> None:
    """Delete the persisted data of a tab."""
    try:
        removed = _store(ctx).delete(tab)
    except GridStreamError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(exc.exit_code) from exc

    if removed:
        typer.echo(f"Cleared cached data for tab '{tab}'.")
    else:
        typer.echo(f"No cached data for tab '{tab}'.")
