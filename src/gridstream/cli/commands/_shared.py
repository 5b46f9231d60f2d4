"""Shared CLI plumbing for command modules.

Config resolution, data-source options, adapter sessions and output.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Annotated, Any, TypeVar

import typer

from gridstream.cli.output import get_formatter, write_output
from gridstream.core.adapter import DataAdapter
from gridstream.core.binding import bind_source
from gridstream.core.cache import JsonStaleDataStore, MemoryStaleDataStore
from gridstream.core.config import load_config, resolve_config
from gridstream.core.engine import PgEngine
from gridstream.core.exceptions import GridStreamError, InputError
from gridstream.core.query_source import resolve_query_source
from gridstream.core.sources import FileViewSource, ScriptSource, TableSource

if TYPE_CHECKING:
    from gridstream.core.config import AppConfig, ResolvedConfig
    from gridstream.core.models import QueryResult
    from gridstream.core.sources import DataSourceDescriptor

T = TypeVar("T")

FileArg = Annotated[
    str | None,
    typer.Argument(help="SQL file whose result the tab shows"),
]
ExecuteOpt = Annotated[
    str | None,
    typer.Option("--execute", "-e", help="Inline SQL query"),
]
TableOpt = Annotated[
    str | None,
    typer.Option("--table", help="Table to show, as schema.name"),
]
ViewOpt = Annotated[
    str | None,
    typer.Option("--view", help="View to show, as schema.name"),
]
FileViewOpt = Annotated[
    str | None,
    typer.Option("--file-view", help="File-backed view to show (exact row counts)"),
]

DEFAULT_TAB_ID = "cli"


def get_app_config(ctx: typer.Context) -> AppConfig:
    obj = ctx.ensure_object(dict)
    if obj.get("app_config") is None:
        obj["app_config"] = load_config(obj.get("config_file"))
    return obj["app_config"]


def get_resolved_config(ctx: typer.Context) -> ResolvedConfig:
    obj = ctx.ensure_object(dict)
    cli_overrides: dict[str, Any] = {}
    for key in ("host", "port", "database", "user", "password", "sslmode"):
        val = obj.get(key)
        if val is not None:
            cli_overrides[key] = val

    return resolve_config(
        get_app_config(ctx),
        profile_name=obj.get("profile"),
        dsn=obj.get("dsn"),
        **cli_overrides,
    )


def parse_table_arg(table_arg: str) -> tuple[str, str]:
    if "." in table_arg:
        schema, table = table_arg.split(".", 1)
        return schema, table
    return "public", table_arg


def build_descriptor(
    ctx: typer.Context,
    *,
    file: str | None,
    execute: str | None,
    table: str | None,
    view: str | None,
    file_view: str | None,
) -> DataSourceDescriptor:
    """Turn source options into a descriptor. Shows help when nothing was given."""
    named = [v for v in (table, view, file_view) if v is not None]
    if len(named) > 1 or (named and (file is not None or execute is not None)):
        raise InputError("Use only one of FILE, -e, --table, --view or --file-view.")

    if table is not None:
        schema, name = parse_table_arg(table)
        return TableSource(schema_name=schema, object_name=name, object_type="table")
    if view is not None:
        schema, name = parse_table_arg(view)
        return TableSource(schema_name=schema, object_name=name, object_type="view")
    if file_view is not None:
        schema, name = parse_table_arg(file_view)
        return FileViewSource(schema_name=schema, view_name=name)

    try:
        is_tty = sys.stdin.isatty()
    except (ValueError, AttributeError):
        is_tty = False
    if execute is None and file is None and is_tty:
        typer.echo(ctx.get_help())
        raise typer.Exit()

    return ScriptSource(query=resolve_query_source(inline=execute, file_path=file))


async def _session(
    resolved: ResolvedConfig,
    tab_id: str | None,
    descriptor: DataSourceDescriptor,
    work: Callable[[DataAdapter], Awaitable[T]],
) -> T:
    settings = resolved.adapter
    store = JsonStaleDataStore(settings.cache_dir) if tab_id else MemoryStaleDataStore()
    async with PgEngine(resolved) as engine:
        binding = bind_source(engine, descriptor)
        adapter = DataAdapter(
            tab_id or DEFAULT_TAB_ID,
            lambda: binding,
            store=store,
            resync=engine.resync,
            settings=settings,
        )
        try:
            return await work(adapter)
        finally:
            await adapter.close()


def run_with_adapter(
    ctx: typer.Context,
    descriptor: DataSourceDescriptor,
    work: Callable[[DataAdapter], Awaitable[T]],
) -> T:
    """Run ``work`` against a fresh adapter for ``descriptor``.

    GridStream errors are reported on stderr and turned into the
    matching exit code.
    """
    obj = ctx.ensure_object(dict)
    try:
        resolved = get_resolved_config(ctx)
        return asyncio.run(_session(resolved, obj.get("tab"), descriptor, work))
    except GridStreamError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(exc.exit_code) from exc


def format_options(ctx: typer.Context) -> dict[str, Any]:
    obj = ctx.ensure_object(dict)
    app_config = obj.get("app_config")
    return {
        "format_flag": obj.get("format"),
        "default": app_config.default_format if app_config is not None else None,
        "compact": obj.get("compact", False),
        "width": obj.get("width", 40),
        "no_header": obj.get("no_header", False),
    }


def output_result(ctx: typer.Context, result: QueryResult, *, row_numbers: bool = True) -> None:
    formatter = get_formatter(**format_options(ctx), row_numbers=row_numbers)
    write_output(formatter, result)
