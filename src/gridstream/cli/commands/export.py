from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

import typer

from gridstream.cli.commands._shared import (
    ExecuteOpt,
    FileArg,
    FileViewOpt,
    TableOpt,
    ViewOpt,
    build_descriptor,
    output_result,
    run_with_adapter,
)
from gridstream.core.exceptions import InputError
from gridstream.core.exit_codes import ExitCode
from gridstream.core.models import QueryResult

if TYPE_CHECKING:
    from gridstream.core.adapter import DataAdapter


def _parse_columns(value: str | None) -> list[str] | None:
    if value is None:
        return None
    columns = [c.strip() for c in value.split(",") if c.strip()]
    if not columns:
        raise InputError("--columns needs at least one column name")
    return columns


async def _export(adapter: DataAdapter, columns: list[str] | None) -> QueryResult:
    await adapter.open()
    rows = await adapter.get_all_table_data(columns)
    schema = adapter.current_schema
    if columns is not None:
        by_name = {c.name: c for c in schema}
        schema = tuple(by_name[c] for c in columns if c in by_name)
    return QueryResult(
        columns=list(schema),
        rows=rows,
        row_count=len(rows),
        status_message=f"({len(rows)} rows)",
    )


def export_command(
    ctx: typer.Context,
    file: FileArg = None,
    execute: ExecuteOpt = None,
    table: TableOpt = None,
    view: ViewOpt = None,
    file_view: FileViewOpt = None,
    columns: Annotated[
        str | None,
        typer.Option("--columns", "-c", help="Comma-separated columns to export"),
    ] = None,
) -> None:
    """Export every row of a tab, optionally limited to some columns."""
    try:
        descriptor = build_descriptor(
            ctx, file=file, execute=execute, table=table, view=view, file_view=file_view
        )
        selected = _parse_columns(columns)
    except InputError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(ExitCode.INPUT_ERROR) from exc

    result = run_with_adapter(ctx, descriptor, lambda adapter: _export(adapter, selected))
    output_result(ctx, result, row_numbers=False)
