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
    run_with_adapter,
)
from gridstream.core.exceptions import DataSourceError, InputError
from gridstream.core.exit_codes import ExitCode

if TYPE_CHECKING:
    from gridstream.core.adapter import DataAdapter
    from gridstream.core.models import RowCountInfo


async def _count(adapter: DataAdapter, exact: bool) -> RowCountInfo:
    await adapter.open()
    if exact:
        await adapter.get_all_table_data()
    else:
        # one batch is enough to learn the schema and start counting
        adapter.get_data_table_slice(0, 1)
    await adapter.wait_idle(background=True)
    if adapter.data_source_error:
        raise DataSourceError(adapter.data_source_error)
    return adapter.row_count_info


def count_command(
    ctx: typer.Context,
    file: FileArg = None,
    execute: ExecuteOpt = None,
    table: TableOpt = None,
    view: ViewOpt = None,
    file_view: FileViewOpt = None,
    exact: Annotated[
        bool,
        typer.Option("--exact", help="Read the whole result to get a precise count"),
    ] = False,
) -> None:
    """Show the row counts a tab would display."""
    try:
        descriptor = build_descriptor(
            ctx, file=file, execute=execute, table=table, view=view, file_view=file_view
        )
    except InputError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(ExitCode.INPUT_ERROR) from exc

    info = run_with_adapter(ctx, descriptor, lambda adapter: _count(adapter, exact))

    def _show(value: int | None) -> str:
        return "unknown" if value is None else str(value)

    typer.echo(f"real: {_show(info.real_row_count)}")
    typer.echo(f"estimated: {_show(info.estimated_row_count)}")
    typer.echo(f"available: {info.available_row_count}")
