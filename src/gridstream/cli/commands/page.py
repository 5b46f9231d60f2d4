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
from gridstream.core.exceptions import DataSourceError, InputError
from gridstream.core.exit_codes import ExitCode
from gridstream.core.models import QueryResult
from gridstream.core.sorting import parse_sort_arg

if TYPE_CHECKING:
    from gridstream.core.adapter import DataAdapter


async def _read_page(
    adapter: DataAdapter, row_from: int, row_to: int, sort: tuple
) -> QueryResult:
    if sort:
        await adapter.set_sort(sort)
    await adapter.open()
    adapter.get_data_table_slice(row_from, row_to)
    await adapter.wait_idle()
    if adapter.data_source_error:
        raise DataSourceError(adapter.data_source_error)

    page = adapter.get_data_table_slice(row_from, row_to)
    columns = list(adapter.current_schema)
    if page is None:
        return QueryResult(columns=columns, rows=[], row_count=0, status_message="(no data)")

    info = adapter.row_count_info
    if info.real_row_count is not None:
        total = f"{info.real_row_count}"
    elif info.estimated_row_count is not None:
        total = f"~{info.estimated_row_count}"
    else:
        total = f"{info.available_row_count}+"
    status = f"rows {page.row_offset + 1}-{page.row_offset + len(page.rows)} of {total}"
    return QueryResult(
        columns=columns,
        rows=page.rows,
        row_count=len(page.rows),
        status_message=status,
        row_offset=page.row_offset,
    )


def page_command(
    ctx: typer.Context,
    file: FileArg = None,
    execute: ExecuteOpt = None,
    table: TableOpt = None,
    view: ViewOpt = None,
    file_view: FileViewOpt = None,
    row_from: Annotated[
        int,
        typer.Option("--from", min=0, help="First row of the page (0-based)"),
    ] = 0,
    row_to: Annotated[
        int | None,
        typer.Option("--to", min=0, help="Row after the last one on the page"),
    ] = None,
    sort: Annotated[
        list[str] | None,
        typer.Option("--sort", "-s", help="Sort by column[:asc|desc]; repeat for multi-column"),
    ] = None,
) -> None:
    """Show one page of a tab's rows, reading only as far as needed."""
    end = row_to if row_to is not None else row_from + 50
    try:
        descriptor = build_descriptor(
            ctx, file=file, execute=execute, table=table, view=view, file_view=file_view
        )
        sort_spec = tuple(parse_sort_arg(s) for s in sort or [])
        if end < row_from:
            raise InputError(f"--to ({end}) must not be less than --from ({row_from})")
    except (InputError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(ExitCode.INPUT_ERROR) from exc

    result = run_with_adapter(
        ctx, descriptor, lambda adapter: _read_page(adapter, row_from, end, sort_spec)
    )
    output_result(ctx, result)
