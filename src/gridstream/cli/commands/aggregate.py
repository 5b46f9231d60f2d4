from __future__ import annotations

from typing import TYPE_CHECKING, Annotated, Any

import typer

from gridstream.cli.commands._shared import (
    ExecuteOpt,
    FileViewOpt,
    TableOpt,
    ViewOpt,
    build_descriptor,
    run_with_adapter,
)
from gridstream.core.exceptions import InputError
from gridstream.core.exit_codes import ExitCode
from gridstream.core.models import AGGREGATE_TYPES

if TYPE_CHECKING:
    from gridstream.core.adapter import DataAdapter


async def _aggregate(adapter: DataAdapter, column: str, agg_type: str) -> Any:
    names = [c.name for c in adapter.current_schema]
    if names and column not in names:
        raise InputError(f"Unknown column: {column}")
    if adapter.data_source_error:
        raise InputError(adapter.data_source_error[0])
    if not adapter.supports_column_aggregate:
        raise InputError("Column aggregates are not available for this data source")
    return await adapter.get_column_aggregate(column, agg_type)


def aggregate_command(
    ctx: typer.Context,
    column: Annotated[str, typer.Argument(help="Column to aggregate")],
    agg_type: Annotated[
        str,
        typer.Option("--type", "-t", help=f"Aggregate: {', '.join(AGGREGATE_TYPES)}"),
    ] = "count",
    execute: ExecuteOpt = None,
    table: TableOpt = None,
    view: ViewOpt = None,
    file_view: FileViewOpt = None,
) -> None:
    """Compute an aggregate over one column without reading every row."""
    try:
        if agg_type not in AGGREGATE_TYPES:
            raise InputError(
                f"Unknown aggregate '{agg_type}'. Choose from: {', '.join(AGGREGATE_TYPES)}"
            )
        descriptor = build_descriptor(
            ctx, file=None, execute=execute, table=table, view=view, file_view=file_view
        )
    except InputError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(ExitCode.INPUT_ERROR) from exc

    value = run_with_adapter(
        ctx, descriptor, lambda adapter: _aggregate(adapter, column, agg_type)
    )
    if value is None:
        typer.echo("NULL")
    else:
        typer.echo(str(value))
