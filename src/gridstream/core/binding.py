"""Query source binding.

Turns a data-source descriptor into the set of optional operations the
data adapter may call. A missing operation means the source does not
support it; a binding without either reader means there is nothing to
query.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from gridstream.core.exceptions import InputError
from gridstream.core.models import AGGREGATE_TYPES, ColumnSort, Row
from gridstream.core.sources import (
    FileViewSource,
    ScriptSource,
    TableSource,
    is_allowed_in_subquery,
    qualified_name,
    quote_ident,
    trim_query,
)

if TYPE_CHECKING:
    from gridstream.core.cancellation import CancellationToken
    from gridstream.core.models import QueryResult
    from gridstream.core.reader import StreamReader
    from gridstream.core.sources import DataSourceDescriptor

GetReader = Callable[["CancellationToken"], Awaitable["StreamReader"]]
GetSortableReader = Callable[[Sequence[ColumnSort], "CancellationToken"], Awaitable["StreamReader"]]
GetRowCount = Callable[["CancellationToken"], Awaitable["int | None"]]
GetColumnAggregate = Callable[[str, str, "CancellationToken"], Awaitable[Any]]
GetColumnsData = Callable[[Sequence[str], "CancellationToken"], Awaitable[list[Row]]]


class QueryEngine(Protocol):
    async def stream(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
        *,
        token: CancellationToken | None = None,
        batch_size: int | None = None,
    ) -> StreamReader: ...

    async def query(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> QueryResult: ...

    async def scalar(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> Any: ...


@dataclass
class QueryBinding:
    source_query: str | None = None
    get_reader: GetReader | None = None
    get_sortable_reader: GetSortableReader | None = None
    get_row_count: GetRowCount | None = None
    get_estimated_row_count: GetRowCount | None = None
    get_column_aggregate: GetColumnAggregate | None = None
    get_columns_data: GetColumnsData | None = None
    user_errors: list[str] = field(default_factory=list)
    internal_errors: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.get_row_count is not None and self.get_estimated_row_count is not None:
            raise ValueError("A binding provides either an exact or an estimated row count")

    @property
    def queryable(self) -> bool:
        return self.get_reader is not None or self.get_sortable_reader is not None


def order_by_clause(sort: Sequence[ColumnSort]) -> str:
    if not sort:
        return ""
    terms = ", ".join(f"{quote_ident(s.column)} {s.order or 'asc'}" for s in sort)
    return f" ORDER BY {terms}"


def aggregate_sql(column: str, agg_type: str, relation: str) -> str:
    if agg_type not in AGGREGATE_TYPES:
        msg = f"Unknown aggregate '{agg_type}'. Use one of: {', '.join(AGGREGATE_TYPES)}"
        raise InputError(msg)
    return f"SELECT {agg_type}({quote_ident(column)}) FROM {relation}"


def columns_sql(columns: Sequence[str], relation: str) -> str:
    if not columns:
        raise InputError("At least one column is required")
    return f"SELECT {', '.join(quote_ident(c) for c in columns)} FROM {relation}"


def _relation_operations(engine: QueryEngine, relation: str, base_sql: str) -> dict[str, Any]:
    """Sortable reader, aggregate and column extract over one relation."""

    async def get_sortable_reader(
        sort: Sequence[ColumnSort], token: CancellationToken
    ) -> StreamReader:
        return await engine.stream(base_sql + order_by_clause(sort), token=token)

    async def get_column_aggregate(column: str, agg_type: str, token: CancellationToken) -> Any:
        return await engine.scalar(aggregate_sql(column, agg_type, relation), token=token)

    async def get_columns_data(columns: Sequence[str], token: CancellationToken) -> list[Row]:
        result = await engine.query(columns_sql(columns, relation), token=token)
        return list(result.rows)

    return {
        "get_sortable_reader": get_sortable_reader,
        "get_column_aggregate": get_column_aggregate,
        "get_columns_data": get_columns_data,
    }


def _bind_file_view(engine: QueryEngine, source: FileViewSource) -> QueryBinding:
    fqn = qualified_name(source.schema_name, source.view_name)
    sql = f"SELECT * FROM {fqn}"

    async def get_row_count(token: CancellationToken) -> int | None:
        value = await engine.scalar(f"SELECT count(*) FROM {fqn}", token=token)
        return None if value is None else int(value)

    return QueryBinding(
        source_query=sql,
        get_row_count=get_row_count,
        **_relation_operations(engine, fqn, sql),
    )


def _bind_table(engine: QueryEngine, source: TableSource) -> QueryBinding:
    fqn = qualified_name(source.schema_name, source.object_name)
    sql = f"SELECT * FROM {fqn}"
    get_estimated_row_count: GetRowCount | None = None

    if source.object_type == "table":

        async def get_estimated_row_count(token: CancellationToken) -> int | None:
            value = await engine.scalar(
                "SELECT c.reltuples::bigint FROM pg_catalog.pg_class c "
                "JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace "
                "WHERE n.nspname = %(schema)s AND c.relname = %(name)s",
                {"schema": source.schema_name, "name": source.object_name},
                token=token,
            )
            # reltuples is -1 for tables that were never analyzed
            if value is None or int(value) < 0:
                return None
            return int(value)

    return QueryBinding(
        source_query=sql,
        get_estimated_row_count=get_estimated_row_count,
        **_relation_operations(engine, fqn, sql),
    )


def _bind_script(engine: QueryEngine, source: ScriptSource) -> QueryBinding:
    if not source.query or not trim_query(source.query):
        return QueryBinding()

    query = trim_query(source.query)
    if not is_allowed_in_subquery(query):

        async def get_reader(token: CancellationToken) -> StreamReader:
            return await engine.stream(query, token=token)

        return QueryBinding(get_reader=get_reader)

    # newline closes a trailing line comment before the parenthesis
    relation = f"({query}\n) AS src"
    ops = _relation_operations(engine, relation, query)

    async def get_sortable_reader(
        sort: Sequence[ColumnSort], token: CancellationToken
    ) -> StreamReader:
        sql = query if not sort else f"SELECT * FROM {relation}{order_by_clause(sort)}"
        return await engine.stream(sql, token=token)

    ops["get_sortable_reader"] = get_sortable_reader
    return QueryBinding(source_query=query, **ops)


def bind_source(engine: QueryEngine, descriptor: DataSourceDescriptor | None) -> QueryBinding:
    """Build the operation set for ``descriptor``."""
    if descriptor is None:
        return QueryBinding(internal_errors=["Data source is missing for the tab"])
    if isinstance(descriptor, FileViewSource):
        return _bind_file_view(engine, descriptor)
    if isinstance(descriptor, TableSource):
        return _bind_table(engine, descriptor)
    if isinstance(descriptor, ScriptSource):
        return _bind_script(engine, descriptor)
    return QueryBinding()
