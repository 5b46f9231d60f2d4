"""Immutable data adapter state and its transition functions.

Every function here is pure: it takes an AdapterState and returns a new
one. The row buffer itself lives in the adapter, so functions that depend
on it receive the rows or their count as arguments.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace

from gridstream.core.models import (
    ColumnMeta,
    Row,
    RowCountInfo,
    SortSpec,
    StaleSnapshot,
    TabDataCache,
)
from gridstream.core.sorting import is_same_sort_spec

INTERNAL_BINDING_ERROR = "Internal error creating data adapter. Please report this issue."


@dataclass(frozen=True)
class AdapterState:
    data_source_version: int = 0
    data_version: int = 0
    actual_schema: tuple[ColumnMeta, ...] = ()
    stale: StaleSnapshot | None = None
    row_count: RowCountInfo = RowCountInfo()
    sort: SortSpec = ()
    last_sort: SortSpec = ()
    exhausted: bool = False
    build_errors: tuple[str, ...] = ()
    read_errors: tuple[str, ...] = ()
    is_fetching: bool = False
    is_creating_reader: bool = False
    data_read_cancelled: bool = False
    sortable: bool = False

    @property
    def is_stale(self) -> bool:
        return self.stale is not None

    @property
    def current_schema(self) -> tuple[ColumnMeta, ...]:
        if self.stale is not None:
            return self.stale.schema
        return self.actual_schema

    @property
    def data_source_error(self) -> tuple[str, ...]:
        return self.build_errors + self.read_errors

    @property
    def disable_sort(self) -> bool:
        return not self.sortable or not self.current_schema or bool(self.data_source_error)

    @property
    def is_sorting(self) -> bool:
        return not is_same_sort_spec(self.sort, self.last_sort)

    @property
    def is_fetching_data(self) -> bool:
        return self.is_fetching or self.is_creating_reader


def initial_state(
    cache: TabDataCache | None,
    *,
    sortable: bool = False,
    build_errors: Sequence[str] = (),
) -> AdapterState:
    """Seed a new adapter, optionally from persisted tab state."""
    if cache is None or not cache.schema_:
        return AdapterState(sortable=sortable, build_errors=tuple(build_errors))

    sort = tuple(cache.sort)
    real = cache.real_row_count
    return AdapterState(
        stale=StaleSnapshot(
            schema=tuple(cache.schema_),
            rows=[tuple(r) for r in cache.rows],
            row_offset=cache.row_offset,
        ),
        row_count=RowCountInfo(
            real_row_count=real,
            estimated_row_count=cache.estimated_row_count if real is None else None,
            available_row_count=cache.available_row_count,
        ),
        sort=sort,
        last_sort=sort,
        sortable=sortable,
        build_errors=tuple(build_errors),
    )


def with_binding(
    state: AdapterState, *, sortable: bool, build_errors: Sequence[str]
) -> AdapterState:
    return replace(state, sortable=sortable, build_errors=tuple(build_errors))


def begin_reset(
    state: AdapterState, buffer: Sequence[Row], sort: SortSpec | None
) -> AdapterState:
    """Start a Reset.

    ``sort=None`` means the source changed: the sort is cleared along with
    the row counts. Otherwise the new sort is kept and the old one moves to
    ``last_sort`` so the fetch that follows is reported as sorting.

    A non-stale result with a known schema is demoted to the stale
    snapshot, even when it has no rows.
    """
    stale = state.stale
    if stale is None:
        if state.actual_schema:
            stale = StaleSnapshot(schema=state.actual_schema, rows=list(buffer), row_offset=0)
        last_available = len(buffer)
    else:
        last_available = stale.available_row_count

    common = {
        "stale": stale,
        "exhausted": False,
        "read_errors": (),
        "is_fetching": False,
        "data_read_cancelled": False,
    }
    if sort is None:
        return replace(
            state,
            actual_schema=(),
            row_count=RowCountInfo(available_row_count=last_available),
            sort=(),
            last_sort=(),
            **common,
        )
    return replace(
        state,
        row_count=replace(state.row_count, available_row_count=last_available),
        sort=tuple(sort),
        last_sort=state.sort,
        **common,
    )


def creating_reader(state: AdapterState) -> AdapterState:
    if state.is_creating_reader:
        return state
    return replace(state, is_creating_reader=True)


def reader_created(state: AdapterState) -> AdapterState:
    return replace(
        state,
        is_creating_reader=False,
        data_source_version=state.data_source_version + 1,
    )


def reader_failed(state: AdapterState, message: str | None) -> AdapterState:
    """Reader creation ended without a reader; the sort attempt is over."""
    state = replace(state, is_creating_reader=False, last_sort=state.sort)
    if message is None:
        return state
    return with_read_error(state, message)


def fetch_started(state: AdapterState) -> AdapterState:
    if state.is_fetching:
        return state
    return replace(state, is_fetching=True)


def without_source(state: AdapterState) -> AdapterState:
    """Nothing to query: drop stale data and show an empty, idle tab."""
    return replace(
        state,
        stale=None,
        actual_schema=(),
        row_count=RowCountInfo(),
        is_creating_reader=False,
        is_fetching=False,
        last_sort=state.sort,
    )


def batch_appended(
    state: AdapterState, schema: tuple[ColumnMeta, ...], total_rows: int
) -> AdapterState:
    """Record one appended batch. The first batch replaces stale data."""
    return replace(
        state,
        actual_schema=state.actual_schema or schema,
        stale=None,
        row_count=replace(state.row_count, available_row_count=total_rows),
        data_version=state.data_version + 1,
    )


def fetch_finished(
    state: AdapterState, *, exhausted: bool, total_rows: int, sort: SortSpec
) -> AdapterState:
    """End of a fetch loop. Exhaustion finalises the real row count."""
    last_sort = state.last_sort if is_same_sort_spec(state.last_sort, sort) else tuple(sort)
    state = replace(state, is_fetching=False, last_sort=last_sort)
    if not exhausted:
        return state
    return replace(
        state,
        exhausted=True,
        stale=None,
        row_count=RowCountInfo(
            real_row_count=total_rows,
            estimated_row_count=None,
            available_row_count=total_rows,
        ),
    )


def with_real_row_count(state: AdapterState, count: int) -> AdapterState:
    """Accept a precise count unless exhaustion already fixed it."""
    if state.exhausted or state.row_count.real_row_count == count:
        return state
    return replace(
        state,
        row_count=replace(state.row_count, real_row_count=count, estimated_row_count=None),
    )


def with_estimated_row_count(state: AdapterState, count: int) -> AdapterState:
    """Accept an estimate only while no precise count is known."""
    if state.row_count.real_row_count is not None:
        return state
    if state.row_count.estimated_row_count == count:
        return state
    return replace(state, row_count=replace(state.row_count, estimated_row_count=count))


def with_read_error(state: AdapterState, message: str) -> AdapterState:
    """Append a de-duplicated error. Errors always stop fetching."""
    errors = state.read_errors if message in state.read_errors else (*state.read_errors, message)
    return replace(state, read_errors=errors, is_fetching=False, is_creating_reader=False)


def with_data_read_cancelled(state: AdapterState, cancelled: bool) -> AdapterState:
    if state.data_read_cancelled == cancelled:
        return state
    return replace(state, data_read_cancelled=cancelled)


def with_last_sort(state: AdapterState, sort: SortSpec) -> AdapterState:
    if is_same_sort_spec(state.last_sort, sort):
        return state
    return replace(state, last_sort=tuple(sort))


def with_initial_sort(state: AdapterState, sort: SortSpec) -> AdapterState:
    """Set the sort before any reader exists; nothing is being re-sorted."""
    return replace(state, sort=tuple(sort), last_sort=tuple(sort))


def invariant_violations(state: AdapterState, buffer_len: int) -> list[str]:
    """Return a description of every broken state invariant."""
    problems: list[str] = []
    counts = state.row_count

    if state.stale is not None and buffer_len > 0:
        problems.append("stale snapshot present while the row buffer is not empty")
    if state.stale is None and counts.available_row_count != buffer_len:
        problems.append(
            f"available row count {counts.available_row_count} "
            f"does not match buffer length {buffer_len}"
        )
    if counts.real_row_count is not None and counts.estimated_row_count is not None:
        problems.append("both real and estimated row counts are set")
    if state.exhausted and counts.real_row_count != counts.available_row_count:
        problems.append("exhausted source with real row count different from available rows")
    if state.data_source_error and (state.is_fetching_data or not state.disable_sort):
        problems.append("errors present while fetching or with sorting enabled")
    if state.is_sorting and state.is_fetching_data and state.disable_sort:
        problems.append("sorting in progress while sorting is disabled")
    if not state.actual_schema and state.stale is None and state.is_sorting:
        problems.append("sorting without any data")
    return problems
