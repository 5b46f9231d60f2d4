"""Per-tab data adapter.

Bridges a forward-only, batch-streamed query result to random-access row
slices. The adapter owns the row buffer, the stale snapshot shown while a
replacement result is built, row counts, sort state and three independent
cancellation scopes:

* main: the fetch loop and reader creation. Cancelled by a Reset or by the
  user; survives the tab becoming inactive.
* user: column aggregates and full extracts. Single-flight, a new request
  cancels the previous one.
* background: row counting. Cancelled when the tab becomes inactive and
  restarted lazily.

All work runs on one event loop. Methods that schedule background work
(``get_data_table_slice``, ``toggle_column_sort``) must be called from a
coroutine running on that loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine, Sequence
from typing import Any

import sentry_sdk

from gridstream.core import state as st
from gridstream.core.binding import QueryBinding
from gridstream.core.cache import MemoryStaleDataStore, StaleDataStore
from gridstream.core.cancellation import CancellationScope
from gridstream.core.config import AdapterSettings
from gridstream.core.exceptions import (
    CancelledOperation,
    DataSourceError,
    EngineError,
    GridStreamError,
    InputError,
    InvariantViolation,
    OutOfMemory,
    ResourceExhausted,
    classify_engine_error,
)
from gridstream.core.logging import get_logger
from gridstream.core.models import (
    ColumnMeta,
    DataSlice,
    Row,
    RowCountInfo,
    SortSpec,
    TabDataCache,
)
from gridstream.core.reader import StreamReader
from gridstream.core.sorting import (
    is_same_sort_spec,
    is_strict_schema_subset,
    toggle_multi_column_sort,
)

BindingProvider = Callable[[], QueryBinding]
Listener = Callable[[st.AdapterState], None]

READER_FAILED_MESSAGE = (
    "Failed to create a reader for the data source. See logs for technical details."
)
READ_FAILED_MESSAGE = (
    "Failed to read data from the data source. See logs for technical details."
)
ROW_COUNT_FAILED_MESSAGE = "Failed to fetch row counts"
ROW_COUNT_OOM_MESSAGE = (
    "Data source is too large to count rows. Try using a SQL query with specific columns."
)
EXTRACT_REPLACED_REASON = "Operation cancelled as it was replaced by a newer copy/export request"
AGGREGATE_REPLACED_REASON = (
    "Operation cancelled as it was replaced by a newer column aggregate request"
)
USER_CANCELLED_REASON = "Data read was cancelled by the user"

_ResetHandle = tuple[StreamReader | None, list["asyncio.Task[Any]"], int]


class DataAdapter:
    """Controller for one tab's query result."""

    def __init__(
        self,
        tab_id: str,
        binding_provider: BindingProvider,
        *,
        store: StaleDataStore | None = None,
        resync: Callable[[], Awaitable[None]] | None = None,
        settings: AdapterSettings | None = None,
    ) -> None:
        self.tab_id = tab_id
        self.settings = settings or AdapterSettings()
        self._binding_provider = binding_provider
        self._store: StaleDataStore = store if store is not None else MemoryStaleDataStore()
        self._resync = resync
        self._log = get_logger("adapter", tab_id=tab_id)

        self._buffer: list[Row] = []
        self._reader: StreamReader | None = None
        self._fetch_to: int | None = 0
        self._last_requested_to: int | None = None
        self._generation = 0
        self._active = True
        self._closed = False

        self._main = CancellationScope("main fetch")
        self._user = CancellationScope("user task")
        self._background = CancellationScope("background task")

        self._tasks: set[asyncio.Task[Any]] = set()
        self._reader_task: asyncio.Task[Any] | None = None
        self._fetch_task: asyncio.Task[Any] | None = None
        self._row_count_task: asyncio.Task[Any] | None = None
        self._listeners: list[Listener] = []

        self._binding = binding_provider()
        self._state = st.initial_state(
            self._store.load(tab_id),
            sortable=self._binding.get_sortable_reader is not None,
            build_errors=self._build_errors(self._binding),
        )

    async def __aenter__(self) -> DataAdapter:
        await self.open()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> st.AdapterState:
        return self._state

    @property
    def data_source_version(self) -> int:
        return self._state.data_source_version

    @property
    def data_version(self) -> int:
        return self._state.data_version

    @property
    def current_schema(self) -> tuple[ColumnMeta, ...]:
        return self._state.current_schema

    @property
    def is_stale(self) -> bool:
        return self._state.is_stale

    @property
    def row_count_info(self) -> RowCountInfo:
        return self._state.row_count

    @property
    def disable_sort(self) -> bool:
        return self._state.disable_sort

    @property
    def sort(self) -> SortSpec:
        return self._state.sort

    @property
    def data_source_exhausted(self) -> bool:
        return self._state.exhausted

    @property
    def data_source_error(self) -> list[str]:
        return list(self._state.data_source_error)

    @property
    def is_fetching_data(self) -> bool:
        return self._state.is_fetching_data

    @property
    def is_sorting(self) -> bool:
        return self._state.is_sorting

    @property
    def data_read_cancelled(self) -> bool:
        return self._state.data_read_cancelled

    @property
    def source_query(self) -> str | None:
        return self._binding.source_query

    @property
    def supports_column_aggregate(self) -> bool:
        return self._binding.get_column_aggregate is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with every new state. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, new: st.AdapterState) -> None:
        if new is self._state:
            return
        self._state = new
        self._check_invariants()
        for listener in list(self._listeners):
            listener(new)

    def _check_invariants(self) -> None:
        problems = st.invariant_violations(self._state, len(self._buffer))
        if not problems:
            return
        if self.settings.strict_invariants:
            raise InvariantViolation("; ".join(problems))
        self._log.error("adapter state invariant violated", problems=problems)

    # ------------------------------------------------------------------
    # Task bookkeeping
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=f"{self.tab_id}:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log.error("adapter task failed", task=task.get_name(), error=str(exc))
            sentry_sdk.capture_exception(exc)

    def _pending_tasks(self, *, background: bool = False) -> list[asyncio.Task[Any]]:
        candidates = [self._reader_task, self._fetch_task]
        if background:
            candidates.append(self._row_count_task)
        current = asyncio.current_task()
        return [t for t in candidates if t is not None and not t.done() and t is not current]

    async def wait_idle(self, *, background: bool = False) -> None:
        """Wait until reader creation and fetching (and optionally row counting) settle.

        Re-raises the exception of a task that failed unexpectedly.
        """
        while pending := self._pending_tasks(background=background):
            done, _ = await asyncio.wait(pending)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    raise task.exception()  # type: ignore[misc]

    def _cancel_all(self, reason: str, *, keep_user: bool = False) -> None:
        self._main.cancel(reason)
        if not keep_user:
            self._user.cancel(reason)
        self._background.cancel(reason)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create the first reader. A persisted snapshot stays displayed until data arrives."""
        if self._reader is not None or self._reader_task is not None:
            return
        if self._binding.queryable and not self._state.data_source_error:
            self._set_state(st.creating_reader(self._state))
        self._reader_task = self._spawn(self._create_reader(self._generation), "open")
        await asyncio.shield(self._reader_task)

    async def close(self) -> None:
        """Cancel every scope, wait for tasks and release the reader."""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        self._cancel_all("Tab closed")
        pending = [t for t in self._tasks if t is not asyncio.current_task()]
        if pending:
            await asyncio.wait(pending)
        reader, self._reader = self._reader, None
        if reader is not None:
            await reader.cancel()
        self._log.debug("adapter closed")

    def set_active(self, active: bool) -> None:
        """Inactive tabs give up user and background work; the main fetch continues."""
        if active == self._active:
            return
        self._active = active
        if not active:
            self._user.cancel("Tab became inactive")
            self._background.cancel("Tab became inactive")
        elif self._reader is not None:
            self._start_row_count()

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def _build_errors(self, binding: QueryBinding) -> list[str]:
        errors = list(binding.user_errors)
        if binding.internal_errors:
            for error in binding.internal_errors:
                self._log.error("failed to bind data source", error=error)
            errors.append(st.INTERNAL_BINDING_ERROR)
        return errors

    def _begin_reset(self, sort: SortSpec | None, *, internal: bool = False) -> _ResetHandle:
        """Synchronous part of a Reset: demote data and cancel in-flight work.

        An internal Reset (the silent retry after a recoverable error) leaves
        user requests running; they wait for the re-read instead of failing.
        """
        self._generation += 1
        buffer, self._buffer = self._buffer, []
        self._fetch_to = 0
        new_state = st.begin_reset(self._state, buffer, sort)
        if self._binding.queryable and not new_state.data_source_error:
            new_state = st.creating_reader(new_state)
        self._set_state(new_state)
        self._cancel_all("Data source reset", keep_user=internal)
        reader, self._reader = self._reader, None
        return reader, self._pending_tasks(background=True), self._generation

    async def _finish_reset(self, handle: _ResetHandle, *, retry: bool) -> None:
        reader, pending, generation = handle
        if pending:
            await asyncio.wait(pending)
        if reader is not None:
            await reader.cancel()
        if generation != self._generation:
            return
        await self._create_reader(generation, retry=retry)

    def _schedule_reset(
        self, sort: SortSpec | None, *, retry: bool = True, internal: bool = False
    ) -> asyncio.Task[Any]:
        handle = self._begin_reset(sort, internal=internal)
        self._reader_task = self._spawn(self._finish_reset(handle, retry=retry), "reset")
        return self._reader_task

    async def reset(self) -> None:
        """Re-read the source from the start, keeping the current sort."""
        await asyncio.shield(self._schedule_reset(self._state.sort))

    async def source_changed(self) -> None:
        """Re-read the binding and reset everything, including the sort."""
        self._binding = self._binding_provider()
        self._set_state(
            st.with_binding(
                self._state,
                sortable=self._binding.get_sortable_reader is not None,
                build_errors=self._build_errors(self._binding),
            )
        )
        await asyncio.shield(self._schedule_reset(None))

    def toggle_column_sort(
        self, column: str, *, multi: bool = False
    ) -> asyncio.Task[Any] | None:
        """Cycle ``column`` through asc, desc and unsorted and re-read the source.

        The current rows become stale immediately. Returns the task that
        creates the re-sorted reader, or None when sorting is disabled.
        """
        if self._state.disable_sort:
            self._log.debug("sort ignored, sorting disabled", column=column)
            return None
        new_sort = toggle_multi_column_sort(self._state.sort, column, multi=multi)
        return self._schedule_reset(new_sort)

    async def set_sort(self, sort: SortSpec) -> None:
        """Replace the whole sort spec.

        Before ``open()`` this only seeds the sort the first reader uses.
        Afterwards it behaves like a sort toggle and re-reads the source.
        """
        if sort and self._binding.get_sortable_reader is None:
            raise InputError("This data source does not support sorting")
        if is_same_sort_spec(sort, self._state.sort):
            return
        if self._reader is None and self._reader_task is None:
            self._set_state(st.with_initial_sort(self._state, sort))
            return
        if self._state.disable_sort:
            raise InputError("Sorting is disabled for this data source right now")
        await asyncio.shield(self._schedule_reset(tuple(sort)))

    async def _run_resync(self) -> None:
        if self._resync is not None:
            await self._resync()

    async def _create_reader(self, generation: int, *, retry: bool = True) -> None:
        binding = self._binding
        if not binding.queryable:
            self._set_state(st.without_source(self._state))
            return
        if self._state.data_source_error:
            self._set_state(st.reader_failed(self._state, None))
            return

        sort = self._state.sort
        token = self._main.token
        self._set_state(st.creating_reader(self._state))
        try:
            if binding.get_sortable_reader is not None:
                reader = await token.race(binding.get_sortable_reader(sort, token))
            else:
                assert binding.get_reader is not None
                reader = await token.race(binding.get_reader(token))
        except CancelledOperation as e:
            self._log.debug("reader creation cancelled", reason=e.reason)
            if generation == self._generation:
                self._set_state(st.reader_failed(self._state, None))
            return
        except Exception as e:
            if generation != self._generation:
                self._log.debug("discarding reader error from superseded reset", error=str(e))
                return
            err = classify_engine_error(e)
            if retry and isinstance(err, EngineError) and err.recoverable:
                self._log.warning(
                    "reader creation failed, resyncing and retrying",
                    error_type=type(err).__name__,
                    error=str(e),
                )
                await self._run_resync()
                await self._schedule_reset(sort, retry=False, internal=True)
                return
            message = self._report(e, err, READER_FAILED_MESSAGE)
            self._set_state(st.reader_failed(self._state, message))
            return

        if generation != self._generation:
            await reader.cancel()
            return

        self._reader = reader
        self._set_state(st.reader_created(self._state))
        self._log.debug(
            "reader created",
            data_source_version=self._state.data_source_version,
            sort=[s.model_dump() for s in sort],
        )
        self._start_row_count()
        if self._last_requested_to is not None and not self._state.data_read_cancelled:
            self._request_rows(self._last_requested_to)

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def _report(self, exc: BaseException, err: GridStreamError, fallback: str) -> str:
        """Log a surfaced error and return its user-facing message."""
        if isinstance(err, EngineError) and type(err) is not EngineError:
            message = err.user_message
        elif isinstance(err, EngineError):
            message = fallback
            sentry_sdk.capture_exception(exc)
        else:
            message = err.message
        self._log.error(message, error_type=type(exc).__name__, error=str(exc))
        return message

    def _surface(self, message: str) -> None:
        """Record an error and halt fetching until the next Reset."""
        self._set_state(st.with_read_error(self._state, message))
        self._main.cancel("Halted by data source error")

    # ------------------------------------------------------------------
    # Row counts
    # ------------------------------------------------------------------

    def _start_row_count(self) -> None:
        s = self._state
        if (
            not self._active
            or self._closed
            or self._reader is None
            or s.exhausted
            or s.row_count.real_row_count is not None
            or (self._row_count_task is not None and not self._row_count_task.done())
        ):
            return
        if self._binding.get_row_count is None and self._binding.get_estimated_row_count is None:
            return
        self._row_count_task = self._spawn(self._fetch_row_count(self._generation), "row-count")

    async def _fetch_row_count(self, generation: int) -> None:
        binding = self._binding
        token = self._background.token
        try:
            if binding.get_row_count is not None:
                value = await token.race(binding.get_row_count(token))
                if generation == self._generation and value is not None:
                    self._set_state(st.with_real_row_count(self._state, value))
                    self._log.debug("row count fetched", real_row_count=value)
            elif binding.get_estimated_row_count is not None:
                value = await token.race(binding.get_estimated_row_count(token))
                if generation == self._generation and value is not None:
                    self._set_state(st.with_estimated_row_count(self._state, value))
                    self._log.debug("row count estimated", estimated_row_count=value)
        except CancelledOperation as e:
            self._log.debug("row count cancelled", reason=e.reason)
        except Exception as e:
            if generation != self._generation or token.cancelled:
                return
            err = classify_engine_error(e)
            if isinstance(err, ResourceExhausted):
                self._log.debug("row count skipped, connection pool exhausted")
                return
            message = ROW_COUNT_OOM_MESSAGE if isinstance(err, OutOfMemory) else ROW_COUNT_FAILED_MESSAGE
            self._log.error("failed to fetch row count", error_type=type(e).__name__, error=str(e))
            self._surface(message)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _target_reached(self) -> bool:
        return self._fetch_to is not None and len(self._buffer) >= self._fetch_to

    def _merge_fetch_to(self, row_to: int | None) -> None:
        if row_to is None:
            self._fetch_to = None
        elif self._fetch_to is not None:
            self._fetch_to = max(self._fetch_to, row_to)

    def _request_rows(self, row_to: int | None) -> asyncio.Task[Any] | None:
        """Raise the fetch target and start the fetch loop when idle."""
        self._merge_fetch_to(row_to)
        return self._ensure_fetching()

    def _ensure_fetching(self) -> asyncio.Task[Any] | None:
        if self._fetch_task is not None and not self._fetch_task.done():
            return self._fetch_task
        s = self._state
        if (
            self._reader is None
            or self._reader.closed
            or s.exhausted
            or s.data_source_error
            or self._target_reached()
        ):
            return None
        self._set_state(st.fetch_started(self._state))
        self._fetch_task = self._spawn(self._fetch_loop(), "fetch")
        return self._fetch_task

    async def _fetch_loop(self, *, retry: bool = True) -> None:
        generation = self._generation
        reader = self._reader
        token = self._main.token
        sort = self._state.sort
        exhausted = False
        self._set_state(st.fetch_started(self._state))

        with sentry_sdk.start_span(op="adapter.fetch", description=self.tab_id) as span:
            try:
                while (
                    reader is not None
                    and not reader.closed
                    and not token.cancelled
                    and not self._state.data_source_error
                    and not self._target_reached()
                ):
                    batch = await token.race(reader.next())
                    if batch is None:
                        exhausted = True
                        break
                    self._buffer.extend(batch.rows)
                    self._set_state(
                        st.batch_appended(self._state, batch.columns, len(self._buffer))
                    )
                    self._log.debug("batch appended", rows=len(batch), total=len(self._buffer))
            except CancelledOperation as e:
                self._log.debug("fetch cancelled", reason=e.reason, user=e.is_user_cancelled)
            except Exception as e:
                if generation != self._generation or token.cancelled:
                    self._log.debug("discarding fetch error after cancellation", error=str(e))
                    return
                err = classify_engine_error(e)
                if retry and isinstance(err, EngineError) and err.recoverable:
                    await self._retry_fetch(err, e, sort)
                    return
                self._set_state(st.with_read_error(self._state, self._report(e, err, READ_FAILED_MESSAGE)))

            span.set_data("rows", len(self._buffer))
            span.set_data("exhausted", exhausted)

        if generation != self._generation:
            return
        self._set_state(
            st.fetch_finished(
                self._state, exhausted=exhausted, total_rows=len(self._buffer), sort=sort
            )
        )
        if exhausted:
            self._log.debug("data source exhausted", rows=len(self._buffer))
        await self._persist()

    async def _retry_fetch(self, err: EngineError, exc: Exception, sort: SortSpec) -> None:
        """Resync, Reset with the same sort and re-enter the fetch loop once."""
        self._log.warning(
            "fetch failed, resyncing and retrying",
            error_type=type(err).__name__,
            error=str(exc),
        )
        fetch_to = self._fetch_to
        await self._run_resync()
        await self._schedule_reset(sort, retry=False, internal=True)
        if fetch_to is None or self._fetch_to is None:
            self._fetch_to = None
        else:
            self._fetch_to = max(fetch_to, self._fetch_to)
        if self._reader is not None and not self._state.data_source_error:
            await self._fetch_loop(retry=False)

    async def _persist(self) -> None:
        """Save the tail of the buffer; file I/O runs in a worker thread."""
        s = self._state
        if not s.actual_schema:
            return
        limit = self.settings.max_persisted_rows
        start = max(0, len(self._buffer) - limit)
        real = s.row_count.real_row_count
        cache = TabDataCache(
            schema_=list(s.actual_schema),
            rows=[list(r) for r in self._buffer[start:]],
            row_offset=start,
            real_row_count=real,
            estimated_row_count=s.row_count.estimated_row_count if real is None else None,
            sort=list(s.sort),
        )
        try:
            await asyncio.to_thread(self._store.save, self.tab_id, cache)
        except OSError as e:
            self._log.warning("failed to persist tab state", error=str(e))

    # ------------------------------------------------------------------
    # Read APIs
    # ------------------------------------------------------------------

    def get_data_table_slice(self, row_from: int, row_to: int) -> DataSlice | None:
        """Return the widest available window of at most ``row_to - row_from`` rows.

        Extends the fetch in the background when ``row_to`` is past the
        buffer. Returns None while no schema is known.
        """
        if row_from < 0 or row_to < row_from:
            raise InputError(f"Invalid row range [{row_from}, {row_to})")

        self._last_requested_to = row_to
        if row_to > len(self._buffer) and not self._state.data_read_cancelled:
            self._request_rows(row_to)
        self._start_row_count()

        s = self._state
        if not s.current_schema:
            return None

        if s.stale is not None:
            rows, offset = s.stale.rows, s.stale.row_offset
        else:
            rows, offset = self._buffer, 0

        right = min(offset + len(rows), row_to)
        left = max(offset, right - (row_to - row_from))
        right = max(right, left)
        return DataSlice(rows=list(rows[left - offset : right - offset]), row_offset=left)

    async def get_all_table_data(self, columns: Sequence[str] | None = None) -> list[Row]:
        """Return every row, optionally projected to ``columns``.

        Raises CancelledOperation when replaced by a newer request or when
        the user cancelled reading, and DataSourceError when reading was
        halted by errors.
        """
        s = self._state
        binding = self._binding
        if columns is not None and s.current_schema:
            self._check_columns(s.current_schema, columns)

        self._user.cancel(EXTRACT_REPLACED_REASON)
        token = self._user.token

        if (
            columns
            and not s.exhausted
            and binding.get_columns_data is not None
            and is_strict_schema_subset(s.current_schema, columns)
        ):
            self._log.debug("reading column subset", columns=list(columns))
            try:
                return await token.race(binding.get_columns_data(columns, token))
            except GridStreamError:
                raise
            except Exception as e:
                raise classify_engine_error(e) from e

        await token.race(self._read_to_end())
        schema = self._state.actual_schema
        if columns is None:
            return list(self._buffer)
        if not schema:
            return []
        indexes = self._check_columns(schema, columns)
        return [tuple(row[i] for i in indexes) for row in self._buffer]

    async def _read_to_end(self) -> None:
        while True:
            if self._closed:
                raise CancelledOperation("Tab closed")
            if self._state.data_read_cancelled:
                raise CancelledOperation(USER_CANCELLED_REASON, is_user=True)
            if self._state.data_source_error:
                raise DataSourceError(list(self._state.data_source_error))
            if self._state.exhausted or not self._binding.queryable:
                return
            if self._reader_task is not None and not self._reader_task.done():
                await asyncio.shield(self._reader_task)
                continue
            if self._reader is None:
                # no reader and nothing creating one: the last attempt was cancelled
                raise CancelledOperation("Data source reader is not available")

            self._merge_fetch_to(None)
            task = self._ensure_fetching()
            if task is None:
                return
            await asyncio.shield(task)

    @staticmethod
    def _check_columns(schema: Sequence[ColumnMeta], columns: Sequence[str]) -> list[int]:
        names = [c.name for c in schema]
        unknown = [c for c in columns if c not in names]
        if unknown:
            raise InputError(f"Unknown column(s): {', '.join(unknown)}")
        return [names.index(c) for c in columns]

    async def get_column_aggregate(self, column: str, agg_type: str) -> Any:
        """Compute ``agg_type`` over ``column``; None when the source cannot."""
        binding = self._binding
        if binding.get_column_aggregate is None:
            return None
        self._user.cancel(AGGREGATE_REPLACED_REASON)
        token = self._user.token
        try:
            return await token.race(binding.get_column_aggregate(column, agg_type, token))
        except GridStreamError:
            raise
        except Exception as e:
            raise classify_engine_error(e) from e

    # ------------------------------------------------------------------
    # User cancellation
    # ------------------------------------------------------------------

    def cancel_data_read(self) -> None:
        """Stop the current fetch at the rows already read."""
        self._fetch_to = len(self._buffer)
        new_state = st.with_data_read_cancelled(self._state, True)
        self._set_state(st.with_last_sort(new_state, new_state.sort))
        self._main.cancel(USER_CANCELLED_REASON, is_user=True)
        self._log.debug("data read cancelled", rows=len(self._buffer))

    def ack_data_read_cancelled(self) -> None:
        """Allow slice requests to extend the fetch again."""
        self._set_state(st.with_data_read_cancelled(self._state, False))
