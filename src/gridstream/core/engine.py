"""PostgreSQL query engine for GridStream.

Wraps a psycopg v3 async connection pool. Long reads are streamed through
server-side cursors as StreamReader objects; short queries (counts,
aggregates, column extracts) return a QueryResult. Every psycopg error is
translated into the engine error taxonomy.
"""

from __future__ import annotations

import time
import uuid
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING, Any

import psycopg
import psycopg_pool
import sentry_sdk

from gridstream.core.exceptions import NetworkError, classify_engine_error
from gridstream.core.logging import get_logger
from gridstream.core.models import ColumnMeta, QueryResult, RecordBatch
from gridstream.core.reader import StreamReader

if TYPE_CHECKING:
    from gridstream.core.cancellation import CancellationToken
    from gridstream.core.config import ResolvedConfig

# Common PostgreSQL type OIDs; unknown OIDs fall back to "unknown".
_TYPE_NAMES: dict[int, str] = {
    16: "bool",
    20: "int8",
    21: "int2",
    23: "int4",
    25: "text",
    26: "oid",
    114: "json",
    700: "float4",
    701: "float8",
    790: "money",
    1042: "bpchar",
    1043: "varchar",
    1082: "date",
    1083: "time",
    1114: "timestamp",
    1184: "timestamptz",
    1186: "interval",
    1700: "numeric",
    2950: "uuid",
    3802: "jsonb",
}


def _describe(description: Any) -> tuple[ColumnMeta, ...]:
    if not description:
        return ()
    return tuple(
        ColumnMeta(
            name=d.name,
            type_oid=d.type_code,
            type_name=_TYPE_NAMES.get(d.type_code, "unknown"),
        )
        for d in description
    )


def _normalize(sql: str) -> str:
    return " ".join(sql.split())


class PgEngine:
    """Pooled async PostgreSQL engine."""

    def __init__(self, config: ResolvedConfig) -> None:
        self.config = config
        self.settings = config.adapter
        self._pool: psycopg_pool.AsyncConnectionPool | None = None

    async def __aenter__(self) -> PgEngine:
        await self.open()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    def _connection_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "host": self.config.host,
            "port": self.config.port,
            "dbname": self.config.dbname,
            "user": self.config.user,
            "password": self.config.password,
            "sslmode": self.config.sslmode,
            "connect_timeout": self.config.connect_timeout,
            "application_name": self.config.application_name,
            "autocommit": True,
        }
        if self.settings.statement_timeout:
            timeout_ms = int(self.settings.statement_timeout * 1000)
            kwargs["options"] = f"-c statement_timeout={timeout_ms}"
        return kwargs

    async def open(self) -> None:
        if self._pool is not None:
            return
        log = get_logger("engine")
        pool = psycopg_pool.AsyncConnectionPool(
            kwargs=self._connection_kwargs(),
            min_size=self.settings.pool_min_size,
            max_size=self.settings.pool_max_size,
            timeout=self.settings.pool_timeout,
            name="gridstream",
            open=False,
        )
        try:
            await pool.open(wait=True, timeout=float(self.config.connect_timeout))
        except psycopg_pool.PoolTimeout as e:
            await pool.close()
            msg = (
                f"Connection failed to {self.config.host}:{self.config.port} "
                f"database '{self.config.dbname}': {e}"
            )
            raise NetworkError(msg) from e
        log.debug(
            "connection pool open",
            conninfo=self.config.conninfo,
            min_size=self.settings.pool_min_size,
            max_size=self.settings.pool_max_size,
        )
        self._pool = pool

    async def close(self) -> None:
        if self._pool is not None:
            pool, self._pool = self._pool, None
            await pool.close()

    async def _get_pool(self) -> psycopg_pool.AsyncConnectionPool:
        if self._pool is None:
            await self.open()
        assert self._pool is not None
        return self._pool

    async def resync(self) -> None:
        """Discard broken pooled connections before a retry."""
        log = get_logger("engine")
        pool = await self._get_pool()
        await pool.check()
        log.info("connection pool resynced", stats=pool.get_stats())

    async def stream(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
        *,
        token: CancellationToken | None = None,
        batch_size: int | None = None,
    ) -> StreamReader:
        """Execute ``sql`` through a server-side cursor and return a reader.

        The first batch is always delivered, even when empty, so consumers
        learn the schema of an empty result.
        """
        log = get_logger("engine")
        size = batch_size or self.settings.batch_size
        sql_normalized = _normalize(sql)
        cursor_name = f"gridstream_{uuid.uuid4().hex[:12]}"
        pool = await self._get_pool()

        stack = AsyncExitStack()
        with sentry_sdk.start_span(op="db.stream", description=sql_normalized[:100]) as span:
            start_time = time.monotonic()
            log.debug("opening stream", sql=sql_normalized, cursor=cursor_name)
            try:
                conn = await stack.enter_async_context(
                    pool.connection(timeout=self.settings.pool_timeout)
                )
                await stack.enter_async_context(conn.transaction())
                cur = await stack.enter_async_context(conn.cursor(name=cursor_name))
                if token is not None:
                    await token.race(cur.execute(sql, params))
                else:
                    await cur.execute(sql, params)
            except BaseException as e:
                await stack.aclose()
                if isinstance(e, psycopg.Error | psycopg_pool.PoolTimeout):
                    span.set_status("internal_error")
                    log.debug("stream failed to open", sql=sql_normalized, error=str(e))
                    raise classify_engine_error(e) from e
                raise
            span.set_data("duration_ms", (time.monotonic() - start_time) * 1000)

        columns = _describe(cur.description)
        state = {"first": True, "done": False}

        async def pull() -> RecordBatch | None:
            if state["done"]:
                return None
            with sentry_sdk.start_span(op="db.fetch", description=cursor_name) as fetch_span:
                rows = await cur.fetchmany(size)
                fetch_span.set_data("row_count", len(rows))
            if len(rows) < size:
                state["done"] = True
            if not rows and not state["first"]:
                return None
            state["first"] = False
            return RecordBatch(columns=columns, rows=rows)

        return StreamReader(pull, stack.aclose, name=cursor_name)

    async def query(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> QueryResult:
        """Execute a short query and return all of its rows."""
        log = get_logger("engine")
        sql_normalized = _normalize(sql)
        pool = await self._get_pool()

        async def run() -> QueryResult:
            async with pool.connection(timeout=self.settings.pool_timeout) as conn:
                async with conn.cursor() as cur:
                    await cur.execute(sql, params)
                    rows = await cur.fetchall() if cur.description else []
                    return QueryResult(
                        columns=list(_describe(cur.description)),
                        rows=rows,
                        row_count=len(rows),
                        status_message=cur.statusmessage or "",
                    )

        log.debug("executing query", sql=sql_normalized)
        with sentry_sdk.start_span(op="db.query", description=sql_normalized[:100]) as span:
            start_time = time.monotonic()
            try:
                result = await (token.race(run()) if token is not None else run())
            except (psycopg.Error, psycopg_pool.PoolTimeout) as e:
                span.set_status("internal_error")
                log.debug("query failed", sql=sql_normalized, error=str(e))
                raise classify_engine_error(e) from e

            duration_ms = (time.monotonic() - start_time) * 1000
            span.set_data("row_count", result.row_count)
            span.set_data("duration_ms", duration_ms)
            log.debug(
                "query complete",
                duration_ms=f"{duration_ms:.1f}",
                row_count=result.row_count,
            )
            return result

    async def scalar(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> Any:
        """Return the first column of the first row, or None."""
        result = await self.query(sql, params, token=token)
        return result.rows[0][0] if result.rows else None
