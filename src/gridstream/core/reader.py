"""Pull-based reader over engine-delivered record batches."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable

from gridstream.core.exceptions import GridStreamError, classify_engine_error
from gridstream.core.logging import get_logger
from gridstream.core.models import RecordBatch

PullFn = Callable[[], Awaitable[RecordBatch | None]]
ReleaseFn = Callable[[], Awaitable[None]]


class StreamReader:
    """Forward-only cursor yielding RecordBatch objects.

    ``pull`` returns the next batch or None at end of stream. ``release``
    frees the engine resources behind the cursor and is awaited exactly
    once: on cancel, at end of stream, or after a failed pull.

    Only one ``next()`` may be outstanding at a time. If the caller of
    ``next()`` is cancelled, the pull keeps running and its batch is
    returned by the following ``next()`` call.
    """

    def __init__(
        self,
        pull: PullFn,
        release: ReleaseFn | None = None,
        name: str = "stream",
    ) -> None:
        self.name = name
        self._pull = pull
        self._release = release
        self._pending: asyncio.Future[RecordBatch | None] | None = None
        self._in_next = False
        self._closed = False
        self._released = False
        self._log = get_logger("reader", stream=name)

    @classmethod
    def from_batches(cls, batches: Iterable[RecordBatch], name: str = "memory") -> StreamReader:
        it = iter(batches)

        async def pull() -> RecordBatch | None:
            return next(it, None)

        return cls(pull, name=name)

    @property
    def closed(self) -> bool:
        return self._closed

    async def next(self) -> RecordBatch | None:
        """Return the next batch, or None once the stream is closed."""
        if self._closed:
            return None
        if self._in_next:
            raise RuntimeError(f"Concurrent next() on stream reader '{self.name}'")

        self._in_next = True
        try:
            if self._pending is None:
                self._pending = asyncio.ensure_future(self._pull())
            pending = self._pending
            try:
                batch = await asyncio.shield(pending)
            except asyncio.CancelledError:
                if self._closed:
                    return None
                raise
            except Exception as e:
                self._pending = None
                await self._finish()
                if isinstance(e, GridStreamError):
                    raise
                raise classify_engine_error(e) from e

            self._pending = None
            if batch is None:
                await self._finish()
            return batch
        finally:
            self._in_next = False

    async def cancel(self) -> None:
        """Close the reader and release engine resources. Idempotent."""
        if self._closed and self._released:
            return
        self._closed = True
        pending, self._pending = self._pending, None
        if pending is not None and not pending.done():
            pending.cancel()
            await asyncio.gather(pending, return_exceptions=True)
        await self._do_release()

    async def _finish(self) -> None:
        self._closed = True
        await self._do_release()

    async def _do_release(self) -> None:
        if self._released:
            return
        self._released = True
        if self._release is None:
            return
        try:
            await self._release()
        except Exception as e:
            self._log.warning("failed to release stream resources", error=str(e))
        else:
            self._log.debug("stream released")
