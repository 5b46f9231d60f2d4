"""Tests for the pull-based stream reader."""

import asyncio

import psycopg
import pytest

from gridstream.core.exceptions import EngineUnavailable, SchemaMismatch
from gridstream.core.models import RecordBatch
from gridstream.core.reader import StreamReader
from tests.fakes import COLUMNS


def _batch(*ids):
    return RecordBatch(columns=COLUMNS, rows=[(i, f"row{i}") for i in ids])


class _Stream:
    def __init__(self, batches, *, error=None, gate=None):
        self.batches = list(batches)
        self.error = error
        self.gate = gate
        self.releases = 0

    async def pull(self):
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.batches.pop(0) if self.batches else None

    async def release(self):
        self.releases += 1

    def reader(self):
        return StreamReader(self.pull, self.release, name="test")


@pytest.mark.unit
class TestStreamReader:
    def test_reads_until_exhausted_and_releases_once(self):
        async def go():
            stream = _Stream([_batch(0, 1), _batch(2)])
            reader = stream.reader()
            seen = []
            while (batch := await reader.next()) is not None:
                seen.extend(batch.rows)
            assert reader.closed
            assert await reader.next() is None
            await reader.cancel()
            return seen, stream.releases

        seen, releases = asyncio.run(go())
        assert [r[0] for r in seen] == [0, 1, 2]
        assert releases == 1

    def test_cancel_is_idempotent(self):
        async def go():
            stream = _Stream([_batch(0)])
            reader = stream.reader()
            await reader.cancel()
            await reader.cancel()
            assert await reader.next() is None
            return stream.releases

        assert asyncio.run(go()) == 1

    def test_pull_error_is_classified_and_releases(self):
        async def go():
            stream = _Stream([], error=psycopg.OperationalError("server closed the connection"))
            reader = stream.reader()
            with pytest.raises(EngineUnavailable):
                await reader.next()
            assert reader.closed
            return stream.releases

        assert asyncio.run(go()) == 1

    def test_gridstream_errors_pass_through(self):
        async def go():
            error = SchemaMismatch("columns changed")
            stream = _Stream([], error=error)
            with pytest.raises(SchemaMismatch) as exc_info:
                await stream.reader().next()
            return exc_info.value is error

        assert asyncio.run(go())

    def test_batch_survives_cancelled_caller(self):
        async def go():
            gate = asyncio.Event()
            stream = _Stream([_batch(7)], gate=gate)
            reader = stream.reader()
            first = asyncio.ensure_future(reader.next())
            await asyncio.sleep(0)
            first.cancel()
            with pytest.raises(asyncio.CancelledError):
                await first
            gate.set()
            batch = await reader.next()
            return batch.rows

        assert asyncio.run(go()) == [(7, "row7")]

    def test_concurrent_next_rejected(self):
        async def go():
            gate = asyncio.Event()
            reader = _Stream([_batch(1)], gate=gate).reader()
            first = asyncio.ensure_future(reader.next())
            await asyncio.sleep(0)
            with pytest.raises(RuntimeError, match="Concurrent next"):
                await reader.next()
            gate.set()
            await first

        asyncio.run(go())

    def test_cancel_during_pull_returns_none(self):
        async def go():
            gate = asyncio.Event()
            stream = _Stream([_batch(1)], gate=gate)
            reader = stream.reader()
            pending = asyncio.ensure_future(reader.next())
            await asyncio.sleep(0)
            await reader.cancel()
            result = await pending
            return result, stream.releases

        assert asyncio.run(go()) == (None, 1)

    def test_from_batches(self):
        async def go():
            reader = StreamReader.from_batches([_batch(1), _batch(2, 3)])
            sizes = []
            while (batch := await reader.next()) is not None:
                sizes.append(len(batch))
            return sizes

        assert asyncio.run(go()) == [1, 2]
