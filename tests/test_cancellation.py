"""Tests for cancellation tokens and scopes."""

import asyncio

import pytest

from gridstream.core.cancellation import CancellationScope, CancellationToken
from gridstream.core.exceptions import CancelledOperation


@pytest.mark.unit
class TestCancellationToken:
    def test_first_reason_wins(self):
        token = CancellationToken()
        token.cancel("first", is_user=True)
        token.cancel("second")
        assert token.cancelled
        assert token.reason == "first"
        assert token.is_user

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("stop")
        with pytest.raises(CancelledOperation, match="stop") as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.is_system_cancelled

    def test_race_returns_result(self):
        async def go():
            token = CancellationToken()

            async def work():
                await asyncio.sleep(0)
                return 42

            return await token.race(work())

        assert asyncio.run(go()) == 42

    def test_race_raises_when_cancelled_during_wait(self):
        async def go():
            token = CancellationToken()
            started = asyncio.Event()
            finished = asyncio.Event()

            async def work():
                started.set()
                try:
                    await asyncio.sleep(10)
                finally:
                    finished.set()

            async def cancel_later():
                await started.wait()
                token.cancel("user stop", is_user=True)

            canceller = asyncio.ensure_future(cancel_later())
            with pytest.raises(CancelledOperation) as exc_info:
                await token.race(work())
            await canceller
            assert exc_info.value.is_user_cancelled
            assert finished.is_set()

        asyncio.run(go())

    def test_race_on_cancelled_token_never_starts_work(self):
        async def go():
            token = CancellationToken()
            token.cancel()
            calls = []

            async def work():
                calls.append(1)

            with pytest.raises(CancelledOperation):
                await token.race(work())
            return calls

        assert asyncio.run(go()) == []

    def test_race_propagates_work_error(self):
        async def go():
            token = CancellationToken()

            async def work():
                raise KeyError("boom")

            await token.race(work())

        with pytest.raises(KeyError):
            asyncio.run(go())


@pytest.mark.unit
class TestCancellationScope:
    def test_cancel_installs_fresh_token(self):
        scope = CancellationScope("main")
        old = scope.token
        scope.cancel()
        assert old.cancelled
        assert old.reason == "main operation cancelled"
        assert not scope.token.cancelled
        assert scope.token is not old

    def test_cancel_with_user_reason(self):
        scope = CancellationScope("user")
        old = scope.token
        scope.cancel("Cancelled by user", is_user=True)
        assert old.error().is_user_cancelled
        assert str(old.error()) == "Cancelled by user"
