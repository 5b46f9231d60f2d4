"""Cooperative cancellation tokens and scopes.

A token is handed to every async call that may be abandoned. Cancelling it
does not preempt running engine calls; awaiting code observes it at the
next suspension point, either by checking ``cancelled`` or by awaiting
through :meth:`CancellationToken.race`.

A scope owns one live token at a time. Cancelling the scope cancels the
current token and installs a fresh one, so work started afterwards is not
affected.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from gridstream.core.exceptions import CancelledOperation

T = TypeVar("T")


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None
        self.is_user = False

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Operation cancelled", *, is_user: bool = False) -> None:
        """Cancel the token. Only the first call records a reason."""
        if self._event.is_set():
            return
        self.reason = reason
        self.is_user = is_user
        self._event.set()

    def error(self) -> CancelledOperation:
        return CancelledOperation(
            self.reason or "Operation cancelled", is_user=self.is_user
        )

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise self.error()

    async def wait(self) -> None:
        await self._event.wait()

    async def race(self, aw: Awaitable[T]) -> T:
        """Await ``aw`` unless the token is cancelled first.

        A result that is ready when both complete wins over the
        cancellation. On cancellation the awaitable is cancelled and
        CancelledOperation is raised.
        """
        if self.cancelled:
            if asyncio.iscoroutine(aw):
                aw.close()
            raise self.error()
        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise self.error()


class CancellationScope:
    """Named holder of the current cancellation token."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._token = CancellationToken()

    @property
    def token(self) -> CancellationToken:
        return self._token

    def cancel(self, reason: str | None = None, *, is_user: bool = False) -> None:
        self._token.cancel(reason or f"{self.name} operation cancelled", is_user=is_user)
        self._token = CancellationToken()
