"""Cooperative cancellation shared across one research run."""

import asyncio
from typing import Awaitable, Optional, TypeVar

from ..exceptions import Cancelled

T = TypeVar("T")


class CancelToken:
    """A one-shot cancellation flag.

    Components check the token before starting new work; work already in
    flight is allowed to finish and its results are kept.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


def is_cancelled(token: Optional[CancelToken]) -> bool:
    return token is not None and token.cancelled


def raise_if_cancelled(token: Optional[CancelToken]) -> None:
    if is_cancelled(token):
        raise Cancelled(token.reason or "cancelled")


async def cancellable(aw: Awaitable[T], token: Optional[CancelToken]) -> T:
    """Await ``aw`` unless the token was already cancelled.

    Raises Cancelled instead of starting the awaitable; the awaitable is
    closed so no coroutine-never-awaited warning is emitted.
    """
    if is_cancelled(token):
        close = getattr(aw, "close", None)
        if close is not None:
            close()
        raise Cancelled(token.reason or "cancelled")
    return await aw
