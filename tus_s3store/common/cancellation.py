from __future__ import annotations

import asyncio


class CancellationToken:
    """Cooperative cancellation signal shared between a caller and an operation.

    Operations poll :attr:`cancelled` at their checkpoints (before reading the
    next slice, before a transfer, before each reconciliation step) and stop
    with a ``CANCELLED`` result once it is set.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait until cancelled; returns False if ``timeout`` elapsed first."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


def is_cancelled(token: CancellationToken | None) -> bool:
    return token is not None and token.cancelled
