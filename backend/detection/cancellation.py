"""
Detector-lifetime cancellation scope.

Responsibilities:
- Carry a single shutdown flag for one detector
- Race buffer forwards against that flag
- Fail fast once the flag is set

Non-responsibilities:
- NO state machine decisions
- NO segment release (the detector front owns that)
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from detection.errors import ForwardCancelled

T = TypeVar("T")


class CancellationScope:
    """
    One-shot cancellation flag shared by the detector and its buffer.

    Lifecycle:
    1. Detector creates the scope at construction
    2. Every forward runs through run()
    3. aclose() calls cancel()
    4. Pending forward is cancelled; later run() calls raise immediately
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Idempotent."""
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ForwardCancelled("cancellation scope already fired")

    async def wait(self) -> None:
        await self._event.wait()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` unless the scope fires first.

        Raises:
            ForwardCancelled if the scope was already cancelled or fires
            before the awaitable completes. The awaitable's task is
            cancelled and allowed to unwind before raising.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise ForwardCancelled("cancellation scope already fired")

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            # Outer task was cancelled; do not leave the forward orphaned
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise ForwardCancelled("forward interrupted by shutdown")
