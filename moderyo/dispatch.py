"""Cooperative, per-tick driver for step-wise moderation calls.

A :class:`Dispatcher` owns a private asyncio event loop that never runs
on its own.  Each :meth:`Dispatcher.tick` runs exactly one iteration of
that loop with a zero poll timeout, so every pending operation moves
forward by at most one step and the calling thread is never blocked.
A host game loop or UI frame callback calls ``tick()`` once per frame.

The process-wide instance from :meth:`Dispatcher.default` is created on
first use and lives until the process exits; it is never torn down.
Tests and hosts that want isolation construct their own dispatcher and
pass it to the client.

``tick()`` must not be called from inside a running event loop on the
same thread.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, ClassVar, Coroutine, Generic, Iterator, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _retrieve(task: asyncio.Task) -> None:
    # Mark the exception as seen; the handle exposes it through ``error``.
    if not task.cancelled():
        task.exception()


class ModerationOperation(Generic[T]):
    """Handle for one call driven by a :class:`Dispatcher`.

    Once :attr:`done`, exactly one of :attr:`result` or :attr:`error` is
    set, unless the operation was cancelled, in which case neither is.

    The handle can also be waited on from a generator-based coroutine
    with ``yield from operation``; it yields itself until complete.
    """

    def __init__(self, task: asyncio.Task) -> None:
        self._task = task
        task.add_done_callback(_retrieve)

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def keep_waiting(self) -> bool:
        return not self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    @property
    def error(self) -> Optional[BaseException]:
        if not self._task.done() or self._task.cancelled():
            return None
        return self._task.exception()

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def result(self) -> Optional[T]:
        if not self._task.done() or self._task.cancelled() or self._task.exception() is not None:
            return None
        return self._task.result()

    def cancel(self) -> None:
        """Stop waiting for the outcome.

        A request already on the wire is not recalled; its response is
        simply ignored.  The handle completes on the next tick.
        """
        self._task.cancel()

    def __iter__(self) -> Iterator[ModerationOperation[T]]:
        while not self._task.done():
            yield self

    def __repr__(self) -> str:
        if not self.done:
            state = "pending"
        elif self.cancelled:
            state = "cancelled"
        elif self.is_error:
            state = f"error={self.error!r}"
        else:
            state = "done"
        return f"<ModerationOperation {state}>"


class Dispatcher:
    """Steps a private event loop one iteration per :meth:`tick`."""

    _default: ClassVar[Optional[Dispatcher]] = None
    _default_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()

    @classmethod
    def default(cls) -> Dispatcher:
        """Return the process-wide dispatcher, creating it on first use."""
        if cls._default is None:
            with cls._default_lock:
                if cls._default is None:
                    logger.debug("Creating process-wide moderation dispatcher")
                    cls._default = cls()
        return cls._default

    @property
    def closed(self) -> bool:
        return self._loop.is_closed()

    @property
    def pending(self) -> int:
        """Number of operations not yet complete."""
        if self._loop.is_closed():
            return 0
        return sum(1 for task in asyncio.all_tasks(self._loop) if not task.done())

    def submit(self, coro: Coroutine[Any, Any, T]) -> ModerationOperation[T]:
        """Schedule *coro*; it first runs on the next tick."""
        if self._loop.is_closed():
            coro.close()
            raise RuntimeError("Dispatcher is closed")
        return ModerationOperation(self._loop.create_task(coro))

    def tick(self) -> None:
        """Advance every pending operation by one step without blocking."""
        if self._loop.is_closed():
            raise RuntimeError("Dispatcher is closed")
        self._loop.call_soon(self._loop.stop)
        self._loop.run_forever()

    def close(self) -> None:
        """Cancel pending operations and release the loop."""
        if self._loop.is_closed():
            return
        tasks = [task for task in asyncio.all_tasks(self._loop) if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            self._loop.run_until_complete(asyncio.gather(*tasks, return_exceptions=True))
        self._loop.close()
