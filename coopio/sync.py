"""Synchronization primitives: Semaphore and Event

Neither needs a Scheduler. Blocked callers are queued as Futures in strict
arrival order, and woken by resolving those Futures; cancelling a blocked
caller removes its entry without disturbing the order of the others.

"""
from __future__ import annotations
from coopio.exceptions import StateError, WouldBlock
from coopio.futures import Future, park
import collections
import contextlib
import typing as t
import logging
logger = logging.getLogger(__name__)

__all__ = [
    'Semaphore',
    'Event',
]

class Semaphore:
    """A counting semaphore with FIFO admission

    Releasing a permit while someone is waiting hands the permit straight to
    the longest-waiting acquirer, so the count doesn't change and a newcomer
    can't jump the queue.

    The usual way to use this is scoped:

    ```
    async with semaphore:
        body = await fetch(url)
    ```

    which releases the permit however the block is exited, including by
    cancellation.

    """
    def __init__(self, value: int=1, max_value: t.Optional[int]=None) -> None:
        if value < 0:
            raise ValueError("Semaphore value must be >= 0", value)
        if max_value is None:
            max_value = value
        if max_value < value:
            raise ValueError("Semaphore max_value must be >= value", max_value, value)
        self._value = value
        self._max_value = max_value
        self._waiters: t.Deque[Future[None]] = collections.deque()

    def __repr__(self) -> str:
        return f"<Semaphore value={self._value}/{self._max_value} waiting={len(self._waiters)}>"

    @property
    def value(self) -> int:
        return self._value

    @property
    def max_value(self) -> int:
        return self._max_value

    def locked(self) -> bool:
        "True if acquire would block"
        return self._value == 0

    def waiting(self) -> int:
        return len(self._waiters)

    def acquire_nowait(self) -> None:
        if self._value == 0:
            raise WouldBlock("no permits available", self)
        self._value -= 1

    async def acquire(self) -> None:
        if self._value > 0:
            self._value -= 1
            return
        fut = Future[None]()
        self._waiters.append(fut)
        logger.debug("Semaphore.acquire: no permits, waiting behind %d others", len(self._waiters) - 1)
        await park(fut, self._waiters)

    def release(self) -> None:
        if self._waiters:
            logger.debug("Semaphore.release: handing permit to head of %d waiters", len(self._waiters))
            self._waiters.popleft().resolve(None)
        elif self._value >= self._max_value:
            raise StateError("Semaphore released more times than acquired", self)
        else:
            self._value += 1

    @contextlib.asynccontextmanager
    async def hold(self) -> t.AsyncGenerator[None, None]:
        "Hold a permit for the duration of the block"
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    async def __aenter__(self) -> None:
        await self.acquire()

    async def __aexit__(self, *exc_info: t.Any) -> None:
        self.release()

class Event:
    def __init__(self) -> None:
        self._waiters: t.Deque[Future[None]] = collections.deque()
        self._is_set = False

    def __repr__(self) -> str:
        return f"<Event set={self._is_set} waiting={len(self._waiters)}>"

    def is_set(self) -> bool:
        return self._is_set

    async def wait(self) -> None:
        if self._is_set:
            return
        fut = Future[None]()
        self._waiters.append(fut)
        await park(fut, self._waiters)

    def set(self) -> None:
        self._is_set = True
        waiters, self._waiters = self._waiters, collections.deque()
        logger.debug("Event.set: waking %d waiters", len(waiters))
        for fut in waiters:
            fut.resolve(None)

    def clear(self) -> None:
        self._is_set = False
