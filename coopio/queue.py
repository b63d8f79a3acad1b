"""A bounded FIFO queue with blocking put/get and completion tracking

Blocked producers and consumers are each served in strict arrival order. An
item put while a consumer is blocked goes directly to the longest-waiting
consumer; an item taken from a full queue lets the longest-waiting producer's
item into the freed slot. So the buffer never holds more than `maxsize` items,
and nobody who arrives later can overtake a blocked caller.

Every accepted item is "unfinished" until a consumer calls task_done for it;
join waits until no item is unfinished. There's no special end-of-stream value:
to shut consumers down, put whatever sentinel they agree to stop on.

"""
from __future__ import annotations
from dataclasses import dataclass
from coopio.exceptions import StateError, QueueEmpty, QueueFull
from coopio.futures import Future, park
import collections
import typing as t
import logging
logger = logging.getLogger(__name__)

__all__ = [
    'Queue',
]

T = t.TypeVar('T')

@dataclass(eq=False)
class _Putter(t.Generic[T]):
    item: T
    fut: Future[None]

class Queue(t.Generic[T]):
    def __init__(self, maxsize: int=0) -> None:
        "A `maxsize` of zero or less means the queue is unbounded"
        self._maxsize = maxsize
        self._items: t.Deque[T] = collections.deque()
        self._getters: t.Deque[Future[T]] = collections.deque()
        self._putters: t.Deque[_Putter[T]] = collections.deque()
        self._joiners: t.List[Future[None]] = []
        self._unfinished = 0
        self._unacknowledged = 0

    def __repr__(self) -> str:
        return (f"<Queue size={len(self._items)}/{self._maxsize} getters={len(self._getters)} "
                f"putters={len(self._putters)} unfinished={self._unfinished}>")

    @property
    def maxsize(self) -> int:
        return self._maxsize

    def qsize(self) -> int:
        return len(self._items)

    def empty(self) -> bool:
        return not self._items

    def full(self) -> bool:
        return self._maxsize > 0 and len(self._items) >= self._maxsize

    def unfinished(self) -> int:
        "Items accepted by put which haven't been acknowledged with task_done"
        return self._unfinished

    def put_nowait(self, item: T) -> None:
        if self._getters:
            logger.debug("Queue.put_nowait(%s): handing directly to head of %d getters", item, len(self._getters))
            self._unfinished += 1
            self._unacknowledged += 1
            self._getters.popleft().resolve(item)
        elif self.full():
            raise QueueFull(self)
        else:
            self._unfinished += 1
            self._items.append(item)

    async def put(self, item: T) -> None:
        try:
            self.put_nowait(item)
            return
        except QueueFull:
            pass
        putter = _Putter(item, Future[None]())
        self._putters.append(putter)
        logger.debug("Queue.put(%s): full, waiting behind %d other putters", item, len(self._putters) - 1)
        await park(putter.fut, self._putters, putter)

    def get_nowait(self) -> T:
        if not self._items:
            raise QueueEmpty(self)
        item = self._items.popleft()
        if self._putters:
            putter = self._putters.popleft()
            logger.debug("Queue.get_nowait: letting blocked putter's %s into the freed slot", putter.item)
            self._items.append(putter.item)
            self._unfinished += 1
            putter.fut.resolve(None)
        self._unacknowledged += 1
        return item

    async def get(self) -> T:
        try:
            return self.get_nowait()
        except QueueEmpty:
            pass
        fut = Future[T]()
        self._getters.append(fut)
        logger.debug("Queue.get: empty, waiting behind %d other getters", len(self._getters) - 1)
        return await park(fut, self._getters)

    def task_done(self) -> None:
        "Acknowledge that an item retrieved with get has been fully processed"
        if self._unacknowledged <= 0:
            raise StateError("task_done() called more times than items were retrieved", self)
        self._unacknowledged -= 1
        self._unfinished -= 1
        if self._unfinished == 0:
            joiners, self._joiners = self._joiners, []
            logger.debug("Queue.task_done: all items finished, waking %d joiners", len(joiners))
            for fut in joiners:
                fut.resolve(None)

    async def join(self) -> None:
        "Wait until task_done has been called for every item put"
        if self._unfinished == 0:
            return
        fut = Future[None]()
        self._joiners.append(fut)
        await park(fut, self._joiners)
