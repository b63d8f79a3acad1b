from coopio.concur import gather
from coopio.exceptions import Cancelled, StateError, QueueEmpty, QueueFull
from coopio.queue import Queue
from coopio.tests.scheduler_test_case import SchedulerTestCase
import typing as t
import unittest

class TestQueue(SchedulerTestCase):
    async def test_producer_consumers_with_sentinels(self) -> None:
        queue = Queue[t.Optional[int]](maxsize=3)
        processed: t.List[t.Tuple[int, int]] = []
        async def producer() -> None:
            for i in range(10):
                await queue.put(i)
            for _ in range(3):
                await queue.put(None)
        async def consumer(n: int) -> None:
            while True:
                self.assertLessEqual(queue.qsize(), 3)
                item = await queue.get()
                try:
                    if item is None:
                        return
                    await self.scheduler.sleep(0.5)
                    processed.append((n, item))
                finally:
                    queue.task_done()
        consumers = [self.scheduler.spawn(consumer(n)) for n in range(3)]
        await self.scheduler.spawn(producer())
        await queue.join()
        self.assertEqual(sorted(item for _, item in processed), list(range(10)))
        self.assertEqual(queue.unfinished(), 0)
        await gather(self.scheduler, *consumers)

    async def test_join_waits_for_acknowledgement(self) -> None:
        queue = Queue[int]()
        queue.put_nowait(1)
        queue.put_nowait(2)
        joined = self.scheduler.spawn(queue.join())
        await self.scheduler.checkpoint()
        self.assertFalse(joined.done())
        await queue.get()
        queue.task_done()
        await self.scheduler.checkpoint()
        self.assertFalse(joined.done())
        await queue.get()
        queue.task_done()
        await joined

    async def test_join_nothing_unfinished(self) -> None:
        await Queue[int]().join()

    async def test_put_blocks_when_full(self) -> None:
        queue = Queue[int](maxsize=1)
        await queue.put(1)
        putter = self.scheduler.spawn(queue.put(2))
        await self.scheduler.checkpoint()
        self.assertFalse(putter.done())
        self.assertEqual(queue.qsize(), 1)
        self.assertEqual(await queue.get(), 1)
        await putter
        self.assertEqual(queue.qsize(), 1)
        self.assertEqual(queue.get_nowait(), 2)

    async def test_consumers_served_in_order(self) -> None:
        queue = Queue[str]()
        results: t.List[t.Tuple[int, str]] = []
        async def consumer(n: int) -> None:
            results.append((n, await queue.get()))
        tasks = [self.scheduler.spawn(consumer(n)) for n in range(3)]
        await self.scheduler.checkpoint()
        for item in "abc":
            queue.put_nowait(item)
        # handed directly to the waiting consumers
        self.assertEqual(queue.qsize(), 0)
        await gather(self.scheduler, *tasks)
        self.assertEqual(results, [(0, "a"), (1, "b"), (2, "c")])

    async def test_cancel_blocked_get(self) -> None:
        queue = Queue[int]()
        cancelled = self.scheduler.spawn(queue.get())
        other = self.scheduler.spawn(queue.get())
        await self.scheduler.checkpoint()
        cancelled.cancel()
        with self.assertRaises(Cancelled):
            await cancelled
        self.assertTrue(cancelled.cancelled())
        queue.put_nowait(7)
        self.assertEqual(await other, 7)
        self.assertEqual(queue.qsize(), 0)

    async def test_cancel_middle_putter(self) -> None:
        queue = Queue[int](maxsize=1)
        queue.put_nowait(0)
        putters = [self.scheduler.spawn(queue.put(i)) for i in (1, 2, 3)]
        await self.scheduler.checkpoint()
        putters[1].cancel()
        got = [await queue.get() for _ in range(3)]
        self.assertEqual(got, [0, 1, 3])
        results = await gather(self.scheduler, *putters, return_exceptions=True)
        self.assertEqual(results[0], None)
        self.assertIsInstance(results[1], Cancelled)
        self.assertEqual(queue.unfinished(), 3)

    async def test_cancel_middle_getter(self) -> None:
        queue = Queue[str]()
        getters = [self.scheduler.spawn(queue.get()) for _ in range(3)]
        await self.scheduler.checkpoint()
        getters[1].cancel()
        queue.put_nowait("a")
        queue.put_nowait("b")
        self.assertEqual(queue.qsize(), 0)
        results = await gather(self.scheduler, *getters, return_exceptions=True)
        self.assertEqual(results[0], "a")
        self.assertIsInstance(results[1], Cancelled)
        self.assertEqual(results[2], "b")

    async def test_cancel_join(self) -> None:
        queue = Queue[int]()
        queue.put_nowait(1)
        cancelled = self.scheduler.spawn(queue.join())
        other = self.scheduler.spawn(queue.join())
        await self.scheduler.checkpoint()
        self.assertEqual(len(queue._joiners), 2)
        cancelled.cancel()
        self.assertEqual(len(queue._joiners), 1)
        with self.assertRaises(Cancelled):
            await cancelled
        await queue.get()
        queue.task_done()
        await other
        self.assertEqual(queue._joiners, [])

class TestQueueNowait(unittest.TestCase):
    def test_task_done_too_many(self) -> None:
        queue = Queue[int]()
        queue.put_nowait(1)
        # put, but not yet retrieved
        with self.assertRaises(StateError):
            queue.task_done()
        queue.get_nowait()
        queue.task_done()
        with self.assertRaises(StateError):
            queue.task_done()
        self.assertEqual(queue.unfinished(), 0)

    def test_nowait(self) -> None:
        queue = Queue[int](maxsize=1)
        with self.assertRaises(QueueEmpty):
            queue.get_nowait()
        self.assertTrue(queue.empty())
        queue.put_nowait(1)
        self.assertTrue(queue.full())
        with self.assertRaises(QueueFull):
            queue.put_nowait(2)
        self.assertEqual(queue.get_nowait(), 1)

    def test_unbounded(self) -> None:
        queue = Queue[int]()
        for i in range(100):
            queue.put_nowait(i)
        self.assertFalse(queue.full())
        self.assertEqual(queue.qsize(), 100)
        self.assertEqual(queue.maxsize, 0)
