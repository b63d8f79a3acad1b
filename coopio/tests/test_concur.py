from coopio.concur import gather, wait_for, run_all, make_n_in_parallel, all_done
from coopio.exceptions import Cancelled, Timeout
from coopio.futures import Future
from coopio.sync import Semaphore
from coopio.tests.scheduler_test_case import SchedulerTestCase
import typing as t

import logging
logger = logging.getLogger(__name__)

class MyException(Exception):
    pass

class TestGather(SchedulerTestCase):
    async def sleep_and_return(self, delay: float, value: t.Any) -> t.Any:
        await self.scheduler.sleep(delay)
        return value

    async def test_argument_order(self) -> None:
        results = await gather(self.scheduler,
                               self.sleep_and_return(3, "a"),
                               self.sleep_and_return(1, "b"),
                               self.sleep_and_return(2, "c"))
        self.assertEqual(results, ["a", "b", "c"])
        self.assertEqual(self.clock.now(), 3)

    async def test_futures_and_coroutines(self) -> None:
        fut = Future[str]()
        self.scheduler.call_later(1, fut.resolve, "future")
        results = await gather(self.scheduler, fut, self.sleep_and_return(2, "coro"))
        self.assertEqual(results, ["future", "coro"])

    async def test_empty(self) -> None:
        self.assertEqual(await gather(self.scheduler), [])

    async def test_first_error_cancels_siblings(self) -> None:
        cancelled: t.List[int] = []
        async def slow() -> None:
            try:
                await self.scheduler.sleep(10)
            except Cancelled:
                cancelled.append(1)
                raise
        async def failing() -> None:
            await self.scheduler.sleep(1)
            raise MyException("failed")
        with self.assertRaises(MyException):
            await gather(self.scheduler, slow(), failing())
        self.assertEqual(cancelled, [1])
        self.assertEqual(self.clock.now(), 1)

    async def test_first_error_raised_as_is(self) -> None:
        error = MyException("failed")
        async def failing() -> None:
            raise error
        with self.assertRaises(MyException) as cm:
            await gather(self.scheduler, failing(), self.sleep_and_return(1, "ok"))
        self.assertIs(cm.exception, error)

    async def test_return_exceptions(self) -> None:
        async def failing() -> None:
            raise MyException("failed")
        cancelled = Future[None]()
        cancelled.cancel()
        results = await gather(self.scheduler, self.sleep_and_return(1, "ok"), failing(), cancelled,
                               return_exceptions=True)
        self.assertEqual(results[0], "ok")
        self.assertIsInstance(results[1], MyException)
        self.assertIsInstance(results[2], Cancelled)

    async def test_cancelled_child_fails_gather(self) -> None:
        cancelled = Future[None]()
        self.scheduler.call_soon(cancelled.cancel)
        with self.assertRaises(Cancelled):
            await gather(self.scheduler, cancelled, self.sleep_and_return(1, "ok"))

    async def test_cancel_gather_cancels_children(self) -> None:
        cancelled: t.List[int] = []
        async def child() -> None:
            try:
                await self.scheduler.sleep(10)
            except Cancelled:
                cancelled.append(1)
                raise
        gatherer = self.scheduler.spawn(gather(self.scheduler, child(), child()))
        await self.scheduler.sleep(1)
        gatherer.cancel()
        with self.assertRaises(Cancelled):
            await gatherer
        self.assertEqual(cancelled, [1, 1])

    async def test_run_all(self) -> None:
        results = await run_all(self.scheduler, [
            lambda: self.sleep_and_return(2, 1),
            lambda: self.sleep_and_return(1, 2),
        ])
        self.assertEqual(results, [1, 2])

    async def test_make_n_in_parallel(self) -> None:
        count = 0
        async def make() -> int:
            nonlocal count
            count += 1
            mine = count
            await self.scheduler.sleep(1)
            return mine
        self.assertEqual(await make_n_in_parallel(self.scheduler, make, 4), [1, 2, 3, 4])
        self.assertEqual(self.clock.now(), 1)

    async def test_all_done(self) -> None:
        futs = [Future[int]() for _ in range(3)]
        done = all_done(futs)
        futs[0].resolve(1)
        futs[1].fail(MyException())
        self.assertFalse(done.done())
        futs[2].cancel()
        self.assertTrue(done.done())
        await all_done([])

class TestWaitFor(SchedulerTestCase):
    async def test_in_time(self) -> None:
        async def quick() -> str:
            await self.scheduler.sleep(1)
            return "quick"
        self.assertEqual(await wait_for(self.scheduler, quick(), 5), "quick")
        self.assertEqual(self.clock.now(), 1)
        self.assertIsNone(self.scheduler.next_deadline())

    async def test_repeated_timeouts_dont_pile_up(self) -> None:
        live = self.scheduler.timer(1000)
        fut = Future[int]()
        fut.resolve(1)
        for _ in range(1000):
            self.assertEqual(await wait_for(self.scheduler, fut, 3600), 1)
        self.assertLess(len(self.scheduler._timers), 10)
        self.assertEqual(self.scheduler.next_deadline(), 1000)
        live.cancel()

    async def test_timeout_cancels_task(self) -> None:
        unwound: t.List[int] = []
        async def slow() -> None:
            try:
                await self.scheduler.sleep(10)
            finally:
                unwound.append(1)
        with self.assertRaises(Timeout):
            await wait_for(self.scheduler, slow(), 2)
        self.assertEqual(unwound, [1])
        self.assertEqual(self.clock.now(), 2)

    async def test_timeout_cancels_future(self) -> None:
        fut = Future[int]()
        with self.assertRaises(TimeoutError):
            await wait_for(self.scheduler, fut, 1)
        self.assertTrue(fut.cancelled())

    async def test_no_timeout(self) -> None:
        fut = Future[int]()
        self.scheduler.call_later(100, fut.resolve, 1)
        self.assertEqual(await wait_for(self.scheduler, fut, None), 1)

    async def test_cancel_waiter_cancels_task(self) -> None:
        async def slow() -> None:
            await self.scheduler.sleep(10)
        inner = self.scheduler.spawn(slow())
        waiter = self.scheduler.spawn(wait_for(self.scheduler, inner, 5))
        await self.scheduler.sleep(1)
        waiter.cancel()
        with self.assertRaises(Cancelled):
            await waiter
        with self.assertRaises(Cancelled):
            await inner
        self.assertIsNone(self.scheduler.next_deadline())

class TestBoundedFetch(SchedulerTestCase):
    "Fetching many pages with at most a few requests in flight, as a crawler would"
    async def fetch(self, url: str) -> str:
        # stands in for an HTTP client: each request takes a second
        fut = Future[str]()
        self.scheduler.call_later(1, fut.resolve, f"<html>{url}</html>")
        return await fut

    async def test_bounded_fetch(self) -> None:
        sem = Semaphore(3)
        in_flight = 0
        peak = 0
        async def fetch_one(url: str) -> str:
            nonlocal in_flight, peak
            async with sem:
                in_flight += 1
                peak = max(peak, in_flight)
                try:
                    return await self.fetch(url)
                finally:
                    in_flight -= 1
        urls = [f"https://example.com/{i}" for i in range(10)]
        pages = await gather(self.scheduler, *[fetch_one(url) for url in urls])
        logger.debug("fetched %d pages in %s seconds", len(pages), self.clock.now())
        self.assertEqual(pages, [f"<html>{url}</html>" for url in urls])
        self.assertEqual(peak, 3)
        self.assertEqual(self.clock.now(), 4)
