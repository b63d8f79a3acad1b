"""Running a Scheduler inside trio, and doing real I/O from coopio Tasks

coopio itself does no I/O. An I/O client is an outside collaborator which a
Task calls as `await perform_io(request)`, and which must hand back something
the Task can wait on rather than block the whole thread. TrioHost is that
bridge for trio: it drives the Scheduler from a trio task, and runs trio
coroutine functions on behalf of coopio Tasks, delivering their outcome
through a coopio Future.

```
async def main(host: TrioHost) -> None:
    body = await host.perform_io(fetch, url)

async def trio_main() -> None:
    async with TrioHost.open(Scheduler()) as host:
        await host.run(main(host))
```

While the Scheduler has nothing ready, we sleep in trio until either its next
Timer is due or some I/O finishes, so trio tasks (including our own I/O) keep
running. The Scheduler should use a SystemClock, since we sleep in trio's time.

"""
from __future__ import annotations
from coopio.exceptions import StateError
from coopio.futures import Future
from coopio.scheduler import Scheduler
import contextlib
import math
import trio
import typing as t
import logging
logger = logging.getLogger(__name__)

__all__ = [
    'TrioHost',
]

T = t.TypeVar('T')

class TrioHost:
    def __init__(self, scheduler: Scheduler, nursery: trio.Nursery) -> None:
        "To make this, use TrioHost.open"
        self.scheduler = scheduler
        self.nursery = nursery
        self._wakeup = trio.Event()
        self._io_pending = 0
        # a dict rather than a set, to cancel in start order
        self._io_futures: t.Dict[Future[t.Any], None] = {}
        self._draining = False

    @classmethod
    @contextlib.asynccontextmanager
    async def open(cls, scheduler: Scheduler) -> t.AsyncGenerator[TrioHost, None]:
        "Make a TrioHost; any I/O still in flight when the block exits is cancelled"
        async with trio.open_nursery() as nursery:
            yield cls(scheduler, nursery)
            nursery.cancel_scope.cancel()

    def _wake(self) -> None:
        self._wakeup.set()

    async def _cycle(self) -> bool:
        "Run one Scheduler cycle, then sleep in trio if idle; False if there's nothing left to wait for"
        self.scheduler.run_ready()
        if self._draining:
            # leftover Tasks may start more I/O while unwinding
            self._cancel_io()
        if self.scheduler.has_ready():
            # let trio tasks run between our cycles
            await trio.lowlevel.checkpoint()
            return True
        deadline = self.scheduler.next_deadline()
        if deadline is None and not self._io_pending:
            return False
        timeout = math.inf if deadline is None else max(deadline - self.scheduler.now(), 0)
        with trio.move_on_after(timeout):
            await self._wakeup.wait()
        self._wakeup = trio.Event()
        return True

    async def run(self, coro: t.Coroutine[t.Any, t.Any, T]) -> T:
        """Run `coro` as the main coopio Task, driving the Scheduler until it's done.

        Like Scheduler.run, leftover Tasks are cancelled once the main Task is
        done, and a main Task blocked with nothing left to wake it is an error.
        Any perform_io call still in flight at that point is cancelled as well,
        since only leftover Tasks could be waiting for it.

        """
        main = self.scheduler.spawn(coro, name="main")
        while not main.done():
            if not await self._cycle():
                break
        blocked = not main.done()
        for task in self.scheduler.tasks():
            task.cancel()
        self._draining = True
        try:
            self._cancel_io()
            while await self._cycle():
                pass
        finally:
            self._draining = False
        if blocked:
            raise StateError("main task is blocked and nothing is left to wake it", main)
        return main.result()

    def _cancel_io(self) -> None:
        "Cancel every perform_io call still in flight; nothing is left to await them"
        pending = list(self._io_futures)
        if pending:
            logger.debug("TrioHost: cancelling %d leftover I/O calls", len(pending))
        for fut in pending:
            fut.cancel()

    def perform_io(self, async_fn: t.Callable[..., t.Awaitable[T]], *args: t.Any) -> Future[T]:
        """Run `async_fn(*args)` in trio, returning a Future for its outcome.

        Cancelling the Future cancels the trio call.

        """
        fut = Future[T]()
        cancel_scope = trio.CancelScope()
        def on_done(fut: Future[T]) -> None:
            self._io_futures.pop(fut, None)
            if fut.cancelled():
                logger.debug("TrioHost.perform_io(%s): future cancelled, cancelling trio call", async_fn)
                cancel_scope.cancel()
        async def run_io() -> None:
            try:
                with cancel_scope:
                    try:
                        value = await async_fn(*args)
                    except Exception as exn:
                        if not fut.done():
                            fut.fail(exn)
                    else:
                        if not fut.done():
                            fut.resolve(value)
            finally:
                self._io_pending -= 1
                self._wake()
        fut.add_done_callback(on_done)
        self._io_futures[fut] = None
        self._io_pending += 1
        self.nursery.start_soon(run_io)
        return fut
