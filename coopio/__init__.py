"""A small cooperative concurrency runtime built on `shift` and explicit schedulers

coopio runs Python coroutines (`async def` functions) on a single thread, with
no preemption: exactly one Task runs at a time, and it runs until it reaches a
suspension point. A suspension point is anywhere the coroutine waits for
something - a Future, a Semaphore permit, a Queue item, a Timer, or an
explicit `await scheduler.checkpoint()`.

The building blocks are:

- `Future`: a one-shot result cell. Resolving, failing or cancelling it runs
  its callbacks synchronously, in the order they were added.
- `Task`: a Future whose result is the result of a coroutine. A Task suspends
  by handing its continuation to whatever it waits on (see `coopio.core.shift`),
  and is put back on its Scheduler's ready queue when that continuation is
  resumed.
- `Scheduler`: a FIFO ready queue plus a Timer heap, and the loop which runs
  them. There is no global Scheduler; you pass one explicitly to whatever needs
  to spawn Tasks or sleep.
- `Semaphore`, `Event` and `Queue`: waiting primitives. Blocked callers are
  served in strict arrival order, and a cancelled caller is taken out of line
  immediately without disturbing anyone else.

Because nothing runs between two suspension points except the one running
Task, none of these need locks: everything a Task does between two `await`s
is atomic with respect to every other Task.

Since there's no implicit global event loop, there are no implicit global
effects. A function which wants to spawn Tasks or wait on a clock has to be
passed the Scheduler which does that, as a normal argument:

```
async def fetch_all(scheduler: Scheduler, fetch, urls: t.List[str]) -> t.List[bytes]:
    sem = Semaphore(3)
    async def fetch_one(url: str) -> bytes:
        async with sem:
            return await fetch(url)
    return await gather(scheduler, *[fetch_one(url) for url in urls])

scheduler = Scheduler()
results = scheduler.run(fetch_all(scheduler, fetch, urls))
```

coopio does no I/O itself; see `coopio.trio_host` for running a Scheduler
inside trio and doing I/O there.

"""
from coopio.exceptions import Cancelled, StateError, WouldBlock, QueueEmpty, QueueFull, Timeout
from coopio.core import shift, Continuation
from coopio.futures import Future, FutureState
from coopio.task import Task, TaskState
from coopio.clock import Clock, SystemClock, VirtualClock
from coopio.scheduler import Scheduler, Timer
from coopio.sync import Semaphore, Event
from coopio.queue import Queue
from coopio.concur import gather, wait_for, run_all, make_n_in_parallel
