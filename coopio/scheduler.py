"""The Scheduler: a single-threaded, cooperative run loop

The Scheduler keeps a FIFO ready queue of units of work (mostly Task steps,
queued when a Task is spawned or its continuation is resumed) and a heap of
Timers. Each cycle fires the expired Timers and then runs every unit that was
ready at the start of the cycle, one at a time, each to its next suspension
point. Units made ready during the cycle run in the next one.

There is no global Scheduler. Code which needs to spawn Tasks, sleep, or set
Timers is handed a Scheduler explicitly; code which only waits on Futures,
Semaphores, Events or Queues doesn't need one at all.

"""
from __future__ import annotations
from coopio.clock import Clock, SystemClock
from coopio.core import shift, Continuation
from coopio.exceptions import StateError
from coopio.futures import Future
from coopio.task import Task
import collections
import heapq
import itertools
import typing as t
import logging
logger = logging.getLogger(__name__)

__all__ = [
    'Scheduler',
    'Timer',
]

T = t.TypeVar('T')

class Timer(Future[None]):
    "A Future which the Scheduler resolves once its clock reaches `deadline`"
    def __init__(self, scheduler: Scheduler, deadline: float) -> None:
        super().__init__()
        self._scheduler = scheduler
        self.deadline = deadline

    def __repr__(self) -> str:
        return f"<Timer {self.deadline} {self.state.value}>"

    def cancel(self, msg: t.Optional[str]=None) -> bool:
        if not super().cancel(msg):
            return False
        self._scheduler._timer_cancelled()
        return True

class Scheduler:
    def __init__(self, clock: t.Optional[Clock]=None, slow_step_threshold: float=0.1) -> None:
        self.clock = clock or SystemClock()
        self.slow_step_threshold = slow_step_threshold
        self._ready: t.Deque[t.Tuple[t.Callable[..., t.Any], t.Tuple[t.Any, ...]]] = collections.deque()
        self._timers: t.List[t.Tuple[float, int, Timer]] = []
        self._timer_seq = itertools.count()
        self._cancelled_timers = 0
        # a dict rather than a set, to keep spawn order
        self._tasks: t.Dict[Task[t.Any], None] = {}
        self._running = False

    def __repr__(self) -> str:
        return f"<Scheduler ready={len(self._ready)} timers={len(self._timers)} tasks={len(self._tasks)}>"

    def now(self) -> float:
        return self.clock.now()

    def spawn(self, coro: t.Coroutine[t.Any, t.Any, T], name: t.Optional[str]=None) -> Task[T]:
        "Start running `coro` in a new Task; it takes its first step in the next cycle"
        task = Task(self, coro, name)
        logger.debug("Scheduler.spawn(%s)", task.name)
        self._tasks[task] = None
        task.add_done_callback(self._forget)
        return task

    def _forget(self, task: Task[t.Any]) -> None:
        self._tasks.pop(task, None)

    def tasks(self) -> t.List[Task[t.Any]]:
        "The Tasks which aren't done yet, in spawn order"
        return list(self._tasks)

    def call_soon(self, fn: t.Callable[..., t.Any], *args: t.Any) -> None:
        self._ready.append((fn, args))

    def has_ready(self) -> bool:
        return bool(self._ready)

    def timer(self, delay: float) -> Timer:
        "Make a Timer which fires `delay` seconds from now"
        deadline = self.now() + max(delay, 0)
        timer = Timer(self, deadline)
        heapq.heappush(self._timers, (deadline, next(self._timer_seq), timer))
        return timer

    def call_later(self, delay: float, fn: t.Callable[..., t.Any], *args: t.Any) -> Timer:
        "Call `fn(*args)` in `delay` seconds, unless the returned Timer is cancelled first"
        timer = self.timer(delay)
        def fire(timer: Future[None]) -> None:
            if not timer.cancelled():
                fn(*args)
        timer.add_done_callback(fire)
        return timer

    async def checkpoint(self) -> None:
        "Go to the back of the ready queue, letting everything else that's ready run first"
        def requeue(cont: Continuation[None]) -> None:
            self.call_soon(cont.send, None)
        await shift(requeue)

    async def sleep(self, delay: float, result: t.Any=None) -> t.Any:
        if delay <= 0:
            await self.checkpoint()
            return result
        timer = self.timer(delay)
        try:
            await timer
        finally:
            timer.cancel()
        return result

    def _timer_cancelled(self) -> None:
        self._cancelled_timers += 1
        if self._cancelled_timers * 2 > len(self._timers):
            # mostly dead entries; rebuild rather than wait for them to reach the top
            self._timers = [entry for entry in self._timers if not entry[2].done()]
            heapq.heapify(self._timers)
            self._cancelled_timers = 0
        else:
            self._prune_timers()

    def _prune_timers(self) -> None:
        while self._timers and self._timers[0][2].done():
            _, _, timer = heapq.heappop(self._timers)
            if timer.cancelled():
                self._cancelled_timers -= 1

    def next_deadline(self) -> t.Optional[float]:
        self._prune_timers()
        return self._timers[0][0] if self._timers else None

    def _fire_timers(self) -> None:
        now = self.now()
        while self._timers and self._timers[0][0] <= now:
            _, _, timer = heapq.heappop(self._timers)
            if timer.cancelled():
                self._cancelled_timers -= 1
            elif not timer.done():
                timer.resolve(None)

    def _run_unit(self, fn: t.Callable[..., t.Any], args: t.Tuple[t.Any, ...]) -> None:
        start = self.clock.now()
        try:
            fn(*args)
        except Exception:
            # Task steps capture their own errors; this is a bare call_soon callback
            logger.exception("Scheduler: callback %r raised", fn)
        duration = self.clock.now() - start
        if duration > self.slow_step_threshold:
            logger.warning("Scheduler: running %r took %.3f seconds", fn, duration)

    def run_ready(self) -> None:
        "Run one cycle: fire expired Timers, then everything that was ready when we started"
        self._fire_timers()
        for _ in range(len(self._ready)):
            fn, args = self._ready.popleft()
            self._run_unit(fn, args)

    def _idle_wait(self) -> bool:
        "Sleep until the next Timer fires; False if there's no Timer to wait for"
        deadline = self.next_deadline()
        if deadline is None:
            return False
        self.clock.sleep(max(deadline - self.now(), 0))
        return True

    def run_until_idle(self) -> None:
        "Run cycles until there's nothing ready and no Timer pending"
        while True:
            self.run_ready()
            if self._ready:
                continue
            if not self._idle_wait():
                return

    def shutdown(self) -> None:
        "Cancel every Task which is still running and let them unwind"
        leftovers = self.tasks()
        if leftovers:
            logger.debug("Scheduler.shutdown: cancelling %d leftover tasks", len(leftovers))
        for task in leftovers:
            task.cancel()
        self.run_until_idle()

    def run(self, coro: t.Coroutine[t.Any, t.Any, T]) -> T:
        """Run `coro` as the main Task until it's done, and return its result.

        Once the main Task is done, any other Tasks still running are cancelled
        and given the chance to unwind. If the main Task is blocked with nothing
        left that could ever wake it, it's cancelled too and we raise StateError.

        """
        if self._running:
            raise StateError("this Scheduler is already running")
        self._running = True
        try:
            main = self.spawn(coro, name="main")
            while not main.done():
                self.run_ready()
                if self._ready:
                    continue
                if not self._idle_wait():
                    break
            blocked = not main.done()
            if blocked:
                logger.debug("Scheduler.run: main task is blocked with no work left")
            self.shutdown()
            if blocked:
                raise StateError("main task is blocked and nothing is left to wake it", main)
            return main.result()
        finally:
            self._running = False
