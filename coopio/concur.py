"""Running several things at once: gather, wait_for and friends

All of these take the Scheduler explicitly, since they may need to spawn Tasks
or set Timers.

gather is strict by default: the first child to fail or be cancelled causes
the others to be cancelled, gather waits for them to finish unwinding, and then
raises that first failure. Pass return_exceptions=True to let every child run to
completion and get exceptions back in place of results.

"""
from __future__ import annotations
from coopio.exceptions import Cancelled, Timeout
from coopio.futures import Future, FutureState
from coopio.task import Task
import inspect
import typing as t
import logging
logger = logging.getLogger(__name__)

if t.TYPE_CHECKING:
    from coopio.scheduler import Scheduler

__all__ = [
    'ensure_future',
    'all_done',
    'gather',
    'wait_for',
    'run_all',
    'make_n_in_parallel',
]

T = t.TypeVar('T')
AwaitableLike = t.Union[Future[T], t.Coroutine[t.Any, t.Any, T]]

def ensure_future(scheduler: Scheduler, aw: AwaitableLike[T]) -> Future[T]:
    "Futures (including Tasks) are returned as is; coroutines are spawned as Tasks"
    if isinstance(aw, Future):
        return aw
    if inspect.iscoroutine(aw) or inspect.isgenerator(aw):
        return scheduler.spawn(aw)
    raise TypeError("expected a coopio Future or a coroutine", aw)

def all_done(futures: t.Sequence[Future[t.Any]]) -> Future[None]:
    "A Future which resolves once every one of `futures` is done, however they ended"
    done = Future[None]()
    remaining = len(futures)
    def on_done(fut: Future[t.Any]) -> None:
        nonlocal remaining
        remaining -= 1
        if remaining == 0:
            done.resolve(None)
    if not futures:
        done.resolve(None)
    for fut in futures:
        fut.add_done_callback(on_done)
    return done

def _failed(fut: Future[t.Any]) -> bool:
    return fut.state in (FutureState.FAILED, FutureState.CANCELLED)

def _result_or_exception(fut: Future[t.Any]) -> t.Any:
    if fut.cancelled():
        return Cancelled()
    exn = fut.exception()
    return exn if exn is not None else fut.result()

async def gather(scheduler: Scheduler, *aws: AwaitableLike[t.Any],
                 return_exceptions: bool=False) -> t.List[t.Any]:
    "Run all of `aws` concurrently and return their results in argument order"
    children = [ensure_future(scheduler, aw) for aw in aws]
    if not children:
        return []
    finished = Future[None]()
    first_failure: t.List[Future[t.Any]] = []
    remaining = len(children)
    def on_done(child: Future[t.Any]) -> None:
        nonlocal remaining
        remaining -= 1
        if not return_exceptions and not first_failure and _failed(child):
            first_failure.append(child)
        if (remaining == 0 or first_failure) and not finished.done():
            finished.resolve(None)
    for child in children:
        child.add_done_callback(on_done)
    try:
        await finished
    except Cancelled:
        logger.debug("gather: cancelled, cancelling %d children", len(children))
        for child in children:
            child.cancel()
        raise
    if first_failure:
        failure = first_failure[0]
        logger.debug("gather: %r failed, cancelling its siblings", failure)
        for child in children:
            child.cancel()
        await all_done(children)
        if failure.cancelled():
            raise Cancelled()
        raise failure.exception()
    if return_exceptions:
        return [_result_or_exception(child) for child in children]
    return [child.result() for child in children]

async def wait_for(scheduler: Scheduler, aw: AwaitableLike[T], timeout: t.Optional[float]) -> T:
    """Wait for `aw`, giving up with Timeout after `timeout` seconds.

    On timeout `aw` is cancelled; if it's a Task, we wait for it to unwind
    before raising. If the caller is cancelled, `aw` is cancelled too.

    """
    fut = ensure_future(scheduler, aw)
    if timeout is None:
        return await fut
    timer = scheduler.timer(timeout)
    first = Future[None]()
    def on_done(_: Future[t.Any]) -> None:
        if not first.done():
            first.resolve(None)
    fut.add_done_callback(on_done)
    timer.add_done_callback(on_done)
    try:
        await first
    except Cancelled:
        timer.cancel()
        fut.cancel()
        raise
    finally:
        fut.remove_done_callback(on_done)
        timer.remove_done_callback(on_done)
    if fut.done():
        timer.cancel()
        return fut.result()
    logger.debug("wait_for: timed out after %s seconds, cancelling %r", timeout, fut)
    fut.cancel()
    if isinstance(fut, Task):
        await all_done([fut])
    raise Timeout(f"timed out after {timeout} seconds")

async def run_all(scheduler: Scheduler, callables: t.List[t.Callable[[], t.Awaitable[T]]]) -> t.List[T]:
    "Call all the functions passed to it, and return all the results."
    return await gather(scheduler, *[func() for func in callables])

async def make_n_in_parallel(scheduler: Scheduler, make: t.Callable[[], t.Awaitable[T]], count: int) -> t.List[T]:
    "Call `make` n times in parallel, and return all the results."
    return await gather(scheduler, *[make() for _ in range(count)])
