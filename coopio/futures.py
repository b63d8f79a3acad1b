"""One-shot result cells

A Future starts out pending and is settled exactly once: resolved with a value,
failed with an exception, or cancelled. Callbacks registered with
add_done_callback run synchronously, in registration order, at the moment the
Future is settled.

Futures don't know about any scheduler. A Task awaiting a Future registers a
callback which resumes the Task's continuation, and the continuation takes care
of putting the Task back on its own Scheduler.

"""
from __future__ import annotations
from coopio.core import shift, Continuation, Abort
from coopio.exceptions import Cancelled, StateError
from outcome import Outcome
import abc
import collections
import enum
import functools
import outcome
import typing as t
import logging
logger = logging.getLogger(__name__)

__all__ = [
    'FutureState',
    'Waitable',
    'Future',
    'park',
]

T = t.TypeVar('T')

class FutureState(enum.Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"
    CANCELLED = "cancelled"

class Waitable(t.Generic[T]):
    """Anything a Task can wait on: a Future, a Task or a Timer

    Task and Timer are the only subclasses of Future in coopio, so this is a
    closed set; everything in it can report its state and accept completion
    callbacks.

    """
    @property
    @abc.abstractmethod
    def state(self) -> FutureState: ...
    @abc.abstractmethod
    def add_done_callback(self, cb: t.Callable[[t.Any], t.Any]) -> None: ...
    @abc.abstractmethod
    def remove_done_callback(self, cb: t.Callable[[t.Any], t.Any]) -> int: ...

    def done(self) -> bool:
        return self.state is not FutureState.PENDING

class Future(Waitable[T]):
    def __init__(self) -> None:
        self._state = FutureState.PENDING
        self._outcome: t.Optional[Outcome[T]] = None
        self._callbacks: t.Deque[t.Callable[[Future[T]], t.Any]] = collections.deque()
        self._dispatching = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._state.value}>"

    @property
    def state(self) -> FutureState:
        return self._state

    @property
    def outcome(self) -> t.Optional[Outcome[T]]:
        "The stored outcome, or None while pending"
        return self._outcome

    def cancelled(self) -> bool:
        return self._state is FutureState.CANCELLED

    def _settle(self, state: FutureState, result: Outcome[T]) -> None:
        if self._state is not FutureState.PENDING:
            raise StateError(f"{self!r} is already complete", result)
        logger.debug("%r: settling as %s", self, state.value)
        self._state = state
        self._outcome = result
        self._dispatching = True
        try:
            # callbacks added during dispatch land at the end of this deque
            while self._callbacks:
                self._invoke(self._callbacks.popleft())
        finally:
            self._dispatching = False

    def _invoke(self, cb: t.Callable[[Future[T]], t.Any]) -> None:
        try:
            cb(self)
        except Exception:
            logger.exception("%r: done callback %r raised", self, cb)

    def resolve(self, value: T) -> None:
        self._settle(FutureState.RESOLVED, outcome.Value(value))

    def fail(self, error: BaseException) -> None:
        if isinstance(error, Cancelled):
            raise TypeError("use cancel() to cancel a Future, not fail()", error)
        if not isinstance(error, BaseException):
            raise TypeError("a Future can only fail with an exception instance", error)
        self._settle(FutureState.FAILED, outcome.Error(error))

    def cancel(self, msg: t.Optional[str]=None) -> bool:
        "Cancel this Future if it's still pending; returns whether we did anything"
        if self.done():
            return False
        self._settle(FutureState.CANCELLED, outcome.Error(Cancelled(msg) if msg else Cancelled()))
        return True

    def result(self) -> T:
        if self._outcome is None:
            raise StateError(f"{self!r} is not yet complete")
        if isinstance(self._outcome, outcome.Error):
            if self._state is FutureState.CANCELLED:
                # a fresh exception each time, so tracebacks don't pile up
                raise Cancelled(*self._outcome.error.args)
            raise self._outcome.error
        return self._outcome.value

    def exception(self) -> t.Optional[BaseException]:
        if self._outcome is None:
            raise StateError(f"{self!r} is not yet complete")
        if self._state is FutureState.CANCELLED:
            raise Cancelled(*self._outcome.error.args)
        if isinstance(self._outcome, outcome.Error):
            return self._outcome.error
        return None

    def add_done_callback(self, cb: t.Callable[[Future[T]], t.Any]) -> None:
        if self.done() and not self._dispatching:
            self._invoke(cb)
        else:
            self._callbacks.append(cb)

    def remove_done_callback(self, cb: t.Callable[[Future[T]], t.Any]) -> int:
        "Remove every registration of `cb`, returning how many there were"
        remaining = [other for other in self._callbacks if other != cb]
        removed = len(self._callbacks) - len(remaining)
        self._callbacks = collections.deque(remaining)
        return removed

    def wait_cb(self, cont: Continuation[None]) -> Abort:
        "Resume `cont` once we're done; returns a callable which undoes the registration"
        def wake(fut: Future[T]) -> None:
            cont.send(None)
        self.add_done_callback(wake)
        return functools.partial(self.remove_done_callback, wake)

    def __await__(self) -> t.Generator[t.Any, t.Any, T]:
        if not self.done():
            yield from shift(self.wait_cb)
        return self.result()

async def park(fut: Future[T], waiters: t.Any, entry: t.Any=None) -> T:
    """Wait for `fut`, which some primitive has queued in `waiters` as `entry`.

    `waiters` is a deque or list of entries; `entry` defaults to `fut` itself.
    If the waiting Task is cancelled, the entry is removed from `waiters` right
    away, before the cancellation is even delivered, and `fut` is cancelled; so
    whoever pops entries from `waiters` never hands anything to a Task that's no
    longer waiting. The remaining entries keep their relative order.

    """
    if entry is None:
        entry = fut
    if not fut.done():
        def wait_cb(cont: Continuation[None]) -> Abort:
            unwait = fut.wait_cb(cont)
            def abort() -> None:
                unwait()
                waiters.remove(entry)
                fut.cancel()
            return abort
        await shift(wait_cb)
    return fut.result()
