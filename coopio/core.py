"""Suspension with `shift`, and the continuations it produces

A coroutine running in a coopio Task suspends itself in exactly one way: by
calling `shift` with a function accepting a continuation. The Task driving the
coroutine calls that function with a fresh continuation, and the coroutine stays
suspended until someone resumes the continuation with a value or an exception.

```
async def get(self) -> T:
    return await shift(self._waiting_cbs.append)
```

Whatever object stores the continuation is then responsible for waking the
coroutine, by calling `cont.send(value)` or `cont.throw(exn)`. Nothing else
needs to know about the scheduler: the continuation knows which Task to wake,
and the Task knows which Scheduler to wake it on.

The function passed to `shift` may return an "abort" callable. If the Task is
cancelled while suspended, the abort callable is invoked before the
cancellation is delivered, so the function can withdraw the continuation from
wherever it stored it. A continuation whose wait was aborted silently ignores
later resumes.

"""
from __future__ import annotations
from outcome import Outcome
import abc
import outcome
import types
import typing as t

__all__ = [
    'shift',
    'Shift',
    'Continuation',
    'Abort',
]

SendType = t.TypeVar('SendType')

Abort = t.Callable[[], t.Any]
"Called with no arguments to withdraw a continuation from wherever it was stored"

class Continuation(t.Generic[SendType]):
    """Something which can be resumed once with SendType, or an exception

    The only implementation is coopio.task.TaskContinuation; resuming it
    reschedules the suspended Task.

    """
    @abc.abstractmethod
    def resume(self, value: Outcome[SendType]) -> None: ...
    # true once the wait this continuation belongs to has been aborted
    @abc.abstractmethod
    def is_cancelled(self) -> bool: ...

    def send(self, value: SendType) -> None:
        return self.resume(outcome.Value(value))

    def throw(self, exn: BaseException) -> None:
        return self.resume(outcome.Error(exn))

    def __call__(self, value: SendType) -> None:
        return self.send(value)

class Shift:
    "The internal type we yield up to a Task to implement `shift`"
    __slots__ = ('func',)
    def __init__(self, func: t.Callable[[Continuation[t.Any]], t.Optional[Abort]]) -> None:
        self.func = func

    def __repr__(self) -> str:
        return f"Shift({self.func!r})"

@types.coroutine
def shift(func: t.Callable[[Continuation[SendType]], t.Optional[Abort]]) -> t.Generator[Shift, t.Any, SendType]:
    """Call `func` with our current continuation and block until that continuation is resumed.

    This is a coroutine function, just implemented synchronously because this is
    the only place we actually yield from.

    """
    return (yield Shift(func))
