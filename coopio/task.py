"""Tasks: Futures which drive a coroutine to completion on a Scheduler

A Task steps its coroutine forward each time the coroutine is woken up. When
the coroutine calls `shift`, the Task makes a TaskContinuation and hands it to
the function passed to `shift`; resuming that continuation puts the Task's next
step on the Scheduler's ready queue.

Cancellation is cooperative. Task.cancel never interrupts a running step; if
the Task is suspended, its wait is aborted and Cancelled is thrown in at the
next step, and otherwise the request is remembered and delivered at the next
point where the coroutine tries to suspend.

"""
from __future__ import annotations
from dataclasses import dataclass
from coopio.core import Shift, Continuation, Abort
from coopio.exceptions import Cancelled, StateError
from coopio.futures import Future, FutureState
from outcome import Outcome
import enum
import itertools
import outcome
import typing as t
import logging
logger = logging.getLogger(__name__)

if t.TYPE_CHECKING:
    from coopio.scheduler import Scheduler

__all__ = [
    'TaskState',
    'Task',
    'TaskContinuation',
]

T = t.TypeVar('T')

_task_counter = itertools.count(1)

class TaskState(enum.Enum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    SUSPENDED = "suspended"
    DONE = "done"

@dataclass(eq=False)
class TaskContinuation(Continuation[t.Any]):
    "The continuation of a Task suspended in `shift`; resuming it reschedules the Task"
    task: Task
    woken: bool = False
    aborted: bool = False
    abort: t.Optional[Abort] = None

    def resume(self, value: Outcome[t.Any]) -> None:
        if self.aborted:
            # discard the result - the Task was cancelled out of this wait
            logger.debug("TaskContinuation(%s): resumed after cancellation with %s", self.task.name, value)
            return
        if self.woken:
            raise StateError(f"continuation of {self.task!r} was already resumed", value)
        logger.debug("TaskContinuation(%s): resumed with %s", self.task.name, value)
        self.woken = True
        self.task.task_state = TaskState.SCHEDULED
        self.task._scheduler.call_soon(self.task._step, value)

    def is_cancelled(self) -> bool:
        return self.aborted

class Task(Future[T]):
    """A Future whose outcome is the outcome of a coroutine

    Make these with Scheduler.spawn. The first step is queued right away, so the
    coroutine starts running within the Scheduler's next cycle.

    """
    def __init__(self, scheduler: Scheduler, coro: t.Coroutine[t.Any, t.Any, T],
                 name: t.Optional[str]=None) -> None:
        if not (hasattr(coro, 'send') and hasattr(coro, 'throw')):
            raise TypeError("a Task needs a coroutine object", coro)
        super().__init__()
        self._scheduler = scheduler
        self._coro = coro
        self.name = name or f"Task-{next(_task_counter)}"
        self.task_state = TaskState.SCHEDULED
        self._started = False
        self._cancel_requested = False
        self._cancel_delivering = False
        self._cancel_msg: t.Optional[str] = None
        self._wait: t.Optional[TaskContinuation] = None
        scheduler.call_soon(self._step, outcome.Value(None))

    def __repr__(self) -> str:
        return f"<Task {self.name} {self.task_state.value} {self.state.value}>"

    @property
    def coro(self) -> t.Coroutine[t.Any, t.Any, T]:
        return self._coro

    def resolve(self, value: T) -> None:
        raise StateError("a Task is only settled by its own coroutine", self)

    def fail(self, error: BaseException) -> None:
        raise StateError("a Task is only settled by its own coroutine", self)

    def _make_cancelled(self) -> Cancelled:
        return Cancelled(self._cancel_msg) if self._cancel_msg else Cancelled()

    def _deliver_cancel(self) -> None:
        self._cancel_delivering = True
        self.task_state = TaskState.SCHEDULED
        self._scheduler.call_soon(self._step, outcome.Error(self._make_cancelled()))

    def cancel(self, msg: t.Optional[str]=None) -> bool:
        """Request cancellation; returns False if the Task is already done.

        If we're suspended, the wait is aborted now and Cancelled is raised at
        the suspension point on our next step. Otherwise, Cancelled is raised at
        the next suspension point the coroutine reaches.

        """
        if self.done():
            return False
        if self._cancel_delivering or self._cancel_requested:
            return True
        self._cancel_msg = msg
        cont = self._wait
        if self.task_state is TaskState.SUSPENDED and cont is not None and not cont.woken:
            logger.debug("Task(%s): cancelled while suspended, aborting wait", self.name)
            cont.aborted = True
            self._wait = None
            self._deliver_cancel()
            if cont.abort is not None:
                cont.abort()
        else:
            logger.debug("Task(%s): cancelled while %s, deferring to next suspension point",
                         self.name, self.task_state.value)
            self._cancel_requested = True
        return True

    def _finish(self, state: FutureState, result: Outcome[T]) -> None:
        self.task_state = TaskState.DONE
        self._wait = None
        self._cancel_requested = False
        self._settle(state, result)

    def _step(self, value: Outcome[t.Any]) -> None:
        if self.done():
            logger.debug("Task(%s): step after completion, discarding %s", self.name, value)
            return
        self._cancel_delivering = False
        if not self._started:
            self._started = True
            if self._cancel_requested:
                # never started, so the start is the suspension point
                self._cancel_requested = False
                value = outcome.Error(self._make_cancelled())
        self._wait = None
        self.task_state = TaskState.RUNNING
        try:
            yielded = value.send(self._coro)
        except StopIteration as e:
            logger.debug("Task(%s): returned %s", self.name, e.value)
            self._finish(FutureState.RESOLVED, outcome.Value(e.value))
            return
        except Cancelled as e:
            logger.debug("Task(%s): cancelled", self.name)
            self._finish(FutureState.CANCELLED, outcome.Error(e))
            return
        except (KeyboardInterrupt, SystemExit) as e:
            self._finish(FutureState.FAILED, outcome.Error(e))
            raise
        except BaseException as e:
            logger.debug("Task(%s): raised %r", self.name, e)
            e = e.with_traceback(e.__traceback__ and e.__traceback__.tb_next)
            self._finish(FutureState.FAILED, outcome.Error(e))
            return
        if not isinstance(yielded, Shift):
            logger.debug("Task(%s): yielded non-shift %r", self.name, yielded)
            self.task_state = TaskState.SCHEDULED
            self._scheduler.call_soon(self._step, outcome.Error(TypeError(
                f"{self.name} yielded {yielded!r}; coopio Tasks can only await coopio objects")))
            return
        self._suspend(yielded)

    def _suspend(self, request: Shift) -> None:
        if self._cancel_requested:
            self._cancel_requested = False
            logger.debug("Task(%s): delivering cancellation at suspension point", self.name)
            self._deliver_cancel()
            return
        cont = TaskContinuation(self)
        self._wait = cont
        self.task_state = TaskState.SUSPENDED
        try:
            cont.abort = request.func(cont)
        except Exception as e:
            if cont.woken:
                logger.exception("Task(%s): shift function raised after resuming", self.name)
                return
            logger.debug("Task(%s): shift function raised %r", self.name, e)
            cont.aborted = True
            self._wait = None
            self.task_state = TaskState.SCHEDULED
            self._scheduler.call_soon(self._step, outcome.Error(e))
            return
        if cont.woken:
            # the shift function resumed us immediately
            self.task_state = TaskState.SCHEDULED
