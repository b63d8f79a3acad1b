"The exceptions raised by coopio primitives"

__all__ = [
    'Cancelled',
    'StateError',
    'WouldBlock',
    'QueueEmpty',
    'QueueFull',
    'Timeout',
]

class Cancelled(BaseException):
    """Raised inside a Task at a suspension point when the Task has been cancelled.

    This is a BaseException, like KeyboardInterrupt, so that a plain `except
    Exception` in user code doesn't accidentally swallow a cancellation.

    """
    pass

class StateError(Exception):
    """A primitive was used in a way its current state doesn't allow.

    For example, resolving a Future which is already complete, or calling
    Queue.task_done more times than items were retrieved.

    """
    pass

class WouldBlock(Exception):
    "A *_nowait operation couldn't complete without suspending"
    pass

class QueueEmpty(WouldBlock):
    pass

class QueueFull(WouldBlock):
    pass

class Timeout(TimeoutError):
    "wait_for ran out of time"
    pass
