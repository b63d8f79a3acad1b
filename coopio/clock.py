"""Clocks for the Scheduler

The Scheduler reads the time from its clock to fire Timers, and asks the clock
to sleep when nothing is ready to run but a Timer is still pending.

"""
import abc
import time

__all__ = [
    'Clock',
    'SystemClock',
    'VirtualClock',
]

class Clock:
    @abc.abstractmethod
    def now(self) -> float: ...
    @abc.abstractmethod
    def sleep(self, seconds: float) -> None:
        "Block until `seconds` have passed; only called when the Scheduler is idle"
        ...

class SystemClock(Clock):
    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)

class VirtualClock(Clock):
    """A clock which only moves when told to, or when the Scheduler sleeps on it

    Sleeping just jumps the time forward, so code full of long timeouts runs
    instantly and deterministically. Useful for tests.

    """
    def __init__(self, start: float=0.0) -> None:
        self._now = start

    def now(self) -> float:
        return self._now

    def sleep(self, seconds: float) -> None:
        self.advance(seconds)

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("time can't go backwards", seconds)
        self._now += seconds
