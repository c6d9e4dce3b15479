"""Timer scheduling for combo windows, wheel phases and reveal delays.

Everything that waits goes through a scheduler object so the loop can be
swapped for a manual clock in tests. Callbacks run on the event loop thread,
one at a time.
"""
import asyncio
from typing import Any, Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, callback, *args)


class TimerGroup:
    """Timers owned by one session, cleared together on teardown."""

    def __init__(self, scheduler: Scheduler):
        self.scheduler = scheduler
        self._handles: dict[str, TimerHandle] = {}

    def set(self, name: str, delay: float, callback: Callable[..., Any], *args: Any) -> None:
        # Re-arming a name replaces the pending timer
        self.cancel(name)

        def fire():
            self._handles.pop(name, None)
            callback(*args)

        self._handles[name] = self.scheduler.call_later(delay, fire)

    def cancel(self, name: str) -> None:
        handle = self._handles.pop(name, None)
        if handle is not None:
            handle.cancel()

    def pending(self, name: str) -> bool:
        return name in self._handles

    def cancel_all(self) -> None:
        for name in list(self._handles):
            self.cancel(name)
