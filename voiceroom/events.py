"""In-process event bus for presentation consumers.

Gift animations, global announcements, lucky-win banners, combo counters and
game results are published here. Subscribers are plain callables; the room
events endpoint reads the bounded ``recent`` log.
"""
import logging
from collections import deque
from typing import Callable, List, Optional

from .schemas import Event
from .timers import Scheduler

logger = logging.getLogger(__name__)

RECENT_CAP = 200


class EventBus:
    def __init__(self, scheduler: Scheduler, recent_cap: int = RECENT_CAP):
        self.scheduler = scheduler
        self.recent: deque = deque(maxlen=recent_cap)
        self.active: List[Event] = []  # self-expiring banners still on screen
        self._subscribers: List[Callable[[Event], None]] = []

    def subscribe(self, callback: Callable[[Event], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: Event, expires_in: Optional[float] = None) -> None:
        self.recent.append(event)
        if expires_in is not None:
            self.active.append(event)
            self.scheduler.call_later(expires_in, self._expire, event)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                # A broken consumer must not take the gift flow down with it
                logger.exception("event subscriber failed on %s", event.type)

    def _expire(self, event: Event) -> None:
        self.active = [e for e in self.active if e is not event]

    def for_room(self, room_id: int, limit: int = 50) -> List[Event]:
        events = [e for e in self.recent if e.room_id == room_id]
        return events[-limit:]
