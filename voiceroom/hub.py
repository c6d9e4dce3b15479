import logging
import random
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from .db import SessionLocal
from .events import EventBus
from .games.slots import SlotsSession
from .games.wheel import WheelSession
from .gifts import GiftProcessor
from .schemas import GameSettings
from .timers import LoopScheduler, Scheduler

logger = logging.getLogger(__name__)


class RoomHub:
    """Per-process home for short-lived state: combos, open wheels and slot machines."""

    def __init__(self, scheduler: Optional[Scheduler] = None,
                 session_factory: Callable[[], Session] = SessionLocal,
                 settings: Optional[GameSettings] = None, rng: random.Random | None = None):
        self.scheduler = scheduler or LoopScheduler()
        self.session_factory = session_factory
        self.settings = settings or GameSettings.from_env()
        self.rng = rng
        self.bus = EventBus(self.scheduler)
        self.gifts = GiftProcessor(self.bus, self.scheduler, rng)
        self.wheels: Dict[int, WheelSession] = {}
        self.slots: Dict[int, SlotsSession] = {}

    def open_wheel(self, user_id: int) -> WheelSession:
        session = self.wheels.get(user_id)
        if session is None:
            session = WheelSession(user_id, self.settings, self.scheduler, self.session_factory, self.bus, self.rng)
            self.wheels[user_id] = session
            logger.info("wheel opened for user %s", user_id)
        session.open()
        return session

    def close_wheel(self, user_id: int) -> None:
        session = self.wheels.pop(user_id, None)
        if session is not None:
            session.close()

    def slots_for(self, user_id: int) -> SlotsSession:
        session = self.slots.get(user_id)
        if session is None:
            session = SlotsSession(user_id, self.settings, self.scheduler, self.session_factory, self.bus, self.rng)
            self.slots[user_id] = session
        return session

    def close_slots(self, user_id: int) -> None:
        session = self.slots.pop(user_id, None)
        if session is not None:
            session.close()

    def shutdown(self) -> None:
        for user_id in list(self.wheels):
            self.close_wheel(user_id)
        for user_id in list(self.slots):
            self.close_slots(user_id)
