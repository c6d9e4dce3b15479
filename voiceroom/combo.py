"""Combo streaks: repeat the last gift with one tap while the idle window is open.

State machine per (sender, room)::

    Idle -> Active(count=1) -> Active(count+1, window reset) -> ... -> Idle

The window closes 5 seconds after the last send or hit. Starting a new send
replaces whatever combo the sender had open in that room.
"""
import dataclasses
import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .errors import EconomyError
from .events import EventBus
from .schemas import ComboEvent, GameSettings
from .timers import Scheduler, TimerHandle

if TYPE_CHECKING:
    from .gifts import GiftProcessor, GiftReceipt

logger = logging.getLogger(__name__)

COMBO_WINDOW_SECONDS = 5.0


@dataclasses.dataclass
class ComboState:
    sender_id: int
    room_id: int
    gift_id: str
    recipients: List[int]
    count: int = 1
    expires_at: float = 0.0
    timer: Optional[TimerHandle] = dataclasses.field(default=None, repr=False)


class ComboTracker:
    def __init__(self, processor: "GiftProcessor", scheduler: Scheduler, bus: EventBus,
                 window: float = COMBO_WINDOW_SECONDS):
        self.processor = processor
        self.scheduler = scheduler
        self.bus = bus
        self.window = window
        self._combos: Dict[Tuple[int, int], ComboState] = {}

    def get(self, sender_id: int, room_id: int) -> Optional[ComboState]:
        return self._combos.get((sender_id, room_id))

    def start(self, sender_id: int, room_id: int, gift_id: str, recipients: List[int]) -> ComboState:
        self.cancel(sender_id, room_id)
        state = ComboState(sender_id=sender_id, room_id=room_id, gift_id=gift_id, recipients=list(recipients))
        self._combos[(sender_id, room_id)] = state
        self._arm(state)
        self._announce(state)
        return state

    def hit(self, db: Session, sender_id: int, room_id: int, settings: GameSettings) -> Optional["GiftReceipt"]:
        """Re-send the combo gift once. Returns None when no combo is open."""
        state = self.get(sender_id, room_id)
        if state is None:
            return None
        try:
            receipt = self.processor.send(
                db, sender_id, room_id, state.gift_id, state.recipients, 1, settings, from_combo=True,
            )
        except EconomyError:
            logger.info("combo %s for user %s abandoned at x%d", state.gift_id, sender_id, state.count)
            self.cancel(sender_id, room_id)
            raise

        # Overlapping hits: whoever lands last sets the count
        state.count += 1
        self._arm(state)
        self._announce(state)
        receipt.combo = state
        return receipt

    def cancel(self, sender_id: int, room_id: int) -> None:
        state = self._combos.pop((sender_id, room_id), None)
        if state is not None and state.timer is not None:
            state.timer.cancel()

    def _arm(self, state: ComboState) -> None:
        if state.timer is not None:
            state.timer.cancel()
        state.expires_at = self.scheduler.now() + self.window
        state.timer = self.scheduler.call_later(self.window, self._expire, state)

    def _expire(self, state: ComboState) -> None:
        key = (state.sender_id, state.room_id)
        if self._combos.get(key) is state:
            del self._combos[key]
            logger.info("combo %s for user %s ended at x%d", state.gift_id, state.sender_id, state.count)

    def _announce(self, state: ComboState) -> None:
        self.bus.publish(ComboEvent(
            room_id=state.room_id, sender_id=state.sender_id, gift_id=state.gift_id, count=state.count,
        ))
