"""Gift sends: debit the sender, mint charm and leaderboard points, roll the
lucky bonus, announce, and open the sender's combo window.

Each effect after the debit is its own committed write. A failing write is
logged and reported on the receipt, the debit is never reversed and the send
still counts as delivered.
"""
import dataclasses
import logging
import random
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .combo import ComboState, ComboTracker
from .errors import InsufficientFundsError, TransientWriteError, UnknownEntityError
from .events import EventBus
from .ledger import apply_delta, balances
from .models import Contributor, Gift, Room, RoomSeat, User
from .outcome import pick_lucky_multiplier, roll_win
from .schemas import (
    AnnouncementEvent,
    ComboHitIn,
    ComboOut,
    GameSettings,
    GiftEvent,
    GiftReceiptOut,
    GiftSendIn,
    LuckyWinEvent,
)
from .security import current_user, get_db, get_hub
from .timers import Scheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gifts", tags=["gifts"])

LUCKY_BANNER_SECONDS = 5.0
SELF_RECIPIENT_NAME = "themselves"


@dataclasses.dataclass
class GiftReceipt:
    gift_id: str
    total_cost: int
    lucky_win: bool = False
    lucky_bonus: int = 0
    warnings: List[str] = dataclasses.field(default_factory=list)
    combo: Optional[ComboState] = None


class GiftProcessor:
    def __init__(self, bus: EventBus, scheduler: Scheduler, rng: random.Random | None = None):
        self.bus = bus
        self.rng = rng
        self.combos = ComboTracker(self, scheduler, bus)

    def send(
        self,
        db: Session,
        sender_id: int,
        room_id: int,
        gift_id: str,
        recipient_ids: List[int],
        quantity: int,
        settings: GameSettings,
        from_combo: bool = False,
    ) -> GiftReceipt:
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        recipients = list(dict.fromkeys(recipient_ids))
        if not recipients:
            raise ValueError("at least one recipient is required")

        sender = db.get(User, sender_id, populate_existing=True)
        gift = db.get(Gift, gift_id)
        room = db.get(Room, room_id)
        if not sender:
            raise UnknownEntityError(f"user {sender_id} not found")
        if not gift:
            raise UnknownEntityError(f"gift {gift_id} not found")
        if not room:
            raise UnknownEntityError(f"room {room_id} not found")
        roster = {u.id: u.username for u in db.scalars(select(User).where(User.id.in_(recipients)))}
        missing = [rid for rid in recipients if rid not in roster]
        if missing:
            raise UnknownEntityError(f"recipients not found: {missing}")

        per_recipient = gift.cost * quantity
        total_cost = per_recipient * len(recipients)
        if sender.coins < total_cost:
            raise InsufficientFundsError(sender_id, total_cost, sender.coins)

        # Commits below expire the ORM objects; keep what the events need
        sender_name, room_title = sender.username, room.title
        gift_name, is_lucky, animation_kind = gift.name, gift.is_lucky, gift.animation_kind

        # A racing debit can still fail here; nothing has been written yet
        apply_delta(db, sender_id, "coins", -total_cost, "gift_send", room_id)
        receipt = GiftReceipt(gift_id=gift_id, total_cost=total_cost)

        self._step(receipt, "wealth", apply_delta, db, sender_id, "wealth", total_cost, "gift_wealth", room_id)
        self._step(receipt, "leaderboard", self._contribute, db, room_id, sender_id, total_cost)
        for rid in recipients:
            self._step(receipt, f"charm:{rid}", apply_delta, db, rid, "charm", per_recipient, "gift_charm", room_id)
            self._step(receipt, f"diamonds:{rid}", apply_delta, db, rid, "diamonds", per_recipient, "gift_diamonds", room_id)
        self._step(receipt, "seat_mirror", self._mirror_charm, db, room_id, recipients, per_recipient)
        if is_lucky:
            self._step(receipt, "lucky_bonus", self._lucky_roll, db, receipt, sender_id, room_id, settings)

        self.bus.publish(GiftEvent(
            room_id=room_id, gift_id=gift_id, sender_id=sender_id,
            recipient_ids=recipients, quantity=quantity, animation_kind=animation_kind,
        ))
        for rid in recipients:
            self.bus.publish(AnnouncementEvent(
                room_id=room_id,
                sender_name=sender_name,
                recipient_name=SELF_RECIPIENT_NAME if rid == sender_id else roster[rid],
                gift_name=gift_name,
                amount=per_recipient,
                room_title=room_title,
            ))

        if not from_combo:
            receipt.combo = self.combos.start(sender_id, room_id, gift_id, recipients)
        logger.info("user %s sent %s x%d to %s in room %s (%d coins)",
                    sender_id, gift_id, quantity, recipients, room_id, total_cost)
        return receipt

    def _step(self, receipt: GiftReceipt, step: str, fn, *args):
        try:
            return fn(*args)
        except (SQLAlchemyError, UnknownEntityError) as exc:
            err = TransientWriteError(step, exc)
            logger.warning("gift %s: %s", receipt.gift_id, err)
            receipt.warnings.append(str(err))
            return None

    def _contribute(self, db: Session, room_id: int, user_id: int, amount: int):
        res = db.execute(
            update(Contributor)
            .where(Contributor.room_id == room_id, Contributor.user_id == user_id)
            .values(amount=Contributor.amount + amount)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            db.add(Contributor(room_id=room_id, user_id=user_id, amount=amount))
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

    def _mirror_charm(self, db: Session, room_id: int, recipients: List[int], amount: int):
        try:
            db.execute(
                update(RoomSeat)
                .where(RoomSeat.room_id == room_id, RoomSeat.user_id.in_(recipients))
                .values(charm=RoomSeat.charm + amount)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

    def _lucky_roll(self, db: Session, receipt: GiftReceipt, sender_id: int, room_id: int, settings: GameSettings):
        if not roll_win(settings.lucky_gift_win_rate, self.rng):
            return
        label = None
        if settings.lucky_x_enabled and settings.lucky_multipliers:
            row = pick_lucky_multiplier(settings.lucky_multipliers, self.rng)
            bonus, label = receipt.total_cost * row.value, row.label
        else:
            bonus = receipt.total_cost * settings.lucky_gift_refund_percent // 100
        if bonus > 0:
            apply_delta(db, sender_id, "coins", bonus, "lucky_bonus", room_id)
        receipt.lucky_win, receipt.lucky_bonus = True, bonus
        self.bus.publish(
            LuckyWinEvent(room_id=room_id, user_id=sender_id, amount=bonus, multiplier=label),
            expires_in=LUCKY_BANNER_SECONDS,
        )
        logger.info("lucky win for user %s: %d coins", sender_id, bonus)


def combo_out(state: Optional[ComboState], now: float) -> Optional[ComboOut]:
    if state is None:
        return None
    return ComboOut(
        gift_id=state.gift_id,
        recipient_ids=state.recipients,
        count=state.count,
        expires_in=max(0.0, state.expires_at - now),
    )


def receipt_out(receipt: GiftReceipt, coins: int, now: float) -> GiftReceiptOut:
    return GiftReceiptOut(
        gift_id=receipt.gift_id,
        total_cost=receipt.total_cost,
        lucky_win=receipt.lucky_win,
        lucky_bonus=receipt.lucky_bonus,
        warnings=receipt.warnings,
        combo=combo_out(receipt.combo, now),
        coins=coins,
    )


@router.post("/send", response_model=GiftReceiptOut)
async def send(body: GiftSendIn, user: User = Depends(current_user), db: Session = Depends(get_db), hub=Depends(get_hub)):
    user_id = user.id
    try:
        receipt = hub.gifts.send(db, user_id, body.room_id, body.gift_id, body.recipient_ids, body.quantity, hub.settings)
    except InsufficientFundsError:
        raise HTTPException(400, "Insufficient balance")
    except UnknownEntityError as e:
        raise HTTPException(404, str(e))
    return receipt_out(receipt, balances(db, user_id)["coins"], hub.scheduler.now())


@router.post("/combo", response_model=GiftReceiptOut)
async def combo_hit(body: ComboHitIn, user: User = Depends(current_user), db: Session = Depends(get_db), hub=Depends(get_hub)):
    user_id = user.id
    try:
        receipt = hub.gifts.combos.hit(db, user_id, body.room_id, hub.settings)
    except InsufficientFundsError:
        raise HTTPException(400, "Insufficient balance")
    except UnknownEntityError as e:
        raise HTTPException(404, str(e))
    if receipt is None:
        raise HTTPException(404, "No active combo")
    return receipt_out(receipt, balances(db, user_id)["coins"], hub.scheduler.now())


@router.get("/combo", response_model=Optional[ComboOut])
async def combo_state(room_id: int, user: User = Depends(current_user), hub=Depends(get_hub)):
    return combo_out(hub.gifts.combos.get(user.id, room_id), hub.scheduler.now())
