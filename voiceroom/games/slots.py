import dataclasses
import logging
import random
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import InsufficientFundsError, InvalidBetError
from ..events import EventBus
from ..ledger import apply_delta
from ..models import GameRound, GameType, Outcome, User
from ..outcome import spin_reels
from ..schemas import GameResultEvent, GameSettings, SlotsPullIn, SlotsStateOut
from ..security import current_user, get_hub
from ..timers import Scheduler, TimerGroup

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slots", tags=["slots"])

REVEAL_SECONDS = 2
SYMBOLS = ["seven", "diamond", "cherry", "lemon", "grape", "watermelon"]
HIGH_TIER = {"seven", "diamond"}


def symbol_multiplier(symbol: str, settings: GameSettings) -> int:
    return settings.slots_seven_x if symbol in HIGH_TIER else settings.slots_fruit_x


@dataclasses.dataclass
class SlotPull:
    bet: int
    reels: List[str]
    win: bool
    payout: int
    revealed: bool = False


class SlotsSession:
    """Single-pull slot machine. Money moves at pull time, the result shows 2s later."""

    def __init__(self, user_id: int, settings: GameSettings, scheduler: Scheduler,
                 session_factory: Callable[[], Session], bus: EventBus, rng: random.Random | None = None):
        self.user_id = user_id
        self.settings = settings
        self.session_factory = session_factory
        self.bus = bus
        self.rng = rng
        self.timers = TimerGroup(scheduler)
        self.last: Optional[SlotPull] = None
        self.closed = False

    @property
    def spinning(self) -> bool:
        return self.last is not None and not self.last.revealed

    def pull(self, bet: int) -> SlotPull:
        if self.closed:
            raise InvalidBetError("Slots session is closed")
        if self.spinning:
            raise InvalidBetError("Reels are still spinning")
        if bet not in self.settings.chips:
            raise InvalidBetError(f"Bet must be one of the chips {self.settings.chips}")

        with self.session_factory() as db:
            try:
                apply_delta(db, self.user_id, "coins", -bet, "slots_bet")
            except InsufficientFundsError as e:
                raise InvalidBetError("Insufficient balance") from e

        reels, win = spin_reels(self.settings.slots_win_rate, SYMBOLS, self.rng)
        payout = bet * symbol_multiplier(reels[0], self.settings) + bet if win else 0
        self.last = SlotPull(bet=bet, reels=reels, win=win, payout=payout)
        # Wager already debited: write failures below are logged, the pull still reveals
        try:
            with self.session_factory() as db:
                if payout:
                    apply_delta(db, self.user_id, "coins", payout, "slots_payout")
                db.add(GameRound(
                    user_id=self.user_id, game_type=GameType.slots, bet=bet,
                    state={"reels": reels}, outcome=Outcome.win if win else Outcome.lose, payout=payout,
                ))
                db.commit()
        except SQLAlchemyError:
            logger.exception("slots settlement write failed for user %s", self.user_id)

        self.timers.set("reveal", REVEAL_SECONDS, self._reveal, self.last)
        logger.info("slots user %s: bet %d reels %s payout %d", self.user_id, bet, reels, payout)
        return self.last

    def close(self):
        self.timers.cancel_all()
        self.closed = True

    def snapshot(self) -> dict:
        pull = self.last
        if pull is None:
            return {"spinning": False, "bet": 0}
        if not pull.revealed:
            return {"spinning": True, "bet": pull.bet}
        return {"spinning": False, "bet": pull.bet, "reels": pull.reels, "win": pull.win, "payout": pull.payout}

    def _reveal(self, pull: SlotPull):
        if self.closed:
            return
        pull.revealed = True
        self.bus.publish(GameResultEvent(
            game="slots", user_id=self.user_id, outcome="win" if pull.win else "lose",
            payout=pull.payout, detail={"reels": pull.reels},
        ))


@router.post("/pull", response_model=SlotsStateOut)
async def pull(body: SlotsPullIn, user: User = Depends(current_user), hub=Depends(get_hub)):
    session = hub.slots_for(user.id)
    try:
        session.pull(body.bet)
    except InvalidBetError as e:
        raise HTTPException(400, str(e))
    return session.snapshot()


@router.get("/state", response_model=SlotsStateOut)
async def state(user: User = Depends(current_user), hub=Depends(get_hub)):
    return hub.slots_for(user.id).snapshot()


@router.post("/close")
async def close(user: User = Depends(current_user), hub=Depends(get_hub)):
    hub.close_slots(user.id)
    return {"ok": True}
