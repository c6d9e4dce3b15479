import dataclasses
import logging
import random
from enum import Enum
from typing import Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import InsufficientFundsError, InvalidBetError
from ..events import EventBus
from ..ledger import apply_delta
from ..models import GameRound, GameType, Outcome, User
from ..outcome import pick_winner
from ..schemas import GameResultEvent, GameSettings, WheelBetIn, WheelStateOut
from ..security import current_user, get_hub
from ..timers import Scheduler, TimerGroup

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wheel", tags=["wheel"])

BETTING_SECONDS = 15
SPIN_SECONDS = 7
RESULT_SECONDS = 5
HISTORY_CAP = 8

JACKPOT_ID = "777"
# (id, visual weight). Weight is how many wheel segments the option covers on screen.
WHEEL_LAYOUT = [
    (JACKPOT_ID, 1),
    ("grape", 2),
    ("cherry", 2),
    ("lemon", 2),
    ("watermelon", 1),
]


class Status(str, Enum):
    BETTING = "betting"
    SPINNING = "spinning"
    RESULT = "result"
    CLOSED = "closed"


@dataclasses.dataclass
class WheelOption:
    id: str
    multiplier: int
    visual_weight: int


def wheel_options(settings: GameSettings) -> List[WheelOption]:
    return [
        WheelOption(id=oid, multiplier=settings.wheel_jackpot_x if oid == JACKPOT_ID else settings.wheel_normal_x,
                    visual_weight=weight)
        for oid, weight in WHEEL_LAYOUT
    ]


class WheelSession:
    """One player's wheel table: betting -> spinning -> result -> betting, until closed."""

    def __init__(self, user_id: int, settings: GameSettings, scheduler: Scheduler,
                 session_factory: Callable[[], Session], bus: EventBus, rng: random.Random | None = None):
        self.user_id = user_id
        self.settings = settings
        self.session_factory = session_factory
        self.bus = bus
        self.rng = rng
        self.timers = TimerGroup(scheduler)
        self.options = {o.id: o for o in wheel_options(settings)}

        self.status = Status.BETTING
        self.time_left = BETTING_SECONDS
        self.bets: Dict[str, int] = {}
        self.winner: Optional[str] = None
        self.history: List[str] = []
        self.last_payout = 0

    def open(self):
        if self.status == Status.CLOSED:
            raise InvalidBetError("wheel session is closed")
        if not self.timers.pending("tick") and self.status == Status.BETTING:
            self.timers.set("tick", 1, self._tick)

    def place_bet(self, option_id: str, amount: int) -> int:
        """Debit a chip and stack it on ``option_id``. Returns the option's bet total."""
        if self.status != Status.BETTING:
            raise InvalidBetError("Bets are closed")
        if option_id not in self.options:
            raise InvalidBetError(f"Unknown option {option_id}")
        if amount not in self.settings.chips:
            raise InvalidBetError(f"Bet must be one of the chips {self.settings.chips}")
        with self.session_factory() as db:
            try:
                apply_delta(db, self.user_id, "coins", -amount, "wheel_bet")
            except InsufficientFundsError as e:
                raise InvalidBetError("Insufficient balance") from e
        self.bets[option_id] = self.bets.get(option_id, 0) + amount
        return self.bets[option_id]

    def close(self):
        if self.status == Status.SPINNING and self.winner is not None:
            # Outcome is already fixed: pay it out, just don't tell anyone
            self.timers.cancel_all()
            self._settle(publish=False)
        self.timers.cancel_all()
        self.status = Status.CLOSED

    def snapshot(self) -> dict:
        return {
            "status": self.status.value,
            "time_left": self.time_left,
            "bets": dict(self.bets),
            "winner": self.winner,
            "history": list(self.history),
            "last_payout": self.last_payout,
            "options": [dataclasses.asdict(o) for o in self.options.values()],
        }

    def _tick(self):
        if self.status != Status.BETTING:
            return
        self.time_left -= 1
        if self.time_left <= 0:
            self.time_left = 0
            self._spin()
        else:
            self.timers.set("tick", 1, self._tick)

    def _spin(self):
        self.status = Status.SPINNING
        backed = [oid for oid, amt in self.bets.items() if amt > 0]
        self.winner = pick_winner(self.settings.wheel_win_rate, backed, list(self.options), self.rng)
        logger.info("wheel user %s: backed %s, winner %s", self.user_id, backed, self.winner)
        self.timers.set("settle", SPIN_SECONDS, self._settle)

    def _settle(self, publish: bool = True):
        winner = self.options[self.winner]
        self.history.insert(0, winner.id)
        del self.history[HISTORY_CAP:]

        stake = self.bets.get(winner.id, 0)
        payout = stake * winner.multiplier + stake if stake else 0
        total_bet = sum(self.bets.values())
        outcome = Outcome.win if payout else Outcome.lose
        if total_bet:
            try:
                with self.session_factory() as db:
                    if payout:
                        apply_delta(db, self.user_id, "coins", payout, "wheel_payout")
                    db.add(GameRound(
                        user_id=self.user_id, game_type=GameType.wheel, bet=total_bet,
                        state={"bets": dict(self.bets), "winner": winner.id},
                        outcome=outcome, payout=payout,
                    ))
                    db.commit()
            except SQLAlchemyError:
                logger.exception("wheel settlement write failed for user %s", self.user_id)

        self.last_payout = payout
        self.status = Status.RESULT
        if publish:
            self.bus.publish(GameResultEvent(
                game="wheel", user_id=self.user_id, outcome=outcome.value,
                payout=payout, detail={"winner": winner.id, "bets": dict(self.bets)},
            ))
            self.timers.set("reset", RESULT_SECONDS, self._reset)

    def _reset(self):
        self.bets = {}
        self.winner = None
        self.last_payout = 0
        self.time_left = BETTING_SECONDS
        self.status = Status.BETTING
        self.timers.set("tick", 1, self._tick)


@router.post("/open", response_model=WheelStateOut)
async def open_wheel(user: User = Depends(current_user), hub=Depends(get_hub)):
    return hub.open_wheel(user.id).snapshot()


@router.get("/state", response_model=WheelStateOut)
async def state(user: User = Depends(current_user), hub=Depends(get_hub)):
    session = hub.wheels.get(user.id)
    if not session:
        raise HTTPException(404, "Wheel not open")
    return session.snapshot()


@router.post("/bet", response_model=WheelStateOut)
async def bet(body: WheelBetIn, user: User = Depends(current_user), hub=Depends(get_hub)):
    session = hub.wheels.get(user.id)
    if not session:
        raise HTTPException(404, "Wheel not open")
    try:
        session.place_bet(body.option_id, body.amount)
    except InvalidBetError as e:
        raise HTTPException(400, str(e))
    return session.snapshot()


@router.post("/close")
async def close(user: User = Depends(current_user), hub=Depends(get_hub)):
    hub.close_wheel(user.id)
    return {"ok": True}
