import os
import time
from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Optional, Literal, List, Dict

# Settings
class LuckyMultiplier(BaseModel):
    label: str
    value: int = Field(ge=0)
    chance: float = Field(ge=0)

SUPER_MULTIPLIERS = [
    LuckyMultiplier(label="X1", value=1, chance=50),
    LuckyMultiplier(label="X10", value=10, chance=30),
    LuckyMultiplier(label="X100", value=100, chance=15),
    LuckyMultiplier(label="X500", value=500, chance=4),
    LuckyMultiplier(label="X1000", value=1000, chance=1),
]

# Chip denominations offered by the wheel and slots tables
CHIPS = [10_000, 1_000_000, 5_000_000, 20_000_000]

class GameSettings(BaseModel):
    # camelCase aliases match the settings document the admin panel writes
    model_config = ConfigDict(populate_by_name=True)

    lucky_gift_win_rate: float = Field(30, ge=0, le=100, alias="luckyGiftWinRate")
    lucky_gift_refund_percent: int = Field(200, ge=0, alias="luckyGiftRefundPercent")
    wheel_win_rate: float = Field(45, ge=0, le=100, alias="wheelWinRate")
    slots_win_rate: float = Field(35, ge=0, le=100, alias="slotsWinRate")
    wheel_jackpot_x: int = Field(8, ge=0, alias="wheelJackpotX")
    wheel_normal_x: int = Field(2, ge=0, alias="wheelNormalX")
    slots_seven_x: int = Field(20, ge=0, alias="slotsSevenX")
    slots_fruit_x: int = Field(5, ge=0, alias="slotsFruitX")
    lucky_x_enabled: bool = Field(False, alias="luckyXEnabled")
    lucky_multipliers: List[LuckyMultiplier] = Field(default_factory=lambda: list(SUPER_MULTIPLIERS), alias="luckyMultipliers")
    chips: List[Annotated[int, Field(gt=0)]] = Field(default_factory=lambda: list(CHIPS), min_length=1)

    @classmethod
    def from_env(cls) -> "GameSettings":
        env = {
            "lucky_gift_win_rate": os.getenv("LUCKY_GIFT_WIN_RATE"),
            "lucky_gift_refund_percent": os.getenv("LUCKY_GIFT_REFUND_PERCENT"),
            "wheel_win_rate": os.getenv("WHEEL_WIN_RATE"),
            "slots_win_rate": os.getenv("SLOTS_WIN_RATE"),
            "wheel_jackpot_x": os.getenv("WHEEL_JACKPOT_X"),
            "wheel_normal_x": os.getenv("WHEEL_NORMAL_X"),
            "slots_seven_x": os.getenv("SLOTS_SEVEN_X"),
            "slots_fruit_x": os.getenv("SLOTS_FRUIT_X"),
        }
        values = {k: v for k, v in env.items() if v not in (None, "")}
        flag = os.getenv("LUCKY_X_ENABLED")
        if flag:
            values["lucky_x_enabled"] = flag.lower() in ("1", "true", "yes", "on")
        return cls(**values)

# Events
class Event(BaseModel):
    type: str
    room_id: Optional[int] = None
    timestamp: float = Field(default_factory=time.time)

class GiftEvent(Event):
    type: Literal["gift"] = "gift"
    gift_id: str
    sender_id: int
    recipient_ids: List[int]
    quantity: int
    animation_kind: Optional[str] = None

class AnnouncementEvent(Event):
    type: Literal["announcement"] = "announcement"
    sender_name: str
    recipient_name: str
    gift_name: str
    amount: int
    room_title: str

class LuckyWinEvent(Event):
    type: Literal["lucky_win"] = "lucky_win"
    user_id: int
    amount: int
    multiplier: Optional[str] = None

class ComboEvent(Event):
    type: Literal["combo"] = "combo"
    sender_id: int
    gift_id: str
    count: int

class GameResultEvent(Event):
    type: Literal["game_result"] = "game_result"
    game: Literal["wheel", "slots"]
    user_id: int
    outcome: Literal["win", "lose"]
    payout: int
    detail: Dict = Field(default_factory=dict)

# Gifts
class GiftSendIn(BaseModel):
    room_id: int
    gift_id: str
    recipient_ids: List[int] = Field(min_length=1)
    quantity: int = Field(1, ge=1)

class ComboHitIn(BaseModel):
    room_id: int

class ComboOut(BaseModel):
    gift_id: str
    recipient_ids: List[int]
    count: int
    expires_in: float

class GiftReceiptOut(BaseModel):
    gift_id: str
    total_cost: int
    lucky_win: bool
    lucky_bonus: int
    warnings: List[str]
    combo: Optional[ComboOut] = None
    coins: int

# Wallet
class DepositIn(BaseModel):
    amount: int = Field(gt=0, description="Positive amount of coins to recharge")
    password: str = Field(min_length=1, description="Recharge password configured server-side")
    note: Optional[str] = None

class WalletOut(BaseModel):
    coins: int
    wealth: int
    charm: int
    diamonds: int

# Rooms
class ContributorOut(BaseModel):
    user_id: int
    username: str
    amount: int

class RoomResetIn(BaseModel):
    leaderboard: bool = True
    charms: bool = False

# Wheel
class WheelOptionOut(BaseModel):
    id: str
    multiplier: int
    visual_weight: int

class WheelBetIn(BaseModel):
    option_id: str
    amount: int

class WheelStateOut(BaseModel):
    status: Literal["betting", "spinning", "result", "closed"]
    time_left: int
    bets: Dict[str, int]
    winner: Optional[str] = None
    history: List[str]
    last_payout: int
    options: List[WheelOptionOut]

# Slots
class SlotsPullIn(BaseModel):
    bet: int

class SlotsStateOut(BaseModel):
    spinning: bool
    bet: int
    reels: Optional[List[str]] = None
    win: Optional[bool] = None
    payout: int = 0
