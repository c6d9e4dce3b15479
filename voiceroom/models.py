from sqlalchemy import (
    Integer, String, DateTime, func, ForeignKey, Boolean, BigInteger, JSON, Enum, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from enum import Enum as PyEnum
from .db import Base

# Counters a ledger delta may touch. coins is spendable, the rest only grow.
WALLET_FIELDS = ("coins", "wealth", "charm", "diamonds")
MONOTONIC_FIELDS = ("wealth", "charm", "diamonds")

class GameType(PyEnum):
    wheel = "wheel"
    slots = "slots"

class Outcome(PyEnum):
    win = "win"
    lose = "lose"

class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    coins: Mapped[int] = mapped_column(BigInteger, default=0)
    wealth: Mapped[int] = mapped_column(BigInteger, default=0)
    charm: Mapped[int] = mapped_column(BigInteger, default=0)
    diamonds: Mapped[int] = mapped_column(BigInteger, default=0)

    entries = relationship("LedgerEntry", back_populates="user", cascade="all, delete-orphan")
    rounds = relationship("GameRound", back_populates="user", cascade="all, delete-orphan")

class Gift(Base):
    __tablename__ = "gifts"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    icon: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cost: Mapped[int] = mapped_column(BigInteger)
    is_lucky: Mapped[bool] = mapped_column(Boolean, default=False)
    animation_kind: Mapped[str | None] = mapped_column(String(30), nullable=True)  # presentation hint only

class Room(Base):
    __tablename__ = "rooms"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200))
    host_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    seats = relationship("RoomSeat", back_populates="room", cascade="all, delete-orphan")
    contributors = relationship("Contributor", back_populates="room", cascade="all, delete-orphan")

class RoomSeat(Base):
    __tablename__ = "room_seats"
    __table_args__ = (UniqueConstraint("room_id", "user_id"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    seat_index: Mapped[int] = mapped_column(Integer)
    is_muted: Mapped[bool] = mapped_column(Boolean, default=True)
    charm: Mapped[int] = mapped_column(BigInteger, default=0)  # read mirror of charm received in this room

    room = relationship("Room", back_populates="seats")

class Contributor(Base):
    __tablename__ = "room_contributors"
    __table_args__ = (UniqueConstraint("room_id", "user_id"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    amount: Mapped[int] = mapped_column(BigInteger, default=0)
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    room = relationship("Room", back_populates="contributors")

class LedgerEntry(Base):
    __tablename__ = "ledger_entries"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    room_id: Mapped[int | None] = mapped_column(ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True)
    field: Mapped[str] = mapped_column(String(20))
    amount: Mapped[int] = mapped_column(BigInteger)  # signed delta
    kind: Mapped[str] = mapped_column(String(30))  # gift_send, lucky_bonus, wheel_bet, wheel_payout, ...
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="entries")

class GameRound(Base):
    __tablename__ = "game_rounds"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    game_type: Mapped[Enum] = mapped_column(Enum(GameType))
    bet: Mapped[int] = mapped_column(BigInteger)
    state: Mapped[dict] = mapped_column(JSON, default={})  # bets / reels / winner
    outcome: Mapped[Enum] = mapped_column(Enum(Outcome))
    payout: Mapped[int] = mapped_column(BigInteger, default=0)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="rounds")
