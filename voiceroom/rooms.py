import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from .models import Contributor, Room, RoomSeat, User
from .schemas import ContributorOut, RoomResetIn
from .security import current_user, get_db, get_hub

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rooms", tags=["rooms"])


def leaderboard(db: Session, room_id: int, limit: int = 50) -> List[dict]:
    rows = db.execute(
        select(Contributor.user_id, User.username, Contributor.amount)
        .join(User, User.id == Contributor.user_id)
        .where(Contributor.room_id == room_id)
        .order_by(Contributor.amount.desc(), Contributor.user_id)
        .limit(limit)
    ).all()
    return [{"user_id": uid, "username": name, "amount": int(amount)} for uid, name, amount in rows]


def reset_room(db: Session, room_id: int, clear_leaderboard: bool, clear_charms: bool) -> None:
    """Host moderation: wipe the room rank and/or the seat charm mirror.

    Users' own charm counters are untouched, only the room-scoped views reset.
    """
    if clear_leaderboard:
        db.execute(delete(Contributor).where(Contributor.room_id == room_id))
    if clear_charms:
        db.execute(update(RoomSeat).where(RoomSeat.room_id == room_id).values(charm=0))
    db.commit()


@router.get("/{room_id}/leaderboard", response_model=List[ContributorOut])
def get_leaderboard(room_id: int, db: Session = Depends(get_db)):
    if not db.get(Room, room_id):
        raise HTTPException(404, "Room not found")
    return leaderboard(db, room_id)


@router.post("/{room_id}/reset")
def reset(room_id: int, body: RoomResetIn, user: User = Depends(current_user), db: Session = Depends(get_db)):
    room = db.get(Room, room_id)
    if not room:
        raise HTTPException(404, "Room not found")
    if room.host_id != user.id:
        raise HTTPException(403, "Only the host can reset the room")
    reset_room(db, room_id, body.leaderboard, body.charms)
    logger.info("room %s reset by host (leaderboard=%s, charms=%s)", room_id, body.leaderboard, body.charms)
    return {"ok": True}


@router.get("/{room_id}/events")
def events(room_id: int, limit: int = 50, hub=Depends(get_hub)):
    return [e.model_dump() for e in hub.bus.for_room(room_id, limit)]
